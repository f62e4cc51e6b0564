"""
CLI — Command interface

    rulegen generate [--output rules.json] [--maven-index maven_install.json]
    rulegen kinds
    rulegen config [--set KEY VALUE [--user]] [--get KEY]

`generate` discovers Java source directories under the project, runs the
engine with the tree-sitter parser and the Maven index resolver, writes
the rules as JSON and saves the package cache for the next run.

Exit codes: 0 completed, 1 completed with warnings (--strict only),
2 aborted or invalid configuration.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import ConfigManager
from .core.cache import PackageCache
from .core.classifier import is_test
from .core.diagnostics import CacheFormatError, CollaboratorFatal, RulegenError
from .core.kinds import KindRegistry
from .core.loads import loads
from .engine import Engine, RunStatus, discover
from .logconfig import configure_logging, log_levels
from .services.emitters import JsonEmitter
from .services.maven import MavenIndexResolver
from .services.parser import JavaParser

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_WARNINGS = 1
EXIT_FAILED = 2


def cmd_generate(args: argparse.Namespace, manager: ConfigManager) -> int:
    """Generate rules for every Java source directory of the project."""
    config = manager.load()
    error = manager.validate()
    if error:
        print(f"Error: {error}", file=sys.stderr)
        return EXIT_FAILED

    project = manager.project_dir
    cache_path = project / config.cache.path
    if config.cache.enabled and not args.no_cache:
        try:
            cache = PackageCache.load_or_new(cache_path)
        except CacheFormatError as e:
            logger.warning("Discarding package cache: %s", e)
            cache = PackageCache()
    else:
        cache = PackageCache()

    index_path = Path(args.maven_index) if args.maven_index else project / config.resolve.maven_index
    if index_path.exists():
        coordinates = MavenIndexResolver.from_file(index_path, repository=config.resolve.repository)
    else:
        logger.warning("No Maven index at %s; external types will not resolve", index_path)
        coordinates = MavenIndexResolver({}, repository=config.resolve.repository)

    emitter = JsonEmitter(output=Path(args.output) if args.output else None)
    engine = Engine(manager.registry, cache, JavaParser(), coordinates, config.engine_config())

    try:
        report = engine.generate(discover(project), emitter)
    except CollaboratorFatal as e:
        print(f"Error: run aborted: {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        engine.shutdown()

    if config.cache.enabled and not args.no_cache:
        cache.save(cache_path)

    for diagnostic in report.diagnostics:
        print(diagnostic, file=sys.stderr)

    if report.status == RunStatus.COMPLETED_WITH_WARNINGS and args.strict:
        return EXIT_WARNINGS
    return EXIT_OK


def cmd_kinds(args: argparse.Namespace, manager: ConfigManager) -> int:
    """List producible rule kinds with their shape and load file."""
    providers = {symbol: info.name for info in loads() for symbol in info.symbols}
    for name in manager.registry:
        info = manager.registry.require(name)
        flags = "test" if is_test(name) else "non-test"
        print(f"{name:<20} {flags:<9} resolve={','.join(sorted(info.resolve_attrs)):<28} {providers.get(name, '-')}")
    return EXIT_OK


def cmd_config(args: argparse.Namespace, manager: ConfigManager) -> int:
    """Show, get or set configuration values."""
    if args.set:
        key, value = args.set
        error = manager.set(key, value, scope="user" if args.user else "project")
        if error:
            print(f"Error: {error}", file=sys.stderr)
            return EXIT_FAILED
        print(f"Set {key} = {manager.get(key)}")
        return EXIT_OK

    if args.get:
        value = manager.get(args.get)
        if value is None:
            print(f"Error: unknown key {args.get}", file=sys.stderr)
            return EXIT_FAILED
        print(value)
        return EXIT_OK

    print(manager.display())
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rulegen",
        description="rulegen -- Build-rule dependency resolution for Java sources",
    )
    parser.add_argument(
        '--project', '-p',
        default=os.environ.get("RULEGEN_PROJECT_PATH", "."),
        help='Project directory (default: RULEGEN_PROJECT_PATH or current)'
    )
    parser.add_argument(
        '--version', '-V',
        action='version',
        version=f'rulegen {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    generate = subparsers.add_parser('generate', help='Generate rules for the project')
    generate.add_argument('--output', '-o', help='Write JSON here instead of stdout')
    generate.add_argument('--maven-index', help='maven_install.json to resolve external types')
    generate.add_argument('--no-cache', action='store_true', help='Ignore and do not save the package cache')
    generate.add_argument('--strict', action='store_true', help='Exit 1 when the run has warnings')
    generate.set_defaults(handler=cmd_generate)

    kinds = subparsers.add_parser('kinds', help='List producible rule kinds')
    kinds.set_defaults(handler=cmd_kinds)

    config = subparsers.add_parser('config', help='Show or change configuration')
    config.add_argument('--set', nargs=2, metavar=('KEY', 'VALUE'), help='Set a value')
    config.add_argument('--get', metavar='KEY', help='Print one value')
    config.add_argument('--user', action='store_true', help='Write to the user config')
    config.set_defaults(handler=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the rulegen CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_OK

    manager = ConfigManager(Path(args.project), registry=KindRegistry())
    config = manager.load()
    configure_logging(*log_levels(config.log.level, config.log.parser_level))

    try:
        return args.handler(args, manager)
    except RulegenError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == '__main__':
    sys.exit(main())
