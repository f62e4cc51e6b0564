"""
rulegen — Build-rule dependency resolution for Java sources

Generates and maintains build-rule declarations for a tree of Java source
directories: each reference is resolved to a label (a local directory or
an external Maven artifact) and placed in deps, runtime_deps or exports.

Usage:
    rulegen generate
    rulegen generate --output rules.json --maven-index maven_install.json
    rulegen kinds
    rulegen config --set layout.test_kind unit_test
"""

__version__ = "0.1.0"

# Core layer
from .core.labels import Label
from .core.model import ImportReference, ResolvedDependency, ParseResult, PackageEntry, UsageKind
from .core.diagnostics import RulegenError, Diagnostic, DiagnosticKind
from .core.kinds import RuleKind, RuleKindInfo, KindRegistry
from .core.classifier import is_test
from .core.loads import required_loads
from .core.cache import PackageCache
from .core.resolver import Resolver, ResolveResult

# Engine layer
from .engine import Engine, EngineConfig, RunReport, RunStatus, DirectoryTask, discover

# Services layer
from .services.base import Parser, CoordinateResolver, Emitter
from .services.calls import CallPolicy

# Configuration
from .config import Config, ConfigManager, get_config
from .logconfig import configure_logging, log_levels

__all__ = [
    "__version__",
    "Label", "ImportReference", "ResolvedDependency", "ParseResult", "PackageEntry", "UsageKind",
    "RulegenError", "Diagnostic", "DiagnosticKind",
    "RuleKind", "RuleKindInfo", "KindRegistry",
    "is_test", "required_loads",
    "PackageCache", "Resolver", "ResolveResult",
    "Engine", "EngineConfig", "RunReport", "RunStatus", "DirectoryTask", "discover",
    "Parser", "CoordinateResolver", "Emitter", "CallPolicy",
    "Config", "ConfigManager", "get_config",
    "configure_logging", "log_levels",
]
