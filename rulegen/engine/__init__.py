"""
Engine — Orchestrates a generation run

Public API for turning a set of source directories into resolved rules:

Usage:
    from rulegen.core import KindRegistry, PackageCache
    from rulegen.engine import Engine, EngineConfig, discover

    engine = Engine(registry, cache, parser, coordinates, EngineConfig.from_env())
    try:
        report = engine.generate(discover(root), emitter)
    finally:
        engine.shutdown()

A run has three phases, each over a bounded worker pool:
1. PARSING: every directory is parsed (or reused when its sources are
   unchanged) and upserted into the package cache.
2. RESOLVING: every parsed directory is resolved against the fully
   populated cache; the resolved dependencies are upserted.
3. EMITTING: results are handed to the emitter in path order, followed
   by the load statements for the kinds used.

Failure scopes:
- ParseError: one file, recorded as a diagnostic
- CollaboratorTimeout (after retries): one directory, recorded as a failure
- CollaboratorFatal: the run; raised with the ABORTED report attached

Configuration via environment variables: see rulegen.engine.config.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from ..core.cache import PackageCache
from ..core.diagnostics import (
    CollaboratorFatal, CollaboratorTimeout, Diagnostic, DiagnosticKind,
    EngineShutdownError, ParseError,
)
from ..core.kinds import KindRegistry
from ..core.loads import required_loads
from ..core.model import PackageEntry
from ..core.resolver import Resolver
from ..services.base import CoordinateResolver, Emitter, Parser
from ..services.calls import CallPolicy
from .aggregator import RunAggregator, RunReport, RunStatus, AggregatorStats
from .config import EngineConfig
from .discovery import discover
from .lifecycle import EngineState, Lifecycle, TRANSITION_TABLE
from .metrics import RunMetrics, LatencyHistogram
from .pools import WorkerPool, PoolStats
from .task import (
    DirectoryFailure, DirectoryResult, DirectoryTask, GeneratedRule,
    WorkResult, WorkStatus, generate_run_id,
)

logger = logging.getLogger(__name__)

Directories = Union[Iterable[DirectoryTask], Mapping[str, Sequence[Path]]]


@dataclass
class _Parsed:
    """Parse-phase outcome for one directory."""
    entry: PackageEntry
    diagnostics: List[Diagnostic] = field(default_factory=list)
    reused: bool = False


class Engine:
    """
    Explicit owner of the package cache and collaborator handles.

    Manages:
    - Lifecycle (IDLE -> PARSING -> RESOLVING -> EMITTING -> IDLE, SHUTDOWN)
    - One worker pool shared by the parse and resolve phases
    - One call policy (timeouts, retries) for every collaborator call
    - Per-run aggregation and metrics

    Thread Safety:
    - One run at a time; a concurrent generate() raises
      InvalidTransitionError
    - shutdown() may be called from any thread, any number of times
    """

    def __init__(
        self,
        registry: KindRegistry,
        cache: PackageCache,
        parser: Parser,
        coordinates: CoordinateResolver,
        config: Optional[EngineConfig] = None,
    ):
        """
        Args:
            registry: Rule kinds that can be generated
            cache: Package cache (may be preloaded from disk)
            parser: Source parser collaborator
            coordinates: External coordinate resolver collaborator
            config: Configuration. If None, loads from environment.

        Raises:
            ValueError: invalid configuration
            KindNotRegisteredError: configured kinds are not registered
        """
        self._config = config or EngineConfig.from_env()
        self._config.validate()
        registry.require(self._config.library_kind)
        registry.require(self._config.test_kind)

        self.registry = registry
        self.cache = cache
        self.parser = parser
        self.coordinates = coordinates

        self._lock = threading.Lock()
        self._lifecycle = Lifecycle()
        self._metrics = RunMetrics()
        self._pool = WorkerPool(self._config)
        self._calls = CallPolicy(
            timeout=self._config.call_timeout,
            retries=self._config.call_retries,
            max_workers=self._config.workers * 2,
            observer=self._observe_call,
        )
        self._resolver = Resolver(
            cache,
            registry,
            coordinates,
            policy=self._calls,
            jdk_prefixes=self._config.jdk_prefixes,
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def state(self) -> EngineState:
        return self._lifecycle.state

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    @property
    def metrics(self) -> RunMetrics:
        """Metrics of the current (or last) run."""
        return self._metrics

    def pool_stats(self) -> PoolStats:
        return self._pool.stats()

    # =========================================================================
    # Run
    # =========================================================================

    def generate(
        self,
        directories: Directories,
        emitter: Optional[Emitter] = None,
    ) -> RunReport:
        """
        Generate rules for a set of directories.

        Args:
            directories: DirectoryTasks, or a mapping path -> source files
            emitter: Receives each directory result, then the loads

        Returns:
            RunReport with status COMPLETED or COMPLETED_WITH_WARNINGS

        Raises:
            EngineShutdownError: engine was shut down
            InvalidTransitionError: another run is in progress
            CollaboratorFatal: a collaborator became unavailable; the
                ABORTED report is attached as `exc.report`
        """
        tasks = _as_tasks(directories)
        self._lifecycle.transition(EngineState.PARSING)

        self._metrics = RunMetrics()
        aggregator = RunAggregator(generate_run_id())
        logger.info("Run %s started: %d director(ies)", aggregator.run_id, len(tasks))

        try:
            parsed = self._parse_phase(tasks, aggregator)
            self._lifecycle.transition(EngineState.RESOLVING)
            self._resolve_phase(parsed, aggregator)
            self._lifecycle.transition(EngineState.EMITTING)
            report = self._emit_phase(aggregator, emitter)
            self._lifecycle.transition(EngineState.IDLE)
        except CollaboratorFatal as e:
            report = aggregator.build(
                RunStatus.ABORTED,
                metrics=self._metrics.get_summary(),
                error=str(e),
            )
            e.report = report
            logger.error("Run %s aborted: %s", aggregator.run_id, e)
            raise
        finally:
            self._settle()

        logger.info(
            "Run %s %s: %d result(s), %d failure(s), %d diagnostic(s)",
            report.run_id, report.status.value,
            len(report.results), len(report.failures), len(report.diagnostics),
        )
        return report

    def remove(self, path: str) -> bool:
        """Forget a directory that no longer exists."""
        if self._lifecycle.is_shutdown:
            raise EngineShutdownError("Engine is shut down")
        return self.cache.remove(path.strip("/"))

    def shutdown(self, wait: bool = True) -> None:
        """
        Release collaborators and stop the pools. Idempotent.

        The parser and the coordinate resolver are closed exactly once,
        however many times this is called.
        """
        with self._lock:
            if self._lifecycle.is_shutdown:
                return
            self._lifecycle.transition(EngineState.SHUTDOWN)

        self._pool.shutdown(wait=wait, timeout=self._config.shutdown_timeout)
        self._calls.close()
        try:
            self.parser.close()
        finally:
            self.coordinates.close()
        logger.info("Engine shut down")

    def __enter__(self) -> 'Engine':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # =========================================================================
    # Phases
    # =========================================================================

    def _parse_phase(
        self,
        tasks: List[DirectoryTask],
        aggregator: RunAggregator,
    ) -> List[_Parsed]:
        started = time.monotonic()
        work = self._pool.run(
            self._parse_directory,
            [(task.path, task) for task in tasks],
            abort_on=(CollaboratorFatal,),
        )

        parsed = []
        for outcome in work:
            if outcome.success:
                aggregator.add_diagnostics(outcome.key, outcome.value.diagnostics)
                parsed.append(outcome.value)
            else:
                self._record_failure(aggregator, outcome, "parse")

        self._metrics.record_phase("parse", (time.monotonic() - started) * 1000)
        return parsed

    def _resolve_phase(self, parsed: List[_Parsed], aggregator: RunAggregator) -> None:
        started = time.monotonic()
        work = self._pool.run(
            self._resolve_directory,
            [(item.entry.path, item) for item in parsed],
            abort_on=(CollaboratorFatal,),
        )

        for outcome in work:
            if outcome.success:
                aggregator.add_result(outcome.value)
            else:
                self._record_failure(aggregator, outcome, "resolve")

        self._metrics.record_phase("resolve", (time.monotonic() - started) * 1000)

    def _emit_phase(
        self,
        aggregator: RunAggregator,
        emitter: Optional[Emitter],
    ) -> RunReport:
        started = time.monotonic()
        results = aggregator.results()
        kinds_used = {
            rule.kind
            for result in results
            for rule in result.rules
            if not rule.empty
        }
        loads = required_loads(kinds_used)

        if emitter is not None:
            for result in results:
                emitter.emit(result)
            emitter.finish(loads)

        self._metrics.record_phase("emit", (time.monotonic() - started) * 1000)
        report = aggregator.build(loads=loads)
        self._metrics.record_diagnostics(report.diagnostics)
        report.metrics = self._metrics.get_summary()
        return report

    # =========================================================================
    # Units of work (run on pool threads)
    # =========================================================================

    def _parse_directory(self, task: DirectoryTask) -> _Parsed:
        kind = self._config.kind_for(task.path)
        fingerprint = task.fingerprint()

        cached = self.cache.get(task.path)
        if cached is not None and cached.kinds == (kind,) and self.cache.is_fresh(task.path, fingerprint):
            self._metrics.record_directory("reused")
            logger.debug("Reusing %s (unchanged)", task.path or ".")
            return _Parsed(entry=cached, reused=True)

        package_name = ""
        declared = set()
        imports = set()
        diagnostics: List[Diagnostic] = []

        for source in task.sources:
            try:
                result = self._calls.invoke(f"parse {source.name}", self.parser.parse, source)
            except ParseError as e:
                self._metrics.record_file("parse_errors")
                diagnostics.append(Diagnostic.of(
                    DiagnosticKind.PARSE_ERROR, task.path, source.name, str(e),
                ))
                logger.warning("%s", e)
                continue

            self._metrics.record_file("parsed")
            package_name = package_name or result.package_name
            declared.update(result.declared_types)
            imports.update(result.imports)

        # A directory with unparseable files is never reused
        entry = self.cache.upsert(PackageEntry(
            path=task.path,
            package_name=package_name,
            declared_types=frozenset(declared),
            kinds=(kind,),
            imports=frozenset(imports),
            srcs=tuple(source.name for source in task.sources),
            fingerprint="" if diagnostics else fingerprint,
        ))
        self._metrics.record_directory("parsed")
        return _Parsed(entry=entry, diagnostics=diagnostics)

    def _resolve_directory(self, parsed: _Parsed) -> DirectoryResult:
        entry = parsed.entry
        kind = entry.kinds[0]
        info = self.registry.require(kind)

        result = self._resolver.resolve(entry.path, kind, entry.imports, entry.declared_types)

        attrs = {"srcs": list(entry.srcs)} if entry.srcs else {}
        attrs.update(result.attrs())
        rule = GeneratedRule(
            name=entry.label.name,
            kind=kind,
            attrs=attrs,
            empty=info.is_empty(attrs),
        )

        current = self.cache.get(entry.path) or entry
        self.cache.upsert(current.with_resolved(rule.name, result.dependencies))
        self._metrics.record_directory("resolved")

        return DirectoryResult(
            path=entry.path,
            rules=[rule],
            dependencies=list(result.dependencies),
            diagnostics=list(result.diagnostics),
            reused=parsed.reused,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _record_failure(
        self,
        aggregator: RunAggregator,
        outcome: WorkResult,
        phase: str,
    ) -> None:
        error = outcome.error
        diagnostics = []
        if isinstance(error, CollaboratorTimeout):
            diagnostics.append(Diagnostic.of(
                DiagnosticKind.COLLABORATOR_TIMEOUT, outcome.key, error.operation, str(error),
            ))
            logger.warning("%s failed during %s: %s", outcome.key or ".", phase, error)
        else:
            logger.error(
                "%s failed during %s: %s", outcome.key or ".", phase, error, exc_info=error,
            )

        self._metrics.record_directory("failed")
        aggregator.add_failure(DirectoryFailure(
            path=outcome.key,
            phase=phase,
            error=str(error),
            diagnostics=diagnostics,
        ))

    def _settle(self) -> None:
        """Return to IDLE after an interrupted run."""
        state = self._lifecycle.state
        if state not in (EngineState.IDLE, EngineState.SHUTDOWN):
            self._lifecycle.transition(EngineState.IDLE)

    def _observe_call(self, operation: str, duration_ms: float, succeeded: bool) -> None:
        self._metrics.record_call(operation, duration_ms, succeeded)


def _as_tasks(directories: Directories) -> List[DirectoryTask]:
    """Normalize the generate() input to DirectoryTasks ordered by path."""
    if isinstance(directories, Mapping):
        tasks = [DirectoryTask(path=p, sources=tuple(s)) for p, s in directories.items()]
    else:
        tasks = list(directories)

    seen = set()
    for task in tasks:
        if task.path in seen:
            raise ValueError(f"Directory listed twice: {task.path or '.'}")
        seen.add(task.path)
    return sorted(tasks, key=lambda t: t.path)


__all__ = [
    # Main class
    "Engine",

    # Reports
    "RunReport",
    "RunStatus",
    "DirectoryResult",
    "DirectoryFailure",
    "GeneratedRule",

    # Tasks
    "DirectoryTask",
    "WorkResult",
    "WorkStatus",
    "discover",

    # Configuration
    "EngineConfig",

    # Components (for advanced usage)
    "Lifecycle",
    "EngineState",
    "TRANSITION_TABLE",
    "WorkerPool",
    "PoolStats",
    "RunAggregator",
    "AggregatorStats",
    "RunMetrics",
    "LatencyHistogram",
]
