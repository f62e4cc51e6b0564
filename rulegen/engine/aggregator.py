"""
RunAggregator — Thread-safe collection of a run's outcomes

Workers hand their outcomes (directory results, failures, diagnostics)
to the aggregator from any thread. The engine builds the RunReport from
it once, on the calling thread, at the end of the run or when aborting.

Usage:
    aggregator = RunAggregator(run_id)
    aggregator.add_result(result)          # from any worker
    aggregator.add_failure(failure)        # from any worker
    report = aggregator.build(RunStatus.COMPLETED, loads, metrics)
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..core.diagnostics import Diagnostic
from ..core.loads import LoadStatement
from .task import DirectoryFailure, DirectoryResult


class RunStatus(Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"
    ABORTED = "aborted"


@dataclass
class AggregatorStats:
    """Statistics for aggregator observability."""
    results_received: int = 0
    failures_received: int = 0
    diagnostics_received: int = 0

    def to_dict(self) -> dict:
        return {
            "results_received": self.results_received,
            "failures_received": self.failures_received,
            "diagnostics_received": self.diagnostics_received,
        }


@dataclass
class RunReport:
    """Outcome of Engine.generate()."""
    run_id: str
    status: RunStatus
    results: List[DirectoryResult] = field(default_factory=list)
    failures: List[DirectoryFailure] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    loads: List[LoadStatement] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != RunStatus.ABORTED

    def result_for(self, path: str) -> Optional[DirectoryResult]:
        for result in self.results:
            if result.path == path:
                return result
        return None

    def failure_for(self, path: str) -> Optional[DirectoryFailure]:
        for failure in self.failures:
            if failure.path == path:
                return failure
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "results": [r.to_dict() for r in self.results],
            "failures": [f.to_dict() for f in self.failures],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "loads": [
                {"name": load.name, "symbols": list(load.symbols)}
                for load in self.loads
            ],
            "metrics": self.metrics,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "error": self.error,
        }


class RunAggregator:
    """
    Collects outcomes from parallel workers.

    Each directory ends up either in results or in failures, never both.
    A later submission for the same path replaces the earlier one.
    """

    def __init__(self, run_id: str):
        self.run_id = run_id
        self._lock = threading.Lock()
        self._results: Dict[str, DirectoryResult] = {}
        self._failures: Dict[str, DirectoryFailure] = {}
        self._diagnostics: Dict[str, List[Diagnostic]] = {}
        self._stats = AggregatorStats()
        self._started_at = datetime.now(timezone.utc).isoformat()

    def add_diagnostics(self, path: str, diagnostics: Iterable[Diagnostic]) -> None:
        """
        Record diagnostics for a directory that has no result yet.

        They are moved into the directory's result or failure when that
        arrives.
        """
        diagnostics = list(diagnostics)
        with self._lock:
            self._diagnostics.setdefault(path, []).extend(diagnostics)
            self._stats.diagnostics_received += len(diagnostics)

    def add_result(self, result: DirectoryResult) -> None:
        with self._lock:
            result.diagnostics[:0] = self._diagnostics.pop(result.path, [])
            self._failures.pop(result.path, None)
            self._results[result.path] = result
            self._stats.results_received += 1

    def add_failure(self, failure: DirectoryFailure) -> None:
        with self._lock:
            failure.diagnostics[:0] = self._diagnostics.pop(failure.path, [])
            self._results.pop(failure.path, None)
            self._failures[failure.path] = failure
            self._stats.failures_received += 1

    def results(self) -> List[DirectoryResult]:
        """Successful results, ordered by path."""
        with self._lock:
            return [self._results[p] for p in sorted(self._results)]

    def failed_paths(self) -> List[str]:
        with self._lock:
            return sorted(self._failures)

    def stats(self) -> AggregatorStats:
        with self._lock:
            return AggregatorStats(
                results_received=self._stats.results_received,
                failures_received=self._stats.failures_received,
                diagnostics_received=self._stats.diagnostics_received,
            )

    def build(
        self,
        status: Optional[RunStatus] = None,
        loads: Sequence[LoadStatement] = (),
        metrics: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> RunReport:
        """
        Build the report.

        Args:
            status: Forced status (ABORTED). Otherwise COMPLETED, or
                COMPLETED_WITH_WARNINGS when anything was recorded.
        """
        with self._lock:
            paths = sorted(set(self._diagnostics) | set(self._results) | set(self._failures))
            diagnostics: List[Diagnostic] = []
            for path in paths:
                diagnostics.extend(self._diagnostics.get(path, ()))
                if path in self._results:
                    diagnostics.extend(self._results[path].diagnostics)
                if path in self._failures:
                    diagnostics.extend(self._failures[path].diagnostics)

            results = [self._results[p] for p in sorted(self._results)]
            failures = [self._failures[p] for p in sorted(self._failures)]

        if status is None:
            warned = failures or diagnostics
            status = RunStatus.COMPLETED_WITH_WARNINGS if warned else RunStatus.COMPLETED

        return RunReport(
            run_id=self.run_id,
            status=status,
            results=results,
            failures=failures,
            diagnostics=diagnostics,
            loads=list(loads),
            metrics=metrics or {},
            started_at=self._started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
            error=error,
        )
