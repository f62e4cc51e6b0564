"""
RunMetrics — Observability for generation runs

Collects and exposes metrics:
- Directory counters (parsed, reused, resolved, failed)
- Source file counters (parsed, parse errors)
- Diagnostics by kind
- Collaborator call latency histograms (parse, resolve)
- Phase durations

Thread-safe. Workers and the call policy record concurrently.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable

from ..core.diagnostics import Diagnostic


@dataclass
class LatencyHistogram:
    """Simple histogram for latency tracking."""
    count: int = 0
    sum_ms: float = 0.0
    min_ms: float = float('inf')
    max_ms: float = 0.0

    # Buckets: <10ms, <50ms, <100ms, <500ms, <1s, <5s, >5s
    buckets: Dict[str, int] = field(default_factory=lambda: {
        "lt_10ms": 0,
        "lt_50ms": 0,
        "lt_100ms": 0,
        "lt_500ms": 0,
        "lt_1s": 0,
        "lt_5s": 0,
        "gt_5s": 0
    })

    def record(self, duration_ms: float) -> None:
        """Record a latency observation."""
        self.count += 1
        self.sum_ms += duration_ms
        self.min_ms = min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

        if duration_ms < 10:
            self.buckets["lt_10ms"] += 1
        elif duration_ms < 50:
            self.buckets["lt_50ms"] += 1
        elif duration_ms < 100:
            self.buckets["lt_100ms"] += 1
        elif duration_ms < 500:
            self.buckets["lt_500ms"] += 1
        elif duration_ms < 1000:
            self.buckets["lt_1s"] += 1
        elif duration_ms < 5000:
            self.buckets["lt_5s"] += 1
        else:
            self.buckets["gt_5s"] += 1

    @property
    def avg_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.sum_ms / self.count

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "avg_ms": round(self.avg_ms, 2),
            "min_ms": round(self.min_ms, 2) if self.min_ms != float('inf') else 0,
            "max_ms": round(self.max_ms, 2),
            "buckets": self.buckets.copy()
        }


class RunMetrics:
    """
    Metrics for one generation run.

    Counters:
    - directories: parsed, reused, resolved, failed
    - files: parsed, parse_errors
    - calls: by operation and outcome
    - diagnostics: by kind
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._directories: Dict[str, int] = defaultdict(int)
        self._files: Dict[str, int] = defaultdict(int)
        self._calls: Dict[str, int] = defaultdict(int)
        self._diagnostics: Dict[str, int] = defaultdict(int)
        self._latency: Dict[str, LatencyHistogram] = defaultdict(LatencyHistogram)
        self._phases: Dict[str, float] = {}
        self._start_time = datetime.now(timezone.utc)

    def record_directory(self, outcome: str) -> None:
        """Count a directory outcome: parsed, reused, resolved, failed."""
        with self._lock:
            self._directories[outcome] += 1

    def record_file(self, outcome: str) -> None:
        """Count a source file outcome: parsed, parse_errors."""
        with self._lock:
            self._files[outcome] += 1

    def record_call(self, operation: str, duration_ms: float, succeeded: bool) -> None:
        """
        Record one collaborator call attempt.

        Matches the CallPolicy observer signature. The first word of
        `operation` ("parse", "resolve") selects the histogram.
        """
        kind = operation.split(" ", 1)[0]
        with self._lock:
            self._calls[f"{kind}:{'ok' if succeeded else 'failed'}"] += 1
            self._latency[kind].record(duration_ms)
            self._latency["all"].record(duration_ms)

    def record_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> None:
        with self._lock:
            for diagnostic in diagnostics:
                self._diagnostics[diagnostic.kind.value] += 1

    def record_phase(self, phase: str, duration_ms: float) -> None:
        with self._lock:
            self._phases[phase] = self._phases.get(phase, 0.0) + duration_ms

    def count(self, group: str, key: str) -> int:
        """Read one counter, e.g. count("directories", "reused")."""
        counters = {
            "directories": self._directories,
            "files": self._files,
            "calls": self._calls,
            "diagnostics": self._diagnostics,
        }[group]
        with self._lock:
            return counters.get(key, 0)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            elapsed = (datetime.now(timezone.utc) - self._start_time).total_seconds()
            return {
                "elapsed_seconds": round(elapsed, 3),
                "directories": dict(self._directories),
                "files": dict(self._files),
                "calls": dict(self._calls),
                "diagnostics": dict(self._diagnostics),
                "latency": {
                    kind: hist.to_dict()
                    for kind, hist in self._latency.items()
                },
                "phases_ms": {
                    phase: round(ms, 2) for phase, ms in self._phases.items()
                },
            }
