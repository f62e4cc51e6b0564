"""
WorkerPool — Bounded thread pool for per-directory work

Directories are independent units. A phase submits one unit per
directory and collects a WorkResult for each, in submission order.

Design principles:
- Threads, not processes: workers spend their time waiting on
  collaborators and share the in-memory package cache
- A unit's exception is captured in its WorkResult, never lost
- Exceptions listed in `abort_on` stop the phase: pending units are
  cancelled and the exception is raised to the caller
- Sequential fallback when parallelism is disabled
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, Future, as_completed, wait as wait_futures
from dataclasses import dataclass
from typing import Callable, Any, Dict, List, Optional, Sequence, Set, Tuple, Type

from ..core.diagnostics import EngineShutdownError
from .config import EngineConfig
from .task import WorkResult, WorkStatus

logger = logging.getLogger(__name__)


@dataclass
class PoolStats:
    """Statistics for pool observability."""
    active_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    cancelled_tasks: int = 0
    total_duration_ms: float = 0.0

    @property
    def avg_duration_ms(self) -> float:
        if self.completed_tasks == 0:
            return 0.0
        return self.total_duration_ms / self.completed_tasks

    def to_dict(self) -> dict:
        return {
            "active_tasks": self.active_tasks,
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "cancelled_tasks": self.cancelled_tasks,
            "avg_duration_ms": round(self.avg_duration_ms, 2)
        }


class WorkerPool:
    """
    ThreadPool for directory work.

    The executor is created on first use and reused across phases and
    runs until shutdown().
    """

    def __init__(self, config: EngineConfig, name: str = "rulegen-worker-"):
        self._config = config
        self._name = name
        self._executor: Optional[ThreadPoolExecutor] = None
        self._stats = PoolStats()
        self._in_flight: Set[Future] = set()
        self._lock = threading.Lock()
        self._shutdown = False

    def run(
        self,
        fn: Callable[[Any], Any],
        items: Sequence[Tuple[str, Any]],
        abort_on: Tuple[Type[BaseException], ...] = (),
    ) -> List[WorkResult]:
        """
        Apply fn to every item and collect the outcomes.

        Args:
            fn: Unit of work, called as fn(item)
            items: (key, item) pairs; keys identify results
            abort_on: Exception types that abort the whole phase

        Returns:
            WorkResults in the same order as items

        Raises:
            The first exception matching `abort_on`, after cancelling
            pending units.
        """
        if self._shutdown:
            raise EngineShutdownError("Worker pool is shut down")
        if not items:
            return []

        if not self._config.enabled:
            return self._run_sequential(fn, items, abort_on)

        executor = self._get_executor()
        futures: Dict[Future, int] = {}
        for index, (key, item) in enumerate(items):
            with self._lock:
                self._stats.active_tasks += 1
            future = executor.submit(self._execute, fn, key, item)
            with self._lock:
                self._in_flight.add(future)
            future.add_done_callback(self._forget)
            futures[future] = index

        results: List[Optional[WorkResult]] = [None] * len(items)
        try:
            for future in as_completed(futures):
                result = future.result()
                results[futures[future]] = result
                if abort_on and isinstance(result.error, abort_on):
                    raise result.error
        except BaseException:
            cancelled = sum(1 for f in futures if f.cancel())
            with self._lock:
                self._stats.cancelled_tasks += cancelled
                self._stats.active_tasks -= cancelled
            if cancelled:
                logger.info("Cancelled %d pending unit(s)", cancelled)
            raise

        return results

    def _run_sequential(
        self,
        fn: Callable[[Any], Any],
        items: Sequence[Tuple[str, Any]],
        abort_on: Tuple[Type[BaseException], ...],
    ) -> List[WorkResult]:
        results = []
        for key, item in items:
            with self._lock:
                self._stats.active_tasks += 1
            result = self._execute(fn, key, item)
            results.append(result)
            if abort_on and isinstance(result.error, abort_on):
                with self._lock:
                    self._stats.cancelled_tasks += len(items) - len(results)
                raise result.error
        return results

    def _execute(self, fn: Callable[[Any], Any], key: str, item: Any) -> WorkResult:
        """Run one unit, capturing its outcome."""
        started = time.monotonic()
        try:
            value = fn(item)
            result = WorkResult(key=key, status=WorkStatus.COMPLETED, value=value)
        except Exception as e:
            result = WorkResult(key=key, status=WorkStatus.FAILED, error=e)

        result.duration_ms = (time.monotonic() - started) * 1000
        self._on_complete(result)
        return result

    def _on_complete(self, result: WorkResult) -> None:
        with self._lock:
            self._stats.active_tasks -= 1
            if result.success:
                self._stats.completed_tasks += 1
                self._stats.total_duration_ms += result.duration_ms or 0
            else:
                self._stats.failed_tasks += 1

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._shutdown:
                raise EngineShutdownError("Worker pool is shut down")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._config.workers,
                    thread_name_prefix=self._name,
                )
            return self._executor

    def stats(self) -> PoolStats:
        """Get pool statistics."""
        with self._lock:
            return PoolStats(
                active_tasks=self._stats.active_tasks,
                completed_tasks=self._stats.completed_tasks,
                failed_tasks=self._stats.failed_tasks,
                cancelled_tasks=self._stats.cancelled_tasks,
                total_duration_ms=self._stats.total_duration_ms
            )

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Shutdown the pool. Idempotent.

        Args:
            wait: Wait for in-flight units to finish
            timeout: Max seconds to wait (None waits forever)
        """
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            executor, self._executor = self._executor, None
            in_flight = set(self._in_flight)

        if executor is None:
            return
        if wait and in_flight:
            _, still_running = wait_futures(in_flight, timeout=timeout)
            if still_running:
                logger.warning(
                    "%d unit(s) still running after %ss", len(still_running), timeout
                )
        executor.shutdown(wait=False, cancel_futures=True)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._in_flight.discard(future)
