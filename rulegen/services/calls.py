"""
CallPolicy — Timeouts and bounded retries for collaborator calls

Every parser or coordinate-resolver call from a worker goes through
CallPolicy.invoke(). The call runs on a dedicated thread pool so the
worker can stop waiting after `timeout` seconds.

Outcomes:
- Timeout (ours, the builtin TimeoutError, or CollaboratorTimeout):
  retried up to `retries` more times, then CollaboratorTimeout.
- CollaboratorFatal: propagated immediately, never retried.
- Anything else (ParseError included): propagated immediately.

A call that timed out keeps running on its pool thread until it returns;
its result is discarded.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Optional

from ..core.diagnostics import CollaboratorTimeout, EngineShutdownError

logger = logging.getLogger(__name__)

_TRANSIENT = (CollaboratorTimeout, FuturesTimeoutError, TimeoutError)

CallObserver = Callable[[str, float, bool], None]


class CallPolicy:
    """
    Runs collaborator calls with a timeout and a fixed retry budget.

    Thread-safe; shared by all workers of an engine.
    """

    def __init__(
        self,
        timeout: Optional[float] = 30.0,
        retries: int = 2,
        max_workers: int = 8,
        observer: Optional[CallObserver] = None,
    ):
        """
        Args:
            timeout: Seconds per attempt. None or <= 0 waits forever.
            retries: Extra attempts after the first timeout.
            max_workers: Threads available for in-flight calls.
            observer: Called with (operation, duration_ms, succeeded).
        """
        if retries < 0:
            raise ValueError("retries must be >= 0")

        self.timeout = timeout if timeout and timeout > 0 else None
        self.retries = retries
        self._observer = observer
        self._executor: Optional[ThreadPoolExecutor] = None
        self._max_workers = max_workers
        self._lock = threading.Lock()
        self._closed = False

    def invoke(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Call fn(*args, **kwargs) under the policy.

        Args:
            operation: Short description for logs and errors
                (e.g. "parse Foo.java", "resolve com.x.Bar")
        """
        attempts = self.retries + 1

        for attempt in range(1, attempts + 1):
            started = time.monotonic()
            try:
                result = self._call_once(fn, args, kwargs)
            except _TRANSIENT:
                self._observe(operation, started, False)
                logger.warning(
                    "%s timed out (attempt %d/%d)", operation, attempt, attempts
                )
                continue
            except Exception:
                self._observe(operation, started, False)
                raise

            self._observe(operation, started, True)
            if attempt > 1:
                logger.info("%s succeeded on attempt %d", operation, attempt)
            return result

        raise CollaboratorTimeout(operation, attempts=attempts, timeout=self.timeout)

    def close(self, wait: bool = False) -> None:
        """Stop the call pool. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            executor, self._executor = self._executor, None

        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=True)

    def _call_once(self, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        if self.timeout is None:
            return fn(*args, **kwargs)

        future = self._get_executor().submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._closed:
                raise EngineShutdownError("Call policy is closed")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="rulegen-call-",
                )
            return self._executor

    def _observe(self, operation: str, started: float, succeeded: bool) -> None:
        if self._observer is not None:
            duration_ms = (time.monotonic() - started) * 1000
            self._observer(operation, duration_ms, succeeded)
