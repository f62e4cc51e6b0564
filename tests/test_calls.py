"""
Tests for CallPolicy — Timeouts and bounded retries for collaborator calls.
"""

import threading
import time

import pytest

from rulegen.core.diagnostics import (
    CollaboratorFatal, CollaboratorTimeout, EngineShutdownError, ParseError,
)
from rulegen.services.calls import CallPolicy


class Flaky:
    """Raises the scripted errors in order, then returns `value`."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    def __call__(self, *args):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


@pytest.fixture
def policy():
    policy = CallPolicy(timeout=5.0, retries=2, max_workers=2)
    yield policy
    policy.close()


# =============================================================================
# Retries
# =============================================================================

class TestRetries:
    """Transient failures are retried within the budget."""

    def test_success_first_time(self, policy):
        fn = Flaky([])
        assert policy.invoke("resolve a.B", fn, "a.B") == "ok"
        assert fn.calls == 1

    def test_retry_then_success(self, policy):
        fn = Flaky([TimeoutError(), CollaboratorTimeout("resolve a.B")])
        assert policy.invoke("resolve a.B", fn) == "ok"
        assert fn.calls == 3

    def test_exhausted_budget_raises_collaborator_timeout(self, policy):
        fn = Flaky([TimeoutError()] * 5)
        with pytest.raises(CollaboratorTimeout) as exc_info:
            policy.invoke("resolve a.B", fn)
        assert fn.calls == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.operation == "resolve a.B"

    def test_fatal_is_not_retried(self, policy):
        fn = Flaky([CollaboratorFatal("index gone")])
        with pytest.raises(CollaboratorFatal):
            policy.invoke("resolve a.B", fn)
        assert fn.calls == 1

    def test_parse_error_is_not_retried(self, policy):
        fn = Flaky([ParseError("A.java", "bad")])
        with pytest.raises(ParseError):
            policy.invoke("parse A.java", fn)
        assert fn.calls == 1

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            CallPolicy(retries=-1)


# =============================================================================
# Timeouts
# =============================================================================

class TestTimeouts:
    """Slow calls stop being waited for."""

    def test_slow_call_times_out(self):
        release = threading.Event()
        policy = CallPolicy(timeout=0.05, retries=0, max_workers=1)
        try:
            with pytest.raises(CollaboratorTimeout) as exc_info:
                policy.invoke("parse Slow.java", release.wait, 5)
            assert exc_info.value.timeout == 0.05
        finally:
            release.set()
            policy.close(wait=True)

    def test_no_timeout_runs_inline(self):
        policy = CallPolicy(timeout=None, retries=0)
        assert policy.invoke("parse A.java", threading.current_thread) is threading.current_thread()
        policy.close()


# =============================================================================
# Observer and Close
# =============================================================================

class TestObserverAndClose:
    """Every attempt is observed; close() is idempotent."""

    def test_observer_sees_every_attempt(self):
        seen = []
        policy = CallPolicy(
            timeout=5.0, retries=1,
            observer=lambda op, ms, ok: seen.append((op, ok)),
        )
        policy.invoke("resolve a.B", Flaky([TimeoutError()]))
        policy.close()
        assert seen == [("resolve a.B", False), ("resolve a.B", True)]

    def test_close_twice(self, policy):
        policy.invoke("resolve a.B", Flaky([]))
        policy.close()
        policy.close()

    def test_invoke_after_close_raises(self, policy):
        policy.close()
        with pytest.raises(EngineShutdownError):
            policy.invoke("resolve a.B", time.monotonic)
