"""
Lifecycle — Engine state machine

    IDLE -> PARSING -> RESOLVING -> EMITTING -> IDLE
    any  -> SHUTDOWN (terminal, entered once)

PARSING and RESOLVING may also return straight to IDLE when a run is
aborted. Every transition is checked against TRANSITION_TABLE.
"""

import logging
import threading
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..core.diagnostics import EngineShutdownError, InvalidTransitionError

logger = logging.getLogger(__name__)


class EngineState(Enum):
    IDLE = "idle"
    PARSING = "parsing"
    RESOLVING = "resolving"
    EMITTING = "emitting"
    SHUTDOWN = "shutdown"


# Maps (from_state, to_state) -> (is_allowed, reason)
TRANSITION_TABLE: Dict[Tuple[EngineState, EngineState], Tuple[bool, Optional[str]]] = {
    # From IDLE
    (EngineState.IDLE, EngineState.PARSING): (True, "Run started"),
    (EngineState.IDLE, EngineState.SHUTDOWN): (True, "Engine shut down"),

    # From PARSING
    (EngineState.PARSING, EngineState.RESOLVING): (True, "All directories parsed"),
    (EngineState.PARSING, EngineState.IDLE): (True, "Run aborted while parsing"),
    (EngineState.PARSING, EngineState.SHUTDOWN): (True, "Engine shut down while parsing"),

    # From RESOLVING
    (EngineState.RESOLVING, EngineState.EMITTING): (True, "All directories resolved"),
    (EngineState.RESOLVING, EngineState.IDLE): (True, "Run aborted while resolving"),
    (EngineState.RESOLVING, EngineState.SHUTDOWN): (True, "Engine shut down while resolving"),

    # From EMITTING
    (EngineState.EMITTING, EngineState.IDLE): (True, "Run finished"),
    (EngineState.EMITTING, EngineState.SHUTDOWN): (True, "Engine shut down while emitting"),
}


class Lifecycle:
    """
    Current engine state plus its transition history.

    Thread-safe. The history is kept for diagnostics and tests.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state = EngineState.IDLE
        self._history: List[Tuple[EngineState, EngineState]] = []

    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._state

    @property
    def is_shutdown(self) -> bool:
        return self.state == EngineState.SHUTDOWN

    def history(self) -> List[Tuple[EngineState, EngineState]]:
        with self._lock:
            return list(self._history)

    @staticmethod
    def can_transition(frm: EngineState, to: EngineState) -> bool:
        return TRANSITION_TABLE.get((frm, to), (False, None))[0]

    def transition(self, to: EngineState) -> EngineState:
        """
        Move to `to`. Returns the previous state.

        Raises:
            EngineShutdownError: already shut down
            InvalidTransitionError: transition not in the table
        """
        with self._lock:
            frm = self._state
            if frm == EngineState.SHUTDOWN:
                raise EngineShutdownError("Engine is shut down")
            allowed, reason = TRANSITION_TABLE.get((frm, to), (False, None))
            if not allowed:
                raise InvalidTransitionError(frm.value, to.value)
            self._state = to
            self._history.append((frm, to))

        logger.debug("%s -> %s: %s", frm.value, to.value, reason)
        return frm
