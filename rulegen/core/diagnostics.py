"""
Diagnostics — Error taxonomy and per-run findings

Two families live here:
- Exceptions (RulegenError tree): raised where control must leave the
  current unit of work.
- Diagnostics: recorded, never raised. They accumulate per directory and
  are returned with the run report.

Only CollaboratorFatal is allowed to interrupt a run.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


# =============================================================================
# Exceptions
# =============================================================================

class RulegenError(Exception):
    """Base class for all rulegen errors."""


class ConfigError(RulegenError):
    """Invalid configuration value."""


class RegistryError(RulegenError):
    """Rule-kind or load table is internally inconsistent."""


class KindNotRegisteredError(RulegenError):
    """A rule kind was required but is not registered."""

    def __init__(self, kind: str, suggestion: Optional[str] = None):
        self.kind = kind
        self.suggestion = suggestion
        message = f"Rule kind '{kind}' is not registered"
        if suggestion:
            message += f" (did you mean '{suggestion}'?)"
        super().__init__(message)


class CacheFormatError(RulegenError):
    """Persisted package cache cannot be read."""


class EngineShutdownError(RulegenError):
    """Operation attempted after the engine was shut down."""


class InvalidTransitionError(RulegenError):
    """Lifecycle transition not permitted by the transition table."""

    def __init__(self, frm: str, to: str):
        self.frm = frm
        self.to = to
        super().__init__(f"Invalid lifecycle transition: {frm} -> {to}")


class ParseError(RulegenError):
    """A single source file could not be parsed. Scoped to that file."""

    def __init__(self, source_file: str, reason: str = ""):
        self.source_file = source_file
        self.reason = reason
        message = f"Failed to parse {source_file}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class CollaboratorError(RulegenError):
    """Base for failures reported by (or about) an external collaborator."""


class CollaboratorTimeout(CollaboratorError):
    """Collaborator call exceeded its timeout. Retryable."""

    def __init__(self, operation: str, attempts: int = 1, timeout: Optional[float] = None):
        self.operation = operation
        self.attempts = attempts
        self.timeout = timeout
        message = f"{operation} timed out after {attempts} attempt(s)"
        if timeout is not None:
            message += f" ({timeout:g}s each)"
        super().__init__(message)


class CollaboratorFatal(CollaboratorError):
    """
    Collaborator is unavailable. Aborts the whole run.

    When raised out of Engine.generate(), `report` holds the partial
    RunReport with status ABORTED.
    """

    def __init__(self, message: str, report: Any = None):
        super().__init__(message)
        self.report = report


# =============================================================================
# Diagnostics
# =============================================================================

class DiagnosticKind(Enum):
    """What went wrong (or was worth noting) for one reference or file."""
    PARSE_ERROR = "parse_error"
    UNRESOLVED_IMPORT = "unresolved_import"
    AMBIGUOUS_RESOLUTION = "ambiguous_resolution"
    DEGRADED_RESOLUTION = "degraded_resolution"
    DROPPED_EXPORT = "dropped_export"
    COLLABORATOR_TIMEOUT = "collaborator_timeout"


class Severity(Enum):
    WARNING = "warning"
    ERROR = "error"


_DEFAULT_SEVERITY = {
    DiagnosticKind.PARSE_ERROR: Severity.ERROR,
    DiagnosticKind.COLLABORATOR_TIMEOUT: Severity.ERROR,
}


@dataclass(frozen=True)
class Diagnostic:
    """A recorded, non-fatal finding."""
    kind: DiagnosticKind
    path: str       # Directory the finding belongs to
    subject: str    # Type name or source file
    message: str
    severity: Severity = Severity.WARNING

    @classmethod
    def of(cls, kind: DiagnosticKind, path: str, subject: str, message: str) -> 'Diagnostic':
        """Build a diagnostic with the default severity for its kind."""
        return cls(
            kind=kind,
            path=path,
            subject=subject,
            message=message,
            severity=_DEFAULT_SEVERITY.get(kind, Severity.WARNING),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "kind": self.kind.value,
            "path": self.path,
            "subject": self.subject,
            "message": self.message,
            "severity": self.severity.value,
        }

    def __str__(self) -> str:
        where = self.path or "."
        return f"[{self.severity.value}] {self.kind.value} {where}: {self.message}"
