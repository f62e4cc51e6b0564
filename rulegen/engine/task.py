"""
Task — Units of work and their outcomes

Defines the values that flow through a run:
- DirectoryTask: one directory and its source files
- WorkResult: outcome of running a phase function on one task
- GeneratedRule / DirectoryResult: what a resolved directory produces
- DirectoryFailure: a directory that could not be processed

Design principles:
- Tasks are immutable after creation
- Results are serializable (to_dict) for reports and emitters
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import xxhash

from ..core.diagnostics import Diagnostic
from ..core.labels import Label
from ..core.model import ResolvedDependency


@dataclass(frozen=True)
class DirectoryTask:
    """
    One directory to generate rules for.

    `path` is workspace-relative with no leading slash ("" is the root).
    `sources` are readable paths of the directory's source files.
    """
    path: str
    sources: Tuple[Path, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "path", self.path.strip("/"))
        object.__setattr__(self, "sources", tuple(sorted(Path(s) for s in self.sources)))

    @property
    def label(self) -> Label:
        return Label.for_directory(self.path)

    def fingerprint(self) -> str:
        """
        Content hash of the directory's sources (xxhash).

        Returns "" if a source cannot be read, so the directory is never
        considered fresh.
        """
        digest = xxhash.xxh64()
        try:
            for source in self.sources:
                digest.update(source.name.encode())
                digest.update(b"\0")
                digest.update(source.read_bytes())
                digest.update(b"\0")
        except OSError:
            return ""
        return digest.hexdigest()


class WorkStatus(Enum):
    """Outcome of one unit of work."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class WorkResult:
    """Outcome of running a phase function on one task."""
    key: str
    status: WorkStatus
    value: Any = None
    error: Optional[BaseException] = None
    duration_ms: Optional[float] = None

    @property
    def success(self) -> bool:
        return self.status == WorkStatus.COMPLETED

    @property
    def failed(self) -> bool:
        return self.status == WorkStatus.FAILED


@dataclass
class GeneratedRule:
    """A rule produced for a directory."""
    name: str
    kind: str
    attrs: Dict[str, List[str]] = field(default_factory=dict)
    empty: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "attrs": {k: list(v) for k, v in sorted(self.attrs.items())},
            "empty": self.empty,
        }


@dataclass
class DirectoryResult:
    """Everything a successfully resolved directory produced."""
    path: str
    rules: List[GeneratedRule] = field(default_factory=list)
    dependencies: List[ResolvedDependency] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    reused: bool = False        # Parse skipped, sources unchanged

    @property
    def label(self) -> Label:
        return Label.for_directory(self.path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "label": str(self.label),
            "rules": [rule.to_dict() for rule in self.rules],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "reused": self.reused,
        }


@dataclass
class DirectoryFailure:
    """A directory that failed; other directories were unaffected."""
    path: str
    phase: str
    error: str
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "phase": self.phase,
            "error": self.error,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def generate_run_id() -> str:
    """Generate a run ID using xxhash."""
    timestamp = datetime.now(timezone.utc).isoformat()
    return xxhash.xxh64(timestamp.encode()).hexdigest()[:12]
