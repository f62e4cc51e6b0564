"""
Collaborators — Narrow interfaces the engine consumes

Each capability is a separate interface, composed into the engine at
construction time:
- Parser: source file -> package, declared types, imports
- CoordinateResolver: fully-qualified type -> external label
- Emitter: receives resolved rules and load statements

Implementations signal failures with the rulegen error taxonomy:
- ParseError: this file only
- CollaboratorTimeout / TimeoutError: transient, retried
- CollaboratorFatal: the collaborator is gone, abort the run
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence, TYPE_CHECKING

from ..core.labels import Label
from ..core.model import ParseResult

if TYPE_CHECKING:
    from ..core.loads import LoadStatement
    from ..engine.task import DirectoryResult


class Parser(ABC):
    """Extracts package, type and import information from a source file."""

    @abstractmethod
    def parse(self, source_file: Path) -> ParseResult:
        """
        Parse one source file.

        Raises:
            ParseError: The file cannot be parsed (skip it)
            CollaboratorFatal: The parser is unavailable (abort the run)
        """
        pass

    def close(self) -> None:
        """Release long-lived resources. Called once per run."""


class CoordinateResolver(ABC):
    """Maps a fully-qualified type name to an external artifact label."""

    @abstractmethod
    def resolve(self, type_name: str) -> Optional[Label]:
        """Label for the artifact providing `type_name`, or None."""
        pass

    def close(self) -> None:
        """Release resources. Called once per run."""


class Emitter(ABC):
    """Receives the outcome of a run, directory by directory."""

    @abstractmethod
    def emit(self, result: 'DirectoryResult') -> None:
        """Called once per successfully resolved directory, in path order."""
        pass

    def finish(self, loads: Sequence['LoadStatement']) -> None:
        """Called after the last emit() with the loads the run needs."""
