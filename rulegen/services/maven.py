"""
MavenIndexResolver — External coordinates from a package index

Implements the CoordinateResolver collaborator over the `packages` index
of a maven_install.json lock file (rules_jvm_external format):

    {
      "packages": {
        "com.google.guava:guava": ["com.google.common.base", ...],
        ...
      }
    }

A type resolves through its Java package: com.google.common.base.Strings
-> com.google.common.base -> com.google.guava:guava
-> @maven//:com_google_guava_guava.

No version selection happens here; the lock file has already done it.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import orjson

from ..core.diagnostics import CollaboratorFatal
from ..core.labels import Label
from .base import CoordinateResolver

logger = logging.getLogger(__name__)


class MavenIndexResolver(CoordinateResolver):
    """Resolves types to Maven artifact labels by Java package."""

    def __init__(
        self,
        packages: Mapping[str, Sequence[str]],
        repository: str = "maven",
    ):
        """
        Args:
            packages: coordinate -> Java packages it provides
            repository: External repository name used in labels
        """
        self.repository = repository
        self._providers: Dict[str, List[str]] = {}
        for coordinate, java_packages in packages.items():
            for java_package in java_packages:
                self._providers.setdefault(java_package, []).append(coordinate)
        for coordinates in self._providers.values():
            coordinates.sort()

        self._lock = threading.Lock()
        self._closed = False
        self._warned: set = set()

    @classmethod
    def from_file(cls, file_path: Path, repository: str = "maven") -> 'MavenIndexResolver':
        """
        Load the index from a maven_install.json style file.

        Raises:
            CollaboratorFatal: file missing or unreadable
        """
        file_path = Path(file_path)
        try:
            data = orjson.loads(file_path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            raise CollaboratorFatal(f"Cannot read Maven index {file_path}: {e}") from e

        packages = data.get("packages", {}) if isinstance(data, dict) else {}
        logger.debug("Loaded %d artifact(s) from %s", len(packages), file_path)
        return cls(packages, repository=repository)

    def resolve(self, type_name: str) -> Optional[Label]:
        with self._lock:
            if self._closed:
                raise CollaboratorFatal("Maven index resolver is closed")

        java_package = package_of(type_name)
        coordinates = self._providers.get(java_package)
        if not coordinates:
            return None

        if len(coordinates) > 1:
            self._warn_split_package(java_package, coordinates)
        return Label.for_coordinate(coordinates[0], repository=self.repository)

    def packages(self) -> List[str]:
        """Every Java package the index knows, sorted."""
        return sorted(self._providers)

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def _warn_split_package(self, java_package: str, coordinates: List[str]) -> None:
        with self._lock:
            if java_package in self._warned:
                return
            self._warned.add(java_package)
        logger.warning(
            "Package %s is provided by %d artifacts (%s); using %s",
            java_package, len(coordinates), ", ".join(coordinates), coordinates[0],
        )


def package_of(type_name: str) -> str:
    """
    Java package of a fully-qualified type.

    Drops the trailing class segments (those starting with an upper-case
    letter): a.b.Outer.Inner -> a.b. A name with no class segment is
    already a package.
    """
    segments = type_name.split(".")
    for index, segment in enumerate(segments):
        if segment[:1].isupper():
            return ".".join(segments[:index])
    return type_name
