"""
PackageCache — Per-directory package metadata with a type index

Stores computed facts (PackageEntry) keyed by directory path, and a
secondary index from declared type (and Java package) to the directories
declaring it. Answers "which directory defines type T?".

Concurrency:
- One coarse re-entrant lock guards entries and both indexes.
- Index maintenance happens inside the same critical section as the
  entry swap, so readers never see a half-updated index.
- Callers must not invoke collaborators while holding the lock; the
  cache never calls out.

Persistence:
    cache.save(Path(".rulegen/cache.json"))
    cache = PackageCache.load(Path(".rulegen/cache.json"))
"""

import logging
import threading
from collections import defaultdict
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterator, Optional, Set, Tuple

import orjson

from .diagnostics import CacheFormatError
from .model import PackageEntry

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1


class PackageCache:
    """Thread-safe store of PackageEntry values."""

    def __init__(self):
        self._lock = threading.RLock()
        self._entries: Dict[str, PackageEntry] = {}
        self._type_index: Dict[str, Set[str]] = defaultdict(set)
        self._package_index: Dict[str, Set[str]] = defaultdict(set)
        self._generation = 0

    # =========================================================================
    # Core Operations
    # =========================================================================

    def get(self, path: str) -> Optional[PackageEntry]:
        """Entry for a directory, or None if never visited."""
        with self._lock:
            return self._entries.get(path)

    def upsert(self, entry: PackageEntry) -> PackageEntry:
        """
        Insert or replace the entry for entry.path.

        Replaces, never merges. Returns the stored entry, stamped with a
        new generation.
        """
        with self._lock:
            self._generation += 1
            stored = replace(entry, generation=self._generation)

            previous = self._entries.get(entry.path)
            if previous is not None:
                self._unindex(previous)

            self._entries[entry.path] = stored
            self._index(stored)
            return stored

    def remove(self, path: str) -> bool:
        """
        Drop a directory's entry. Only called when the directory is gone.

        Returns True if an entry was removed.
        """
        with self._lock:
            previous = self._entries.pop(path, None)
            if previous is None:
                return False
            self._unindex(previous)
            return True

    def entries(self) -> Tuple[PackageEntry, ...]:
        """Snapshot of all entries, ordered by path."""
        with self._lock:
            return tuple(self._entries[p] for p in sorted(self._entries))

    def find_type(self, type_name: str) -> Tuple[str, ...]:
        """Directories declaring a fully-qualified type, ordered by path."""
        with self._lock:
            return tuple(sorted(self._type_index.get(type_name, ())))

    def find_package(self, package_name: str) -> Tuple[str, ...]:
        """Directories whose sources live in a Java package."""
        with self._lock:
            return tuple(sorted(self._package_index.get(package_name, ())))

    def is_fresh(self, path: str, fingerprint: str) -> bool:
        """True if the cached entry was computed from identical sources."""
        with self._lock:
            entry = self._entries.get(path)
            return bool(entry and fingerprint and entry.fingerprint == fingerprint)

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def __iter__(self) -> Iterator[PackageEntry]:
        return iter(self.entries())

    # =========================================================================
    # Index maintenance (lock held by caller)
    # =========================================================================

    def _index(self, entry: PackageEntry) -> None:
        for type_name in entry.declared_types:
            self._type_index[type_name].add(entry.path)
        if entry.package_name:
            self._package_index[entry.package_name].add(entry.path)

    def _unindex(self, entry: PackageEntry) -> None:
        for type_name in entry.declared_types:
            paths = self._type_index.get(type_name)
            if paths is not None:
                paths.discard(entry.path)
                if not paths:
                    del self._type_index[type_name]
        if entry.package_name:
            paths = self._package_index.get(entry.package_name)
            if paths is not None:
                paths.discard(entry.path)
                if not paths:
                    del self._package_index[entry.package_name]

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "version": CACHE_FORMAT_VERSION,
                "generation": self._generation,
                "entries": {
                    path: self._entries[path].to_dict()
                    for path in sorted(self._entries)
                },
            }

    @classmethod
    def from_dict(cls, data: dict) -> 'PackageCache':
        version = data.get("version")
        if version != CACHE_FORMAT_VERSION:
            raise CacheFormatError(
                f"Unsupported cache format version {version!r} "
                f"(expected {CACHE_FORMAT_VERSION})"
            )

        cache = cls()
        try:
            for path, raw in data.get("entries", {}).items():
                entry = PackageEntry.from_dict(raw)
                if entry.path != path:
                    raise CacheFormatError(f"Entry key {path!r} does not match {entry.path!r}")
                cache._entries[path] = entry
                cache._index(entry)
        except (KeyError, TypeError, ValueError) as e:
            raise CacheFormatError(f"Malformed cache entry: {e}") from e

        highest = max((e.generation for e in cache._entries.values()), default=0)
        cache._generation = max(data.get("generation", 0), highest)
        return cache

    def save(self, file_path: Path) -> None:
        """Write the cache to disk (orjson, sorted keys)."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        payload = orjson.dumps(self.to_dict(), option=orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2)
        tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        tmp_path.write_bytes(payload)
        tmp_path.replace(file_path)
        logger.debug("Saved %d package entries to %s", len(self), file_path)

    @classmethod
    def load(cls, file_path: Path) -> 'PackageCache':
        """Read a cache written by save(). Raises CacheFormatError."""
        file_path = Path(file_path)
        try:
            data = orjson.loads(file_path.read_bytes())
        except orjson.JSONDecodeError as e:
            raise CacheFormatError(f"{file_path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CacheFormatError(f"{file_path} does not hold a cache object")

        cache = cls.from_dict(data)
        logger.debug("Loaded %d package entries from %s", len(cache), file_path)
        return cache

    @classmethod
    def load_or_new(cls, file_path: Path) -> 'PackageCache':
        """Load if the file exists, otherwise start empty."""
        if Path(file_path).exists():
            return cls.load(file_path)
        return cls()
