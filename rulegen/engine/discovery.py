"""
Discovery — Find the directories that hold Java sources

Walks a workspace with glob patterns, drops excluded paths, and groups
the remaining source files by directory.

Usage:
    tasks = discover(Path("."))
    report = engine.generate(tasks)
"""

import logging
from collections import defaultdict
from fnmatch import fnmatch
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .task import DirectoryTask

logger = logging.getLogger(__name__)

SOURCE_PATTERNS: List[str] = ["**/*.java"]

DEFAULT_EXCLUDES: List[str] = [
    # Version control and tooling state
    ".git",
    ".rulegen",
    ".idea",

    # Build outputs
    "bazel-*",
    "build",
    "target",
    "out",
]


def discover(
    root: Path,
    patterns: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
) -> List[DirectoryTask]:
    """
    Group source files under `root` by directory.

    Args:
        root: Workspace root; task paths are relative to it
        patterns: Glob patterns of source files (default: **/*.java)
        exclude: Directory-name patterns; files below a matching
            directory are skipped

    Returns:
        One DirectoryTask per directory with sources, ordered by path
    """
    root = Path(root)
    patterns = list(patterns) if patterns is not None else SOURCE_PATTERNS
    exclude = list(exclude) if exclude is not None else DEFAULT_EXCLUDES

    grouped: Dict[str, List[Path]] = defaultdict(list)
    for pattern in patterns:
        for file_path in root.glob(pattern):
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(root)
            if any(fnmatch(part, ex) for part in relative.parent.parts for ex in exclude):
                continue
            directory = relative.parent.as_posix()
            grouped["" if directory == "." else directory].append(file_path)

    tasks = [
        DirectoryTask(path=path, sources=tuple(files))
        for path, files in sorted(grouped.items())
    ]
    logger.debug("Discovered %d director(ies) under %s", len(tasks), root)
    return tasks
