"""
EngineConfig — Configuration for a generation run

Loads worker and collaborator-call settings from environment variables.
Layout settings (which kind a directory gets) default to the conventional
Maven layout and are normally overlaid from rulegen.config.

Environment variables:
- RULEGEN_PARALLEL_ENABLED: Enable/disable the worker pool (default: true)
- RULEGEN_WORKERS: Worker threads per phase (default: 4)
- RULEGEN_CALL_TIMEOUT: Seconds per collaborator call attempt (default: 30)
- RULEGEN_CALL_RETRIES: Extra attempts after a timeout (default: 2)
- RULEGEN_SHUTDOWN_TIMEOUT: Seconds to wait for workers on shutdown (default: 10)
"""

import os
from dataclasses import dataclass, field
from typing import Tuple

from ..core.classifier import is_test
from ..core.kinds import RuleKind
from ..core.resolver import DEFAULT_JDK_PREFIXES

# Matched against "/<path>/", so each marker spans whole path segments
DEFAULT_TEST_MARKERS: Tuple[str, ...] = ("/src/test/", "/src/it/", "/javatests/")


@dataclass
class EngineConfig:
    """
    Configuration for the engine.

    Loaded from environment variables with sensible defaults.
    """

    # Feature toggle
    enabled: bool = True                   # False runs every phase sequentially

    # Worker pool
    workers: int = 4

    # Collaborator calls
    call_timeout: float = 30.0             # Seconds per attempt
    call_retries: int = 2                  # Extra attempts after a timeout
    shutdown_timeout: float = 10.0

    # Layout
    library_kind: str = RuleKind.JAVA_LIBRARY.value
    test_kind: str = RuleKind.JAVA_TEST.value
    test_markers: Tuple[str, ...] = DEFAULT_TEST_MARKERS

    # Resolution
    jdk_prefixes: Tuple[str, ...] = field(default=DEFAULT_JDK_PREFIXES)

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Load configuration from environment variables."""
        return cls(
            enabled=_get_bool_env("RULEGEN_PARALLEL_ENABLED", True),
            workers=_get_int_env("RULEGEN_WORKERS", 4),
            call_timeout=_get_float_env("RULEGEN_CALL_TIMEOUT", 30.0),
            call_retries=_get_int_env("RULEGEN_CALL_RETRIES", 2),
            shutdown_timeout=_get_float_env("RULEGEN_SHUTDOWN_TIMEOUT", 10.0),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if self.workers < 1:
            raise ValueError("RULEGEN_WORKERS must be >= 1")
        if self.call_timeout <= 0:
            raise ValueError("RULEGEN_CALL_TIMEOUT must be > 0")
        if self.call_retries < 0:
            raise ValueError("RULEGEN_CALL_RETRIES must be >= 0")
        if self.shutdown_timeout < 0:
            raise ValueError("RULEGEN_SHUTDOWN_TIMEOUT must be >= 0")
        if not is_test(self.test_kind):
            raise ValueError(f"test_kind '{self.test_kind}' is not a test kind")
        if is_test(self.library_kind):
            raise ValueError(f"library_kind '{self.library_kind}' is a test kind")

    def is_test_directory(self, path: str) -> bool:
        """True if a workspace-relative directory holds test sources."""
        segments = f"/{path.strip('/')}/"
        return any(marker in segments for marker in self.test_markers)

    def kind_for(self, path: str) -> str:
        """Rule kind generated for a directory."""
        return self.test_kind if self.is_test_directory(path) else self.library_kind

    def to_dict(self) -> dict:
        """Serialize for display/logging."""
        return {
            "enabled": self.enabled,
            "workers": self.workers,
            "call_timeout": self.call_timeout,
            "call_retries": self.call_retries,
            "shutdown_timeout": self.shutdown_timeout,
            "library_kind": self.library_kind,
            "test_kind": self.test_kind,
            "test_markers": list(self.test_markers),
            "jdk_prefixes": list(self.jdk_prefixes),
        }


def _get_bool_env(key: str, default: bool) -> bool:
    """Get boolean from environment variable."""
    value = os.environ.get(key, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get integer from environment variable."""
    value = os.environ.get(key, "")
    if value:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def _get_float_env(key: str, default: float) -> float:
    """Get float from environment variable."""
    value = os.environ.get(key, "")
    if value:
        try:
            return float(value)
        except ValueError:
            pass
    return default
