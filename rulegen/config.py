"""
Configuration — Centralized settings management

Config hierarchy (highest to lowest priority):
  1. Project config (.rulegen/config.yaml)
  2. User config (~/.rulegen/config.yaml)
  3. Environment variables
  4. Defaults

Worker and call settings (RULEGEN_WORKERS, RULEGEN_CALL_TIMEOUT, ...) are
environment-only; see rulegen.engine.config.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .core.classifier import is_test
from .core.kinds import KindRegistry, RuleKind
from .core.resolver import DEFAULT_JDK_PREFIXES
from .engine.config import DEFAULT_TEST_MARKERS, EngineConfig
from .logconfig import LOG_LEVELS

logger = logging.getLogger(__name__)

# Environment variable -> (section, setting)
ENV_OVERRIDES = {
    "RULEGEN_LIBRARY_KIND": ("layout", "library_kind"),
    "RULEGEN_TEST_KIND": ("layout", "test_kind"),
    "RULEGEN_CACHE_PATH": ("cache", "path"),
    "RULEGEN_MAVEN_INDEX": ("resolve", "maven_index"),
}


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ResolveConfig:
    """Reference resolution settings."""
    jdk_prefixes: List[str] = field(default_factory=lambda: list(DEFAULT_JDK_PREFIXES))
    maven_index: str = "maven_install.json"
    repository: str = "maven"

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        if not self.repository:
            return "resolve.repository must not be empty"
        if any(not prefix for prefix in self.jdk_prefixes):
            return "resolve.jdk_prefixes must not contain empty prefixes"
        return None


@dataclass
class LayoutConfig:
    """Which rule kind a directory gets."""
    library_kind: str = RuleKind.JAVA_LIBRARY.value
    test_kind: str = RuleKind.JAVA_TEST.value
    test_markers: List[str] = field(default_factory=lambda: list(DEFAULT_TEST_MARKERS))

    def validate(self, registry: Optional[KindRegistry] = None) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        registry = registry or KindRegistry()
        for setting, kind in (("library_kind", self.library_kind), ("test_kind", self.test_kind)):
            if kind not in registry:
                message = f"Unknown rule kind '{kind}' for layout.{setting}"
                suggestion = registry.suggest(kind)
                if suggestion:
                    message += f". Did you mean '{suggestion}'?"
                return message

        if not is_test(self.test_kind):
            return f"layout.test_kind '{self.test_kind}' is not a test kind"
        if is_test(self.library_kind):
            return f"layout.library_kind '{self.library_kind}' is a test kind"
        if not self.test_markers:
            return "layout.test_markers must not be empty"
        return None


@dataclass
class CacheConfig:
    """Package cache persistence."""
    enabled: bool = True
    path: str = ".rulegen/cache.json"

    def validate(self) -> Optional[str]:
        if self.enabled and not self.path:
            return "cache.path must be set when the cache is enabled"
        return None


@dataclass
class LogConfig:
    """Log levels for the engine and for the parser."""
    level: str = "INFO"
    parser_level: str = "WARNING"

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        for setting, level in (("level", self.level), ("parser_level", self.parser_level)):
            if level.upper() not in LOG_LEVELS:
                return f"Unknown log.{setting} '{level}'. Valid: {', '.join(LOG_LEVELS)}"
        return None


@dataclass
class Config:
    """Application configuration."""
    resolve: ResolveConfig = field(default_factory=ResolveConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self, registry: Optional[KindRegistry] = None) -> Optional[str]:
        """First validation error across all sections, or None."""
        return (
            self.resolve.validate()
            or self.layout.validate(registry)
            or self.cache.validate()
            or self.log.validate()
        )

    def engine_config(self, base: Optional[EngineConfig] = None) -> EngineConfig:
        """EngineConfig with layout and resolution settings applied."""
        base = base or EngineConfig.from_env()
        return replace(
            base,
            library_kind=self.layout.library_kind,
            test_kind=self.layout.test_kind,
            test_markers=tuple(self.layout.test_markers),
            jdk_prefixes=tuple(self.resolve.jdk_prefixes),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "resolve": {
                "jdk_prefixes": list(self.resolve.jdk_prefixes),
                "maven_index": self.resolve.maven_index,
                "repository": self.resolve.repository,
            },
            "layout": {
                "library_kind": self.layout.library_kind,
                "test_kind": self.layout.test_kind,
                "test_markers": list(self.layout.test_markers),
            },
            "cache": {
                "enabled": self.cache.enabled,
                "path": self.cache.path,
            },
            "log": {
                "level": self.log.level,
                "parser_level": self.log.parser_level,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create from dictionary."""
        resolve_data = data.get("resolve", {})
        layout_data = data.get("layout", {})
        cache_data = data.get("cache", {})
        log_data = data.get("log", {})

        return cls(
            resolve=ResolveConfig(
                jdk_prefixes=list(resolve_data.get("jdk_prefixes", DEFAULT_JDK_PREFIXES)),
                maven_index=resolve_data.get("maven_index", "maven_install.json"),
                repository=resolve_data.get("repository", "maven"),
            ),
            layout=LayoutConfig(
                library_kind=layout_data.get("library_kind", RuleKind.JAVA_LIBRARY.value),
                test_kind=layout_data.get("test_kind", RuleKind.JAVA_TEST.value),
                test_markers=list(layout_data.get("test_markers", DEFAULT_TEST_MARKERS)),
            ),
            cache=CacheConfig(
                enabled=bool(cache_data.get("enabled", True)),
                path=cache_data.get("path", ".rulegen/cache.json"),
            ),
            log=LogConfig(
                level=str(log_data.get("level", "INFO")).upper(),
                parser_level=str(log_data.get("parser_level", "WARNING")).upper(),
            ),
        )


class ConfigManager:
    """
    Manages configuration loading and persistence.

    Hierarchy:
      1. Project config (.rulegen/config.yaml)
      2. User config (~/.rulegen/config.yaml)
      3. Environment variables
      4. Defaults
    """

    USER_CONFIG_DIR = Path.home() / ".rulegen"
    USER_CONFIG_FILE = "config.yaml"
    PROJECT_CONFIG_DIR = ".rulegen"
    PROJECT_CONFIG_FILE = "config.yaml"

    def __init__(
        self,
        project_dir: Optional[Path] = None,
        user_dir: Optional[Path] = None,
        registry: Optional[KindRegistry] = None,
    ):
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self.user_dir = Path(user_dir) if user_dir else self.USER_CONFIG_DIR
        self.registry = registry or KindRegistry()
        self._config: Optional[Config] = None

    @property
    def project_config_path(self) -> Path:
        return self.project_dir / self.PROJECT_CONFIG_DIR / self.PROJECT_CONFIG_FILE

    @property
    def user_config_path(self) -> Path:
        return self.user_dir / self.USER_CONFIG_FILE

    def load(self) -> Config:
        """Load configuration from all sources."""
        if self._config is not None:
            return self._config

        # Layer 1: Environment (lowest priority above defaults)
        config_data: Dict[str, Any] = {}
        for env_key, (section, setting) in ENV_OVERRIDES.items():
            if os.environ.get(env_key):
                config_data.setdefault(section, {})[setting] = os.environ[env_key]

        # Layer 2: User config
        config_data = self._merge(config_data, self._read(self.user_config_path))

        # Layer 3: Project config (highest priority)
        config_data = self._merge(config_data, self._read(self.project_config_path))

        self._config = Config.from_dict(config_data)
        return self._config

    def validate(self) -> Optional[str]:
        """Validate the loaded configuration. Returns error message or None."""
        return self.load().validate(self.registry)

    def save_project(self, config: Config):
        """Save configuration to project config file."""
        self._write(self.project_config_path, config)
        self._config = config

    def save_user(self, config: Config):
        """Save configuration to user config file."""
        self._write(self.user_config_path, config)
        self._config = config

    def set(self, key: str, value: str, scope: str = "project") -> Optional[str]:
        """
        Set a configuration value.

        Args:
            key: Dot-separated key (e.g., "layout.test_kind")
            value: Value to set. Lists are comma-separated.
            scope: "project" or "user"

        Returns:
            Error message or None if successful
        """
        config = self.load()

        parts = key.split(".")
        if len(parts) != 2:
            return f"Invalid key format: {key}. Use 'section.setting' (e.g., 'layout.test_kind')"

        section, setting = parts
        data = config.to_dict()
        if section not in data:
            return f"Unknown section: {section}. Valid: {', '.join(data)}"
        if setting not in data[section]:
            return f"Unknown {section} setting: {setting}. Valid: {', '.join(data[section])}"

        current = data[section][setting]
        if isinstance(current, list):
            data[section][setting] = _split_list(value)
        elif isinstance(current, bool):
            data[section][setting] = value.lower() in ('true', '1', 'yes', 'on')
        else:
            data[section][setting] = value

        updated = Config.from_dict(data)
        error = updated.validate(self.registry)
        if error:
            return error

        if scope == "project":
            self.save_project(updated)
        else:
            self.save_user(updated)

        return None

    def get(self, key: str) -> Optional[str]:
        """Get a configuration value as a string."""
        parts = key.split(".")
        if len(parts) != 2:
            return None

        section, setting = parts
        value = self.load().to_dict().get(section, {}).get(setting)
        if value is None:
            return None
        if isinstance(value, list):
            return ",".join(value)
        if isinstance(value, bool):
            return str(value).lower()
        return str(value)

    def _read(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Ignoring unreadable config %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring config %s: not a mapping", path)
            return {}
        return data

    def _write(self, path: Path, config: Config) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False)

    def _merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dicts, override wins."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge(result[key], value)
            else:
                result[key] = value
        return result

    def display(self) -> str:
        """Format config for display."""
        config = self.load()
        lines = ["Configuration:"]
        for section, settings in config.to_dict().items():
            lines.extend(["", f"{section.capitalize()}:"])
            for setting, value in settings.items():
                if isinstance(value, list):
                    value = ", ".join(value)
                lines.append(f"  {setting}: {value}")

        lines.extend([
            "",
            "Config files:",
            f"  User: {self.user_config_path}",
            f"  Project: {self.project_config_path}",
        ])
        return "\n".join(lines)


# Convenience function
def get_config(project_dir: Optional[Path] = None) -> Config:
    """Load configuration for a project."""
    return ConfigManager(project_dir).load()
