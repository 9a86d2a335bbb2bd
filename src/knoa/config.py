"""
knoa configuration management.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from knoa_core.errors import ConfigurationError
from knoa_core.runtime.core import CoreConfig

LOG_LEVELS = ("debug", "info", "warn", "error", "fatal")

CONFIG_DIR = ".knoa"
CONFIG_FILE = "config.yaml"


def _positive_int(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"{name} must be a positive integer", context={name: value}, cause=exc
        ) from exc
    if number < 1:
        raise ConfigurationError(f"{name} must be a positive integer", context={name: value})
    return number


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class HistoryConfig:
    """Event history configuration."""

    enabled: bool = False
    limit: int = 100


@dataclass
class StorageConfig:
    """File storage configuration."""

    root: str = ".knoa/data"  # Relative to the project or absolute
    tasks_dir: str = "tasks"
    sessions_dir: str = "sessions"
    feedback_dir: str = "feedback"


@dataclass
class KnoaConfig:
    """
    Complete knoa configuration.

    Loaded from .knoa/config.yaml, then overridden by KNOA_* environment
    variables.
    """

    log_level: str = "info"  # debug, info, warn, error, fatal
    history: HistoryConfig = field(default_factory=HistoryConfig)

    # Emit a warning once per legacy event alias
    deprecation_warnings: bool = True

    recovery_attempts: int = 3
    error_recent_limit: int = 50

    # Built-in error patterns and alert thresholds
    default_error_hooks: bool = True

    storage: StorageConfig = field(default_factory=StorageConfig)

    project_path: Path = field(default_factory=Path.cwd)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError for out-of-range knobs."""
        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"Unknown log level: {self.log_level}",
                context={"log_level": self.log_level, "allowed": list(LOG_LEVELS)},
            )
        _positive_int("history.limit", self.history.limit)
        _positive_int("recovery_attempts", self.recovery_attempts)
        _positive_int("error_recent_limit", self.error_recent_limit)

    @property
    def data_root(self) -> Path:
        """Absolute storage root."""
        root = Path(self.storage.root).expanduser()
        return root if root.is_absolute() else self.project_path / root

    @classmethod
    def from_file(cls, path: Path, project_path: Path | None = None) -> "KnoaConfig":
        """Load configuration from YAML file."""
        if not path.exists():
            return cls(project_path=project_path or Path.cwd())

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"Invalid configuration file: {path}", context={"path": str(path)}, cause=exc
            ) from exc

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration must be a mapping: {path}", context={"path": str(path)}
            )
        return cls.from_dict(data.get("knoa", data), project_path=project_path)

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], project_path: Path | None = None
    ) -> "KnoaConfig":
        """Create config from dictionary."""
        kwargs: dict[str, Any] = {"project_path": project_path or Path.cwd()}

        if "log_level" in data:
            kwargs["log_level"] = str(data["log_level"]).lower()

        if "history" in data:
            h = data["history"] or {}
            kwargs["history"] = HistoryConfig(
                enabled=_as_bool(h.get("enabled", False)),
                limit=_positive_int("history.limit", h.get("limit", 100)),
            )

        if "deprecation_warnings" in data:
            kwargs["deprecation_warnings"] = _as_bool(data["deprecation_warnings"])

        if "recovery_attempts" in data:
            kwargs["recovery_attempts"] = _positive_int(
                "recovery_attempts", data["recovery_attempts"]
            )

        if "error_recent_limit" in data:
            kwargs["error_recent_limit"] = _positive_int(
                "error_recent_limit", data["error_recent_limit"]
            )

        if "default_error_hooks" in data:
            kwargs["default_error_hooks"] = _as_bool(data["default_error_hooks"])

        if "storage" in data:
            s = data["storage"] or {}
            kwargs["storage"] = StorageConfig(
                root=s.get("root", ".knoa/data"),
                tasks_dir=s.get("tasks_dir", "tasks"),
                sessions_dir=s.get("sessions_dir", "sessions"),
                feedback_dir=s.get("feedback_dir", "feedback"),
            )

        return cls(**kwargs)

    def apply_env(self, environ: dict[str, str] | None = None) -> "KnoaConfig":
        """Apply KNOA_* environment overrides in place. Returns self."""
        env = os.environ if environ is None else environ

        if "KNOA_LOG_LEVEL" in env:
            self.log_level = env["KNOA_LOG_LEVEL"].strip().lower()
        if "KNOA_EVENT_HISTORY" in env:
            self.history.enabled = _as_bool(env["KNOA_EVENT_HISTORY"])
        if "KNOA_EVENT_HISTORY_LIMIT" in env:
            self.history.limit = _positive_int(
                "KNOA_EVENT_HISTORY_LIMIT", env["KNOA_EVENT_HISTORY_LIMIT"]
            )
        if "KNOA_DATA_DIR" in env:
            self.storage.root = env["KNOA_DATA_DIR"]

        self.validate()
        return self

    def to_core_config(self) -> CoreConfig:
        """Knobs for building the Core."""
        return CoreConfig(
            history_enabled=self.history.enabled,
            history_limit=self.history.limit,
            deprecation_warnings=self.deprecation_warnings,
            recovery_attempts=self.recovery_attempts,
            error_recent_limit=self.error_recent_limit,
            register_default_hooks=self.default_error_hooks,
            debug=self.log_level == "debug",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "knoa": {
                "log_level": self.log_level,
                "history": {
                    "enabled": self.history.enabled,
                    "limit": self.history.limit,
                },
                "deprecation_warnings": self.deprecation_warnings,
                "recovery_attempts": self.recovery_attempts,
                "error_recent_limit": self.error_recent_limit,
                "default_error_hooks": self.default_error_hooks,
                "storage": {
                    "root": self.storage.root,
                    "tasks_dir": self.storage.tasks_dir,
                    "sessions_dir": self.storage.sessions_dir,
                    "feedback_dir": self.storage.feedback_dir,
                },
            }
        }

    def save(self, path: Path) -> None:
        """Save configuration to YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)


# Loaded configs, keyed by project path
_configs: dict[Path, KnoaConfig] = {}


def get_config(project_path: Path | None = None) -> KnoaConfig:
    """
    Get knoa configuration.

    Loads from .knoa/config.yaml in the project directory and applies
    environment overrides. Falls back to defaults if not found.
    """
    if project_path is None:
        project_path = Path.cwd()
    project_path = project_path.resolve()

    if project_path not in _configs:
        config_path = project_path / CONFIG_DIR / CONFIG_FILE
        _configs[project_path] = KnoaConfig.from_file(
            config_path, project_path=project_path
        ).apply_env()

    return _configs[project_path]


def reset_config() -> None:
    """Forget loaded configs (used by tests and the CLI)."""
    _configs.clear()
