"""
Tests for knoa configuration and logging setup.

Tests cover:
- KnoaConfig defaults and validation
- YAML loading and saving
- KNOA_* environment overrides
- CoreConfig translation
- Rich logging handler installation
"""

import io
import logging
from pathlib import Path

import pytest
import yaml
from rich.console import Console

from knoa.config import (
    CONFIG_DIR,
    CONFIG_FILE,
    HistoryConfig,
    KnoaConfig,
    get_config,
    reset_config,
)
from knoa.logging_setup import configure_logging, to_logging_level
from knoa_core.errors import ConfigurationError

# =============================================================================
# DEFAULTS AND VALIDATION
# =============================================================================


class TestKnoaConfigDefaults:
    """Tests for default values."""

    def test_defaults(self, tmp_path):
        config = KnoaConfig(project_path=tmp_path)

        assert config.log_level == "info"
        assert config.history.enabled is False
        assert config.history.limit == 100
        assert config.deprecation_warnings is True
        assert config.recovery_attempts == 3
        assert config.default_error_hooks is True
        assert config.data_root == tmp_path / ".knoa" / "data"

    def test_absolute_storage_root(self, tmp_path):
        config = KnoaConfig(project_path=tmp_path)
        config.storage.root = str(tmp_path / "elsewhere")

        assert config.data_root == tmp_path / "elsewhere"

    def test_unknown_log_level(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unknown log level"):
            KnoaConfig(log_level="verbose", project_path=tmp_path)

    def test_non_positive_limits(self, tmp_path):
        with pytest.raises(ConfigurationError):
            KnoaConfig(history=HistoryConfig(limit=0), project_path=tmp_path)
        with pytest.raises(ConfigurationError):
            KnoaConfig(recovery_attempts=0, project_path=tmp_path)


# =============================================================================
# FILE LOADING
# =============================================================================


class TestKnoaConfigFile:
    """Tests for YAML round trips."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = KnoaConfig.from_file(tmp_path / "missing.yaml", project_path=tmp_path)

        assert config == KnoaConfig(project_path=tmp_path)

    def test_load_nested_under_knoa_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.dump(
                {
                    "knoa": {
                        "log_level": "DEBUG",
                        "history": {"enabled": "yes", "limit": 10},
                        "recovery_attempts": 5,
                        "default_error_hooks": False,
                        "storage": {"root": "data", "tasks_dir": "work"},
                    }
                }
            )
        )

        config = KnoaConfig.from_file(path, project_path=tmp_path)

        assert config.log_level == "debug"
        assert config.history.enabled is True
        assert config.history.limit == 10
        assert config.recovery_attempts == 5
        assert config.default_error_hooks is False
        assert config.storage.tasks_dir == "work"
        assert config.storage.sessions_dir == "sessions"
        assert config.data_root == tmp_path / "data"

    def test_load_flat_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("deprecation_warnings: false\n")

        config = KnoaConfig.from_file(path, project_path=tmp_path)

        assert config.deprecation_warnings is False

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("knoa: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid configuration file"):
            KnoaConfig.from_file(path, project_path=tmp_path)

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="must be a mapping"):
            KnoaConfig.from_file(path, project_path=tmp_path)

    def test_bad_integer(self, tmp_path):
        with pytest.raises(ConfigurationError, match="recovery_attempts"):
            KnoaConfig.from_dict({"recovery_attempts": "many"}, project_path=tmp_path)

    def test_save_and_reload(self, tmp_path):
        config = KnoaConfig(log_level="warn", project_path=tmp_path)
        config.history.enabled = True
        path = tmp_path / CONFIG_DIR / CONFIG_FILE

        config.save(path)
        loaded = KnoaConfig.from_file(path, project_path=tmp_path)

        assert loaded == config
        assert yaml.safe_load(path.read_text())["knoa"]["log_level"] == "warn"


# =============================================================================
# ENVIRONMENT AND CACHING
# =============================================================================


class TestEnvironmentOverrides:
    """Tests for KNOA_* variables."""

    def test_apply_env(self, tmp_path):
        config = KnoaConfig(project_path=tmp_path).apply_env(
            {
                "KNOA_LOG_LEVEL": "Error",
                "KNOA_EVENT_HISTORY": "1",
                "KNOA_EVENT_HISTORY_LIMIT": "25",
                "KNOA_DATA_DIR": "store",
            }
        )

        assert config.log_level == "error"
        assert config.history.enabled is True
        assert config.history.limit == 25
        assert config.data_root == tmp_path / "store"

    def test_invalid_env_value(self, tmp_path):
        with pytest.raises(ConfigurationError):
            KnoaConfig(project_path=tmp_path).apply_env({"KNOA_LOG_LEVEL": "loud"})

    def test_get_config_caches_per_project(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KNOA_EVENT_HISTORY", "true")

        first = get_config(tmp_path)
        second = get_config(tmp_path)

        assert first is second
        assert first.history.enabled is True
        assert first.project_path == tmp_path.resolve()

        reset_config()
        assert get_config(tmp_path) is not first

    def test_get_config_reads_project_file(self, tmp_path):
        config_path = tmp_path / CONFIG_DIR / CONFIG_FILE
        config_path.parent.mkdir()
        config_path.write_text("knoa:\n  recovery_attempts: 7\n")

        assert get_config(tmp_path).recovery_attempts == 7


class TestCoreConfigTranslation:
    """Tests for to_core_config."""

    def test_to_core_config(self, tmp_path):
        config = KnoaConfig(log_level="debug", project_path=tmp_path)
        config.history.enabled = True

        core_config = config.to_core_config()

        assert core_config.history_enabled is True
        assert core_config.history_limit == 100
        assert core_config.register_default_hooks is True
        assert core_config.debug is True

    def test_non_debug_level(self, tmp_path):
        assert KnoaConfig(project_path=tmp_path).to_core_config().debug is False


# =============================================================================
# LOGGING
# =============================================================================


class TestLoggingSetup:
    """Tests for configure_logging."""

    def test_level_mapping(self):
        assert to_logging_level("warn") == logging.WARNING
        assert to_logging_level("FATAL") == logging.CRITICAL
        with pytest.raises(ConfigurationError):
            to_logging_level("loud")

    def test_handler_installed_once(self):
        console = Console(file=io.StringIO(), width=200)

        configure_logging("debug", console=console)
        handler = configure_logging("info", console=console)

        for name in ("knoa", "knoa_core"):
            logger = logging.getLogger(name)
            installed = [h for h in logger.handlers if h.get_name() == "knoa"]
            assert installed == [handler]
            assert logger.level == logging.INFO
            assert logger.propagate is False

    def test_records_reach_console(self):
        stream = io.StringIO()
        configure_logging("warn", console=Console(file=stream, width=200))

        logging.getLogger("knoa_core.events.catalog").warning("Event 'task:created' is deprecated")
        logging.getLogger("knoa.storage").info("hidden at warn level")

        output = stream.getvalue()
        assert "is deprecated" in output
        assert "hidden at warn level" not in output
