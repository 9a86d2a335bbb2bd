"""Shared fixtures for knoa product tests."""

import logging

import pytest

from knoa.config import reset_config
from knoa.logging_setup import LOGGER_NAMES


@pytest.fixture(autouse=True)
def isolated_logging_and_config(monkeypatch):
    """Undo CLI logging setup and config caching between tests."""
    for name in ("KNOA_LOG_LEVEL", "KNOA_EVENT_HISTORY", "KNOA_EVENT_HISTORY_LIMIT", "KNOA_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            if handler.get_name() == "knoa":
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
