"""
Logging setup for the knoa CLI.

Modules log through ``logging.getLogger(__name__)``; this module only
decides where records go. Console output uses Rich so log lines share the
CLI's styling.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from knoa_core.errors import ConfigurationError

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}

LOGGER_NAMES = ("knoa", "knoa_core")


def to_logging_level(level: str) -> int:
    """Map a ``log_level`` knob to a stdlib level."""
    try:
        return LEVELS[level.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown log level: {level}",
            context={"log_level": level, "allowed": list(LEVELS)},
        ) from None


def configure_logging(level: str = "info", console: Console | None = None) -> RichHandler:
    """
    Route knoa and knoa_core records to a Rich console handler.

    Calling again replaces the previously installed handler.

    Args:
        level: One of debug, info, warn, error, fatal.
        console: Console to write to (stderr by default).

    Returns:
        The installed handler.
    """
    numeric = to_logging_level(level)
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=numeric <= logging.DEBUG,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setLevel(numeric)
    handler.set_name("knoa")

    for name in LOGGER_NAMES:
        target = logging.getLogger(name)
        for existing in list(target.handlers):
            if existing.get_name() == "knoa":
                target.removeHandler(existing)
        target.addHandler(handler)
        target.setLevel(numeric)
        target.propagate = False

    return handler
