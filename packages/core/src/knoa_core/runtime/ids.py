"""
Clock and identifier helpers.

The event bus, error handler and operation contexts take these as injected
callables so tests can substitute deterministic versions.

Architecture Rules:
- Only stdlib + typing allowed
- No side effects on import
"""

import secrets
import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]
IdFactory = Callable[[], str]

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def isoformat(moment: datetime | None = None) -> str:
    """Format a datetime as an ISO-8601 instant with a trailing Z."""
    moment = moment or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (
        moment.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def _prefixed_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{_random_suffix()}"


def generate_trace_id() -> str:
    """Generate a trace id (``trace-<epoch ms>-<random>``)."""
    return _prefixed_id("trace")


def generate_request_id() -> str:
    """Generate a request id (``req-<epoch ms>-<random>``)."""
    return _prefixed_id("req")


def sequential_ids(prefix: str, start: int = 1) -> IdFactory:
    """
    Build a deterministic id factory (``<prefix>-1``, ``<prefix>-2``, ...).

    Handy for tests that assert on correlation ids.
    """
    counter = start - 1

    def factory() -> str:
        nonlocal counter
        counter += 1
        return f"{prefix}-{counter}"

    return factory


def fixed_clock(moment: datetime) -> Clock:
    """Build a clock that always returns ``moment``."""

    def clock() -> datetime:
        return moment

    return clock
