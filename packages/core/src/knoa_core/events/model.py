"""
Core event domain models.

Pure types for in-process event delivery. No side effects on import.

Architecture Rules:
- No framework imports (FastAPI, Flask)
- No logging initialization
- No file I/O on import
- Only stdlib + typing allowed
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, Mapping

from knoa_core.runtime.ids import utc_now

# Name of the global channel that receives every standardized envelope
GLOBAL_CHANNEL = "event"
ERROR_CHANNEL = "error"
CATCH_ALL = "*"

RESERVED_COMPONENTS = frozenset(
    {"cache", "log", "error", "state", "task", "session", "feedback", "cli", "plugin"}
)

# Keys owned by the envelope itself (payload keys with these names are overridden)
ENVELOPE_KEYS = ("timestamp", "component", "action", "traceId", "requestId")

_SEGMENT = r"[a-z][a-z0-9_]*"
_EVENT_NAME_RE = re.compile(rf"^{_SEGMENT}:{_SEGMENT}$")
_SEGMENT_RE = re.compile(rf"^{_SEGMENT}$")


def make_event_name(component: str, action: str) -> str:
    """Build a ``component:action`` event name."""
    return f"{component}:{action}"


def split_event_name(name: str) -> tuple[str, str]:
    """Split ``component:action`` (the action may itself contain colons)."""
    component, _, action = name.partition(":")
    return component, action


def is_valid_segment(segment: str) -> bool:
    """Whether a component or action matches ``[a-z][a-z0-9_]*``."""
    return bool(_SEGMENT_RE.match(segment))


def is_valid_event_name(name: str) -> bool:
    """
    Whether an event name follows the ``component:action`` grammar.

    The global ``event`` and ``error`` channels are always valid.
    """
    if name in (GLOBAL_CHANNEL, ERROR_CHANNEL):
        return True
    return bool(_EVENT_NAME_RE.match(name))


class StandardEventEnvelope(Mapping[str, Any]):
    """
    Immutable payload carried by every standardized event.

    Behaves as a read-only mapping so handlers can treat it like a dict
    (``envelope["traceId"]``, ``dict(envelope)``, ``envelope == {...}``)
    but cannot modify what other handlers will see.
    """

    __slots__ = ("_data", "_typed")

    def __init__(self, data: Mapping[str, Any], *, typed: bool = False) -> None:
        self._data = dict(data)
        # Set on global-channel copies, where ``type`` is the event name
        self._typed = typed

    @classmethod
    def build(
        cls,
        component: str,
        action: str,
        payload: Mapping[str, Any] | None,
        *,
        timestamp: str,
        trace_id: str,
        request_id: str,
    ) -> "StandardEventEnvelope":
        """Compose an envelope: payload first, envelope fields on top."""
        data = dict(payload or {})
        data.update(
            timestamp=timestamp,
            component=component,
            action=action,
            traceId=trace_id,
            requestId=request_id,
        )
        return cls(data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"StandardEventEnvelope({self._data!r})"

    @property
    def component(self) -> str:
        return self._data["component"]

    @property
    def action(self) -> str:
        return self._data["action"]

    @property
    def timestamp(self) -> str:
        return self._data["timestamp"]

    @property
    def trace_id(self) -> str:
        return self._data["traceId"]

    @property
    def request_id(self) -> str:
        return self._data["requestId"]

    @property
    def event_name(self) -> str:
        """The ``component:action`` name of this envelope."""
        return make_event_name(self.component, self.action)

    @property
    def payload(self) -> dict[str, Any]:
        """The caller-supplied fields (everything except envelope keys)."""
        return {
            key: value
            for key, value in self._data.items()
            if key not in ENVELOPE_KEYS and not (self._typed and key == "type")
        }

    def with_type(self) -> "StandardEventEnvelope":
        """
        Copy for the global channel, with ``type`` prepended.

        A payload key named ``type`` is shadowed by the event name here; it
        is still delivered unchanged on the specific channel.
        """
        data = {"type": self.event_name}
        data.update((key, value) for key, value in self._data.items() if key != "type")
        return StandardEventEnvelope(data, typed=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary."""
        return dict(self._data)


@dataclass(frozen=True, slots=True)
class EventHistoryEntry:
    """One recorded emission (kept only when history is enabled)."""

    event: str  # Name the emission was requested under
    data: Any
    timestamp: datetime = field(default_factory=utc_now)
    is_async: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = self.data.to_dict() if isinstance(self.data, StandardEventEnvelope) else self.data
        return {
            "event": self.event,
            "data": data,
            "timestamp": self.timestamp.isoformat(),
            "async": self.is_async,
        }
