"""
knoa Core Events - in-process event delivery.

Architecture Rules:
- No side effects on import
- No framework-specific imports
- No logging initialization

Usage:
    from knoa_core.events import EventBus

    bus = EventBus()
    bus.subscribe("task:*", lambda payload, name: print(name, payload["id"]))
    bus.emit_standardized("task", "task_created", {"id": "T001"})
"""

from knoa_core.events.bus import (
    EventBus,
    EventHandler,
    EventSubscription,
    SubscriptionKind,
    compile_pattern,
)
from knoa_core.events.catalog import (
    ERROR_EVENTS,
    EVENT_NAMES,
    INTEGRATION_EVENTS,
    CompatibilityShim,
    EventDefinition,
    EventNamePair,
    EventNameRegistry,
)
from knoa_core.events.model import (
    CATCH_ALL,
    ERROR_CHANNEL,
    GLOBAL_CHANNEL,
    RESERVED_COMPONENTS,
    EventHistoryEntry,
    StandardEventEnvelope,
    is_valid_event_name,
    make_event_name,
    split_event_name,
)

__all__ = [
    # Bus
    "EventBus",
    "EventHandler",
    "EventSubscription",
    "SubscriptionKind",
    "compile_pattern",
    # Model
    "StandardEventEnvelope",
    "EventHistoryEntry",
    "GLOBAL_CHANNEL",
    "ERROR_CHANNEL",
    "CATCH_ALL",
    "RESERVED_COMPONENTS",
    "make_event_name",
    "split_event_name",
    "is_valid_event_name",
    # Catalogue
    "EVENT_NAMES",
    "ERROR_EVENTS",
    "INTEGRATION_EVENTS",
    "EventNamePair",
    "EventDefinition",
    "EventNameRegistry",
    "CompatibilityShim",
]
