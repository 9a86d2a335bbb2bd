"""
Event name catalogue and legacy-name compatibility.

Provides:
- A declarative table of modern ``component:action`` names and their
  legacy aliases
- EventNameRegistry: alias resolution and event definitions
- CompatibilityShim: re-emits legacy aliases after a modern emission

Architecture Rules:
- No framework-specific imports
- No logging initialization
- Registry is built explicitly (no module-level singleton)
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

from knoa_core.errors.taxonomy import ConfigurationError
from knoa_core.events.model import StandardEventEnvelope, split_event_name

if TYPE_CHECKING:
    from knoa_core.events.bus import EventBus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EventNamePair:
    """A modern event name and the legacy name it replaces."""

    modern: str
    legacy: str
    description: str = ""


# category -> pairs; the single source for default aliases
EVENT_NAMES: Mapping[str, tuple[EventNamePair, ...]] = MappingProxyType(
    {
        "task": (
            EventNamePair("task:task_created", "task:created", "A task was created"),
            EventNamePair("task:task_updated", "task:updated", "A task was updated"),
            EventNamePair(
                "task:task_progress_updated", "task:progress", "Task progress changed"
            ),
            EventNamePair(
                "task:git_commit_added", "task:commit", "A commit was linked to a task"
            ),
            EventNamePair(
                "task:tasks_initialized", "task:initialized", "The task list was replaced"
            ),
        ),
        "session": (
            EventNamePair(
                "session:session_created", "session:started", "A session was started"
            ),
            EventNamePair(
                "session:session_updated", "session:updated", "A session was updated"
            ),
            EventNamePair("session:session_ended", "session:ended", "A session ended"),
            EventNamePair(
                "session:task_added", "session:task:added", "A task joined a session"
            ),
            EventNamePair(
                "session:task_removed", "session:task:removed", "A task left a session"
            ),
            EventNamePair(
                "session:git_commit_added",
                "session:commit:added",
                "A commit was linked to a session",
            ),
        ),
        "feedback": (
            EventNamePair(
                "feedback:feedback_created", "feedback:created", "Feedback was recorded"
            ),
            EventNamePair(
                "feedback:test_results_collected",
                "feedback:test:collected",
                "Test results were collected",
            ),
            EventNamePair(
                "feedback:feedback_prioritized",
                "feedback:prioritized",
                "Feedback issues were prioritized",
            ),
            EventNamePair(
                "feedback:status_updated",
                "feedback:status:updated",
                "Feedback status changed",
            ),
            EventNamePair(
                "feedback:integrated_with_session",
                "feedback:integrated:session",
                "Feedback was attached to a session",
            ),
            EventNamePair(
                "feedback:integrated_with_task",
                "feedback:integrated:task",
                "Feedback was attached to a task",
            ),
        ),
        "state": (
            EventNamePair("state:state_changed", "state:changed", "Workflow state was set"),
            EventNamePair(
                "state:state_transition", "state:transition", "Workflow state transitioned"
            ),
        ),
        "system": (
            EventNamePair("system:initialized", "system:init", "The application started"),
            EventNamePair("system:shutdown", "system:exit", "The application stopped"),
        ),
        "storage": (
            EventNamePair("storage:file_read", "storage:file:read", "A file was read"),
            EventNamePair("storage:file_write", "storage:file:write", "A file was written"),
            EventNamePair(
                "storage:file_delete", "storage:file:delete", "A file was deleted"
            ),
        ),
        "integration": (
            EventNamePair(
                "integration:manager_initialized",
                "integration:manager:initialized",
                "The integration manager started",
            ),
            EventNamePair(
                "integration:workflow_initialized",
                "workflow:initialized",
                "A workflow was initialized",
            ),
        ),
        "log": (
            EventNamePair("log:message_created", "log:entry", "A log entry was written"),
            EventNamePair("log:alert_created", "log:alert", "A log alert was raised"),
        ),
        "cache": (
            EventNamePair("cache:item_set", "cache:set", "A cache entry was stored"),
            EventNamePair(
                "cache:system_initialized", "cache:initialized", "The cache started"
            ),
        ),
    }
)

# Events without a legacy alias
ERROR_EVENTS: tuple[tuple[str, str], ...] = (
    ("error:occurred", "An error was handled"),
    ("error:alert_triggered", "An alert threshold fired"),
    ("error:pattern_detected", "An error pattern matched"),
    ("error:recovery_started", "A recovery strategy started"),
    ("error:recovery_succeeded", "A recovery strategy returned a value"),
    ("error:recovery_failed", "A recovery strategy raised"),
    ("error:recovery_strategy_registered", "A recovery strategy was registered"),
    ("error:recovery_strategy_removed", "A recovery strategy was removed"),
)

INTEGRATION_EVENTS: tuple[tuple[str, str], ...] = (
    ("integration:session_started", "A workflow session was started"),
    ("integration:session_ended", "A workflow session was ended"),
    ("integration:task_created", "A task was created in the workflow"),
    ("integration:task_status_updated", "A workflow task changed progress"),
    ("integration:feedback_collected", "Feedback was collected for a task"),
    ("integration:feedback_resolved", "A feedback loop was closed"),
)


@dataclass
class EventDefinition:
    """
    Documentation record for one event name.

    Schema and examples are descriptive only; they are never enforced at
    runtime.
    """

    name: str
    description: str = ""
    category: str = ""
    schema: dict[str, str] = field(default_factory=dict)
    examples: list[str] = field(default_factory=list)
    aliases: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.category:
            self.category = split_event_name(self.name)[0]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "schema": dict(self.schema),
            "examples": list(self.examples),
            "aliases": list(self.aliases),
        }


class EventNameRegistry:
    """
    Maps modern event names to their legacy aliases.

    Built once at startup, then frozen; a frozen registry rejects
    further registration.

    Example:
        registry = EventNameRegistry.default()
        registry.resolve_aliases("task:task_created")  # ["task:created"]
        registry.is_deprecated("task:created")  # True
    """

    def __init__(self) -> None:
        self._aliases: dict[str, list[str]] = {}
        self._modern_for: dict[str, str] = {}
        self._definitions: dict[str, EventDefinition] = {}
        self._frozen = False

    @classmethod
    def default(cls) -> "EventNameRegistry":
        """Build a registry from the built-in catalogue (not frozen)."""
        registry = cls()
        for category, pairs in EVENT_NAMES.items():
            for pair in pairs:
                registry.register_event(
                    pair.modern,
                    EventDefinition(
                        name=pair.modern, description=pair.description, category=category
                    ),
                )
                registry.register_alias(pair.legacy, pair.modern)
        for name, description in (*ERROR_EVENTS, *INTEGRATION_EVENTS):
            registry.register_event(
                name, EventDefinition(name=name, description=description)
            )
        return registry

    def _check_mutable(self) -> None:
        if self._frozen:
            raise ConfigurationError(
                "Event name registry is frozen",
                code="ERR_REGISTRY_FROZEN",
            )

    # =========================================================================
    # ALIASES
    # =========================================================================

    def register_alias(self, legacy_name: str, modern_name: str) -> None:
        """Declare ``legacy_name`` as a deprecated alias of ``modern_name``."""
        self._check_mutable()
        if legacy_name == modern_name:
            raise ConfigurationError(
                f"Event '{modern_name}' cannot alias itself",
                context={"legacy": legacy_name, "modern": modern_name},
            )
        existing = self._modern_for.get(legacy_name)
        if existing is not None and existing != modern_name:
            raise ConfigurationError(
                f"Alias '{legacy_name}' already maps to '{existing}'",
                context={"legacy": legacy_name, "modern": modern_name},
            )
        aliases = self._aliases.setdefault(modern_name, [])
        if legacy_name not in aliases:
            aliases.append(legacy_name)
        self._modern_for[legacy_name] = modern_name

        definition = self._definitions.get(modern_name)
        if definition is not None and legacy_name not in definition.aliases:
            definition.aliases.append(legacy_name)

    def resolve_aliases(self, modern_name: str) -> list[str]:
        """Legacy names to re-emit for ``modern_name`` (registration order)."""
        return list(self._aliases.get(modern_name, ()))

    def is_deprecated(self, name: str) -> bool:
        """Whether ``name`` is a legacy alias."""
        return name in self._modern_for

    def modern_name_for(self, legacy_name: str) -> str | None:
        """The modern name a legacy alias maps to."""
        return self._modern_for.get(legacy_name)

    # =========================================================================
    # DEFINITIONS
    # =========================================================================

    def register_event(self, name: str, definition: EventDefinition | None = None) -> None:
        """Add (or replace) the documentation record for ``name``."""
        self._check_mutable()
        definition = definition or EventDefinition(name=name)
        for alias in self._aliases.get(name, ()):
            if alias not in definition.aliases:
                definition.aliases.append(alias)
        self._definitions[name] = definition

    def get_event_definition(self, name: str) -> EventDefinition | None:
        """Look up a definition by modern or legacy name."""
        definition = self._definitions.get(name)
        if definition is None and name in self._modern_for:
            definition = self._definitions.get(self._modern_for[name])
        return definition

    def get_events_by_category(self, category: str) -> list[EventDefinition]:
        """Definitions in ``category``, in registration order."""
        return [d for d in self._definitions.values() if d.category == category]

    def list_categories(self) -> list[str]:
        """Categories with at least one definition."""
        return sorted({d.category for d in self._definitions.values()})

    def list_events(self) -> list[str]:
        """All modern names with a definition."""
        return list(self._definitions.keys())

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def freeze(self) -> "EventNameRegistry":
        """Reject further mutation. Returns self for chaining."""
        self._frozen = True
        return self

    @property
    def is_frozen(self) -> bool:
        return self._frozen


class CompatibilityShim:
    """
    Re-emits legacy aliases after a modern emission.

    Aliases receive the same envelope as the modern name. A deprecation
    warning is logged at most once per alias for the lifetime of the shim.
    """

    def __init__(
        self,
        bus: "EventBus",
        registry: EventNameRegistry,
        *,
        warn_deprecations: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self._bus = bus
        self._registry = registry
        self._warn_deprecations = warn_deprecations
        self._logger = logger or globals()["logger"]
        self._warned: set[str] = set()

    @property
    def registry(self) -> EventNameRegistry:
        return self._registry

    def _warn_once(self, alias: str, modern_name: str) -> None:
        if not self._warn_deprecations or alias in self._warned:
            return
        self._warned.add(alias)
        self._logger.warning(
            f"Event '{alias}' is deprecated; subscribe to '{modern_name}' instead"
        )

    def publish_aliases(self, modern_name: str, envelope: StandardEventEnvelope) -> list[str]:
        """
        Emit ``envelope`` on every alias of ``modern_name``.

        Returns:
            The alias names emitted, in order.
        """
        aliases = self._registry.resolve_aliases(modern_name)
        for alias in aliases:
            self._warn_once(alias, modern_name)
            self._bus.emit(alias, envelope)
        return aliases

    async def publish_aliases_async(
        self, modern_name: str, envelope: StandardEventEnvelope
    ) -> list[str]:
        """Async variant of publish_aliases."""
        aliases = self._registry.resolve_aliases(modern_name)
        for alias in aliases:
            self._warn_once(alias, modern_name)
            await self._bus.emit_async(alias, envelope)
        return aliases
