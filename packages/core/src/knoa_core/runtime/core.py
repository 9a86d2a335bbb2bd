"""
The Core value.

Owns the shared mutable pieces of the event-and-error core (event bus,
error handler, event-name registry, compatibility shim). Constructed once
at startup and passed to adapters; there are no module-level singletons.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from knoa_core.errors.handler import ErrorHandler
from knoa_core.errors.taxonomy import ConfigurationError
from knoa_core.events.bus import EventBus
from knoa_core.events.catalog import CompatibilityShim, EventNameRegistry
from knoa_core.runtime.ids import (
    Clock,
    IdFactory,
    generate_request_id,
    generate_trace_id,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class CoreConfig:
    """
    Knobs for building a Core.

    Contains settings that affect event delivery and error handling.
    """

    history_enabled: bool = False
    history_limit: int = 100
    deprecation_warnings: bool = True
    recovery_attempts: int = 3
    error_recent_limit: int = 50
    register_default_hooks: bool = False
    debug: bool = False
    clock: Clock = field(default=utc_now, repr=False)
    trace_id_factory: IdFactory = field(default=generate_trace_id, repr=False)
    request_id_factory: IdFactory = field(default=generate_request_id, repr=False)

    def __post_init__(self) -> None:
        if self.history_limit < 1:
            raise ConfigurationError(
                "history_limit must be a positive integer",
                context={"history_limit": self.history_limit},
            )
        if self.recovery_attempts < 1:
            raise ConfigurationError(
                "recovery_attempts must be a positive integer",
                context={"recovery_attempts": self.recovery_attempts},
            )


class Core:
    """
    Explicit container for the event bus, error handler and name registry.

    Example:
        core = Core.build(CoreConfig(history_enabled=True))
        adapter = TaskManagerAdapter(manager, core=core)
    """

    def __init__(
        self,
        bus: EventBus,
        error_handler: ErrorHandler,
        registry: EventNameRegistry,
        *,
        deprecation_warnings: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self.bus = bus
        self.error_handler = error_handler
        self.registry = registry
        self.logger = logger or globals()["logger"]
        self.shim = CompatibilityShim(
            bus, registry, warn_deprecations=deprecation_warnings, logger=self.logger
        )

    @classmethod
    def build(
        cls,
        config: CoreConfig | None = None,
        *,
        registry: EventNameRegistry | None = None,
        logger: logging.Logger | None = None,
        configure_registry: Callable[[EventNameRegistry], None] | None = None,
    ) -> "Core":
        """
        Construct every collaborator from a config.

        The registry defaults to the built-in catalogue; extra aliases can be
        added by ``configure_registry`` before it is frozen.
        """
        config = config or CoreConfig()
        bus = EventBus(
            logger=logger,
            clock=config.clock,
            trace_id_factory=config.trace_id_factory,
            request_id_factory=config.request_id_factory,
            keep_history=config.history_enabled,
            history_limit=config.history_limit,
            debug=config.debug,
        )
        handler = ErrorHandler(
            bus,
            logger=logger,
            clock=config.clock,
            recovery_attempts=config.recovery_attempts,
            recent_limit=config.error_recent_limit,
            register_defaults=config.register_default_hooks,
        )
        registry = registry or EventNameRegistry.default()
        if configure_registry is not None:
            configure_registry(registry)
        registry.freeze()
        return cls(
            bus,
            handler,
            registry,
            deprecation_warnings=config.deprecation_warnings,
            logger=logger,
        )
