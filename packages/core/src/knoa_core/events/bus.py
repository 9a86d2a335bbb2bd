"""
In-process event bus.

Publish/subscribe with exact names, glob patterns and a catch-all
channel, optional bounded history, and synchronous or sequential
asynchronous fan-out.

Dispatch order for one emission:
1. exact-name subscriptions, in registration order
2. glob subscriptions (``task:*``, ``session:**``), in registration order
3. catch-all (``"*"``) subscriptions, in registration order

A handler that raises is logged and skipped; later handlers still run.
Handlers invoked by the bus never enter the ErrorHandler.
"""

import inspect
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from knoa_core.errors.taxonomy import ConfigurationError
from knoa_core.events.model import (
    CATCH_ALL,
    GLOBAL_CHANNEL,
    EventHistoryEntry,
    StandardEventEnvelope,
    is_valid_event_name,
    make_event_name,
)
from knoa_core.runtime.context import OperationContext, current_context
from knoa_core.runtime.ids import (
    Clock,
    IdFactory,
    generate_request_id,
    generate_trace_id,
    isoformat,
    utc_now,
)

logger = logging.getLogger(__name__)

# Handlers receive (payload, event_name); async handlers may return an awaitable
EventHandler = Callable[[Any, str], Any]
Unsubscribe = Callable[[], bool]


class SubscriptionKind(Enum):
    """How a subscription pattern is matched."""

    EXACT = "exact"
    GLOB = "glob"
    CATCH_ALL = "catch_all"


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """
    Compile a glob pattern into a regex.

    ``*`` matches one ``:``-separated segment, ``**`` matches any number
    of segments (separators included).
    """
    parts = re.split(r"(\*\*|\*)", pattern)
    regex = "".join(
        ".*" if part == "**" else "[^:]*" if part == "*" else re.escape(part)
        for part in parts
    )
    return re.compile(f"^{regex}$")


def classify_pattern(pattern: str) -> SubscriptionKind:
    """Decide how a subscription pattern is matched."""
    if pattern == CATCH_ALL:
        return SubscriptionKind.CATCH_ALL
    if "*" in pattern:
        return SubscriptionKind.GLOB
    return SubscriptionKind.EXACT


def handler_name(handler: Callable[..., Any]) -> str:
    """Readable identity of a handler for log lines."""
    return getattr(handler, "__qualname__", None) or repr(handler)


@dataclass(eq=False, slots=True)
class EventSubscription:
    """A pattern bound to a handler."""

    pattern: str
    handler: EventHandler
    once: bool = False
    kind: SubscriptionKind = field(init=False)
    matcher: re.Pattern[str] | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.kind = classify_pattern(self.pattern)
        if self.kind is SubscriptionKind.GLOB:
            self.matcher = compile_pattern(self.pattern)

    def matches(self, name: str) -> bool:
        """Whether this subscription receives ``name``."""
        if self.kind is SubscriptionKind.CATCH_ALL:
            return True
        if self.kind is SubscriptionKind.GLOB:
            return self.matcher is not None and bool(self.matcher.match(name))
        return self.pattern == name


class EventBus:
    """
    In-process publisher/subscriber.

    Example:
        bus = EventBus()
        unsubscribe = bus.subscribe("task:*", lambda payload, name: print(name))
        bus.emit_standardized("task", "task_created", {"id": "T001"})
        unsubscribe()
    """

    def __init__(
        self,
        *,
        logger: logging.Logger | None = None,
        clock: Clock = utc_now,
        trace_id_factory: IdFactory = generate_trace_id,
        request_id_factory: IdFactory = generate_request_id,
        keep_history: bool = False,
        history_limit: int = 100,
        debug: bool = False,
        validate_names: bool = True,
    ) -> None:
        if history_limit < 1:
            raise ConfigurationError(
                "history_limit must be a positive integer",
                context={"history_limit": history_limit},
            )
        self._logger = logger or globals()["logger"]
        self._clock = clock
        self._trace_id_factory = trace_id_factory
        self._request_id_factory = request_id_factory
        self._exact: dict[str, list[EventSubscription]] = {}
        self._globs: list[EventSubscription] = []
        self._catch_all: list[EventSubscription] = []
        self._history: deque[EventHistoryEntry] | None = (
            deque(maxlen=history_limit) if keep_history else None
        )
        self._history_limit = history_limit
        self.debug = debug
        self.validate_names = validate_names

    @property
    def trace_id_factory(self) -> IdFactory:
        return self._trace_id_factory

    @property
    def request_id_factory(self) -> IdFactory:
        return self._request_id_factory

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(
        self,
        pattern: str,
        handler: EventHandler,
        *,
        once: bool = False,
    ) -> Unsubscribe:
        """
        Register a handler for an event name or pattern.

        Args:
            pattern: Exact name, glob (``*`` / ``**``) or ``"*"`` for all events.
            handler: Called with ``(payload, event_name)``.
            once: Remove the subscription before its first delivery.

        Returns:
            A callable that removes this subscription.
        """
        if not callable(handler):
            raise TypeError(f"Event handler for '{pattern}' must be callable")

        subscription = EventSubscription(pattern=pattern, handler=handler, once=once)
        if subscription.kind is SubscriptionKind.EXACT:
            self._exact.setdefault(pattern, []).append(subscription)
        elif subscription.kind is SubscriptionKind.GLOB:
            self._globs.append(subscription)
        else:
            self._catch_all.append(subscription)

        if self.debug:
            self._logger.debug(
                f"Subscribed {handler_name(handler)} to '{pattern}' ({subscription.kind.value})"
            )
        return lambda: self._remove(subscription)

    on = subscribe

    def once(self, pattern: str, handler: EventHandler) -> Unsubscribe:
        """Register a handler that is removed after its first delivery."""
        return self.subscribe(pattern, handler, once=True)

    def unsubscribe(self, pattern: str, handler: EventHandler) -> None:
        """Remove every subscription of ``handler`` to ``pattern`` (no-op if absent)."""
        kind = classify_pattern(pattern)
        if kind is SubscriptionKind.EXACT:
            bucket = self._exact.get(pattern)
            if not bucket:
                return
            bucket[:] = [s for s in bucket if s.handler is not handler]
            if not bucket:
                del self._exact[pattern]
        else:
            bucket = self._globs if kind is SubscriptionKind.GLOB else self._catch_all
            bucket[:] = [
                s for s in bucket if not (s.pattern == pattern and s.handler is handler)
            ]

    off = unsubscribe

    def _remove(self, subscription: EventSubscription) -> bool:
        """Remove one subscription. Returns False if it was already gone."""
        if subscription.kind is SubscriptionKind.EXACT:
            bucket = self._exact.get(subscription.pattern, [])
        elif subscription.kind is SubscriptionKind.GLOB:
            bucket = self._globs
        else:
            bucket = self._catch_all

        for index, existing in enumerate(bucket):
            if existing is subscription:
                del bucket[index]
                if subscription.kind is SubscriptionKind.EXACT and not bucket:
                    del self._exact[subscription.pattern]
                return True
        return False

    def remove_all_listeners(self) -> None:
        """Drop every subscription."""
        self._exact.clear()
        self._globs.clear()
        self._catch_all.clear()

    # =========================================================================
    # EMISSION
    # =========================================================================

    def _resolve(self, name: str) -> list[EventSubscription]:
        """Matching subscriptions in dispatch order (snapshot)."""
        matched = list(self._exact.get(name, ()))
        matched.extend(s for s in self._globs if s.matches(name))
        matched.extend(self._catch_all)
        return matched

    def _claim(self, subscription: EventSubscription) -> bool:
        """Once-subscriptions are removed before delivery; skip if already consumed."""
        if subscription.once:
            return self._remove(subscription)
        return True

    def _log_handler_failure(self, subscription: EventSubscription, name: str) -> None:
        self._logger.exception(
            f"Event handler {handler_name(subscription.handler)} failed for '{name}'"
        )

    def emit(self, name: str, payload: Any = None) -> bool:
        """
        Deliver an event synchronously.

        Returns:
            True if at least one subscription matched.
        """
        self._record(name, payload, is_async=False)
        subscriptions = self._resolve(name)
        if self.debug:
            self._logger.debug(f"Emit '{name}' to {len(subscriptions)} handler(s)")

        for subscription in subscriptions:
            if not self._claim(subscription):
                continue
            try:
                result = subscription.handler(payload, name)
            except Exception:
                self._log_handler_failure(subscription, name)
                continue
            if inspect.iscoroutine(result):
                result.close()
                self._logger.warning(
                    f"Async handler {handler_name(subscription.handler)} was skipped "
                    f"by synchronous emit of '{name}'; use emit_async"
                )
        return bool(subscriptions)

    async def emit_async(self, name: str, payload: Any = None) -> bool:
        """
        Deliver an event, awaiting each handler in registration order.

        Handler failures are logged; this coroutine never raises because of
        a handler.
        """
        self._record(name, payload, is_async=True)
        subscriptions = self._resolve(name)
        if self.debug:
            self._logger.debug(f"Emit async '{name}' to {len(subscriptions)} handler(s)")

        for subscription in subscriptions:
            if not self._claim(subscription):
                continue
            try:
                result = subscription.handler(payload, name)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self._log_handler_failure(subscription, name)
        return bool(subscriptions)

    def build_envelope(
        self,
        component: str,
        action: str,
        payload: Mapping[str, Any] | None = None,
        *,
        context: OperationContext | None = None,
    ) -> StandardEventEnvelope:
        """
        Compose the standard envelope for ``component:action``.

        Correlation ids come from the payload, else from the given (or
        in-scope) operation context, else they are generated.
        """
        name = make_event_name(component, action)
        if self.validate_names and not is_valid_event_name(name):
            self._logger.warning(f"Non-standard event name: {name}")

        data = dict(payload or {})
        context = context or current_context()
        trace_id = data.get("traceId") or (context.trace_id if context else None)
        request_id = data.get("requestId") or (context.request_id if context else None)

        return StandardEventEnvelope.build(
            component,
            action,
            data,
            timestamp=isoformat(self._clock()),
            trace_id=trace_id or self._trace_id_factory(),
            request_id=request_id or self._request_id_factory(),
        )

    def emit_standardized(
        self,
        component: str,
        action: str,
        payload: Mapping[str, Any] | None = None,
        *,
        context: OperationContext | None = None,
    ) -> StandardEventEnvelope:
        """
        Emit ``component:action`` with the standard envelope, then the same
        envelope (plus ``type``) on the global channel.

        Returns:
            The envelope delivered on the specific name.
        """
        envelope = self.build_envelope(component, action, payload, context=context)
        self.emit(envelope.event_name, envelope)
        self.emit(GLOBAL_CHANNEL, envelope.with_type())
        return envelope

    async def emit_standardized_async(
        self,
        component: str,
        action: str,
        payload: Mapping[str, Any] | None = None,
        *,
        context: OperationContext | None = None,
    ) -> StandardEventEnvelope:
        """Async variant of emit_standardized."""
        envelope = self.build_envelope(component, action, payload, context=context)
        await self.emit_async(envelope.event_name, envelope)
        await self.emit_async(GLOBAL_CHANNEL, envelope.with_type())
        return envelope

    # =========================================================================
    # HISTORY
    # =========================================================================

    def _record(self, name: str, payload: Any, is_async: bool) -> None:
        if self._history is not None:
            self._history.append(
                EventHistoryEntry(
                    event=name, data=payload, timestamp=self._clock(), is_async=is_async
                )
            )

    @property
    def history_enabled(self) -> bool:
        return self._history is not None

    def get_history(self, limit: int | None = None) -> list[EventHistoryEntry]:
        """
        Most recent emissions, oldest first.

        Args:
            limit: Maximum entries to return (defaults to the history limit).
        """
        if self._history is None:
            self._logger.warning("Event history is not enabled")
            return []
        entries = list(self._history)
        limit = self._history_limit if limit is None else limit
        return entries[-limit:] if limit > 0 else []

    def clear_history(self) -> None:
        """Forget recorded emissions."""
        if self._history is not None:
            self._history.clear()

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def list_events(self) -> list[str]:
        """Exact event names with at least one subscription."""
        return list(self._exact.keys())

    def list_patterns(self) -> list[str]:
        """Glob and catch-all patterns, in registration order."""
        return [s.pattern for s in self._globs] + [s.pattern for s in self._catch_all]

    def listener_count(self, name: str) -> int:
        """Number of subscriptions that would receive ``name``."""
        return len(self._resolve(name))

    @staticmethod
    def validate_event_name(name: str) -> bool:
        """Whether ``name`` follows the ``component:action`` grammar."""
        return is_valid_event_name(name)

    def set_debug_mode(self, enabled: bool) -> None:
        """Toggle debug logging of subscriptions and emissions."""
        self.debug = enabled
        self._logger.debug(f"Event bus debug mode {'enabled' if enabled else 'disabled'}")
