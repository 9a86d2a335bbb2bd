"""
Error handling pipeline.

Every error raised inside an adapter method is funnelled through
ErrorHandler.handle():

1. wrap non-taxonomy errors into ``application``
2. attach correlation fields from the operation context
3. update statistics
4. evaluate error patterns
5. evaluate alert thresholds
6. publish ``error:occurred`` (then queued alerts and pattern events)
7. try a recovery strategy (code-keyed first, then kind-keyed)
8. otherwise return a Failed result carrying the error envelope

Steps 3 to 6 never raise: internal failures are logged and swallowed so
the primary error is never lost.

Architecture Rules:
- No framework-specific imports
- No logging initialization
- Handlers invoked by the event bus never call back into this pipeline
"""

import inspect
import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal

from knoa_core.errors.taxonomy import (
    ApplicationError,
    ConfigurationError,
    ErrorKind,
    coerce_kind,
)
from knoa_core.runtime.context import OperationContext
from knoa_core.runtime.ids import Clock, isoformat, utc_now

if TYPE_CHECKING:
    from knoa_core.events.bus import EventBus

logger = logging.getLogger(__name__)

ERROR_COMPONENT = "error"

RecoveryStrategy = Callable[[ApplicationError, str, str, OperationContext], Any]
PatternDetector = Callable[[ApplicationError, OperationContext], bool]
PatternAction = Callable[[ApplicationError, OperationContext], Any]
ThresholdCondition = Callable[["ErrorStatistics", ApplicationError], bool]


class RetryRecovery(Exception):
    """
    Raised by a recovery strategy to ask for another attempt.

    The handler re-invokes the strategy up to ``recovery_attempts`` times
    in total; when attempts run out the error is reported as unrecovered.
    """


# =============================================================================
# REGISTRATIONS
# =============================================================================


@dataclass(slots=True)
class ErrorPattern:
    """A named detector with an optional side-effect action."""

    name: str
    detector: PatternDetector
    action: PatternAction | None = None


@dataclass(slots=True)
class AlertThreshold:
    """A named condition over statistics that publishes an alert when it holds."""

    name: str
    condition: ThresholdCondition
    severity: str = "minor"  # "critical", "major", "minor"
    description: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "severity": self.severity,
            "description": self.description,
        }


@dataclass(slots=True)
class RecoveryRegistration:
    """A recovery strategy and the key it was registered under."""

    key: str
    strategy: RecoveryStrategy
    description: str = ""
    by_kind: bool = False


# =============================================================================
# STATISTICS
# =============================================================================


@dataclass
class ErrorStatistics:
    """
    Aggregated error counters.

    Per-kind counts always sum to ``total_errors``. The recent-errors
    window keeps the last ``recent_limit`` structured errors.
    """

    recent_limit: int = 50
    total_errors: int = 0
    by_kind: Counter = field(default_factory=Counter)
    by_component: Counter = field(default_factory=Counter)
    by_operation: Counter = field(default_factory=Counter)  # (component, operation)
    by_code: Counter = field(default_factory=Counter)
    pattern_counts: Counter = field(default_factory=Counter)
    alert_counts: Counter = field(default_factory=Counter)
    recovery_success: int = 0
    recovery_failure: int = 0
    recent: deque = field(init=False)

    def __post_init__(self) -> None:
        self.recent = deque(maxlen=self.recent_limit)

    def record(self, error: ApplicationError, component: str, operation: str) -> None:
        """Count one handled error."""
        self.total_errors += 1
        self.by_kind[error.kind.value] += 1
        self.by_component[component] += 1
        self.by_operation[(component, operation)] += 1
        self.by_code[error.code] += 1
        self.recent.append(error.to_dict())

    @property
    def recovery_attempts(self) -> int:
        return self.recovery_success + self.recovery_failure

    @property
    def recovery_success_rate(self) -> float:
        """Fraction of recovery attempts that returned a value."""
        if self.recovery_attempts == 0:
            return 0.0
        return self.recovery_success / self.recovery_attempts

    def count(self, kind: ErrorKind | str) -> int:
        """Errors handled of ``kind``."""
        return self.by_kind[ErrorKind(kind).value]

    def snapshot(self) -> "ErrorStatistics":
        """Independent copy (counters and recent window)."""
        copy = ErrorStatistics(recent_limit=self.recent_limit)
        copy.total_errors = self.total_errors
        copy.by_kind = Counter(self.by_kind)
        copy.by_component = Counter(self.by_component)
        copy.by_operation = Counter(self.by_operation)
        copy.by_code = Counter(self.by_code)
        copy.pattern_counts = Counter(self.pattern_counts)
        copy.alert_counts = Counter(self.alert_counts)
        copy.recovery_success = self.recovery_success
        copy.recovery_failure = self.recovery_failure
        copy.recent.extend(self.recent)
        return copy

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total_errors": self.total_errors,
            "errors_by_kind": dict(self.by_kind),
            "errors_by_component": dict(self.by_component),
            "errors_by_operation": {
                f"{component}:{operation}": count
                for (component, operation), count in self.by_operation.items()
            },
            "errors_by_code": dict(self.by_code),
            "pattern_counts": dict(self.pattern_counts),
            "alert_counts": dict(self.alert_counts),
            "recovery_attempts": self.recovery_attempts,
            "recovery_success": self.recovery_success,
            "recovery_failure": self.recovery_failure,
            "recovery_success_rate": self.recovery_success_rate,
            "recent_errors": list(self.recent),
        }


# =============================================================================
# RESULTS
# =============================================================================


def error_envelope(error: ApplicationError, operation: str) -> dict[str, Any]:
    """Uniform value returned by adapter methods that did not recover."""
    return {
        "error": True,
        "message": error.message,
        "code": error.code,
        "operation": operation,
        "timestamp": error.context.get("timestamp", error.timestamp),
        "recoverable": error.recoverable,
        "context": dict(error.context),
    }


def is_error_envelope(value: Any) -> bool:
    """Whether an adapter result is an error envelope."""
    return isinstance(value, dict) and value.get("error") is True


@dataclass(frozen=True, slots=True)
class Recovered:
    """A recovery strategy produced a replacement value."""

    value: Any
    error: ApplicationError
    recovered: Literal[True] = True

    def unwrap(self) -> Any:
        return self.value


@dataclass(frozen=True, slots=True)
class Failed:
    """No recovery; carries the enriched error and its envelope."""

    error: ApplicationError
    envelope: dict[str, Any]
    recovered: Literal[False] = False

    def unwrap(self) -> dict[str, Any]:
        return dict(self.envelope)

    def raise_error(self) -> None:
        raise self.error


HandleResult = Recovered | Failed


@dataclass
class _Handling:
    """Work produced by the shared (non-recovery) part of the pipeline."""

    error: ApplicationError
    context: OperationContext
    component: str
    operation: str
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    pending: list[Awaitable[Any]] = field(default_factory=list)


# =============================================================================
# HANDLER
# =============================================================================


class ErrorHandler:
    """
    Central error pipeline with pattern, alert and recovery registries.

    Example:
        handler = ErrorHandler(bus)
        handler.register_recovery_strategy(
            "ERR_STORAGE_TEMP", lambda error, op, comp, ctx: {"recovered": True}
        )
        result = await handler.handle(error, "task", "create_task", ctx)
        value = result.unwrap()
    """

    def __init__(
        self,
        event_bus: "EventBus | None" = None,
        *,
        logger: logging.Logger | None = None,
        clock: Clock = utc_now,
        recovery_attempts: int = 3,
        recent_limit: int = 50,
        pattern_mode: Literal["all", "first"] = "all",
        register_defaults: bool = False,
    ) -> None:
        if recovery_attempts < 1:
            raise ConfigurationError(
                "recovery_attempts must be a positive integer",
                context={"recovery_attempts": recovery_attempts},
            )
        if pattern_mode not in ("all", "first"):
            raise ConfigurationError(
                f"Unknown pattern mode: {pattern_mode}",
                context={"pattern_mode": pattern_mode},
            )
        self._bus = event_bus
        self._logger = logger or globals()["logger"]
        self._clock = clock
        self.recovery_attempts = recovery_attempts
        self.pattern_mode = pattern_mode
        self._stats = ErrorStatistics(recent_limit=recent_limit)
        self._patterns: dict[str, ErrorPattern] = {}
        self._thresholds: dict[str, AlertThreshold] = {}
        self._code_strategies: dict[str, RecoveryRegistration] = {}
        self._kind_strategies: dict[ErrorKind, RecoveryRegistration] = {}

        if register_defaults:
            self._register_defaults()

    @property
    def event_bus(self) -> "EventBus | None":
        return self._bus

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register_error_pattern(
        self,
        name: str,
        detector: PatternDetector,
        action: PatternAction | None = None,
    ) -> ErrorPattern:
        """Add (or replace) a pattern. Patterns are evaluated in insertion order."""
        pattern = ErrorPattern(name=name, detector=detector, action=action)
        self._patterns[name] = pattern
        return pattern

    def remove_error_pattern(self, name: str) -> bool:
        return self._patterns.pop(name, None) is not None

    def register_alert_threshold(
        self,
        name: str,
        condition: ThresholdCondition,
        severity: str = "minor",
        description: str = "",
    ) -> AlertThreshold:
        """Add (or replace) an alert threshold."""
        threshold = AlertThreshold(
            name=name, condition=condition, severity=severity, description=description
        )
        self._thresholds[name] = threshold
        return threshold

    def remove_alert_threshold(self, name: str) -> bool:
        return self._thresholds.pop(name, None) is not None

    def register_recovery_strategy(
        self,
        key: "str | ErrorKind | type[ApplicationError]",
        strategy: RecoveryStrategy,
        description: str | None = None,
    ) -> RecoveryRegistration:
        """
        Register a recovery strategy by error code or error kind.

        Args:
            key: An error code (``"ERR_STORAGE_TEMP"``) or a kind
                (``ErrorKind.STORAGE``, ``"storage"``, ``"StorageError"``
                or the class itself).
            strategy: Called as ``strategy(error, operation, component, context)``;
                may return an awaitable.
            description: Shown on the dashboard.
        """
        if not callable(strategy):
            raise ConfigurationError(
                "Recovery strategy must be callable", context={"key": str(key)}
            )
        kind = coerce_kind(key)
        if kind is not None:
            registration = RecoveryRegistration(
                key=kind.value, strategy=strategy, description=description or "", by_kind=True
            )
            self._kind_strategies[kind] = registration
        else:
            registration = RecoveryRegistration(
                key=str(key), strategy=strategy, description=description or ""
            )
            self._code_strategies[str(key)] = registration

        self._publish(
            "recovery_strategy_registered",
            {
                "key": registration.key,
                "byKind": registration.by_kind,
                "description": registration.description,
            },
        )
        return registration

    def remove_recovery_strategy(self, key: "str | ErrorKind | type[ApplicationError]") -> bool:
        """Forget a strategy; publishes ``error:recovery_strategy_removed`` if one existed."""
        kind = coerce_kind(key)
        if kind is not None:
            registration = self._kind_strategies.pop(kind, None)
        else:
            registration = self._code_strategies.pop(str(key), None)
        if registration is None:
            return False

        self._publish(
            "recovery_strategy_removed",
            {"key": registration.key, "byKind": registration.by_kind},
        )
        return True

    def find_recovery_strategy(self, error: ApplicationError) -> RecoveryRegistration | None:
        """Code-keyed strategies win over kind-keyed ones."""
        return self._code_strategies.get(error.code) or self._kind_strategies.get(error.kind)

    def _register_defaults(self) -> None:
        """Built-in observation hooks (no built-in recovery strategies)."""

        def log_pattern(message: str) -> PatternAction:
            def action(error: ApplicationError, context: OperationContext) -> None:
                self._logger.warning(
                    f"{message}: {error.describe()} in {context.component}.{context.operation}"
                )

            return action

        self.register_error_pattern(
            "consecutive_timeouts",
            lambda error, context: error.kind is ErrorKind.TIMEOUT,
            log_pattern("Timeout detected"),
        )
        self.register_error_pattern(
            "data_consistency_errors",
            lambda error, context: error.kind is ErrorKind.DATA_CONSISTENCY,
            log_pattern("Data consistency problem detected"),
        )
        self.register_alert_threshold(
            "critical_error",
            lambda stats, error: error.kind
            in (ErrorKind.STATE, ErrorKind.DATA_CONSISTENCY),
            severity="critical",
            description="A state or data consistency error was handled",
        )
        self.register_alert_threshold(
            "configuration_error",
            lambda stats, error: error.kind is ErrorKind.CONFIGURATION,
            severity="major",
            description="A configuration error was handled",
        )

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def _new_context(self, operation: str, component: str) -> OperationContext:
        """Context for errors handled without one, using the bus id factories."""
        if self._bus is None:
            return OperationContext.create(operation, component)
        return OperationContext.create(
            operation,
            component,
            trace_id_factory=self._bus.trace_id_factory,
            request_id_factory=self._bus.request_id_factory,
        )

    def _prepare(
        self,
        error: BaseException,
        component: str,
        operation: str,
        context: OperationContext | None,
    ) -> _Handling:
        """Steps 1 to 5: wrap, enrich, count, patterns, thresholds."""
        # 1. wrap
        app_error = ApplicationError.wrap(
            error, {"component": component, "operation": operation}
        )

        # 2. enrich
        if context is None:
            context = self._new_context(operation, component)
        timestamp = isoformat(self._clock())
        for key, value in context.to_envelope_fields().items():
            app_error.context.setdefault(key, value)
        app_error.context.setdefault("timestamp", timestamp)
        context.set_error(app_error, component, operation, timestamp=timestamp)

        handling = _Handling(
            error=app_error, context=context, component=component, operation=operation
        )

        # 3. statistics
        try:
            self._stats.record(app_error, component, operation)
        except Exception:
            self._logger.exception("Failed to update error statistics")

        # 4. patterns
        detected: list[tuple[str, dict[str, Any]]] = []
        for pattern in list(self._patterns.values()):
            try:
                if not pattern.detector(app_error, context):
                    continue
            except Exception:
                self._logger.exception(f"Error pattern detector '{pattern.name}' failed")
                continue

            self._stats.pattern_counts[pattern.name] += 1
            detected.append(
                (
                    "pattern_detected",
                    {"pattern": pattern.name, "code": app_error.code, "kind": app_error.kind.value},
                )
            )
            if pattern.action is not None:
                try:
                    result = pattern.action(app_error, context)
                    if inspect.isawaitable(result):
                        handling.pending.append(result)
                except Exception:
                    self._logger.exception(f"Error pattern action '{pattern.name}' failed")
            if self.pattern_mode == "first":
                break

        # 5. thresholds (published after error:occurred)
        alerts: list[tuple[str, dict[str, Any]]] = []
        if self._thresholds:
            stats = self._stats.snapshot()
            for threshold in list(self._thresholds.values()):
                try:
                    fired = threshold.condition(stats, app_error)
                except Exception:
                    self._logger.exception(f"Alert threshold '{threshold.name}' failed")
                    continue
                if not fired:
                    continue
                self._stats.alert_counts[threshold.name] += 1
                self._logger.warning(
                    f"Alert '{threshold.name}' ({threshold.severity}): {app_error.describe()}"
                )
                alerts.append(
                    (
                        "alert_triggered",
                        {
                            "threshold": threshold.name,
                            "severity": threshold.severity,
                            "description": threshold.description,
                            "code": app_error.code,
                            "kind": app_error.kind.value,
                            "message": app_error.message,
                        },
                    )
                )

        # 6. error:occurred first, then alerts, then pattern notifications
        occurred = {
            **app_error.to_dict(),
            "errorCode": app_error.code,
            "errorComponent": component,
            "operation": operation,
        }
        handling.events = [("occurred", occurred), *alerts, *detected]

        self._logger.error(
            f"{app_error.describe()} in {component}.{operation}",
            extra={"trace_id": context.trace_id, "request_id": context.request_id},
        )
        return handling

    def _publish(
        self,
        action: str,
        payload: dict[str, Any],
        context: OperationContext | None = None,
    ) -> None:
        if self._bus is None:
            return
        try:
            self._bus.emit_standardized(ERROR_COMPONENT, action, payload, context=context)
        except Exception:
            self._logger.exception(f"Failed to publish error:{action}")

    async def _publish_async(
        self,
        action: str,
        payload: dict[str, Any],
        context: OperationContext | None = None,
    ) -> None:
        if self._bus is None:
            return
        try:
            await self._bus.emit_standardized_async(
                ERROR_COMPONENT, action, payload, context=context
            )
        except Exception:
            self._logger.exception(f"Failed to publish error:{action}")

    def _recovery_payload(self, handling: _Handling, registration: RecoveryRegistration) -> dict[str, Any]:
        return {
            "code": handling.error.code,
            "kind": handling.error.kind.value,
            "strategy": registration.key,
            "errorComponent": handling.component,
            "operation": handling.operation,
        }

    def _failed(self, handling: _Handling, raise_on_failure: bool) -> Failed:
        if raise_on_failure:
            raise handling.error
        return Failed(
            error=handling.error, envelope=error_envelope(handling.error, handling.operation)
        )

    def _recovery_exhausted(self, handling: _Handling, registration: RecoveryRegistration) -> dict[str, Any]:
        self._stats.recovery_failure += 1
        self._logger.warning(
            f"Recovery '{registration.key}' gave up after {self.recovery_attempts} attempt(s)"
        )
        return {**self._recovery_payload(handling, registration), "reason": "attempts_exhausted"}

    async def handle(
        self,
        error: BaseException,
        component: str,
        operation: str,
        context: OperationContext | None = None,
        *,
        raise_on_failure: bool = False,
    ) -> HandleResult:
        """
        Run the full pipeline.

        Returns:
            Recovered if a strategy produced a value, otherwise Failed.

        Raises:
            The strategy's exception if a recovery strategy raises, or the
            enriched error when ``raise_on_failure`` is set and nothing
            recovered.
        """
        handling = self._prepare(error, component, operation, context)
        for pending in handling.pending:
            try:
                await pending
            except Exception:
                self._logger.exception("Error pattern action failed")
        for action, payload in handling.events:
            await self._publish_async(action, payload, handling.context)

        app_error = handling.error
        registration = self.find_recovery_strategy(app_error) if app_error.recoverable else None
        if registration is None:
            return self._failed(handling, raise_on_failure)

        payload = self._recovery_payload(handling, registration)
        await self._publish_async("recovery_started", payload, handling.context)
        for attempt in range(1, self.recovery_attempts + 1):
            try:
                value = registration.strategy(
                    app_error, operation, component, handling.context
                )
                if inspect.isawaitable(value):
                    value = await value
            except RetryRecovery:
                self._logger.info(
                    f"Recovery '{registration.key}' asked for a retry (attempt {attempt})"
                )
                continue
            except Exception as exc:
                self._stats.recovery_failure += 1
                await self._publish_async(
                    "recovery_failed",
                    {**payload, "reason": str(exc) or type(exc).__name__},
                    handling.context,
                )
                raise
            self._stats.recovery_success += 1
            await self._publish_async(
                "recovery_succeeded", {**payload, "attempts": attempt}, handling.context
            )
            return Recovered(value=value, error=app_error)

        await self._publish_async(
            "recovery_failed", self._recovery_exhausted(handling, registration), handling.context
        )
        return self._failed(handling, raise_on_failure)

    def handle_sync(
        self,
        error: BaseException,
        component: str,
        operation: str,
        context: OperationContext | None = None,
        *,
        raise_on_failure: bool = False,
    ) -> HandleResult:
        """
        Synchronous pipeline for synchronous adapter methods.

        Awaitable pattern actions are skipped with a warning. A recovery
        strategy that returns an awaitable is a ConfigurationError, raised
        through the ``recovery_failed`` path.
        """
        handling = self._prepare(error, component, operation, context)
        for pending in handling.pending:
            if inspect.iscoroutine(pending):
                pending.close()
            self._logger.warning("Async error pattern action skipped by synchronous handling")
        for action, payload in handling.events:
            self._publish(action, payload, handling.context)

        app_error = handling.error
        registration = self.find_recovery_strategy(app_error) if app_error.recoverable else None
        if registration is None:
            return self._failed(handling, raise_on_failure)

        payload = self._recovery_payload(handling, registration)
        self._publish("recovery_started", payload, handling.context)
        for attempt in range(1, self.recovery_attempts + 1):
            try:
                value = registration.strategy(
                    app_error, operation, component, handling.context
                )
                if inspect.isawaitable(value):
                    if inspect.iscoroutine(value):
                        value.close()
                    raise ConfigurationError(
                        f"Recovery strategy '{registration.key}' is async; "
                        "it cannot run in synchronous handling",
                        context={"strategy": registration.key, "operation": operation},
                    )
            except RetryRecovery:
                self._logger.info(
                    f"Recovery '{registration.key}' asked for a retry (attempt {attempt})"
                )
                continue
            except Exception as exc:
                self._stats.recovery_failure += 1
                self._publish(
                    "recovery_failed",
                    {**payload, "reason": str(exc) or type(exc).__name__},
                    handling.context,
                )
                raise
            self._stats.recovery_success += 1
            self._publish(
                "recovery_succeeded", {**payload, "attempts": attempt}, handling.context
            )
            return Recovered(value=value, error=app_error)

        self._publish(
            "recovery_failed", self._recovery_exhausted(handling, registration), handling.context
        )
        return self._failed(handling, raise_on_failure)

    # =========================================================================
    # REPORTING
    # =========================================================================

    def get_error_statistics(self) -> ErrorStatistics:
        """Snapshot of the counters (mutating it does not affect the handler)."""
        return self._stats.snapshot()

    def reset_statistics(self) -> None:
        self._stats = ErrorStatistics(recent_limit=self._stats.recent_limit)

    def get_dashboard_data(self) -> dict[str, Any]:
        """Statistics plus registry listings."""
        return {
            "statistics": self._stats.to_dict(),
            "patterns": list(self._patterns.keys()),
            "thresholds": [t.to_dict() for t in self._thresholds.values()],
            "strategies": {
                "codes": list(self._code_strategies.keys()),
                "kinds": [r.key for r in self._kind_strategies.values()],
            },
            "timestamp": isoformat(self._clock()),
        }
