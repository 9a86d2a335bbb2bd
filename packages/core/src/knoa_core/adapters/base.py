"""
Adapter base class.

Every adapter method runs the same template:

1. derive the OperationContext (caller-provided, else a new one that
   inherits the in-scope trace)
2. validate arguments against the method's ParamSchema
3. invoke the wrapped manager inside the context scope
4. publish ``{component}:{action}`` and its legacy aliases, unless an
   error was recorded on the context (a failed nested call included)
5. on failure, route through the ErrorHandler and return its result

Adapters carry no business logic.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping

from knoa_core.adapters.schema import ParamSchema
from knoa_core.errors.handler import ERROR_COMPONENT, ErrorHandler, error_envelope
from knoa_core.errors.taxonomy import (
    ApplicationError,
    ConfigurationError,
    ErrorKind,
    kind_of,
)
from knoa_core.events.bus import EventBus
from knoa_core.events.catalog import CompatibilityShim, EventNameRegistry
from knoa_core.runtime.context import OperationContext
from knoa_core.runtime.core import Core
from knoa_core.runtime.ids import generate_request_id, generate_trace_id

logger = logging.getLogger(__name__)

PayloadBuilder = Callable[[Any], Mapping[str, Any]]

_SUMMARY_LIMIT = 80


def summarize_arguments(arguments: Mapping[str, Any]) -> dict[str, Any]:
    """Short, log-safe rendering of call arguments for context metadata."""
    summary: dict[str, Any] = {}
    for name, value in arguments.items():
        if value is None or isinstance(value, (bool, int, float)):
            summary[name] = value
        elif isinstance(value, str):
            summary[name] = value if len(value) <= _SUMMARY_LIMIT else value[:_SUMMARY_LIMIT] + "..."
        elif isinstance(value, Mapping):
            summary[name] = f"<{len(value)} keys>"
        else:
            summary[name] = f"<{type(value).__name__}>"
    return summary


def component_for(adapter_class: type) -> str:
    """``TaskManagerAdapter`` -> ``task``."""
    name = adapter_class.__name__
    for suffix in ("ManagerAdapter", "Adapter"):
        if name.endswith(suffix) and name != suffix:
            name = name[: -len(suffix)]
            break
    return name.lower()


class BaseAdapter:
    """
    Uniform wrapper around a domain manager.

    Collaborators come from ``core`` unless given explicitly; an adapter
    without an event bus publishes nothing, and one without an error
    handler builds error envelopes itself.

    Subclasses implement public methods by calling ``_execute`` (sync)
    or ``_execute_async`` (async).
    """

    component: str = ""  # Derived from the class name when empty

    def __init__(
        self,
        manager: Any,
        *,
        core: Core | None = None,
        logger: logging.Logger | None = None,
        error_handler: ErrorHandler | None = None,
        event_bus: EventBus | None = None,
        registry: EventNameRegistry | None = None,
    ) -> None:
        if manager is None:
            raise ConfigurationError(
                f"{type(self).__name__} requires a manager",
                code="ERR_ADAPTER_MANAGER",
                context={"adapter": type(self).__name__},
            )
        self.manager = manager
        self.logger = logger or (core.logger if core is not None else globals()["logger"])
        self.event_bus = event_bus or (core.bus if core is not None else None)
        self.error_handler = error_handler or (
            core.error_handler if core is not None else None
        )
        registry = registry or (core.registry if core is not None else None)

        self._shim: CompatibilityShim | None = None
        if core is not None and self.event_bus is core.bus and registry is core.registry:
            self._shim = core.shim
        elif self.event_bus is not None and registry is not None:
            self._shim = CompatibilityShim(self.event_bus, registry, logger=self.logger)

        if not self.component:
            self.component = component_for(type(self))

    # =========================================================================
    # CONTEXT
    # =========================================================================

    def _operation_context(
        self,
        operation: str,
        arguments: Mapping[str, Any],
        context: OperationContext | None,
    ) -> OperationContext:
        """Use the caller's context as-is, else create one (child of any in-scope context)."""
        if context is not None:
            return context
        if self.event_bus is not None:
            trace_id_factory = self.event_bus.trace_id_factory
            request_id_factory = self.event_bus.request_id_factory
        else:
            trace_id_factory, request_id_factory = generate_trace_id, generate_request_id
        return OperationContext.create(
            operation,
            self.component,
            {"adapter": type(self).__name__, "arguments": summarize_arguments(arguments)},
            trace_id_factory=trace_id_factory,
            request_id_factory=request_id_factory,
        )

    # =========================================================================
    # PUBLICATION
    # =========================================================================

    def _suppressed(self, action: str, context: OperationContext) -> bool:
        """No success event for an operation whose context recorded an error."""
        error = context.error
        if error is None:
            return False
        self.logger.debug(
            f"Skipped {self.component}:{action}: {error.code} recorded in "
            f"{error.component}.{error.operation}"
        )
        return True

    def _publish(
        self,
        action: str,
        payload: PayloadBuilder | None,
        result: Any,
        context: OperationContext,
    ) -> None:
        if self.event_bus is None:
            return
        if self._suppressed(action, context):
            return
        try:
            envelope = self.event_bus.emit_standardized(
                self.component, action, payload(result) if payload else {}, context=context
            )
            if self._shim is not None:
                self._shim.publish_aliases(envelope.event_name, envelope)
        except Exception:
            self.logger.exception(f"Failed to publish {self.component}:{action}")

    async def _publish_async(
        self,
        action: str,
        payload: PayloadBuilder | None,
        result: Any,
        context: OperationContext,
    ) -> None:
        if self.event_bus is None:
            return
        if self._suppressed(action, context):
            return
        try:
            envelope = await self.event_bus.emit_standardized_async(
                self.component, action, payload(result) if payload else {}, context=context
            )
            if self._shim is not None:
                await self._shim.publish_aliases_async(envelope.event_name, envelope)
        except Exception:
            self.logger.exception(f"Failed to publish {self.component}:{action}")

    # =========================================================================
    # ERRORS
    # =========================================================================

    def _fallback_error(
        self,
        error: BaseException,
        operation: str,
        context: OperationContext,
        raises: bool,
    ) -> Any:
        """Error path for adapters built without an ErrorHandler."""
        app_error = ApplicationError.wrap(
            error, {"component": self.component, "operation": operation}
        )
        for key, value in context.to_envelope_fields().items():
            app_error.context.setdefault(key, value)
        context.set_error(app_error, self.component, operation)
        self.logger.error(f"{app_error.describe()} in {self.component}.{operation}")

        if self.event_bus is not None:
            try:
                self.event_bus.emit_standardized(
                    ERROR_COMPONENT,
                    "occurred",
                    {
                        **app_error.to_dict(),
                        "errorCode": app_error.code,
                        "errorComponent": self.component,
                        "operation": operation,
                    },
                    context=context,
                )
            except Exception:
                self.logger.exception("Failed to publish error:occurred")

        if raises:
            raise app_error
        return error_envelope(app_error, operation)

    @staticmethod
    def _should_raise(error: BaseException, raises: bool) -> bool:
        # Validation failures are always returned as envelopes
        return raises and kind_of(error) is not ErrorKind.VALIDATION

    def _handle_error(
        self,
        error: BaseException,
        operation: str,
        context: OperationContext,
        raises: bool,
    ) -> Any:
        raises = self._should_raise(error, raises)
        if self.error_handler is None:
            return self._fallback_error(error, operation, context, raises)
        result = self.error_handler.handle_sync(
            error, self.component, operation, context, raise_on_failure=raises
        )
        return result.unwrap()

    async def _handle_error_async(
        self,
        error: BaseException,
        operation: str,
        context: OperationContext,
        raises: bool,
    ) -> Any:
        raises = self._should_raise(error, raises)
        if self.error_handler is None:
            return self._fallback_error(error, operation, context, raises)
        result = await self.error_handler.handle(
            error, self.component, operation, context, raise_on_failure=raises
        )
        return result.unwrap()

    # =========================================================================
    # TEMPLATE
    # =========================================================================

    def _execute(
        self,
        operation: str,
        arguments: Mapping[str, Any],
        invoke: Callable[[], Any],
        *,
        schema: ParamSchema | None = None,
        action: str | None = None,
        payload: PayloadBuilder | None = None,
        context: OperationContext | None = None,
        raises: bool = False,
    ) -> Any:
        """
        Run the adapter template for a synchronous manager call.

        Args:
            operation: Public method name (recorded on errors and contexts).
            arguments: Call arguments, validated against ``schema``.
            invoke: Zero-argument callable performing the manager call.
            action: Event action to publish on success (None publishes nothing).
            payload: Builds the event payload from the manager's result.
            context: Caller-provided operation context.
            raises: Re-raise unrecovered non-validation errors instead of
                returning an error envelope.
        """
        ctx = self._operation_context(operation, arguments, context)
        try:
            if schema is not None:
                schema.validate(arguments)
            with ctx.scope():
                result = invoke()
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise ConfigurationError(
                    f"{type(self).__name__}.{operation} expected a synchronous manager call",
                    context={"operation": operation},
                )
        except Exception as exc:
            return self._handle_error(exc, operation, ctx, raises)

        if action is not None:
            self._publish(action, payload, result, ctx)
        return result

    async def _execute_async(
        self,
        operation: str,
        arguments: Mapping[str, Any],
        invoke: Callable[[], Awaitable[Any] | Any],
        *,
        schema: ParamSchema | None = None,
        action: str | None = None,
        payload: PayloadBuilder | None = None,
        context: OperationContext | None = None,
        raises: bool = False,
    ) -> Any:
        """Run the adapter template, awaiting the manager call if needed."""
        ctx = self._operation_context(operation, arguments, context)
        try:
            if schema is not None:
                schema.validate(arguments)
            async with ctx.scope():
                result = invoke()
                if inspect.isawaitable(result):
                    result = await result
        except Exception as exc:
            return await self._handle_error_async(exc, operation, ctx, raises)

        if action is not None:
            await self._publish_async(action, payload, result, ctx)
        return result
