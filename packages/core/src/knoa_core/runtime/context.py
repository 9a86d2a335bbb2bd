"""
Operation context and correlation scoping.

An OperationContext correlates every side effect of one public call: the
events an adapter publishes and the errors the handler enriches all carry
its (trace_id, request_id) pair. Child contexts keep the parent's trace id
and get a fresh request id.

The current context is tracked in a ContextVar so nested adapter calls
made while a context is in scope inherit its trace without having it
passed explicitly.

This module contains NO framework-specific imports.
"""

from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from knoa_core.runtime.ids import (
    IdFactory,
    generate_request_id,
    generate_trace_id,
    isoformat,
    utc_now,
)

_current_context: ContextVar["OperationContext | None"] = ContextVar(
    "knoa_operation_context", default=None
)


def current_context() -> "OperationContext | None":
    """Get the operation context currently in scope (if any)."""
    return _current_context.get()


def _freeze(metadata: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(metadata or {}))


@dataclass(frozen=True, slots=True)
class ContextError:
    """An error recorded against an operation context."""

    message: str
    code: str
    component: str
    operation: str
    timestamp: str
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "component": self.component,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class OperationContext:
    """
    Correlation state for a single public call.

    Immutable: the correlation pair never changes once created. Use
    child() to derive the context of a nested operation.

    The only mutable part is the error record: set_error() marks this
    context and every ancestor, and adapters publish no success event
    for a context that has an error.

    Example:
        ctx = OperationContext.create("create_task", "task")
        with ctx.scope():
            ...  # nested adapter calls become children of ctx
    """

    operation: str
    component: str
    trace_id: str
    request_id: str
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)
    parent: "OperationContext | None" = field(default=None, compare=False, repr=False)
    signal: Any = field(default=None, compare=False, repr=False)
    started_at: datetime = field(default_factory=utc_now, compare=False, repr=False)
    _errors: list[ContextError] = field(
        default_factory=list, init=False, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", _freeze(self.metadata))

    @classmethod
    def create(
        cls,
        operation: str,
        component: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        signal: Any = None,
        trace_id_factory: IdFactory = generate_trace_id,
        request_id_factory: IdFactory = generate_request_id,
    ) -> "OperationContext":
        """
        Create a context for a new operation.

        When another context is in scope the new one becomes its child
        (same trace, fresh request id). Otherwise both ids are generated.
        """
        scoped = _current_context.get()
        if scoped is not None:
            return scoped.child(
                operation,
                metadata,
                component=component,
                signal=signal,
                request_id_factory=request_id_factory,
            )
        return cls(
            operation=operation,
            component=component,
            trace_id=trace_id_factory(),
            request_id=request_id_factory(),
            metadata=_freeze(metadata),
            signal=signal,
        )

    def child(
        self,
        operation: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        component: str | None = None,
        signal: Any = None,
        request_id_factory: IdFactory = generate_request_id,
    ) -> "OperationContext":
        """Create a child context for a nested operation."""
        merged = {**self.metadata, **(metadata or {})}
        return OperationContext(
            operation=operation,
            component=component or self.component,
            trace_id=self.trace_id,
            request_id=request_id_factory(),
            metadata=_freeze(merged),
            parent=self,
            signal=signal if signal is not None else self.signal,
        )

    # =========================================================================
    # ERROR TRACKING
    # =========================================================================

    def set_error(
        self,
        error: BaseException,
        component: str,
        operation: str,
        details: Mapping[str, Any] | None = None,
        *,
        timestamp: str | None = None,
    ) -> ContextError:
        """Record ``error`` on this context and propagate it to every ancestor."""
        record = ContextError(
            message=str(getattr(error, "message", None) or error),
            code=getattr(error, "code", None) or "ERR_UNKNOWN",
            component=component,
            operation=operation,
            timestamp=timestamp or isoformat(),
            details=_freeze(details),
        )
        node: OperationContext | None = self
        while node is not None:
            node._errors.append(record)
            node = node.parent
        return record

    @property
    def has_error(self) -> bool:
        return bool(self._errors)

    @property
    def error(self) -> ContextError | None:
        """The most recent error recorded here or in a descendant."""
        return self._errors[-1] if self._errors else None

    def info(self) -> dict[str, Any]:
        """Diagnostic summary of this context."""
        return {
            "operation": self.operation,
            "component": self.component,
            "traceId": self.trace_id,
            "requestId": self.request_id,
            "startedAt": isoformat(self.started_at),
            "durationMs": self.elapsed_ms,
            "depth": self.depth,
            "hasError": self.has_error,
            "error": self.error.to_dict() if self.error else None,
            "metadata": dict(self.metadata),
        }

    def to_envelope_fields(self) -> dict[str, str]:
        """Fields used to decorate emitted events and handled errors."""
        return {
            "traceId": self.trace_id,
            "requestId": self.request_id,
            "operation": self.operation,
            "component": self.component,
        }

    def scope(self) -> "ContextScope":
        """
        Make this context current for the duration of a block.

        Usage:
            with ctx.scope():
                ...
            async with ctx.scope():
                ...
        """
        return ContextScope(self)

    @property
    def root(self) -> "OperationContext":
        """The outermost ancestor of this context."""
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def depth(self) -> int:
        """Number of ancestors."""
        depth = 0
        node = self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    @property
    def is_cancelled(self) -> bool:
        """Whether the attached cancellation signal has fired."""
        if self.signal is None:
            return False
        is_set = getattr(self.signal, "is_set", None)
        if callable(is_set):
            return bool(is_set())
        return bool(getattr(self.signal, "cancelled", False))

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the context was created."""
        return (utc_now() - self.started_at).total_seconds() * 1000


class ContextScope:
    """Context manager for operation scopes."""

    def __init__(self, context: OperationContext) -> None:
        self._context = context
        self._token: Token | None = None

    def __enter__(self) -> OperationContext:
        self._token = _current_context.set(self._context)
        return self._context

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        if self._token is not None:
            _current_context.reset(self._token)
            self._token = None
        return False

    async def __aenter__(self) -> OperationContext:
        return self.__enter__()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        return self.__exit__(exc_type, exc_val, exc_tb)
