"""
knoa Core Runtime - correlation context and injectable ids.

Usage:
    from knoa_core.runtime import OperationContext

    ctx = OperationContext.create("create_task", "task")

Architecture:
    - OperationContext: per-call correlation (trace id, request id)
    - Core: owns the bus, handler and registry (import from
      knoa_core.runtime.core; not re-exported here)
    - ids: injectable clock and id factories
"""

# Ids
from knoa_core.runtime.ids import (
    Clock,
    IdFactory,
    fixed_clock,
    generate_request_id,
    generate_trace_id,
    isoformat,
    sequential_ids,
    utc_now,
)

# Context
from knoa_core.runtime.context import (
    ContextError,
    ContextScope,
    OperationContext,
    current_context,
)

__all__ = [
    # Ids
    "Clock",
    "IdFactory",
    "utc_now",
    "isoformat",
    "generate_trace_id",
    "generate_request_id",
    "sequential_ids",
    "fixed_clock",
    # Context
    "OperationContext",
    "ContextScope",
    "ContextError",
    "current_context",
]
