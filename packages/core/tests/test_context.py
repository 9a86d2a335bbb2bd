"""
Tests for OperationContext and id helpers.

Verifies:
1. Contexts are immutable correlation records
2. Children share the trace and get a fresh request id
3. Scopes make a context current (sync and async)
4. Recorded errors propagate to ancestors
"""

import asyncio
import re
from datetime import datetime, timezone

import pytest


class TestIds:
    """Test id and clock helpers."""

    def test_generated_id_format(self) -> None:
        from knoa_core.runtime import generate_request_id, generate_trace_id

        assert re.fullmatch(r"trace-\d+-[0-9a-z]{9}", generate_trace_id())
        assert re.fullmatch(r"req-\d+-[0-9a-z]{9}", generate_request_id())
        assert generate_trace_id() != generate_trace_id()

    def test_sequential_ids(self) -> None:
        from knoa_core.runtime import sequential_ids

        factory = sequential_ids("req", start=5)

        assert [factory(), factory()] == ["req-5", "req-6"]

    def test_isoformat(self) -> None:
        from knoa_core.runtime import isoformat

        naive = datetime(2024, 3, 1, 8, 30, 0, 123456)

        assert isoformat(naive) == "2024-03-01T08:30:00.123Z"

    def test_fixed_clock(self) -> None:
        from knoa_core.runtime import fixed_clock

        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)

        assert fixed_clock(moment)() is moment


class TestOperationContext:
    """Test OperationContext."""

    def test_create(self) -> None:
        from knoa_core.runtime import OperationContext, sequential_ids

        ctx = OperationContext.create(
            "create_task",
            "task",
            {"adapter": "TaskManagerAdapter"},
            trace_id_factory=sequential_ids("trace"),
            request_id_factory=sequential_ids("req"),
        )

        assert ctx.trace_id == "trace-1"
        assert ctx.request_id == "req-1"
        assert ctx.parent is None
        assert ctx.depth == 0
        assert ctx.root is ctx
        assert ctx.metadata["adapter"] == "TaskManagerAdapter"

    def test_is_immutable(self) -> None:
        from dataclasses import FrozenInstanceError

        from knoa_core.runtime import OperationContext

        ctx = OperationContext.create("op", "task", {"a": 1})

        with pytest.raises(FrozenInstanceError):
            ctx.trace_id = "other"  # type: ignore[misc]
        with pytest.raises(TypeError):
            ctx.metadata["a"] = 2  # type: ignore[index]

    def test_child_shares_trace(self) -> None:
        from knoa_core.runtime import OperationContext, sequential_ids

        parent = OperationContext.create("outer", "task", {"a": 1, "b": 1})
        child = parent.child(
            "inner", {"b": 2}, request_id_factory=sequential_ids("child")
        )

        assert child.trace_id == parent.trace_id
        assert child.request_id == "child-1"
        assert child.parent is parent
        assert child.component == "task"
        assert dict(child.metadata) == {"a": 1, "b": 2}
        assert child.depth == 1
        assert child.root is parent

    def test_envelope_fields(self) -> None:
        from knoa_core.runtime import OperationContext

        ctx = OperationContext.create("end_session", "session")

        assert ctx.to_envelope_fields() == {
            "traceId": ctx.trace_id,
            "requestId": ctx.request_id,
            "operation": "end_session",
            "component": "session",
        }

    def test_create_inside_scope_makes_child(self) -> None:
        from knoa_core.runtime import OperationContext, current_context

        outer = OperationContext.create("outer", "feedback")

        assert current_context() is None
        with outer.scope() as scoped:
            assert scoped is outer
            assert current_context() is outer
            inner = OperationContext.create("inner", "task")
        assert current_context() is None

        assert inner.parent is outer
        assert inner.trace_id == outer.trace_id
        assert inner.component == "task"

    def test_scope_restored_after_exception(self) -> None:
        from knoa_core.runtime import OperationContext, current_context

        ctx = OperationContext.create("op", "task")

        with pytest.raises(RuntimeError):
            with ctx.scope():
                raise RuntimeError("fail")

        assert current_context() is None

    @pytest.mark.asyncio
    async def test_async_scope_isolated_between_tasks(self) -> None:
        from knoa_core.runtime import OperationContext, current_context

        seen = {}

        async def run(name: str) -> None:
            ctx = OperationContext.create(name, "task")
            async with ctx.scope():
                await asyncio.sleep(0)
                seen[name] = current_context() is ctx

        await asyncio.gather(run("a"), run("b"))

        assert seen == {"a": True, "b": True}

    def test_cancellation_signal(self) -> None:
        import threading

        from knoa_core.runtime import OperationContext

        signal = threading.Event()
        ctx = OperationContext.create("op", "task", signal=signal)

        assert ctx.is_cancelled is False
        signal.set()
        assert ctx.is_cancelled is True
        assert ctx.child("nested").is_cancelled is True

    def test_elapsed_ms(self) -> None:
        from knoa_core.runtime import OperationContext

        ctx = OperationContext.create("op", "task")

        assert ctx.elapsed_ms >= 0


class TestErrorTracking:
    """Errors recorded on a context propagate to its ancestors."""

    def test_set_error_propagates_upwards(self) -> None:
        from knoa_core.errors import StorageError
        from knoa_core.runtime import OperationContext

        root = OperationContext.create("integrate", "feedback")
        child = root.child("update_task", component="task")
        sibling = root.child("get_task_by_id", component="task")

        record = child.set_error(
            StorageError("disk full", code="ERR_STORAGE_TEMP"), "task", "update_task"
        )

        assert child.has_error and root.has_error
        assert sibling.has_error is False
        assert root.error is record
        assert record.code == "ERR_STORAGE_TEMP"
        assert record.message == "disk full"

    def test_error_does_not_change_identity(self) -> None:
        from knoa_core.runtime import OperationContext

        ctx = OperationContext.create("op", "task")
        twin = OperationContext(
            operation="op", component="task", trace_id=ctx.trace_id, request_id=ctx.request_id
        )

        ctx.set_error(ValueError("boom"), "task", "op")

        assert ctx == twin
        assert hash(ctx) == hash(twin)
        assert ctx.error.code == "ERR_UNKNOWN"

    def test_info(self) -> None:
        from knoa_core.errors import StateError
        from knoa_core.runtime import OperationContext

        ctx = OperationContext.create("op", "task", {"adapter": "TaskManagerAdapter"})
        assert ctx.info()["hasError"] is False
        assert ctx.info()["error"] is None

        ctx.set_error(StateError("locked"), "task", "op", {"attempt": 1}, timestamp="t0")
        info = ctx.info()

        assert info["traceId"] == ctx.trace_id
        assert info["requestId"] == ctx.request_id
        assert info["depth"] == 0
        assert info["hasError"] is True
        assert info["error"] == {
            "message": "locked",
            "code": "ERR_STATE",
            "component": "task",
            "operation": "op",
            "timestamp": "t0",
            "details": {"attempt": 1},
        }
        assert info["metadata"] == {"adapter": "TaskManagerAdapter"}
