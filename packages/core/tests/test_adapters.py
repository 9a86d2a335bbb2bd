"""
Tests for the adapter framework.

Verifies:
1. The adapter template (context, validation, invocation, publication, errors)
2. End-to-end flows through Core: task creation, invalid ids, recovery,
   alerts, handler isolation and cross-adapter correlation
3. Synchronous adapters and adapters built without a Core
"""

import logging
from typing import Any

import pytest


# =============================================================================
# FAKE MANAGERS
# =============================================================================


class InMemoryTaskManager:
    """Task manager double; ``fail_with`` makes every mutation raise."""

    def __init__(self) -> None:
        self.tasks: list[dict[str, Any]] = []
        self.fail_with: BaseException | None = None

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def validate_task(self, task):
        return {"valid": bool(task.get("title")), "errors": []}

    def get_all_tasks(self):
        self._check()
        return list(self.tasks)

    def get_task_by_id(self, task_id):
        return next((t for t in self.tasks if t["id"] == task_id), None)

    def create_task(self, task_data):
        self._check()
        task = {
            "id": f"T{len(self.tasks) + 1:03d}",
            "title": task_data["title"],
            "status": "pending",
        }
        self.tasks.append(task)
        return dict(task)

    async def update_task(self, task):
        self._check()
        current = self.get_task_by_id(task["id"])
        current.update(task)
        return dict(current)

    def update_task_progress(self, task_id, progress, state):
        return {"task": {"id": task_id}, "previous_progress": 0, "previous_state": "not_started"}

    def add_git_commit_to_task(self, task_id, commit_hash):
        self._check()
        return {"id": task_id, "commits": [commit_hash]}

    def initialize_tasks(self, project_info):
        return {"project": project_info, "tasks": []}


class LinkingFeedbackManager:
    """Feedback manager whose integration calls back into a task adapter."""

    def __init__(self, task_adapter) -> None:
        self.task_adapter = task_adapter

    async def integrate_feedback_with_task(self, feedback_id, task_id):
        await self.task_adapter.update_task({"id": task_id, "feedback": feedback_id})
        return True


class FakeStateManager:
    def __init__(self) -> None:
        self.state = "uninitialized"

    def get_current_state(self):
        return self.state

    def set_state(self, state, data=None):
        previous, self.state = self.state, state
        return {"state": state, "previous_state": previous}

    def transition_to(self, target_state, data=None):
        from knoa_core.errors import StateError

        if target_state != "initialized":
            raise StateError(
                f"Transition from {self.state} to {target_state} is not allowed",
                context={"current_state": self.state, "target_state": target_state},
            )
        return self.set_state(target_state, data)

    def can_transition_to(self, target_state):
        return target_state == "initialized"

    def get_state_history(self):
        raise RuntimeError("history store unavailable")

    def get_previous_state(self):
        return None


class WorkflowManager:
    """Integration manager double that creates tasks through a task adapter."""

    def __init__(self, task_adapter) -> None:
        self.task_adapter = task_adapter
        self.calls: list[str] = []

    async def initialize_workflow(self, project_id, original_request):
        self.calls.append("initialize_workflow")
        return {
            "project": {"id": project_id, "original_request": original_request},
            "tasks": {"project": {"id": project_id}, "tasks": [{"id": "T001"}, {"id": "T002"}]},
            "session": {"session_id": "session-1"},
            "state": "session_started",
        }

    async def create_task(self, task_data):
        from knoa_core.errors import is_error_envelope

        self.calls.append("create_task")
        task = await self.task_adapter.create_task(task_data)
        if is_error_envelope(task):
            return task
        return {**task, "session_id": "session-1"}

    async def update_task_status(self, task_id, state, progress):
        self.calls.append("update_task_status")
        return {"task": {"id": task_id, "status": "in_progress"}, "previous_state": "planning"}

    async def resolve_feedback(self, feedback_id, resolution=None):
        return {"id": feedback_id, "status": "wontfix", "resolution": resolution}


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def core():
    from knoa_core.runtime import sequential_ids
    from knoa_core.runtime.core import Core, CoreConfig

    return Core.build(
        CoreConfig(
            history_enabled=True,
            trace_id_factory=sequential_ids("trace"),
            request_id_factory=sequential_ids("req"),
        )
    )


@pytest.fixture
def recorded(core):
    """Every (name, payload) delivered on the bus, in order."""
    events: list[tuple[str, Any]] = []
    core.bus.on("*", lambda payload, name: events.append((name, payload)))
    return events


@pytest.fixture
def task_manager():
    return InMemoryTaskManager()


@pytest.fixture
def task_adapter(task_manager, core):
    from knoa_core.adapters import TaskManagerAdapter

    return TaskManagerAdapter(task_manager, core=core)


def names(events):
    return [name for name, _ in events]


# =============================================================================
# HELPERS
# =============================================================================


class TestHelpers:
    """Test adapter helper functions."""

    def test_component_for(self) -> None:
        from knoa_core.adapters import (
            BaseAdapter,
            StateManagerAdapter,
            TaskManagerAdapter,
            component_for,
        )

        class ReportAdapter(BaseAdapter):
            pass

        assert component_for(TaskManagerAdapter) == "task"
        assert component_for(StateManagerAdapter) == "state"
        assert component_for(ReportAdapter) == "report"
        assert ReportAdapter(object()).component == "report"

    def test_summarize_arguments(self) -> None:
        from knoa_core.adapters import summarize_arguments

        summary = summarize_arguments(
            {"id": "T001", "count": 2, "data": {"a": 1, "b": 2}, "items": [1], "long": "x" * 100}
        )

        assert summary["id"] == "T001"
        assert summary["count"] == 2
        assert summary["data"] == "<2 keys>"
        assert summary["items"] == "<list>"
        assert summary["long"].endswith("...")
        assert len(summary["long"]) == 83

    def test_manager_required(self) -> None:
        from knoa_core.adapters import TaskManagerAdapter
        from knoa_core.errors import ConfigurationError

        with pytest.raises(ConfigurationError) as exc_info:
            TaskManagerAdapter(None)

        assert exc_info.value.code == "ERR_ADAPTER_MANAGER"


class TestParamSchema:
    """Test declarative argument validation."""

    def test_missing_required(self) -> None:
        from knoa_core.adapters import Param, ParamSchema
        from knoa_core.errors import ValidationError

        schema = ParamSchema(task_id=Param())

        with pytest.raises(ValidationError) as exc_info:
            schema.validate({})

        assert str(exc_info.value) == "Parameter 'task_id' is required"
        assert exc_info.value.context == {"argument": "task_id", "reason": "missing"}

    def test_optional_skipped_when_absent(self) -> None:
        from knoa_core.adapters import Param, ParamSchema, is_int

        ParamSchema(attempt=Param(required=False, checks=(is_int(),))).validate({})

    def test_first_failing_check_reported(self) -> None:
        from knoa_core.adapters import Param, ParamSchema, in_range, is_number
        from knoa_core.errors import ValidationError

        schema = ParamSchema(progress=Param(checks=(is_number(), in_range(0, 100))))

        with pytest.raises(ValidationError) as exc_info:
            schema.validate({"progress": 150})

        assert exc_info.value.context["expected"] == "a number between 0 and 100"
        assert exc_info.value.context["received"] == "int"

    def test_booleans_are_not_numbers(self) -> None:
        from knoa_core.adapters import is_int, is_number

        assert not is_int()(True)
        assert not is_number()(False)

    def test_any_of(self) -> None:
        from knoa_core.adapters import any_of, is_int, matches

        check = any_of(is_int(), matches(r"\d+"))

        assert check(3)
        assert check("42")
        assert not check("x")
        assert check.description == "an integer or a string matching \\d+"

    def test_one_of(self) -> None:
        from knoa_core.adapters import one_of

        check = one_of(("open", "resolved"))

        assert check("open")
        assert not check("closed")


# =============================================================================
# END-TO-END FLOWS
# =============================================================================


class TestTaskCreation:
    """A successful adapter call publishes modern, global and legacy names."""

    @pytest.mark.asyncio
    async def test_emission_order_and_envelope(self, task_adapter, recorded) -> None:
        result = await task_adapter.create_task({"title": "write the parser"})

        assert result == {"id": "T001", "title": "write the parser", "status": "pending"}
        assert names(recorded) == ["task:task_created", "event", "task:created"]

        modern = recorded[0][1]
        assert modern["id"] == "T001"
        assert modern["title"] == "write the parser"
        assert modern["status"] == "pending"
        assert modern["component"] == "task"
        assert modern["action"] == "task_created"
        assert modern["traceId"] == "trace-1"
        assert modern["requestId"] == "req-1"
        assert "timestamp" in modern

        assert recorded[1][1]["type"] == "task:task_created"
        assert dict(recorded[1][1]) == {**dict(modern), "type": "task:task_created"}
        assert recorded[2][1] == modern

    @pytest.mark.asyncio
    async def test_alias_and_modern_subscribers_see_identical_envelopes(
        self, task_adapter, core
    ) -> None:
        modern, legacy = [], []
        core.bus.on("task:task_created", lambda payload, name: modern.append(payload))
        core.bus.on("task:created", lambda payload, name: legacy.append(payload))

        await task_adapter.create_task({"title": "alias parity"})

        assert modern == legacy
        assert modern[0] is legacy[0]

    @pytest.mark.asyncio
    async def test_query_methods_publish_nothing(self, task_adapter, recorded) -> None:
        assert await task_adapter.get_all_tasks() == []
        assert await task_adapter.get_task_by_id("T001") is None

        assert recorded == []

    @pytest.mark.asyncio
    async def test_async_manager_method_awaited(self, task_adapter, task_manager, recorded) -> None:
        await task_adapter.create_task({"title": "first"})

        updated = await task_adapter.update_task({"id": "T001", "status": "in_progress"})

        assert updated["status"] == "in_progress"
        assert "task:task_updated" in names(recorded)
        assert "task:updated" in names(recorded)

    @pytest.mark.asyncio
    async def test_history_records_standardized_emissions(self, task_adapter, core) -> None:
        await task_adapter.create_task({"title": "with history"})

        history = [entry.event for entry in core.bus.get_history()]

        assert history == ["task:task_created", "event", "task:created"]


class TestInvalidTaskId:
    """Validation failures become envelopes and error:occurred events."""

    @pytest.mark.asyncio
    async def test_bad_task_id(self, task_adapter, task_manager, recorded) -> None:
        from knoa_core.errors import ValidationError

        result = await task_adapter.add_git_commit_to_task("bad-id", "abc123")

        assert result["error"] is True
        assert result["code"] == ValidationError.default_code
        assert result["operation"] == "add_git_commit_to_task"
        assert result["recoverable"] is True
        assert "T001" in result["message"]
        assert result["context"]["argument"] == "task_id"

        assert names(recorded) == ["error:occurred", "event"]
        occurred = recorded[0][1]
        assert occurred["kind"] == "validation"
        assert occurred["context"]["argument"] == "task_id"
        assert task_manager.tasks == []

    @pytest.mark.asyncio
    async def test_missing_title(self, task_adapter) -> None:
        result = await task_adapter.create_task({})

        assert result["error"] is True
        assert result["message"] == "Task requires a title"

    @pytest.mark.asyncio
    async def test_progress_out_of_range(self, task_adapter) -> None:
        result = await task_adapter.update_task_progress("T001", 120, "development")

        assert result["context"]["argument"] == "progress"

    @pytest.mark.asyncio
    async def test_validation_errors_never_raise(self, core) -> None:
        from knoa_core.adapters import StateManagerAdapter

        adapter = StateManagerAdapter(FakeStateManager(), core=core)

        result = adapter.set_state(None)  # type: ignore[arg-type]

        assert result["error"] is True
        assert result["context"]["argument"] == "state"


class TestRecovery:
    """Recovered errors return the strategy's value."""

    @pytest.mark.asyncio
    async def test_recovery_by_code(self, task_adapter, task_manager, core, recorded) -> None:
        from knoa_core.errors import StorageError

        core.error_handler.register_recovery_strategy(
            "ERR_STORAGE_TEMP", lambda error, operation, component, context: {"recovered": True}
        )
        task_manager.fail_with = StorageError("disk busy", code="ERR_STORAGE_TEMP")

        result = await task_adapter.create_task({"title": "flaky"})

        assert result == {"recovered": True}
        assert names(recorded).count("error:occurred") == 1
        assert "task:task_created" not in names(recorded)
        assert "error:recovery_succeeded" in names(recorded)

    @pytest.mark.asyncio
    async def test_unrecovered_manager_error(self, task_adapter, task_manager) -> None:
        from knoa_core.errors import StorageError

        task_manager.fail_with = StorageError("disk full")

        result = await task_adapter.create_task({"title": "x"})

        assert result["error"] is True
        assert result["code"] == "ERR_STORAGE"
        assert result["context"]["component"] == "task"
        assert result["context"]["operation"] == "create_task"

    @pytest.mark.asyncio
    async def test_foreign_exception_wrapped(self, task_adapter, task_manager) -> None:
        task_manager.fail_with = KeyError("title")

        result = await task_adapter.get_all_tasks()

        assert result["code"] == "ERR_APPLICATION"
        assert result["recoverable"] is False


class TestCancellation:
    """A cancelled context signal reaches the manager."""

    @pytest.fixture
    def cancellable_adapter(self, core):
        from knoa_core.adapters import TaskManagerAdapter
        from knoa_core.errors import raise_if_cancelled

        class CancellableTaskManager(InMemoryTaskManager):
            async def create_task(self, task_data):
                raise_if_cancelled()
                return super().create_task(task_data)

        manager = CancellableTaskManager()
        return TaskManagerAdapter(manager, core=core), manager

    @pytest.mark.asyncio
    async def test_cancelled_signal_returns_timeout_envelope(
        self, cancellable_adapter, recorded
    ) -> None:
        import threading

        from knoa_core.runtime import OperationContext

        adapter, manager = cancellable_adapter
        signal = threading.Event()
        signal.set()
        ctx = OperationContext.create("plan", "cli", signal=signal)

        result = await adapter.create_task({"title": "late"}, context=ctx)

        assert result["error"] is True
        assert result["code"] == "ERR_TIMEOUT"
        assert result["recoverable"] is True
        assert result["context"]["reason"] == "cancelled"
        assert manager.tasks == []
        assert "task:task_created" not in names(recorded)

    @pytest.mark.asyncio
    async def test_unset_signal_runs_normally(self, cancellable_adapter) -> None:
        import threading

        from knoa_core.runtime import OperationContext

        adapter, _ = cancellable_adapter
        ctx = OperationContext.create("plan", "cli", signal=threading.Event())

        result = await adapter.create_task({"title": "on time"}, context=ctx)

        assert result["id"] == "T001"

    @pytest.mark.asyncio
    async def test_nested_call_inherits_signal(self, cancellable_adapter) -> None:
        import threading

        from knoa_core.runtime import OperationContext

        adapter, _ = cancellable_adapter
        signal = threading.Event()
        outer = OperationContext.create("plan", "cli", signal=signal)
        signal.set()

        async with outer.scope():
            result = await adapter.create_task({"title": "nested"})

        assert result["code"] == "ERR_TIMEOUT"


class TestAlerts:
    """A threshold over state errors fires exactly once."""

    @pytest.mark.asyncio
    async def test_threshold_fires_on_third_state_error(self, core, recorded) -> None:
        from knoa_core.errors import StateError

        core.error_handler.register_alert_threshold(
            "state_errors",
            lambda stats, error: stats.count("state") > 2 and stats.alert_counts["state_errors"] == 0,
            severity="critical",
        )

        for _ in range(3):
            await core.error_handler.handle(StateError("bad move"), "state", "transition_to")

        alerts = [payload for name, payload in recorded if name == "error:alert_triggered"]
        assert len(alerts) == 1
        assert alerts[0]["threshold"] == "state_errors"
        assert alerts[0]["severity"] == "critical"
        assert names(recorded).count("error:occurred") == 3
        # The alert follows the third error:occurred
        third = [i for i, n in enumerate(names(recorded)) if n == "error:occurred"][2]
        assert names(recorded).index("error:alert_triggered") > third


class TestHandlerIsolation:
    """A throwing subscriber never affects the caller."""

    @pytest.mark.asyncio
    async def test_throwing_subscriber(self, core, task_adapter, caplog) -> None:
        received = []

        def broken_subscriber(payload, name):
            raise RuntimeError("subscriber bug")

        core.bus.on("task:task_created", broken_subscriber)
        core.bus.on("task:task_created", lambda payload, name: received.append(payload))

        with caplog.at_level(logging.ERROR, logger="knoa_core.events.bus"):
            result = await task_adapter.create_task({"title": "isolated"})

        assert result["id"] == "T001"
        assert received[0]["title"] == "isolated"
        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert len(errors) == 1
        assert "broken_subscriber" in errors[0].getMessage()
        assert core.error_handler.get_error_statistics().total_errors == 0

    def test_standardized_path(self, core, caplog) -> None:
        received = []

        def broken(payload, name):
            raise RuntimeError("boom")

        core.bus.on("x:y", broken)
        core.bus.on("x:y", lambda payload, name: received.append(payload))

        with caplog.at_level(logging.ERROR, logger="knoa_core.events.bus"):
            core.bus.emit_standardized("x", "y", {"k": 1})

        assert received[0]["k"] == 1
        assert received[0]["component"] == "x"
        assert received[0]["action"] == "y"
        assert "broken" in caplog.text


class TestCrossCorrelation:
    """Nested adapter calls share a trace and get their own request ids."""

    @pytest.mark.asyncio
    async def test_nested_calls(self, core, task_adapter, recorded) -> None:
        from knoa_core.adapters import FeedbackManagerAdapter

        await task_adapter.create_task({"title": "parent"})  # trace-1 / req-1
        recorded.clear()
        feedback_adapter = FeedbackManagerAdapter(LinkingFeedbackManager(task_adapter), core=core)

        result = await feedback_adapter.integrate_feedback_with_task("T001-1", "T001")

        assert result is True
        inner = [p for n, p in recorded if n == "task:task_updated"][0]
        outer = [p for n, p in recorded if n == "feedback:integrated_with_task"][0]

        assert outer["traceId"] == "trace-2"
        assert inner["traceId"] == "trace-2"
        assert outer["requestId"] == "req-2"
        assert inner["requestId"] == "req-3"
        assert all(p["traceId"] == "trace-2" for _, p in recorded)
        assert names(recorded).index("task:task_updated") < names(recorded).index(
            "feedback:integrated_with_task"
        )

    @pytest.mark.asyncio
    async def test_failed_nested_call_suppresses_outer_event(
        self, core, task_adapter, task_manager, recorded
    ) -> None:
        from knoa_core.adapters import FeedbackManagerAdapter
        from knoa_core.errors import StateError

        await task_adapter.create_task({"title": "parent"})
        recorded.clear()
        task_manager.fail_with = StateError("locked")
        feedback_adapter = FeedbackManagerAdapter(LinkingFeedbackManager(task_adapter), core=core)

        result = await feedback_adapter.integrate_feedback_with_task("T001-1", "T001")

        assert result is True
        assert "error:occurred" in names(recorded)
        assert "task:task_updated" not in names(recorded)
        assert "feedback:integrated_with_task" not in names(recorded)

    @pytest.mark.asyncio
    async def test_sibling_calls_unaffected_by_failed_nested_call(
        self, core, task_adapter, task_manager, recorded
    ) -> None:
        from knoa_core.errors import StateError
        from knoa_core.runtime import OperationContext

        outer = OperationContext.create("plan", "cli")
        async with outer.scope():
            task_manager.fail_with = StateError("locked")
            await task_adapter.create_task({"title": "first"})
            task_manager.fail_with = None
            await task_adapter.create_task({"title": "second"})

        assert outer.has_error
        assert names(recorded).count("task:task_created") == 1

    @pytest.mark.asyncio
    async def test_caller_context_used_as_is(self, core, task_adapter, recorded) -> None:
        from knoa_core.runtime import OperationContext

        ctx = OperationContext.create("plan", "cli")

        await task_adapter.create_task({"title": "given"}, context=ctx)

        assert recorded[0][1]["traceId"] == ctx.trace_id
        assert recorded[0][1]["requestId"] == ctx.request_id

    @pytest.mark.asyncio
    async def test_errors_carry_correlation(self, core, task_adapter) -> None:
        result = await task_adapter.get_task_by_id("nope")

        assert result["context"]["traceId"] == "trace-1"
        assert result["context"]["requestId"] == "req-1"


# =============================================================================
# INTEGRATION ADAPTER
# =============================================================================


class TestIntegrationAdapter:
    """The integration adapter is an outer call around the domain adapters."""

    @pytest.fixture
    def workflow(self, task_adapter):
        return WorkflowManager(task_adapter)

    @pytest.fixture
    def adapter(self, workflow, core):
        from knoa_core.adapters import IntegrationManagerAdapter

        return IntegrationManagerAdapter(workflow, core=core)

    @pytest.mark.asyncio
    async def test_create_task_correlates_nested_event(self, adapter, recorded) -> None:
        task = await adapter.create_task({"title": "write the parser"})

        assert task == {
            "id": "T001",
            "title": "write the parser",
            "status": "pending",
            "session_id": "session-1",
        }
        inner = [p for n, p in recorded if n == "task:task_created"][0]
        outer = [p for n, p in recorded if n == "integration:task_created"][0]
        assert outer.payload == {"id": "T001", "title": "write the parser", "sessionId": "session-1"}
        assert inner["traceId"] == outer["traceId"] == "trace-1"
        assert outer["requestId"] == "req-1"
        assert inner["requestId"] == "req-2"
        assert names(recorded).index("task:task_created") < names(recorded).index(
            "integration:task_created"
        )

    @pytest.mark.asyncio
    async def test_failed_step_returns_its_envelope(
        self, adapter, task_manager, recorded
    ) -> None:
        from knoa_core.errors import StateError, is_error_envelope

        task_manager.fail_with = StateError("locked")

        result = await adapter.create_task({"title": "write the parser"})

        assert is_error_envelope(result)
        assert result["code"] == "ERR_STATE"
        assert result["context"]["component"] == "task"
        assert names(recorded).count("error:occurred") == 1
        assert "integration:task_created" not in names(recorded)

    @pytest.mark.asyncio
    async def test_missing_title_rejected_before_manager(self, adapter, workflow) -> None:
        result = await adapter.create_task({"description": "untitled"})

        assert result["code"] == "ERR_VALIDATION"
        assert result["context"]["argument"] == "title"
        assert workflow.calls == []

    @pytest.mark.asyncio
    async def test_initialize_workflow_payload(self, adapter, recorded) -> None:
        await adapter.initialize_workflow("knoa", "Track the parser work")

        payload = [p for n, p in recorded if n == "integration:workflow_initialized"][0]
        assert payload.payload == {
            "projectId": "knoa",
            "sessionId": "session-1",
            "taskCount": 2,
            "state": "session_started",
        }
        assert "workflow:initialized" in names(recorded)

    @pytest.mark.asyncio
    async def test_update_task_status_validates_progress(self, adapter, workflow) -> None:
        result = await adapter.update_task_status("T001", "in_development", 150)

        assert result["code"] == "ERR_VALIDATION"
        assert workflow.calls == []

    @pytest.mark.asyncio
    async def test_update_task_status_payload(self, adapter, recorded) -> None:
        await adapter.update_task_status("T001", "in_development", 40)

        payload = [p for n, p in recorded if n == "integration:task_status_updated"][0]
        assert payload.payload == {
            "id": "T001",
            "state": "in_development",
            "progress": 40,
            "status": "in_progress",
            "previousState": "planning",
        }

    @pytest.mark.asyncio
    async def test_resolve_feedback_payload(self, adapter, recorded) -> None:
        await adapter.resolve_feedback("T001-1", {"status": "wontfix", "comment": "by design"})

        payload = [p for n, p in recorded if n == "integration:feedback_resolved"][0]
        assert payload.payload == {"feedbackId": "T001-1", "status": "wontfix", "comment": "by design"}


# =============================================================================
# SYNCHRONOUS ADAPTERS
# =============================================================================


class TestStateAdapter:
    """Test the synchronous state adapter."""

    @pytest.fixture
    def adapter(self, core):
        from knoa_core.adapters import StateManagerAdapter

        return StateManagerAdapter(FakeStateManager(), core=core)

    def test_transition_publishes(self, adapter, recorded) -> None:
        result = adapter.transition_to("initialized", {"sessionId": "session-1"})

        assert result["state"] == "initialized"
        assert names(recorded) == ["state:state_transition", "event", "state:transition"]
        payload = recorded[0][1]
        assert payload["fromState"] == "uninitialized"
        assert payload["toState"] == "initialized"
        assert payload["sessionId"] == "session-1"

    def test_set_state_publishes_previous(self, adapter, recorded) -> None:
        adapter.set_state("initialized")

        payload = recorded[0][1]
        assert payload["state"] == "initialized"
        assert payload["previousState"] == "uninitialized"
        assert payload["sessionId"] is None

    def test_illegal_transition_returns_envelope(self, adapter, recorded) -> None:
        result = adapter.transition_to("task_in_progress")

        assert result["error"] is True
        assert result["code"] == "ERR_STATE"
        assert result["context"]["target_state"] == "task_in_progress"
        assert "state:state_transition" not in names(recorded)

    def test_queries_raise(self, adapter) -> None:
        from knoa_core.errors import ApplicationError

        assert adapter.get_current_state() == "uninitialized"
        assert adapter.can_transition_to("initialized") is True
        assert adapter.get_previous_state() is None
        with pytest.raises(ApplicationError, match="history store unavailable"):
            adapter.get_state_history()

    def test_async_manager_rejected_by_sync_template(self, core) -> None:
        from knoa_core.adapters import StateManagerAdapter

        class AsyncStateManager(FakeStateManager):
            async def set_state(self, state, data=None):
                return {}

        adapter = StateManagerAdapter(AsyncStateManager(), core=core)

        result = adapter.set_state("initialized")

        assert result["error"] is True
        assert result["code"] == "ERR_CONFIGURATION"


class TestAdapterWithoutCore:
    """Adapters degrade gracefully without collaborators."""

    @pytest.mark.asyncio
    async def test_no_bus_no_handler(self, task_manager) -> None:
        from knoa_core.adapters import TaskManagerAdapter

        adapter = TaskManagerAdapter(task_manager)

        created = await adapter.create_task({"title": "quiet"})
        failed = await adapter.add_git_commit_to_task("bad", "abc123")

        assert created["id"] == "T001"
        assert failed["error"] is True
        assert failed["context"]["argument"] == "task_id"

    @pytest.mark.asyncio
    async def test_bus_without_handler_publishes_error(self, task_manager) -> None:
        from knoa_core.adapters import TaskManagerAdapter
        from knoa_core.errors import StateError
        from knoa_core.events import EventBus

        bus = EventBus()
        seen = []
        bus.on("error:occurred", lambda payload, name: seen.append(payload))
        adapter = TaskManagerAdapter(task_manager, event_bus=bus)
        task_manager.fail_with = StateError("locked")

        result = await adapter.create_task({"title": "x"})

        assert result["code"] == "ERR_STATE"
        assert seen[0]["errorComponent"] == "task"

    @pytest.mark.asyncio
    async def test_raising_query_without_handler(self) -> None:
        from knoa_core.adapters import StateManagerAdapter
        from knoa_core.errors import ApplicationError

        adapter = StateManagerAdapter(FakeStateManager())

        with pytest.raises(ApplicationError):
            adapter.get_state_history()

    @pytest.mark.asyncio
    async def test_explicit_bus_and_registry_get_own_shim(self, task_manager) -> None:
        from knoa_core.adapters import TaskManagerAdapter
        from knoa_core.events import EventBus, EventNameRegistry

        bus = EventBus()
        registry = EventNameRegistry()
        registry.register_alias("task:made", "task:task_created")
        seen = []
        bus.on("task:made", lambda payload, name: seen.append(name))

        adapter = TaskManagerAdapter(task_manager, event_bus=bus, registry=registry)
        await adapter.create_task({"title": "custom alias"})

        assert seen == ["task:made"]

    @pytest.mark.asyncio
    async def test_payload_failure_is_logged_not_raised(self, task_manager, core, caplog) -> None:
        from knoa_core.adapters import BaseAdapter

        class BrokenPayloadAdapter(BaseAdapter):
            component = "task"

            async def create_task(self, task_data):
                return await self._execute_async(
                    "create_task",
                    {},
                    lambda: self.manager.create_task(task_data),
                    action="task_created",
                    payload=lambda task: task["missing"],
                )

        adapter = BrokenPayloadAdapter(task_manager, core=core)

        with caplog.at_level(logging.ERROR):
            result = await adapter.create_task({"title": "x"})

        assert result["id"] == "T001"
        assert "Failed to publish task:task_created" in caplog.text
