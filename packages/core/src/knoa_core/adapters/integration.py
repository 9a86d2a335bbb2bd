"""
Integration manager adapter.

The integration manager drives the task, session, feedback and state
adapters, so every call here is an outer adapter call: nested calls
share its trace, and a failed nested call suppresses its success event.
"""

from typing import Any

from knoa_core.adapters.base import BaseAdapter
from knoa_core.adapters.feedback import FEEDBACK_ID
from knoa_core.adapters.schema import (
    ENTITY,
    SESSION_ID,
    TASK_ID,
    Param,
    ParamSchema,
    in_range,
    is_str,
    one_of,
)
from knoa_core.ports.managers import PROGRESS_STATES, Entity
from knoa_core.runtime.context import OperationContext

_INITIALIZE = ParamSchema(
    project_id=Param(checks=(is_str(),), message="Project id must be a non-empty string"),
    original_request=Param(
        checks=(is_str(),), message="Original request must be a non-empty string"
    ),
)
_START = ParamSchema(previous_session_id=Param(required=False, checks=SESSION_ID.checks))
_END = ParamSchema(session_id=SESSION_ID)
_CREATE_TASK = ParamSchema(
    task_data=ENTITY,
    title=Param(checks=(is_str(),), message="Task requires a title"),
)
_TASK_STATUS = ParamSchema(
    task_id=TASK_ID,
    state=Param(checks=(one_of(PROGRESS_STATES),)),
    progress=Param(
        checks=(in_range(0, 100),), message="Progress must be a number between 0 and 100"
    ),
)
_COLLECT = ParamSchema(task_id=TASK_ID, feedback_data=Param(required=False, checks=ENTITY.checks))
_RESOLVE = ParamSchema(
    feedback_id=FEEDBACK_ID, resolution=Param(required=False, checks=ENTITY.checks)
)


def _get(result: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(result, dict):
            return None
        result = result.get(key)
    return result


class IntegrationManagerAdapter(BaseAdapter):
    """
    Wraps an IntegrationManager.

    Events:
        integration:workflow_initialized, integration:session_started,
        integration:session_ended, integration:task_created,
        integration:task_status_updated, integration:feedback_collected,
        integration:feedback_resolved
    """

    component = "integration"

    async def initialize_workflow(
        self,
        project_id: str,
        original_request: str,
        context: OperationContext | None = None,
    ) -> Any:
        """Start a project: task list, first session and ``initialized`` state."""
        return await self._execute_async(
            "initialize_workflow",
            {"project_id": project_id, "original_request": original_request},
            lambda: self.manager.initialize_workflow(project_id, original_request),
            schema=_INITIALIZE,
            action="workflow_initialized",
            payload=lambda result: {
                "projectId": project_id,
                "sessionId": _get(result, "session", "session_id"),
                "taskCount": len(_get(result, "tasks", "tasks") or []),
                "state": _get(result, "state"),
            },
            context=context,
        )

    async def start_session(
        self,
        previous_session_id: str | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "start_session",
            {"previous_session_id": previous_session_id},
            lambda: self.manager.start_session(previous_session_id),
            schema=_START,
            action="session_started",
            payload=lambda session: {
                "sessionId": _get(session, "session_id"),
                "previousSessionId": _get(session, "previous_session_id"),
            },
            context=context,
        )

    async def end_session(
        self, session_id: str, context: OperationContext | None = None
    ) -> Any:
        return await self._execute_async(
            "end_session",
            {"session_id": session_id},
            lambda: self.manager.end_session(session_id),
            schema=_END,
            action="session_ended",
            payload=lambda session: {
                "sessionId": session_id,
                "endedAt": _get(session, "ended_at"),
            },
            context=context,
        )

    async def create_task(
        self, task_data: Entity, context: OperationContext | None = None
    ) -> Any:
        title = task_data.get("title") if isinstance(task_data, dict) else None
        return await self._execute_async(
            "create_task",
            {"task_data": task_data, "title": title},
            lambda: self.manager.create_task(task_data),
            schema=_CREATE_TASK,
            action="task_created",
            payload=lambda task: {
                "id": _get(task, "id"),
                "title": _get(task, "title"),
                "sessionId": _get(task, "session_id"),
            },
            context=context,
        )

    async def update_task_status(
        self,
        task_id: str,
        state: str,
        progress: int,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "update_task_status",
            {"task_id": task_id, "state": state, "progress": progress},
            lambda: self.manager.update_task_status(task_id, state, progress),
            schema=_TASK_STATUS,
            action="task_status_updated",
            payload=lambda result: {
                "id": task_id,
                "state": state,
                "progress": progress,
                "status": _get(result, "task", "status"),
                "previousState": _get(result, "previous_state"),
            },
            context=context,
        )

    async def collect_feedback(
        self,
        task_id: str,
        feedback_data: Entity | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "collect_feedback",
            {"task_id": task_id, "feedback_data": feedback_data},
            lambda: self.manager.collect_feedback(task_id, feedback_data),
            schema=_COLLECT,
            action="feedback_collected",
            payload=lambda feedback: {
                "feedbackId": _get(feedback, "id"),
                "taskId": task_id,
                "attempt": _get(feedback, "attempt"),
                "itemCount": len(_get(feedback, "items") or []),
            },
            context=context,
        )

    async def resolve_feedback(
        self,
        feedback_id: str,
        resolution: Entity | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "resolve_feedback",
            {"feedback_id": feedback_id, "resolution": resolution},
            lambda: self.manager.resolve_feedback(feedback_id, resolution),
            schema=_RESOLVE,
            action="feedback_resolved",
            payload=lambda feedback: {
                "feedbackId": feedback_id,
                "status": _get(feedback, "status"),
                "comment": _get(feedback, "resolution", "comment"),
            },
            context=context,
        )

    async def get_workflow_status(self, context: OperationContext | None = None) -> Any:
        return await self._execute_async(
            "get_workflow_status", {}, self.manager.get_workflow_status, context=context
        )
