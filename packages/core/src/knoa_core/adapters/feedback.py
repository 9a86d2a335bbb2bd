"""Feedback manager adapter."""

from typing import Any

from knoa_core.adapters.base import BaseAdapter
from knoa_core.adapters.schema import (
    ENTITY,
    SESSION_ID,
    TASK_ID,
    Param,
    ParamSchema,
    in_range,
    is_int,
    is_str,
    one_of,
)
from knoa_core.ports.managers import FEEDBACK_STATUSES, Entity
from knoa_core.runtime.context import OperationContext

FEEDBACK_ID = Param(checks=(is_str(),))

_VALIDATE = ParamSchema(feedback=ENTITY)
_BY_TASK = ParamSchema(task_id=TASK_ID)
_CREATE = ParamSchema(
    task_id=TASK_ID,
    attempt=Param(required=False, checks=(is_int(), in_range(1, 1000))),
)
_PRIORITIZE = ParamSchema(feedback=ENTITY)
_STATUS = ParamSchema(
    feedback=ENTITY,
    new_status=Param(
        checks=(one_of(FEEDBACK_STATUSES),),
        message=f"Feedback status must be one of: {', '.join(FEEDBACK_STATUSES)}",
    ),
)
_WITH_SESSION = ParamSchema(feedback_id=FEEDBACK_ID, session_id=SESSION_ID)
_WITH_TASK = ParamSchema(feedback_id=FEEDBACK_ID, task_id=TASK_ID)


def _field(entity: Any, key: str) -> Any:
    return entity.get(key) if isinstance(entity, dict) else None


class FeedbackManagerAdapter(BaseAdapter):
    """
    Wraps a FeedbackManager.

    Events:
        feedback:feedback_created, feedback:feedback_prioritized,
        feedback:status_updated, feedback:integrated_with_session,
        feedback:integrated_with_task
    """

    component = "feedback"

    def validate_feedback(
        self, feedback: Entity, context: OperationContext | None = None
    ) -> Any:
        """Validate feedback; returns the validator's verdict."""
        return self._execute(
            "validate_feedback",
            {"feedback": feedback},
            lambda: self.manager.validate_feedback(feedback),
            schema=_VALIDATE,
            context=context,
        )

    async def get_pending_feedback(self, context: OperationContext | None = None) -> Any:
        return await self._execute_async(
            "get_pending_feedback", {}, self.manager.get_pending_feedback, context=context
        )

    async def get_feedback_by_task_id(
        self, task_id: str, context: OperationContext | None = None
    ) -> Any:
        return await self._execute_async(
            "get_feedback_by_task_id",
            {"task_id": task_id},
            lambda: self.manager.get_feedback_by_task_id(task_id),
            schema=_BY_TASK,
            context=context,
        )

    async def create_new_feedback(
        self,
        task_id: str,
        attempt: int = 1,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "create_new_feedback",
            {"task_id": task_id, "attempt": attempt},
            lambda: self.manager.create_new_feedback(task_id, attempt),
            schema=_CREATE,
            action="feedback_created",
            payload=lambda feedback: {
                "id": feedback.get("id"),
                "taskId": task_id,
                "attempt": attempt,
            },
            context=context,
        )

    async def prioritize_feedback(
        self, feedback: Entity, context: OperationContext | None = None
    ) -> Any:
        return await self._execute_async(
            "prioritize_feedback",
            {"feedback": feedback},
            lambda: self.manager.prioritize_feedback(feedback),
            schema=_PRIORITIZE,
            action="feedback_prioritized",
            payload=lambda prioritized: {
                "id": _field(feedback, "id") or prioritized.get("id"),
                "taskId": _field(feedback, "task_id") or prioritized.get("task_id"),
                "priorities": prioritized.get("priorities", {}),
            },
            context=context,
        )

    async def update_feedback_status(
        self,
        feedback: Entity,
        new_status: str,
        context: OperationContext | None = None,
    ) -> Any:
        previous_status = _field(feedback, "status")
        return await self._execute_async(
            "update_feedback_status",
            {"feedback": feedback, "new_status": new_status},
            lambda: self.manager.update_feedback_status(feedback, new_status),
            schema=_STATUS,
            action="status_updated",
            payload=lambda updated: {
                "id": _field(feedback, "id"),
                "taskId": _field(feedback, "task_id"),
                "previousStatus": previous_status,
                "newStatus": new_status,
            },
            context=context,
        )

    async def integrate_feedback_with_session(
        self,
        feedback_id: str,
        session_id: str,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "integrate_feedback_with_session",
            {"feedback_id": feedback_id, "session_id": session_id},
            lambda: self.manager.integrate_feedback_with_session(feedback_id, session_id),
            schema=_WITH_SESSION,
            action="integrated_with_session",
            payload=lambda result: {
                "feedbackId": feedback_id,
                "sessionId": session_id,
                "success": bool(result),
            },
            context=context,
        )

    async def integrate_feedback_with_task(
        self,
        feedback_id: str,
        task_id: str,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "integrate_feedback_with_task",
            {"feedback_id": feedback_id, "task_id": task_id},
            lambda: self.manager.integrate_feedback_with_task(feedback_id, task_id),
            schema=_WITH_TASK,
            action="integrated_with_task",
            payload=lambda result: {
                "feedbackId": feedback_id,
                "taskId": task_id,
                "success": bool(result),
            },
            context=context,
        )
