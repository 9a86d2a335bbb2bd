"""Session manager adapter."""

from typing import Any

from knoa_core.adapters.base import BaseAdapter
from knoa_core.adapters.schema import (
    COMMIT_HASH,
    ENTITY,
    SESSION_ID,
    TASK_ID,
    Param,
    ParamSchema,
)
from knoa_core.ports.managers import Entity
from knoa_core.runtime.context import OperationContext

_VALIDATE = ParamSchema(session=ENTITY)
_BY_ID = ParamSchema(session_id=SESSION_ID)
_CREATE = ParamSchema(previous_session_id=Param(required=False, checks=SESSION_ID.checks))
_UPDATE = ParamSchema(session_id=SESSION_ID, update_data=ENTITY)
_SESSION_TASK = ParamSchema(session_id=SESSION_ID, task_id=TASK_ID)
_COMMIT = ParamSchema(session_id=SESSION_ID, commit_hash=COMMIT_HASH)


def _session_id(session: Entity) -> Any:
    return session.get("session_id") if isinstance(session, dict) else None


class SessionManagerAdapter(BaseAdapter):
    """
    Wraps a SessionManager.

    Events:
        session:session_created, session:session_updated,
        session:session_ended, session:task_added, session:task_removed,
        session:git_commit_added
    """

    component = "session"

    def validate_session(
        self, session: Entity, context: OperationContext | None = None
    ) -> Any:
        """Validate a session; returns the validator's verdict."""
        return self._execute(
            "validate_session",
            {"session": session},
            lambda: self.manager.validate_session(session),
            schema=_VALIDATE,
            context=context,
        )

    async def get_latest_session(self, context: OperationContext | None = None) -> Any:
        return await self._execute_async(
            "get_latest_session", {}, self.manager.get_latest_session, context=context
        )

    async def get_session_by_id(
        self, session_id: str, context: OperationContext | None = None
    ) -> Any:
        return await self._execute_async(
            "get_session_by_id",
            {"session_id": session_id},
            lambda: self.manager.get_session_by_id(session_id),
            schema=_BY_ID,
            context=context,
        )

    async def create_new_session(
        self,
        previous_session_id: str | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        """Start a session (handing over from ``previous_session_id``)."""
        return await self._execute_async(
            "create_new_session",
            {"previous_session_id": previous_session_id},
            lambda: self.manager.create_new_session(previous_session_id),
            schema=_CREATE,
            action="session_created",
            payload=lambda session: {
                "sessionId": _session_id(session),
                "previousSessionId": session.get("previous_session_id"),
            },
            context=context,
        )

    async def update_session(
        self,
        session_id: str,
        update_data: Entity,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "update_session",
            {"session_id": session_id, "update_data": update_data},
            lambda: self.manager.update_session(session_id, update_data),
            schema=_UPDATE,
            action="session_updated",
            payload=lambda session: {
                "sessionId": session_id,
                "updates": sorted(update_data),
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
            schema=_BY_ID,
            action="session_ended",
            payload=lambda session: {
                "sessionId": session_id,
                "endedAt": session.get("ended_at"),
            },
            context=context,
        )

    async def add_task_to_session(
        self,
        session_id: str,
        task_id: str,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "add_task_to_session",
            {"session_id": session_id, "task_id": task_id},
            lambda: self.manager.add_task_to_session(session_id, task_id),
            schema=_SESSION_TASK,
            action="task_added",
            payload=lambda session: {"sessionId": session_id, "taskId": task_id},
            context=context,
        )

    async def remove_task_from_session(
        self,
        session_id: str,
        task_id: str,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "remove_task_from_session",
            {"session_id": session_id, "task_id": task_id},
            lambda: self.manager.remove_task_from_session(session_id, task_id),
            schema=_SESSION_TASK,
            action="task_removed",
            payload=lambda session: {"sessionId": session_id, "taskId": task_id},
            context=context,
        )

    async def add_git_commit_to_session(
        self,
        session_id: str,
        commit_hash: str,
        context: OperationContext | None = None,
    ) -> Any:
        return await self._execute_async(
            "add_git_commit_to_session",
            {"session_id": session_id, "commit_hash": commit_hash},
            lambda: self.manager.add_git_commit_to_session(session_id, commit_hash),
            schema=_COMMIT,
            action="git_commit_added",
            payload=lambda session: {"sessionId": session_id, "commitHash": commit_hash},
            context=context,
        )
