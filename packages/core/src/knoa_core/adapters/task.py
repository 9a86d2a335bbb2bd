"""Task manager adapter."""

from typing import Any

from knoa_core.adapters.base import BaseAdapter
from knoa_core.adapters.schema import (
    COMMIT_HASH,
    ENTITY,
    TASK_ID,
    Param,
    ParamSchema,
    in_range,
    is_str,
    one_of,
)
from knoa_core.ports.managers import PROGRESS_STATES, Entity
from knoa_core.runtime.context import OperationContext

_VALIDATE = ParamSchema(task=ENTITY)
_BY_ID = ParamSchema(task_id=TASK_ID)
_CREATE = ParamSchema(
    task_data=ENTITY,
    title=Param(checks=(is_str(),), message="Task requires a title"),
)
_UPDATE = ParamSchema(task=ENTITY, id=TASK_ID)
_PROGRESS = ParamSchema(
    task_id=TASK_ID,
    progress=Param(checks=(in_range(0, 100),), message="Progress must be a number between 0 and 100"),
    state=Param(checks=(one_of(PROGRESS_STATES),)),
)
_COMMIT = ParamSchema(task_id=TASK_ID, commit_hash=COMMIT_HASH)
_INITIALIZE = ParamSchema(project_info=ENTITY)


class TaskManagerAdapter(BaseAdapter):
    """
    Wraps a TaskManager.

    Events:
        task:task_created, task:task_updated, task:task_progress_updated,
        task:git_commit_added, task:tasks_initialized
    """

    component = "task"

    def validate_task(self, task: Entity, context: OperationContext | None = None) -> Any:
        """Validate a task; returns the validator's verdict."""
        return self._execute(
            "validate_task",
            {"task": task},
            lambda: self.manager.validate_task(task),
            schema=_VALIDATE,
            context=context,
        )

    async def get_all_tasks(self, context: OperationContext | None = None) -> Any:
        return await self._execute_async(
            "get_all_tasks", {}, self.manager.get_all_tasks, context=context
        )

    async def get_task_by_id(
        self, task_id: str, context: OperationContext | None = None
    ) -> Any:
        return await self._execute_async(
            "get_task_by_id",
            {"task_id": task_id},
            lambda: self.manager.get_task_by_id(task_id),
            schema=_BY_ID,
            context=context,
        )

    async def create_task(
        self, task_data: Entity, context: OperationContext | None = None
    ) -> Any:
        """Create a task and publish ``task:task_created``."""
        title = task_data.get("title") if isinstance(task_data, dict) else None

        def payload(task: Entity) -> dict[str, Any]:
            data = {"id": task["id"], "title": task["title"], "status": task["status"]}
            if task.get("description"):
                data["description"] = task["description"]
            return data

        return await self._execute_async(
            "create_task",
            {"task_data": task_data, "title": title},
            lambda: self.manager.create_task(task_data),
            schema=_CREATE,
            action="task_created",
            payload=payload,
            context=context,
        )

    async def update_task(self, task: Entity, context: OperationContext | None = None) -> Any:
        """Replace a task and publish ``task:task_updated``."""
        task_id = task.get("id") if isinstance(task, dict) else None
        return await self._execute_async(
            "update_task",
            {"task": task, "id": task_id},
            lambda: self.manager.update_task(task),
            schema=_UPDATE,
            action="task_updated",
            payload=lambda updated: {"id": updated["id"], "updates": dict(task), "current": updated},
            context=context,
        )

    async def update_task_progress(
        self,
        task_id: str,
        progress: int,
        state: str,
        context: OperationContext | None = None,
    ) -> Any:
        """Record progress and publish ``task:task_progress_updated``."""
        return await self._execute_async(
            "update_task_progress",
            {"task_id": task_id, "progress": progress, "state": state},
            lambda: self.manager.update_task_progress(task_id, progress, state),
            schema=_PROGRESS,
            action="task_progress_updated",
            payload=lambda result: {
                "id": task_id,
                "progress": progress,
                "state": state,
                "previousProgress": result.get("previous_progress"),
                "previousState": result.get("previous_state"),
            },
            context=context,
        )

    async def add_git_commit_to_task(
        self,
        task_id: str,
        commit_hash: str,
        context: OperationContext | None = None,
    ) -> Any:
        """Link a commit to a task and publish ``task:git_commit_added``."""
        return await self._execute_async(
            "add_git_commit_to_task",
            {"task_id": task_id, "commit_hash": commit_hash},
            lambda: self.manager.add_git_commit_to_task(task_id, commit_hash),
            schema=_COMMIT,
            action="git_commit_added",
            payload=lambda task: {"taskId": task_id, "commitHash": commit_hash},
            context=context,
        )

    async def initialize_tasks(
        self, project_info: Entity, context: OperationContext | None = None
    ) -> Any:
        """Replace the task collection and publish ``task:tasks_initialized``."""
        return await self._execute_async(
            "initialize_tasks",
            {"project_info": project_info},
            lambda: self.manager.initialize_tasks(project_info),
            schema=_INITIALIZE,
            action="tasks_initialized",
            payload=lambda tasks: {
                "projectId": project_info.get("id"),
                "taskCount": len(tasks.get("tasks", [])),
            },
            context=context,
        )
