"""
Integration manager.

Orchestrates one workflow across the task, session, feedback and state
adapters. Every step goes through an adapter, so nested calls publish
their own events under the caller's trace. When a step returns an error
envelope the workflow stops and that envelope is returned unchanged; the
error has already been handled and published by the step's adapter.
"""

import logging
from collections import Counter
from typing import Any

from knoa_core.adapters import (
    FeedbackManagerAdapter,
    SessionManagerAdapter,
    StateManagerAdapter,
    TaskManagerAdapter,
)
from knoa_core.errors import DependencyError, is_error_envelope
from knoa_core.ports.managers import TASK_STATUSES, Entity
from knoa_core.runtime.core import Core
from knoa_core.runtime.ids import Clock, isoformat, utc_now

logger = logging.getLogger(__name__)

COMPONENTS = ("task", "session", "feedback", "state")

# Progress states that put the workflow into task_in_progress
_IDLE_PROGRESS = ("not_started", "completed")


def _is_open(session: Any) -> bool:
    return isinstance(session, dict) and not session.get("ended_at")


class IntegrationManager:
    """Workflow orchestration over the four domain adapters."""

    def __init__(
        self,
        tasks: TaskManagerAdapter,
        sessions: SessionManagerAdapter,
        feedback: FeedbackManagerAdapter,
        state: StateManagerAdapter,
        *,
        core: Core | None = None,
        clock: Clock = utc_now,
    ):
        missing = [
            name
            for name, adapter in zip(COMPONENTS, (tasks, sessions, feedback, state))
            if adapter is None
        ]
        if missing:
            raise DependencyError(
                f"IntegrationManager requires adapters for: {', '.join(missing)}",
                context={"missing": missing},
            )
        self.tasks = tasks
        self.sessions = sessions
        self.feedback = feedback
        self.state = state
        self.clock = clock

        if core is not None:
            envelope = core.bus.emit_standardized(
                "integration", "manager_initialized", {"components": list(COMPONENTS)}
            )
            core.shim.publish_aliases(envelope.event_name, envelope)
        logger.debug("Integration manager initialized")

    def _advance(self, target: str, data: Entity | None = None) -> Any:
        """
        Move the workflow state to ``target`` when the state machine allows it.

        Returns None when the state stays put, otherwise the transition
        result (an error envelope if the transition failed).
        """
        current = self.state.get_current_state()
        if current == target or self.state.can_transition_to(target) is not True:
            logger.debug(f"Workflow state stays {current} (no move to {target})")
            return None
        return self.state.transition_to(target, data or {})

    async def initialize_workflow(self, project_id: str, original_request: str) -> Entity:
        project = {
            "id": project_id,
            "original_request": original_request,
            "created_at": isoformat(self.clock()),
        }
        tasks = await self.tasks.initialize_tasks(project)
        if is_error_envelope(tasks):
            return tasks

        session = await self.sessions.create_new_session()
        if is_error_envelope(session):
            return session

        reset = self.state.set_state("initialized", {"projectId": project_id})
        if is_error_envelope(reset):
            return reset
        moved = self._advance("session_started", {"sessionId": session["session_id"]})
        if is_error_envelope(moved):
            return moved

        logger.info(f"Initialized workflow for project {project_id}")
        return {
            "project": project,
            "tasks": tasks,
            "session": session,
            "state": self.state.get_current_state(),
        }

    async def start_session(self, previous_session_id: str | None = None) -> Entity:
        session = await self.sessions.create_new_session(previous_session_id)
        if is_error_envelope(session):
            return session
        moved = self._advance("session_started", {"sessionId": session["session_id"]})
        return moved if is_error_envelope(moved) else session

    async def end_session(self, session_id: str) -> Entity:
        session = await self.sessions.end_session(session_id)
        if is_error_envelope(session):
            return session
        moved = self._advance("session_ended", {"sessionId": session_id})
        return moved if is_error_envelope(moved) else session

    async def create_task(self, task_data: Entity) -> Entity:
        """
        Create a task and add it to the latest session while that is open.

        Returns:
            The task, with ``session_id`` naming the session it joined (or None).
        """
        task = await self.tasks.create_task(task_data)
        if is_error_envelope(task):
            return task

        session = await self.sessions.get_latest_session()
        if is_error_envelope(session):
            return session
        session_id = None
        if _is_open(session):
            session_id = session["session_id"]
            added = await self.sessions.add_task_to_session(session_id, task["id"])
            if is_error_envelope(added):
                return added
        return {**task, "session_id": session_id}

    async def update_task_status(self, task_id: str, state: str, progress: int) -> Entity:
        result = await self.tasks.update_task_progress(task_id, progress, state)
        if is_error_envelope(result):
            return result
        if state not in _IDLE_PROGRESS:
            moved = self._advance("task_in_progress", {"taskId": task_id})
            if is_error_envelope(moved):
                return moved
        return result

    async def collect_feedback(self, task_id: str, feedback_data: Entity | None = None) -> Entity:
        """
        Open the next feedback attempt for ``task_id``.

        ``feedback_data["items"]``, when given, are prioritized onto the
        new loop. The loop is linked to its task and to the latest open
        session.
        """
        previous = await self.feedback.get_feedback_by_task_id(task_id)
        if is_error_envelope(previous):
            return previous
        attempt = previous["attempt"] + 1 if previous else 1

        feedback = await self.feedback.create_new_feedback(task_id, attempt)
        if is_error_envelope(feedback):
            return feedback

        items = (feedback_data or {}).get("items")
        if items:
            feedback = await self.feedback.prioritize_feedback({**feedback, "items": list(items)})
            if is_error_envelope(feedback):
                return feedback

        linked = await self.feedback.integrate_feedback_with_task(feedback["id"], task_id)
        if is_error_envelope(linked):
            return linked

        session = await self.sessions.get_latest_session()
        if is_error_envelope(session):
            return session
        if _is_open(session):
            linked = await self.feedback.integrate_feedback_with_session(
                feedback["id"], session["session_id"]
            )
            if is_error_envelope(linked):
                return linked
            feedback = {**feedback, "session_id": session["session_id"]}

        moved = self._advance(
            "feedback_collected", {"feedbackId": feedback["id"], "taskId": task_id}
        )
        return moved if is_error_envelope(moved) else feedback

    async def resolve_feedback(self, feedback_id: str, resolution: Entity | None = None) -> Entity:
        """
        Close a feedback loop.

        ``resolution["status"]`` is ``resolved`` (default) or ``wontfix``;
        the whole resolution is echoed back under ``resolution``.
        """
        resolution = dict(resolution or {})
        status = resolution.get("status", "resolved")

        feedback = await self.feedback.update_feedback_status({"id": feedback_id}, status)
        if is_error_envelope(feedback):
            return feedback

        linked = await self.feedback.integrate_feedback_with_task(feedback_id, feedback["task_id"])
        if is_error_envelope(linked):
            return linked

        moved = self._advance("task_in_progress", {"taskId": feedback["task_id"]})
        if is_error_envelope(moved):
            return moved
        return {**feedback, "resolution": {**resolution, "status": status}}

    async def get_workflow_status(self) -> Entity:
        collection = await self.tasks.get_all_tasks()
        if is_error_envelope(collection):
            return collection
        session = await self.sessions.get_latest_session()
        if is_error_envelope(session):
            return session
        pending = await self.feedback.get_pending_feedback()
        if is_error_envelope(pending):
            return pending

        tasks = collection.get("tasks", [])
        counts = Counter(task.get("status") for task in tasks)
        return {
            "state": self.state.get_current_state(),
            "project": collection.get("project", {}),
            "task_count": len(tasks),
            "task_status_counts": {status: counts.get(status, 0) for status in TASK_STATUSES},
            "session": (
                {"session_id": session["session_id"], "active": _is_open(session)}
                if isinstance(session, dict)
                else None
            ),
            "pending_feedback": pending.get("id") if isinstance(pending, dict) else None,
        }
