"""
Feedback manager.

A feedback loop collects review items for one attempt at a task. Loops
are written to ``feedback-history/feedback-<task id>-<attempt>.json``;
the most recent one is mirrored to ``latest-feedback.json``.
"""

import logging

from knoa_core.errors import (
    DataConsistencyError,
    NotFoundError,
    StateError,
    raise_if_cancelled,
)
from knoa_core.ports import ValidationResult, Validator
from knoa_core.ports.managers import Entity
from knoa_core.runtime.ids import Clock, isoformat, utc_now

from knoa.managers.session import SessionManager
from knoa.managers.task import TaskManager
from knoa.storage import FileStorageService
from knoa.validators import FeedbackValidator

logger = logging.getLogger(__name__)

ENTITY = "feedback"

STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "open": ("in_progress", "resolved", "wontfix"),
    "in_progress": ("resolved", "wontfix", "open"),
    "resolved": ("open",),
    "wontfix": ("open",),
}

PENDING_STATUSES = ("open", "in_progress")

# Item type -> priority weight
TYPE_WEIGHTS = {
    "security": 5,
    "functional": 5,
    "performance": 4,
    "ux": 3,
    "code_quality": 2,
}
DEFAULT_WEIGHT = 1


def feedback_id(task_id: str, attempt: int) -> str:
    return f"{task_id}-{attempt}"


def priority_band(weight: int) -> str:
    if weight >= 4:
        return "high"
    if weight >= 2:
        return "medium"
    return "low"


class FeedbackManager:
    """File-backed feedback loop bookkeeping."""

    def __init__(
        self,
        storage: FileStorageService,
        validator: Validator | None = None,
        *,
        task_manager: TaskManager | None = None,
        session_manager: SessionManager | None = None,
        directory: str = "feedback",
        clock: Clock = utc_now,
    ):
        self.storage = storage
        self.validator = validator or FeedbackValidator()
        self.task_manager = task_manager
        self.session_manager = session_manager
        self.directory = directory
        self.clock = clock
        self.storage.ensure_directory_exists(directory)

    def _now(self) -> str:
        return isoformat(self.clock())

    def _load(self, fid: str) -> Entity:
        feedback = self.storage.read_history(self.directory, ENTITY, fid)
        if feedback is None:
            raise NotFoundError(f"Feedback not found: {fid}", context={"feedback_id": fid})
        return feedback

    def _save(self, feedback: Entity) -> Entity:
        raise_if_cancelled()
        self.validate_feedback(feedback).raise_for_errors("feedback")
        feedback["updated_at"] = self._now()
        self.storage.write_history(self.directory, ENTITY, feedback["id"], feedback)

        latest = self.storage.read_latest(self.directory, ENTITY)
        if latest is None or latest.get("id") == feedback["id"]:
            self.storage.write_latest(self.directory, ENTITY, feedback)
        return feedback

    def validate_feedback(self, feedback: Entity) -> ValidationResult:
        return self.validator.validate(feedback)

    async def get_pending_feedback(self) -> Entity | None:
        """The latest feedback loop if it is still open or in progress."""
        latest = self.storage.read_latest(self.directory, ENTITY)
        if latest is None or latest.get("status") not in PENDING_STATUSES:
            return None
        return latest

    async def get_feedback_by_task_id(self, task_id: str) -> Entity | None:
        """The feedback loop with the highest attempt number for ``task_id``."""
        prefix = f"{task_id}-"
        attempts = [
            int(fid[len(prefix) :])
            for fid in self.storage.list_history(self.directory, ENTITY)
            if fid.startswith(prefix) and fid[len(prefix) :].isdigit()
        ]
        if not attempts:
            return None
        return self.storage.read_history(
            self.directory, ENTITY, feedback_id(task_id, max(attempts))
        )

    async def create_new_feedback(self, task_id: str, attempt: int = 1) -> Entity:
        if self.task_manager is not None and await self.task_manager.get_task_by_id(task_id) is None:
            raise NotFoundError(f"Task not found: {task_id}", context={"task_id": task_id})

        fid = feedback_id(task_id, attempt)
        if self.storage.read_history(self.directory, ENTITY, fid) is not None:
            raise DataConsistencyError(
                f"Feedback already exists for {task_id} attempt {attempt}",
                context={"task_id": task_id, "attempt": attempt},
            )

        now = self._now()
        feedback = {
            "id": fid,
            "task_id": task_id,
            "attempt": attempt,
            "status": "open",
            "items": [],
            "priorities": {},
            "session_id": None,
            "created_at": now,
            "updated_at": now,
        }
        self.validate_feedback(feedback).raise_for_errors("feedback")
        raise_if_cancelled()
        self.storage.write_history(self.directory, ENTITY, fid, feedback)
        self.storage.write_latest(self.directory, ENTITY, feedback)
        logger.info(f"Opened feedback {fid}")
        return feedback

    async def prioritize_feedback(self, feedback: Entity) -> Entity:
        """
        Order ``feedback["items"]`` by type weight, heaviest first.

        Each item gains ``priority`` (its weight); ``priorities`` counts
        items per high/medium/low band.
        """
        items = [dict(item) for item in feedback.get("items", [])]
        for item in items:
            item["priority"] = TYPE_WEIGHTS.get(item.get("type", ""), DEFAULT_WEIGHT)
        items.sort(key=lambda item: item["priority"], reverse=True)

        priorities = {"high": 0, "medium": 0, "low": 0}
        for item in items:
            priorities[priority_band(item["priority"])] += 1

        prioritized = {**feedback, "items": items, "priorities": priorities}
        if "id" in feedback and self.storage.read_history(self.directory, ENTITY, feedback["id"]):
            return self._save(prioritized)
        return prioritized

    async def update_feedback_status(self, feedback: Entity, new_status: str) -> Entity:
        stored = self._load(feedback["id"])
        current = stored["status"]
        if new_status != current and new_status not in STATUS_TRANSITIONS.get(current, ()):
            raise StateError(
                f"Feedback {stored['id']} cannot move from {current} to {new_status}",
                context={"feedback_id": stored["id"], "from_status": current, "to_status": new_status},
            )
        stored["status"] = new_status
        return self._save(stored)

    async def integrate_feedback_with_session(self, feedback_id: str, session_id: str) -> bool:
        """Attach the feedback to a session. False without a session manager."""
        feedback = self._load(feedback_id)
        if self.session_manager is None:
            logger.warning(f"No session manager; feedback {feedback_id} not integrated")
            return False

        session = await self.session_manager.get_session_by_id(session_id)
        if session is None:
            raise NotFoundError(
                f"Session not found: {session_id}", context={"session_id": session_id}
            )
        linked = list(session.get("feedback", []))
        if feedback_id not in linked:
            linked.append(feedback_id)
            await self.session_manager.update_session(session_id, {"feedback": linked})

        feedback["session_id"] = session_id
        self._save(feedback)
        return True

    async def integrate_feedback_with_task(self, feedback_id: str, task_id: str) -> bool:
        """Record the feedback status on its task. False without a task manager."""
        feedback = self._load(feedback_id)
        if feedback["task_id"] != task_id:
            raise DataConsistencyError(
                f"Feedback {feedback_id} belongs to {feedback['task_id']}, not {task_id}",
                context={"feedback_id": feedback_id, "task_id": task_id},
            )
        if self.task_manager is None:
            logger.warning(f"No task manager; feedback {feedback_id} not integrated")
            return False

        await self.task_manager.update_task(
            {"id": task_id, "feedback": {"id": feedback_id, "status": feedback["status"]}}
        )
        return True
