"""
Session manager.

A session records the tasks worked on between two handovers. Each
session is written to ``session-history/session-<id>.json``; the most
recent one is mirrored to ``latest-session.json``.

Starting a session hands over every unfinished task of the previous one.
"""

import logging
import uuid
from typing import Callable

from knoa_core.errors import (
    NotFoundError,
    StateError,
    ValidationError,
    raise_if_cancelled,
)
from knoa_core.ports import ValidationResult, Validator
from knoa_core.ports.managers import Entity
from knoa_core.runtime.ids import Clock, isoformat, utc_now

from knoa.storage import FileStorageService
from knoa.validators import SessionValidator

logger = logging.getLogger(__name__)

ENTITY = "session"

# Keys update_session may not change
PROTECTED_KEYS = ("session_id", "created_at", "previous_session_id")


def generate_session_id() -> str:
    """``session-<utc timestamp>-<6 hex>``; sorts chronologically."""
    return f"session-{utc_now():%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6]}"


class SessionManager:
    """File-backed session handover bookkeeping."""

    def __init__(
        self,
        storage: FileStorageService,
        validator: Validator | None = None,
        *,
        directory: str = "sessions",
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = generate_session_id,
    ):
        self.storage = storage
        self.validator = validator or SessionValidator()
        self.directory = directory
        self.clock = clock
        self.id_factory = id_factory
        self.storage.ensure_directory_exists(directory)

    def _load(self, session_id: str) -> Entity:
        session = self.storage.read_history(self.directory, ENTITY, session_id)
        if session is None:
            raise NotFoundError(
                f"Session not found: {session_id}", context={"session_id": session_id}
            )
        return session

    def _save(self, session: Entity) -> Entity:
        raise_if_cancelled()
        self.validate_session(session).raise_for_errors("session")
        self.storage.write_history(self.directory, ENTITY, session["session_id"], session)

        latest = self.storage.read_latest(self.directory, ENTITY)
        if latest is None or latest.get("session_id") == session["session_id"]:
            self.storage.write_latest(self.directory, ENTITY, session)
        return session

    @staticmethod
    def _require_open(session: Entity) -> None:
        if session.get("ended_at"):
            raise StateError(
                f"Session {session['session_id']} has ended",
                context={"session_id": session["session_id"], "ended_at": session["ended_at"]},
            )

    def validate_session(self, session: Entity) -> ValidationResult:
        return self.validator.validate(session)

    async def get_latest_session(self) -> Entity | None:
        return self.storage.read_latest(self.directory, ENTITY)

    async def get_session_by_id(self, session_id: str) -> Entity | None:
        return self.storage.read_history(self.directory, ENTITY, session_id)

    async def create_new_session(self, previous_session_id: str | None = None) -> Entity:
        """
        Start a session.

        Args:
            previous_session_id: Session to hand over from. Defaults to the
                latest session, if any.

        Raises:
            NotFoundError: ``previous_session_id`` does not exist.
        """
        if previous_session_id is not None:
            previous = self._load(previous_session_id)
        else:
            previous = self.storage.read_latest(self.directory, ENTITY)

        handed_over: list[str] = []
        if previous:
            completed = set(previous.get("completed_tasks", []))
            handed_over = [t for t in previous.get("tasks", []) if t not in completed]

        session = {
            "session_id": self.id_factory(),
            "previous_session_id": previous["session_id"] if previous else None,
            "created_at": isoformat(self.clock()),
            "ended_at": None,
            "tasks": handed_over,
            "completed_tasks": [],
            "commits": [],
            "feedback": [],
        }
        self.validate_session(session).raise_for_errors("session")
        raise_if_cancelled()
        self.storage.write_history(self.directory, ENTITY, session["session_id"], session)
        self.storage.write_latest(self.directory, ENTITY, session)

        logger.info(
            f"Started session {session['session_id']} "
            f"({len(handed_over)} tasks handed over)"
        )
        return session

    async def update_session(self, session_id: str, update_data: Entity) -> Entity:
        protected = [key for key in PROTECTED_KEYS if key in update_data]
        if protected:
            raise ValidationError(
                f"Cannot update protected session fields: {', '.join(protected)}",
                context={"session_id": session_id, "fields": protected},
            )
        session = self._load(session_id)
        session.update(update_data)
        return self._save(session)

    async def end_session(self, session_id: str) -> Entity:
        session = self._load(session_id)
        self._require_open(session)
        session["ended_at"] = isoformat(self.clock())
        logger.info(f"Ended session {session_id}")
        return self._save(session)

    async def add_task_to_session(self, session_id: str, task_id: str) -> Entity:
        session = self._load(session_id)
        self._require_open(session)
        if task_id not in session["tasks"]:
            session["tasks"].append(task_id)
        return self._save(session)

    async def remove_task_from_session(self, session_id: str, task_id: str) -> Entity:
        session = self._load(session_id)
        self._require_open(session)
        if task_id not in session["tasks"]:
            raise NotFoundError(
                f"Task {task_id} is not part of session {session_id}",
                context={"session_id": session_id, "task_id": task_id},
            )
        session["tasks"].remove(task_id)
        if task_id in session["completed_tasks"]:
            session["completed_tasks"].remove(task_id)
        return self._save(session)

    async def add_git_commit_to_session(self, session_id: str, commit_hash: str) -> Entity:
        session = self._load(session_id)
        if commit_hash not in session["commits"]:
            session["commits"].append(commit_hash)
        return self._save(session)

    async def complete_task_in_session(self, session_id: str, task_id: str) -> Entity:
        """Mark a session task as finished so the next handover skips it."""
        session = self._load(session_id)
        if task_id not in session["tasks"]:
            session["tasks"].append(task_id)
        if task_id not in session["completed_tasks"]:
            session["completed_tasks"].append(task_id)
        return self._save(session)
