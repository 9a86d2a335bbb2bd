"""
Task manager.

Tasks live in one collection file, ``<tasks_dir>/latest-tasks.json``:

    {"project": {...}, "tasks": [{"id": "T001", ...}, ...]}
"""

import logging
from typing import Any

from knoa_core.errors import NotFoundError, StateError, raise_if_cancelled
from knoa_core.ports import ValidationResult, Validator
from knoa_core.ports.managers import PROGRESS_STATES, Entity
from knoa_core.runtime.ids import Clock, isoformat, utc_now

from knoa.storage import FileStorageService
from knoa.validators import TaskValidator

logger = logging.getLogger(__name__)

COLLECTION = "tasks"

# Allowed progress moves; staying in the same state is always allowed
STATE_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "not_started": ("planning", "in_development"),
    "planning": ("in_development",),
    "in_development": ("implementation_complete", "in_review"),
    "implementation_complete": ("in_review",),
    "in_review": ("review_complete", "in_development"),
    "review_complete": ("in_testing",),
    "in_testing": ("completed", "in_development"),
    "completed": (),
}

MAX_TASKS = 999


def status_for(progress_state: str) -> str:
    if progress_state == "completed":
        return "completed"
    if progress_state == "not_started":
        return "pending"
    return "in_progress"


class TaskManager:
    """File-backed task bookkeeping."""

    def __init__(
        self,
        storage: FileStorageService,
        validator: Validator | None = None,
        *,
        directory: str = "tasks",
        clock: Clock = utc_now,
    ):
        self.storage = storage
        self.validator = validator or TaskValidator()
        self.directory = directory
        self.clock = clock
        self.storage.ensure_directory_exists(directory)

    def _now(self) -> str:
        return isoformat(self.clock())

    def _load(self) -> Entity:
        collection = self.storage.read_latest(self.directory, COLLECTION)
        if not collection:
            return {"project": {}, "tasks": []}
        collection.setdefault("tasks", [])
        return collection

    def _save(self, collection: Entity) -> None:
        raise_if_cancelled()
        self.storage.write_latest(self.directory, COLLECTION, collection)

    @staticmethod
    def _index(collection: Entity, task_id: str) -> int:
        for i, task in enumerate(collection["tasks"]):
            if task.get("id") == task_id:
                return i
        raise NotFoundError(f"Task not found: {task_id}", context={"task_id": task_id})

    @staticmethod
    def _next_id(collection: Entity) -> str:
        numbers = [
            int(task["id"][1:])
            for task in collection["tasks"]
            if isinstance(task.get("id"), str) and task["id"][1:].isdigit()
        ]
        next_number = max(numbers, default=0) + 1
        if next_number > MAX_TASKS:
            raise StateError(
                "Task id space exhausted", context={"max_tasks": MAX_TASKS}
            )
        return f"T{next_number:03d}"

    def validate_task(self, task: Entity) -> ValidationResult:
        return self.validator.validate(task)

    async def get_all_tasks(self) -> Entity:
        return self._load()

    async def get_task_by_id(self, task_id: str) -> Entity | None:
        collection = self._load()
        return next((t for t in collection["tasks"] if t.get("id") == task_id), None)

    async def create_task(self, task_data: Entity) -> Entity:
        """Create a task with the next free ``T000`` id."""
        collection = self._load()
        now = self._now()
        task = {
            "id": self._next_id(collection),
            "title": task_data["title"],
            "description": task_data.get("description", ""),
            "status": "pending",
            "priority": task_data.get("priority", 3),
            "progress": 0,
            "progress_state": "not_started",
            "dependencies": list(task_data.get("dependencies", [])),
            "commits": [],
            "created_at": now,
            "updated_at": now,
        }
        self.validate_task(task).raise_for_errors("task")

        collection["tasks"].append(task)
        self._save(collection)
        logger.info(f"Created task {task['id']}: {task['title']}")
        return task

    async def update_task(self, task: Entity) -> Entity:
        """Merge ``task`` into the stored task with the same id."""
        collection = self._load()
        index = self._index(collection, task["id"])
        updated = {**collection["tasks"][index], **task, "updated_at": self._now()}
        self.validate_task(updated).raise_for_errors("task")

        collection["tasks"][index] = updated
        self._save(collection)
        return updated

    async def update_task_progress(
        self, task_id: str, progress: int, state: str
    ) -> Entity:
        collection = self._load()
        index = self._index(collection, task_id)
        task = collection["tasks"][index]
        previous_progress = task.get("progress", 0)
        previous_state = task.get("progress_state", PROGRESS_STATES[0])

        if state != previous_state and state not in STATE_TRANSITIONS.get(previous_state, ()):
            raise StateError(
                f"Task {task_id} cannot move from {previous_state} to {state}",
                context={"task_id": task_id, "from_state": previous_state, "to_state": state},
            )

        task.update(
            progress=progress,
            progress_state=state,
            status=status_for(state),
            updated_at=self._now(),
        )
        self._save(collection)
        return {
            "task": task,
            "previous_progress": previous_progress,
            "previous_state": previous_state,
        }

    async def add_git_commit_to_task(self, task_id: str, commit_hash: str) -> Entity:
        """Link a commit; linking the same hash twice is a no-op."""
        collection = self._load()
        task = collection["tasks"][self._index(collection, task_id)]
        commits = task.setdefault("commits", [])
        if commit_hash not in commits:
            commits.append(commit_hash)
            task["updated_at"] = self._now()
            self._save(collection)
        return task

    async def initialize_tasks(self, project_info: Entity) -> Entity:
        """
        Replace the collection with ``project_info`` and its ``tasks``.

        Every supplied task is validated before anything is written.
        """
        project = {key: value for key, value in project_info.items() if key != "tasks"}
        tasks: list[Entity] = [dict(task) for task in project_info.get("tasks", [])]
        now = self._now()
        for task in tasks:
            task.setdefault("status", "pending")
            task.setdefault("progress", 0)
            task.setdefault("progress_state", "not_started")
            task.setdefault("dependencies", [])
            task.setdefault("commits", [])
            task.setdefault("created_at", now)
            task.setdefault("updated_at", now)
            self.validate_task(task).raise_for_errors("task")

        collection: dict[str, Any] = {"project": project, "tasks": tasks}
        self._save(collection)
        logger.info(f"Initialized {len(tasks)} tasks for project {project.get('id')}")
        return collection
