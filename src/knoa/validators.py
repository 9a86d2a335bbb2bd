"""
Entity validators.

Each validator returns a ValidationResult and never raises for invalid
input. Errors make the verdict fail; warnings do not.
"""

import re
from datetime import datetime
from typing import Any, Mapping

from knoa_core.adapters.schema import SESSION_ID_PATTERN, TASK_ID_PATTERN
from knoa_core.ports.managers import FEEDBACK_STATUSES, PROGRESS_STATES, TASK_STATUSES
from knoa_core.ports.validation import ValidationResult

_TASK_ID = re.compile(TASK_ID_PATTERN)
_SESSION_ID = re.compile(SESSION_ID_PATTERN)


def _is_iso_timestamp(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _is_task_id(value: Any) -> bool:
    return isinstance(value, str) and _TASK_ID.fullmatch(value) is not None


class TaskValidator:
    """Validates task entities."""

    def validate(self, entity: Any) -> ValidationResult:
        if not isinstance(entity, Mapping):
            return ValidationResult.from_messages(["Task must be an object"])

        errors: list[str] = []
        warnings: list[str] = []

        if not _is_task_id(entity.get("id")):
            errors.append(f"Invalid task id: {entity.get('id')!r} (expected T000 format)")

        title = entity.get("title")
        if not isinstance(title, str) or not title.strip():
            errors.append("Task requires a non-empty title")

        status = entity.get("status")
        if status not in TASK_STATUSES:
            errors.append(f"Invalid status: {status!r}")

        priority = entity.get("priority")
        if priority is not None and (
            not isinstance(priority, int) or isinstance(priority, bool) or not 1 <= priority <= 5
        ):
            errors.append(f"Priority must be an integer between 1 and 5: {priority!r}")

        progress = entity.get("progress")
        if progress is not None and (
            not isinstance(progress, (int, float))
            or isinstance(progress, bool)
            or not 0 <= progress <= 100
        ):
            errors.append(f"Progress must be between 0 and 100: {progress!r}")

        state = entity.get("progress_state")
        if state is not None and state not in PROGRESS_STATES:
            errors.append(f"Invalid progress state: {state!r}")

        dependencies = entity.get("dependencies", [])
        if not isinstance(dependencies, list):
            errors.append("Dependencies must be a list")
        else:
            for dependency in dependencies:
                if not _is_task_id(dependency):
                    errors.append(f"Invalid dependency id: {dependency!r}")
                elif dependency == entity.get("id"):
                    errors.append(f"Task {dependency} cannot depend on itself")

        if not entity.get("description"):
            warnings.append("Task has no description")

        return ValidationResult.from_messages(errors, warnings)


class SessionValidator:
    """Validates session entities."""

    def validate(self, entity: Any) -> ValidationResult:
        if not isinstance(entity, Mapping):
            return ValidationResult.from_messages(["Session must be an object"])

        errors: list[str] = []

        session_id = entity.get("session_id")
        if not isinstance(session_id, str) or _SESSION_ID.fullmatch(session_id) is None:
            errors.append(f"Invalid session id: {session_id!r}")

        if not _is_iso_timestamp(entity.get("created_at")):
            errors.append(f"Invalid created_at timestamp: {entity.get('created_at')!r}")

        ended_at = entity.get("ended_at")
        if ended_at is not None and not _is_iso_timestamp(ended_at):
            errors.append(f"Invalid ended_at timestamp: {ended_at!r}")

        for key in ("tasks", "completed_tasks", "commits"):
            value = entity.get(key, [])
            if not isinstance(value, list):
                errors.append(f"{key} must be a list")
            elif key != "commits":
                errors.extend(
                    f"Invalid task id in {key}: {task_id!r}"
                    for task_id in value
                    if not _is_task_id(task_id)
                )

        return ValidationResult.from_messages(errors)


class FeedbackValidator:
    """Validates feedback entities."""

    def validate(self, entity: Any) -> ValidationResult:
        if not isinstance(entity, Mapping):
            return ValidationResult.from_messages(["Feedback must be an object"])

        errors: list[str] = []
        warnings: list[str] = []

        if not _is_task_id(entity.get("task_id")):
            errors.append(f"Invalid task id: {entity.get('task_id')!r}")

        if entity.get("status") not in FEEDBACK_STATUSES:
            errors.append(f"Invalid status: {entity.get('status')!r}")

        attempt = entity.get("attempt")
        if not isinstance(attempt, int) or isinstance(attempt, bool) or attempt < 1:
            errors.append(f"Attempt must be a positive integer: {attempt!r}")

        items = entity.get("items", [])
        if not isinstance(items, list):
            errors.append("items must be a list")
        elif not items:
            warnings.append("Feedback has no items")

        return ValidationResult.from_messages(errors, warnings)
