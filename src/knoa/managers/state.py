"""
Workflow state machine.

In-memory and synchronous. Every change is appended to the state history;
illegal moves raise StateError.
"""

import logging
from typing import Any

from knoa_core.errors import DataConsistencyError, StateError, raise_if_cancelled
from knoa_core.ports.managers import WORKFLOW_STATES, Entity
from knoa_core.runtime.ids import Clock, isoformat, utc_now

logger = logging.getLogger(__name__)

INITIAL_STATE = "uninitialized"
ERROR_STATE = "error"

TRANSITIONS: dict[str, tuple[str, ...]] = {
    "uninitialized": ("initialized", "error"),
    "initialized": ("session_started", "initialized", "error"),
    "session_started": ("task_in_progress", "session_ended", "error"),
    "task_in_progress": ("feedback_collected", "session_ended", "error"),
    "feedback_collected": ("task_in_progress", "session_ended", "error"),
    "session_ended": ("initialized", "error"),
    "error": ("initialized", "uninitialized"),
}


class StateManager:
    """Workflow state with transition rules and history."""

    def __init__(self, *, clock: Clock = utc_now):
        self.clock = clock
        self._state = INITIAL_STATE
        self._history: list[Entity] = [
            {"state": INITIAL_STATE, "previous_state": None, "timestamp": isoformat(clock()), "data": {}}
        ]

    def get_current_state(self) -> str:
        return self._state

    def set_state(self, state: str, data: Entity | None = None) -> Entity:
        """Force ``state`` without checking transitions."""
        if state not in WORKFLOW_STATES:
            raise StateError(
                f"Unknown workflow state: {state}",
                context={"current_state": self._state, "requested_state": state},
            )
        raise_if_cancelled()
        entry = {
            "state": state,
            "previous_state": self._state,
            "timestamp": isoformat(self.clock()),
            "data": dict(data or {}),
        }
        self._history.append(entry)
        self._state = state
        logger.debug(f"Workflow state {entry['previous_state']} -> {state}")
        return entry

    def can_transition_to(self, target_state: str) -> bool:
        return target_state in TRANSITIONS.get(self._state, ())

    def transition_to(self, target_state: str, data: Entity | None = None) -> Entity:
        if not self.can_transition_to(target_state):
            raise StateError(
                f"Transition from {self._state} to {target_state} is not allowed",
                context={
                    "current_state": self._state,
                    "target_state": target_state,
                    "allowed": list(TRANSITIONS.get(self._state, ())),
                },
            )
        return self.set_state(target_state, data)

    def get_state_history(self, limit: int | None = None) -> list[Entity]:
        if limit:
            return [dict(entry) for entry in self._history[-limit:]]
        return [dict(entry) for entry in self._history]

    def get_previous_state(self) -> str | None:
        if len(self._history) < 2:
            return None
        return self._history[-2]["state"]

    def reset_error_state(self, data: Entity | None = None) -> Any:
        """
        Leave the error state for the last state before it.

        Returns the new history entry, or None when not in the error state.
        """
        if self._state != ERROR_STATE:
            return None
        target = next(
            (
                entry["state"]
                for entry in reversed(self._history[:-1])
                if entry["state"] != ERROR_STATE
            ),
            "initialized",
        )
        return self.set_state(target, {**(data or {}), "reset_reason": "error_recovery"})

    def snapshot(self) -> Entity:
        """JSON-compatible copy of the current state and history."""
        return {"state": self._state, "history": self.get_state_history()}

    def restore(self, snapshot: Entity) -> None:
        """Replace the current state and history with a ``snapshot()``."""
        state = snapshot.get("state")
        history = snapshot.get("history") or []
        if state not in WORKFLOW_STATES or not history or history[-1].get("state") != state:
            raise DataConsistencyError(
                "Workflow state snapshot is inconsistent",
                context={"state": state, "history_length": len(history)},
            )
        self._state = state
        self._history = [dict(entry) for entry in history]
