"""
Domain manager port interfaces.

The adapters wrap objects implementing these protocols. Entities are
plain JSON-compatible dictionaries, matching the persisted layout.

Task, session and feedback managers are asynchronous; the workflow state
machine is synchronous.
"""

from typing import Any, Protocol, runtime_checkable

from knoa_core.ports.validation import ValidationResult

Entity = dict[str, Any]

# Task progress states, in workflow order
PROGRESS_STATES = (
    "not_started",
    "planning",
    "in_development",
    "implementation_complete",
    "in_review",
    "review_complete",
    "in_testing",
    "completed",
)

TASK_STATUSES = ("pending", "in_progress", "completed", "blocked")

FEEDBACK_STATUSES = ("open", "in_progress", "resolved", "wontfix")

WORKFLOW_STATES = (
    "uninitialized",
    "initialized",
    "session_started",
    "task_in_progress",
    "feedback_collected",
    "session_ended",
    "error",
)


@runtime_checkable
class TaskManager(Protocol):
    """Protocol for task bookkeeping."""

    def validate_task(self, task: Entity) -> ValidationResult:
        ...

    async def get_all_tasks(self) -> Entity:
        """Get the task collection (``{"project": ..., "tasks": [...]}``)."""
        ...

    async def get_task_by_id(self, task_id: str) -> Entity | None:
        ...

    async def create_task(self, task_data: Entity) -> Entity:
        """Create a task; the manager assigns the ``T\\d{3}`` id."""
        ...

    async def update_task(self, task: Entity) -> Entity:
        ...

    async def update_task_progress(
        self, task_id: str, progress: int, state: str
    ) -> Entity:
        """
        Record progress.

        Returns:
            ``{"task": ..., "previous_progress": int, "previous_state": str}``
        """
        ...

    async def add_git_commit_to_task(self, task_id: str, commit_hash: str) -> Entity:
        ...

    async def initialize_tasks(self, project_info: Entity) -> Entity:
        ...


@runtime_checkable
class SessionManager(Protocol):
    """Protocol for session handover bookkeeping."""

    def validate_session(self, session: Entity) -> ValidationResult:
        ...

    async def get_latest_session(self) -> Entity | None:
        ...

    async def get_session_by_id(self, session_id: str) -> Entity | None:
        ...

    async def create_new_session(self, previous_session_id: str | None = None) -> Entity:
        ...

    async def update_session(self, session_id: str, update_data: Entity) -> Entity:
        ...

    async def end_session(self, session_id: str) -> Entity:
        ...

    async def add_task_to_session(self, session_id: str, task_id: str) -> Entity:
        ...

    async def remove_task_from_session(self, session_id: str, task_id: str) -> Entity:
        ...

    async def add_git_commit_to_session(self, session_id: str, commit_hash: str) -> Entity:
        ...


@runtime_checkable
class FeedbackManager(Protocol):
    """Protocol for feedback loop bookkeeping."""

    def validate_feedback(self, feedback: Entity) -> ValidationResult:
        ...

    async def get_pending_feedback(self) -> Entity | None:
        ...

    async def get_feedback_by_task_id(self, task_id: str) -> Entity | None:
        ...

    async def create_new_feedback(self, task_id: str, attempt: int = 1) -> Entity:
        ...

    async def prioritize_feedback(self, feedback: Entity) -> Entity:
        ...

    async def update_feedback_status(self, feedback: Entity, new_status: str) -> Entity:
        ...

    async def integrate_feedback_with_session(self, feedback_id: str, session_id: str) -> bool:
        ...

    async def integrate_feedback_with_task(self, feedback_id: str, task_id: str) -> bool:
        ...


@runtime_checkable
class StateManager(Protocol):
    """Protocol for the workflow state machine."""

    def get_current_state(self) -> str:
        ...

    def set_state(self, state: str, data: Entity | None = None) -> Entity:
        ...

    def transition_to(self, target_state: str, data: Entity | None = None) -> Entity:
        ...

    def can_transition_to(self, target_state: str) -> bool:
        ...

    def get_state_history(self) -> list[Entity]:
        ...

    def get_previous_state(self) -> str | None:
        ...


@runtime_checkable
class IntegrationManager(Protocol):
    """
    Protocol for workflow orchestration across the other managers.

    Implementations coordinate the task, session, feedback and state
    adapters; a step that fails returns that adapter's error envelope.
    """

    async def initialize_workflow(self, project_id: str, original_request: str) -> Entity:
        """
        Replace the task list, open a session and mark the workflow initialized.

        Returns:
            ``{"project": ..., "tasks": ..., "session": ..., "state": str}``
        """
        ...

    async def start_session(self, previous_session_id: str | None = None) -> Entity:
        ...

    async def end_session(self, session_id: str) -> Entity:
        ...

    async def create_task(self, task_data: Entity) -> Entity:
        """Create a task and add it to the latest open session."""
        ...

    async def update_task_status(self, task_id: str, state: str, progress: int) -> Entity:
        ...

    async def collect_feedback(self, task_id: str, feedback_data: Entity | None = None) -> Entity:
        """Open the next feedback attempt for a task and link it to the task and session."""
        ...

    async def resolve_feedback(self, feedback_id: str, resolution: Entity | None = None) -> Entity:
        ...

    async def get_workflow_status(self) -> Entity:
        ...
