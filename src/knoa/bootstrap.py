"""
Application wiring.

Builds the Core from a KnoaConfig and wraps the reference managers in
their adapters. Nothing here is global: every call returns a fresh
Application.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from knoa_core.adapters import (
    BaseAdapter,
    FeedbackManagerAdapter,
    IntegrationManagerAdapter,
    SessionManagerAdapter,
    StateManagerAdapter,
    TaskManagerAdapter,
)
from knoa_core.runtime.core import Core

from knoa.config import KnoaConfig
from knoa.managers import (
    FeedbackManager,
    IntegrationManager,
    SessionManager,
    StateManager,
    TaskManager,
)
from knoa.storage import FileStorageService
from knoa.validators import FeedbackValidator, SessionValidator, TaskValidator

logger = logging.getLogger(__name__)

# Workflow state snapshot: <data root>/state/latest-workflow.json
STATE_DIR = "state"
STATE_ENTITY = "workflow"


@dataclass
class Application:
    """A wired knoa instance."""

    config: KnoaConfig
    core: Core
    storage: FileStorageService
    managers: dict[str, Any] = field(default_factory=dict)
    adapters: dict[str, BaseAdapter] = field(default_factory=dict)

    @property
    def tasks(self) -> TaskManagerAdapter:
        return self.adapters["task"]

    @property
    def sessions(self) -> SessionManagerAdapter:
        return self.adapters["session"]

    @property
    def feedback(self) -> FeedbackManagerAdapter:
        return self.adapters["feedback"]

    @property
    def state(self) -> StateManagerAdapter:
        return self.adapters["state"]

    @property
    def integration(self) -> IntegrationManagerAdapter:
        return self.adapters["integration"]

    def load_state(self) -> None:
        """Restore the workflow state saved by a previous run, if any."""
        snapshot = self.storage.read_latest(STATE_DIR, STATE_ENTITY)
        if snapshot is not None:
            self.managers["state"].restore(snapshot)

    def save_state(self) -> None:
        self.storage.write_latest(STATE_DIR, STATE_ENTITY, self.managers["state"].snapshot())


def build_application(config: KnoaConfig | None = None) -> Application:
    """
    Build the Core, storage, managers and adapters for ``config``.

    Args:
        config: Loaded configuration; defaults to ``KnoaConfig()`` rooted
            at the current directory.
    """
    config = config or KnoaConfig()
    core = Core.build(config.to_core_config())
    storage = FileStorageService(config.data_root)

    task_manager = TaskManager(
        storage, TaskValidator(), directory=config.storage.tasks_dir
    )
    session_manager = SessionManager(
        storage, SessionValidator(), directory=config.storage.sessions_dir
    )
    feedback_manager = FeedbackManager(
        storage,
        FeedbackValidator(),
        task_manager=task_manager,
        session_manager=session_manager,
        directory=config.storage.feedback_dir,
    )
    state_manager = StateManager()

    managers = {
        "task": task_manager,
        "session": session_manager,
        "feedback": feedback_manager,
        "state": state_manager,
    }
    tasks = TaskManagerAdapter(task_manager, core=core)
    sessions = SessionManagerAdapter(session_manager, core=core)
    feedback = FeedbackManagerAdapter(feedback_manager, core=core)
    state = StateManagerAdapter(state_manager, core=core)

    # The integration manager drives the other adapters, not their managers
    integration_manager = IntegrationManager(tasks, sessions, feedback, state, core=core)
    managers["integration"] = integration_manager

    adapters: dict[str, BaseAdapter] = {
        "task": tasks,
        "session": sessions,
        "feedback": feedback,
        "state": state,
        "integration": IntegrationManagerAdapter(integration_manager, core=core),
    }

    logger.debug(f"Application built with data root {config.data_root}")
    return Application(
        config=config,
        core=core,
        storage=storage,
        managers=managers,
        adapters=adapters,
    )
