"""
knoa reference managers.

File-backed implementations of the manager ports wrapped by the
knoa_core adapters:

- TaskManager: task collection and progress states
- SessionManager: sessions and task handover
- FeedbackManager: feedback loops per task attempt
- StateManager: in-memory workflow state machine
- IntegrationManager: workflow orchestration over the four adapters
"""

from knoa.managers.feedback import FeedbackManager
from knoa.managers.integration import IntegrationManager
from knoa.managers.session import SessionManager
from knoa.managers.state import StateManager
from knoa.managers.task import TaskManager

__all__ = [
    "TaskManager",
    "SessionManager",
    "FeedbackManager",
    "StateManager",
    "IntegrationManager",
]
