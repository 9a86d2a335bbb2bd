"""
knoa Core Ports - Interface definitions for collaborators.

Usage:
    from knoa_core.ports import StorageService, Validator, ValidationResult

Architecture:
    - Ports are Protocols
    - The knoa product package provides concrete implementations
    - Core depends only on ports, never on implementations
"""

from knoa_core.ports.managers import (
    FEEDBACK_STATUSES,
    PROGRESS_STATES,
    TASK_STATUSES,
    WORKFLOW_STATES,
    Entity,
    FeedbackManager,
    IntegrationManager,
    SessionManager,
    StateManager,
    TaskManager,
)
from knoa_core.ports.storage import StorageService
from knoa_core.ports.validation import ValidationResult, Validator

__all__ = [
    # Validation
    "Validator",
    "ValidationResult",
    # Storage
    "StorageService",
    # Managers
    "Entity",
    "PROGRESS_STATES",
    "TASK_STATUSES",
    "FEEDBACK_STATUSES",
    "WORKFLOW_STATES",
    "TaskManager",
    "SessionManager",
    "FeedbackManager",
    "StateManager",
    "IntegrationManager",
]
