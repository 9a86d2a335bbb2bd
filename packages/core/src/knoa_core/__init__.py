"""
knoa Core - the event-and-error core of the knoa workflow tracker.

This package contains the event bus, the error taxonomy and handling
pipeline, operation contexts and the adapter framework. It must not
import from the knoa product package.

Architecture Rules:
- Core must not import knoa
- No framework imports (FastAPI, Flask)
- No database driver imports
- No environment file loading
- No side effects on import
- Shared mutable state lives on an explicit Core value (no singletons)

Modules:
- events: event bus, envelopes, event-name catalogue and compatibility shim
- errors: error taxonomy and ErrorHandler
- runtime: operation context, id factories and the Core value
- ports: validator, storage and manager interfaces
- adapters: BaseAdapter and the four manager adapters
"""

__version__ = "0.1.0"

from knoa_core.runtime import OperationContext, current_context

from knoa_core.errors import (
    ApplicationError,
    ErrorHandler,
    ErrorKind,
    Failed,
    HandleResult,
    Recovered,
    ValidationError,
)

from knoa_core.events import (
    CompatibilityShim,
    EventBus,
    EventNameRegistry,
    StandardEventEnvelope,
)

from knoa_core.runtime.core import Core, CoreConfig

from knoa_core.ports import StorageService, ValidationResult, Validator

from knoa_core.adapters import (
    BaseAdapter,
    FeedbackManagerAdapter,
    SessionManagerAdapter,
    StateManagerAdapter,
    TaskManagerAdapter,
)

__all__ = [
    "__version__",
    # Runtime
    "OperationContext",
    "current_context",
    "Core",
    "CoreConfig",
    # Errors
    "ErrorKind",
    "ApplicationError",
    "ValidationError",
    "ErrorHandler",
    "HandleResult",
    "Recovered",
    "Failed",
    # Events
    "EventBus",
    "StandardEventEnvelope",
    "EventNameRegistry",
    "CompatibilityShim",
    # Ports
    "Validator",
    "ValidationResult",
    "StorageService",
    # Adapters
    "BaseAdapter",
    "TaskManagerAdapter",
    "SessionManagerAdapter",
    "FeedbackManagerAdapter",
    "StateManagerAdapter",
]
