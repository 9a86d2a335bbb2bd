"""
knoa Core Errors - taxonomy and handling pipeline.

Architecture Rules:
- No side effects on import
- No framework-specific imports
- No logging initialization

Usage:
    from knoa_core.errors import ErrorHandler, StorageError

    handler = ErrorHandler(bus)
    result = handler.handle_sync(StorageError("disk full"), "task", "create_task")
"""

from knoa_core.errors.taxonomy import (
    ERROR_CLASSES,
    ApplicationError,
    CliError,
    ConfigurationError,
    DataConsistencyError,
    DependencyError,
    ErrorKind,
    LockTimeoutError,
    NetworkError,
    NotFoundError,
    OperationTimeoutError,
    StateError,
    StorageError,
    ValidationError,
    coerce_kind,
    error_class_for,
    kind_of,
    raise_if_cancelled,
)
from knoa_core.errors.handler import (
    AlertThreshold,
    ErrorHandler,
    ErrorPattern,
    ErrorStatistics,
    Failed,
    HandleResult,
    Recovered,
    RecoveryRegistration,
    RecoveryStrategy,
    RetryRecovery,
    error_envelope,
    is_error_envelope,
)

__all__ = [
    # Taxonomy
    "ErrorKind",
    "ApplicationError",
    "ValidationError",
    "StateError",
    "DataConsistencyError",
    "StorageError",
    "NetworkError",
    "OperationTimeoutError",
    "ConfigurationError",
    "DependencyError",
    "NotFoundError",
    "LockTimeoutError",
    "CliError",
    "ERROR_CLASSES",
    "error_class_for",
    "kind_of",
    "coerce_kind",
    "raise_if_cancelled",
    # Handler
    "ErrorHandler",
    "ErrorPattern",
    "AlertThreshold",
    "ErrorStatistics",
    "RecoveryRegistration",
    "RecoveryStrategy",
    "RetryRecovery",
    "Recovered",
    "Failed",
    "HandleResult",
    "error_envelope",
    "is_error_envelope",
]
