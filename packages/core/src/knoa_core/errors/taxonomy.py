"""
Error taxonomy.

A closed set of error kinds, each a subclass of ApplicationError. Every
error carries a message, a stable machine code, a recoverability flag,
an optional cause and a structured context map.

Architecture Rules:
- Only stdlib + typing allowed
- No logging initialization
"""

from enum import Enum
from typing import Any, ClassVar

from knoa_core.runtime.context import OperationContext, current_context
from knoa_core.runtime.ids import isoformat


class ErrorKind(str, Enum):
    """Error classifications."""

    APPLICATION = "application"
    VALIDATION = "validation"
    STATE = "state"
    DATA_CONSISTENCY = "data_consistency"
    STORAGE = "storage"
    NETWORK = "network"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"
    DEPENDENCY = "dependency"
    NOT_FOUND = "not_found"
    LOCK_TIMEOUT = "lock_timeout"
    CLI = "cli"


class ApplicationError(Exception):
    """
    Base error for everything raised inside knoa.

    Subclasses only override the class-level defaults; code and
    recoverability can still be set per instance for finer dispatch.

    Example:
        raise StorageError(
            "Could not write latest-tasks.json",
            code="ERR_STORAGE_TEMP",
            context={"directory": "tasks"},
            cause=exc,
        )
    """

    kind: ClassVar[ErrorKind] = ErrorKind.APPLICATION
    default_code: ClassVar[str] = "ERR_APPLICATION"
    default_recoverable: ClassVar[bool] = False

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
        recoverable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        self.recoverable = (
            self.default_recoverable if recoverable is None else recoverable
        )
        self.timestamp = isoformat()

    @property
    def name(self) -> str:
        """Class name of the error (e.g. 'ValidationError')."""
        return type(self).__name__

    @classmethod
    def wrap(
        cls,
        error: BaseException,
        context: dict[str, Any] | None = None,
    ) -> "ApplicationError":
        """
        Wrap any exception into the taxonomy.

        Taxonomy errors are returned unchanged (context is merged in);
        anything else becomes an ``application`` error with the original
        exception kept as its cause.
        """
        if isinstance(error, ApplicationError):
            if context:
                for key, value in context.items():
                    error.context.setdefault(key, value)
            return error
        message = str(error) or type(error).__name__
        return ApplicationError(message, cause=error, context=context)

    def to_dict(self) -> dict[str, Any]:
        """Structured form used in event payloads and log lines."""
        result: dict[str, Any] = {
            "name": self.name,
            "message": self.message,
            "code": self.code,
            "kind": self.kind.value,
            "recoverable": self.recoverable,
            "context": dict(self.context),
            "timestamp": self.timestamp,
        }
        if self.cause is not None:
            if isinstance(self.cause, ApplicationError):
                result["cause"] = self.cause.to_dict()
            else:
                result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def describe(self) -> str:
        """One-line form: ``[CODE] Name: message``."""
        return f"[{self.code}] {self.name}: {self.message}"


class ValidationError(ApplicationError):
    """Input data failed validation."""

    kind = ErrorKind.VALIDATION
    default_code = "ERR_VALIDATION"
    default_recoverable = True


class StateError(ApplicationError):
    """The system is in a state that does not allow the operation."""

    kind = ErrorKind.STATE
    default_code = "ERR_STATE"
    default_recoverable = False


class DataConsistencyError(ApplicationError):
    """Persisted data contradicts itself."""

    kind = ErrorKind.DATA_CONSISTENCY
    default_code = "ERR_DATA_CONSISTENCY"
    default_recoverable = False


class StorageError(ApplicationError):
    """A filesystem or storage operation failed."""

    kind = ErrorKind.STORAGE
    default_code = "ERR_STORAGE"
    default_recoverable = True


class NetworkError(ApplicationError):
    """A network operation failed."""

    kind = ErrorKind.NETWORK
    default_code = "ERR_NETWORK"
    default_recoverable = True


class OperationTimeoutError(ApplicationError):
    """An operation ran past its deadline or was cancelled."""

    kind = ErrorKind.TIMEOUT
    default_code = "ERR_TIMEOUT"
    default_recoverable = True


class ConfigurationError(ApplicationError):
    """Configuration is missing or invalid."""

    kind = ErrorKind.CONFIGURATION
    default_code = "ERR_CONFIGURATION"
    default_recoverable = False


class DependencyError(ApplicationError):
    """A required collaborator could not be resolved."""

    kind = ErrorKind.DEPENDENCY
    default_code = "ERR_DEPENDENCY"
    default_recoverable = True


class NotFoundError(ApplicationError):
    """A requested entity does not exist."""

    kind = ErrorKind.NOT_FOUND
    default_code = "ERR_NOT_FOUND"
    default_recoverable = False


class LockTimeoutError(ApplicationError):
    """A resource lock could not be acquired in time."""

    kind = ErrorKind.LOCK_TIMEOUT
    default_code = "ERR_LOCK_TIMEOUT"
    default_recoverable = True


class CliError(ApplicationError):
    """A command-line invocation failed."""

    kind = ErrorKind.CLI
    default_code = "ERR_CLI"
    default_recoverable = False


ERROR_CLASSES: dict[ErrorKind, type[ApplicationError]] = {
    ErrorKind.APPLICATION: ApplicationError,
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.STATE: StateError,
    ErrorKind.DATA_CONSISTENCY: DataConsistencyError,
    ErrorKind.STORAGE: StorageError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.TIMEOUT: OperationTimeoutError,
    ErrorKind.CONFIGURATION: ConfigurationError,
    ErrorKind.DEPENDENCY: DependencyError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.LOCK_TIMEOUT: LockTimeoutError,
    ErrorKind.CLI: CliError,
}

_CLASS_NAMES = {cls.__name__: kind for kind, cls in ERROR_CLASSES.items()}


def error_class_for(kind: ErrorKind | str) -> type[ApplicationError]:
    """Get the error class for a kind."""
    return ERROR_CLASSES[ErrorKind(kind)]


def kind_of(error: BaseException) -> ErrorKind:
    """Classify any exception (non-taxonomy errors are ``application``)."""
    if isinstance(error, ApplicationError):
        return error.kind
    return ErrorKind.APPLICATION


def coerce_kind(key: "ErrorKind | str | type[ApplicationError]") -> ErrorKind | None:
    """
    Interpret a registry key as an error kind.

    Accepts an ErrorKind, a kind value ('storage'), a class name
    ('StorageError') or an error class. Returns None for anything else,
    which callers treat as an error code.
    """
    if isinstance(key, ErrorKind):
        return key
    if isinstance(key, type) and issubclass(key, ApplicationError):
        return key.kind
    if isinstance(key, str):
        try:
            return ErrorKind(key)
        except ValueError:
            return _CLASS_NAMES.get(key)
    return None


def raise_if_cancelled(context: OperationContext | None = None) -> None:
    """
    Raise OperationTimeoutError when the operation has been cancelled.

    Checks ``context`` or, when omitted, the context in scope. Managers
    call this before committing work.
    """
    context = context or current_context()
    if context is not None and context.is_cancelled:
        raise OperationTimeoutError(
            f"Operation {context.component}.{context.operation} was cancelled",
            context={"reason": "cancelled"},
        )
