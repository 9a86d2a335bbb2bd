"""
Validation port interfaces.

Defines the contract entity validators fulfil. Validators return a
structured verdict instead of raising; callers decide whether a failed
verdict becomes a ValidationError.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from knoa_core.errors.taxonomy import ValidationError


@dataclass(frozen=True)
class ValidationResult:
    """Verdict of validating one entity."""

    is_valid: bool
    errors: tuple[str, ...] = field(default_factory=tuple)
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_messages(
        cls,
        errors: list[str] | tuple[str, ...] = (),
        warnings: list[str] | tuple[str, ...] = (),
    ) -> "ValidationResult":
        """Build a verdict that is valid exactly when there are no errors."""
        return cls(is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings))

    def raise_for_errors(self, entity: str = "entity") -> None:
        """
        Raise a ValidationError if the verdict failed.

        Raises:
            ValidationError: ``context["errors"]`` carries the error list.
        """
        if self.is_valid:
            return
        raise ValidationError(
            f"Invalid {entity}: {'; '.join(self.errors)}",
            context={"entity": entity, "errors": list(self.errors)},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@runtime_checkable
class Validator(Protocol):
    """Protocol for entity validators."""

    def validate(self, entity: Any) -> ValidationResult:
        """
        Validate an entity.

        Args:
            entity: The value to check (usually a mapping).

        Returns:
            The verdict; never raises for invalid input.
        """
        ...
