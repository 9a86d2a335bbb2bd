"""
Declarative parameter schemas for adapter methods.

Each adapter method declares a ParamSchema mapping argument names to
Param records. A Param is a required flag plus a sequence of composable
checks; the first failing check raises ValidationError with
``context["argument"]`` naming the offending argument.

Example:
    schema = ParamSchema(
        task_id=Param(checks=(is_str(), matches(r"T\\d{3}")), message=TASK_ID_MESSAGE),
        progress=Param(checks=(in_range(0, 100),)),
    )
    schema.validate({"task_id": "T001", "progress": 50})
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from knoa_core.errors.taxonomy import ValidationError


@dataclass(frozen=True, slots=True)
class Check:
    """A predicate with a human-readable description of what it expects."""

    test: Callable[[Any], bool]
    description: str

    def __call__(self, value: Any) -> bool:
        return bool(self.test(value))


def is_str(*, allow_empty: bool = False) -> Check:
    """Value is a string (non-empty unless ``allow_empty``)."""
    if allow_empty:
        return Check(lambda value: isinstance(value, str), "a string")
    return Check(lambda value: isinstance(value, str) and bool(value), "a non-empty string")


def is_mapping() -> Check:
    """Value is a mapping (dict-like)."""
    return Check(lambda value: isinstance(value, Mapping), "an object")


def is_int() -> Check:
    """Value is an integer (booleans excluded)."""
    return Check(
        lambda value: isinstance(value, int) and not isinstance(value, bool), "an integer"
    )


def is_number() -> Check:
    """Value is an int or float (booleans excluded)."""
    return Check(
        lambda value: isinstance(value, (int, float)) and not isinstance(value, bool),
        "a number",
    )


def matches(pattern: str, description: str | None = None) -> Check:
    """String value fully matches ``pattern``."""
    compiled = re.compile(pattern)
    return Check(
        lambda value: isinstance(value, str) and compiled.fullmatch(value) is not None,
        description or f"a string matching {pattern}",
    )


def one_of(values: Iterable[Any]) -> Check:
    """Value is one of a finite set."""
    allowed = tuple(values)
    return Check(
        lambda value: value in allowed,
        f"one of {', '.join(repr(v) for v in allowed)}",
    )


def in_range(low: float, high: float) -> Check:
    """Numeric value within ``[low, high]``."""
    return Check(
        lambda value: isinstance(value, (int, float))
        and not isinstance(value, bool)
        and low <= value <= high,
        f"a number between {low} and {high}",
    )


def any_of(*checks: Check) -> Check:
    """At least one of ``checks`` passes."""
    return Check(
        lambda value: any(check(value) for check in checks),
        " or ".join(check.description for check in checks),
    )


@dataclass(frozen=True, slots=True)
class Param:
    """Declaration of one adapter argument."""

    required: bool = True
    checks: tuple[Check, ...] = ()
    message: str | None = None  # Overrides the generated failure message


class ParamSchema:
    """Ordered mapping of argument name to Param."""

    def __init__(self, **params: Param) -> None:
        self.params: dict[str, Param] = params

    def __contains__(self, name: str) -> bool:
        return name in self.params

    def validate(self, arguments: Mapping[str, Any]) -> None:
        """
        Check ``arguments`` against the schema.

        Missing or None values fail required params; optional params are
        only checked when present.

        Raises:
            ValidationError: On the first failing argument.
        """
        for name, param in self.params.items():
            value = arguments.get(name)
            if value is None:
                if param.required:
                    raise ValidationError(
                        f"Parameter '{name}' is required",
                        context={"argument": name, "reason": "missing"},
                    )
                continue

            for check in param.checks:
                if check(value):
                    continue
                raise ValidationError(
                    param.message or f"Parameter '{name}' must be {check.description}",
                    context={
                        "argument": name,
                        "reason": "invalid",
                        "expected": check.description,
                        "received": type(value).__name__,
                    },
                )


# Shared argument declarations
TASK_ID_PATTERN = r"T\d{3}"
TASK_ID_MESSAGE = "Task id must use the T000 format (e.g. T001)"
SESSION_ID_PATTERN = r"[0-9a-f]{40}|session-[A-Za-z0-9_-]+"
COMMIT_HASH_PATTERN = r"[0-9a-fA-F]{4,40}"

TASK_ID = Param(checks=(is_str(), matches(TASK_ID_PATTERN)), message=TASK_ID_MESSAGE)
SESSION_ID = Param(
    checks=(is_str(), matches(SESSION_ID_PATTERN, "a 40-hex commit hash or session-<suffix>")),
)
COMMIT_HASH = Param(checks=(is_str(), matches(COMMIT_HASH_PATTERN, "a git commit hash")))
ENTITY = Param(checks=(is_mapping(),))
