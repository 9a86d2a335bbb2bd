"""
Tests for Core ports.

Verifies:
1. Ports are importable with no side effects
2. ValidationResult semantics
3. Protocols are runtime-checkable against structural implementations
"""

import pytest


class TestPortsImportable:
    """Test that port modules import cleanly."""

    def test_import_ports(self) -> None:
        from knoa_core import ports

        assert hasattr(ports, "Validator")
        assert hasattr(ports, "StorageService")
        assert hasattr(ports, "TaskManager")

    def test_vocabularies(self) -> None:
        from knoa_core.ports import FEEDBACK_STATUSES, TASK_STATUSES, WORKFLOW_STATES

        assert TASK_STATUSES == ("pending", "in_progress", "completed", "blocked")
        assert "open" in FEEDBACK_STATUSES
        assert WORKFLOW_STATES[0] == "uninitialized"
        assert "error" in WORKFLOW_STATES


class TestValidationResult:
    """Test ValidationResult."""

    def test_valid_without_errors(self) -> None:
        from knoa_core.ports import ValidationResult

        result = ValidationResult.from_messages(warnings=["Task has no description"])

        assert result.is_valid is True
        assert result.warnings == ("Task has no description",)
        result.raise_for_errors("task")

    def test_invalid_with_errors(self) -> None:
        from knoa_core.errors import ValidationError
        from knoa_core.ports import ValidationResult

        result = ValidationResult.from_messages(["Task title is required", "Bad status"])

        assert result.is_valid is False
        with pytest.raises(ValidationError) as exc_info:
            result.raise_for_errors("task")

        assert str(exc_info.value) == "Invalid task: Task title is required; Bad status"
        assert exc_info.value.context == {
            "entity": "task",
            "errors": ["Task title is required", "Bad status"],
        }

    def test_to_dict(self) -> None:
        from knoa_core.ports import ValidationResult

        assert ValidationResult.from_messages(["x"]).to_dict() == {
            "isValid": False,
            "errors": ["x"],
            "warnings": [],
        }

    def test_is_frozen(self) -> None:
        from dataclasses import FrozenInstanceError

        from knoa_core.ports import ValidationResult

        result = ValidationResult.from_messages()

        with pytest.raises(FrozenInstanceError):
            result.is_valid = False  # type: ignore[misc]


class TestProtocols:
    """Test structural conformance checks."""

    def test_validator_protocol(self) -> None:
        from knoa_core.ports import ValidationResult, Validator

        class AlwaysValid:
            def validate(self, entity):
                return ValidationResult.from_messages()

        assert isinstance(AlwaysValid(), Validator)
        assert not isinstance(object(), Validator)

    def test_storage_protocol(self) -> None:
        from knoa_core.ports import StorageService

        class MemoryStorage:
            def __init__(self):
                self.files = {}

            def file_exists(self, directory, filename):
                return (directory, filename) in self.files

            def read_json(self, directory, filename):
                return self.files.get((directory, filename))

            def write_json(self, directory, filename, value):
                self.files[(directory, filename)] = value

            def ensure_directory_exists(self, directory):
                pass

        storage = MemoryStorage()
        storage.write_json("tasks", "latest-tasks.json", {"tasks": []})

        assert isinstance(storage, StorageService)
        assert storage.read_json("tasks", "latest-tasks.json") == {"tasks": []}

    def test_state_manager_protocol(self) -> None:
        from knoa_core.ports import StateManager

        class Minimal:
            def get_current_state(self):
                return "uninitialized"

            def set_state(self, state, data=None):
                return {}

            def transition_to(self, target_state, data=None):
                return {}

            def can_transition_to(self, target_state):
                return False

            def get_state_history(self):
                return []

            def get_previous_state(self):
                return None

        assert isinstance(Minimal(), StateManager)
