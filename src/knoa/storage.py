"""
File storage service.

Implements the StorageService port with pretty-printed JSON files under a
base directory:

    <base>/<directory>/latest-<entity>.json
    <base>/<directory>/<entity>-history/<entity>-<id>.json
"""

import json
import logging
from pathlib import Path
from typing import Any

from knoa_core.errors import StorageError

logger = logging.getLogger(__name__)


def latest_filename(entity: str) -> str:
    return f"latest-{entity}.json"


def history_directory(directory: str, entity: str) -> str:
    return f"{directory}/{entity}-history" if directory else f"{entity}-history"


def history_filename(entity: str, entity_id: str) -> str:
    return f"{entity}-{entity_id}.json"


class FileStorageService:
    """
    JSON files under ``base_path``.

    ``directory`` arguments are namespaces relative to the base path and
    may contain ``/``; they must not escape it.
    """

    def __init__(self, base_path: Path | str):
        self.base_path = Path(base_path)

    def _path(self, directory: str, filename: str | None = None) -> Path:
        relative = Path(directory) if directory else Path()
        if filename is not None:
            relative = relative / filename
        if relative.is_absolute() or ".." in relative.parts:
            raise StorageError(
                f"Path escapes the storage root: {relative}",
                context={"directory": directory, "filename": filename, "operation": "resolve"},
            )
        return self.base_path / relative

    def file_exists(self, directory: str, filename: str) -> bool:
        return self._path(directory, filename).is_file()

    def read_json(self, directory: str, filename: str) -> Any:
        """Read a JSON file; None if it does not exist."""
        path = self._path(directory, filename)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(
                f"Failed to read {path}: {exc}",
                context={"directory": directory, "filename": filename, "operation": "read"},
                cause=exc,
            ) from exc

    def write_json(self, directory: str, filename: str, value: Any) -> None:
        path = self._path(directory, filename)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, ensure_ascii=False)
                f.write("\n")
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(
                f"Failed to write {path}: {exc}",
                context={"directory": directory, "filename": filename, "operation": "write"},
                cause=exc,
            ) from exc
        logger.debug(f"Wrote {path}")

    def ensure_directory_exists(self, directory: str) -> None:
        path = self._path(directory)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(
                f"Failed to create directory {path}: {exc}",
                context={"directory": directory, "filename": None, "operation": "mkdir"},
                cause=exc,
            ) from exc

    def list_files(self, directory: str, suffix: str = ".json") -> list[str]:
        """Sorted file names in a namespace (empty if it does not exist)."""
        path = self._path(directory)
        if not path.is_dir():
            return []
        return sorted(p.name for p in path.iterdir() if p.is_file() and p.name.endswith(suffix))

    def delete_file(self, directory: str, filename: str) -> bool:
        """Delete a file. Returns False if it did not exist."""
        path = self._path(directory, filename)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise StorageError(
                f"Failed to delete {path}: {exc}",
                context={"directory": directory, "filename": filename, "operation": "delete"},
                cause=exc,
            ) from exc
        return True

    # =========================================================================
    # PERSISTED LAYOUT
    # =========================================================================

    def read_latest(self, directory: str, entity: str) -> Any:
        return self.read_json(directory, latest_filename(entity))

    def write_latest(self, directory: str, entity: str, value: Any) -> None:
        self.write_json(directory, latest_filename(entity), value)

    def read_history(self, directory: str, entity: str, entity_id: str) -> Any:
        return self.read_json(
            history_directory(directory, entity), history_filename(entity, entity_id)
        )

    def write_history(self, directory: str, entity: str, entity_id: str, value: Any) -> None:
        self.write_json(
            history_directory(directory, entity), history_filename(entity, entity_id), value
        )

    def list_history(self, directory: str, entity: str) -> list[str]:
        """Ids of the history entries of ``entity``, in file-name order."""
        prefix = f"{entity}-"
        return [
            name[len(prefix) : -len(".json")]
            for name in self.list_files(history_directory(directory, entity))
            if name.startswith(prefix)
        ]
