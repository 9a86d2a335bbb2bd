"""
Storage port interfaces.

Defines the directory/file abstraction managers persist through. The
reference implementation writes pretty-printed JSON files; other backends
only need to honour the same contract.

These are pure interfaces - no filesystem access here.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StorageService(Protocol):
    """
    Protocol for namespaced JSON storage.

    Failures surface as ``knoa_core.errors.StorageError``.
    """

    def file_exists(self, directory: str, filename: str) -> bool:
        """
        Check if a file exists.

        Args:
            directory: Namespace relative to the storage root.
            filename: Name of the file inside the namespace.

        Returns:
            True if the file exists.
        """
        ...

    def read_json(self, directory: str, filename: str) -> Any:
        """
        Read and decode a JSON file.

        Returns:
            The decoded value, or None if the file does not exist.

        Raises:
            StorageError: The file exists but cannot be read or decoded.
        """
        ...

    def write_json(self, directory: str, filename: str, value: Any) -> None:
        """
        Encode and write a JSON file, creating the namespace if needed.

        Raises:
            StorageError: The file cannot be written.
        """
        ...

    def ensure_directory_exists(self, directory: str) -> None:
        """
        Create a namespace if it is missing.

        Raises:
            StorageError: The directory cannot be created.
        """
        ...
