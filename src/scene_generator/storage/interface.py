"""Abstract storage interface for Scene Generator artifacts."""

from abc import ABC, abstractmethod
from typing import Optional


class StorageInterface(ABC):
    """Abstract storage interface for exported images.

    This interface defines the contract for all storage implementations.
    Paths are relative to the storage root.
    """

    @abstractmethod
    async def upload(self, file_path: str, content: bytes) -> str:
        """Store bytes and return the storage path.

        Args:
            file_path: Relative path for the file in storage
            content: File content to store

        Returns:
            Storage path that can be used to retrieve the file

        Raises:
            StorageError: If upload fails
        """
        pass

    @abstractmethod
    async def export_image(self, content: bytes, name: str, mime_type: Optional[str] = None) -> str:
        """Write an exported image and return its absolute local path.

        Raises:
            StorageError: If the image cannot be written
        """
        pass

    @abstractmethod
    def get_local_path(self, storage_path: str) -> str:
        """Absolute local path of a stored file, for download links.

        Raises:
            StorageError: If path is invalid
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass
