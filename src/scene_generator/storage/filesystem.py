"""Filesystem storage implementation."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from .interface import StorageInterface, StorageError
from .utils import (
    validate_file_path, validate_image_type, sanitize_filename,
    validate_file_size, extension_for_mime
)


logger = logging.getLogger(__name__)

EXPORTS_DIR = "exports"


class FilesystemStorage(StorageInterface):
    """Filesystem-based storage implementation.

    Exported grids and final images are written under ``<base>/exports``.
    """

    def __init__(self, base_path: str):
        """Initialize filesystem storage.

        Args:
            base_path: Base directory for all storage operations
        """
        self.base_path = Path(base_path).resolve()
        (self.base_path / EXPORTS_DIR).mkdir(parents=True, exist_ok=True)

    def _get_absolute_path(self, storage_path: str) -> Path:
        """Convert storage path to absolute filesystem path.

        Raises:
            StorageError: If path is invalid
        """
        if not validate_file_path(storage_path):
            raise StorageError(f"Invalid storage path: {storage_path}")

        abs_path = (self.base_path / storage_path).resolve()

        # Ensure path is within base directory
        try:
            abs_path.relative_to(self.base_path)
        except ValueError:
            raise StorageError(f"Path escapes storage directory: {storage_path}")

        return abs_path

    def get_local_path(self, storage_path: str) -> str:
        return str(self._get_absolute_path(storage_path))

    async def upload(self, file_path: str, content: bytes) -> str:
        """Store bytes and return the storage path.

        Args:
            file_path: Relative path for the file in storage
            content: File content

        Returns:
            Storage path that can be used to retrieve the file

        Raises:
            StorageError: If upload fails
        """
        # Sanitize filename
        path_parts = Path(file_path).parts
        if path_parts:
            sanitized_parts = list(path_parts[:-1]) + [sanitize_filename(path_parts[-1])]
            file_path = str(Path(*sanitized_parts))

        abs_path = self._get_absolute_path(file_path)

        if not validate_image_type(file_path, content[:16]):
            raise StorageError(f"File type not allowed: {file_path}")

        if not validate_file_size(len(content)):
            raise StorageError(f"Invalid file size: {len(content)} bytes")

        # Write to temporary file first (atomic operation)
        temp_path = abs_path.with_suffix(abs_path.suffix + '.tmp')
        try:
            abs_path.parent.mkdir(parents=True, exist_ok=True)

            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(content)

            await aiofiles.os.rename(temp_path, abs_path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise StorageError(f"Failed to upload file: {e}") from e

        logger.debug(f"Stored {len(content)} bytes at {file_path}")
        return str(Path(file_path))

    async def export_image(self, content: bytes, name: str, mime_type: Optional[str] = None) -> str:
        """Write an exported image and return its absolute local path.

        Args:
            content: Encoded image bytes
            name: Base name, e.g. "grid" or "scene"
            mime_type: MIME type used to pick the extension

        Returns:
            Absolute path of the written file
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        filename = f"{name}_{timestamp}{extension_for_mime(mime_type)}"
        storage_path = await self.upload(f"{EXPORTS_DIR}/{filename}", content)
        return self.get_local_path(storage_path)
