"""Storage module for Scene Generator.

This module provides filesystem storage for exported preview grids and
final images.
"""

from .interface import StorageInterface, StorageError
from .filesystem import FilesystemStorage

__all__ = ["StorageInterface", "StorageError", "FilesystemStorage"]
