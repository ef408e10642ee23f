"""Utility functions for storage operations."""

import re
from pathlib import Path
from typing import Optional

# File type constants
ALLOWED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp', '.gif'}

EXTENSION_BY_MIME = {
    'image/jpeg': '.jpg',
    'image/png': '.png',
    'image/webp': '.webp',
    'image/gif': '.gif',
}

# Size limits
MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB

# Filename sanitization regex
UNSAFE_CHARS = re.compile(r'[^\w\s\-.]')
MULTIPLE_DOTS = re.compile(r'\.{2,}')
LEADING_DOTS = re.compile(r'^\.+')


def validate_file_path(path: str) -> bool:
    """Prevent directory traversal attacks.

    Args:
        path: File path to validate

    Returns:
        True if path is safe, False otherwise
    """
    if not path:
        return False

    p = Path(path)

    # Check for path traversal attempts
    if '..' in p.parts:
        return False

    # Check for absolute paths
    if p.is_absolute():
        return False

    path_str = str(p)
    if any(pattern in path_str for pattern in ['../', '..\\', '~/', '~\\']):
        return False

    return True


def validate_image_type(file_path: str, content: bytes) -> bool:
    """Check the extension is an allowed image type and matches the signature.

    Args:
        file_path: Path to file (for extension check)
        content: First few bytes of file content

    Returns:
        True if file type is allowed, False otherwise
    """
    ext = Path(file_path).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        return False

    signatures = {
        b'\xff\xd8\xff': ['.jpg', '.jpeg'],
        b'\x89PNG': ['.png'],
        b'GIF8': ['.gif'],
        b'RIFF': ['.webp'],
    }
    for signature, extensions in signatures.items():
        if content.startswith(signature):
            return ext in extensions

    # Unknown header, trust the extension
    return True


def sanitize_filename(filename: str) -> str:
    """Remove dangerous characters from filename.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe for storage
    """
    name = Path(filename).stem
    ext = Path(filename).suffix

    name = UNSAFE_CHARS.sub('_', name)
    name = MULTIPLE_DOTS.sub('_', name)
    name = LEADING_DOTS.sub('', name)

    if len(name) > 200:
        name = name[:200]

    if not name:
        name = 'unnamed'

    return f"{name}{ext}"


def validate_file_size(size: int) -> bool:
    return 0 < size <= MAX_FILE_SIZE


def extension_for_mime(mime_type: Optional[str]) -> str:
    """File extension for an image MIME type, defaulting to .png."""
    return EXTENSION_BY_MIME.get((mime_type or '').lower(), '.png')
