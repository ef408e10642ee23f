"""Image transfer helpers.

Images travel between the UI, the controller and the remote backends as
string references: ``data:<mime>;base64,<payload>`` URLs, http(s) URLs, or
paths to local temporary files. These helpers convert between those forms
and Pillow images, and shrink payloads before submission.
"""

import asyncio
import base64
import binascii
import logging
import re
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import requests
from PIL import Image, UnidentifiedImageError

from ..config import settings


logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]+)*),(?P<payload>.*)$", re.DOTALL)

# base64 inflates payloads by roughly 4/3, plus the header
BASE64_OVERHEAD = 1.37
START_QUALITY = 90
QUALITY_STEP = 10
MIN_QUALITY = 40


class ImageDecodeError(Exception):
    """Raised when bytes or a reference cannot be decoded as an image."""
    pass


def is_data_url(ref: Optional[str]) -> bool:
    return bool(ref) and ref.startswith("data:")


def is_remote_url(ref: Optional[str]) -> bool:
    return bool(ref) and ref.startswith(("http://", "https://"))


def sniff_mime_type(data: bytes) -> str:
    """Detect an image MIME type from its bytes.

    Raises:
        ImageDecodeError: If Pillow cannot identify the image
    """
    try:
        with Image.open(BytesIO(data)) as img:
            image_format = img.format
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"Unrecognized image data: {e}") from e

    mime_type = Image.MIME.get(image_format or "")
    if not mime_type:
        raise ImageDecodeError(f"Unsupported image format: {image_format}")
    return mime_type


def encode_to_transportable(data: bytes, mime_type: Optional[str] = None) -> str:
    """Encode raw image bytes as a data URL.

    Args:
        data: Image file bytes
        mime_type: Known MIME type, or None to sniff it with Pillow

    Returns:
        ``data:<mime>;base64,<payload>`` string
    """
    if not data:
        raise ImageDecodeError("Image data is empty")
    mime_type = mime_type or sniff_mime_type(data)
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{payload}"


def decode_data_url(ref: str) -> Tuple[str, bytes]:
    """Split a base64 data URL into (mime_type, bytes).

    Raises:
        ImageDecodeError: If the reference is not a well-formed base64 data URL
    """
    match = DATA_URL_PATTERN.match(ref or "")
    if not match:
        raise ImageDecodeError("Not a data URL")
    if ";base64" not in match.group("params"):
        raise ImageDecodeError("Data URL is not base64 encoded")

    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 payload: {e}") from e

    return match.group("mime") or "application/octet-stream", data


def image_to_data_url(image: Image.Image, format: str = "JPEG", quality: int = 95) -> str:
    """Serialize a Pillow image to a data URL."""
    if format.upper() in ("JPEG", "JPG") and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    buffer = BytesIO()
    image.save(buffer, format=format, quality=quality)
    mime_type = Image.MIME.get(format.upper(), "image/jpeg")
    return encode_to_transportable(buffer.getvalue(), mime_type)


def data_url_to_image(ref: str) -> Image.Image:
    """Decode a data URL into a fully loaded Pillow image."""
    _, data = decode_data_url(ref)
    return bytes_to_image(data)


def bytes_to_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e
    return image


def compress_for_transport(
    ref: str,
    max_dimension: Optional[int] = None,
    max_bytes: Optional[int] = None,
) -> str:
    """Shrink a data URL so it fits a backend request.

    Non-data references pass through unchanged. Data URLs are downscaled so
    the longer side is at most ``max_dimension`` (never upscaled), then
    re-encoded as JPEG, lowering quality step by step while the encoded
    length exceeds the byte budget. The budget is best-effort: the loop
    stops at the minimum quality.

    Args:
        ref: Image reference
        max_dimension: Longest allowed side in pixels
        max_bytes: Target decoded payload size

    Returns:
        Compressed data URL, or ``ref`` itself for non-data references
    """
    if not is_data_url(ref):
        return ref

    max_dimension = max_dimension or settings.transport_max_dimension
    max_bytes = max_bytes or settings.transport_max_bytes
    limit = max_bytes * BASE64_OVERHEAD

    image = data_url_to_image(ref)
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    image.thumbnail((max_dimension, max_dimension), Image.LANCZOS)

    quality = START_QUALITY
    encoded = image_to_data_url(image, "JPEG", quality)
    while len(encoded) > limit and quality > MIN_QUALITY:
        quality -= QUALITY_STEP
        encoded = image_to_data_url(image, "JPEG", quality)

    logger.debug(
        f"Compressed image to {image.width}x{image.height} at quality {quality} "
        f"({len(encoded)} chars)"
    )
    return encoded


def resolve_image_ref(ref: str) -> str:
    """Turn a local file path into a data URL; URLs pass through.

    Raises:
        ImageDecodeError: If the reference is empty or points nowhere
    """
    if not ref:
        raise ImageDecodeError("Image reference is empty")
    if is_data_url(ref) or is_remote_url(ref):
        return ref

    path = Path(ref)
    if not path.is_file():
        raise ImageDecodeError(f"Image file not found: {ref}")
    return encode_to_transportable(path.read_bytes())


async def fetch_image_bytes(ref: str, timeout: Optional[float] = None) -> bytes:
    """Load the bytes behind any image reference.

    Args:
        ref: Data URL, http(s) URL or local file path
        timeout: HTTP timeout in seconds for remote URLs

    Returns:
        Raw image file bytes

    Raises:
        ImageDecodeError: If the reference cannot be resolved
        requests.RequestException: If a download fails
    """
    if is_data_url(ref):
        return decode_data_url(ref)[1]

    if is_remote_url(ref):
        timeout = timeout or settings.http_timeout
        logger.info(f"Downloading image from {ref}")
        response = await asyncio.to_thread(requests.get, ref, timeout=timeout)
        response.raise_for_status()
        return response.content

    path = Path(ref or "")
    if not ref or not path.is_file():
        raise ImageDecodeError(f"Image file not found: {ref}")

    async with aiofiles.open(path, "rb") as f:
        return await f.read()
