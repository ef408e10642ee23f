"""Grid addressing for the 3x3 preview image.

Maps pixel coordinates to row-major cell indices (0..8), cell indices to
sub-rectangles, and crops or composites individual cells with Pillow.
"""

import logging
import math
from typing import Tuple

from PIL import Image


logger = logging.getLogger(__name__)

GRID_SIZE = 3
CELL_COUNT = GRID_SIZE * GRID_SIZE

# Checked in order; the first one within tolerance wins
COMMON_RATIOS = [
    ("16:9", 16 / 9),
    ("9:16", 9 / 16),
    ("4:3", 4 / 3),
    ("3:4", 3 / 4),
    ("1:1", 1.0),
]
RATIO_TOLERANCE = 0.05


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _validate_cell_index(cell_index: int) -> None:
    if not 0 <= cell_index < CELL_COUNT:
        raise ValueError(f"Cell index must be between 0 and {CELL_COUNT - 1}, got {cell_index}")


def point_to_cell_index(x: float, y: float, width: float, height: float) -> int:
    """Convert a point inside the displayed grid into a cell index.

    Coordinates outside the rectangle are clamped to the nearest edge cell.

    Args:
        x: Horizontal offset from the left edge
        y: Vertical offset from the top edge
        width: Displayed grid width
        height: Displayed grid height

    Returns:
        Row-major cell index in 0..8
    """
    if width <= 0 or height <= 0:
        return 0

    col = _clamp(math.floor(x / width * GRID_SIZE), 0, GRID_SIZE - 1)
    row = _clamp(math.floor(y / height * GRID_SIZE), 0, GRID_SIZE - 1)
    return row * GRID_SIZE + col


def cell_rect(cell_index: int, width: float, height: float) -> Tuple[float, float, float, float]:
    """Get the (left, top, cell_width, cell_height) rectangle of a cell.

    Raises:
        ValueError: If cell_index is outside 0..8
    """
    _validate_cell_index(cell_index)
    cell_w = width / GRID_SIZE
    cell_h = height / GRID_SIZE
    row, col = divmod(cell_index, GRID_SIZE)
    return col * cell_w, row * cell_h, cell_w, cell_h


def cell_center(cell_index: int, width: float, height: float) -> Tuple[float, float]:
    """Midpoint of a cell; point_to_cell_index maps it back to cell_index."""
    left, top, cell_w, cell_h = cell_rect(cell_index, width, height)
    return left + cell_w / 2, top + cell_h / 2


def _cell_box(cell_index: int, width: int, height: int) -> Tuple[int, int, int, int]:
    left, top, cell_w, cell_h = cell_rect(cell_index, width, height)
    return int(left), int(top), int(left + cell_w), int(top + cell_h)


def crop_cell(source: Image.Image, cell_index: int) -> Image.Image:
    """Extract one cell of the grid as a new image.

    Args:
        source: Full preview grid
        cell_index: Cell to extract

    Returns:
        New image holding only that cell

    Raises:
        ValueError: If cell_index is outside 0..8
    """
    box = _cell_box(cell_index, source.width, source.height)
    logger.debug(f"Cropping cell {cell_index} with box {box}")
    return source.crop(box)


def composite_cell(dest: Image.Image, cell_index: int, patch: Image.Image) -> Image.Image:
    """Paste a patch over one cell of a copy of the grid.

    The patch is resized to the cell box; the other eight cells and the
    input image are left untouched.

    Raises:
        ValueError: If cell_index is outside 0..8
    """
    left, top, right, bottom = _cell_box(cell_index, dest.width, dest.height)
    size = (max(1, right - left), max(1, bottom - top))

    result = dest.copy()
    resized = patch.convert(result.mode).resize(size, Image.LANCZOS)
    result.paste(resized, (left, top))
    return result


def ratio_label_to_aspect(label: str) -> Tuple[int, int]:
    """Parse a "W:H" label; "Original", empty or malformed labels give (1, 1)."""
    if not label or label == "Original":
        return 1, 1

    parts = label.split(":")
    if len(parts) != 2:
        return 1, 1

    try:
        w, h = int(parts[0]), int(parts[1])
    except ValueError:
        return 1, 1

    if w <= 0 or h <= 0:
        return 1, 1
    return w, h


def detect_aspect_ratio(width: int, height: int) -> str:
    """Label an image's aspect ratio.

    Returns the first common ratio within tolerance, otherwise the
    GCD-reduced "W:H" form.
    """
    if width <= 0 or height <= 0:
        return "1:1"

    ratio = width / height
    for label, value in COMMON_RATIOS:
        if abs(ratio - value) < RATIO_TOLERANCE:
            return label

    divisor = math.gcd(width, height)
    return f"{width // divisor}:{height // divisor}"
