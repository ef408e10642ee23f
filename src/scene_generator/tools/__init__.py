"""Tools for Scene Generator: grid geometry, mode selection and image transfer."""

from .grid_geometry import (
    point_to_cell_index,
    cell_rect,
    cell_center,
    crop_cell,
    composite_cell,
    ratio_label_to_aspect,
    detect_aspect_ratio,
)
from .mode_selector import select_mode, has_generation_target
from .image_transfer import (
    ImageDecodeError,
    encode_to_transportable,
    decode_data_url,
    compress_for_transport,
    resolve_image_ref,
)

__all__ = [
    "point_to_cell_index",
    "cell_rect",
    "cell_center",
    "crop_cell",
    "composite_cell",
    "ratio_label_to_aspect",
    "detect_aspect_ratio",
    "select_mode",
    "has_generation_target",
    "ImageDecodeError",
    "encode_to_transportable",
    "decode_data_url",
    "compress_for_transport",
    "resolve_image_ref",
]
