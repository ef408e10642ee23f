"""
Data models for Scene Generator.

This module provides Pydantic models for type safety and validation
throughout the application.
"""

from .aspect_ratio import AspectRatio, Resolution
from .generation import (
    VariationCategory,
    GenerationMode,
    CategorySelection,
    GenrePreset,
    GENRE_PRESETS,
    DEFAULT_GENRE_ID,
    get_genre_preset,
    is_known_genre,
    CellMetadata,
)
from .session_state import (
    SessionState,
    SessionPhase,
    UsageStats,
    ParentMessage,
)
from .video_task import (
    VideoTask,
    VideoTaskStatus,
    VideoOptions,
)

__all__ = [
    # Aspect ratio
    "AspectRatio",
    "Resolution",
    # Generation
    "VariationCategory",
    "GenerationMode",
    "CategorySelection",
    "GenrePreset",
    "GENRE_PRESETS",
    "DEFAULT_GENRE_ID",
    "get_genre_preset",
    "is_known_genre",
    "CellMetadata",
    # Session
    "SessionState",
    "SessionPhase",
    "UsageStats",
    "ParentMessage",
    # Video
    "VideoTask",
    "VideoTaskStatus",
    "VideoOptions",
]
