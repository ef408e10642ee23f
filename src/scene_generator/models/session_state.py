"""
Session state data model.

The single source of truth for one scene generation session. The
controller never mutates an instance in place; every transition
produces a new state via ``model_copy``.
"""

from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

from .aspect_ratio import AspectRatio, Resolution
from .generation import (
    CategorySelection,
    CellMetadata,
    DEFAULT_GENRE_ID,
    GenerationMode,
)


class SessionPhase(str, Enum):
    """Workflow step the session is currently in."""
    UPLOAD = "upload"
    CONFIGURE = "configure"
    PREVIEW_READY = "preview_ready"
    FINAL_READY = "final_ready"


class UsageStats(BaseModel):
    """Per-session request counters reported to the embedding page."""
    model_config = ConfigDict(frozen=True)

    preview_count: int = Field(0, ge=0, description="Preview requests initiated")
    final_count: int = Field(0, ge=0, description="Final requests initiated")

    def with_preview(self) -> "UsageStats":
        return self.model_copy(update={"preview_count": self.preview_count + 1})

    def with_final(self) -> "UsageStats":
        return self.model_copy(update={"final_count": self.final_count + 1})

    def to_message(self) -> Dict[str, int]:
        """Serialize with the camelCase keys the parent page expects."""
        return {"previewCount": self.preview_count, "finalCount": self.final_count}


class ParentMessage(BaseModel):
    """Message posted to the opener window and parent frame."""
    model_config = ConfigDict(frozen=True)

    FINAL_COMPLETE: ClassVar[str] = "final-complete"
    GRID_COMPLETE: ClassVar[str] = "33grid-complete"
    SCENE_GENERATED: ClassVar[str] = "SCENE_GENERATED"

    type: str = Field(..., description="Message type")
    image_url: str = Field(..., description="Image reference (URL or data URL)")
    stats: UsageStats = Field(default_factory=UsageStats)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "imageUrl": self.image_url,
            "stats": self.stats.to_message(),
        }


class SessionState(BaseModel):
    """Complete workflow state for one session."""
    model_config = ConfigDict(frozen=True)

    # Step 1: Upload
    reference_image: Optional[str] = Field(None, description="Reference image as a data URL")
    reference_filename: Optional[str] = Field(None, description="Original upload filename")
    grid_aspect_ratio: str = Field("1:1", description="Detected aspect label for the preview grid")
    external_mode: bool = Field(False, description="Opened by an embedding page")
    external_source_mode: Optional[str] = Field(None, description="Integration mode requested by the embedding page")

    # Step 2: Configuration
    selected_categories: CategorySelection = Field(default_factory=CategorySelection)
    logic_mode: GenerationMode = Field(GenerationMode.LINEAR)
    context_prompt: str = Field("", description="Context text, or story line in STORY mode")
    smart_layout_enabled: bool = Field(False, description="CINEMATIC special mode")
    story_mode_enabled: bool = Field(False, description="STORY special mode")
    selected_genre: str = Field(DEFAULT_GENRE_ID, description="Genre preset id")

    # Step 3: Preview
    is_generating_preview: bool = False
    preview_grid: Optional[str] = Field(None, description="Preview grid image reference")
    preview_grid_size: Optional[Tuple[int, int]] = Field(None, description="Grid (width, height) in pixels")
    grid_metadata: List[CellMetadata] = Field(default_factory=list)
    selected_cell_index: Optional[int] = Field(None, ge=0, le=8)

    # Step 4: Final settings
    output_resolution: Resolution = Field(Resolution.TWO_K)
    output_aspect_ratio: AspectRatio = Field(AspectRatio.WIDESCREEN)

    # Step 5: Final generation and modification
    is_generating_final: bool = False
    final_image: Optional[str] = None
    is_modifying: bool = False
    modified_image: Optional[str] = None

    # Image to video
    is_generating_video: bool = False
    video_url: Optional[str] = None

    error: Optional[str] = None

    @property
    def phase(self) -> SessionPhase:
        if self.final_image:
            return SessionPhase.FINAL_READY
        if self.preview_grid:
            return SessionPhase.PREVIEW_READY
        if self.reference_image:
            return SessionPhase.CONFIGURE
        return SessionPhase.UPLOAD

    @property
    def current_image(self) -> Optional[str]:
        """Image currently on display: the modified one if any, else the final."""
        return self.modified_image or self.final_image

    @property
    def has_generation_target(self) -> bool:
        return (
            self.selected_categories.any_selected
            or self.smart_layout_enabled
            or self.story_mode_enabled
        )

    @property
    def can_generate_preview(self) -> bool:
        return (
            self.reference_image is not None
            and not self.is_generating_preview
            and self.has_generation_target
        )

    @property
    def selected_cell_metadata(self) -> Optional[CellMetadata]:
        if self.selected_cell_index is None:
            return None
        for meta in self.grid_metadata:
            if meta.cell == self.selected_cell_index:
                return meta
        return None

    def evolve(self, **changes: Any) -> "SessionState":
        """Return a new state with the given fields replaced."""
        return self.model_copy(update=changes)
