"""
Generation mode data models.

Defines the variation categories, generation strategies, genre presets
and per-cell metadata used when building the 3x3 preview grid.
"""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class VariationCategory(str, Enum):
    """Independently toggleable variation categories."""
    ANGLE = "angle"
    SHOT = "shot"
    EXPRESSION = "expression"


class GenerationMode(str, Enum):
    """Strategy governing which instruction template is used."""
    LINEAR = "LINEAR"
    MATRIX = "MATRIX"
    DYNAMIC = "DYNAMIC"
    CINEMATIC = "CINEMATIC"
    STORY = "STORY"

    @property
    def description(self) -> str:
        """Get human-readable description of the mode."""
        descriptions = {
            GenerationMode.LINEAR: "Explores 9 presets of the single selected category.",
            GenerationMode.MATRIX: "Combines top 3 traits from two categories (3x3).",
            GenerationMode.DYNAMIC: "AI creatively mixes all three for maximum cinematic diversity.",
            GenerationMode.CINEMATIC: "AI auto-generates fixed 9-shot cinematic grid with genre styling.",
            GenerationMode.STORY: "AI generates a 3x3 visual storyboard based on your story line.",
        }
        return descriptions[self]


class CategorySelection(BaseModel):
    """Which variation categories are currently selected."""
    model_config = ConfigDict(frozen=True)

    angle: bool = Field(False, description="Camera angle variations")
    shot: bool = Field(False, description="Shot distance variations")
    expression: bool = Field(False, description="Expression variations")

    @classmethod
    def from_flags(cls, flags: Dict[str, bool]) -> "CategorySelection":
        """Build a selection from a mapping of category name to flag."""
        return cls(**{
            category.value: bool(flags.get(category.value, False))
            for category in VariationCategory
        })

    def selected(self) -> List[str]:
        """Selected category names in declaration order."""
        return [c.value for c in VariationCategory if getattr(self, c.value)]

    @property
    def count(self) -> int:
        return len(self.selected())

    @property
    def any_selected(self) -> bool:
        return self.count > 0

    def toggled(self, category: VariationCategory) -> "CategorySelection":
        """Return a copy with one flag flipped."""
        category = VariationCategory(category)
        return self.model_copy(update={category.value: not getattr(self, category.value)})

    def cleared(self) -> "CategorySelection":
        return CategorySelection()


class GenrePreset(BaseModel):
    """Colour grading, lighting and mood bundle for CINEMATIC mode."""
    model_config = ConfigDict(frozen=True)

    id: str
    name_ko: str
    name_en: str
    color_grading: str
    lighting: str
    mood: str
    card_color: str = Field("", description="Gradient classes for the UI colour card")


GENRE_PRESETS: List[GenrePreset] = [
    GenrePreset(
        id="neutral",
        name_ko="뉴트럴",
        name_en="Neutral",
        color_grading="natural colors, balanced exposure",
        lighting="natural ambient lighting",
        mood="clean, versatile, documentary-like",
        card_color="from-gray-500 to-gray-600",
    ),
    GenrePreset(
        id="cinematic",
        name_ko="시네마틱",
        name_en="Cinematic",
        color_grading="teal and orange, rich contrast",
        lighting="dramatic three-point lighting",
        mood="hollywood blockbuster feel",
        card_color="from-amber-500 to-orange-600",
    ),
    GenrePreset(
        id="noir",
        name_ko="느와르",
        name_en="Noir",
        color_grading="high contrast black and white, deep shadows",
        lighting="hard side lighting, venetian blind shadows",
        mood="mysterious, tension, classic crime",
        card_color="from-slate-800 to-black",
    ),
    GenrePreset(
        id="romantic",
        name_ko="로맨틱",
        name_en="Romantic",
        color_grading="warm tones, soft highlights, gentle glow",
        lighting="golden hour, backlight, soft diffused",
        mood="intimate, warm, dreamy",
        card_color="from-pink-400 to-rose-500",
    ),
    GenrePreset(
        id="horror",
        name_ko="호러",
        name_en="Horror",
        color_grading="desaturated, green/blue tint, crushed blacks",
        lighting="underlight, unstable flickering, harsh shadows",
        mood="dread, unease, supernatural",
        card_color="from-emerald-900 to-gray-900",
    ),
    GenrePreset(
        id="scifi",
        name_ko="SF",
        name_en="Sci-Fi",
        color_grading="cyan and orange, neon accents, cool tones",
        lighting="rim light, artificial glow, lens flares",
        mood="futuristic, technological, cold",
        card_color="from-cyan-500 to-blue-600",
    ),
]

DEFAULT_GENRE_ID = "cinematic"


def get_genre_preset(genre_id: Optional[str]) -> GenrePreset:
    """Look up a genre preset by id, falling back to the cinematic preset."""
    for preset in GENRE_PRESETS:
        if preset.id == genre_id:
            return preset
    return next(p for p in GENRE_PRESETS if p.id == DEFAULT_GENRE_ID)


def is_known_genre(genre_id: str) -> bool:
    return any(preset.id == genre_id for preset in GENRE_PRESETS)


class CellMetadata(BaseModel):
    """Labels describing one panel of the preview grid."""
    cell: int = Field(..., ge=0, le=8, description="Row-major cell index")
    angle: Optional[str] = Field(None, description="Camera angle label")
    shot: Optional[str] = Field(None, description="Shot type label")
    expression: Optional[str] = Field(None, description="Expression label")

    def summary(self) -> str:
        """Comma-separated non-empty labels."""
        return ", ".join(v for v in (self.angle, self.shot, self.expression) if v)
