"""Aspect ratio and resolution enums."""

from enum import Enum
from typing import Tuple


class AspectRatio(str, Enum):
    """Supported output aspect ratios for the final image."""

    SQUARE = "1:1"           # Square format (Instagram posts)
    WIDESCREEN = "16:9"      # Standard widescreen
    PORTRAIT = "9:16"        # Vertical (Stories, Reels, Shorts)
    CLASSIC = "4:3"          # Classic photo format
    CLASSIC_PORTRAIT = "3:4" # Vertical classic photo format
    ULTRAWIDE = "21:9"       # Ultrawide/Cinematic

    @classmethod
    def from_string(cls, value: str) -> "AspectRatio":
        """Convert string to AspectRatio enum.

        Args:
            value: String representation of aspect ratio

        Returns:
            AspectRatio enum value

        Raises:
            ValueError: If value is not a valid aspect ratio
        """
        for ratio in cls:
            if ratio.value == value:
                return ratio
        raise ValueError(f"Invalid aspect ratio: {value}. Valid options: {[r.value for r in cls]}")

    @property
    def description(self) -> str:
        """Get human-readable description of aspect ratio."""
        descriptions = {
            AspectRatio.SQUARE: "Square (Instagram posts)",
            AspectRatio.WIDESCREEN: "Widescreen (YouTube, TV)",
            AspectRatio.PORTRAIT: "Portrait/Vertical (Stories, Reels)",
            AspectRatio.CLASSIC: "Classic photo",
            AspectRatio.CLASSIC_PORTRAIT: "Classic photo, vertical",
            AspectRatio.ULTRAWIDE: "Ultrawide/Cinematic (Movies)",
        }
        return descriptions.get(self, "Custom aspect ratio")

    @property
    def ratio_value(self) -> float:
        """Get aspect ratio as float value."""
        width, height = map(float, self.value.split(":"))
        return width / height

    @property
    def is_portrait(self) -> bool:
        """Check if this is a portrait/vertical aspect ratio."""
        return self in [AspectRatio.PORTRAIT, AspectRatio.CLASSIC_PORTRAIT]


class Resolution(str, Enum):
    """Output resolution tiers for the final image."""

    ONE_K = "1K"
    TWO_K = "2K"
    FOUR_K = "4K"

    @property
    def long_edge(self) -> int:
        """Approximate pixel length of the longer side."""
        edges = {
            Resolution.ONE_K: 1024,
            Resolution.TWO_K: 2048,
            Resolution.FOUR_K: 4096,
        }
        return edges[self]

    def dimensions(self, aspect_ratio: AspectRatio) -> Tuple[int, int]:
        """Get (width, height) for this tier at the given aspect ratio."""
        ratio = aspect_ratio.ratio_value
        if ratio >= 1:
            return self.long_edge, round(self.long_edge / ratio)
        return round(self.long_edge * ratio), self.long_edge
