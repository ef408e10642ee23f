"""Derive the generation mode from the current selection."""

from typing import Mapping, Union

from ..models.generation import CategorySelection, GenerationMode


Categories = Union[CategorySelection, Mapping[str, bool]]

_MODE_BY_COUNT = {
    1: GenerationMode.LINEAR,
    2: GenerationMode.MATRIX,
    3: GenerationMode.DYNAMIC,
}


def _as_selection(categories: Categories) -> CategorySelection:
    if isinstance(categories, CategorySelection):
        return categories
    return CategorySelection.from_flags(dict(categories))


def select_mode(
    categories: Categories,
    smart_layout_enabled: bool = False,
    story_mode_enabled: bool = False,
) -> GenerationMode:
    """Pick the generation strategy.

    Story mode takes precedence over smart layout; otherwise the number of
    selected categories decides. Zero categories falls back to LINEAR, but
    callers gate that case through has_generation_target.

    Args:
        categories: Category selection or a name-to-flag mapping
        smart_layout_enabled: CINEMATIC special mode flag
        story_mode_enabled: STORY special mode flag

    Returns:
        The active GenerationMode
    """
    if story_mode_enabled:
        return GenerationMode.STORY
    if smart_layout_enabled:
        return GenerationMode.CINEMATIC

    count = _as_selection(categories).count
    return _MODE_BY_COUNT.get(count, GenerationMode.LINEAR)


def has_generation_target(
    categories: Categories,
    smart_layout_enabled: bool = False,
    story_mode_enabled: bool = False,
) -> bool:
    """True when a preview request would have something to vary."""
    return (
        _as_selection(categories).any_selected
        or smart_layout_enabled
        or story_mode_enabled
    )
