"""Instruction templates for preview, final and modification requests."""

from typing import List, Optional, Sequence

from ..models.generation import (
    CellMetadata,
    GenerationMode,
    get_genre_preset,
)


AI_GENERATED = "AI Generated"

CINEMATIC_SHOTS = [
    ("Extreme Long Shot", "Eye Level"),
    ("Long Shot", "Eye Level"),
    ("Medium Long Shot", "Eye Level"),
    ("Medium Shot", "Eye Level"),
    ("Medium Close-Up", "Eye Level"),
    ("Close-Up", "Eye Level"),
    ("Extreme Close-Up", "Eye Level"),
    ("Medium Shot", "Low Angle"),
    ("Medium Shot", "High Angle"),
]

SHOT_PROGRESSION = [
    "Extreme Close-up (Focus on Eyes/Details)",
    "Close-up (Face only)",
    "Over-the-Shoulder (OTS) - Added for depth",
    "Medium Close-up (Chest up)",
    "Medium Shot (Waist up)",
    "Cowboy Shot (Thighs up)",
    "Full Shot (Whole body)",
    "Wide Shot (Subject + Surroundings)",
    "Extreme Wide Shot (Vast landscape/Establishing)",
]

MODE_GUIDANCE = {
    GenerationMode.LINEAR: "Vary only the selected category across all 9 panels.",
    GenerationMode.MATRIX: "Cross the top 3 traits of the first selected category (rows) with the top 3 traits of the second (columns).",
    GenerationMode.DYNAMIC: "Mix camera angle, shot size and expression creatively for maximum cinematic diversity.",
}


def _canvas_rules(ratio_label: str) -> str:
    return (
        f"IMPORTANT CONSTRAINT: The final output image must be a single 3x3 grid of exactly 9 panels. "
        f"The overall canvas aspect ratio must match {ratio_label}. "
        f"Do NOT generate a square image if a wide ratio is requested. Fill the entire canvas. "
        f"Panels must be seamless: no grid lines, borders or gaps between them."
    )


def _build_progression_prompt(
    mode: GenerationMode,
    categories: Sequence[str],
    context: str,
    ratio_label: str,
) -> str:
    shots = "\n".join(f"{i}. {shot}" for i, shot in enumerate(SHOT_PROGRESSION, start=1))
    return f"""{_canvas_rules(ratio_label)}

[Grid Composition]
Generate a 3x3 grid where each panel STRICTLY follows this shot progression to show diverse distances:

{shots}

Ensure each panel distinctly represents these distances.

Generate a cinematic preview grid (3x3 style) based on this reference image.
Keep the same subject, outfit and environment in every panel.
Logic Mode: {mode.value}
{MODE_GUIDANCE.get(mode, "")}
Selected Categories: {", ".join(categories)}
Context: {context}
Return the generated image directly."""


def _build_cinematic_prompt(genre_id: Optional[str], ratio_label: str) -> str:
    genre = get_genre_preset(genre_id)
    return f"""[ROLE]
You are a veteran cinematographer creating a professional shot breakdown.

[REFERENCE - IMMUTABLE]
The FIRST IMAGE is your ONLY source of truth.
This is the ABSOLUTE REFERENCE for all visual elements.

[IDENTITY LOCK - CRITICAL]
FROM the reference image, EXTRACT and permanently LOCK:
- Facial geometry: bone structure, eye spacing, nose shape, lip form
- Skin tone and texture
- Hair: exact style, color, volume, parting direction
- Outfit: every garment, accessory, fabric fold, pattern
- Environment: background elements, props, surfaces, architecture
- Lighting baseline: direction, color temperature, shadow characteristics

ANY deviation = COMPLETE FAILURE. No exceptions.

[ANALYSIS TASK]
Analyze the input image and identify:
1. Subject type: person / couple / group / vehicle / object / animal
2. Spatial relationships and interactions between subjects
3. Environmental context and setting
4. Current lighting conditions

[SUBJECT ADAPTATION RULES]
Apply framing rules based on detected subject type:

IF person:
  - Maintain consistent facial features across all 9 shots
  - ECU focuses on eyes with catchlight OR emotional detail

IF couple:
  - Keep both subjects in frame for all shots (except ECU)
  - Preserve spatial relationship and interaction
  - ECU: intertwined hands OR shared gaze point

IF group:
  - Maintain all group members visible (except ECU)
  - Preserve group dynamics and positioning
  - ECU: central interaction point OR leader's expression

IF vehicle:
  - Show complete vehicle in wider shots
  - CU: front grille / headlights
  - ECU: emblem / wheel detail / surface texture

IF object/product:
  - Frame complete object in wider shots
  - Emphasize form and material
  - ECU: logo / texture / unique design element

IF animal:
  - Maintain species characteristics
  - ECU: eyes OR fur/feather texture

[GENERATION TASK]
{_canvas_rules(ratio_label)}

Grid Structure:
| Row 1: ESTABLISHING CONTEXT |
| Cell 0: Extreme Long Shot, subject small in vast space | Cell 1: Long Shot, full body head to toe | Cell 2: Medium Long Shot, knees up |
| Row 2: CORE COVERAGE |
| Cell 3: Medium Shot, waist up | Cell 4: Medium Close-Up, chest up | Cell 5: Close-Up, face or front |
| Row 3: DETAIL & ANGLES |
| Cell 6: Extreme Close-Up, key feature | Cell 7: Low Angle, looking up | Cell 8: High Angle, looking down |

[STYLE PRESET: {genre.name_en}]
Color Grading: {genre.color_grading}
Lighting Style: {genre.lighting}
Mood: {genre.mood}

Apply this style CONSISTENTLY across all 9 panels.

[TECHNICAL REQUIREMENTS]
- Photorealistic rendering quality
- Consistent color grading across ALL 9 panels
- Realistic depth of field progression (shallow DOF with bokeh in close-ups)
- Seamless panel arrangement (no visible borders between cells)
- Single cohesive image output

[FORBIDDEN - ABSOLUTE]
- Different person/subject in any panel
- Changed clothing, hairstyle, or accessories
- Different background environment
- Inconsistent lighting direction or color temperature
- Frame borders, panel dividers, or grid lines
- Text, labels, numbers, or annotations
- Watermarks or signatures
- Cartoon or illustration style
- Multiple characters unless present in reference

[NEGATIVE PROMPT]
different person, changed identity, altered face, different clothes,
changed hairstyle, different hair color, modified background,
inconsistent lighting, deformed features, distorted proportions,
frame borders, panel borders, grid lines, text overlay,
labels, numbers, watermark, signature, logo,
cartoon style, illustration style, anime style,
painting style, sketch style, low quality, blurry"""


def _build_story_prompt(story: str, ratio_label: str) -> str:
    return f"""[ROLE]
You are a storyboard artist turning a short story into 9 sequential frames.

[REFERENCE]
The reference image defines the main character, outfit and world.
Keep identity, clothing and visual style identical in every frame.

[STORY LINE]
{story or "Continue the scene in the reference image with a short, coherent sequence of events."}

[GENERATION TASK]
{_canvas_rules(ratio_label)}

Split the story into 9 narrative beats and draw one beat per panel,
reading left to right, top to bottom (panel 1 is the opening, panel 9 the ending).
Vary shot size and camera angle between beats the way a film editor would.

[FORBIDDEN]
- Text, captions, speech bubbles, numbers or watermarks
- Different character or changed outfit between panels
- Frame borders, panel dividers, or grid lines"""


def build_preview_prompt(
    mode: GenerationMode,
    categories: Sequence[str],
    context: str,
    ratio_label: str,
    genre_id: Optional[str] = None,
) -> str:
    """Build the preview-grid instruction for a generation mode.

    Args:
        mode: Active generation strategy
        categories: Selected category names (ignored by special modes)
        context: Context text, or the story line in STORY mode
        ratio_label: Aspect label the grid canvas must match
        genre_id: Genre preset id for CINEMATIC mode

    Returns:
        Instruction text
    """
    mode = GenerationMode(mode)
    if mode == GenerationMode.CINEMATIC:
        return _build_cinematic_prompt(genre_id, ratio_label)
    if mode == GenerationMode.STORY:
        return _build_story_prompt(context, ratio_label)
    return _build_progression_prompt(mode, categories, context, ratio_label)


def build_final_prompt(resolution: str, aspect_ratio: str, context: Optional[str] = None) -> str:
    """Instruction for upscaling the selected cell; images are [original, patch]."""
    return f"""DO NOT generate a new random scene.
STRICTLY UPSCALING TASK: Look at Image 2 (The Cropped Patch).
Reconstruct that exact scene in high resolution using the character details from Image 1.
The composition MUST match Image 2.
Resolution: {resolution}
Aspect Ratio: {aspect_ratio}
Context: {context or ''}"""


def build_modify_prompt(instruction: str) -> str:
    return f"""EDIT TASK: Apply ONLY the following change to the provided image.
Keep the subject's identity, pose, composition, lighting and every other detail unchanged.
Do not add text, borders or watermarks.
Requested change: {instruction.strip()}"""


def preview_metadata(mode: GenerationMode) -> List[CellMetadata]:
    """Per-cell labels for a preview grid generated in the given mode."""
    if GenerationMode(mode) == GenerationMode.CINEMATIC:
        return [
            CellMetadata(cell=i, shot=shot, angle=angle)
            for i, (shot, angle) in enumerate(CINEMATIC_SHOTS)
        ]
    return [
        CellMetadata(cell=i, angle=AI_GENERATED, shot=AI_GENERATED, expression=AI_GENERATED)
        for i in range(9)
    ]
