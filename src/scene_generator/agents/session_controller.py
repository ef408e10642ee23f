"""Session controller for the scene generation workflow.

Owns the single SessionState and the usage counters. Every transition
replaces the whole state; the UI only reads ``controller.state``.
"""

import logging
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

from PIL import Image

from ..config import Settings, settings as default_settings
from ..models.aspect_ratio import AspectRatio, Resolution
from ..models.generation import GenerationMode, VariationCategory, is_known_genre
from ..models.session_state import ParentMessage, SessionState, UsageStats
from ..models.video_task import VideoOptions
from ..storage.filesystem import FilesystemStorage
from ..storage.interface import StorageInterface
from ..tools.generation_client import GenerationClient
from ..tools.grid_geometry import (
    composite_cell,
    crop_cell,
    detect_aspect_ratio,
    point_to_cell_index,
)
from ..tools.image_transfer import (
    bytes_to_image,
    encode_to_transportable,
    fetch_image_bytes,
    image_to_data_url,
    sniff_mime_type,
)
from ..tools.mode_selector import has_generation_target, select_mode
from ..tools.video_task_client import VideoTaskClient


logger = logging.getLogger(__name__)

SMART_LAYOUT_MODE = "33grid"
OUTPUT_QUALITY = 95


class InputValidationError(Exception):
    """User input rejected before any remote call."""
    pass


class SessionController:
    """Drives one scene generation session from upload to final image."""

    def __init__(
        self,
        generation_client: GenerationClient,
        video_client: Optional[VideoTaskClient] = None,
        store: Optional[StorageInterface] = None,
        config: Optional[Settings] = None,
        parent_notifier: Optional[Callable[[ParentMessage], None]] = None,
    ):
        """Initialize the controller.

        Args:
            generation_client: Client for preview, final and modify requests
            video_client: Client for image-to-video jobs
            store: Artifact store for exports; a filesystem store is created on demand
            config: Application settings
            parent_notifier: Callback receiving each ParentMessage
        """
        self.generation_client = generation_client
        self.video_client = video_client
        self.config = config or default_settings
        self._store = store
        self.parent_notifier = parent_notifier

        self.state = SessionState()
        self.stats = UsageStats()
        self.token: Optional[str] = None
        self.last_parent_message: Optional[ParentMessage] = None

    @property
    def store(self) -> StorageInterface:
        if self._store is None:
            self._store = FilesystemStorage(self.config.storage_path)
        return self._store

    def set_token(self, token: Optional[str]) -> None:
        self.token = token or None

    # ------------------------------------------------------------------
    # Internal helpers

    def _update(self, **changes) -> SessionState:
        self.state = self.state.evolve(**changes)
        return self.state

    def _reject(self, message: str) -> InputValidationError:
        logger.warning(message)
        self._update(error=message)
        return InputValidationError(message)

    def _fail(self, error: Exception, **flags) -> None:
        logger.error(f"{type(error).__name__}: {error}")
        self._update(error=str(error), **flags)

    def _notify(self, message: ParentMessage) -> None:
        self.last_parent_message = message
        if self.parent_notifier is not None:
            self.parent_notifier(message)

    async def _load_image(self, ref: str) -> Image.Image:
        data = await fetch_image_bytes(ref, timeout=self.config.http_timeout)
        return bytes_to_image(data)

    # ------------------------------------------------------------------
    # Step 1: Upload

    def upload_image(self, data: bytes, filename: Optional[str] = None) -> SessionState:
        """Accept a reference image and clear all downstream results.

        Raises:
            InputValidationError: If the image exceeds the upload limit
            ImageDecodeError: If the bytes are not a decodable image
        """
        if len(data) > self.config.max_upload_bytes:
            limit_mb = self.config.max_upload_bytes // (1024 * 1024)
            raise self._reject(f"Image too large (>{limit_mb}MB)")

        try:
            image = bytes_to_image(data)
            data_url = encode_to_transportable(data, Image.MIME.get(image.format or ""))
        except Exception as e:
            self._fail(e)
            raise

        ratio = detect_aspect_ratio(image.width, image.height)
        logger.info(f"Reference image {filename or ''} {image.width}x{image.height} ({ratio})")

        return self._update(
            reference_image=data_url,
            reference_filename=filename,
            grid_aspect_ratio=ratio,
            preview_grid=None,
            preview_grid_size=None,
            grid_metadata=[],
            selected_cell_index=None,
            final_image=None,
            modified_image=None,
            video_url=None,
            error=None,
        )

    async def upload_image_file(self, path: str) -> SessionState:
        data = await fetch_image_bytes(path)
        return self.upload_image(data, Path(path).name)

    async def load_external_image(self, url: str, mode: Optional[str] = None) -> SessionState:
        """Load an image handed over by an embedding page.

        Args:
            url: Image URL (http(s) or data URL)
            mode: Integration mode; "33grid" turns smart layout on and reports finals as "33grid-complete"
        """
        logger.info(f"Loading external image (mode: {mode or 'default'})")
        try:
            data = await fetch_image_bytes(url, timeout=self.config.http_timeout)
        except Exception as e:
            self._fail(e)
            raise

        filename = Path(urlparse(url).path).name if not url.startswith("data:") else None
        self.upload_image(data, filename or "external-image")
        self._update(external_mode=True, external_source_mode=mode or None)

        if mode == SMART_LAYOUT_MODE and not self.state.smart_layout_enabled:
            self.toggle_smart_layout()
        return self.state

    # ------------------------------------------------------------------
    # Step 2: Configuration

    def toggle_category(self, category: VariationCategory) -> SessionState:
        """Flip one category; ignored while a special mode is active."""
        if self.state.smart_layout_enabled or self.state.story_mode_enabled:
            return self.state

        categories = self.state.selected_categories.toggled(VariationCategory(category))
        return self._update(
            selected_categories=categories,
            logic_mode=select_mode(categories),
        )

    def toggle_smart_layout(self) -> SessionState:
        if self.state.smart_layout_enabled:
            return self._update(
                smart_layout_enabled=False,
                logic_mode=select_mode(self.state.selected_categories),
            )
        return self._update(
            smart_layout_enabled=True,
            story_mode_enabled=False,
            selected_categories=self.state.selected_categories.cleared(),
            logic_mode=GenerationMode.CINEMATIC,
        )

    def toggle_story_mode(self) -> SessionState:
        if self.state.story_mode_enabled:
            return self._update(
                story_mode_enabled=False,
                logic_mode=select_mode(self.state.selected_categories),
            )
        return self._update(
            story_mode_enabled=True,
            smart_layout_enabled=False,
            selected_categories=self.state.selected_categories.cleared(),
            logic_mode=GenerationMode.STORY,
        )

    def select_genre(self, genre_id: str) -> SessionState:
        if not is_known_genre(genre_id):
            raise self._reject(f"Unknown genre preset: {genre_id}")
        return self._update(selected_genre=genre_id)

    def set_context(self, text: Optional[str]) -> SessionState:
        return self._update(context_prompt=text or "")

    def set_output_resolution(self, resolution: str) -> SessionState:
        try:
            value = Resolution(resolution)
        except ValueError:
            raise self._reject(f"Invalid resolution: {resolution}")
        return self._update(output_resolution=value)

    def set_output_aspect_ratio(self, aspect_ratio: str) -> SessionState:
        try:
            value = AspectRatio.from_string(aspect_ratio)
        except ValueError:
            raise self._reject(f"Invalid aspect ratio: {aspect_ratio}")
        return self._update(output_aspect_ratio=value)

    # ------------------------------------------------------------------
    # Step 3: Preview

    async def generate_preview(self) -> SessionState:
        """Generate the 3x3 preview grid for the current configuration.

        Raises:
            InputValidationError: Without a reference image or generation target
            GenerationError: If the backend fails
        """
        state = self.state
        if not state.reference_image:
            raise self._reject("Upload a reference image first")
        if not has_generation_target(
            state.selected_categories, state.smart_layout_enabled, state.story_mode_enabled
        ):
            raise self._reject("Select at least one category or a special mode")

        mode = select_mode(
            state.selected_categories, state.smart_layout_enabled, state.story_mode_enabled
        )
        self.stats = self.stats.with_preview()
        self._update(is_generating_preview=True, logic_mode=mode, error=None)

        try:
            result = await self.generation_client.generate_preview_grid(
                reference_image=state.reference_image,
                mode=mode,
                categories=state.selected_categories,
                context=state.context_prompt,
                aspect_label=state.grid_aspect_ratio,
                genre_id=state.selected_genre if mode == GenerationMode.CINEMATIC else None,
                token=self.token,
            )
            grid = await self._load_image(result.image_ref)
        except Exception as e:
            self._fail(e, is_generating_preview=False)
            raise

        return self._update(
            is_generating_preview=False,
            preview_grid=result.image_ref,
            preview_grid_size=(grid.width, grid.height),
            grid_metadata=result.metadata,
            selected_cell_index=None,
            final_image=None,
            modified_image=None,
        )

    def select_cell(self, index: int) -> SessionState:
        if not self.state.preview_grid:
            raise self._reject("Generate a preview grid first")
        if not isinstance(index, int) or not 0 <= index <= 8:
            raise self._reject(f"Cell index must be between 0 and 8, got {index}")
        return self._update(selected_cell_index=index, error=None)

    def select_cell_at(
        self,
        x: float,
        y: float,
        width: Optional[float] = None,
        height: Optional[float] = None,
    ) -> SessionState:
        """Select the cell under a point; size defaults to the grid's pixel size."""
        if not self.state.preview_grid:
            raise self._reject("Generate a preview grid first")
        if width is None or height is None:
            width, height = self.state.preview_grid_size or (0, 0)
        return self.select_cell(point_to_cell_index(x, y, width, height))

    # ------------------------------------------------------------------
    # Step 4/5: Final image and modification

    async def generate_final(self) -> SessionState:
        """Crop the selected cell and upscale it into the final image."""
        state = self.state
        if not state.preview_grid or state.selected_cell_index is None:
            raise self._reject("Select a cell of the preview grid first")

        self.stats = self.stats.with_final()
        self._update(is_generating_final=True, error=None)

        try:
            grid = await self._load_image(state.preview_grid)
            patch = crop_cell(grid, state.selected_cell_index)
            patch_ref = image_to_data_url(patch, "JPEG", OUTPUT_QUALITY)

            final_image = await self.generation_client.generate_final(
                original_reference=state.reference_image,
                cropped_patch=patch_ref,
                resolution=state.output_resolution.value,
                aspect_ratio=state.output_aspect_ratio.value,
                context=state.context_prompt,
                token=self.token,
            )
        except Exception as e:
            self._fail(e, is_generating_final=False)
            raise

        self._update(
            is_generating_final=False,
            final_image=final_image,
            modified_image=None,
        )
        if state.external_source_mode == SMART_LAYOUT_MODE:
            message_type = ParentMessage.GRID_COMPLETE
        else:
            message_type = ParentMessage.FINAL_COMPLETE
        self._notify(ParentMessage(
            type=message_type,
            image_url=final_image,
            stats=self.stats,
        ))
        return self.state

    async def modify_image(self, instruction: str) -> SessionState:
        """Edit the current image; the final image is kept for revert."""
        source = self.state.current_image
        if not source:
            raise self._reject("Generate a final image first")
        if not instruction or not instruction.strip():
            raise self._reject("Describe the modification to apply")

        self._update(is_modifying=True, error=None)
        try:
            modified = await self.generation_client.modify_image(
                source_image=source,
                instruction=instruction,
                token=self.token,
            )
        except Exception as e:
            self._fail(e, is_modifying=False)
            raise

        return self._update(is_modifying=False, modified_image=modified)

    def revert_modification(self) -> SessionState:
        return self._update(modified_image=None)

    def back_to_selection(self) -> SessionState:
        return self._update(
            final_image=None,
            modified_image=None,
            is_generating_final=False,
            is_modifying=False,
        )

    def reset(self) -> SessionState:
        """Return to the initial state; usage stats are kept."""
        self.state = SessionState(
            external_mode=self.state.external_mode,
            external_source_mode=self.state.external_source_mode,
        )
        return self.state

    async def save_and_update_grid(self) -> SessionState:
        """Composite the current image into the selected cell and notify the parent."""
        state = self.state
        current = state.current_image
        if not current or not state.preview_grid or state.selected_cell_index is None:
            raise self._reject("Nothing to save yet")

        try:
            grid = await self._load_image(state.preview_grid)
            patch = await self._load_image(current)
            updated = composite_cell(grid, state.selected_cell_index, patch)
        except Exception as e:
            self._fail(e)
            raise

        self._update(
            preview_grid=image_to_data_url(updated, "JPEG", OUTPUT_QUALITY),
            preview_grid_size=(updated.width, updated.height),
            error=None,
        )
        self._notify(ParentMessage(
            type=ParentMessage.SCENE_GENERATED,
            image_url=current,
            stats=self.stats,
        ))
        return self.state

    # ------------------------------------------------------------------
    # Image to video

    async def generate_video(
        self,
        prompt: Optional[str] = None,
        source_image: Optional[str] = None,
        duration: Optional[int] = None,
        resolution: Optional[str] = None,
    ) -> SessionState:
        """Animate an image; defaults to the current image."""
        if self.video_client is None:
            raise self._reject("Video generation is not configured")

        source = source_image or self.state.current_image
        if not source:
            raise self._reject("No image to animate")

        options = VideoOptions(prompt=prompt or None, duration=duration, resolution=resolution)
        self._update(is_generating_video=True, error=None)
        try:
            task = await self.video_client.generate_video(source, options)
        except Exception as e:
            self._fail(e, is_generating_video=False)
            raise

        return self._update(is_generating_video=False, video_url=task.video_url)

    # ------------------------------------------------------------------
    # Export

    async def _export(self, ref: Optional[str], name: str) -> str:
        if not ref:
            raise self._reject("Nothing to export")
        try:
            data = await fetch_image_bytes(ref, timeout=self.config.http_timeout)
            path = await self.store.export_image(data, name, sniff_mime_type(data))
        except Exception as e:
            self._fail(e)
            raise
        logger.info(f"Exported {name} to {path}")
        return path

    async def export_grid(self) -> str:
        return await self._export(self.state.preview_grid, "grid")

    async def export_current_image(self) -> str:
        return await self._export(self.state.current_image, "scene")
