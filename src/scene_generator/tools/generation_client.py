"""Generation client: preview grid, final upscale and image modification.

Wraps a GenerationBackend with prompt construction, input preparation and
the ordered model fallback policy.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from ..backends.interface import (
    AllModelsFailedError,
    AuthTokenError,
    GenerationBackend,
    InsufficientCreditError,
)
from ..config import settings
from ..models.generation import CategorySelection, CellMetadata, GenerationMode
from ..utils.simple_logger import log_complete, log_start, log_update
from .image_transfer import compress_for_transport, resolve_image_ref
from .prompts import (
    build_final_prompt,
    build_modify_prompt,
    build_preview_prompt,
    preview_metadata,
)


logger = logging.getLogger(__name__)

# Not model-specific; another model cannot fix these
NON_RETRYABLE_ERRORS = (AuthTokenError, InsufficientCreditError)


class PreviewResult(BaseModel):
    """Generated preview grid and its per-cell labels."""
    image_ref: str
    metadata: List[CellMetadata] = Field(default_factory=list)
    model: Optional[str] = Field(None, description="Model that produced the grid")


class GenerationClient:
    """High-level image generation operations with model fallback."""

    def __init__(
        self,
        backend: GenerationBackend,
        models: Optional[Sequence[str]] = None,
        require_token: Optional[bool] = None,
    ):
        """Initialize the client.

        Args:
            backend: Backend that talks to the remote service
            models: Model ids to try in order, most capable first
            require_token: Fail calls made without an auth token; defaults to settings
        """
        self.backend = backend
        self.models = list(models) if models else settings.get_gemini_model_names()
        if not self.models:
            raise ValueError("At least one generation model must be configured")
        self.require_token = settings.require_auth_token if require_token is None else require_token

    def _prepare_images(self, images: Sequence[str]) -> List[str]:
        return [compress_for_transport(resolve_image_ref(ref)) for ref in images]

    async def _generate_with_fallback(
        self,
        prompt: str,
        images: Sequence[str],
        *,
        action: str,
        operation: Optional[str] = None,
        token: Optional[str] = None,
    ) -> Tuple[str, str]:
        """Try each model in order and return (image_ref, model) of the first success.

        Raises:
            AuthTokenError: Immediately, without trying further models
            InsufficientCreditError: Immediately, without trying further models
            AllModelsFailedError: If every model fails
        """
        if self.require_token and not token:
            raise AuthTokenError("Auth token is required")

        attempts: List[Tuple[str, Exception]] = []
        last_error: Optional[Exception] = None

        for model in self.models:
            try:
                log_update(logger, f"Trying model {model}")
                result = await self.backend.generate(
                    model,
                    prompt,
                    images,
                    action=action,
                    operation=operation,
                    token=token,
                )
                return result.image_ref, model
            except NON_RETRYABLE_ERRORS:
                raise
            except Exception as e:
                logger.warning(f"Model {model} failed for {action}: {e}")
                attempts.append((model, e))
                last_error = e

        logger.error(f"All models failed for {action}")
        raise AllModelsFailedError(attempts) from last_error

    async def generate_preview_grid(
        self,
        reference_image: str,
        mode: GenerationMode,
        categories: CategorySelection,
        context: str,
        aspect_label: str,
        genre_id: Optional[str] = None,
        token: Optional[str] = None,
    ) -> PreviewResult:
        """Generate a 3x3 preview grid from the reference image.

        Args:
            reference_image: Reference image reference
            mode: Active generation mode
            categories: Selected variation categories
            context: Context text or story line
            aspect_label: Aspect label the grid canvas must match
            genre_id: Genre preset for CINEMATIC mode
            token: Opaque auth token

        Returns:
            PreviewResult with the grid image and 9 metadata entries
        """
        mode = GenerationMode(mode)
        log_start(logger, f"Generating preview grid ({mode.value}, {aspect_label})")

        prompt = build_preview_prompt(mode, categories.selected(), context, aspect_label, genre_id)
        images = await asyncio.to_thread(self._prepare_images, [reference_image])
        image_ref, model = await self._generate_with_fallback(
            prompt, images, action="preview", operation="preview", token=token
        )

        log_complete(logger, f"Preview grid generated with {model}")
        return PreviewResult(image_ref=image_ref, metadata=preview_metadata(mode), model=model)

    async def generate_final(
        self,
        original_reference: str,
        cropped_patch: str,
        resolution: str,
        aspect_ratio: str,
        context: Optional[str] = None,
        token: Optional[str] = None,
    ) -> str:
        """Upscale a cropped cell using the original image for identity.

        Images are submitted in the fixed order [original, patch].
        """
        log_start(logger, f"Generating final image ({resolution}, {aspect_ratio})")

        prompt = build_final_prompt(resolution, aspect_ratio, context)
        images = await asyncio.to_thread(self._prepare_images, [original_reference, cropped_patch])
        image_ref, model = await self._generate_with_fallback(
            prompt, images, action="final", operation="final", token=token
        )

        log_complete(logger, f"Final image generated with {model}")
        return image_ref

    async def modify_image(
        self,
        source_image: str,
        instruction: str,
        token: Optional[str] = None,
    ) -> str:
        """Apply a free-text edit to an image.

        Raises:
            ValueError: If the instruction is empty
        """
        if not instruction or not instruction.strip():
            raise ValueError("Modification instruction must not be empty")

        log_start(logger, "Modifying image")

        prompt = build_modify_prompt(instruction)
        images = await asyncio.to_thread(self._prepare_images, [source_image])
        image_ref, model = await self._generate_with_fallback(
            prompt, images, action="modify", operation="modify", token=token
        )

        log_complete(logger, f"Image modified with {model}")
        return image_ref
