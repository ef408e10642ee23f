"""Abstract image generation backend interface."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field


class GenerationResult(BaseModel):
    """Image returned by a backend call."""
    image_ref: str = Field(..., description="Data URL or http(s) URL of the generated image")
    credits_remaining: Optional[int] = Field(None, description="Balance reported by the backend")


class GenerationBackend(ABC):
    """Contract for remote image generation services.

    Implementations accept an ordered list of image references (data URLs
    or http URLs) plus an instruction and return exactly one image.
    """

    @abstractmethod
    async def generate(
        self,
        model: str,
        prompt: str,
        images: Sequence[str],
        *,
        action: str = "generate",
        operation: Optional[str] = None,
        token: Optional[str] = None,
    ) -> GenerationResult:
        """Run one generation request against a single model.

        Args:
            model: Model identifier
            prompt: Instruction text
            images: Input image references, in order
            action: Request kind ("preview", "final" or "modify")
            operation: Optional billing operation type
            token: Opaque auth token passed through to the backend

        Returns:
            GenerationResult with the produced image

        Raises:
            GenerationError: If the request fails or returns no image
        """
        pass


class GenerationError(Exception):
    """Base exception for image generation."""
    pass


class AuthTokenError(GenerationError):
    """Auth token missing or rejected."""
    pass


class InsufficientCreditError(GenerationError):
    """Account balance too low for the request."""

    def __init__(self, message: str, balance: Optional[int] = None):
        super().__init__(message)
        self.balance = balance


class NoImageDataError(GenerationError):
    """Backend response did not contain an image."""
    pass


class AllModelsFailedError(GenerationError):
    """Every configured model failed."""

    def __init__(self, attempts: List[Tuple[str, Exception]]):
        self.attempts = attempts
        summary = "; ".join(f"{model}: {error}" for model, error in attempts)
        super().__init__(f"All models failed ({summary})" if attempts else "All models failed")
