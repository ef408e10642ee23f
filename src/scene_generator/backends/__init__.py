"""Image generation backends for Scene Generator."""

from typing import Optional

from ..config import Settings, settings as default_settings
from .interface import (
    GenerationBackend,
    GenerationResult,
    GenerationError,
    AuthTokenError,
    InsufficientCreditError,
    NoImageDataError,
    AllModelsFailedError,
)
from .gemini import GeminiBackend, extract_image_from_gemini_response
from .proxy import ProxyBackend, extract_image_from_proxy_response


def get_generation_backend(config: Optional[Settings] = None) -> GenerationBackend:
    """Create the backend selected by ``generation_backend``.

    Raises:
        ValueError: If the backend name is unknown
    """
    config = config or default_settings
    name = (config.generation_backend or "").lower()
    if name == "gemini":
        return GeminiBackend(config=config)
    if name == "proxy":
        return ProxyBackend(config=config)
    raise ValueError(f"Unknown generation backend: {config.generation_backend}")


__all__ = [
    "GenerationBackend",
    "GenerationResult",
    "GenerationError",
    "AuthTokenError",
    "InsufficientCreditError",
    "NoImageDataError",
    "AllModelsFailedError",
    "GeminiBackend",
    "ProxyBackend",
    "extract_image_from_gemini_response",
    "extract_image_from_proxy_response",
    "get_generation_backend",
]
