"""Gemini image generation backend using the google-genai SDK."""

import asyncio
import base64
import logging
from typing import Any, List, Optional, Sequence

import requests
from google import genai
from google.genai import types

from ..config import Settings, settings as default_settings
from ..tools.image_transfer import decode_data_url, is_data_url, is_remote_url, sniff_mime_type
from ..utils.simple_logger import log_complete
from .interface import GenerationBackend, GenerationError, GenerationResult, NoImageDataError


logger = logging.getLogger(__name__)


def extract_image_from_gemini_response(response: Any) -> str:
    """Pull the generated image out of a generate_content response.

    Inline image data wins and is returned as a data URL; otherwise a text
    part that looks like an http URL is returned.

    Raises:
        NoImageDataError: If the response holds neither
    """
    text_parts: List[str] = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                data = inline.data
                if isinstance(data, str):
                    payload = data
                else:
                    payload = base64.b64encode(data).decode("ascii")
                mime_type = inline.mime_type or "image/png"
                return f"data:{mime_type};base64,{payload}"
            text = getattr(part, "text", None)
            if text:
                text_parts.append(text.strip())

    for text in text_parts:
        if text.startswith("http"):
            return text

    raise NoImageDataError("No image data found in response")


class GeminiBackend(GenerationBackend):
    """Generate images with Gemini image models."""

    def __init__(self, config: Optional[Settings] = None, client: Optional[Any] = None):
        """Initialize the backend.

        Args:
            config: Settings to read credentials from
            client: Pre-built genai.Client, mainly for tests
        """
        self.config = config or default_settings
        self._client = client or self._create_client()

    def _create_client(self) -> Any:
        if self.config.google_genai_use_vertexai:
            if not self.config.google_cloud_project:
                raise ValueError("GOOGLE_CLOUD_PROJECT must be set for Vertex AI")
            client = genai.Client(
                vertexai=True,
                project=self.config.google_cloud_project,
                location=self.config.google_cloud_location,
            )
            log_complete(logger, f"Initialized Gemini via Vertex AI (project: {self.config.google_cloud_project})")
            return client

        if not self.config.gemini_api_key:
            raise ValueError("GEMINI_API_KEY must be set to use the Gemini backend")
        client = genai.Client(api_key=self.config.gemini_api_key)
        log_complete(logger, "Initialized Gemini via direct API")
        return client

    def _image_part(self, ref: str) -> Any:
        if is_data_url(ref):
            mime_type, data = decode_data_url(ref)
        elif is_remote_url(ref):
            response = requests.get(ref, timeout=self.config.http_timeout)
            response.raise_for_status()
            data = response.content
            mime_type = sniff_mime_type(data)
        else:
            raise GenerationError(f"Unsupported image reference for Gemini: {ref[:40]}")
        return types.Part.from_bytes(data=data, mime_type=mime_type)

    def _generate_sync(self, model: str, prompt: str, images: Sequence[str]) -> Any:
        contents = [self._image_part(ref) for ref in images]
        contents.append(prompt)
        config = types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"])
        return self._client.models.generate_content(
            model=model,
            contents=contents,
            config=config,
        )

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
        logger.info(f"Gemini {action} request with model {model} ({len(images)} image(s))")
        response = await asyncio.get_event_loop().run_in_executor(
            None,
            lambda: self._generate_sync(model, prompt, images),
        )
        return GenerationResult(image_ref=extract_image_from_gemini_response(response))
