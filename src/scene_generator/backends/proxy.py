"""Token-authenticated HTTP proxy backend for image generation."""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

import requests

from ..config import Settings, settings as default_settings
from .interface import (
    AuthTokenError,
    GenerationBackend,
    GenerationError,
    GenerationResult,
    InsufficientCreditError,
    NoImageDataError,
)


logger = logging.getLogger(__name__)


def extract_image_from_proxy_response(body: Dict[str, Any]) -> str:
    """Pick the image reference out of a proxy JSON body.

    Inline data URLs (``imageData`` or a ``data:`` valued ``image``) win over
    URLs (``imageUrl`` or an http valued ``image``).

    Raises:
        NoImageDataError: If the body carries no image
    """
    image = body.get("image")
    image = image if isinstance(image, str) else None

    image_data = body.get("imageData")
    if isinstance(image_data, str) and image_data:
        if image_data.startswith("data:"):
            return image_data
        mime_type = body.get("mimeType") or "image/png"
        return f"data:{mime_type};base64,{image_data}"
    if image and image.startswith("data:"):
        return image

    image_url = body.get("imageUrl")
    if isinstance(image_url, str) and image_url:
        return image_url
    if image and image.startswith("http"):
        return image

    raise NoImageDataError("No image data found in response")


class ProxyBackend(GenerationBackend):
    """Send generation requests through a server-side proxy.

    The proxy holds the model credentials and bills the caller identified
    by the opaque session token.
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None, config: Optional[Settings] = None):
        config = config or default_settings
        self.url = url or config.generation_proxy_url
        if not self.url:
            raise ValueError("GENERATION_PROXY_URL must be set to use the proxy backend")
        self.timeout = timeout or config.http_timeout

    def _post_json(self, payload: Dict[str, Any], token: str) -> requests.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        return requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)

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
        if not token:
            raise AuthTokenError("Auth token is required")

        payload: Dict[str, Any] = {
            "action": action,
            "model": model,
            "prompt": prompt,
            "images": list(images),
            "token": token,
        }
        if operation:
            payload["operationType"] = operation

        logger.info(f"Proxy {action} request with model {model} ({len(images)} image(s))")
        try:
            response = await asyncio.to_thread(self._post_json, payload, token)
        except requests.RequestException as e:
            raise GenerationError(f"Proxy request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = body.get("error") or body.get("message") or response.text
        if response.status_code == 401:
            raise AuthTokenError(f"Auth token invalid or expired: {message}")
        if response.status_code == 402:
            balance = body.get("balance")
            raise InsufficientCreditError(f"Insufficient credits: {message}", balance=balance)
        if not 200 <= response.status_code < 300:
            raise GenerationError(f"Proxy returned {response.status_code}: {message}")
        if body.get("success") is False:
            raise GenerationError(f"Proxy request failed: {message}")

        return GenerationResult(
            image_ref=extract_image_from_proxy_response(body),
            credits_remaining=body.get("creditsRemaining"),
        )
