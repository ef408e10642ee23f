"""Image-to-video client for the Vidu task API.

Jobs are submitted once and then polled until they reach a terminal state
or the attempt budget runs out. Remote jobs cannot be cancelled.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from ..config import Settings, settings as default_settings
from ..models.video_task import VideoOptions, VideoTask, VideoTaskStatus
from ..utils.simple_logger import log_complete, log_start, log_update
from .image_transfer import resolve_image_ref


logger = logging.getLogger(__name__)

SUBMIT_PATH = "/ent/v2/img2video"
CREATIONS_PATH = "/ent/v2/tasks/{task_id}/creations"


class VideoTaskError(Exception):
    """Base exception for video task operations."""
    pass


class VideoTaskFailedError(VideoTaskError):
    """The remote task reported failure."""

    def __init__(self, message: str, response: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.response = response


class VideoTaskTimeoutError(VideoTaskError, TimeoutError):
    """The task did not finish within the polling budget."""
    pass


def _first_string(body: Dict[str, Any], keys) -> Optional[str]:
    for key in keys:
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def extract_video_url(body: Dict[str, Any]) -> str:
    """Find the playable video URL in a successful task response.

    Checked in order: a direct ``url``/``video_url``, the first element of
    ``creations``, then a nested ``creations``/``result``/``output`` dict.

    Raises:
        VideoTaskError: If no URL is present
    """
    direct = _first_string(body, ("url", "video_url"))
    if direct:
        return direct

    creations = body.get("creations")
    if isinstance(creations, list) and creations:
        first = creations[0]
        if isinstance(first, str) and first:
            return first
        if isinstance(first, dict):
            url = _first_string(first, ("url", "output_url"))
            if url:
                return url

    for key in ("creations", "result", "output"):
        nested = body.get(key)
        if isinstance(nested, dict):
            url = _first_string(nested, ("video_url", "url", "output_url"))
            if url:
                return url

    raise VideoTaskError(f"No video URL found in response: {body}")


class VideoTaskClient:
    """Submit image-to-video jobs and poll them to completion."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.vidu.com",
        poll_interval: float = 1.0,
        max_attempts: int = 60,
        timeout: float = 30,
        config: Optional[Settings] = None,
    ):
        """Initialize the client.

        Args:
            api_key: Vidu API key
            base_url: API root URL
            poll_interval: Seconds to wait before each status request
            max_attempts: Status requests before giving up
            timeout: HTTP timeout per request in seconds
            config: Settings for option defaults
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.config = config or default_settings

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "VideoTaskClient":
        config = config or default_settings
        return cls(
            api_key=config.vidu_api_key,
            base_url=config.vidu_base_url,
            poll_interval=config.video_poll_interval,
            max_attempts=config.video_max_poll_attempts,
            config=config,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Token {self.api_key}",
        }

    def _build_payload(self, image: str, options: VideoOptions) -> Dict[str, Any]:
        return {
            "model": options.model or self.config.video_model,
            "images": [image],
            "prompt": options.prompt or self.config.video_prompt,
            "duration": options.duration or self.config.video_duration,
            "resolution": options.resolution or self.config.video_resolution,
        }

    async def submit(self, source_image: str, options: Optional[VideoOptions] = None) -> str:
        """Submit a job and return its task id.

        Args:
            source_image: Local file path, http(s) URL or data URL
            options: Submission overrides

        Returns:
            Remote task id

        Raises:
            VideoTaskError: On a missing API key, an HTTP error or a missing task id
        """
        if not self.api_key:
            raise VideoTaskError("VIDU_API_KEY is not configured")

        image = resolve_image_ref(source_image)
        payload = self._build_payload(image, options or VideoOptions())
        url = f"{self.base_url}{SUBMIT_PATH}"

        log_start(logger, f"Submitting video task ({payload['model']}, {payload['duration']}s)")
        try:
            response = await asyncio.to_thread(
                requests.post, url, json=payload, headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as e:
            raise VideoTaskError(f"Video submission failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise VideoTaskError(f"Video API error ({response.status_code}): {response.text}")

        try:
            body = response.json()
        except ValueError as e:
            raise VideoTaskError(f"Invalid JSON from video API: {response.text[:200]}") from e

        task_id = None
        if isinstance(body, dict):
            task_id = body.get("task_id") or body.get("id")
        if not task_id:
            raise VideoTaskError(f"Video API response missing task id: {body}")

        log_update(logger, f"Video task submitted: {task_id}")
        return str(task_id)

    async def _fetch_status(self, task_id: str) -> Dict[str, Any]:
        url = f"{self.base_url}{CREATIONS_PATH.format(task_id=task_id)}"
        response = await asyncio.to_thread(
            requests.get, url, headers=self._headers(), timeout=self.timeout
        )
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"Unexpected status body: {body!r}")
        return body

    async def poll(self, task_id: str) -> str:
        """Poll a task until it succeeds, fails or runs out of attempts.

        Transport errors on a single attempt are logged and polling continues.

        Returns:
            Video URL of the finished task

        Raises:
            VideoTaskFailedError: If the task reports failure
            VideoTaskTimeoutError: If attempts are exhausted
        """
        url, _ = await self._poll(task_id)
        return url

    async def _poll(self, task_id: str):
        for attempt in range(1, self.max_attempts + 1):
            await asyncio.sleep(self.poll_interval)

            try:
                body = await self._fetch_status(task_id)
            except (requests.RequestException, ValueError) as e:
                logger.warning(f"Polling error for task {task_id} (attempt {attempt}): {e}")
                continue

            state = str(body.get("state") or body.get("status") or "").lower()
            if state == VideoTaskStatus.SUCCESS.value:
                return extract_video_url(body), attempt
            if state == VideoTaskStatus.FAILED.value:
                logger.error(f"Video task {task_id} failed: {body}")
                raise VideoTaskFailedError("Video generation failed server-side.", response=body)

            if attempt % 10 == 0:
                log_update(logger, f"Video task {task_id} still {state or 'pending'} after {attempt} polls")

        raise VideoTaskTimeoutError(
            f"Video generation timed out after {self.max_attempts} attempts"
        )

    async def generate_video(self, source_image: str, options: Optional[VideoOptions] = None) -> VideoTask:
        """Submit a job and wait for its result."""
        task_id = await self.submit(source_image, options)
        video_url, attempts = await self._poll(task_id)
        log_complete(logger, f"Video ready: {video_url}")
        return VideoTask(
            task_id=task_id,
            status=VideoTaskStatus.SUCCESS,
            video_url=video_url,
            attempts=attempts,
        )
