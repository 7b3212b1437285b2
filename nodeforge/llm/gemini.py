"""
Gemini-backed generation service.

Uses the google-genai async client. Each SDK call is wrapped with the
rate-limit retry policy; any failure that survives the retries is raised as
ExternalCallError with the API's structured message unwrapped.
"""

from __future__ import annotations

import base64
import functools
import logging
from typing import Any

import httpx
from google import genai
from google.genai import types

from nodeforge.config import NodeforgeConfig
from nodeforge.errors import ExternalCallError, NodeforgeError, format_error
from nodeforge.llm.base import ImageTextResult, InlineImage, VideoOperation
from nodeforge.services.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)


def _external_call(context: str):
    """Translate SDK/network failures into ExternalCallError."""
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any):
            try:
                return await fn(*args, **kwargs)
            except NodeforgeError:
                raise
            except Exception as e:
                logger.error("Error in %s: %s", context, e)
                code = getattr(e, "code", None)
                raise ExternalCallError(
                    format_error(e),
                    status=getattr(e, "status", None),
                    code=code if isinstance(code, int) else None,
                ) from e
        return wrapper
    return decorator


def _split_parts(response: Any) -> ImageTextResult:
    """Pull the last image part and last text part out of a content response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates or candidates[0].content is None:
        raise ExternalCallError("Response contained no candidates")

    result = ImageTextResult()
    for part in candidates[0].content.parts or []:
        if part.text:
            result.text = part.text
        elif part.inline_data is not None and part.inline_data.data:
            data = part.inline_data.data
            if isinstance(data, bytes):
                data = base64.b64encode(data).decode("ascii")
            result.image = data
            result.mime_type = part.inline_data.mime_type
    return result


def _to_video_operation(operation: Any) -> VideoOperation:
    uri: str | None = None
    response = getattr(operation, "response", None)
    videos = getattr(response, "generated_videos", None) if response else None
    if videos and videos[0].video is not None:
        uri = videos[0].video.uri

    error = getattr(operation, "error", None)
    error_message: str | None = None
    if error:
        error_message = str(error.get("message", error)) if isinstance(error, dict) else str(error)

    return VideoOperation(
        name=getattr(operation, "name", None),
        done=bool(getattr(operation, "done", False)),
        uri=uri,
        error=error_message,
        raw=operation,
    )


class GeminiGenerationService:
    """GenerationService implementation over the Gemini API."""

    def __init__(
        self,
        client: genai.Client | None = None,
        *,
        policy: RetryPolicy | None = None,
        download_timeout: float | None = None,
    ):
        self.client = client or genai.Client(api_key=NodeforgeConfig.get_api_key())
        self.policy = policy or RetryPolicy.from_config()
        self.download_timeout = download_timeout or NodeforgeConfig.VIDEO_DOWNLOAD_TIMEOUT

        models = self.client.aio.models
        self._generate_content = with_retry(models.generate_content, policy=self.policy)
        self._generate_images = with_retry(models.generate_images, policy=self.policy)
        self._generate_videos = with_retry(models.generate_videos, policy=self.policy)
        self._get_videos_operation = with_retry(self.client.aio.operations.get, policy=self.policy)

    @_external_call("generate_text")
    async def generate_text(self, prompt: str) -> str:
        response = await self._generate_content(
            model=NodeforgeConfig.TEXT_MODEL,
            contents=prompt,
        )
        if not response.text:
            raise ExternalCallError("Text generation returned no text.")
        return response.text

    @_external_call("generate_image")
    async def generate_image(self, prompt: str) -> str:
        response = await self._generate_images(
            model=NodeforgeConfig.IMAGE_MODEL,
            prompt=prompt,
            config=types.GenerateImagesConfig(
                number_of_images=1,
                output_mime_type="image/jpeg",
            ),
        )

        generated = response.generated_images or []
        if generated and generated[0].image and generated[0].image.image_bytes:
            image = generated[0].image
            mime_type = image.mime_type or "image/jpeg"
            encoded = base64.b64encode(image.image_bytes).decode("ascii")
            return f"data:{mime_type};base64,{encoded}"
        raise ExternalCallError("Image generation failed to produce an image.")

    async def _image_and_text(self, images: list[InlineImage], prompt: str) -> ImageTextResult:
        parts = [
            types.Part.from_bytes(data=base64.b64decode(img.data), mime_type=img.mime_type)
            for img in images
        ]
        parts.append(types.Part.from_text(text=prompt))

        response = await self._generate_content(
            model=NodeforgeConfig.IMAGE_EDIT_MODEL,
            contents=parts,
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE", "TEXT"],
            ),
        )
        return _split_parts(response)

    @_external_call("edit_image")
    async def edit_image(self, image: InlineImage, prompt: str) -> ImageTextResult:
        return await self._image_and_text([image], prompt)

    @_external_call("transform_images")
    async def transform_images(self, images: list[InlineImage], prompt: str) -> ImageTextResult:
        return await self._image_and_text(images, prompt)

    @_external_call("start_video_generation")
    async def start_video_generation(
        self, prompt: str, image: InlineImage | None = None
    ) -> VideoOperation:
        kwargs: dict[str, Any] = {}
        if image is not None:
            kwargs["image"] = types.Image(
                image_bytes=base64.b64decode(image.data),
                mime_type=image.mime_type,
            )
        operation = await self._generate_videos(
            model=NodeforgeConfig.VIDEO_MODEL,
            prompt=prompt,
            config=types.GenerateVideosConfig(number_of_videos=1),
            **kwargs,
        )
        return _to_video_operation(operation)

    @_external_call("get_operation")
    async def get_operation(self, operation: VideoOperation) -> VideoOperation:
        refreshed = await self._get_videos_operation(operation.raw)
        return _to_video_operation(refreshed)

    @_external_call("fetch_video")
    async def fetch_video(self, uri: str) -> str:
        async with httpx.AsyncClient(timeout=self.download_timeout, follow_redirects=True) as client:
            resp = await client.get(
                uri, headers={"x-goog-api-key": NodeforgeConfig.get_api_key()}
            )
            resp.raise_for_status()
            content_type = resp.headers.get("content-type", "").split(";")[0].strip()
            mime_type = content_type or "video/mp4"
            encoded = base64.b64encode(resp.content).decode("ascii")
            return f"data:{mime_type};base64,{encoded}"
