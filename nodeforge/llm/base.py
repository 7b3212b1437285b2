"""
Generation service interface the execution engine depends on.

Every method is async and fallible. Implementations wrap each underlying
call in the rate-limit retry policy and raise ExternalCallError on failure.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field


class InlineImage(BaseModel):
    """Raw base64 image payload (no data URL prefix) plus its mime type."""
    data: str
    mime_type: str = "image/png"


class ImageTextResult(BaseModel):
    """Structured result of image edit/transform calls."""
    image: str | None = None  # base64, no prefix
    mime_type: str | None = None
    text: str | None = None


class VideoOperation(BaseModel):
    """Handle to an asynchronous video generation operation."""
    name: str | None = None
    done: bool = False
    uri: str | None = None
    error: str | None = None
    raw: Any = Field(default=None, exclude=True)


@runtime_checkable
class GenerationService(Protocol):
    async def generate_text(self, prompt: str) -> str:
        """Text completion."""
        ...

    async def generate_image(self, prompt: str) -> str:
        """Text-to-image; returns a data URL."""
        ...

    async def edit_image(self, image: InlineImage, prompt: str) -> ImageTextResult:
        ...

    async def transform_images(self, images: list[InlineImage], prompt: str) -> ImageTextResult:
        ...

    async def start_video_generation(
        self, prompt: str, image: InlineImage | None = None
    ) -> VideoOperation:
        ...

    async def get_operation(self, operation: VideoOperation) -> VideoOperation:
        ...

    async def fetch_video(self, uri: str) -> str:
        """Download a finished video; returns a playable reference (data URL)."""
        ...
