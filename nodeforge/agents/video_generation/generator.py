"""
Video generation agent: starts a generation operation, polls it to
completion and retrieves the finished video.
"""

from __future__ import annotations

import asyncio
from typing import Any

from ...errors import ExternalCallError, ValidationError
from ...llm.base import GenerationService, VideoOperation
from ...services.poller import OperationPoller, ProgressCallback
from ..media import to_inline_image
from ..text_generation.generator import normalize_prompt


async def generate_video(
    service: GenerationService,
    prompt: Any,
    image_input: Any = None,
    *,
    on_progress: ProgressCallback | None = None,
    cancel: asyncio.Event | None = None,
    interval: float | None = None,
    timeout: float | None = None,
) -> str:
    """
    Generate a video seeded by an optional image.

    Returns:
        A reference to the retrieved video (data URL)

    Raises:
        ValidationError: If the prompt is empty
        ExternalCallError: If the operation fails or has no result URI
        RunCancelledError: If ``cancel`` is set while polling
    """
    text = normalize_prompt(prompt)
    if not text.strip():
        raise ValidationError("Prompt is empty.")

    image = await to_inline_image(image_input)

    poller: OperationPoller[VideoOperation] = OperationPoller(
        service.get_operation,
        interval=interval,
        timeout=timeout,
        label="video",
    )
    operation = await poller.run(
        lambda: service.start_video_generation(text, image),
        on_progress=on_progress,
        cancel=cancel,
    )

    if operation.error:
        raise ExternalCallError(f"Video generation failed: {operation.error}")
    if not operation.uri:
        raise ExternalCallError("Video URI not found in response.")

    video = await service.fetch_video(operation.uri)
    if on_progress is not None:
        on_progress("Video fetched successfully.")
    return video
