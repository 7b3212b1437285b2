"""
Media helpers: convert between data URLs and inline base64 payloads.

Image values flowing between nodes are data URLs. Remote http(s) image URLs
are inlined on demand only when NODEFORGE_FETCH_REMOTE_IMAGES is enabled.
"""

from __future__ import annotations

import base64
from typing import Any

import httpx

from nodeforge.config import NodeforgeConfig
from nodeforge.errors import ValidationError
from nodeforge.llm.base import ImageTextResult, InlineImage


def to_data_url(data: str, mime_type: str) -> str:
    return f"data:{mime_type};base64,{data}"


def parse_data_url(value: str) -> InlineImage | None:
    """Split ``data:<mime>;base64,<payload>`` into an InlineImage."""
    if not value.startswith("data:") or "," not in value:
        return None
    meta, payload = value.split(",", 1)
    mime_type = meta[len("data:"):].split(";")[0] or "application/octet-stream"
    return InlineImage(data=payload, mime_type=mime_type)


def _extract_image_ref(value: Any) -> str | None:
    if isinstance(value, str):
        candidate = value.strip()
        return candidate or None
    if isinstance(value, dict):
        for key in ("image", "image_url", "url", "data_url"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
    return None


async def to_inline_image(value: Any) -> InlineImage | None:
    """
    Normalize an image input to an InlineImage.

    Accepts ``data:image/...`` URLs or a structured ``{image, text}`` result,
    plus http(s) image URLs when remote fetching is enabled. Returns None for
    anything that is not an image (empty values, plain text, file paths).

    Raises:
        ValidationError: If a remote URL is given while fetching is disabled,
            or the URL does not serve an image
    """
    if isinstance(value, InlineImage):
        return value
    image_ref = _extract_image_ref(value)
    if not image_ref:
        return None

    if image_ref.startswith("data:"):
        inline = parse_data_url(image_ref)
        if inline is None or not inline.mime_type.startswith("image/"):
            return None
        return inline

    if image_ref.startswith("http://") or image_ref.startswith("https://"):
        if not NodeforgeConfig.FETCH_REMOTE_IMAGES:
            raise ValidationError("Remote image URLs are disabled; send the image as a data URL.")
        async with httpx.AsyncClient(timeout=NodeforgeConfig.IMAGE_DOWNLOAD_TIMEOUT) as client:
            resp = await client.get(image_ref)
            resp.raise_for_status()
            mime_type = resp.headers.get("content-type", "").split(";")[0].strip()
            if not mime_type.startswith("image/"):
                raise ValidationError(f"URL did not return an image (content-type: {mime_type or 'none'})")
            encoded = base64.b64encode(resp.content).decode("ascii")
            return InlineImage(data=encoded, mime_type=mime_type)

    return None


def result_to_output(result: ImageTextResult, fallback_mime: str) -> dict[str, Any]:
    """Structured ``{image, text}`` node output with the image as a data URL."""
    return {
        "image": to_data_url(result.image, result.mime_type or fallback_mime) if result.image else None,
        "text": result.text,
    }
