"""
Image generation service: text-to-image, image editing and preset transforms.

Each function returns the structured ``{image, text}`` node output, with the
image as a data URL.
"""
from typing import Any, Optional, List

from ...errors import ExternalCallError, ValidationError
from ...llm.base import GenerationService, InlineImage
from ..media import result_to_output, to_inline_image
from ..text_generation.generator import normalize_prompt


async def generate_or_edit_image(
    service: GenerationService,
    prompt: Any,
    image_input: Any = None,
) -> dict:
    """
    Edit ``image_input`` with ``prompt`` if an image is given, otherwise
    generate a new image from the prompt.

    Returns:
        {"image": data_url, "text": str | None}

    Raises:
        ValidationError: If the prompt is empty
        ExternalCallError: If the model returns no image
    """
    text = normalize_prompt(prompt)
    if not text.strip():
        raise ValidationError("A text prompt is required for image generation/editing.")

    image: Optional[InlineImage] = await to_inline_image(image_input)

    if image is not None:
        # Edit mode
        result = await service.edit_image(image, text)
        if not result.image:
            raise ExternalCallError(result.text or "Image editing failed to produce an image.")
        return result_to_output(result, image.mime_type)

    # Generation mode
    data_url = await service.generate_image(text)
    if not data_url or not data_url.startswith("data:image"):
        raise ExternalCallError(data_url or "Image generation failed.")
    return {"image": data_url, "text": None}


async def apply_preset(
    service: GenerationService,
    image_inputs: List[Any],
    prompt: Optional[str],
    label: str = "preset",
) -> dict:
    """
    Run a preset's fixed prompt over one or more images.

    Values that are not images are dropped before the call.

    Raises:
        ValidationError: If no images remain or the preset has no prompt
        ExternalCallError: If the model returns no image
    """
    images: List[InlineImage] = []
    for value in image_inputs:
        image = await to_inline_image(value)
        if image is not None:
            images.append(image)

    if not images or not prompt:
        raise ValidationError(f"Missing required inputs for preset: {label}")

    result = await service.transform_images(images, prompt)
    if not result.image:
        raise ExternalCallError(result.text or "Preset failed to produce an image.")
    return result_to_output(result, images[0].mime_type)
