"""
Prompt preset catalog: the fixed image transforms offered as PROMPT_PRESET nodes.

Each preset declares its own ports and a prompt template that is sent
verbatim with the collected images.
"""

from __future__ import annotations

from pydantic import BaseModel

from nodeforge.models.graph import PortType


class PresetPort(BaseModel):
    label: str
    type: PortType


class PresetConfig(BaseModel):
    label: str
    prompt: str
    inputs: list[PresetPort]
    outputs: list[PresetPort]


_IMAGE_AND_TEXT_OUT = [
    PresetPort(label="Image", type="image"),
    PresetPort(label="Text", type="text"),
]


PRESET_CONFIGS: dict[str, PresetConfig] = {
    # ---- Multi-image presets (single aggregating input) ----
    "combine-images": PresetConfig(
        label="Combine Images",
        prompt=(
            "Combine the provided images into a single cohesive scene. "
            "Keep every subject recognisable and match lighting and perspective."
        ),
        inputs=[
            PresetPort(label="Image 1", type="image"),
            PresetPort(label="Image 2", type="image"),
        ],
        outputs=_IMAGE_AND_TEXT_OUT,
    ),
    "virtual-try-on": PresetConfig(
        label="Virtual Try-On",
        prompt=(
            "Dress the person in the first image with the clothing shown in the "
            "second image. Preserve the person's pose, face and background."
        ),
        inputs=[
            PresetPort(label="Person", type="image"),
            PresetPort(label="Garment", type="image"),
        ],
        outputs=_IMAGE_AND_TEXT_OUT,
    ),
    "style-transfer": PresetConfig(
        label="Style Transfer",
        prompt=(
            "Redraw the first image in the artistic style of the second image. "
            "Keep the composition of the first image unchanged."
        ),
        inputs=[
            PresetPort(label="Content", type="image"),
            PresetPort(label="Style", type="image"),
        ],
        outputs=_IMAGE_AND_TEXT_OUT,
    ),

    # ---- Single-image presets ----
    "restore-photo": PresetConfig(
        label="Restore Photo",
        prompt=(
            "Restore this old photograph: remove scratches and noise, fix faded "
            "colours and sharpen details without changing the content."
        ),
        inputs=[PresetPort(label="Photo", type="image")],
        outputs=_IMAGE_AND_TEXT_OUT,
    ),
    "sketch-to-render": PresetConfig(
        label="Sketch to Render",
        prompt=(
            "Turn this sketch into a photorealistic render. Follow the lines of "
            "the sketch exactly and choose natural materials and lighting."
        ),
        inputs=[PresetPort(label="Sketch", type="image")],
        outputs=_IMAGE_AND_TEXT_OUT,
    ),
}


def get_preset(preset_id: str | None) -> PresetConfig | None:
    """Look up a preset, returning None if unknown."""
    if not preset_id:
        return None
    return PRESET_CONFIGS.get(preset_id)
