"""
Node type registry: source of truth for what each node kind accepts and produces.

Maps node kinds to their port layouts and default presentation sizes.
Port ids are derived from the node id plus a fixed suffix so they stay
stable across edits, copies and reloads.
"""

from __future__ import annotations

from pydantic import BaseModel

from nodeforge.errors import ConfigurationError
from nodeforge.models.graph import (
    HistoryItem,
    Node,
    NodeKind,
    Point,
    Port,
    PortType,
    WorkflowStore,
    new_id,
)
from nodeforge.models.presets import get_preset


MULTI_IMAGE_SUFFIX = "-input-multi-image"


class PortTemplate(BaseModel):
    suffix: str
    label: str
    type: PortType

    def build(self, node_id: str) -> Port:
        return Port(id=f"{node_id}{self.suffix}", label=self.label, type=self.type)


class NodeTypeSpec(BaseModel):
    label: str
    inputs: list[PortTemplate] = []
    outputs: list[PortTemplate] = []
    width: float | None = None
    height: float | None = None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
# PROMPT_PRESET ports come from the preset catalog, see _preset_ports().

NODE_REGISTRY: dict[NodeKind, NodeTypeSpec] = {
    # ---- Source nodes ----
    NodeKind.TEXT_INPUT: NodeTypeSpec(
        label="Text Input",
        outputs=[PortTemplate(suffix="-output", label="Text", type="text")],
        width=320,
        height=150,
    ),
    NodeKind.IMAGE_INPUT: NodeTypeSpec(
        label="Image Input",
        outputs=[PortTemplate(suffix="-output", label="Image", type="image")],
        width=350,
    ),

    # ---- Generation nodes ----
    NodeKind.TEXT_GENERATOR: NodeTypeSpec(
        label="Text Generator",
        inputs=[PortTemplate(suffix="-input", label="Prompt", type="text")],
        outputs=[PortTemplate(suffix="-output", label="Text", type="text")],
        width=320,
        height=100,
    ),
    NodeKind.IMAGE_EDITOR: NodeTypeSpec(
        label="Image Generator/Editor",
        inputs=[
            PortTemplate(suffix="-input-image", label="Image (Optional)", type="image"),
            PortTemplate(suffix="-input-text", label="Prompt", type="text"),
        ],
        outputs=[
            PortTemplate(suffix="-output-image", label="Image", type="image"),
            PortTemplate(suffix="-output-text", label="Text", type="text"),
        ],
        width=320,
        height=100,
    ),
    NodeKind.VIDEO_GENERATOR: NodeTypeSpec(
        label="Video Generator",
        inputs=[
            PortTemplate(suffix="-input-image", label="Image", type="image"),
            PortTemplate(suffix="-input-text", label="Text", type="text"),
        ],
        outputs=[PortTemplate(suffix="-output", label="Video", type="video")],
        width=320,
        height=100,
    ),

    # ---- Sink nodes ----
    NodeKind.OUTPUT_DISPLAY: NodeTypeSpec(
        label="Output",
        inputs=[PortTemplate(suffix="-input", label="Input", type="any")],
        width=350,
    ),

    # ---- Preset nodes ----
    NodeKind.PROMPT_PRESET: NodeTypeSpec(
        label="Preset",
        width=150,
        height=150,
    ),
}


def get_node_spec(kind: NodeKind | str) -> NodeTypeSpec | None:
    """Look up a node kind spec, returning None if unknown."""
    try:
        return NODE_REGISTRY.get(NodeKind(kind))
    except ValueError:
        return None


def _preset_ports(node_id: str, preset_id: str | None) -> tuple[str, str, list[Port], list[Port]]:
    preset = get_preset(preset_id)
    if preset is None:
        raise ConfigurationError(f"Unknown presetId: {preset_id}")

    # Several inputs that are all images collapse into one aggregating handle.
    if len(preset.inputs) > 1 and all(p.type == "image" for p in preset.inputs):
        inputs = [Port(id=f"{node_id}{MULTI_IMAGE_SUFFIX}", label="Images", type="image")]
    else:
        inputs = [
            Port(id=f"{node_id}-input-{index}", label=p.label, type=p.type)
            for index, p in enumerate(preset.inputs)
        ]
    outputs = [
        Port(id=f"{node_id}-output-{index}", label=p.label, type=p.type)
        for index, p in enumerate(preset.outputs)
    ]
    return preset.label, preset.prompt, inputs, outputs


def create_node(
    kind: NodeKind | str,
    position: Point | None = None,
    preset_id: str | None = None,
    *,
    node_id: str | None = None,
) -> Node:
    """
    Build a node of the given kind with its fixed, kind-determined ports.

    Raises:
        ConfigurationError: unknown kind, or a PROMPT_PRESET without a known preset
    """
    spec = get_node_spec(kind)
    if spec is None:
        raise ConfigurationError(f"Unknown node type '{kind}'")
    kind = NodeKind(kind)
    nid = node_id or new_id()

    label = spec.label
    prompt: str | None = None
    if kind is NodeKind.PROMPT_PRESET:
        label, prompt, inputs, outputs = _preset_ports(nid, preset_id)
    else:
        inputs = [t.build(nid) for t in spec.inputs]
        outputs = [t.build(nid) for t in spec.outputs]

    return Node(
        id=nid,
        kind=kind,
        position=position or Point(),
        label=label,
        inputs=inputs,
        outputs=outputs,
        prompt=prompt,
        preset_id=preset_id if kind is NodeKind.PROMPT_PRESET else None,
        width=spec.width,
        height=spec.height,
    )


def add_node_from_history(
    store: WorkflowStore,
    item: HistoryItem,
    position: Point | None = None,
) -> Node:
    """Place a history image back on the canvas as an IMAGE_INPUT node."""
    node = create_node(NodeKind.IMAGE_INPUT, position)
    node.content = item.data_url
    return store.add_node(node)
