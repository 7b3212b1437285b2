"""
Preset catalog and node-type endpoints.
"""
from typing import Dict, List

from fastapi import APIRouter
from pydantic import BaseModel

from nodeforge.models.node_registry import NODE_REGISTRY
from nodeforge.models.presets import PRESET_CONFIGS, PresetConfig

router = APIRouter(tags=["presets"])


class NodeTypePort(BaseModel):
    suffix: str
    label: str
    type: str


class NodeTypeInfo(BaseModel):
    kind: str
    label: str
    inputs: List[NodeTypePort]
    outputs: List[NodeTypePort]


@router.get("/presets", response_model=Dict[str, PresetConfig])
async def list_presets():
    """All prompt presets, keyed by preset id."""
    return PRESET_CONFIGS


@router.get("/node-types", response_model=List[NodeTypeInfo])
async def list_node_types():
    """Port layout of every node kind. Preset nodes take their ports from the preset."""
    return [
        NodeTypeInfo(
            kind=kind.value,
            label=spec.label,
            inputs=[NodeTypePort(**p.model_dump()) for p in spec.inputs],
            outputs=[NodeTypePort(**p.model_dump()) for p in spec.outputs],
        )
        for kind, spec in NODE_REGISTRY.items()
    ]
