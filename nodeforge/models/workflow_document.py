"""
Workflow document: the JSON file the editor saves and loads.

Shape::

    {
      "nodes": [{"id", "type", "position", "data": {...}, "zIndex"}],
      "edges": [{"id", "sourceNodeId", "sourceHandleId", "targetNodeId", "targetHandleId"}],
      "groups": [{"id", "label", "color", "nodeIds"}],
      "history": [{"id", "type", "dataUrl", "prompt"}],
      "viewTransform": {"scale", "x", "y"},
      "theme": {...},
      "shortcuts": {...}
    }
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from nodeforge.errors import ConfigurationError
from nodeforge.models.graph import (
    Edge,
    Group,
    HistoryItem,
    Node,
    NodeKind,
    NodeStatus,
    Point,
    Port,
    WorkflowStore,
)

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EdgeColors(_CamelModel):
    text: str = "#f59e0b"
    image: str = "#d1d5db"
    video: str = "#3b82f6"
    any: str = "#a3a3a3"


class Theme(_CamelModel):
    canvas_background: str = "#000000"
    node_background: str = "#171717"
    node_opacity: float = 0.7
    node_text_color: str = "#ffffff"
    uploader_text_color: str = "#6b7280"
    canvas_background_image: str | None = None
    edge_width: float = 2
    edge_colors: EdgeColors = Field(default_factory=EdgeColors)
    button_color: str = "#4f46e5"


class Shortcuts(_CamelModel):
    run: str = "Enter"
    save: str = "s"
    load: str = "o"
    copy_: str = Field(default="c", alias="copy")
    paste: str = "v"
    delete: str = "Delete"
    group: str = "g"
    ungroup: str = "g"
    mute: str = "m"


class ViewTransform(_CamelModel):
    scale: float = 1.0
    x: float = 0.0
    y: float = 0.0


class WorkflowDocument(BaseModel):
    """A loaded workflow: the graph plus editor presentation settings."""

    store: WorkflowStore
    view_transform: ViewTransform = Field(default_factory=ViewTransform)
    theme: Theme = Field(default_factory=Theme)
    shortcuts: Shortcuts = Field(default_factory=Shortcuts)


# ---------------------------------------------------------------------------
# Theme migration
# ---------------------------------------------------------------------------

_RGBA_RE = re.compile(r"rgba?\((\d+),\s*(\d+),\s*(\d+),\s*([\d.]+)\)")


def migrate_theme(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Convert a legacy ``rgba(r, g, b, a)`` nodeBackground into a hex color
    plus ``nodeOpacity``. Only applies when nodeOpacity is absent.
    """
    theme = dict(raw)
    background = theme.get("nodeBackground")
    if isinstance(background, str) and background.startswith("rgba") and "nodeOpacity" not in theme:
        match = _RGBA_RE.match(background)
        if match:
            r, g, b = (int(match.group(i)) for i in range(1, 4))
            theme["nodeBackground"] = f"#{r:02x}{g:02x}{b:02x}"
            theme["nodeOpacity"] = float(match.group(4))
        else:
            logger.warning("Could not migrate old nodeBackground color format: %s", background)
    return theme


# ---------------------------------------------------------------------------
# Entity conversion
# ---------------------------------------------------------------------------


def _ports(raw: list[dict[str, Any]] | None) -> list[Port]:
    return [Port(id=p["id"], label=p.get("label", ""), type=p.get("type", "any")) for p in raw or []]


def node_from_dict(raw: dict[str, Any]) -> Node:
    data = raw.get("data") or {}
    position = raw.get("position") or {}
    return Node(
        id=raw["id"],
        kind=NodeKind(raw["type"]),
        position=Point(x=position.get("x", 0.0), y=position.get("y", 0.0)),
        label=data.get("label", ""),
        inputs=_ports(data.get("inputs")),
        outputs=_ports(data.get("outputs")),
        content=data.get("content"),
        status=NodeStatus(data.get("status", NodeStatus.IDLE.value)),
        error_message=data.get("errorMessage"),
        prompt=data.get("prompt"),
        preset_id=data.get("presetId"),
        muted=bool(data.get("isMuted", False)),
        width=data.get("width"),
        height=data.get("height"),
        z_index=raw.get("zIndex"),
    )


def node_to_dict(node: Node) -> dict[str, Any]:
    data: dict[str, Any] = {
        "label": node.label,
        "inputs": [p.model_dump() for p in node.inputs],
        "outputs": [p.model_dump() for p in node.outputs],
        "content": node.content,
        "status": node.status.value,
        "isMuted": node.muted,
    }
    optional = {
        "errorMessage": node.error_message,
        "prompt": node.prompt,
        "presetId": node.preset_id,
        "width": node.width,
        "height": node.height,
    }
    data.update({k: v for k, v in optional.items() if v is not None})

    out: dict[str, Any] = {
        "id": node.id,
        "type": node.kind.value,
        "position": node.position.model_dump(),
        "data": data,
    }
    if node.z_index is not None:
        out["zIndex"] = node.z_index
    return out


def edge_from_dict(raw: dict[str, Any]) -> Edge:
    return Edge(
        id=raw["id"],
        source_node_id=raw["sourceNodeId"],
        source_handle_id=raw["sourceHandleId"],
        target_node_id=raw["targetNodeId"],
        target_handle_id=raw["targetHandleId"],
    )


def edge_to_dict(edge: Edge) -> dict[str, Any]:
    return {
        "id": edge.id,
        "sourceNodeId": edge.source_node_id,
        "sourceHandleId": edge.source_handle_id,
        "targetNodeId": edge.target_node_id,
        "targetHandleId": edge.target_handle_id,
    }


def _group_from_dict(raw: dict[str, Any]) -> Group:
    return Group(
        id=raw["id"],
        label=raw.get("label", "Group"),
        color=raw.get("color", "rgba(59, 130, 246, 0.2)"),
        node_ids=list(raw.get("nodeIds", [])),
    )


def _history_from_dict(raw: dict[str, Any]) -> HistoryItem:
    return HistoryItem(
        id=raw["id"],
        type=raw.get("type", "image"),
        data_url=raw["dataUrl"],
        prompt=raw.get("prompt", ""),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def store_from_document(document: dict[str, Any]) -> WorkflowDocument:
    """
    Build a WorkflowDocument from a parsed workflow JSON object.

    Missing z-indexes are assigned above the highest one present, in
    document order.

    Raises:
        ConfigurationError: If ``nodes`` or ``edges`` is missing or an entity is malformed
    """
    if not isinstance(document, dict) or "nodes" not in document or "edges" not in document:
        raise ConfigurationError("Invalid workflow file format: 'nodes' and 'edges' are required")

    try:
        nodes = [node_from_dict(n) for n in document["nodes"]]
        edges = [edge_from_dict(e) for e in document["edges"]]
        groups = [_group_from_dict(g) for g in document.get("groups") or []]
        history = [_history_from_dict(h) for h in document.get("history") or []]
        view_transform = ViewTransform.model_validate(document.get("viewTransform") or {})
        theme = Theme.model_validate(migrate_theme(document.get("theme") or {}))
        shortcuts = Shortcuts.model_validate(document.get("shortcuts") or {})
    except (KeyError, TypeError, ValueError, PydanticValidationError) as e:
        raise ConfigurationError(f"Invalid workflow file format: {e}") from e

    max_z = max((n.z_index for n in nodes if n.z_index), default=0)
    for node in nodes:
        if node.z_index is None:
            max_z += 1
            node.z_index = max_z

    store = WorkflowStore()
    for node in nodes:
        store.add_node(node)
    for edge in edges:
        store.add_edge(edge)
    for group in groups:
        store.add_group(group)
    store.history = history

    logger.info(
        "Loaded workflow: %d nodes, %d edges, %d groups",
        len(store.nodes), len(store.edges), len(store.groups),
    )
    return WorkflowDocument(
        store=store,
        view_transform=view_transform,
        theme=theme,
        shortcuts=shortcuts,
    )


def document_from_store(
    store: WorkflowStore,
    *,
    view_transform: ViewTransform | None = None,
    theme: Theme | None = None,
    shortcuts: Shortcuts | None = None,
) -> dict[str, Any]:
    """Serialize a store (and optional editor settings) to the workflow JSON shape."""
    return {
        "nodes": [node_to_dict(n) for n in store.nodes.values()],
        "edges": [edge_to_dict(e) for e in store.edges.values()],
        "groups": [
            {"id": g.id, "label": g.label, "color": g.color, "nodeIds": list(g.node_ids)}
            for g in store.groups.values()
        ],
        "history": [
            {"id": h.id, "type": h.type, "dataUrl": h.data_url, "prompt": h.prompt}
            for h in store.history
        ],
        "viewTransform": (view_transform or ViewTransform()).model_dump(by_alias=True),
        "theme": (theme or Theme()).model_dump(by_alias=True),
        "shortcuts": (shortcuts or Shortcuts()).model_dump(by_alias=True),
    }


def load_workflow(path: str | Path) -> WorkflowDocument:
    """Read and parse a workflow JSON file."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid workflow file: {e}") from e
    return store_from_document(raw)


def dump_workflow(document: WorkflowDocument, path: str | Path) -> None:
    payload = document_from_store(
        document.store,
        view_transform=document.view_transform,
        theme=document.theme,
        shortcuts=document.shortcuts,
    )
    Path(path).write_text(json.dumps(payload, indent=2), encoding="utf-8")
