"""
Graph models: the node/edge/group maps the editor builds and the engine runs.

The WorkflowStore is the only shared mutable state. The editor writes
topology and input-node content between runs; the engine writes node
status/content/error and appends history during a run. The two writers
must not overlap, which the store enforces with ``begin_run``.
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, PrivateAttr

from nodeforge.errors import ConfigurationError, WorkflowBusyError


PortType = Literal["text", "image", "video", "any"]


def new_id() -> str:
    return str(uuid4())


class NodeKind(str, Enum):
    TEXT_INPUT = "TEXT_INPUT"
    IMAGE_INPUT = "IMAGE_INPUT"
    TEXT_GENERATOR = "TEXT_GENERATOR"
    IMAGE_EDITOR = "IMAGE_EDITOR"
    VIDEO_GENERATOR = "VIDEO_GENERATOR"
    OUTPUT_DISPLAY = "OUTPUT_DISPLAY"
    PROMPT_PRESET = "PROMPT_PRESET"


class NodeStatus(str, Enum):
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


# Kinds whose content is authored by the user and survives a run reset.
SOURCE_KINDS = frozenset({NodeKind.TEXT_INPUT, NodeKind.IMAGE_INPUT})


class Point(BaseModel):
    x: float = 0.0
    y: float = 0.0


class Port(BaseModel):
    id: str
    label: str
    type: PortType


class Node(BaseModel):
    id: str = Field(default_factory=new_id)
    kind: NodeKind
    position: Point = Field(default_factory=Point)
    label: str = ""
    inputs: list[Port] = Field(default_factory=list)
    outputs: list[Port] = Field(default_factory=list)
    content: Any = None
    status: NodeStatus = NodeStatus.IDLE
    error_message: str | None = None
    prompt: str | None = None
    preset_id: str | None = None
    muted: bool = False
    # Presentation only
    width: float | None = None
    height: float | None = None
    z_index: int | None = None

    def input_port(self, port_id: str) -> Port | None:
        return next((p for p in self.inputs if p.id == port_id), None)

    def output_port(self, port_id: str) -> Port | None:
        return next((p for p in self.outputs if p.id == port_id), None)


class Edge(BaseModel):
    id: str = Field(default_factory=new_id)
    source_node_id: str
    source_handle_id: str
    target_node_id: str
    target_handle_id: str


class Group(BaseModel):
    id: str = Field(default_factory=new_id)
    label: str = "Group"
    color: str = "rgba(59, 130, 246, 0.2)"
    node_ids: list[str] = Field(default_factory=list)


class HistoryItem(BaseModel):
    id: str = Field(default_factory=new_id)
    type: Literal["image"] = "image"
    data_url: str
    prompt: str


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class WorkflowStore(BaseModel):
    """
    Owner of the graph and the run history.

    ``nodes``/``edges``/``groups`` are insertion-ordered dicts keyed by id.
    Edge insertion order is significant: aggregating ports collect their
    values in that order.
    """

    nodes: dict[str, Node] = Field(default_factory=dict)
    edges: dict[str, Edge] = Field(default_factory=dict)
    groups: dict[str, Group] = Field(default_factory=dict)
    history: list[HistoryItem] = Field(default_factory=list)

    _processing: bool = PrivateAttr(default=False)

    # ---- topology (editor side) ----

    def add_node(self, node: Node) -> Node:
        if node.id in self.nodes:
            raise ConfigurationError(f"Duplicate node ID '{node.id}'")
        self.nodes[node.id] = node
        return node

    def remove_node(self, node_id: str) -> None:
        """Remove a node together with every edge touching it and its group memberships."""
        self.nodes.pop(node_id, None)
        for edge_id in [
            e.id for e in self.edges.values()
            if e.source_node_id == node_id or e.target_node_id == node_id
        ]:
            del self.edges[edge_id]
        for group in self.groups.values():
            if node_id in group.node_ids:
                group.node_ids = [nid for nid in group.node_ids if nid != node_id]

    def add_edge(self, edge: Edge) -> Edge:
        self.edges[edge.id] = edge
        return edge

    def remove_edge(self, edge_id: str) -> Edge | None:
        return self.edges.pop(edge_id, None)

    def add_group(self, group: Group) -> Group:
        self.groups[group.id] = group
        return group

    def remove_group(self, group_id: str) -> Group | None:
        return self.groups.pop(group_id, None)

    def set_muted(self, node_ids: list[str], muted: bool | None = None) -> None:
        """Set, or toggle when ``muted`` is None, the muted flag of the given nodes."""
        for nid in node_ids:
            node = self.nodes.get(nid)
            if node is None:
                continue
            node.muted = (not node.muted) if muted is None else muted

    # ---- queries ----

    def edges_into(self, node_id: str, handle_id: str | None = None) -> list[Edge]:
        """Edges targeting a node (optionally a single handle), in insertion order."""
        return [
            e for e in self.edges.values()
            if e.target_node_id == node_id
            and (handle_id is None or e.target_handle_id == handle_id)
        ]

    def is_input_connected(self, node_id: str, handle_id: str) -> bool:
        return any(
            e.target_node_id == node_id and e.target_handle_id == handle_id
            for e in self.edges.values()
        )

    # ---- run side (engine) ----

    @property
    def is_processing(self) -> bool:
        return self._processing

    @contextmanager
    def begin_run(self) -> Iterator["WorkflowStore"]:
        """Grant the engine write access for the duration of one run."""
        if self._processing:
            raise WorkflowBusyError("A workflow run is already in progress")
        self._processing = True
        try:
            yield self
        finally:
            self._processing = False

    def update_node(self, node_id: str, **fields: Any) -> Node | None:
        node = self.nodes.get(node_id)
        if node is None:
            return None
        for key, value in fields.items():
            setattr(node, key, value)
        return node

    def append_history(self, item: HistoryItem) -> None:
        # Most recent first
        self.history.insert(0, item)
