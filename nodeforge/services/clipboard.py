"""
Copy/paste of node selections.

A copied selection keeps only the edges whose endpoints are both selected.
Pasting gives every node and edge a fresh id, rewrites port ids to the new
node ids and offsets positions.
"""

from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel, Field

from nodeforge.models.graph import Edge, Node, Point, Port, WorkflowStore, new_id

PASTE_OFFSET = 30.0


class Clipboard(BaseModel):
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


def copy_subgraph(store: WorkflowStore, node_ids: Iterable[str]) -> Clipboard:
    selected = set(node_ids)
    return Clipboard(
        nodes=[n.model_copy(deep=True) for n in store.nodes.values() if n.id in selected],
        edges=[
            e.model_copy()
            for e in store.edges.values()
            if e.source_node_id in selected and e.target_node_id in selected
        ],
    )


def _rename_ports(ports: list[Port], old_id: str, new_node_id: str) -> list[Port]:
    return [p.model_copy(update={"id": p.id.replace(old_id, new_node_id, 1)}) for p in ports]


def paste_subgraph(store: WorkflowStore, clipboard: Clipboard) -> list[str]:
    """
    Insert a copy of the clipboard into the store.

    Returns:
        Ids of the pasted nodes, in clipboard order
    """
    id_map: dict[str, str] = {}
    next_z = max((n.z_index or 0 for n in store.nodes.values()), default=0) + 1

    for node in clipboard.nodes:
        fresh_id = new_id()
        id_map[node.id] = fresh_id
        store.add_node(node.model_copy(
            deep=True,
            update={
                "id": fresh_id,
                "position": Point(x=node.position.x + PASTE_OFFSET, y=node.position.y + PASTE_OFFSET),
                "z_index": next_z,
                "inputs": _rename_ports(node.inputs, node.id, fresh_id),
                "outputs": _rename_ports(node.outputs, node.id, fresh_id),
            },
        ))
        next_z += 1

    for edge in clipboard.edges:
        source = id_map[edge.source_node_id]
        target = id_map[edge.target_node_id]
        store.add_edge(Edge(
            source_node_id=source,
            source_handle_id=edge.source_handle_id.replace(edge.source_node_id, source, 1),
            target_node_id=target,
            target_handle_id=edge.target_handle_id.replace(edge.target_node_id, target, 1),
        ))

    return list(id_map.values())
