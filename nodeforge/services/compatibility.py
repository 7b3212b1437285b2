"""
Port type compatibility: decides whether an output may feed an input.

Used when the editor completes a connection, either onto a specific input
handle (manual) or onto a node body (auto-routing to the first compatible,
available input in declaration order).
"""

from __future__ import annotations

import logging

from nodeforge.models.graph import Edge, Node, NodeKind, Port, PortType, WorkflowStore
from nodeforge.models.node_registry import MULTI_IMAGE_SUFFIX

logger = logging.getLogger(__name__)


def is_compatible(source_type: PortType, target_type: PortType) -> bool:
    """Compatible iff the types match or either side is the ``any`` wildcard."""
    return source_type == target_type or source_type == "any" or target_type == "any"


def is_aggregating_port(node: Node | None, port_id: str) -> bool:
    """Multi-image preset inputs accept any number of incoming edges."""
    return (
        node is not None
        and node.kind is NodeKind.PROMPT_PRESET
        and port_id.endswith(MULTI_IMAGE_SUFFIX)
    )


def _is_available(store: WorkflowStore, node: Node, port: Port) -> bool:
    return is_aggregating_port(node, port.id) or not store.is_input_connected(node.id, port.id)


def _source_port(store: WorkflowStore, node_id: str, handle_id: str) -> Port | None:
    node = store.nodes.get(node_id)
    return node.output_port(handle_id) if node else None


def find_auto_target_port(
    store: WorkflowStore,
    source_type: PortType,
    target_node_id: str,
) -> Port | None:
    """
    First input of the target node that is type-compatible and available.

    First match wins: ties are broken by port declaration order.
    """
    target = store.nodes.get(target_node_id)
    if target is None:
        return None
    for port in target.inputs:
        if not is_compatible(source_type, port.type):
            continue
        if _is_available(store, target, port):
            return port
    return None


def can_connect(
    store: WorkflowStore,
    source_node_id: str,
    source_handle_id: str,
    target_node_id: str,
    target_handle_id: str,
) -> bool:
    """Manual connection check onto a specific input handle."""
    if source_node_id == target_node_id:
        return False
    source_port = _source_port(store, source_node_id, source_handle_id)
    target = store.nodes.get(target_node_id)
    if source_port is None or target is None:
        return False
    target_port = target.input_port(target_handle_id)
    if target_port is None:
        return False
    return is_compatible(source_port.type, target_port.type) and _is_available(
        store, target, target_port
    )


def connect(
    store: WorkflowStore,
    source_node_id: str,
    source_handle_id: str,
    target_node_id: str,
    target_handle_id: str | None = None,
) -> Edge | None:
    """
    Create an edge from an output handle to a target node.

    With ``target_handle_id`` the connection is validated against that handle;
    without it the first compatible, available input is chosen. Returns the
    new edge, or None if no edge was created.
    """
    if source_node_id == target_node_id:
        return None

    if target_handle_id is None:
        source_port = _source_port(store, source_node_id, source_handle_id)
        if source_port is None:
            return None
        port = find_auto_target_port(store, source_port.type, target_node_id)
        if port is None:
            logger.debug(
                "No compatible input on node %s for %s.%s",
                target_node_id, source_node_id, source_handle_id,
            )
            return None
        target_handle_id = port.id
    elif not can_connect(
        store, source_node_id, source_handle_id, target_node_id, target_handle_id
    ):
        return None

    edge = Edge(
        source_node_id=source_node_id,
        source_handle_id=source_handle_id,
        target_node_id=target_node_id,
        target_handle_id=target_handle_id,
    )
    return store.add_edge(edge)


def disconnect_input(store: WorkflowStore, node_id: str, handle_id: str) -> Edge | None:
    """
    Unplug the edge feeding a single-valued input.

    Aggregating inputs are not a 1-to-1 connection and cannot be unplugged
    from the handle.
    """
    node = store.nodes.get(node_id)
    if node is None or is_aggregating_port(node, handle_id):
        return None
    edges = store.edges_into(node_id, handle_id)
    if not edges:
        return None
    return store.remove_edge(edges[0].id)
