"""
Tests for port compatibility and connection routing.
"""

import pytest

from conftest import add, wire
from nodeforge.models.graph import NodeKind, WorkflowStore
from nodeforge.services.compatibility import (
    can_connect,
    connect,
    disconnect_input,
    find_auto_target_port,
    is_aggregating_port,
    is_compatible,
)


class TestIsCompatible:
    @pytest.mark.parametrize(
        "source,target,expected",
        [
            ("text", "text", True),
            ("image", "text", False),
            ("video", "any", True),
            ("any", "image", True),
            ("video", "image", False),
        ],
    )
    def test_type_rules(self, source, target, expected):
        assert is_compatible(source, target) is expected


class TestManualConnect:
    def test_compatible_free_port(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")
        add(store, NodeKind.IMAGE_EDITOR, "e1")

        edge = connect(store, "t1", "t1-output", "e1", "e1-input-text")

        assert edge is not None
        assert edge.target_handle_id == "e1-input-text"
        assert list(store.edges.values()) == [edge]

    def test_type_mismatch_rejected(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")
        add(store, NodeKind.IMAGE_EDITOR, "e1")

        assert connect(store, "t1", "t1-output", "e1", "e1-input-image") is None
        assert store.edges == {}

    def test_occupied_single_valued_port_rejected(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")
        add(store, NodeKind.TEXT_INPUT, "t2")
        add(store, NodeKind.TEXT_GENERATOR, "g1")
        wire(store, "t1-output", "g1-input")

        assert not can_connect(store, "t2", "t2-output", "g1", "g1-input")
        assert connect(store, "t2", "t2-output", "g1", "g1-input") is None

    def test_self_connection_rejected(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_GENERATOR, "g1")

        assert connect(store, "g1", "g1-output", "g1", "g1-input") is None
        assert connect(store, "g1", "g1-output", "g1") is None

    def test_aggregating_port_accepts_many(self):
        store = WorkflowStore()
        add(store, NodeKind.IMAGE_INPUT, "i1")
        add(store, NodeKind.IMAGE_INPUT, "i2")
        add(store, NodeKind.PROMPT_PRESET, "p1", preset_id="virtual-try-on")

        first = connect(store, "i1", "i1-output", "p1", "p1-input-multi-image")
        second = connect(store, "i2", "i2-output", "p1", "p1-input-multi-image")

        assert first is not None and second is not None
        assert len(store.edges_into("p1", "p1-input-multi-image")) == 2


class TestAutoRouting:
    def test_first_compatible_port_wins(self):
        """An 'any' output matches both editor inputs; the first declared one is chosen."""
        store = WorkflowStore()
        add(store, NodeKind.IMAGE_EDITOR, "e1")

        port = find_auto_target_port(store, "any", "e1")

        assert port.id == "e1-input-image"

    def test_skips_occupied_port(self):
        store = WorkflowStore()
        add(store, NodeKind.IMAGE_INPUT, "i1")
        add(store, NodeKind.IMAGE_INPUT, "i2")
        add(store, NodeKind.VIDEO_GENERATOR, "v1")
        wire(store, "i1-output", "v1-input-image")

        assert connect(store, "i2", "i2-output", "v1") is None

    def test_routes_by_type(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")
        add(store, NodeKind.VIDEO_GENERATOR, "v1")

        edge = connect(store, "t1", "t1-output", "v1")

        assert edge.target_handle_id == "v1-input-text"

    def test_no_compatible_port(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")
        add(store, NodeKind.TEXT_INPUT, "t2")

        assert connect(store, "t1", "t1-output", "t2") is None


class TestDisconnect:
    def test_single_valued_port_can_be_unplugged(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")
        add(store, NodeKind.TEXT_GENERATOR, "g1")
        edge = wire(store, "t1-output", "g1-input")

        assert disconnect_input(store, "g1", "g1-input") == edge
        assert store.edges == {}

    def test_aggregating_port_cannot_be_unplugged(self):
        store = WorkflowStore()
        add(store, NodeKind.IMAGE_INPUT, "i1")
        preset = add(store, NodeKind.PROMPT_PRESET, "p1", preset_id="combine-images")
        wire(store, "i1-output", "p1-input-multi-image")

        assert is_aggregating_port(preset, "p1-input-multi-image")
        assert disconnect_input(store, "p1", "p1-input-multi-image") is None
        assert len(store.edges) == 1
