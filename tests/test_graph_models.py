"""
Tests for the graph model: node construction, the store and copy/paste.
"""

import pytest

from conftest import add, wire
from nodeforge.errors import ConfigurationError, WorkflowBusyError
from nodeforge.models.graph import Group, HistoryItem, NodeKind, Point, WorkflowStore
from nodeforge.models.node_registry import (
    MULTI_IMAGE_SUFFIX,
    add_node_from_history,
    create_node,
    get_node_spec,
)
from nodeforge.models.presets import PRESET_CONFIGS, get_preset
from nodeforge.services.clipboard import copy_subgraph, paste_subgraph


class TestCreateNode:
    def test_port_ids_derive_from_node_id(self):
        node = create_node(NodeKind.IMAGE_EDITOR, node_id="n1")

        assert [p.id for p in node.inputs] == ["n1-input-image", "n1-input-text"]
        assert [p.type for p in node.inputs] == ["image", "text"]
        assert [p.id for p in node.outputs] == ["n1-output-image", "n1-output-text"]
        assert node.label == "Image Generator/Editor"

    def test_default_sizes(self):
        assert (create_node(NodeKind.TEXT_INPUT).width, create_node(NodeKind.TEXT_INPUT).height) == (320, 150)
        assert create_node(NodeKind.OUTPUT_DISPLAY).width == 350
        assert create_node(NodeKind.OUTPUT_DISPLAY).height is None

    def test_fresh_ids_are_unique(self):
        assert create_node(NodeKind.TEXT_INPUT).id != create_node(NodeKind.TEXT_INPUT).id

    def test_accepts_kind_name(self):
        node = create_node("OUTPUT_DISPLAY", node_id="o1")

        assert node.kind is NodeKind.OUTPUT_DISPLAY
        assert node.inputs[0].type == "any"
        assert node.outputs == []

    def test_unknown_kind_raises(self):
        with pytest.raises(ConfigurationError):
            create_node("SPEECH_SYNTH")

    def test_registry_lookup(self):
        assert get_node_spec(NodeKind.TEXT_GENERATOR).label == "Text Generator"
        assert get_node_spec("nope") is None


class TestPresetNodes:
    def test_all_image_multi_input_preset_gets_aggregating_port(self):
        node = create_node(NodeKind.PROMPT_PRESET, preset_id="combine-images", node_id="p1")

        assert len(node.inputs) == 1
        assert node.inputs[0].id == f"p1{MULTI_IMAGE_SUFFIX}"
        assert node.inputs[0].label == "Images"
        assert [p.id for p in node.outputs] == ["p1-output-0", "p1-output-1"]
        assert node.prompt == PRESET_CONFIGS["combine-images"].prompt
        assert node.preset_id == "combine-images"

    def test_single_input_preset_keeps_declared_ports(self):
        node = create_node(NodeKind.PROMPT_PRESET, preset_id="restore-photo", node_id="p1")

        assert [p.id for p in node.inputs] == ["p1-input-0"]
        assert (node.width, node.height) == (150, 150)

    def test_missing_preset_raises(self):
        with pytest.raises(ConfigurationError):
            create_node(NodeKind.PROMPT_PRESET)

    def test_unknown_preset_raises(self):
        with pytest.raises(ConfigurationError, match="Unknown presetId"):
            create_node(NodeKind.PROMPT_PRESET, preset_id="does-not-exist")

    def test_get_preset(self):
        assert get_preset("style-transfer") is PRESET_CONFIGS["style-transfer"]
        assert get_preset(None) is None


class TestWorkflowStore:
    def test_duplicate_node_rejected(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")

        with pytest.raises(ConfigurationError):
            add(store, NodeKind.TEXT_INPUT, "t1")

    def test_remove_node_drops_edges_and_group_membership(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")
        add(store, NodeKind.OUTPUT_DISPLAY, "o1")
        wire(store, "t1-output", "o1-input")
        store.add_group(Group(id="g", node_ids=["t1", "o1"]))

        store.remove_node("t1")

        assert list(store.nodes) == ["o1"]
        assert store.edges == {}
        assert store.groups["g"].node_ids == ["o1"]

    def test_set_muted_toggles(self):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_GENERATOR, "g1")
        add(store, NodeKind.TEXT_GENERATOR, "g2", muted=True)

        store.set_muted(["g1", "g2", "missing"])

        assert store.nodes["g1"].muted is True
        assert store.nodes["g2"].muted is False

    def test_begin_run_is_exclusive(self):
        store = WorkflowStore()

        with store.begin_run():
            assert store.is_processing
            with pytest.raises(WorkflowBusyError):
                with store.begin_run():
                    pass

        assert not store.is_processing

    def test_add_node_from_history(self):
        store = WorkflowStore()
        item = HistoryItem(data_url="data:image/png;base64,AAAA", prompt="p")

        node = add_node_from_history(store, item, Point(x=5, y=6))

        assert node.kind is NodeKind.IMAGE_INPUT
        assert node.content == item.data_url
        assert store.nodes[node.id] is node


class TestClipboard:
    def _store(self) -> WorkflowStore:
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1", content="hello", position=Point(x=10, y=20), z_index=4)
        add(store, NodeKind.TEXT_GENERATOR, "g1")
        add(store, NodeKind.OUTPUT_DISPLAY, "o1")
        wire(store, "t1-output", "g1-input")
        wire(store, "g1-output", "o1-input")
        return store

    def test_copy_keeps_only_internal_edges(self):
        store = self._store()

        clipboard = copy_subgraph(store, ["t1", "g1"])

        assert [n.id for n in clipboard.nodes] == ["t1", "g1"]
        assert len(clipboard.edges) == 1
        assert clipboard.edges[0].source_node_id == "t1"

    def test_paste_rewrites_ids_and_offsets(self):
        store = self._store()
        clipboard = copy_subgraph(store, ["t1", "g1"])

        new_ids = paste_subgraph(store, clipboard)

        assert len(new_ids) == 2
        assert len(store.nodes) == 5
        new_text, new_gen = (store.nodes[nid] for nid in new_ids)
        assert new_text.content == "hello"
        assert (new_text.position.x, new_text.position.y) == (40, 50)
        assert new_text.outputs[0].id == f"{new_text.id}-output"
        assert new_gen.inputs[0].id == f"{new_gen.id}-input"
        assert new_text.z_index > 4

        pasted_edges = [e for e in store.edges.values() if e.source_node_id == new_text.id]
        assert len(pasted_edges) == 1
        assert pasted_edges[0].target_node_id == new_gen.id
        assert pasted_edges[0].source_handle_id == f"{new_text.id}-output"
        assert pasted_edges[0].target_handle_id == f"{new_gen.id}-input"

    def test_paste_leaves_originals_untouched(self):
        store = self._store()
        paste_subgraph(store, copy_subgraph(store, ["t1"]))

        assert store.nodes["t1"].outputs[0].id == "t1-output"
        assert (store.nodes["t1"].position.x, store.nodes["t1"].position.y) == (10, 20)
