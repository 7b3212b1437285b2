"""
HTTP tests for the workflow API, with the generation service overridden by
the in-memory fake.
"""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGenerationService, add, wire
from nodeforge.api.dependencies import get_generation_service
from nodeforge.main import app
from nodeforge.models.graph import NodeKind, WorkflowStore
from nodeforge.models.workflow_document import document_from_store


@pytest.fixture
def service():
    fake = FakeGenerationService()
    app.dependency_overrides[get_generation_service] = lambda: fake
    yield fake
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def _text_document() -> dict:
    store = WorkflowStore()
    add(store, NodeKind.TEXT_INPUT, "t1", content="a cat")
    add(store, NodeKind.TEXT_GENERATOR, "g1")
    add(store, NodeKind.OUTPUT_DISPLAY, "o1")
    wire(store, "t1-output", "g1-input")
    wire(store, "g1-output", "o1-input")
    return document_from_store(store)


class TestHealth:
    def test_root(self, client):
        response = client.get("/api/")

        assert response.status_code == 200


class TestExecute:
    def test_execute_returns_result_and_updated_nodes(self, client, service):
        response = client.post("/api/v1/workflows/execute", json={"workflow": _text_document()})

        assert response.status_code == 200
        body = response.json()
        assert body["result"]["success"] is True
        assert body["result"]["execution_order"] == ["t1", "g1", "o1"]
        nodes = {n["id"]: n for n in body["workflow"]["nodes"]}
        assert nodes["o1"]["data"]["content"] == "completion of a cat"
        assert nodes["o1"]["data"]["status"] == "COMPLETED"
        assert nodes["t1"]["data"]["content"] == "a cat"
        assert service.calls == [("generate_text", "a cat")]

    def test_node_failure_is_reported_in_result(self, client, service):
        document = _text_document()
        document["nodes"][0]["data"]["content"] = ""

        response = client.post("/api/v1/workflows/execute", json={"workflow": document})

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["success"] is False
        assert result["failed_node_id"] == "g1"
        assert result["error"] == "Prompt is empty."

    def test_invalid_document_is_400(self, client, service):
        response = client.post("/api/v1/workflows/execute", json={"workflow": {"nodes": []}})

        assert response.status_code == 400

    def test_missing_api_key_is_400(self, client, monkeypatch):
        from nodeforge.api import dependencies
        from nodeforge.config import NodeforgeConfig

        dependencies._default_service.cache_clear()
        monkeypatch.setattr(NodeforgeConfig, "GEMINI_API_KEY", None)

        response = client.post("/api/v1/workflows/execute", json={"workflow": _text_document()})

        assert response.status_code == 400
        assert "GEMINI_API_KEY" in response.json()["detail"]


class TestExecuteStream:
    def test_stream_events(self, client, service):
        response = client.post("/api/v1/workflows/execute/stream", json={"workflow": _text_document()})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [
            json.loads(line[len("data: "):])
            for line in response.text.splitlines()
            if line.startswith("data: ")
        ]
        assert events[0]["event"] == "workflow_start"
        assert events[-1]["event"] == "workflow_complete"


class TestConnect:
    def test_auto_route(self, client):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")
        add(store, NodeKind.IMAGE_EDITOR, "e1")

        response = client.post(
            "/api/v1/workflows/connect",
            json={
                "workflow": document_from_store(store),
                "source_node_id": "t1",
                "source_handle_id": "t1-output",
                "target_node_id": "e1",
            },
        )

        body = response.json()
        assert body["connected"] is True
        assert body["edge"]["targetHandleId"] == "e1-input-text"
        assert len(body["edges"]) == 1

    def test_incompatible(self, client):
        store = WorkflowStore()
        add(store, NodeKind.TEXT_INPUT, "t1")
        add(store, NodeKind.IMAGE_EDITOR, "e1")

        response = client.post(
            "/api/v1/workflows/connect",
            json={
                "workflow": document_from_store(store),
                "source_node_id": "t1",
                "source_handle_id": "t1-output",
                "target_node_id": "e1",
                "target_handle_id": "e1-input-image",
            },
        )

        assert response.json() == {"connected": False, "edge": None, "edges": []}


class TestPresets:
    def test_list_presets(self, client):
        response = client.get("/api/v1/presets")

        assert response.status_code == 200
        presets = response.json()
        assert presets["combine-images"]["label"] == "Combine Images"
        assert len(presets["combine-images"]["inputs"]) == 2

    def test_list_node_types(self, client):
        response = client.get("/api/v1/node-types")

        kinds = {t["kind"]: t for t in response.json()}
        assert set(kinds) == {k.value for k in NodeKind}
        assert kinds["IMAGE_EDITOR"]["inputs"][0]["suffix"] == "-input-image"
