"""
Shared fixtures: a scripted fake GenerationService and graph builders.
"""

from typing import Any

import pytest

from nodeforge.config import NodeforgeConfig
from nodeforge.llm.base import ImageTextResult, InlineImage, VideoOperation
from nodeforge.models.graph import Edge, Node, NodeKind, WorkflowStore
from nodeforge.models.node_registry import create_node

# 1x1 transparent PNG
IMG_X = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)
IMG_Y_B64 = "RURJVEVE"
VIDEO_URI = "https://example.test/files/video.mp4"
VIDEO_REF = "data:video/mp4;base64,VklERU8="


class FakeGenerationService:
    """
    In-memory GenerationService.

    Records every call in ``calls`` as ``(method, payload)``. ``failures``
    maps a method name to an exception raised on every call to it.
    """

    def __init__(self, *, video_polls: int = 2, failures: dict[str, Exception] | None = None):
        self.calls: list[tuple[str, Any]] = []
        self.video_polls = video_polls
        self.failures = failures or {}
        self._polls_seen = 0

    def _record(self, method: str, payload: Any) -> None:
        self.calls.append((method, payload))
        if method in self.failures:
            raise self.failures[method]

    def methods_called(self) -> list[str]:
        return [method for method, _ in self.calls]

    async def generate_text(self, prompt: str) -> str:
        self._record("generate_text", prompt)
        return f"completion of {prompt}"

    async def generate_image(self, prompt: str) -> str:
        self._record("generate_image", prompt)
        return "data:image/jpeg;base64,R0VORVJBVEVE"

    async def edit_image(self, image: InlineImage, prompt: str) -> ImageTextResult:
        self._record("edit_image", {"image": image, "prompt": prompt})
        return ImageTextResult(image=IMG_Y_B64, mime_type="image/png", text="done")

    async def transform_images(self, images: list[InlineImage], prompt: str) -> ImageTextResult:
        self._record("transform_images", {"images": images, "prompt": prompt})
        return ImageTextResult(image=IMG_Y_B64, mime_type="image/png", text="preset applied")

    async def start_video_generation(self, prompt: str, image: InlineImage | None = None) -> VideoOperation:
        self._record("start_video_generation", {"prompt": prompt, "image": image})
        self._polls_seen = 0
        return VideoOperation(name="operations/video-1", done=False)

    async def get_operation(self, operation: VideoOperation) -> VideoOperation:
        self._record("get_operation", operation.name)
        self._polls_seen += 1
        if self._polls_seen >= self.video_polls:
            return VideoOperation(name=operation.name, done=True, uri=VIDEO_URI)
        return operation

    async def fetch_video(self, uri: str) -> str:
        self._record("fetch_video", uri)
        return VIDEO_REF


@pytest.fixture(autouse=True)
def fast_polling(monkeypatch):
    """No real sleeping between video status checks."""
    monkeypatch.setattr(NodeforgeConfig, "VIDEO_POLL_INTERVAL", 0.0)
    monkeypatch.setattr(NodeforgeConfig, "VIDEO_POLL_TIMEOUT", None)


@pytest.fixture
def fake_service() -> FakeGenerationService:
    return FakeGenerationService()


def add(store: WorkflowStore, kind: NodeKind, node_id: str, **fields: Any) -> Node:
    """Create a node with a readable id and add it to the store."""
    node = create_node(kind, preset_id=fields.pop("preset_id", None), node_id=node_id)
    for key, value in fields.items():
        setattr(node, key, value)
    return store.add_node(node)


def wire(store: WorkflowStore, source_handle: str, target_handle: str) -> Edge:
    """Add an edge between two handles, deriving node ids from the handle ids."""
    source_node = next(n for n in store.nodes.values() if n.output_port(source_handle))
    target_node = next(n for n in store.nodes.values() if n.input_port(target_handle))
    return store.add_edge(Edge(
        source_node_id=source_node.id,
        source_handle_id=source_handle,
        target_node_id=target_node.id,
        target_handle_id=target_handle,
    ))
