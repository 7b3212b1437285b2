"""
Workflow execution engine.

Takes a WorkflowStore, computes the toposorted execution order, resolves
each node's inputs from upstream outputs via edges, dispatches to the
handler registered for the node's kind, and writes status/content back to
the store.

Key concepts:
- Nodes run one at a time, strictly in order. The only suspension points are
  the generation calls and the video poll sleeps.
- Muted nodes copy their first input to every output without running (the
  last connected value when that input aggregates).
- Aggregating inputs (multi-image preset handles) receive every connected
  value, in edge insertion order.
- The first failing node stops the run; completed nodes keep their results.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel, Field

from nodeforge.errors import RunCancelledError, format_error
from nodeforge.llm.base import GenerationService
from nodeforge.models.graph import (
    SOURCE_KINDS,
    HistoryItem,
    Node,
    NodeKind,
    NodeStatus,
    WorkflowStore,
)
from nodeforge.services.compatibility import is_aggregating_port
from nodeforge.services.scheduler import compute_execution_order, find_unscheduled_nodes

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


class NodeExecutionResult(BaseModel):
    node_id: str
    node_kind: NodeKind | None = None
    status: Literal["completed", "error"]
    muted: bool = False
    outputs: dict[str, Any] | None = None
    error: str | None = None
    execution_time_ms: int = 0


class WorkflowExecutionResult(BaseModel):
    success: bool
    execution_order: list[str] = Field(default_factory=list)
    skipped_node_ids: list[str] = Field(default_factory=list)
    node_results: list[NodeExecutionResult] = Field(default_factory=list)
    history_added: list[HistoryItem] = Field(default_factory=list)
    failed_node_id: str | None = None
    error: str | None = None
    total_execution_time_ms: int = 0


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

PortKey = tuple[str, str]  # (node_id, handle_id)


@dataclass
class NodeContext:
    """Everything a handler needs to run one node."""

    store: WorkflowStore
    service: GenerationService
    node: Node
    inputs: dict[str, Any]
    cancel: asyncio.Event | None = None
    emit: Callable[[dict[str, Any]], None] = lambda event: None
    history_added: list[HistoryItem] = field(default_factory=list)

    def input(self, suffix: str) -> Any:
        """Resolved value of the input port ``<node_id><suffix>``."""
        return self.inputs.get(f"{self.node.id}{suffix}")

    def prompt_input(self, suffix: str) -> Any:
        """Text port value, or the node's own prompt when the port is unconnected."""
        port_id = f"{self.node.id}{suffix}"
        if self.store.is_input_connected(self.node.id, port_id):
            return self.inputs.get(port_id)
        return self.node.prompt

    def report_progress(self, message: str) -> None:
        self.store.update_node(self.node.id, content={"progress": message})
        self.emit({"event": "node_progress", "node_id": self.node.id, "progress": message})

    def record_history(self, data_url: str, prompt: str) -> None:
        item = HistoryItem(type="image", data_url=data_url, prompt=prompt)
        self.store.append_history(item)
        self.history_added.append(item)


Handler = Callable[[NodeContext], Awaitable[Any]]

# One handler per NodeKind. Checked complete at the bottom of this module.
_registry: dict[NodeKind, Handler] = {}


def executor(kind: NodeKind):
    """
    Decorator that registers the async handler for a node kind.

    Usage:
        @executor(NodeKind.TEXT_GENERATOR)
        async def _exec_text_generator(ctx: NodeContext) -> Any:
            return await generate_text(ctx.service, ctx.prompt_input("-input"))
    """
    def decorator(fn: Handler):
        _registry[kind] = fn
        return fn
    return decorator


# ---------------------------------------------------------------------------
# Input resolution / output routing
# ---------------------------------------------------------------------------


def resolve_node_inputs(
    store: WorkflowStore,
    node: Node,
    port_values: dict[PortKey, Any],
) -> dict[str, Any]:
    """
    Resolve a node's inputs, keyed by input port id.

    Single-valued ports take the connected source's last produced value
    (None when unconnected or when the source never ran). Aggregating ports
    take an ordered list with one value per incoming edge.
    """
    resolved: dict[str, Any] = {}
    for port in node.inputs:
        edges = store.edges_into(node.id, port.id)
        if is_aggregating_port(node, port.id):
            resolved[port.id] = [
                port_values.get((e.source_node_id, e.source_handle_id)) for e in edges
            ]
        elif edges:
            # At most one edge feeds a single-valued port; last one wins otherwise.
            edge = edges[-1]
            resolved[port.id] = port_values.get((edge.source_node_id, edge.source_handle_id))
    return resolved


def route_outputs(node: Node, output: Any) -> dict[str, Any]:
    """
    Map a node's output onto its output ports.

    Structured ``{image, text}`` results from image editor/preset nodes are
    split by port type; everything else goes to every port unchanged.
    """
    structured = (
        node.kind in (NodeKind.IMAGE_EDITOR, NodeKind.PROMPT_PRESET)
        and isinstance(output, dict)
        and "image" in output
    )
    routed: dict[str, Any] = {}
    for port in node.outputs:
        if structured:
            routed[port.id] = output["image"] if port.type == "image" else output.get("text")
        else:
            routed[port.id] = output
    return routed


def reset_run_state(store: WorkflowStore) -> None:
    """Clear status/error on every node and content on every non-source node."""
    for node in store.nodes.values():
        node.status = NodeStatus.IDLE
        node.error_message = None
        if node.kind not in SOURCE_KINDS:
            node.content = None


# ---------------------------------------------------------------------------
# Node handlers
# ---------------------------------------------------------------------------


@executor(NodeKind.TEXT_INPUT)
async def _exec_text_input(ctx: NodeContext) -> Any:
    return ctx.node.content


@executor(NodeKind.IMAGE_INPUT)
async def _exec_image_input(ctx: NodeContext) -> Any:
    return ctx.node.content


@executor(NodeKind.TEXT_GENERATOR)
async def _exec_text_generator(ctx: NodeContext) -> Any:
    from nodeforge.agents.text_generation.generator import generate_text

    return await generate_text(ctx.service, ctx.prompt_input("-input"))


@executor(NodeKind.IMAGE_EDITOR)
async def _exec_image_editor(ctx: NodeContext) -> Any:
    """
    Edit the optional input image with the prompt, or generate from the
    prompt alone. Requires a non-empty prompt.
    """
    from nodeforge.agents.image_generation.generator import generate_or_edit_image
    from nodeforge.agents.text_generation.generator import normalize_prompt

    prompt = ctx.prompt_input("-input-text")
    output = await generate_or_edit_image(ctx.service, prompt, ctx.input("-input-image"))
    ctx.record_history(output["image"], normalize_prompt(prompt))
    return output


@executor(NodeKind.PROMPT_PRESET)
async def _exec_prompt_preset(ctx: NodeContext) -> Any:
    """
    Apply the preset's fixed prompt to the collected images.

    Images come from the aggregating multi-image handle when the node has
    one, otherwise from each declared input in order.
    """
    from nodeforge.agents.image_generation.generator import apply_preset

    node = ctx.node
    image_inputs: list[Any] = []
    for port in node.inputs:
        value = ctx.inputs.get(port.id)
        if is_aggregating_port(node, port.id):
            image_inputs.extend(value or [])
        else:
            image_inputs.append(value)

    output = await apply_preset(ctx.service, image_inputs, node.prompt, label=node.label)
    ctx.record_history(output["image"], node.prompt or "")
    return output


@executor(NodeKind.VIDEO_GENERATOR)
async def _exec_video_generator(ctx: NodeContext) -> Any:
    from nodeforge.agents.video_generation.generator import generate_video
    from nodeforge.config import NodeforgeConfig

    return await generate_video(
        ctx.service,
        ctx.prompt_input("-input-text"),
        ctx.input("-input-image"),
        on_progress=ctx.report_progress,
        cancel=ctx.cancel,
        timeout=NodeforgeConfig.VIDEO_POLL_TIMEOUT,
    )


@executor(NodeKind.OUTPUT_DISPLAY)
async def _exec_output_display(ctx: NodeContext) -> Any:
    return ctx.input("-input")


_missing_handlers = set(NodeKind) - set(_registry)
if _missing_handlers:
    raise RuntimeError(
        f"No handler registered for node kinds: {sorted(k.value for k in _missing_handlers)}"
    )


# ---------------------------------------------------------------------------
# Main execution function
# ---------------------------------------------------------------------------


async def execute_workflow(
    store: WorkflowStore,
    service: GenerationService,
    *,
    events: asyncio.Queue | None = None,
    cancel: asyncio.Event | None = None,
) -> WorkflowExecutionResult:
    """
    Run every schedulable node of the store in topological order.

    Raises:
        WorkflowBusyError: If another run on the same store is in flight
    """
    def emit(event: dict[str, Any]) -> None:
        if events is not None:
            events.put_nowait(event)

    with store.begin_run():
        return await _run(store, service, emit=emit, cancel=cancel)


async def _run(
    store: WorkflowStore,
    service: GenerationService,
    *,
    emit: Callable[[dict[str, Any]], None],
    cancel: asyncio.Event | None,
) -> WorkflowExecutionResult:
    start_time = time.perf_counter()

    reset_run_state(store)

    execution_order = compute_execution_order(store.nodes.keys(), store.edges.values())
    skipped = find_unscheduled_nodes(store.nodes.keys(), execution_order)
    if skipped:
        logger.warning(
            "Nodes excluded from execution (cycle or downstream of a cycle): %s",
            ", ".join(skipped),
        )

    logger.info("Starting workflow run: %d nodes scheduled", len(execution_order))
    emit({
        "event": "workflow_start",
        "execution_order": execution_order,
        "skipped_node_ids": skipped,
        "total_nodes": len(execution_order),
    })

    port_values: dict[PortKey, Any] = {}
    node_results: list[NodeExecutionResult] = []
    history_added: list[HistoryItem] = []

    def finish(failed_node_id: str | None = None, error: str | None = None) -> WorkflowExecutionResult:
        total_ms = int((time.perf_counter() - start_time) * 1000)
        result = WorkflowExecutionResult(
            success=error is None,
            execution_order=execution_order,
            skipped_node_ids=skipped,
            node_results=node_results,
            history_added=history_added,
            failed_node_id=failed_node_id,
            error=error,
            total_execution_time_ms=total_ms,
        )
        if error is None:
            logger.info("Workflow run completed in %d ms", total_ms)
            emit({
                "event": "workflow_complete",
                "success": True,
                "history_added": len(history_added),
                "total_execution_time_ms": total_ms,
            })
        else:
            emit({
                "event": "workflow_error",
                "failed_node_id": failed_node_id,
                "error": error,
                "total_execution_time_ms": total_ms,
            })
        return result

    for node_id in execution_order:
        if cancel is not None and cancel.is_set():
            logger.info("Workflow run cancelled before node %s", node_id)
            return finish(error="Run cancelled")

        node = store.nodes[node_id]
        inputs = resolve_node_inputs(store, node, port_values)

        if node.muted:
            first_input = node.inputs[0] if node.inputs else None
            routed: dict[str, Any] = {}
            if first_input is not None:
                value = inputs.get(first_input.id)
                if is_aggregating_port(node, first_input.id):
                    # Pass through the last connected value, not the list.
                    value = value[-1] if value else None
                routed = {port.id: value for port in node.outputs}
            for port_id, value in routed.items():
                port_values[(node_id, port_id)] = value
            store.update_node(node_id, status=NodeStatus.COMPLETED)
            node_results.append(NodeExecutionResult(
                node_id=node_id,
                node_kind=node.kind,
                status="completed",
                muted=True,
                outputs=routed,
            ))
            emit({"event": "node_complete", "node_id": node_id, "muted": True, "outputs": routed})
            logger.debug("Node %s muted: passed first input through", node_id)
            continue

        if node.kind in SOURCE_KINDS:
            # Source content is the node's output; never overwrite it.
            store.update_node(node_id, status=NodeStatus.PROCESSING)
        else:
            store.update_node(node_id, status=NodeStatus.PROCESSING, content={"progress": "Starting..."})
        emit({"event": "node_start", "node_id": node_id, "node_kind": node.kind.value})

        ctx = NodeContext(
            store=store,
            service=service,
            node=node,
            inputs=inputs,
            cancel=cancel,
            emit=emit,
            history_added=history_added,
        )
        handler = _registry[node.kind]
        node_start = time.perf_counter()
        try:
            output = await handler(ctx)
        except asyncio.CancelledError:
            store.update_node(node_id, status=NodeStatus.ERROR, error_message="Execution cancelled")
            raise
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - node_start) * 1000)
            error_msg = format_error(e)
            if isinstance(e, RunCancelledError):
                logger.info("Node %s cancelled: %s", node_id, error_msg)
            else:
                logger.exception("Workflow error at node %s: %s", node_id, error_msg)
            store.update_node(node_id, status=NodeStatus.ERROR, error_message=error_msg)
            node_results.append(NodeExecutionResult(
                node_id=node_id,
                node_kind=node.kind,
                status="error",
                error=error_msg,
                execution_time_ms=elapsed_ms,
            ))
            emit({
                "event": "node_error",
                "node_id": node_id,
                "error": error_msg,
                "execution_time_ms": elapsed_ms,
            })
            return finish(failed_node_id=node_id, error=error_msg)

        elapsed_ms = int((time.perf_counter() - node_start) * 1000)
        routed = route_outputs(node, output)
        for port_id, value in routed.items():
            port_values[(node_id, port_id)] = value
        store.update_node(node_id, status=NodeStatus.COMPLETED, content=output)
        node_results.append(NodeExecutionResult(
            node_id=node_id,
            node_kind=node.kind,
            status="completed",
            outputs=routed,
            execution_time_ms=elapsed_ms,
        ))
        emit({
            "event": "node_complete",
            "node_id": node_id,
            "status": "completed",
            "outputs": routed,
            "execution_time_ms": elapsed_ms,
        })

    return finish()


async def run_workflow(
    store: WorkflowStore,
    service: GenerationService | None = None,
    *,
    cancel: asyncio.Event | None = None,
) -> WorkflowExecutionResult:
    """Run the store's graph, building the Gemini service if none is given."""
    if service is None:
        from nodeforge.llm.gemini import GeminiGenerationService

        service = GeminiGenerationService()
    return await execute_workflow(store, service, cancel=cancel)


# ---------------------------------------------------------------------------
# Streaming execution (SSE)
# ---------------------------------------------------------------------------


async def execute_workflow_streaming(
    store: WorkflowStore,
    service: GenerationService,
    *,
    cancel: asyncio.Event | None = None,
):
    """
    Execute the workflow and yield SSE events as nodes start and finish.

    Yields JSON events:
    - {"event": "workflow_start", "execution_order": [...], "skipped_node_ids": [...], "total_nodes": N}
    - {"event": "node_start", "node_id": "...", "node_kind": "..."}
    - {"event": "node_progress", "node_id": "...", "progress": "..."}
    - {"event": "node_complete", "node_id": "...", "outputs": {...}, ...}
    - {"event": "node_error", "node_id": "...", "error": "...", "execution_time_ms": ...}
    - {"event": "workflow_complete", "success": true, "history_added": N, "total_execution_time_ms": ...}
    - {"event": "workflow_error", "failed_node_id": "...", "error": "...", ...}
    """
    # Event queue for SSE - decouples execution from streaming
    event_queue: asyncio.Queue = asyncio.Queue()

    async def runner():
        try:
            await execute_workflow(store, service, events=event_queue, cancel=cancel)
        except Exception as e:
            logger.exception("Workflow run failed: %s", e)
            await event_queue.put({
                "event": "workflow_error",
                "failed_node_id": None,
                "error": f"{type(e).__name__}: {e}",
            })
        finally:
            # Signal end of events
            await event_queue.put(None)

    runner_task = asyncio.create_task(runner())

    try:
        while True:
            event = await event_queue.get()
            if event is None:  # Sentinel for completion
                break
            yield f"data: {json.dumps(event, default=str)}\n\n"
    finally:
        if not runner_task.done():
            runner_task.cancel()
            try:
                await runner_task
            except asyncio.CancelledError:
                pass
