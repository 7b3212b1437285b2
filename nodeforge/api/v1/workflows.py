"""
Workflow execution API endpoints.

The server is stateless: every request carries a full workflow document
(the editor's saved JSON). Execution results are returned together with the
updated document so the editor can replace its node states and history.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from nodeforge.api.dependencies import get_generation_service
from nodeforge.errors import ConfigurationError
from nodeforge.llm.base import GenerationService
from nodeforge.models.workflow_document import (
    WorkflowDocument,
    document_from_store,
    edge_to_dict,
    store_from_document,
)
from nodeforge.services.compatibility import connect
from nodeforge.services.workflow_executor import (
    WorkflowExecutionResult,
    execute_workflow,
    execute_workflow_streaming,
)

router = APIRouter(prefix="/workflows", tags=["workflows"])


class ExecuteRequest(BaseModel):
    workflow: Dict[str, Any] = Field(..., description="Saved workflow document (nodes, edges, ...)")


class ExecuteResponse(BaseModel):
    result: WorkflowExecutionResult
    workflow: Dict[str, Any]


class ConnectRequest(BaseModel):
    workflow: Dict[str, Any]
    source_node_id: str
    source_handle_id: str
    target_node_id: str
    target_handle_id: Optional[str] = Field(
        None, description="Omit to auto-route to the first compatible input"
    )


class ConnectResponse(BaseModel):
    connected: bool
    edge: Optional[Dict[str, Any]] = None
    edges: List[Dict[str, Any]]


def _load_document(raw: Dict[str, Any]) -> WorkflowDocument:
    try:
        return store_from_document(raw)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _dump_document(document: WorkflowDocument) -> Dict[str, Any]:
    return document_from_store(
        document.store,
        view_transform=document.view_transform,
        theme=document.theme,
        shortcuts=document.shortcuts,
    )


@router.post("/execute", response_model=ExecuteResponse)
async def execute_workflow_document(
    request: ExecuteRequest,
    service: GenerationService = Depends(get_generation_service),
):
    """
    Run a workflow document to completion.

    Node failures are reported in ``result`` (success=False) rather than as
    HTTP errors.
    """
    # Each request loads its own store, so runs never overlap here.
    document = _load_document(request.workflow)
    result = await execute_workflow(document.store, service)

    return ExecuteResponse(result=result, workflow=_dump_document(document))


@router.post("/execute/stream")
async def execute_workflow_document_stream(
    request: ExecuteRequest,
    service: GenerationService = Depends(get_generation_service),
):
    """
    Run a workflow document with Server-Sent Events (SSE) streaming.

    Returns a stream of events as each node executes:
    - workflow_start: Execution order computed
    - node_start: Node is about to execute
    - node_progress: Progress message from a long-running node
    - node_complete: Node finished successfully (or was muted)
    - node_error: Node failed
    - workflow_complete: All nodes finished successfully
    - workflow_error: Execution stopped due to error
    """
    document = _load_document(request.workflow)

    return StreamingResponse(
        execute_workflow_streaming(document.store, service),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.post("/connect", response_model=ConnectResponse)
async def connect_ports(request: ConnectRequest):
    """
    Resolve a connection attempt against a workflow document.

    Returns the created edge and the document's resulting edge list; an
    incompatible or occupied target yields ``connected=False``.
    """
    document = _load_document(request.workflow)
    edge = connect(
        document.store,
        request.source_node_id,
        request.source_handle_id,
        request.target_node_id,
        request.target_handle_id,
    )
    return ConnectResponse(
        connected=edge is not None,
        edge=edge_to_dict(edge) if edge else None,
        edges=[edge_to_dict(e) for e in document.store.edges.values()],
    )
