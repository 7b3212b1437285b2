"""
Error taxonomy shared by the graph model, the execution engine and the
generation service.

- ConfigurationError: malformed node construction or workflow document.
  Raised before a run starts.
- ValidationError: a node is missing a required input at dispatch time.
  Surfaced as that node's error status.
- ExternalCallError: the generation service failed after retries, or
  returned a missing/malformed payload.
"""

from __future__ import annotations

import json
from typing import Any


class NodeforgeError(Exception):
    """Base class for all nodeforge errors."""


class ConfigurationError(NodeforgeError):
    """Raised when a node or workflow cannot be constructed as described."""


class ValidationError(NodeforgeError):
    """Raised when a node is dispatched without the inputs it requires."""

    def __init__(self, message: str, node_id: str | None = None):
        self.node_id = node_id
        super().__init__(message)


class ExternalCallError(NodeforgeError):
    """Raised when a generation call fails or returns an unusable payload."""

    def __init__(self, message: str, *, status: str | None = None, code: int | None = None):
        self.status = status
        self.code = code
        super().__init__(message)


class WorkflowBusyError(NodeforgeError):
    """Raised when a run is requested while another run is still writing."""


class RunCancelledError(NodeforgeError):
    """Raised at a suspension point once the caller has cancelled the run."""


# ---------------------------------------------------------------------------
# Message helpers
# ---------------------------------------------------------------------------


def parse_error_envelope(message: str) -> dict[str, Any] | None:
    """
    Parse a structured ``{"error": {...}}`` envelope out of an error message.

    Returns the inner ``error`` object, or None if the message is not JSON
    or does not carry one.
    """
    try:
        parsed = json.loads(message)
    except (TypeError, ValueError):
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
        return parsed["error"]
    return None


def format_error(error: BaseException) -> str:
    """
    Produce a human-readable message for an error, unwrapping a structured
    API error envelope when the message carries one.
    """
    message = getattr(error, "message", None) or str(error)
    envelope = parse_error_envelope(message)
    if envelope and envelope.get("message"):
        message = str(envelope["message"])
        if envelope.get("status"):
            message += f" (Status: {envelope['status']})"
    return message
