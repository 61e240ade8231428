"""Agent backend abstraction module."""

from codebridge.providers.base import (
    AgentBackend,
    PermissionDecision,
    QueryRequest,
    StreamEvent,
    StreamInit,
    StreamResult,
    StreamText,
    StreamToolUse,
)

__all__ = [
    "AgentBackend",
    "PermissionDecision",
    "QueryRequest",
    "StreamEvent",
    "StreamInit",
    "StreamResult",
    "StreamText",
    "StreamToolUse",
]
