"""Backend-neutral query protocol for coding agent backends.

Sessions talk to backends only through these types so SDK changes stay
localized in the adapter modules.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Union


@dataclass
class PermissionDecision:
    """Answer to a backend tool-permission request."""

    allow: bool
    updated_input: dict[str, Any] | None = None
    message: str = ""
    # When True the backend should stop the whole query, not only this tool.
    interrupt: bool = False


ToolPermissionCallback = Callable[[str, dict[str, Any]], Awaitable[PermissionDecision]]


@dataclass
class StreamInit:
    """Backend announced (or resumed) a conversation."""

    session_id: str | None
    model: str | None = None
    tools: list[str] = field(default_factory=list)


@dataclass
class StreamText:
    """Assistant text block."""

    text: str


@dataclass
class StreamToolUse:
    """Assistant started a tool invocation."""

    tool_id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class StreamResult:
    """Terminal result for one query."""

    success: bool
    subtype: str = "success"
    result: str | None = None
    turns: int | None = None
    cost_usd: float | None = None
    session_id: str | None = None
    errors: list[str] = field(default_factory=list)


StreamEvent = Union[StreamInit, StreamText, StreamToolUse, StreamResult]


@dataclass
class QueryRequest:
    """Everything a backend needs to run one query."""

    prompt: str
    cwd: Path
    can_use_tool: ToolPermissionCallback
    abort: asyncio.Event
    resume: str | None = None
    system_prompt_append: str = ""


class AgentBackend(Protocol):
    """
    Backend query collaborator.

    Implementations must invoke ``request.can_use_tool`` once per tool-use
    request and await it before running the tool, resume the conversation
    named by ``request.resume``, and stop streaming soon after
    ``request.abort`` is set.
    """

    def query(self, request: QueryRequest) -> AsyncIterator[StreamEvent]:
        ...
