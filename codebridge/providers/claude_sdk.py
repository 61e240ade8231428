"""Claude Agent SDK backend adapter.

This module isolates claude-agent-sdk interaction from session logic so
future SDK changes are localized here.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    HookMatcher,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolUseBlock,
)
from claude_agent_sdk.types import (
    PermissionResult,
    PermissionResultAllow,
    PermissionResultDeny,
    ToolPermissionContext,
)
from loguru import logger

from codebridge.providers.base import (
    PermissionDecision,
    QueryRequest,
    StreamEvent,
    StreamInit,
    StreamResult,
    StreamText,
    StreamToolUse,
)


async def _continue_hook(input_data, tool_use_id, context):
    """No-op PreToolUse hook; the Python SDK only routes can_use_tool when one is registered."""
    return {"continue_": True}


class ClaudeAgentBackend:
    """Runs one query per call through a short-lived ClaudeSDKClient."""

    def __init__(
        self,
        model: str | None = None,
        permission_mode: str = "acceptEdits",
        max_turns: int = 50,
    ):
        self.model = model
        self.permission_mode = permission_mode
        self.max_turns = max_turns

    def build_options(self, request: QueryRequest) -> ClaudeAgentOptions:
        """Translate a query request into SDK options."""

        async def can_use_tool(
            tool_name: str, tool_input: dict[str, Any], context: ToolPermissionContext
        ) -> PermissionResult:
            decision = await request.can_use_tool(tool_name, tool_input)
            return self.to_sdk_permission(decision)

        system_prompt: dict[str, Any] = {"type": "preset", "preset": "claude_code"}
        if request.system_prompt_append:
            system_prompt["append"] = request.system_prompt_append

        return ClaudeAgentOptions(
            model=self.model,
            permission_mode=self.permission_mode,
            cwd=str(request.cwd),
            max_turns=self.max_turns,
            system_prompt=system_prompt,
            resume=request.resume,
            can_use_tool=can_use_tool,
            hooks={"PreToolUse": [HookMatcher(matcher=None, hooks=[_continue_hook])]},
        )

    @staticmethod
    def to_sdk_permission(decision: PermissionDecision) -> PermissionResult:
        if decision.allow:
            return PermissionResultAllow(updated_input=decision.updated_input)
        return PermissionResultDeny(message=decision.message, interrupt=decision.interrupt)

    @staticmethod
    def normalize(message: Any) -> list[StreamEvent]:
        """Map one SDK message to zero or more stream events."""
        if isinstance(message, SystemMessage):
            if message.subtype != "init":
                return []
            data = message.data or {}
            tools = data.get("tools") or []
            return [
                StreamInit(
                    session_id=data.get("session_id"),
                    model=data.get("model"),
                    tools=[str(t) for t in tools],
                )
            ]

        if isinstance(message, AssistantMessage):
            events: list[StreamEvent] = []
            for block in message.content:
                if isinstance(block, TextBlock):
                    if block.text:
                        events.append(StreamText(text=block.text))
                elif isinstance(block, ToolUseBlock):
                    events.append(
                        StreamToolUse(tool_id=block.id, name=block.name, input=dict(block.input or {}))
                    )
            return events

        if isinstance(message, ResultMessage):
            errors = getattr(message, "errors", None) or []
            return [
                StreamResult(
                    success=message.subtype == "success" and not message.is_error,
                    subtype=message.subtype,
                    result=message.result,
                    turns=message.num_turns,
                    cost_usd=message.total_cost_usd,
                    session_id=message.session_id,
                    errors=[str(e) for e in errors],
                )
            ]

        logger.debug(f"Unhandled SDK message type: {type(message).__name__}")
        return []

    async def query(self, request: QueryRequest) -> AsyncIterator[StreamEvent]:
        options = self.build_options(request)
        async with ClaudeSDKClient(options=options) as client:
            watcher = asyncio.create_task(self._interrupt_on_abort(client, request.abort))
            try:
                await client.query(request.prompt)
                async for message in client.receive_response():
                    for event in self.normalize(message):
                        yield event
            finally:
                watcher.cancel()

    @staticmethod
    async def _interrupt_on_abort(client: ClaudeSDKClient, abort: asyncio.Event) -> None:
        await abort.wait()
        try:
            await client.interrupt()
        except Exception as e:
            logger.debug(f"Interrupt request failed: {e}")
