"""Agent session: one backend conversation for one project."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Union

from loguru import logger

from codebridge.errors import ApprovalInterrupted, SessionBusyError
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

NO_OUTPUT = "(no recent output)"


class Activity(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class TextChunk:
    """Debounced assistant text, flushed as one chat message."""

    text: str


@dataclass
class ToolStarted:
    tool_name: str
    description: str


@dataclass
class ApprovalRequested:
    tool_name: str
    tool_input: dict[str, Any]
    description: str


@dataclass
class ApprovalTimedOut:
    tool_name: str
    description: str
    timeout_seconds: float


@dataclass
class QueryCompleted:
    result: str | None
    turns: int | None
    cost_usd: float | None


@dataclass
class QueryFailed:
    message: str


@dataclass
class QueryInterrupted:
    reason: str  # "user" or "timeout"


SessionEvent = Union[
    TextChunk,
    ToolStarted,
    ApprovalRequested,
    ApprovalTimedOut,
    QueryCompleted,
    QueryFailed,
    QueryInterrupted,
]
EventHandler = Callable[[SessionEvent], None]


@dataclass
class PendingApproval:
    """The single outstanding approval gate of a session."""

    tool_name: str
    tool_input: dict[str, Any]
    description: str
    future: asyncio.Future[bool] = field(repr=False)


class Subscription:
    """Owned handle for one event handler; close() detaches it exactly once."""

    def __init__(self, session: AgentSession, handler: EventHandler):
        self._session: AgentSession | None = session
        self.handler = handler

    @property
    def active(self) -> bool:
        return self._session is not None

    def close(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session._unsubscribe(self)


def describe_tool_use(tool_name: str, tool_input: dict[str, Any]) -> str:
    """Short progress line for a tool invocation, e.g. 'Reading src/app.py'."""
    if tool_name == "Read":
        return f"Reading {tool_input.get('file_path') or 'file'}"
    if tool_name == "Write":
        return f"Writing {tool_input.get('file_path') or 'file'}"
    if tool_name == "Edit":
        return f"Editing {tool_input.get('file_path') or 'file'}"
    if tool_name == "Bash":
        return f"Running: {str(tool_input.get('command') or '')[:80]}"
    if tool_name == "Glob":
        return f"Searching for {tool_input.get('pattern') or 'files'}"
    if tool_name == "Grep":
        return f'Searching for "{str(tool_input.get("pattern") or "")[:40]}"'
    if tool_name == "WebFetch":
        return f"Fetching {tool_input.get('url') or 'URL'}"
    return f"Using {tool_name}"


def describe_approval(tool_name: str, tool_input: dict[str, Any]) -> str:
    """Human-readable description of an action awaiting approval."""
    if tool_name == "Bash":
        return f"`{tool_input.get('command', '')}`"
    return f"{tool_name}: {json.dumps(tool_input, ensure_ascii=False, default=str)[:200]}"


class AgentSession:
    """
    Runs the query/response protocol with the agent backend for one project.

    Lifecycle per query: IDLE -> RUNNING -> IDLE. While RUNNING it:
    1. Streams assistant text into a debounced buffer
    2. Reports tool invocations immediately
    3. Holds at most one pending approval for non-allow-listed tools
    4. Stops on interrupt() or after the query timeout
    """

    def __init__(
        self,
        project_id: str,
        working_dir: Path,
        backend: AgentBackend,
        allowed_tools: Iterable[str] = (),
        stream_buffer_seconds: float = 3.0,
        approval_timeout_seconds: float = 300.0,
        query_timeout_seconds: float = 600.0,
        context_loader: Callable[[Path], str] | None = None,
    ):
        self.project_id = project_id
        self.working_dir = working_dir
        self.backend = backend
        self.allowed_tools = set(allowed_tools)
        self.stream_buffer_seconds = stream_buffer_seconds
        self.approval_timeout_seconds = approval_timeout_seconds
        self.query_timeout_seconds = query_timeout_seconds
        self.context_loader = context_loader

        # Resumption token issued by the backend; never invented here.
        self.session_id: str | None = None
        self.activity = Activity.IDLE

        self._subscriptions: list[Subscription] = []
        self._pending: PendingApproval | None = None
        # Serializes approval requests: a second request waits behind the first.
        self._approval_lock = asyncio.Lock()

        self._buffer: list[str] = []
        self._flush_handle: asyncio.TimerHandle | None = None
        self._full_response = ""
        self._seen_tool_ids: set[str] = set()

        self._abort: asyncio.Event | None = None
        self._abort_reason = "user"
        self._task: asyncio.Task | None = None
        self._watchdog: asyncio.TimerHandle | None = None

    # -- events --------------------------------------------------------------

    def subscribe(self, handler: EventHandler) -> Subscription:
        subscription = Subscription(self, handler)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _emit(self, event: SessionEvent) -> None:
        for subscription in list(self._subscriptions):
            try:
                subscription.handler(event)
            except Exception as e:
                logger.error(f"{self.project_id}: event handler failed on {type(event).__name__}: {e}")

    # -- state ---------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.activity is Activity.RUNNING

    @property
    def pending_approval(self) -> PendingApproval | None:
        return self._pending

    def full_response(self) -> str:
        """Untruncated text of the current or most recent query."""
        return self._full_response.strip() or NO_OUTPUT

    # -- query lifecycle -----------------------------------------------------

    def start(self, prompt: str) -> asyncio.Task[None]:
        """Mark the session RUNNING now and run the query in a background task."""
        abort = self._begin()
        return asyncio.create_task(self._run(prompt, abort), name=f"query:{self.project_id}")

    async def send(self, prompt: str) -> None:
        """Run one query to completion, interruption or failure."""
        abort = self._begin()
        await self._run(prompt, abort)

    def _begin(self) -> asyncio.Event:
        if self.is_running:
            raise SessionBusyError(self.project_id)
        self.activity = Activity.RUNNING
        self._full_response = ""
        self._buffer.clear()
        self._cancel_flush_timer()
        self._seen_tool_ids = set()
        self._abort = asyncio.Event()
        self._abort_reason = "user"
        loop = asyncio.get_running_loop()
        self._watchdog = loop.call_later(self.query_timeout_seconds, self._on_query_timeout)
        return self._abort

    async def _run(self, prompt: str, abort: asyncio.Event) -> None:
        self._task = asyncio.current_task()
        outcome: SessionEvent | None = None
        try:
            if not abort.is_set():
                outcome = await self._consume(
                    QueryRequest(
                        prompt=prompt,
                        cwd=self.working_dir,
                        can_use_tool=self._can_use_tool,
                        abort=abort,
                        resume=self.session_id,
                        system_prompt_append=self._load_context(),
                    ),
                    abort,
                )
        except asyncio.CancelledError:
            if not abort.is_set():
                raise
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
        except Exception as e:
            # An abort can race with the stream's own terminal error.
            if not abort.is_set():
                logger.error(f"{self.project_id}: query failed: {e}")
                outcome = QueryFailed(str(e) or type(e).__name__)
        finally:
            self._settle()

        if abort.is_set():
            logger.info(f"{self.project_id}: query interrupted ({self._abort_reason})")
            outcome = QueryInterrupted(self._abort_reason)
        if outcome is not None:
            self._emit(outcome)

    async def _consume(self, request: QueryRequest, abort: asyncio.Event) -> SessionEvent | None:
        outcome: SessionEvent | None = None
        stream = self.backend.query(request)
        try:
            async for event in stream:
                if abort.is_set():
                    break
                terminal = self._handle_stream_event(event)
                if terminal is not None:
                    outcome = terminal
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return outcome

    def _handle_stream_event(self, event: StreamEvent) -> SessionEvent | None:
        if isinstance(event, StreamInit):
            if event.session_id:
                self.session_id = event.session_id
            logger.info(
                f"{self.project_id}: session {self.session_id} "
                f"(model: {event.model}, tools: {len(event.tools)})"
            )
            return None

        if isinstance(event, StreamText):
            if event.text:
                self._full_response += event.text
                self._buffer_text(event.text)
            return None

        if isinstance(event, StreamToolUse):
            if event.tool_id in self._seen_tool_ids:
                return None
            self._seen_tool_ids.add(event.tool_id)
            self._emit(ToolStarted(event.name, describe_tool_use(event.name, event.input)))
            return None

        if isinstance(event, StreamResult):
            if event.session_id:
                self.session_id = event.session_id
            if not event.success:
                message = "; ".join(event.errors) or event.subtype
                logger.error(f"{self.project_id}: error result: {message}")
                return QueryFailed(message)
            # Some backends deliver all text in the result rather than the stream.
            if not self._full_response.strip() and (event.result or "").strip():
                self._full_response = event.result or ""
                self._buffer.append(self._full_response)
                self._flush_buffer()
            cost = f"${event.cost_usd:.4f}" if event.cost_usd is not None else "$?"
            logger.info(f"{self.project_id}: done ({event.turns} turns, {cost})")
            return QueryCompleted(event.result, event.turns, event.cost_usd)

        logger.debug(f"{self.project_id}: ignoring stream event {type(event).__name__}")
        return None

    def _settle(self) -> None:
        """Leave RUNNING: stop timers, flush text, release any approval waiter."""
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        self._flush_buffer()
        self._reject_pending()
        self.activity = Activity.IDLE
        self._task = None

    def _load_context(self) -> str:
        if self.context_loader is None:
            return ""
        try:
            return self.context_loader(self.working_dir)
        except OSError as e:
            logger.warning(f"{self.project_id}: failed to load project context: {e}")
            return ""

    # -- interrupt -----------------------------------------------------------

    def interrupt(self, reason: str = "user") -> bool:
        """
        Abort the running query and release any approval waiter.

        Returns False (and does nothing) when the session is idle.
        """
        abort = self._abort
        if not self.is_running or abort is None:
            return False
        first = not abort.is_set()
        if first:
            self._abort_reason = reason
            abort.set()
        self._reject_pending()
        task = self._task
        if first and task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        return True

    def _on_query_timeout(self) -> None:
        self._watchdog = None
        logger.warning(f"{self.project_id}: query exceeded {self.query_timeout_seconds:.0f}s, aborting")
        self.interrupt(reason="timeout")

    # -- approvals -----------------------------------------------------------

    def resolve_approval(self, approved: bool) -> bool:
        """Resolve the pending approval; False when nothing was pending."""
        pending = self._pending
        if pending is None or pending.future.done():
            return False
        pending.future.set_result(approved)
        self._pending = None
        return True

    def _reject_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is not None and not pending.future.done():
            pending.future.set_exception(ApprovalInterrupted())

    async def _can_use_tool(self, tool_name: str, tool_input: dict[str, Any]) -> PermissionDecision:
        """Tool-permission callback handed to the backend."""
        if tool_name in self.allowed_tools:
            return PermissionDecision(allow=True, updated_input=tool_input)

        async with self._approval_lock:
            abort = self._abort
            if not self.is_running or abort is None or abort.is_set():
                return PermissionDecision(allow=False, message="Query was interrupted.", interrupt=True)

            description = describe_approval(tool_name, tool_input)
            future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
            self._pending = PendingApproval(tool_name, tool_input, description, future)
            logger.info(f"{self.project_id}: approval needed for {tool_name}")
            self._emit(ApprovalRequested(tool_name, tool_input, description))

            try:
                approved = await asyncio.wait_for(future, timeout=self.approval_timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(f"{self.project_id}: approval for {tool_name} timed out, denying")
                self._emit(ApprovalTimedOut(tool_name, description, self.approval_timeout_seconds))
                approved = False
            except ApprovalInterrupted:
                return PermissionDecision(allow=False, message="Interrupted by the user.", interrupt=True)
            finally:
                if self._pending is not None and self._pending.future is future:
                    self._pending = None

        if approved:
            return PermissionDecision(allow=True, updated_input=tool_input)
        return PermissionDecision(
            allow=False,
            message="User denied this action from chat.",
            interrupt=False,
        )

    # -- stream buffer -------------------------------------------------------

    def _buffer_text(self, text: str) -> None:
        self._buffer.append(text)
        self._cancel_flush_timer()
        loop = asyncio.get_running_loop()
        self._flush_handle = loop.call_later(self.stream_buffer_seconds, self._flush_buffer)

    def _cancel_flush_timer(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

    def _flush_buffer(self) -> None:
        self._cancel_flush_timer()
        text = "".join(self._buffer).strip()
        self._buffer.clear()
        if text:
            self._emit(TextChunk(text))
