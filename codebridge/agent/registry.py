"""Session registry: the single active project and its siblings."""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass, field
from typing import Callable

from loguru import logger

from codebridge.agent.session import (
    AgentSession,
    ApprovalRequested,
    ApprovalTimedOut,
    QueryCompleted,
    QueryFailed,
    QueryInterrupted,
    SessionEvent,
    Subscription,
    TextChunk,
    ToolStarted,
)
from codebridge.config.schema import AgentConfig
from codebridge.errors import (
    BridgeError,
    NoActiveSessionError,
    SessionBusyError,
    SessionNotFoundError,
)
from codebridge.notifier import Choice, Notifier
from codebridge.output.processor import ContentProcessor
from codebridge.projects import ProjectResolver
from codebridge.providers.base import AgentBackend

ACK_MESSAGE = "_Working on it..._"


def _reports_errors(func: Callable[..., str | None]) -> Callable[..., str | None]:
    """Turn validation errors into the plain message the user sees."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except BridgeError as e:
            return str(e)

    return wrapper


@dataclass
class SessionEntry:
    session: AgentSession
    subscription: Subscription


@dataclass
class SessionSnapshot:
    project_id: str
    activity: str
    session_id: str | None
    active: bool
    awaiting_approval: bool


@dataclass
class RegistrySnapshot:
    """Read-only view of the registry for health reporting."""

    active_project: str | None
    session_count: int
    uptime_seconds: float
    sessions: list[SessionSnapshot] = field(default_factory=list)


def _format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{int(seconds)}s"
    minutes = int(seconds // 60)
    if minutes >= 60:
        return f"{minutes // 60}h {minutes % 60}m"
    return f"{minutes}m"


class SessionRegistry:
    """
    Owns every open session and tracks which one is active.

    Text from the chat goes to the active session only. Each session's events
    are wired to the notifier when the session is created and unwired when it
    is killed.
    """

    def __init__(
        self,
        resolver: ProjectResolver,
        notifier: Notifier,
        backend: AgentBackend,
        agent_config: AgentConfig | None = None,
        processor: ContentProcessor | None = None,
    ):
        self.resolver = resolver
        self.notifier = notifier
        self.backend = backend
        self.agent_config = agent_config or AgentConfig()
        self.processor = processor or ContentProcessor()
        self.sessions: dict[str, SessionEntry] = {}
        self.active_project: str | None = None
        self._tasks: set[asyncio.Task] = set()
        self._started_at = time.monotonic()

    # -- lookups -------------------------------------------------------------

    def get(self, project_id: str) -> AgentSession | None:
        entry = self.sessions.get(project_id)
        return entry.session if entry else None

    @property
    def active_session(self) -> AgentSession | None:
        return self.get(self.active_project) if self.active_project else None

    def session_ids(self) -> list[str]:
        return list(self.sessions)

    def _require_active(self, message: str | None = None) -> AgentSession:
        session = self.active_session
        if session is None:
            raise NoActiveSessionError(message) if message else NoActiveSessionError()
        return session

    @staticmethod
    def _state(session: AgentSession) -> str:
        return "working" if session.is_running else "idle"

    # -- operations ----------------------------------------------------------

    @_reports_errors
    def open(self, project_id: str) -> str:
        """Activate an existing session or create one for the project."""
        return self._open(project_id)

    def _open(self, project_id: str) -> str:
        working_dir = self.resolver.resolve(project_id)

        entry = self.sessions.get(project_id)
        if entry is not None:
            self.active_project = project_id
            return f"Switched to {project_id} ({self._state(entry.session)})"

        cfg = self.agent_config
        session = AgentSession(
            project_id,
            working_dir,
            self.backend,
            allowed_tools=cfg.allowed_tools,
            stream_buffer_seconds=cfg.stream_buffer_seconds,
            approval_timeout_seconds=cfg.approval_timeout_seconds,
            query_timeout_seconds=cfg.query_timeout_seconds,
            context_loader=self.resolver.context_append,
        )
        subscription = session.subscribe(functools.partial(self._on_event, project_id))
        self.sessions[project_id] = SessionEntry(session, subscription)
        self.active_project = project_id
        logger.info(f"Opened session {project_id} in {working_dir}")
        return f"Opened {project_id} — ready in {working_dir}. Send a message to start."

    @_reports_errors
    def relay(self, text: str) -> str | None:
        """Send text to the active session; the reply arrives as events."""
        session = self._require_active()
        if session.is_running:
            raise SessionBusyError(session.project_id)

        logger.info(f"{session.project_id} <- {text[:80]}")
        self.notifier.text(ACK_MESSAGE)
        task = session.start(text)
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._on_query_done, session.project_id))
        return None

    @_reports_errors
    def approve(self, approved: bool, project_id: str | None = None) -> str:
        """Resolve the pending approval of the given or active session."""
        if project_id is not None:
            # A scoped tap only ever answers its own project
            if project_id not in self.sessions:
                raise SessionNotFoundError(project_id)
            self.active_project = project_id
        session = self._require_active("No active session.")
        if not session.resolve_approval(approved):
            return "No pending approval to respond to."
        logger.info(f"{session.project_id}: approval {'granted' if approved else 'denied'}")
        return "_Approved._" if approved else "_Denied._"

    @_reports_errors
    def cancel(self) -> str:
        session = self._require_active("No active session.")
        if not session.interrupt():
            return f"{session.project_id} is idle — nothing to cancel."
        return f"Cancelling {session.project_id}..."

    @_reports_errors
    def kill(self, project_id: str) -> str:
        """Stop and forget a session; its events stop reaching the chat."""
        entry = self.sessions.get(project_id)
        if entry is None:
            raise SessionNotFoundError(project_id)
        entry.session.interrupt()
        entry.subscription.close()
        del self.sessions[project_id]
        if self.active_project == project_id:
            self.active_project = None
        logger.info(f"Killed session {project_id}")
        return f"Killed session: {project_id}"

    @_reports_errors
    def restart(self, project_id: str | None = None) -> str:
        """Kill and reopen; the new session starts without a resumption token."""
        target = project_id or self.active_project
        if not target:
            return "No project specified and no active session."
        if target not in self.sessions:
            raise SessionNotFoundError(target, f". Use /open {target} to create one.")
        self.kill(target)
        try:
            result = self._open(target)
        except BridgeError as e:
            logger.warning(f"Restart of {target} could not reopen it: {e}")
            return f"Killed {target} but could not reopen it: {e}"
        return f"Restarted {target}.\n{result}"

    def list(self) -> str:
        if not self.sessions:
            return "No active sessions. Use /open <project> to start one."
        lines = ["**Sessions:**", ""]
        for project_id, entry in self.sessions.items():
            session = entry.session
            marker = "▶ " if project_id == self.active_project else "  "
            token = f" ({session.session_id[:8]}...)" if session.session_id else ""
            lines.append(f"{marker}**{project_id}** — {self._state(session)}{token}")
        return "\n".join(lines)

    def status(self) -> str:
        cfg = self.agent_config
        active = self.active_session
        lines = [
            "**codebridge status**",
            "",
            f"Uptime: {_format_duration(time.monotonic() - self._started_at)}",
            f"Sessions: {len(self.sessions)}",
            f"Active: {active.project_id if active else 'none'}",
            f"Model: {cfg.model}",
            f"Permission mode: {cfg.permission_mode}",
        ]
        if active is not None:
            lines.append(f"State: {self._state(active)}")
            if active.pending_approval is not None:
                lines.append(f"Awaiting approval: {active.pending_approval.tool_name}")
        return "\n".join(lines)

    @_reports_errors
    def full_output(self) -> str:
        return self._require_active("No active session.").full_response()

    def introspect(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            active_project=self.active_project,
            session_count=len(self.sessions),
            uptime_seconds=time.monotonic() - self._started_at,
            sessions=[
                SessionSnapshot(
                    project_id=project_id,
                    activity=entry.session.activity.value,
                    session_id=entry.session.session_id,
                    active=project_id == self.active_project,
                    awaiting_approval=entry.session.pending_approval is not None,
                )
                for project_id, entry in self.sessions.items()
            ],
        )

    async def shutdown(self) -> None:
        """Interrupt every running query and wait for them to settle."""
        for entry in self.sessions.values():
            entry.session.interrupt()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        for entry in self.sessions.values():
            entry.subscription.close()
        self.sessions.clear()
        self.active_project = None

    # -- wiring --------------------------------------------------------------

    def _on_query_done(self, project_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{project_id}: query task crashed: {exc}")
            self.notifier.text(f"**[ERROR]** {project_id}: {exc}")

    def _on_event(self, project_id: str, event: SessionEvent) -> None:
        if isinstance(event, TextChunk):
            processed = self.processor.summarize(event.text)
            if processed:
                self.notifier.text(processed)
        elif isinstance(event, ToolStarted):
            self.notifier.text(f"_{event.description}_")
        elif isinstance(event, ApprovalRequested):
            body = f"**[ACTION NEEDED]** {project_id}\n\nThe agent wants to run:\n{event.description}"
            self.notifier.confirm(
                body,
                [
                    Choice(f"approve:{project_id}", "Approve"),
                    Choice(f"deny:{project_id}", "Deny"),
                ],
                fallback=f"{body}\n\nReply /yes to approve or /no to deny.",
            )
        elif isinstance(event, ApprovalTimedOut):
            self.notifier.text(
                f"_{project_id} — no reply within {_format_duration(event.timeout_seconds)}, "
                f"denied {event.tool_name}._"
            )
        elif isinstance(event, QueryCompleted):
            logger.info(f"{project_id}: query complete")
        elif isinstance(event, QueryFailed):
            self.notifier.text(f"**[ERROR]** {project_id}: {event.message}")
        elif isinstance(event, QueryInterrupted):
            if event.reason == "timeout":
                timeout = _format_duration(self.agent_config.query_timeout_seconds)
                self.notifier.text(f"_{project_id} — stopped after {timeout} without finishing._")
            else:
                self.notifier.text(f"_{project_id} — interrupted._")
