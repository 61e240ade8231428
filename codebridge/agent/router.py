"""Command router: classifies chat input into registry operations."""

from __future__ import annotations

from loguru import logger

from codebridge.agent.registry import SessionRegistry
from codebridge.notifier import MAX_CHOICES, Choice, Notifier
from codebridge.projects import ProjectInfo

HELP_TEXT = """**codebridge**

/open - browse projects
/open <prefix> - open the project matching a prefix
/list - show sessions
/status - bridge status
/full - last full output
/yes or /approve - approve pending action
/no or /deny - deny pending action
/cancel - interrupt the running query
/kill - close a session
/restart - restart a session (new conversation)
/help - this help

Anything else goes to the active session."""


class CommandRouter:
    """
    Routes one inbound message to the registry.

    A tapped choice arrives as ``choice_id``; everything else is text. Text
    starting with a known ``/command`` is handled here, any other text
    (unknown commands included) is relayed to the active session trimmed.
    """

    def __init__(self, registry: SessionRegistry, notifier: Notifier):
        self.registry = registry
        self.notifier = notifier

    async def handle(self, text: str, choice_id: str | None = None) -> str | None:
        """Return the reply to send, or None when the reply went out another way."""
        if choice_id:
            return self.handle_choice(choice_id)
        stripped = text.strip()
        if stripped.startswith("/"):
            handled, reply = self.handle_command(stripped)
            if handled:
                return reply
        return self.registry.relay(stripped)

    def handle_choice(self, choice_id: str) -> str | None:
        logger.debug(f"Choice tapped: {choice_id}")
        action, sep, project_id = choice_id.partition(":")
        if not sep and action in ("approve", "deny"):
            return self.registry.approve(action == "approve")
        if action == "open" and project_id:
            return self.registry.open(project_id)
        if action in ("approve", "deny"):
            return self.registry.approve(action == "approve", project_id=project_id)
        if action == "kill":
            return self.registry.kill(project_id)
        if action == "restart":
            return self.registry.restart(project_id)
        logger.warning(f"Unknown choice: {choice_id}")
        return "That button is no longer valid."

    def handle_command(self, text: str) -> tuple[bool, str | None]:
        """Dispatch a /command; returns (handled, reply)."""
        parts = text.split(None, 1)
        cmd = parts[0][1:].split("@", 1)[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "open":
            return True, self.show_projects(arg)
        if cmd == "kill":
            return True, self.registry.kill(arg) if arg else self.show_sessions("kill")
        if cmd == "restart":
            return True, self.registry.restart(arg) if arg else self.show_sessions("restart")
        if cmd == "list":
            return True, self.registry.list()
        if cmd == "status":
            return True, self.registry.status()
        if cmd == "full":
            return True, self.registry.full_output()
        if cmd in ("yes", "approve"):
            return True, self.registry.approve(True)
        if cmd in ("no", "deny"):
            return True, self.registry.approve(False)
        if cmd == "cancel":
            return True, self.registry.cancel()
        if cmd in ("help", "start"):
            return True, HELP_TEXT
        return False, None

    def show_projects(self, prefix: str = "") -> str | None:
        """Open a project by prefix, or offer a list of matching projects."""
        projects = self.registry.resolver.list_available()
        if not projects:
            return f"No projects found in {self.registry.resolver.root}"

        matched = projects
        if prefix:
            lowered = prefix.lower()
            matched = [p for p in projects if p.title.lower().startswith(lowered)]
            if len(matched) == 1:
                return self.registry.open(matched[0].id)
            if not matched:
                exact = next((p for p in projects if p.id.lower() == lowered), None)
                if exact is not None:
                    return self.registry.open(exact.id)
                return f'No projects matching "{prefix}". Use /open to browse.'

        open_ids = set(self.registry.session_ids())
        ordered = sorted(matched, key=lambda p: (p.id not in open_ids, p.title.lower()))
        shown = ordered[:MAX_CHOICES]

        heading = f'Projects matching "{prefix}"' if prefix else "Pick a project"
        body = f"{heading} ({len(matched)} total)"
        if len(matched) > len(shown):
            body += f"\nShowing the first {len(shown)}. Type /open <prefix> to narrow."

        items = [self._project_choice(p, p.id in open_ids) for p in shown]
        fallback_lines = [body, ""]
        fallback_lines += [f"- {p.title}{' (open)' if p.id in open_ids else ''}" for p in shown]
        fallback_lines += ["", "Reply with: /open <project-name>"]
        self.notifier.choices(body, "Choose project", items, fallback="\n".join(fallback_lines))
        return None

    def show_sessions(self, action: str) -> str | None:
        """Offer the open sessions as targets for kill or restart."""
        session_ids = self.registry.session_ids()
        if not session_ids:
            return f"No open sessions to {action}."

        shown = session_ids[:MAX_CHOICES]
        items = []
        for project_id in shown:
            session = self.registry.get(project_id)
            state = "working" if session and session.is_running else "idle"
            items.append(Choice(f"{action}:{project_id}", project_id, state))

        body = f"Which session should I {action}?"
        fallback = "\n".join(
            [body, ""] + [f"- {p}" for p in shown] + ["", f"Reply with: /{action} <project-name>"]
        )
        self.notifier.choices(body, f"{action.capitalize()} session", items, fallback=fallback)
        return None

    @staticmethod
    def _project_choice(project: ProjectInfo, is_open: bool) -> Choice:
        return Choice(f"open:{project.id}", project.title, "open session" if is_open else project.description)
