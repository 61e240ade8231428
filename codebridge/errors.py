"""Error taxonomy shared by the registry, router and sessions."""


class BridgeError(Exception):
    """Base error; the message is what the user sees."""


class ProjectNotFoundError(BridgeError):
    """Project id does not resolve to a working directory."""

    def __init__(self, project_id: str, path: str | None = None):
        self.project_id = project_id
        self.path = path
        super().__init__(
            f'Project not found: "{project_id}" — no directory at {path or "unknown"}'
        )


class NoActiveSessionError(BridgeError):
    def __init__(self, message: str = "No active session. Use /open <project> to start one."):
        super().__init__(message)


class SessionBusyError(BridgeError):
    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(
            f"{project_id} is still working on the previous message. "
            "Wait for it to finish or /cancel."
        )


class SessionNotFoundError(BridgeError):
    def __init__(self, project_id: str, hint: str = ""):
        self.project_id = project_id
        super().__init__(f"No session found for: {project_id}{hint}")


class ApprovalInterrupted(Exception):
    """Set on a pending approval future when its session is interrupted."""


class DeliveryError(Exception):
    """A channel could not deliver an outbound message."""
