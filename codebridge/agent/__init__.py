"""Agent core: sessions, registry, router and the bridge loop."""

from codebridge.agent.loop import BridgeLoop
from codebridge.agent.registry import SessionRegistry
from codebridge.agent.router import CommandRouter
from codebridge.agent.session import Activity, AgentSession

__all__ = ["Activity", "AgentSession", "BridgeLoop", "CommandRouter", "SessionRegistry"]
