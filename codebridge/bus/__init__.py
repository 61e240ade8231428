"""Message bus module for decoupled channel-core communication."""

from codebridge.bus.events import InboundMessage, OutboundMessage
from codebridge.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundMessage", "OutboundMessage"]
