"""Base channel interface for chat platforms."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from codebridge.bus.events import InboundMessage, OutboundMessage
from codebridge.bus.queue import MessageBus


class BaseChannel(ABC):
    """
    Abstract base class for chat channel implementations.

    Each channel connects to a chat platform, forwards messages from the
    allowed sender to the bus and delivers outbound messages.
    """

    name: str = "base"

    def __init__(self, config: Any, bus: MessageBus):
        self.config = config
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and listen until stopped."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening and release resources."""

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """
        Deliver a message.

        Rich messages (choice lists, confirmations) raise DeliveryError when
        they cannot be delivered so the manager can send the plain fallback.
        """

    def is_allowed(self, sender_id: str) -> bool:
        """Check the sender against allow_from; an empty list allows everyone."""
        allow_list = getattr(self.config, "allow_from", [])
        if not allow_list:
            return True

        sender_str = str(sender_id)
        if sender_str in allow_list:
            return True
        if "|" in sender_str:
            for part in sender_str.split("|"):
                if part and part in allow_list:
                    return True
        return False

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        choice_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Check permissions and forward an incoming message to the bus."""
        if not self.is_allowed(sender_id):
            logger.warning(
                f"Access denied for sender {sender_id} on channel {self.name}. "
                f"Add them to allowFrom list in config to grant access."
            )
            return

        await self.bus.publish_inbound(
            InboundMessage(
                channel=self.name,
                sender_id=str(sender_id),
                chat_id=str(chat_id),
                content=content,
                choice_id=choice_id,
                metadata=metadata or {},
            )
        )

    @property
    def is_running(self) -> bool:
        return self._running
