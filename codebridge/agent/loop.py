"""Bridge loop: moves inbound chat messages through the router."""

import asyncio

from loguru import logger

from codebridge.agent.registry import SessionRegistry
from codebridge.agent.router import CommandRouter
from codebridge.bus.events import InboundMessage
from codebridge.bus.queue import MessageBus
from codebridge.notifier import Notifier


class BridgeLoop:
    """
    The bridge loop is the core dispatcher.

    It:
    1. Receives messages from the bus
    2. Records the chat recipient on first contact
    3. Routes the message to a registry operation
    4. Sends the immediate reply back through the notifier

    Messages are processed one at a time; long-running queries run in their
    own tasks so the loop stays responsive to /cancel and approvals.
    """

    def __init__(self, bus: MessageBus, registry: SessionRegistry, notifier: Notifier):
        self.bus = bus
        self.registry = registry
        self.notifier = notifier
        self.router = CommandRouter(registry, notifier)
        self._running = False

    async def run(self) -> None:
        """Run the bridge loop, processing messages from the bus."""
        self._running = True
        logger.info("Bridge loop started")

        try:
            while self._running:
                try:
                    msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                await self._process_inbound_message(msg)
        finally:
            await self.registry.shutdown()

    async def _process_inbound_message(self, msg: InboundMessage) -> None:
        """Process one inbound message and publish the reply or error."""
        if not self.notifier.remember(msg):
            logger.warning(f"Ignoring message from {msg.session_key}: not the bridge's recipient")
            return
        try:
            response = await self.router.handle(msg.content, msg.choice_id)
        except Exception as e:
            logger.error(f"Error processing message: {e}")
            response = f"Sorry, I encountered an error: {str(e)}"
        if response:
            self.notifier.text(response)

    def stop(self) -> None:
        """Stop the bridge loop."""
        self._running = False
        logger.info("Bridge loop stopping")

    async def process_direct(
        self,
        content: str,
        choice_id: str | None = None,
        channel: str = "cli",
        chat_id: str = "direct",
    ) -> None:
        """Process a message directly, without going through the inbound queue."""
        await self._process_inbound_message(
            InboundMessage(
                channel=channel,
                sender_id="user",
                chat_id=chat_id,
                content=content,
                choice_id=choice_id,
            )
        )
