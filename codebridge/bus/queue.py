"""Async message queue for decoupled channel-core communication."""

import asyncio

from codebridge.bus.events import InboundMessage, OutboundMessage


class MessageBus:
    """
    Async message bus that decouples chat channels from the bridge core.

    Channels push messages to the inbound queue, and the bridge loop
    processes them. Sessions and the router push replies to the outbound
    queue; the channel manager drains it in FIFO order.
    """

    def __init__(self):
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()

    async def publish_inbound(self, msg: InboundMessage) -> None:
        """Publish a message from a channel to the bridge."""
        await self.inbound.put(msg)

    async def consume_inbound(self) -> InboundMessage:
        """Consume the next inbound message (blocks until available)."""
        return await self.inbound.get()

    def publish_outbound_nowait(self, msg: OutboundMessage) -> None:
        """Enqueue a reply without yielding, keeping the producer's ordering."""
        self.outbound.put_nowait(msg)

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        """Publish a response from the bridge to channels."""
        await self.outbound.put(msg)

    async def consume_outbound(self) -> OutboundMessage:
        """Consume the next outbound message (blocks until available)."""
        return await self.outbound.get()

    @property
    def inbound_size(self) -> int:
        """Number of pending inbound messages."""
        return self.inbound.qsize()

    @property
    def outbound_size(self) -> int:
        """Number of pending outbound messages."""
        return self.outbound.qsize()
