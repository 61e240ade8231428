"""Channel manager for coordinating chat channels."""

from __future__ import annotations

import asyncio

from loguru import logger

from codebridge.bus.events import OutboundMessage
from codebridge.bus.queue import MessageBus
from codebridge.channels.base import BaseChannel
from codebridge.config.schema import Config


class ChannelManager:
    """
    Manages chat channels and coordinates message routing.

    Responsibilities:
    - Initialize enabled channels
    - Start/stop channels
    - Deliver outbound messages in order, one at a time per channel
    - Fall back to plain text when a rich message cannot be delivered
    """

    def __init__(self, config: Config, bus: MessageBus):
        self.config = config
        self.bus = bus
        self.channels: dict[str, BaseChannel] = {}
        self._dispatch_task: asyncio.Task | None = None
        self._outbound_queues: dict[str, asyncio.Queue[OutboundMessage]] = {}
        self._outbound_workers: dict[str, asyncio.Task[None]] = {}

        self._init_channels()

    def _init_channels(self) -> None:
        """Initialize channels based on config."""
        if self.config.channels.telegram.enabled:
            from codebridge.channels.telegram import TelegramChannel

            self.channels["telegram"] = TelegramChannel(self.config.channels.telegram, self.bus)
            logger.info("Telegram channel enabled")

    async def _start_channel(self, name: str, channel: BaseChannel) -> None:
        """Start a channel and log any exceptions."""
        try:
            await channel.start()
        except Exception as e:
            logger.error(f"Failed to start channel {name}: {e}")

    async def start_all(self) -> None:
        """Start all channels and the outbound dispatcher."""
        if not self.channels:
            logger.warning("No channels enabled")
            return

        self._dispatch_task = asyncio.create_task(self._dispatch_outbound())

        tasks = []
        for name, channel in self.channels.items():
            logger.info(f"Starting {name} channel...")
            tasks.append(asyncio.create_task(self._start_channel(name, channel)))

        # Channels run until stopped
        await asyncio.gather(*tasks, return_exceptions=True)

    async def stop_all(self) -> None:
        """Stop all channels and the dispatcher."""
        logger.info("Stopping all channels...")

        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
        await self._stop_outbound_workers()

        for name, channel in self.channels.items():
            try:
                await channel.stop()
                logger.info(f"Stopped {name} channel")
            except Exception as e:
                logger.error(f"Error stopping {name}: {e}")

    async def _dispatch_outbound(self) -> None:
        """Dispatch outbound messages to the appropriate channel."""
        logger.info("Outbound dispatcher started")

        while True:
            try:
                msg = await asyncio.wait_for(self.bus.consume_outbound(), timeout=1.0)

                if msg.channel not in self.channels:
                    logger.warning(f"Unknown channel: {msg.channel}")
                    continue
                queue = self._outbound_queues.setdefault(msg.channel, asyncio.Queue())
                await queue.put(msg)
                self._ensure_outbound_worker(msg.channel)

            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def _ensure_outbound_worker(self, channel_name: str) -> None:
        """Ensure per-channel outbound worker exists."""
        worker = self._outbound_workers.get(channel_name)
        if worker is None or worker.done():
            queue = self._outbound_queues[channel_name]
            self._outbound_workers[channel_name] = asyncio.create_task(
                self._outbound_channel_worker(channel_name, queue)
            )

    async def deliver(self, channel: BaseChannel, msg: OutboundMessage) -> None:
        """Send one message, degrading a failed rich message to its fallback text."""
        try:
            await channel.send(msg)
            return
        except Exception as e:
            fallback = (msg.metadata or {}).get("fallback")
            if not fallback:
                logger.error(f"Error sending to {channel.name}: {e}")
                return
            logger.warning(f"Rich message to {channel.name} failed, sending plain text: {e}")

        try:
            await channel.send(OutboundMessage(channel=msg.channel, chat_id=msg.chat_id, content=fallback))
        except Exception as e:
            logger.error(f"Error sending fallback to {channel.name}: {e}")

    async def _outbound_channel_worker(
        self,
        channel_name: str,
        queue: asyncio.Queue[OutboundMessage],
    ) -> None:
        """Send outbound messages serially for one channel."""
        channel = self.channels.get(channel_name)
        if not channel:
            return
        try:
            while True:
                try:
                    msg = await asyncio.wait_for(queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    if queue.empty():
                        break
                    continue
                await self.deliver(channel, msg)
                if queue.empty():
                    break
        finally:
            if self._outbound_workers.get(channel_name) is asyncio.current_task():
                self._outbound_workers.pop(channel_name, None)
            if queue.empty():
                self._outbound_queues.pop(channel_name, None)
            else:
                self._outbound_workers[channel_name] = asyncio.create_task(
                    self._outbound_channel_worker(channel_name, queue)
                )

    async def _stop_outbound_workers(self) -> None:
        """Cancel outbound workers."""
        workers = list(self._outbound_workers.values())
        self._outbound_workers.clear()
        self._outbound_queues.clear()
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

    @property
    def enabled_channels(self) -> list[str]:
        """Get list of enabled channel names."""
        return list(self.channels.keys())
