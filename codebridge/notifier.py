"""Outbound notifications to the single chat recipient."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from codebridge.bus.events import InboundMessage, OutboundMessage
from codebridge.bus.queue import MessageBus
from codebridge.output.formatter import TELEGRAM_MAX_MESSAGE_CHARS, truncate

MAX_CHOICES = 10
MAX_BUTTONS = 3
# Telegram callback_data limit
MAX_CHOICE_ID_BYTES = 64
MAX_TITLE_CHARS = 40


@dataclass
class Choice:
    """One tap target; ``id`` is echoed back verbatim when selected."""

    id: str
    title: str
    description: str = ""


@dataclass
class Recipient:
    channel: str
    chat_id: str
    sender_id: str


class Notifier:
    """
    Publishes plain text, choice lists and yes/no confirmations to the bus.

    The recipient is learned from the first inbound message and reused for
    every notification after that. Until then notifications are dropped.
    """

    def __init__(self, bus: MessageBus, max_message_length: int = TELEGRAM_MAX_MESSAGE_CHARS):
        self.bus = bus
        self.max_message_length = max_message_length
        self.recipient: Recipient | None = None

    def remember(self, msg: InboundMessage) -> bool:
        """Record the sender as recipient on first contact; False for anyone else."""
        if self.recipient is None:
            self.recipient = Recipient(msg.channel, msg.chat_id, msg.sender_id)
            logger.info(f"Recipient set to {msg.channel}:{msg.chat_id}")
            return True
        return self.recipient.channel == msg.channel and self.recipient.chat_id == msg.chat_id

    def text(self, content: str) -> bool:
        """Send plain text; the channel splits it to its own size limit."""
        if not content:
            return False
        return self._publish(content)

    def choices(self, body: str, button: str, items: list[Choice], fallback: str = "") -> bool:
        """Offer up to MAX_CHOICES tap targets behind a single menu button."""
        valid = self._valid_choices(items)
        if len(valid) > MAX_CHOICES:
            logger.warning(f"Choice list has {len(valid)} items, keeping the first {MAX_CHOICES}")
            valid = valid[:MAX_CHOICES]
        if not valid:
            return self.text(fallback or body)
        return self._publish(
            truncate(body, self.max_message_length),
            {
                "kind": "choices",
                "button": truncate(button, MAX_TITLE_CHARS),
                "choices": [self._as_dict(c) for c in valid],
                "fallback": fallback or self._render_fallback(body, valid),
            },
        )

    def confirm(self, body: str, buttons: list[Choice], fallback: str = "") -> bool:
        """Ask a question answered by one of at most MAX_BUTTONS buttons."""
        valid = self._valid_choices(buttons)
        if len(valid) > MAX_BUTTONS:
            logger.warning(f"Confirm has {len(valid)} buttons, keeping the first {MAX_BUTTONS}")
            valid = valid[:MAX_BUTTONS]
        if not valid:
            return self.text(fallback or body)
        return self._publish(
            truncate(body, self.max_message_length),
            {
                "kind": "confirm",
                "buttons": [self._as_dict(c) for c in valid],
                "fallback": fallback or body,
            },
        )

    def _publish(self, content: str, metadata: dict | None = None) -> bool:
        if self.recipient is None:
            logger.warning("No recipient known yet, dropping notification")
            return False
        self.bus.publish_outbound_nowait(
            OutboundMessage(
                channel=self.recipient.channel,
                chat_id=self.recipient.chat_id,
                content=content,
                metadata=metadata or {},
            )
        )
        return True

    @staticmethod
    def _valid_choices(items: list[Choice]) -> list[Choice]:
        valid = []
        for item in items:
            if not item.id or len(item.id.encode("utf-8")) > MAX_CHOICE_ID_BYTES:
                logger.warning(f"Dropping choice with unusable id: {item.id!r}")
                continue
            valid.append(item)
        return valid

    @staticmethod
    def _as_dict(choice: Choice) -> dict[str, str]:
        return {
            "id": choice.id,
            "title": truncate(choice.title, MAX_TITLE_CHARS),
            "description": choice.description,
        }

    @staticmethod
    def _render_fallback(body: str, items: list[Choice]) -> str:
        lines = [body, ""]
        for item in items:
            suffix = f" ({item.description})" if item.description else ""
            lines.append(f"- {item.title}{suffix}")
        return "\n".join(lines)
