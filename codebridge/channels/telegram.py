"""Telegram channel implementation using python-telegram-bot."""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger
from telegram import BotCommand, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import Application, CallbackQueryHandler, ContextTypes, MessageHandler, filters
from telegram.request import HTTPXRequest

from codebridge.bus.events import OutboundMessage
from codebridge.bus.queue import MessageBus
from codebridge.channels.base import BaseChannel
from codebridge.config.schema import TelegramConfig
from codebridge.errors import DeliveryError
from codebridge.output.formatter import markdown_to_telegram_html, split_message


def build_keyboard(metadata: dict[str, Any]) -> InlineKeyboardMarkup | None:
    """Inline keyboard for a choice list (one per row) or a confirm (one row)."""
    kind = metadata.get("kind")
    if kind == "choices":
        rows = [
            [InlineKeyboardButton(c["title"], callback_data=c["id"])]
            for c in metadata.get("choices", [])
        ]
    elif kind == "confirm":
        rows = [[
            InlineKeyboardButton(b["title"], callback_data=b["id"])
            for b in metadata.get("buttons", [])
        ]]
    else:
        return None
    return InlineKeyboardMarkup(rows) if any(rows) else None


class TelegramChannel(BaseChannel):
    """
    Telegram channel using long polling.

    Simple and reliable - no webhook/public IP needed. Every text message,
    commands included, goes to the bus; inline button taps arrive as
    callback queries and are forwarded with their ``choice_id``.
    """

    name = "telegram"

    # Commands registered with Telegram's command menu
    BOT_COMMANDS = [
        BotCommand("open", "Open or switch to a project"),
        BotCommand("list", "Show sessions"),
        BotCommand("status", "Bridge status"),
        BotCommand("full", "Last full output"),
        BotCommand("yes", "Approve pending action"),
        BotCommand("no", "Deny pending action"),
        BotCommand("cancel", "Interrupt the running query"),
        BotCommand("kill", "Close a session"),
        BotCommand("restart", "Restart a session"),
        BotCommand("help", "Show available commands"),
    ]

    def __init__(self, config: TelegramConfig, bus: MessageBus):
        super().__init__(config, bus)
        self.config: TelegramConfig = config
        self._app: Application | None = None
        self._typing_tasks: dict[str, asyncio.Task] = {}  # chat_id -> typing loop task

    async def start(self) -> None:
        """Start the Telegram bot with long polling."""
        if not self.config.token:
            logger.error("Telegram bot token not configured")
            return

        self._running = True

        # Larger connection pool to avoid pool-timeout while queries stream
        req = HTTPXRequest(connection_pool_size=16, pool_timeout=5.0, connect_timeout=30.0, read_timeout=30.0)
        builder = Application.builder().token(self.config.token).request(req).get_updates_request(req)
        if self.config.proxy:
            builder = builder.proxy(self.config.proxy).get_updates_proxy(self.config.proxy)
        self._app = builder.build()
        self._app.add_error_handler(self._on_error)

        self._app.add_handler(MessageHandler(filters.TEXT, self._on_message))
        self._app.add_handler(CallbackQueryHandler(self._on_callback))

        logger.info("Starting Telegram bot (polling mode)...")

        await self._app.initialize()
        await self._app.start()

        bot_info = await self._app.bot.get_me()
        logger.info(f"Telegram bot @{bot_info.username} connected")

        try:
            await self._app.bot.set_my_commands(self.BOT_COMMANDS)
            logger.debug("Telegram bot commands registered")
        except Exception as e:
            logger.warning(f"Failed to register bot commands: {e}")

        await self._app.updater.start_polling(
            allowed_updates=["message", "callback_query"],
            drop_pending_updates=True,  # Ignore old messages on startup
        )

        while self._running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """Stop the Telegram bot."""
        self._running = False

        for chat_id in list(self._typing_tasks):
            self._stop_typing(chat_id)

        if self._app:
            logger.info("Stopping Telegram bot...")
            await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            self._app = None

    async def send(self, msg: OutboundMessage) -> None:
        """Send a message through Telegram."""
        if not self._app:
            logger.warning("Telegram bot not running")
            return

        self._stop_typing(msg.chat_id)

        try:
            chat_id = int(msg.chat_id)
        except ValueError:
            logger.error(f"Invalid chat_id: {msg.chat_id}")
            return

        if not msg.content:
            return

        keyboard = build_keyboard(msg.metadata or {})
        if keyboard is not None:
            await self._send_rich(chat_id, msg.content, keyboard)
            return

        for chunk in split_message(msg.content):
            try:
                await self._app.bot.send_message(
                    chat_id=chat_id,
                    text=markdown_to_telegram_html(chunk),
                    parse_mode="HTML",
                )
            except Exception as e:
                logger.warning(f"HTML parse failed, falling back to plain text: {e}")
                try:
                    await self._app.bot.send_message(chat_id=chat_id, text=chunk)
                except Exception as e2:
                    logger.error(f"Error sending Telegram message: {e2}")

    async def _send_rich(self, chat_id: int, content: str, keyboard: InlineKeyboardMarkup) -> None:
        """Send a message with inline buttons; raises DeliveryError on failure."""
        try:
            await self._app.bot.send_message(
                chat_id=chat_id,
                text=markdown_to_telegram_html(content),
                parse_mode="HTML",
                reply_markup=keyboard,
            )
            return
        except Exception as e:
            logger.warning(f"HTML parse failed for keyboard message, retrying as plain text: {e}")
        try:
            await self._app.bot.send_message(chat_id=chat_id, text=content, reply_markup=keyboard)
        except Exception as e:
            raise DeliveryError(f"keyboard message rejected: {e}") from e

    @staticmethod
    def _sender_id(user) -> str:
        """Build sender_id with username for allowlist matching."""
        sid = str(user.id)
        return f"{sid}|{user.username}" if user.username else sid

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle incoming text messages and commands."""
        if not update.message or not update.effective_user or not update.message.text:
            return

        message = update.message
        sender_id = self._sender_id(update.effective_user)
        str_chat_id = str(message.chat_id)
        logger.debug(f"Telegram message from {sender_id}: {message.text[:50]}...")

        self._start_typing(str_chat_id)

        await self._handle_message(
            sender_id=sender_id,
            chat_id=str_chat_id,
            content=message.text,
            metadata={
                "message_id": message.message_id,
                "user_id": update.effective_user.id,
                "username": update.effective_user.username,
            },
        )

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle inline button taps."""
        query = update.callback_query
        if not query or not query.data or not query.from_user:
            return
        await query.answer()

        # One tap per keyboard: drop the buttons once used.
        try:
            await query.edit_message_reply_markup(reply_markup=None)
        except Exception as e:
            logger.debug(f"Could not remove keyboard: {e}")

        message = query.message
        chat_id = str(message.chat.id) if message else str(query.from_user.id)
        await self._handle_message(
            sender_id=self._sender_id(query.from_user),
            chat_id=chat_id,
            content=query.data,
            choice_id=query.data,
            metadata={"user_id": query.from_user.id, "username": query.from_user.username},
        )

    def _start_typing(self, chat_id: str) -> None:
        """Start sending 'typing...' indicator for a chat."""
        self._stop_typing(chat_id)
        self._typing_tasks[chat_id] = asyncio.create_task(self._typing_loop(chat_id))

    def _stop_typing(self, chat_id: str) -> None:
        """Stop the typing indicator for a chat."""
        task = self._typing_tasks.pop(chat_id, None)
        if task and not task.done():
            task.cancel()

    async def _typing_loop(self, chat_id: str) -> None:
        """Repeatedly send 'typing' action until cancelled."""
        try:
            while self._app:
                await self._app.bot.send_chat_action(chat_id=int(chat_id), action="typing")
                await asyncio.sleep(4)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Typing indicator stopped for {chat_id}: {e}")

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Log polling / handler errors instead of silently swallowing them."""
        logger.error(f"Telegram error: {context.error}")
