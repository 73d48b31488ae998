"""
Telegram Channel
================

Relays Telegram messages to the gateway via python-telegram-bot long
polling. Each chat is one conversation ("telegram:<chat id>").

Commands:
- /start: greeting
- /clear: reset this chat's conversation context
"""

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from clawgate.channels import CLEAR_COMMAND, Channel, IncomingMessage
from clawgate.errors import ConfigError
from clawgate.utils.config import TelegramConfig
from clawgate.utils.logger import Logger

logger = Logger("TelegramChannel")

# Telegram rejects messages over 4096 characters
MAX_MESSAGE_LENGTH = 4000

GREETING = "Hi! Send me a message and I'll do my best to help. Use /clear to start over."


def chunk_message(text: str, max_len: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a long message at newlines so each piece fits one Telegram message."""
    if len(text) <= max_len:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_len:
            chunks.append(text)
            break

        split_at = text.rfind("\n", 0, max_len)
        if split_at <= 0:
            split_at = max_len

        chunks.append(text[:split_at])
        text = text[split_at:].lstrip("\n")

    return chunks


def message_from_update(update: Update, text: str | None = None) -> IncomingMessage | None:
    """Build an IncomingMessage from a text update (None if it has no chat or text)."""
    chat = update.effective_chat
    message = update.effective_message
    if chat is None or message is None:
        return None

    text = text if text is not None else message.text
    if not text:
        return None

    user = update.effective_user
    return IncomingMessage(
        channel="telegram",
        chat_id=str(chat.id),
        text=text,
        user_id=str(user.id) if user else None,
    )


class TelegramChannel(Channel):
    """
    Telegram adapter.

    Example:
        channel = TelegramChannel(config.telegram)
        manager.register(channel)
        await channel.start()
    """

    name = "telegram"

    def __init__(self, config: TelegramConfig):
        """
        Raises:
            ConfigError: If TELEGRAM_BOT_TOKEN is missing
        """
        super().__init__()
        if not config.is_configured:
            raise ConfigError("Telegram requires TELEGRAM_BOT_TOKEN")

        self.config = config
        self.app: Application | None = None

    def _build_app(self) -> Application:
        app = Application.builder().token(self.config.bot_token).build()
        app.add_handler(CommandHandler("start", self._on_start))
        app.add_handler(CommandHandler("clear", self._on_clear))
        app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self._on_text))
        return app

    async def _reply(self, update: Update, reply: str | None) -> None:
        if not reply or update.effective_message is None:
            return
        for chunk in chunk_message(reply):
            await update.effective_message.reply_text(chunk)

    async def _on_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.effective_message is not None:
            await update.effective_message.reply_text(GREETING)

    async def _on_clear(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = message_from_update(update, text=CLEAR_COMMAND)
        if message is not None:
            await self._reply(update, await self.dispatch(message))

    async def _on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = message_from_update(update)
        if message is None:
            return
        await self._reply(update, await self.dispatch(message))

    async def start(self) -> None:
        """Initialize the bot and start polling in the background."""
        self.app = self._build_app()
        await self.app.initialize()
        await self.app.start()
        await self.app.updater.start_polling(drop_pending_updates=True)
        logger.info("Telegram polling started")

    async def stop(self) -> None:
        if self.app is None:
            return
        if self.app.updater.running:
            await self.app.updater.stop()
        await self.app.stop()
        await self.app.shutdown()
        self.app = None
        logger.info("Telegram polling stopped")

    async def send(self, chat_id: str, text: str) -> None:
        if self.app is None:
            raise RuntimeError("Telegram channel is not started")
        for chunk in chunk_message(text):
            await self.app.bot.send_message(chat_id=chat_id, text=chunk)
