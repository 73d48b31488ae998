"""
Slack Channel
=============

Relays Slack messages to the gateway over Socket Mode.

Slack Bolt is the official framework for building Slack apps. It provides:
- Socket Mode connection (no public URL needed)
- Event handling with decorators
- Built-in request verification

Events handled:
- app_mention: someone mentions the bot in a channel (reply in thread)
- message (channel_type "im"): direct messages to the bot

Each Slack channel or DM is one conversation ("slack:<channel id>").
"""

import re

from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp, AsyncSay

from clawgate.channels import Channel, IncomingMessage
from clawgate.errors import ConfigError
from clawgate.utils.config import SlackConfig
from clawgate.utils.logger import Logger

logger = Logger("SlackChannel")

# Mentions look like <@U123ABC>
_MENTION_RE = re.compile(r"<@[A-Z0-9]+>")

GREETING = "Hi! How can I help you?"


def parse_mention(event: dict) -> IncomingMessage:
    """Build a message from an app_mention event, dropping the mention."""
    return IncomingMessage(
        channel="slack",
        chat_id=event.get("channel", ""),
        text=_MENTION_RE.sub("", event.get("text", "")).strip(),
        user_id=event.get("user"),
        thread_id=event.get("thread_ts") or event.get("ts"),
    )


def parse_direct_message(event: dict) -> IncomingMessage | None:
    """
    Build a message from a message event.

    Returns:
        None for anything but a plain human DM (channel messages, bot
        messages, edits and other subtypes)
    """
    if event.get("channel_type") != "im":
        return None
    if event.get("bot_id") or event.get("subtype"):
        return None
    text = event.get("text", "")
    if not text:
        return None

    return IncomingMessage(
        channel="slack",
        chat_id=event.get("channel", ""),
        text=text,
        user_id=event.get("user"),
    )


class SlackChannel(Channel):
    """
    Slack adapter.

    Example:
        channel = SlackChannel(config.slack)
        manager.register(channel)
        await channel.start()
    """

    name = "slack"

    def __init__(self, config: SlackConfig, app: AsyncApp | None = None):
        """
        Raises:
            ConfigError: If the bot or app token is missing
        """
        super().__init__()
        if not config.is_configured:
            raise ConfigError("Slack requires SLACK_BOT_TOKEN and SLACK_APP_TOKEN")

        self.config = config
        self.app = app or AsyncApp(
            token=config.bot_token,
            signing_secret=config.signing_secret,
        )
        self._socket_handler: AsyncSocketModeHandler | None = None

        self.app.event("app_mention")(self._handle_mention)
        self.app.event("message")(self._handle_message)

    async def _handle_mention(self, event: dict, say: AsyncSay) -> None:
        message = parse_mention(event)

        if not message.text:
            await say(text=GREETING, thread_ts=message.thread_id)
            return

        reply = await self.dispatch(message)
        if reply:
            await say(text=reply, thread_ts=message.thread_id)

    async def _handle_message(self, event: dict, say: AsyncSay) -> None:
        message = parse_direct_message(event)
        if message is None:
            return

        reply = await self.dispatch(message)
        if reply:
            await say(text=reply)

    async def start(self) -> None:
        """Open the Socket Mode connection (returns once connected)."""
        self._socket_handler = AsyncSocketModeHandler(
            app=self.app,
            app_token=self.config.app_token,
        )
        await self._socket_handler.connect_async()
        logger.info("Slack Socket Mode connected")

    async def stop(self) -> None:
        if self._socket_handler is not None:
            await self._socket_handler.close_async()
            self._socket_handler = None
            logger.info("Slack Socket Mode closed")

    async def send(self, chat_id: str, text: str) -> None:
        await self.app.client.chat_postMessage(channel=chat_id, text=text)
