"""
Channels
========

Chat platforms the gateway relays messages through.

Message flow:
    Platform event
         │
         ▼
    Channel adapter builds an IncomingMessage
         │
         ▼
    ChannelManager picks the Agent for "<channel>:<chat_id>"
         │
         ▼
    agent.chat(text)  ──(error)──►  apology text
         │
         ▼
    Adapter sends the reply back to the chat

Each conversation gets its own Agent, whose session id is the conversation
key, so history is stored and replayed per chat. "/clear" resets that
chat's context.

Adapters (imported on demand, they pull in their platform SDK):
- clawgate.channels.slack: Slack via slack-bolt Socket Mode
- clawgate.channels.telegram: Telegram via python-telegram-bot polling
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from clawgate.utils.logger import Logger

if TYPE_CHECKING:
    from clawgate.agent import Agent

logger = Logger("Channels")

APOLOGY = "Sorry, I encountered an error processing your request."
CLEARED = "Conversation history cleared! Starting fresh."
CLEAR_COMMAND = "/clear"


@dataclass
class IncomingMessage:
    """
    A text message received on some channel.

    Attributes:
        channel: Channel name ("slack", "telegram")
        chat_id: Where to reply (Slack channel id, Telegram chat id)
        text: Message text, stripped of bot mentions
        user_id: Sender, if the platform provides one
        thread_id: Platform thread to reply in, if any
    """
    channel: str
    chat_id: str
    text: str
    user_id: str | None = None
    thread_id: str | None = None

    @property
    def conversation_key(self) -> str:
        return f"{self.channel}:{self.chat_id}"


MessageHandlerFunc = Callable[[IncomingMessage], Awaitable[str | None]]
AgentFactory = Callable[[IncomingMessage], Awaitable["Agent"]]


class Channel(ABC):
    """
    Base class for a chat platform adapter.

    Adapters turn platform events into IncomingMessage, pass them to
    dispatch(), and send back whatever reply it returns.
    """

    name: str = "channel"

    def __init__(self):
        self._handler: MessageHandlerFunc | None = None

    def set_handler(self, handler: MessageHandlerFunc) -> None:
        self._handler = handler

    async def dispatch(self, message: IncomingMessage) -> str | None:
        if self._handler is None:
            logger.warning(f"No handler attached to channel {self.name}, dropping message")
            return None
        return await self._handler(message)

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and begin receiving messages."""

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect."""

    @abstractmethod
    async def send(self, chat_id: str, text: str) -> None:
        """Send a text message to a chat."""


class ChannelManager:
    """
    Owns the channels and one Agent per conversation.

    Example:
        manager = ChannelManager(make_agent)
        manager.register(TelegramChannel(config.telegram))
        await manager.start_all()
        ...
        await manager.send("telegram", "42", "Reminder: tea")
    """

    def __init__(self, agent_factory: AgentFactory):
        """
        Args:
            agent_factory: Creates the Agent for a conversation's first message
        """
        self._agent_factory = agent_factory
        self._channels: dict[str, Channel] = {}
        self._agents: dict[str, "Agent"] = {}
        self._agents_lock = asyncio.Lock()

    def register(self, channel: Channel) -> None:
        channel.set_handler(self.handle_message)
        self._channels[channel.name] = channel
        logger.info(f"Registered channel: {channel.name}")

    def get(self, name: str) -> Channel | None:
        return self._channels.get(name)

    def list_channels(self) -> list[str]:
        return list(self._channels.keys())

    def active_conversations(self) -> list[str]:
        return list(self._agents.keys())

    async def agent_for(self, message: IncomingMessage) -> "Agent":
        key = message.conversation_key
        async with self._agents_lock:
            agent = self._agents.get(key)
            if agent is None:
                agent = await self._agent_factory(message)
                self._agents[key] = agent
                logger.info(f"Started conversation {key}")
            return agent

    async def handle_message(self, message: IncomingMessage) -> str | None:
        """
        Route a message to its conversation's Agent.

        Returns:
            The reply text, an apology if the agent failed, or None for
            empty messages
        """
        text = message.text.strip()
        if not text:
            return None

        logger.info(f"Message on {message.conversation_key}: {text[:50]}")

        try:
            agent = await self.agent_for(message)

            if text == CLEAR_COMMAND:
                await agent.clear_context()
                return CLEARED

            response = await agent.chat(text)
            return response.content
        except Exception as e:
            logger.error(f"Error handling message on {message.conversation_key}", e)
            return APOLOGY

    async def send(self, channel: str, chat_id: str, text: str) -> None:
        """
        Send a message out through a named channel.

        Raises:
            KeyError: If no such channel is registered
        """
        target = self._channels.get(channel)
        if target is None:
            raise KeyError(f"Unknown channel: {channel}")
        await target.send(chat_id, text)

    async def start_all(self) -> None:
        for channel in self._channels.values():
            logger.info(f"Starting channel: {channel.name}")
            await channel.start()

    async def stop_all(self) -> None:
        for channel in self._channels.values():
            logger.info(f"Stopping channel: {channel.name}")
            try:
                await channel.stop()
            except Exception as e:
                logger.error(f"Error stopping channel {channel.name}", e)


__all__ = [
    "APOLOGY",
    "Channel",
    "ChannelManager",
    "IncomingMessage",
]
