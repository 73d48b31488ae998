"""
LLM Layer
=========

Provider-neutral chat types and the provider contract the agent talks to.

The agent never sees a vendor's wire format. It builds a ChatRequest from
its context, hands it to an LLMProvider, and gets a ChatResponse back:

    request = ChatRequest(model="deepseek-chat", messages=[Message.user("hi")])
    response = await provider.chat(request)
    print(response.message.content, response.model)

This module provides:
- Role, Message, ToolCall, ToolDefinition: the conversation vocabulary
- ChatRequest, ChatResponse, Usage: one round-trip
- LLMProvider: the abstract provider contract
- LLMManager: picks a provider by name (or the configured default)
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from clawgate.errors import ConfigError, ProviderError
from clawgate.utils.logger import Logger

if TYPE_CHECKING:
    from clawgate.utils.config import Config

logger = Logger("LLM")


class Role(str, Enum):
    """Who produced a message."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @classmethod
    def parse(cls, value: str) -> "Role":
        """Map a stored role name back to a Role; unknown names become SYSTEM."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.SYSTEM


@dataclass
class ToolCall:
    """
    A tool invocation requested by the model.

    Attributes:
        id: Provider-assigned id, echoed back in the tool result message
        name: The tool name
        arguments: The arguments as raw JSON text (parsed by the executor)
    """
    id: str
    name: str
    arguments: str = "{}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCall":
        function = data.get("function") or {}
        return cls(
            id=data.get("id", ""),
            name=function.get("name", data.get("name", "")),
            arguments=function.get("arguments", data.get("arguments", "{}")) or "{}",
        )


def dump_tool_calls(tool_calls: list[ToolCall] | None) -> str | None:
    """Serialize tool calls to JSON text for storage."""
    if not tool_calls:
        return None
    return json.dumps([call.to_dict() for call in tool_calls], ensure_ascii=False)


def load_tool_calls(raw: str | None) -> list[ToolCall] | None:
    """Inverse of dump_tool_calls; unreadable text yields None."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, list):
        return None
    calls = [ToolCall.from_dict(item) for item in data if isinstance(item, dict)]
    return calls or None


@dataclass
class Message:
    """
    One entry in the conversation.

    A TOOL message answers exactly one ToolCall and must carry its id in
    tool_call_id.
    """
    role: Role
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[ToolCall] | None = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def copy(self) -> "Message":
        return Message(
            role=self.role,
            content=self.content,
            tool_calls=[ToolCall(c.id, c.name, c.arguments) for c in self.tool_calls]
            if self.tool_calls else None,
            tool_call_id=self.tool_call_id,
        )

    def to_openai_message(self) -> dict[str, Any]:
        """Format as an OpenAI chat-completions message dict."""
        message: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


@dataclass
class ToolDefinition:
    """A tool as advertised to the model."""
    name: str
    description: str
    parameters: dict

    def to_openai_function(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class ChatRequest:
    """
    One request to a provider.

    tools is None when no tools are available. Providers must then omit the
    field entirely rather than send an empty list.
    """
    model: str
    messages: list[Message]
    tools: list[ToolDefinition] | None = None
    temperature: float | None = 0.7
    max_tokens: int | None = None


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResponse:
    message: Message
    model: str
    usage: Usage | None = None


class LLMProvider(ABC):
    """
    Contract for an LLM backend.

    Implementations translate ChatRequest into their vendor's dialect, map
    the four roles, and echo back any tool calls with stable ids. Every
    failure must surface as ProviderError.
    """

    name: str = "provider"

    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send one request and return the model's reply."""


class LLMManager:
    """
    Holds the configured providers and selects one by name.

    Example:
        manager = LLMManager({"deepseek": provider}, default_provider="deepseek")
        provider = manager.default_provider()
    """

    def __init__(self, providers: dict[str, LLMProvider], default_provider: str):
        self._providers = dict(providers)
        self.default_provider_name = default_provider

    @classmethod
    def from_config(cls, config: "Config") -> "LLMManager":
        """
        Build a provider for every vendor that has credentials.

        Raises:
            ConfigError: If no provider is configured
        """
        from clawgate.llm.openai_compat import create_provider

        providers: dict[str, LLMProvider] = {}
        for name, provider_config in config.llm.providers().items():
            if not provider_config.is_configured:
                continue
            try:
                providers[name] = create_provider(name, provider_config)
            except ConfigError as e:
                logger.warning(f"Could not create provider '{name}': {e}")

        if not providers:
            raise ConfigError("No LLM provider available. Configure at least one API key.")

        logger.info(f"Providers available: {', '.join(sorted(providers))}")
        return cls(providers, default_provider=config.agent.default_provider)

    def get_provider(self, name: str | None = None) -> LLMProvider:
        """
        Look up a provider.

        Raises:
            ProviderError: If the provider is not configured
        """
        name = name or self.default_provider_name
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderError(f"Provider '{name}' is not available", provider=name)
        return provider

    def default_provider(self) -> LLMProvider:
        return self.get_provider(None)

    def list_providers(self) -> list[str]:
        return list(self._providers.keys())


__all__ = [
    "Role",
    "Message",
    "ToolCall",
    "ToolDefinition",
    "ChatRequest",
    "ChatResponse",
    "Usage",
    "LLMProvider",
    "LLMManager",
    "dump_tool_calls",
    "load_tool_calls",
]
