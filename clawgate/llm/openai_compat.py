"""
OpenAI-Compatible Provider
==========================

Most hosted and self-hosted LLM vendors speak the OpenAI chat-completions
dialect: OpenRouter, DeepSeek, Moonshot/Kimi, vLLM, and OpenAI itself. One
adapter built on the official `openai` SDK covers all of them; only the
base URL, key and default model differ.

    provider = create_provider("deepseek", config.llm.deepseek)
    response = await provider.chat(ChatRequest(model="deepseek-chat", messages=[...]))
"""

from typing import Any

import openai
from openai import AsyncOpenAI

from clawgate.errors import ConfigError, ProviderError
from clawgate.llm import (
    ChatRequest,
    ChatResponse,
    LLMProvider,
    Message,
    ToolCall,
    Usage,
)
from clawgate.utils.config import DEFAULT_BASE_URLS, ProviderConfig
from clawgate.utils.logger import Logger

logger = Logger("OpenAICompat")


class OpenAICompatibleProvider(LLMProvider):
    """
    Chat-completions client for one vendor.

    Attributes:
        name: Vendor name ("openrouter", "deepseek", ...)
        default_model: Vendor-specific model that overrides the request's
            model when set (e.g. DEEPSEEK_MODEL=deepseek-chat)
    """

    def __init__(
        self,
        name: str,
        api_key: str | None,
        base_url: str | None = None,
        timeout_secs: int = 60,
        default_model: str | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.name = name
        self.default_model = default_model
        self._api_key = api_key
        # Self-hosted servers (vLLM) often run without a key, the SDK still wants one
        self.client = client or AsyncOpenAI(
            api_key=api_key or "EMPTY",
            base_url=base_url,
            timeout=float(timeout_secs),
        )

    def is_available(self) -> bool:
        return bool(self._api_key) or self.name == "vllm"

    def _build_payload(self, request: ChatRequest) -> dict[str, Any]:
        """Translate a ChatRequest into chat.completions.create() kwargs."""
        payload: dict[str, Any] = {
            "model": self.default_model or request.model,
            "messages": [message.to_openai_message() for message in request.messages],
        }
        # Some vendors reject "tools": [] so the key is left out entirely
        if request.tools:
            payload["tools"] = [tool.to_openai_function() for tool in request.tools]
            payload["tool_choice"] = "auto"
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        return payload

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """
        Send one chat-completions request.

        Raises:
            ProviderError: On any transport, HTTP or response-shape failure
        """
        payload = self._build_payload(request)
        logger.debug(f"POST chat.completions ({self.name}) model={payload['model']}")

        try:
            response = await self.client.chat.completions.create(**payload)
        except openai.OpenAIError as e:
            raise ProviderError(str(e), provider=self.name) from e

        if not response.choices:
            raise ProviderError("Response contained no choices", provider=self.name)

        return ChatResponse(
            message=self._parse_message(response.choices[0].message),
            model=response.model or payload["model"],
            usage=self._parse_usage(response.usage),
        )

    @staticmethod
    def _parse_message(raw: Any) -> Message:
        tool_calls = []
        for tc in raw.tool_calls or []:
            tool_calls.append(ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            ))
        return Message.assistant(raw.content or "", tool_calls=tool_calls or None)

    @staticmethod
    def _parse_usage(raw: Any) -> Usage | None:
        if raw is None:
            return None
        return Usage(
            prompt_tokens=raw.prompt_tokens or 0,
            completion_tokens=raw.completion_tokens or 0,
            total_tokens=raw.total_tokens or 0,
        )


def create_provider(name: str, config: ProviderConfig) -> OpenAICompatibleProvider:
    """
    Create the provider for a known vendor name.

    Raises:
        ConfigError: For unknown vendors, or vendors missing a key or URL
    """
    if name not in DEFAULT_BASE_URLS:
        raise ConfigError(f"Unknown LLM provider: {name}")

    base_url = config.base_url or DEFAULT_BASE_URLS[name]

    if name == "vllm":
        if not base_url:
            raise ConfigError("vLLM requires VLLM_BASE_URL")
    elif not config.api_key:
        raise ConfigError(f"{name} requires an API key")

    return OpenAICompatibleProvider(
        name=name,
        api_key=config.api_key,
        base_url=base_url,
        timeout_secs=config.timeout_secs,
        default_model=config.default_model,
    )
