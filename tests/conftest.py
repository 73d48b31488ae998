"""
Shared fixtures: a scripted LLM provider, configs pointing at tmp_path,
and small tool registries.
"""

import json
from dataclasses import replace
from pathlib import Path

import pytest

from clawgate.llm import (
    ChatRequest,
    ChatResponse,
    LLMManager,
    LLMProvider,
    Message,
    ToolCall,
    Usage,
)
from clawgate.memory import MemoryStore
from clawgate.tools import Tool, ToolContext, ToolRegistry, ToolResult
from clawgate.utils.config import (
    AgentConfig,
    Config,
    LLMConfig,
    MemoryConfig,
    ProviderConfig,
    SchedulerConfig,
    SlackConfig,
    TelegramConfig,
    ToolsConfig,
    reset_config,
)

SYSTEM_PROMPT = "You are a test assistant."


class StubProvider(LLMProvider):
    """
    Replays scripted replies and records every request it receives.

    Each scripted item is either a Message, or a callable taking the
    request and returning a Message. When the script runs out, the last
    item is repeated.
    """

    name = "stub"

    def __init__(self, replies=None, model: str = "stub-model"):
        self.replies = list(replies or [])
        self.model = model
        self.requests: list[ChatRequest] = []

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.replies) - 1)
        reply = self.replies[index] if index >= 0 else Message.assistant("ok")
        if callable(reply):
            reply = reply(request)
        return ChatResponse(
            message=reply.copy(),
            model=self.model,
            usage=Usage(prompt_tokens=3, completion_tokens=2, total_tokens=5),
        )


def tool_call(call_id: str, name: str, arguments: dict | str | None = None) -> ToolCall:
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return ToolCall(id=call_id, name=name, arguments=arguments)


def calls_tools(*calls: ToolCall) -> Message:
    return Message.assistant("", tool_calls=list(calls))


def answer(text: str) -> Message:
    return Message.assistant(text)


def make_config(
    workspace: Path | None = None,
    max_context: int = 20,
    max_iterations: int = 10,
    system_prompt: str = SYSTEM_PROMPT,
    tools: ToolsConfig | None = None,
) -> Config:
    no_provider = ProviderConfig(api_key=None, base_url=None, default_model=None, timeout_secs=60)
    return Config(
        agent=AgentConfig(
            system_prompt=system_prompt,
            max_context=max_context,
            max_iterations=max_iterations,
            default_provider="stub",
            default_model="stub-model",
            temperature=0.7,
            max_tokens=None,
        ),
        llm=LLMConfig(
            openrouter=no_provider,
            deepseek=no_provider,
            moonshot=no_provider,
            vllm=no_provider,
            openai=no_provider,
        ),
        tools=tools or ToolsConfig(shell_whitelist=["echo"], allowed_paths=[]),
        memory=MemoryConfig(workspace=workspace),
        scheduler=SchedulerConfig(
            enabled=False,
            state_file=workspace / "cron_jobs.json" if workspace else None,
        ),
        slack=SlackConfig(bot_token=None, app_token=None, signing_secret=None),
        telegram=TelegramConfig(bot_token=None),
        log_level="error",
    )


def with_agent(config: Config, **changes) -> Config:
    return replace(config, agent=replace(config.agent, **changes))


def manager_for(provider: StubProvider) -> LLMManager:
    return LLMManager({"stub": provider}, default_provider="stub")


# ==============================================================================
# Tools
# ==============================================================================

async def _echo(params: dict, ctx: ToolContext) -> ToolResult:
    return ToolResult.ok(f"echo: {params.get('text', '')}")


async def _broken(params: dict, ctx: ToolContext) -> ToolResult:
    return ToolResult.fail("disk on fire")


async def _crash(params: dict, ctx: ToolContext) -> ToolResult:
    raise RuntimeError("boom")


_TEXT_SCHEMA = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": [],
}

echo_tool = Tool("echo", "Repeat the given text", _TEXT_SCHEMA, _echo)
broken_tool = Tool("broken", "Always reports failure", _TEXT_SCHEMA, _broken)
crash_tool = Tool("crash", "Always raises", _TEXT_SCHEMA, _crash)


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path) -> Config:
    return make_config(workspace=tmp_path / "workspace")


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(echo_tool)
    registry.register(broken_tool)
    registry.register(crash_tool)
    return registry


@pytest.fixture
def empty_registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def memory(tmp_path) -> MemoryStore:
    return MemoryStore(tmp_path / "workspace")


@pytest.fixture
def tool_context(tmp_path) -> ToolContext:
    return ToolContext(
        config=ToolsConfig(shell_whitelist=["echo", "ls"], allowed_paths=[str(tmp_path)]),
        working_dir=tmp_path,
    )
