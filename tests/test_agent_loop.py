"""
Tests for the Agent conversation loop: tool rounds, the iteration ceiling,
trimming, session persistence and replay.
"""

import json

import pytest

from clawgate.agent import Agent
from clawgate.errors import IterationLimitError, ProviderError, ToolArgumentError
from clawgate.llm import ChatRequest, ChatResponse, LLMProvider, Role

from conftest import (
    SYSTEM_PROMPT,
    StubProvider,
    answer,
    calls_tools,
    make_config,
    manager_for,
    tool_call,
    with_agent,
)


class FailingProvider(LLMProvider):
    name = "stub"

    async def chat(self, request: ChatRequest) -> ChatResponse:
        raise ProviderError("upstream unavailable", provider="stub")


async def _agent(config, provider, tools, memory=None, session_id=None) -> Agent:
    return await Agent.create(config, manager_for(provider), tools, memory, session_id=session_id)


class TestSimpleTurns:
    @pytest.mark.asyncio
    async def test_answer_without_tools(self, config, registry):
        provider = StubProvider([answer("Hello there")])
        agent = await _agent(config, provider, registry)

        response = await agent.chat("Hi")

        assert response.content == "Hello there"
        assert response.model == "stub-model"
        messages = await agent.messages()
        assert [m.role for m in messages] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
        assert messages[0].content == SYSTEM_PROMPT
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_request_carries_tool_definitions(self, config, registry):
        provider = StubProvider([answer("ok")])
        agent = await _agent(config, provider, registry)

        await agent.chat("Hi")

        request = provider.requests[0]
        assert [t.name for t in request.tools] == ["echo", "broken", "crash"]
        assert request.model == "stub-model"
        assert request.temperature == 0.7

    @pytest.mark.asyncio
    async def test_empty_registry_omits_tools(self, config, empty_registry):
        provider = StubProvider([answer("ok")])
        agent = await _agent(config, provider, empty_registry)

        await agent.chat("Hi")

        assert provider.requests[0].tools is None

    @pytest.mark.asyncio
    async def test_usage_is_accumulated(self, config, registry):
        provider = StubProvider([answer("one"), answer("two")])
        agent = await _agent(config, provider, registry)

        await agent.chat("a")
        await agent.chat("b")

        assert await agent.total_tokens() == 10

    @pytest.mark.asyncio
    async def test_provider_error_aborts_turn(self, config, registry):
        agent = await Agent.create(config, manager_for(FailingProvider()), registry)

        with pytest.raises(ProviderError):
            await agent.chat("Hi")

        # The user message stays in context
        messages = await agent.messages()
        assert messages[-1].role == Role.USER


class TestToolRounds:
    @pytest.mark.asyncio
    async def test_tool_messages_match_calls_in_order(self, config, registry):
        provider = StubProvider([
            calls_tools(
                tool_call("call_1", "echo", {"text": "first"}),
                tool_call("call_2", "echo", {"text": "second"}),
                tool_call("call_3", "echo", {"text": "third"}),
            ),
            answer("done"),
        ])
        agent = await _agent(config, provider, registry)

        response = await agent.chat("run three tools")

        assert response.content == "done"
        messages = await agent.messages()
        tool_messages = [m for m in messages if m.role == Role.TOOL]
        assert [m.tool_call_id for m in tool_messages] == ["call_1", "call_2", "call_3"]
        assert [m.content for m in tool_messages] == [
            "echo: first",
            "echo: second",
            "echo: third",
        ]

        # The follow-up request sees the assistant call and all results
        second = provider.requests[1]
        roles = [m.role for m in second.messages]
        assert roles == [
            Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.TOOL, Role.TOOL, Role.TOOL,
        ]
        assert second.messages[2].tool_calls[0].id == "call_1"

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_error_message(self, config, registry):
        provider = StubProvider([
            calls_tools(tool_call("call_1", "does_not_exist")),
            answer("recovered"),
        ])
        agent = await _agent(config, provider, registry)

        response = await agent.chat("call something odd")

        assert response.content == "recovered"
        tool_message = [m for m in await agent.messages() if m.role == Role.TOOL][0]
        assert tool_message.tool_call_id == "call_1"
        assert tool_message.content == "Error: Unknown tool: does_not_exist"
        assert len(provider.requests) == 2

    @pytest.mark.asyncio
    async def test_failing_tool_becomes_error_message(self, config, registry):
        provider = StubProvider([
            calls_tools(tool_call("call_1", "broken"), tool_call("call_2", "crash")),
            answer("noted"),
        ])
        agent = await _agent(config, provider, registry)

        await agent.chat("break things")

        contents = [m.content for m in await agent.messages() if m.role == Role.TOOL]
        assert contents == [
            "Error: Tool 'broken' failed: disk on fire",
            "Error: Tool 'crash' failed: boom",
        ]

    @pytest.mark.asyncio
    async def test_malformed_arguments_abort_turn(self, config, registry):
        provider = StubProvider([
            calls_tools(tool_call("call_1", "echo", "{not json")),
            answer("unreachable"),
        ])
        agent = await _agent(config, provider, registry)

        with pytest.raises(ToolArgumentError) as excinfo:
            await agent.chat("hi")

        assert excinfo.value.tool_call_id == "call_1"
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_blank_arguments_mean_no_arguments(self, config, registry):
        provider = StubProvider([
            calls_tools(tool_call("call_1", "echo", "")),
            answer("ok"),
        ])
        agent = await _agent(config, provider, registry)

        await agent.chat("hi")

        tool_message = [m for m in await agent.messages() if m.role == Role.TOOL][0]
        assert tool_message.content == "echo: "


class TestIterationLimit:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [1, 3, 5])
    async def test_always_calling_tools_hits_limit(self, tmp_path, registry, limit):
        config = make_config(max_iterations=limit)
        provider = StubProvider([calls_tools(tool_call("call_x", "echo", {"text": "again"}))])
        agent = await _agent(config, provider, registry)

        with pytest.raises(IterationLimitError) as excinfo:
            await agent.chat("loop forever")

        assert excinfo.value.limit == limit
        assert len(provider.requests) == limit

    @pytest.mark.asyncio
    async def test_answer_on_last_iteration_succeeds(self, registry):
        config = make_config(max_iterations=2)
        provider = StubProvider([
            calls_tools(tool_call("call_1", "echo")),
            answer("just in time"),
        ])
        agent = await _agent(config, provider, registry)

        response = await agent.chat("hi")

        assert response.content == "just in time"


class TestTrimming:
    @pytest.mark.asyncio
    async def test_context_bounded_without_tools(self, registry):
        config = make_config(max_context=4)
        provider = StubProvider([answer("reply")])
        agent = await _agent(config, provider, registry)

        for i in range(10):
            await agent.chat(f"message {i}")
            assert await agent.context_length() <= 4 + 1

    @pytest.mark.asyncio
    async def test_small_window_keeps_latest_turn(self, registry):
        config = make_config(max_context=2)
        provider = StubProvider([
            lambda request: answer(f"A{len(provider.requests)}"),
        ])
        agent = await _agent(config, provider, registry)

        await agent.chat("U1")
        await agent.chat("U2")
        await agent.chat("U3")

        messages = await agent.messages()
        assert len(messages) == 3
        assert messages[0].role == Role.SYSTEM
        assert [m.content for m in messages[1:]] == ["U3", "A3"]

    @pytest.mark.asyncio
    async def test_system_prompt_stays_first(self, registry):
        config = make_config(max_context=1)
        provider = StubProvider([answer("reply")])
        agent = await _agent(config, provider, registry)

        for i in range(3):
            await agent.chat(f"message {i}")
            messages = await agent.messages()
            assert messages[0].role == Role.SYSTEM
            assert messages[0].content == SYSTEM_PROMPT


class TestClearContext:
    @pytest.mark.asyncio
    async def test_clear_resets_to_system_prompt(self, config, registry):
        agent = await _agent(config, StubProvider([answer("ok")]), registry)
        await agent.chat("hello")

        await agent.clear_context()

        messages = await agent.messages()
        assert len(messages) == 1
        assert messages[0].role == Role.SYSTEM

    @pytest.mark.asyncio
    async def test_empty_system_prompt(self, config, registry):
        config = with_agent(config, system_prompt="")
        agent = await _agent(config, StubProvider([answer("ok")]), registry)

        assert await agent.context_length() == 0
        await agent.chat("hello")
        await agent.clear_context()
        assert await agent.context_length() == 0


class TestSessions:
    @pytest.mark.asyncio
    async def test_generates_session_id(self, config, registry):
        agent = await _agent(config, StubProvider(), registry)
        session_id = await agent.session_id()
        assert session_id
        assert len(session_id) == 36

    @pytest.mark.asyncio
    async def test_messages_are_stored(self, config, registry, memory):
        provider = StubProvider([
            calls_tools(tool_call("call_1", "echo", {"text": "x"})),
            answer("final"),
        ])
        agent = await _agent(config, provider, registry, memory, session_id="s1")

        await agent.chat("hi")

        stored = await memory.get_conversation("s1", limit=10)
        assert [m.role for m in stored] == ["user", "assistant", "tool", "assistant"]
        assert stored[2].tool_call_id == "call_1"
        calls = json.loads(stored[1].tool_calls)
        assert calls[0]["id"] == "call_1"
        assert calls[0]["function"]["name"] == "echo"

    @pytest.mark.asyncio
    async def test_new_agent_replays_history(self, config, registry, memory):
        first = await _agent(config, StubProvider([
            calls_tools(tool_call("call_1", "echo", {"text": "x"})),
            answer("first answer"),
        ]), registry, memory, session_id="s1")
        await first.chat("first question")

        second = await _agent(config, StubProvider([answer("ok")]), registry, memory, "s1")

        messages = await second.messages()
        assert messages[0].role == Role.SYSTEM
        assert [m.content for m in messages[1:]] == ["first question", "", "echo: x", "first answer"]
        assert messages[2].tool_calls[0].id == "call_1"
        assert messages[3].tool_call_id == "call_1"

    @pytest.mark.asyncio
    async def test_replay_respects_max_context(self, tmp_path, registry, memory):
        config = make_config(workspace=tmp_path / "workspace", max_context=3)
        for i in range(6):
            await memory.add_message("s1", "user", f"old {i}")

        agent = await _agent(config, StubProvider(), registry, memory, "s1")

        messages = await agent.messages()
        assert [m.content for m in messages[1:]] == ["old 3", "old 4", "old 5"]

    @pytest.mark.asyncio
    async def test_replay_skips_system_and_orphan_tool_entries(self, config, registry, memory):
        await memory.add_message("s1", "system", "stale prompt")
        await memory.add_message("s1", "tool", "orphan result", tool_call_id="gone")
        await memory.add_message("s1", "user", "question")
        await memory.add_message("s1", "tool", "no id")

        agent = await _agent(config, StubProvider(), registry, memory, "s1")

        messages = await agent.messages()
        assert [m.content for m in messages] == [SYSTEM_PROMPT, "question"]

    @pytest.mark.asyncio
    async def test_set_session_id_switches_history(self, config, registry, memory):
        await memory.add_message("other", "user", "from other")
        await memory.add_message("other", "assistant", "reply in other")

        agent = await _agent(config, StubProvider([answer("ok")]), registry, memory, "main")
        await agent.chat("in main")

        await agent.set_session_id("other")

        assert await agent.session_id() == "other"
        messages = await agent.messages()
        assert messages[0].role == Role.SYSTEM
        assert [m.content for m in messages[1:]] == ["from other", "reply in other"]

        # The old session was flushed, including the system prompt
        stored = await memory.get_conversation("main", limit=50)
        assert "in main" in [m.content for m in stored]
        assert "system" in [m.role for m in stored]

    @pytest.mark.asyncio
    async def test_set_session_id_without_memory(self, config, registry):
        agent = await _agent(config, StubProvider([answer("ok")]), registry)
        await agent.chat("hello")

        await agent.set_session_id("fresh")

        assert await agent.session_id() == "fresh"
        assert await agent.context_length() == 1

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_abort_turn(self, config, registry, memory, monkeypatch):
        from clawgate.errors import PersistenceError

        async def fail(*args, **kwargs):
            raise PersistenceError("read-only filesystem")

        monkeypatch.setattr(memory, "add_message", fail)
        agent = await _agent(config, StubProvider([answer("still fine")]), registry, memory, "s1")

        response = await agent.chat("hi")

        assert response.content == "still fine"

    @pytest.mark.asyncio
    async def test_unencodable_reply_is_stored_with_replacement(self, config, registry, memory):
        agent = await _agent(config, StubProvider([answer("cut emoji \ud83d")]), registry, memory, "s1")

        response = await agent.chat("hi")

        assert response.content == "cut emoji \ud83d"
        stored = await memory.get_conversation("s1", limit=10)
        assert [(m.role, m.content) for m in stored] == [
            ("user", "hi"),
            ("assistant", "cut emoji ?"),
        ]
