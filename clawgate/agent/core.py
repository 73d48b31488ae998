"""
Agent Core
==========

The conversation loop. The agent owns one context buffer and one session,
and turns each user message into a final answer by calling the LLM and
running whatever tools it asks for along the way.

Agent Loop:
    User Message
         │
         ▼
    Append to Context (and store)
         │
         ▼
    LLM Request with Tools  ◄───────────┐
         │                              │
         ▼                              │
    ┌─── Has Tool Calls? ───┐           │
    │                       │           │
    Yes                     No          │
    │                       │           │
    ▼                       ▼           │
    Execute Tools      Append Answer,   │
    (in call order)    Trim, Return     │
    │                                   │
    ▼                                   │
    Append Tool Results ────────────────┘

The loop gives up with IterationLimitError after max_iterations LLM calls.

Sessions:
    Every message is also written to the memory store under the current
    session id, so a new Agent for the same session picks the conversation
    up where it left off. Storage is best-effort: failures are logged and
    never interrupt a turn.

Concurrency:
    A turn lock serializes chat(), clear_context() and set_session_id().
    The context lock is only held for short buffer operations, never across
    an LLM or tool call, so context_length() can be read mid-turn.
"""

import asyncio
import uuid
from dataclasses import dataclass
from pathlib import Path

from clawgate.agent.context import AgentContext
from clawgate.agent.tools_executor import ToolExecutor
from clawgate.errors import IterationLimitError, PersistenceError
from clawgate.llm import LLMManager, Message, dump_tool_calls
from clawgate.memory import MemoryStore
from clawgate.tools import ToolContext, ToolRegistry
from clawgate.utils.config import Config
from clawgate.utils.logger import Logger

logger = Logger("Agent")


@dataclass
class AgentResponse:
    content: str
    model: str


class Agent:
    """
    The conversation loop with tool execution and context management.

    Use Agent.create() so stored history is replayed before the first turn.

    Example:
        agent = await Agent.create(config, llm, tools, memory, session_id="cli")

        response = await agent.chat("What's in /tmp?")
        print(response.content)

        await agent.set_session_id("project-x")   # switch conversations
        await agent.clear_context()                # start fresh
    """

    def __init__(
        self,
        config: Config,
        llm: LLMManager,
        tools: ToolRegistry,
        memory: MemoryStore | None = None,
        session_id: str | None = None,
        tool_context: ToolContext | None = None,
    ):
        self.config = config
        self.llm = llm
        self.tools = tools
        self.memory = memory
        self.executor = ToolExecutor(
            tools,
            tool_context or ToolContext(config=config.tools, working_dir=Path.cwd()),
        )

        self._session_id = session_id or str(uuid.uuid4())
        self._context = AgentContext.seeded(config.agent.system_prompt)

        self._context_lock = asyncio.Lock()
        self._session_lock = asyncio.Lock()
        self._turn_lock = asyncio.Lock()

    @classmethod
    async def create(
        cls,
        config: Config,
        llm: LLMManager,
        tools: ToolRegistry,
        memory: MemoryStore | None = None,
        session_id: str | None = None,
        tool_context: ToolContext | None = None,
    ) -> "Agent":
        """Create an agent and replay the session's stored history."""
        agent = cls(config, llm, tools, memory, session_id, tool_context)
        await agent._replay(agent._session_id)
        logger.info(
            f"Agent ready (session {agent._session_id}, "
            f"model {config.agent.default_model}, {len(tools)} tools)"
        )
        return agent

    # ==========================================================================
    # Accessors
    # ==========================================================================

    async def session_id(self) -> str:
        async with self._session_lock:
            return self._session_id

    async def context_length(self) -> int:
        async with self._context_lock:
            return len(self._context)

    async def messages(self) -> list[Message]:
        """A copy of the current context buffer."""
        async with self._context_lock:
            return self._context.snapshot()

    async def total_tokens(self) -> int:
        async with self._context_lock:
            return self._context.total_tokens

    # ==========================================================================
    # Conversation
    # ==========================================================================

    async def chat(self, text: str) -> AgentResponse:
        """
        Send a user message and run the loop to a final answer.

        Raises:
            ProviderError: If the LLM call fails
            ToolArgumentError: If the model sends malformed tool arguments
            IterationLimitError: If no final answer arrives in time
        """
        async with self._turn_lock:
            session_id = await self.session_id()
            logger.info(f"User ({session_id}): {text[:80]}")

            message = Message.user(text)
            async with self._context_lock:
                self._context.append(message)
            await self._store(session_id, message)

            return await self._run_loop(session_id)

    async def _run_loop(self, session_id: str) -> AgentResponse:
        agent_config = self.config.agent
        provider = self.llm.default_provider()
        definitions = self.tools.definitions()

        for iteration in range(1, agent_config.max_iterations + 1):
            async with self._context_lock:
                request = self._context.build_request(
                    model=agent_config.default_model,
                    tools=definitions,
                    temperature=agent_config.temperature,
                    max_tokens=agent_config.max_tokens,
                )

            logger.debug(
                f"LLM request {iteration}/{agent_config.max_iterations}",
                {"provider": provider.name, "messages": len(request.messages)},
            )
            response = await provider.chat(request)
            message = response.message

            if message.has_tool_calls:
                async with self._context_lock:
                    self._context.append(message)
                    self._context.add_usage(response.usage)
                await self._store(session_id, message)

                for tool_call in message.tool_calls:
                    result = await self.executor.execute_one(tool_call)
                    tool_message = result.to_message()
                    async with self._context_lock:
                        self._context.append(tool_message)
                    await self._store(session_id, tool_message)
                continue

            async with self._context_lock:
                self._context.append(message)
                self._context.trim(agent_config.max_context)
                self._context.add_usage(response.usage)
            await self._store(session_id, message)

            logger.info(f"Generated response ({len(message.content)} chars)")
            return AgentResponse(content=message.content, model=response.model)

        logger.warning(f"No final answer after {agent_config.max_iterations} iterations")
        raise IterationLimitError(agent_config.max_iterations)

    async def clear_context(self) -> None:
        """Reset the buffer to just the system prompt. Stored history is kept."""
        async with self._turn_lock:
            async with self._context_lock:
                self._context.reset(self.config.agent.system_prompt)
        logger.info("Context cleared")

    async def set_session_id(self, session_id: str) -> None:
        """
        Switch to another session.

        The current buffer is written out under the old id, then the buffer
        is reset and the new session's history replayed. Not atomic: a
        failure halfway leaves the old session partly written.
        """
        async with self._turn_lock:
            old_session_id = await self.session_id()

            async with self._context_lock:
                current = self._context.snapshot()
            for message in current:
                await self._store(old_session_id, message)

            async with self._context_lock:
                self._context.reset(self.config.agent.system_prompt)
            await self._replay(session_id)

            async with self._session_lock:
                self._session_id = session_id

        logger.info(f"Switched session {old_session_id} -> {session_id}")

    # ==========================================================================
    # Persistence
    # ==========================================================================

    async def _store(self, session_id: str, message: Message) -> None:
        if self.memory is None:
            return
        try:
            await self.memory.add_message(
                session_id,
                message.role.value,
                message.content,
                tool_call_id=message.tool_call_id,
                tool_calls=dump_tool_calls(message.tool_calls),
            )
        except PersistenceError as e:
            logger.warning(f"Could not store {message.role.value} message: {e}")

    async def _replay(self, session_id: str) -> None:
        if self.memory is None:
            return
        try:
            history = await self.memory.get_conversation(
                session_id, self.config.agent.max_context
            )
        except PersistenceError as e:
            logger.warning(f"Could not load history for session {session_id}: {e}")
            return

        async with self._context_lock:
            restored = self._context.replay(history)
        if restored:
            logger.info(f"Replayed {restored} messages for session {session_id}")
