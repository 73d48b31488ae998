"""
Agent Context
=============

The ordered message buffer the agent sends to the model on every call.

Layout:
    [system prompt, oldest message, ..., newest message]

Position 0 always holds the system prompt (when one is configured). After
each final answer the buffer is trimmed back to the system prompt plus the
`max_context` most recent messages, so long conversations do not grow the
request without bound.

This class does no locking of its own; the Agent guards it.
"""

from dataclasses import dataclass, field

from clawgate.llm import (
    ChatRequest,
    Message,
    Role,
    ToolDefinition,
    Usage,
    load_tool_calls,
)
from clawgate.memory import ConversationMessage
from clawgate.utils.logger import Logger

logger = Logger("Context")


@dataclass
class AgentContext:
    """
    Attributes:
        messages: The buffer, system prompt first
        total_tokens: Provider-reported usage, advisory only
    """
    messages: list[Message] = field(default_factory=list)
    total_tokens: int = 0

    @classmethod
    def seeded(cls, system_prompt: str) -> "AgentContext":
        context = cls()
        context.reset(system_prompt)
        return context

    def __len__(self) -> int:
        return len(self.messages)

    def reset(self, system_prompt: str) -> None:
        """Drop everything except a fresh system prompt."""
        self.messages = [Message.system(system_prompt)] if system_prompt else []

    def append(self, message: Message) -> None:
        self.messages.append(message.copy())

    def snapshot(self) -> list[Message]:
        """Copies of the current messages, safe to hand to a request."""
        return [message.copy() for message in self.messages]

    def add_usage(self, usage: Usage | None) -> None:
        if usage is not None:
            self.total_tokens += usage.total_tokens

    def trim(self, max_context: int) -> int:
        """
        Keep the system prompt plus the newest max_context messages.

        Returns:
            How many messages were dropped
        """
        if len(self.messages) <= max_context + 1:
            return 0

        system = None
        if self.messages and self.messages[0].role == Role.SYSTEM:
            system = self.messages.pop(0)

        dropped = max(0, len(self.messages) - max_context)
        del self.messages[:dropped]

        if system is not None:
            self.messages.insert(0, system)

        logger.debug(f"Trimmed {dropped} messages from context")
        return dropped

    def replay(self, history: list[ConversationMessage]) -> int:
        """
        Append stored history after the system prompt.

        Skipped entries:
        - system entries (the live prompt is already at position 0)
        - tool results without a tool_call_id
        - tool results at the very start, whose assistant call fell
          outside the replay window

        Returns:
            How many messages were appended
        """
        restored: list[Message] = []
        for stored in history:
            role = Role.parse(stored.role)
            if role == Role.SYSTEM:
                continue
            if role == Role.TOOL and not stored.tool_call_id:
                continue
            if role == Role.TOOL and not restored:
                continue

            restored.append(Message(
                role=role,
                content=stored.content,
                tool_calls=load_tool_calls(stored.tool_calls) if role == Role.ASSISTANT else None,
                tool_call_id=stored.tool_call_id if role == Role.TOOL else None,
            ))

        self.messages.extend(restored)
        return len(restored)

    def build_request(
        self,
        model: str,
        tools: list[ToolDefinition],
        temperature: float | None = 0.7,
        max_tokens: int | None = None,
    ) -> ChatRequest:
        """Build a request from a snapshot; tools is None when there are none."""
        return ChatRequest(
            model=model,
            messages=self.snapshot(),
            tools=list(tools) if tools else None,
            temperature=temperature,
            max_tokens=max_tokens,
        )
