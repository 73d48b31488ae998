"""
Memory System
=============

Everything the gateway remembers on disk, under <workspace>/memory/:

1. Conversations (conversations.py)
   - One Markdown file per session, append-only
   - Replayed into the agent's context on startup and session switch

2. Long-Term Memory (long_term.py)
   - Key/value facts in MEMORY.md, grouped by category
   - Daily notes in YYYY-MM-DD.md

MemoryStore is the single facade the agent and CLI talk to.
"""

from pathlib import Path

from clawgate.memory.conversations import ConversationLog, ConversationMessage
from clawgate.memory.long_term import LongTermMemory, MemoryEntry
from clawgate.utils.config import MemoryConfig
from clawgate.utils.logger import Logger

logger = Logger("Memory")


class MemoryStore:
    """
    Facade over the conversation log and long-term memory.

    Example:
        memory = MemoryStore(Path("~/.clawgate").expanduser())

        await memory.add_message("s1", "user", "Hello")
        history = await memory.get_conversation("s1", limit=20)

        await memory.save_memory("timezone", "Europe/Berlin", "Preferences")
    """

    def __init__(self, workspace: Path):
        self.workspace = workspace
        self.memory_dir = workspace / "memory"
        self.conversations = ConversationLog(self.memory_dir / "conversations")
        self.long_term = LongTermMemory(self.memory_dir)
        logger.info(f"Memory store ready: {self.memory_dir}")

    @classmethod
    def from_config(cls, config: MemoryConfig) -> "MemoryStore | None":
        """None when memory is disabled (empty workspace)."""
        if config.workspace is None:
            return None
        return cls(config.workspace)

    # Conversations

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        tool_call_id: str | None = None,
        tool_calls: str | None = None,
    ) -> None:
        await self.conversations.add_message(session_id, role, content, tool_call_id, tool_calls)

    async def get_conversation(self, session_id: str, limit: int) -> list[ConversationMessage]:
        return await self.conversations.get_conversation(session_id, limit)

    async def list_sessions(self) -> list[str]:
        return await self.conversations.list_sessions()

    # Long-term memory

    async def save_memory(self, key: str, value: str, category: str | None = None) -> None:
        await self.long_term.save_memory(key, value, category)

    async def get_memory(self, key: str) -> MemoryEntry | None:
        return await self.long_term.get_memory(key)

    async def search_memories(self, query: str, limit: int = 10) -> list[MemoryEntry]:
        return await self.long_term.search_memories(query, limit)

    async def delete_memory(self, key: str) -> bool:
        return await self.long_term.delete_memory(key)

    async def read_long_term(self) -> str:
        return await self.long_term.read_long_term()

    # Daily notes

    async def append_today(self, content: str) -> None:
        await self.long_term.append_today(content)

    async def read_today(self) -> str:
        return await self.long_term.read_today()


__all__ = [
    "MemoryStore",
    "ConversationLog",
    "ConversationMessage",
    "LongTermMemory",
    "MemoryEntry",
]
