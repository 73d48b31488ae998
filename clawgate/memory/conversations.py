"""
Conversation Log
================

Append-only, per-session conversation history stored as Markdown, one file
per session under memory/conversations/<session>.md:

    # Conversation: 3f2a...

    ## 2026-02-07 12:30:00
    **user**: What's in /tmp?

    ## 2026-02-07 12:30:02
    <!-- meta: {"tool_calls": "[{\\"id\\": \\"call_1\\", ...}]"} -->
    **assistant**:

    ## 2026-02-07 12:30:02
    <!-- meta: {"tool_call_id": "call_1"} -->
    **tool**: [FILE] 12 bytes     notes.txt

The optional meta comment carries what a replay needs to rebuild tool
exchanges; it is invisible when the file is rendered. Content may span
several lines. Continuation lines that look like an entry header, or that
start with a backslash, are written with a leading backslash so they read
back unchanged. Characters UTF-8 cannot encode (lone surrogates) are stored
as "?".
"""

import asyncio
import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from clawgate.errors import PersistenceError
from clawgate.utils.logger import Logger

logger = Logger("Conversations")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_HEADER_RE = re.compile(r"^## (\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})$")
_META_RE = re.compile(r"^<!-- meta: (.*) -->$")
_ROLE_RE = re.compile(r"^\*\*([A-Za-z_]+)\*\*:(?: (.*))?$")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]")
ESCAPE = "\\"


@dataclass
class ConversationMessage:
    """
    One stored message, as handed back on replay.

    Attributes:
        id: Position within the session (0-based)
        role: "system", "user", "assistant" or "tool"
        tool_call_id: Set on tool results
        tool_calls: JSON text of the assistant's tool calls, if any
    """
    id: int
    session_id: str
    role: str
    content: str
    tool_call_id: str | None = None
    tool_calls: str | None = None
    created_at: datetime = field(default_factory=datetime.now)


def session_filename(session_id: str) -> str:
    """Map a session id to a safe file name ("telegram:42" -> "telegram_42.md")."""
    safe = _UNSAFE_CHARS_RE.sub("_", session_id) or "_"
    return f"{safe}.md"


def format_entry(
    role: str,
    content: str,
    tool_call_id: str | None = None,
    tool_calls: str | None = None,
    timestamp: datetime | None = None,
) -> str:
    """Render one message as a Markdown entry."""
    timestamp = timestamp or datetime.now()
    lines = [f"## {timestamp.strftime(TIMESTAMP_FORMAT)}"]

    meta = {}
    if tool_call_id is not None:
        meta["tool_call_id"] = tool_call_id
    if tool_calls is not None:
        meta["tool_calls"] = tool_calls
    if meta:
        lines.append(f"<!-- meta: {json.dumps(meta, ensure_ascii=False)} -->")

    first, *rest = content.split("\n")
    lines.append(f"**{role}**: {first}" if first else f"**{role}**:")
    lines.extend(_escape_line(line) for line in rest)
    return "\n".join(lines) + "\n\n"


def _escape_line(line: str) -> str:
    if line.startswith(ESCAPE) or _HEADER_RE.match(line):
        return ESCAPE + line
    return line


def _unescape_line(line: str) -> str:
    return line[len(ESCAPE):] if line.startswith(ESCAPE) else line


def parse_conversation(text: str, session_id: str) -> list[ConversationMessage]:
    """
    Parse a conversation file back into messages, oldest first.

    Lines that belong to no entry (the title) are ignored.
    """
    messages: list[ConversationMessage] = []
    lines = text.splitlines()
    i = 0

    while i < len(lines):
        header = _HEADER_RE.match(lines[i])
        if not header:
            i += 1
            continue

        created_at = datetime.strptime(header.group(1), TIMESTAMP_FORMAT)
        i += 1

        meta = {}
        if i < len(lines):
            meta_match = _META_RE.match(lines[i])
            if meta_match:
                try:
                    meta = json.loads(meta_match.group(1))
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring unreadable metadata in session {session_id}")
                i += 1

        if i >= len(lines):
            break
        role_match = _ROLE_RE.match(lines[i])
        if not role_match:
            continue
        i += 1

        body = [role_match.group(2) or ""]
        while i < len(lines) and not _HEADER_RE.match(lines[i]):
            body.append(_unescape_line(lines[i]))
            i += 1

        messages.append(ConversationMessage(
            id=len(messages),
            session_id=session_id,
            role=role_match.group(1).lower(),
            content="\n".join(body).rstrip("\n"),
            tool_call_id=meta.get("tool_call_id"),
            tool_calls=meta.get("tool_calls"),
            created_at=created_at,
        ))

    return messages


class ConversationLog:
    """
    Markdown-file conversation history.

    Example:
        log = ConversationLog(Path("memory/conversations"))
        await log.add_message("s1", "user", "Hello")
        history = await log.get_conversation("s1", limit=20)
    """

    def __init__(self, conversations_dir: Path):
        self.conversations_dir = conversations_dir
        self.conversations_dir.mkdir(parents=True, exist_ok=True)
        self._write_lock = asyncio.Lock()

    def path_for(self, session_id: str) -> Path:
        return self.conversations_dir / session_filename(session_id)

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        tool_call_id: str | None = None,
        tool_calls: str | None = None,
    ) -> None:
        """
        Append one message to the session's file.

        Raises:
            PersistenceError: If the file cannot be written
        """
        entry = format_entry(role, content, tool_call_id, tool_calls)
        async with self._write_lock:
            await asyncio.to_thread(self._append_sync, session_id, entry)
        logger.debug(f"Stored {role} message for session {session_id}")

    def _append_sync(self, session_id: str, entry: str) -> None:
        path = self.path_for(session_id)
        try:
            is_new = not path.exists()
            with path.open("a", encoding="utf-8", errors="replace") as f:
                if is_new:
                    f.write(f"# Conversation: {session_id}\n\n")
                f.write(entry)
        except OSError as e:
            raise PersistenceError(f"Cannot write conversation {path}: {e}") from e

    async def get_conversation(self, session_id: str, limit: int) -> list[ConversationMessage]:
        """
        The last `limit` messages of a session, oldest first.

        Raises:
            PersistenceError: If the file exists but cannot be read
        """
        messages = await asyncio.to_thread(self._read_sync, session_id)
        if limit <= 0:
            return []
        return messages[-limit:]

    def _read_sync(self, session_id: str) -> list[ConversationMessage]:
        path = self.path_for(session_id)
        if not path.exists():
            return []
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Cannot read conversation {path}: {e}") from e
        return parse_conversation(text, session_id)

    async def list_sessions(self) -> list[str]:
        """File stems of every stored conversation, sorted."""
        return await asyncio.to_thread(
            lambda: sorted(p.stem for p in self.conversations_dir.glob("*.md"))
        )
