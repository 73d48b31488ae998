"""
Long-Term Memory
================

File-backed persistent memory that outlives any single conversation:

- Key/value facts in MEMORY.md, grouped by category
- Daily notes in memory/YYYY-MM-DD.md

File Structure:
    memory/
    ├── MEMORY.md          # Facts, organized by category
    ├── 2026-02-06.md      # Daily notes
    └── 2026-02-07.md

MEMORY.md Format:
    # Long-term Memory

    ## Preferences
    - **standup_time**: 10:00
    - **reply_style**: brief

    ## Projects
    - **current**: API v2 refactor

Why Markdown Files?
- Human-readable and editable
- Version controllable with git
- Transparent: users can see exactly what's stored
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from clawgate.errors import PersistenceError
from clawgate.utils.logger import Logger

logger = Logger("LongTermMemory")

MEMORY_TITLE = "# Long-term Memory\n"
DEFAULT_CATEGORY = "General"

_ENTRY_RE = re.compile(r"^- \*\*(.+?)\*\*: ?(.*)$")


@dataclass
class MemoryEntry:
    key: str
    value: str
    category: str | None = None


class LongTermMemory:
    """
    MEMORY.md facts plus daily notes.

    Example:
        ltm = LongTermMemory(Path("memory"))

        await ltm.save_memory("standup_time", "10:00", "Preferences")
        entry = await ltm.get_memory("standup_time")

        await ltm.append_today("Discussed Q1 planning")
    """

    def __init__(self, memory_dir: Path):
        self.memory_dir = memory_dir
        self.memory_file = memory_dir / "MEMORY.md"
        self.memory_dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    # ==========================================================================
    # Raw file access
    # ==========================================================================

    def _read_sync(self, path: Path) -> str:
        if not path.exists():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e

    def _write_sync(self, path: Path, content: str) -> None:
        try:
            path.write_text(content, encoding="utf-8", errors="replace")
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}") from e

    async def read_long_term(self) -> str:
        """Full contents of MEMORY.md ("" if it does not exist)."""
        return await asyncio.to_thread(self._read_sync, self.memory_file)

    async def write_long_term(self, content: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write_sync, self.memory_file, content)
        logger.info(f"Updated long-term memory: {self.memory_file}")

    # ==========================================================================
    # Key/value facts
    # ==========================================================================

    @staticmethod
    def _parse_entries(content: str) -> list[MemoryEntry]:
        entries = []
        category = None
        for line in content.splitlines():
            if line.startswith("## "):
                category = line[3:].strip()
                continue
            match = _ENTRY_RE.match(line.strip())
            if match:
                entries.append(MemoryEntry(match.group(1), match.group(2).strip(), category))
        return entries

    @staticmethod
    def _upsert(content: str, key: str, value: str, category: str) -> str:
        """Replace key's line wherever it is, or add it under category."""
        lines = (content or MEMORY_TITLE).splitlines()
        entry = f"- **{key}**: {value}"

        for i, line in enumerate(lines):
            match = _ENTRY_RE.match(line.strip())
            if match and match.group(1) == key:
                lines[i] = entry
                return "\n".join(lines) + "\n"

        header = f"## {category}"
        if header not in (line.strip() for line in lines):
            while lines and not lines[-1].strip():
                lines.pop()
            lines.extend(["", header, "", entry])
            return "\n".join(lines) + "\n"

        # Insert after the last entry of the category section
        start = next(i for i, line in enumerate(lines) if line.strip() == header)
        insert_at = start + 1
        for j in range(start + 1, len(lines)):
            if lines[j].startswith("## "):
                break
            if lines[j].strip():
                insert_at = j + 1
        lines.insert(insert_at, entry)
        return "\n".join(lines) + "\n"

    async def save_memory(self, key: str, value: str, category: str | None = None) -> None:
        """
        Store a fact. An existing key is overwritten in place.

        Args:
            key: Fact name (unique across categories)
            value: Single-line value
            category: Section to file a new key under (default "General")
        """
        value = " ".join(value.splitlines())
        async with self._lock:
            content = await asyncio.to_thread(self._read_sync, self.memory_file)
            updated = self._upsert(content, key, value, category or DEFAULT_CATEGORY)
            await asyncio.to_thread(self._write_sync, self.memory_file, updated)
        logger.info(f"Saved memory: {key}")

    async def get_memory(self, key: str) -> MemoryEntry | None:
        content = await self.read_long_term()
        for entry in self._parse_entries(content):
            if entry.key == key:
                return entry
        return None

    async def search_memories(self, query: str, limit: int = 10) -> list[MemoryEntry]:
        """
        Case-insensitive keyword search over keys and values.

        An entry matches if any word of the query occurs in it.
        """
        keywords = query.lower().split()
        if not keywords:
            return []

        content = await self.read_long_term()
        results = []
        for entry in self._parse_entries(content):
            haystack = f"{entry.key} {entry.value}".lower()
            if any(kw in haystack for kw in keywords):
                results.append(entry)
                if len(results) >= limit:
                    break
        return results

    async def delete_memory(self, key: str) -> bool:
        """
        Returns:
            True if the key existed
        """
        async with self._lock:
            content = await asyncio.to_thread(self._read_sync, self.memory_file)
            kept = []
            removed = False
            for line in content.splitlines():
                match = _ENTRY_RE.match(line.strip())
                if match and match.group(1) == key:
                    removed = True
                    continue
                kept.append(line)
            if removed:
                await asyncio.to_thread(self._write_sync, self.memory_file, "\n".join(kept) + "\n")

        if removed:
            logger.info(f"Deleted memory: {key}")
        return removed

    # ==========================================================================
    # Daily notes
    # ==========================================================================

    def today_file(self, date: datetime | None = None) -> Path:
        date = date or datetime.now()
        return self.memory_dir / f"{date.strftime('%Y-%m-%d')}.md"

    async def read_today(self) -> str:
        return await asyncio.to_thread(self._read_sync, self.today_file())

    async def append_today(self, content: str) -> None:
        """Append a timestamped note to today's file, creating it with a title."""
        await asyncio.to_thread(self._append_today_sync, content)
        logger.debug("Wrote to daily notes")

    def _append_today_sync(self, content: str) -> None:
        now = datetime.now()
        path = self.today_file(now)
        try:
            is_new = not path.exists()
            with path.open("a", encoding="utf-8", errors="replace") as f:
                if is_new:
                    f.write(f"# {now.strftime('%Y-%m-%d')}\n\n")
                f.write(f"- [{now.strftime('%H:%M')}] {content}\n")
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}") from e
