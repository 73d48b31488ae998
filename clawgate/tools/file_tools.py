"""
File Tools
==========

read_file, write_file and list_dir, all confined to the configured allowed
paths (an empty list allows any path). Blocking filesystem calls run in a
worker thread.
"""

import asyncio
from pathlib import Path

from clawgate.tools import Tool, ToolContext, ToolRegistry, ToolResult

MAX_READ_BYTES = 1024 * 1024


def check_path(path: Path, allowed_paths: list[str]) -> str | None:
    """
    Returns:
        None if path lies under one of allowed_paths, otherwise the reason
    """
    if not allowed_paths:
        return None

    resolved = path.expanduser().resolve()
    for allowed in allowed_paths:
        if resolved.is_relative_to(Path(allowed).expanduser().resolve()):
            return None

    return f"Path '{path}' is outside the allowed paths: {', '.join(allowed_paths)}"


def _path_param(params: dict) -> Path | None:
    raw = params.get("path")
    if not isinstance(raw, str) or not raw:
        return None
    return Path(raw).expanduser()


# ==============================================================================
# read_file
# ==============================================================================

def _read(path: Path) -> ToolResult:
    try:
        size = path.stat().st_size
    except OSError as e:
        return ToolResult.fail(f"Cannot read file: {e}")

    if size > MAX_READ_BYTES:
        return ToolResult.fail("File exceeds the 1 MiB limit")

    try:
        return ToolResult.ok(path.read_text(encoding="utf-8", errors="replace"))
    except OSError as e:
        return ToolResult.fail(f"Read failed: {e}")


async def read_file(params: dict, ctx: ToolContext) -> ToolResult:
    path = _path_param(params)
    if path is None:
        return ToolResult.fail("Missing 'path' parameter")

    rejection = check_path(path, ctx.config.allowed_paths)
    if rejection:
        return ToolResult.fail(rejection)

    return await asyncio.to_thread(_read, path)


# ==============================================================================
# write_file
# ==============================================================================

def _write(path: Path, content: str) -> ToolResult:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        return ToolResult.fail(f"Write failed: {e}")
    return ToolResult.ok(f"Wrote {len(content)} characters to {path}")


async def write_file(params: dict, ctx: ToolContext) -> ToolResult:
    path = _path_param(params)
    if path is None:
        return ToolResult.fail("Missing 'path' parameter")

    content = params.get("content")
    if not isinstance(content, str):
        return ToolResult.fail("Missing 'content' parameter")

    rejection = check_path(path, ctx.config.allowed_paths)
    if rejection:
        return ToolResult.fail(rejection)

    return await asyncio.to_thread(_write, path, content)


# ==============================================================================
# list_dir
# ==============================================================================

def _list(path: Path) -> ToolResult:
    try:
        entries = sorted(path.iterdir(), key=lambda p: p.name)
    except OSError as e:
        return ToolResult.fail(f"Cannot read directory: {e}")

    lines = []
    for entry in entries:
        try:
            if entry.is_dir():
                kind, size = "[DIR]", "-"
            elif entry.is_file():
                kind, size = "[FILE]", f"{entry.stat().st_size} bytes"
            else:
                kind, size = "[OTHER]", "-"
        except OSError:
            kind, size = "[UNKNOWN]", "-"
        lines.append(f"{kind} {size:<12} {entry.name}")

    if not lines:
        return ToolResult.ok("(empty directory)")
    return ToolResult.ok("\n".join(lines))


async def list_dir(params: dict, ctx: ToolContext) -> ToolResult:
    path = _path_param(params)
    if path is None:
        return ToolResult.fail("Missing 'path' parameter")

    rejection = check_path(path, ctx.config.allowed_paths)
    if rejection:
        return ToolResult.fail(rejection)

    return await asyncio.to_thread(_list, path)


_PATH_ONLY = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "Path on the local filesystem"},
    },
    "required": ["path"],
}

read_file_tool = Tool(
    name="read_file",
    description="Read a text file (up to 1 MiB).",
    parameters=_PATH_ONLY,
    execute=read_file,
)

write_file_tool = Tool(
    name="write_file",
    description="Write text to a file, replacing it. Parent directories are created.",
    parameters={
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path on the local filesystem"},
            "content": {"type": "string", "description": "Text to write"},
        },
        "required": ["path", "content"],
    },
    execute=write_file,
)

list_dir_tool = Tool(
    name="list_dir",
    description="List the entries of a directory with their type and size.",
    parameters=_PATH_ONLY,
    execute=list_dir,
)


def register_file_tools(registry: ToolRegistry) -> None:
    registry.register(read_file_tool)
    registry.register(write_file_tool)
    registry.register(list_dir_tool)
