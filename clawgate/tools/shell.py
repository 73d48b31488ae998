"""
Shell Tool
==========

Runs a command in the tool context's working directory.

Only commands whose program name (path stripped) is on the configured
whitelist may run. A whitelisted command is split with shlex and executed
directly, without a shell, so operators such as `;`, `|` or `$(...)` reach
the program as plain arguments. An empty whitelist allows everything and
runs the command through `sh -c`. Commands are killed after a timeout
(default 30 seconds).
"""

import asyncio
import os
import shlex

from clawgate.tools import Tool, ToolContext, ToolRegistry, ToolResult
from clawgate.utils.logger import Logger

logger = Logger("ShellTool")

NO_OUTPUT = "Command succeeded (no output)"


def check_whitelist(command: str, whitelist: list[str]) -> str | None:
    """
    Check a command line against the whitelist.

    Returns:
        None if allowed, otherwise the reason it was rejected
    """
    if not whitelist:
        return None

    try:
        parts = shlex.split(command)
    except ValueError as e:
        return f"Cannot parse command: {e}"
    if not parts:
        return "Empty command"

    program = os.path.basename(parts[0])
    if program not in whitelist:
        return f"Command '{program}' is not whitelisted. Allowed: {', '.join(whitelist)}"
    return None


async def _spawn(command: str, whitelist: list[str], ctx: ToolContext) -> asyncio.subprocess.Process:
    if whitelist:
        return await asyncio.create_subprocess_exec(
            *shlex.split(command),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=ctx.working_dir,
        )
    return await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=ctx.working_dir,
    )


async def run_shell(params: dict, ctx: ToolContext) -> ToolResult:
    command = params.get("command")
    if not isinstance(command, str):
        return ToolResult.fail("Missing 'command' parameter")

    timeout = params.get("timeout") or ctx.config.shell_timeout_secs
    try:
        timeout = int(timeout)
    except (TypeError, ValueError):
        return ToolResult.fail(f"Invalid timeout: {timeout}")

    rejection = check_whitelist(command, ctx.config.shell_whitelist)
    if rejection:
        logger.warning(f"Rejected command: {command}")
        return ToolResult.fail(rejection)

    logger.debug(f"Running: {command}", {"cwd": str(ctx.working_dir), "timeout": timeout})

    try:
        process = await _spawn(command, ctx.config.shell_whitelist, ctx)
    except OSError as e:
        return ToolResult.fail(f"Failed to start command: {e}")

    try:
        stdout_raw, stderr_raw = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return ToolResult.fail(f"Command timed out after {timeout}s")

    stdout = stdout_raw.decode(errors="replace")
    stderr = stderr_raw.decode(errors="replace")

    if process.returncode != 0:
        return ToolResult.fail(
            f"Exit code: {process.returncode}\nstdout: {stdout}\nstderr: {stderr}"
        )

    return ToolResult.ok(stdout or stderr or NO_OUTPUT)


shell_tool = Tool(
    name="shell",
    description="Run a shell command. Only whitelisted programs are allowed.",
    parameters={
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The command to run",
            },
            "timeout": {
                "type": "integer",
                "description": "Timeout in seconds (default 30)",
                "default": 30,
            },
        },
        "required": ["command"],
    },
    execute=run_shell,
)


def register_shell_tools(registry: ToolRegistry) -> None:
    registry.register(shell_tool)
