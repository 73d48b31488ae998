"""
Tools System
============

Tools are named, schema-described capabilities the model can invoke via a
structured call. Each tool has:

- a name and a description (shown to the model)
- a JSON Schema for its parameters
- an async execute(params, ctx) function returning a ToolResult

How a tool call flows:
1. The model answers with one or more tool calls
2. The agent parses each call's JSON arguments
3. The registry runs the named tool
4. The result (or error text) goes back to the model as a tool message
5. The model continues, possibly calling more tools

This module provides:
- ToolResult: standardized (success, output, error) result
- ToolContext: per-execution settings (limits, working directory)
- Tool: a tool definition plus its implementation
- ToolRegistry: lookup and execution by name
- build_default_registry(): the built-in tool set for a Config
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from clawgate.errors import ToolNotFoundError
from clawgate.llm import ToolDefinition
from clawgate.utils.config import ToolsConfig
from clawgate.utils.logger import Logger

if TYPE_CHECKING:
    from clawgate.scheduler import Scheduler
    from clawgate.utils.config import Config

logger = Logger("Tools")


@dataclass
class ToolResult:
    """
    Standardized result from tool execution.

    Attributes:
        success: Whether the tool did what was asked
        output: Text handed back to the model on success
        error: Error message if success is False
    """
    success: bool
    output: str = ""
    error: str | None = None

    @classmethod
    def ok(cls, output: str) -> "ToolResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        return {"success": self.success, "output": self.output, "error": self.error}

    def to_message(self) -> str:
        """Format for the model: the output, or "Error: <reason>"."""
        if self.success:
            return self.output
        return f"Error: {self.error or 'unknown error'}"


@dataclass
class ToolContext:
    """
    Settings a tool runs with.

    Attributes:
        config: Whitelists, allowed paths and API keys
        working_dir: Directory shell commands run in
        channel: Channel the conversation came from, if any
        chat_id: Chat within that channel, if any
    """
    config: ToolsConfig = field(default_factory=ToolsConfig)
    working_dir: Path = field(default_factory=Path.cwd)
    channel: str | None = None
    chat_id: str | None = None


ToolFunc = Callable[[dict[str, Any], ToolContext], Awaitable[ToolResult]]


@dataclass
class Tool:
    """
    Definition of a tool plus its implementation.

    Example:
        async def _echo(params: dict, ctx: ToolContext) -> ToolResult:
            return ToolResult.ok(params.get("text", ""))

        echo_tool = Tool(
            name="echo",
            description="Repeat the given text",
            parameters={
                "type": "object",
                "properties": {"text": {"type": "string"}},
                "required": ["text"],
            },
            execute=_echo,
        )
    """
    name: str
    description: str
    parameters: dict
    execute: ToolFunc

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )


class ToolRegistry:
    """
    Registry of available tools, looked up by name.

    Example:
        registry = ToolRegistry()
        registry.register(echo_tool)

        result = await registry.execute("echo", {"text": "hi"}, ToolContext())
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool.

        Raises:
            ValueError: If a tool with this name already exists
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")

        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def definitions(self) -> list[ToolDefinition]:
        """Definitions of every tool, in registration order."""
        return [tool.definition() for tool in self._tools.values()]

    def list_names(self) -> list[str]:
        return list(self._tools.keys())

    def is_empty(self) -> bool:
        return not self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, name: str, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        """
        Execute a tool by name.

        A tool that raises is reported as a failed ToolResult, so a buggy
        tool cannot take down the conversation.

        Raises:
            ToolNotFoundError: If no tool has this name
        """
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name)

        try:
            logger.info(f"Executing tool: {name}")
            return await tool.execute(params, ctx)
        except Exception as e:
            logger.error(f"Tool execution failed: {name}", e)
            return ToolResult.fail(str(e))


def build_default_registry(
    config: "Config",
    scheduler: "Scheduler | None" = None,
) -> ToolRegistry:
    """
    Create the built-in tool set.

    - shell, read_file, write_file, list_dir: always
    - web_search: only with SEARCH_API_KEY
    - scheduler tools: only when a scheduler is passed in
    """
    from clawgate.tools.file_tools import register_file_tools
    from clawgate.tools.scheduler_tools import register_scheduler_tools
    from clawgate.tools.shell import register_shell_tools
    from clawgate.tools.web import register_web_tools

    registry = ToolRegistry()
    register_shell_tools(registry)
    register_file_tools(registry)

    if config.tools.search_api_key:
        register_web_tools(registry, config.tools.search_api_key)

    if scheduler is not None:
        register_scheduler_tools(registry, scheduler)

    logger.info(f"Registered {len(registry)} tools")
    return registry


__all__ = [
    "Tool",
    "ToolContext",
    "ToolResult",
    "ToolRegistry",
    "build_default_registry",
]
