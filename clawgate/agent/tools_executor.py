"""
Tool Executor
=============

Handles the execution of tools called by the LLM.

The executor:
1. Parses each tool call's JSON arguments
2. Runs the tool through the registry
3. Formats the outcome as a tool message for the LLM

Tool Execution Loop:
    1. LLM generates response with tool calls
    2. Executor runs each tool, in call order
    3. Results go back to the LLM as tool messages
    4. LLM continues with results (may call more tools)
    5. Repeat until LLM generates final response

Failures are split in two. Malformed arguments mean the model produced
something unusable, so ToolArgumentError aborts the turn. Everything else
(unknown tool, a tool reporting failure, a tool crashing) becomes an
"Error: ..." tool message the model can react to.
"""

import json
from dataclasses import dataclass
from typing import Any

from clawgate.errors import ToolArgumentError, ToolExecutionError, ToolNotFoundError
from clawgate.llm import Message, ToolCall
from clawgate.tools import ToolContext, ToolRegistry, ToolResult
from clawgate.utils.logger import Logger

logger = Logger("ToolExecutor")


@dataclass
class ToolCallResult:
    """
    Result of executing a tool call.

    Attributes:
        tool_call_id: The original tool call ID
        name: The tool name
        result: The tool result
    """
    tool_call_id: str
    name: str
    result: ToolResult

    def to_message(self) -> Message:
        return Message.tool_result(self.tool_call_id, self.result.to_message())


class ToolExecutor:
    """
    Executes tools called by the LLM.

    Example:
        executor = ToolExecutor(registry, ToolContext(config.tools))

        for call in response.message.tool_calls:
            result = await executor.execute_one(call)
            context.append(result.to_message())
    """

    def __init__(self, registry: ToolRegistry, context: ToolContext):
        self.registry = registry
        self.context = context

    @staticmethod
    def parse_arguments(tool_call: ToolCall) -> dict[str, Any]:
        """
        Parse a call's JSON arguments. Blank arguments mean no arguments.

        Raises:
            ToolArgumentError: If the text is not a JSON object
        """
        raw = tool_call.arguments
        if raw is None or not raw.strip():
            return {}

        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ToolArgumentError(tool_call.name, tool_call.id, raw, str(e)) from e

        if not isinstance(arguments, dict):
            raise ToolArgumentError(
                tool_call.name, tool_call.id, raw, "arguments must be a JSON object"
            )
        return arguments

    async def execute_one(self, tool_call: ToolCall) -> ToolCallResult:
        """
        Execute a single tool call.

        Raises:
            ToolArgumentError: If the call's arguments are malformed
        """
        arguments = self.parse_arguments(tool_call)
        logger.info(f"Executing tool: {tool_call.name}", {"arguments": tool_call.arguments})

        try:
            result = await self.registry.execute(tool_call.name, arguments, self.context)
        except ToolNotFoundError as e:
            logger.warning(str(e))
            result = ToolResult.fail(str(e))
        else:
            if result.success:
                logger.debug(f"Tool {tool_call.name} succeeded")
            else:
                logger.warning(f"Tool {tool_call.name} failed: {result.error}")
                result = ToolResult.fail(
                    str(ToolExecutionError(tool_call.name, result.error or "unknown error"))
                )

        return ToolCallResult(
            tool_call_id=tool_call.id,
            name=tool_call.name,
            result=result,
        )
