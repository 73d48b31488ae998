"""
Agent Package
=============

The conversation loop and its parts:
- core: Agent, AgentResponse
- context: AgentContext (message buffer and trimming)
- tools_executor: ToolExecutor (argument parsing, single-call execution)
"""

from clawgate.agent.context import AgentContext
from clawgate.agent.core import Agent, AgentResponse
from clawgate.agent.tools_executor import ToolCallResult, ToolExecutor

__all__ = [
    "Agent",
    "AgentResponse",
    "AgentContext",
    "ToolExecutor",
    "ToolCallResult",
]
