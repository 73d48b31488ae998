"""
Error types shared across the gateway.

Only some of these ever reach a caller of Agent.chat(): ProviderError,
ToolArgumentError and IterationLimitError abort a turn. Tool failures are
folded back into the conversation, and PersistenceError is logged and
dropped by the components that raise it.
"""


class ClawgateError(Exception):
    """Base class for all gateway errors."""


class ConfigError(ClawgateError):
    """Configuration is missing or invalid."""


class ProviderError(ClawgateError):
    """
    The LLM backend failed (network, HTTP status, malformed reply).

    Attributes:
        provider: Name of the provider that failed, if known
    """

    def __init__(self, message: str, provider: str = ""):
        self.provider = provider
        prefix = f"[{provider}] " if provider else ""
        super().__init__(f"{prefix}{message}")


class ToolArgumentError(ClawgateError):
    """
    A tool call carried arguments that are not valid JSON.

    Attributes:
        tool_name: The tool the model tried to call
        tool_call_id: Id of the offending call
        raw_arguments: The text that failed to parse
    """

    def __init__(self, tool_name: str, tool_call_id: str, raw_arguments: str, reason: str = ""):
        self.tool_name = tool_name
        self.tool_call_id = tool_call_id
        self.raw_arguments = raw_arguments
        detail = f": {reason}" if reason else ""
        super().__init__(f"Malformed arguments for tool '{tool_name}' (call {tool_call_id}){detail}")


class ToolNotFoundError(ClawgateError):
    """No tool with this name is registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ToolExecutionError(ClawgateError):
    """A tool ran and reported failure."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(f"Tool '{name}' failed: {message}")


class IterationLimitError(ClawgateError):
    """
    The tool-calling loop did not reach a final answer in time.

    Attributes:
        limit: The iteration ceiling that was exceeded
    """

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Too many iterations: no final answer after {limit} model calls")


class PersistenceError(ClawgateError):
    """Reading or writing durable state failed."""


class SchedulerError(ClawgateError):
    """A job could not be registered with the timing backend."""
