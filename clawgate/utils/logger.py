"""
Logger Utility
==============

Context-aware logging for the gateway. Every component owns a named
logger so a single line tells you where it came from:

    [2026-02-07T12:30:00] [INFO] [Agent] Tool iteration 2
    [2026-02-07T12:30:01] [WARN] [Scheduler] No handler 'notify' for job 3f2a...

Features:
1. Log levels (DEBUG, INFO, WARNING, ERROR) filtered by LOG_LEVEL
2. Timestamps and color-coded level tags
3. Child loggers for nested contexts ("Agent:ToolExec")
4. Optional structured data printed as JSON under the line

Usage:
    from clawgate.utils.logger import Logger

    logger = Logger("Scheduler")
    logger.info("Scheduler started")
    logger.debug("Job registered", {"job_id": job.id, "trigger": "cron"})
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Log levels with numeric values for comparison."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class Colors:
    """ANSI escape codes for colored terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"


_LEVEL_NAMES = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARNING": LogLevel.WARNING,
    "WARN": LogLevel.WARNING,
    "ERROR": LogLevel.ERROR,
}

# Process-wide override set by set_log_level(); None means "read LOG_LEVEL"
_level_override: LogLevel | None = None


def parse_log_level(value: str | None) -> LogLevel:
    """
    Parse a level name such as "debug" or "WARN".

    Unknown or empty values fall back to INFO.
    """
    if not value:
        return LogLevel.INFO
    return _LEVEL_NAMES.get(value.strip().upper(), LogLevel.INFO)


def set_log_level(value: str | LogLevel) -> None:
    """
    Set the minimum level for every logger in the process.

    Called once by the CLI after configuration is loaded, so that a
    LOG_LEVEL coming from a --config file also applies.
    """
    global _level_override
    if isinstance(value, LogLevel):
        _level_override = value
    else:
        _level_override = parse_log_level(value)


def _current_level() -> LogLevel:
    if _level_override is not None:
        return _level_override
    return parse_log_level(os.getenv("LOG_LEVEL"))


def _use_color(stream) -> bool:
    if os.getenv("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class Logger:
    """
    A context-aware logger with colored output.

    Example:
        logger = Logger("Agent")
        logger.info("Agent ready")

        tool_logger = logger.child("ToolExec")
        tool_logger.debug("Running tool", {"name": "shell"})
        # -> [Agent:ToolExec] Running tool
    """

    def __init__(self, context: str = ""):
        """
        Args:
            context: Prefix for all log messages (e.g., "Agent", "Memory")
        """
        self.context = context

    def child(self, child_context: str) -> "Logger":
        """Create a child logger whose context is "<parent>:<child>"."""
        new_context = f"{self.context}:{child_context}" if self.context else child_context
        return Logger(new_context)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= _current_level()

    def _format_message(self, level: str, message: str, color: str, colored: bool) -> str:
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""

        if not colored:
            return f"[{timestamp}] [{level}] {context_str}{message}"

        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _log(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        if not self.is_enabled_for(level):
            return

        # Logs go to stderr so stdout stays clean for CLI output
        stream = sys.stderr
        colored = _use_color(stream)
        print(self._format_message(level_name, message, color, colored), file=stream)

        if data:
            data_str = json.dumps(data, indent=2, default=str, ensure_ascii=False)
            if colored:
                data_str = f"{Colors.DIM}{data_str}{Colors.RESET}"
            print(data_str, file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a debug message (only shown when LOG_LEVEL=DEBUG)."""
        self._log(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log an info message."""
        self._log(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a warning: something went wrong but operation continues."""
        self._log(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    def error(self, message: str, error: BaseException | None = None) -> None:
        """
        Log an error message.

        Args:
            message: The error message
            error: Optional exception whose type and text are attached
        """
        data = None
        if error is not None:
            data = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        self._log(LogLevel.ERROR, "ERROR", Colors.ERROR, message, data)


# Default logger for code that has no better context
logger = Logger("clawgate")
