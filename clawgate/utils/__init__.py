"""
Utilities Module
================

Common utilities shared across the application:
- logger: Structured logging with levels and context
- config: Centralized configuration management
"""

from clawgate.utils.config import Config, get_config
from clawgate.utils.logger import Logger, logger

__all__ = ["Logger", "logger", "get_config", "Config"]
