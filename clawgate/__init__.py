"""
clawgate - Personal AI Agent Gateway
====================================

A conversation loop against pluggable OpenAI-compatible LLM backends, with
tool calling, persistent sessions, a job scheduler and chat-platform
channels.

This package provides:
- Agent conversation loop with tool execution and context management
- Tools: shell, files, web search, scheduling
- Markdown-file memory: per-session conversations, long-term notes
- Scheduler for cron, interval and one-shot jobs
- Slack and Telegram channels
"""

__version__ = "0.1.0"
