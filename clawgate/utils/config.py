"""
Configuration Management
========================

Centralized configuration for the gateway. Everything comes from the
environment, optionally seeded from a .env file, and is exposed as typed,
frozen dataclasses:

    from clawgate.utils.config import get_config

    config = get_config()
    print(config.agent.default_model)
    print(config.llm.openrouter.api_key)

The CLI passes `--config <path>` through to `load_config(env_file=...)`;
otherwise the nearest .env file (searched upwards from the working
directory) is used. Values already present in the process environment win
over the file.

Nothing here is required at load time: a gateway with no provider keys can
still run `status`, `init` and `tool`. Missing credentials are reported by
the component that needs them (see LLMManager.from_config).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from clawgate.errors import ConfigError
from clawgate.utils.logger import Logger

logger = Logger("Config")


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. "
    "You can use tools to complete the user's requests."
)


def _optional(name: str, default: str) -> str:
    return os.getenv(name) or default


def _optional_or_none(name: str) -> str | None:
    value = os.getenv(name)
    return value if value else None


def _optional_int(name: str, default: int) -> int:
    """Get an integer variable; invalid values fall back to the default."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"{name} is not a valid integer, using default: {default}")
        return default


def _optional_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"{name} is not a valid number, using default: {default}")
        return default


def _optional_bool(name: str, default: bool) -> bool:
    """True for 'true', '1', 'yes' or 'on' (case-insensitive)."""
    value = os.getenv(name)
    if not value:
        return default
    return value.strip().lower() in {"true", "1", "yes", "on"}


def _optional_list(name: str, default: list[str]) -> list[str]:
    """Comma-separated list; an explicitly empty value yields []."""
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class AgentConfig:
    """Conversation loop settings."""
    system_prompt: str
    max_context: int        # Messages kept after trimming, excluding the system prompt
    max_iterations: int     # Provider round-trips allowed per chat turn
    default_provider: str
    default_model: str
    temperature: float
    max_tokens: int | None


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and endpoint for one OpenAI-compatible vendor."""
    api_key: str | None
    base_url: str | None
    default_model: str | None
    timeout_secs: int

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key or self.base_url)


@dataclass(frozen=True)
class LLMConfig:
    """All known providers, keyed by attribute name."""
    openrouter: ProviderConfig
    deepseek: ProviderConfig
    moonshot: ProviderConfig
    vllm: ProviderConfig
    openai: ProviderConfig

    def providers(self) -> dict[str, ProviderConfig]:
        return {
            "openrouter": self.openrouter,
            "deepseek": self.deepseek,
            "moonshot": self.moonshot,
            "vllm": self.vllm,
            "openai": self.openai,
        }


@dataclass(frozen=True)
class ToolsConfig:
    """Limits for the built-in tools."""
    shell_whitelist: list[str] = field(default_factory=lambda: ["echo", "cat", "ls"])
    allowed_paths: list[str] = field(default_factory=lambda: ["/home", "/tmp"])
    search_api_key: str | None = None
    shell_timeout_secs: int = 30


@dataclass(frozen=True)
class MemoryConfig:
    """Where conversations and notes are stored (empty path disables memory)."""
    workspace: Path | None


@dataclass(frozen=True)
class SchedulerConfig:
    """Background job scheduler."""
    enabled: bool
    state_file: Path | None  # None keeps jobs in memory only


@dataclass(frozen=True)
class SlackConfig:
    bot_token: str | None       # xoxb-...
    app_token: str | None       # xapp-... for Socket Mode
    signing_secret: str | None

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token and self.app_token)


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str | None

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token)


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

        config = get_config()
        config.agent.max_context
        config.llm.deepseek.api_key
        config.scheduler.state_file
    """
    agent: AgentConfig
    llm: LLMConfig
    tools: ToolsConfig
    memory: MemoryConfig
    scheduler: SchedulerConfig
    slack: SlackConfig
    telegram: TelegramConfig
    log_level: str
    env_file: Path | None = None


# Default endpoints for the OpenAI-compatible vendors
DEFAULT_BASE_URLS = {
    "openrouter": "https://openrouter.ai/api/v1",
    "deepseek": "https://api.deepseek.com/v1",
    "moonshot": "https://api.moonshot.cn/v1",
    "vllm": None,
    "openai": None,
}


def _provider(prefix: str) -> ProviderConfig:
    return ProviderConfig(
        api_key=_optional_or_none(f"{prefix}_API_KEY"),
        base_url=_optional_or_none(f"{prefix}_BASE_URL"),
        default_model=_optional_or_none(f"{prefix}_MODEL"),
        timeout_secs=_optional_int(f"{prefix}_TIMEOUT_SECS", 60),
    )


def default_workspace() -> Path:
    return Path.home() / ".clawgate"


def load_config(env_file: str | Path | None = None) -> Config:
    """
    Load configuration from the environment.

    Args:
        env_file: Explicit .env file. When given it must exist.

    Raises:
        ConfigError: If env_file is given but missing
    """
    resolved: Path | None = None
    if env_file is not None:
        resolved = Path(env_file).expanduser()
        if not resolved.exists():
            raise ConfigError(f"Config file not found: {resolved}")
        load_dotenv(resolved)
    else:
        load_dotenv()

    workspace_raw = os.getenv("CLAWGATE_WORKSPACE")
    if workspace_raw is None:
        workspace = default_workspace()
    elif workspace_raw.strip() == "":
        workspace = None
    else:
        workspace = Path(workspace_raw).expanduser()

    state_raw = os.getenv("SCHEDULER_STATE_FILE")
    if state_raw:
        state_file = Path(state_raw).expanduser()
    elif workspace is not None:
        state_file = workspace / "cron_jobs.json"
    else:
        state_file = None

    max_tokens = _optional_int("AGENT_MAX_TOKENS", 0)

    return Config(
        agent=AgentConfig(
            system_prompt=_optional("AGENT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            max_context=_optional_int("AGENT_MAX_CONTEXT", 20),
            max_iterations=_optional_int("AGENT_MAX_ITERATIONS", 10),
            default_provider=_optional("AGENT_DEFAULT_PROVIDER", "openrouter"),
            default_model=_optional("AGENT_DEFAULT_MODEL", "openai/gpt-4o-mini"),
            temperature=_optional_float("AGENT_TEMPERATURE", 0.7),
            max_tokens=max_tokens or None,
        ),
        llm=LLMConfig(
            openrouter=_provider("OPENROUTER"),
            deepseek=_provider("DEEPSEEK"),
            moonshot=_provider("MOONSHOT"),
            vllm=_provider("VLLM"),
            openai=_provider("OPENAI"),
        ),
        tools=ToolsConfig(
            shell_whitelist=_optional_list("TOOLS_SHELL_WHITELIST", ["echo", "cat", "ls"]),
            allowed_paths=_optional_list("TOOLS_ALLOWED_PATHS", ["/home", "/tmp"]),
            search_api_key=_optional_or_none("SEARCH_API_KEY"),
            shell_timeout_secs=_optional_int("TOOLS_SHELL_TIMEOUT_SECS", 30),
        ),
        memory=MemoryConfig(workspace=workspace),
        scheduler=SchedulerConfig(
            enabled=_optional_bool("SCHEDULER_ENABLED", True),
            state_file=state_file,
        ),
        slack=SlackConfig(
            bot_token=_optional_or_none("SLACK_BOT_TOKEN"),
            app_token=_optional_or_none("SLACK_APP_TOKEN"),
            signing_secret=_optional_or_none("SLACK_SIGNING_SECRET"),
        ),
        telegram=TelegramConfig(
            bot_token=_optional_or_none("TELEGRAM_BOT_TOKEN"),
        ),
        log_level=_optional("LOG_LEVEL", "info"),
        env_file=resolved,
    )


# ==============================================================================
# Singleton
# ==============================================================================

_config_instance: Config | None = None


def get_config(env_file: str | Path | None = None) -> Config:
    """
    Get the singleton configuration instance.

    The first call loads it (optionally from env_file); later calls return
    the cached object and ignore env_file.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config(env_file)
    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration (used by tests and `init`)."""
    global _config_instance
    _config_instance = None


# ==============================================================================
# .env template for `clawgate init`
# ==============================================================================

ENV_TEMPLATE = """# clawgate configuration
# Values already set in the environment take precedence over this file.

# --- Agent ---
AGENT_DEFAULT_PROVIDER=openrouter
AGENT_DEFAULT_MODEL=openai/gpt-4o-mini
AGENT_MAX_CONTEXT=20
AGENT_MAX_ITERATIONS=10
# AGENT_SYSTEM_PROMPT=You are a helpful AI assistant.

# --- LLM providers (configure at least one) ---
OPENROUTER_API_KEY=
# DEEPSEEK_API_KEY=
# MOONSHOT_API_KEY=
# OPENAI_API_KEY=
# VLLM_BASE_URL=http://localhost:8000/v1

# --- Tools ---
TOOLS_SHELL_WHITELIST=echo,cat,ls
TOOLS_ALLOWED_PATHS=/home,/tmp
# SEARCH_API_KEY=

# --- Memory & scheduler ---
# CLAWGATE_WORKSPACE=~/.clawgate
SCHEDULER_ENABLED=true

# --- Channels ---
# TELEGRAM_BOT_TOKEN=
# SLACK_BOT_TOKEN=
# SLACK_APP_TOKEN=
# SLACK_SIGNING_SECRET=

LOG_LEVEL=info
"""


def write_env_template(path: Path, force: bool = False) -> bool:
    """
    Write ENV_TEMPLATE to path.

    Returns:
        False if the file exists and force is not set, True otherwise
    """
    if path.exists() and not force:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(ENV_TEMPLATE)
    logger.info(f"Wrote config template to {path}")
    return True
