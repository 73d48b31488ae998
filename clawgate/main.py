"""
clawgate - Main Entry Point
===========================

Command-line interface for the gateway:

    clawgate [--config PATH] agent [--prompt TEXT] [--session ID]
    clawgate [--config PATH] gateway [--channel NAME]
    clawgate [--config PATH] status
    clawgate [--config PATH] init [--force]
    clawgate [--config PATH] tool NAME [--args JSON]

agent:   interactive chat in the terminal ("exit"/"quit", "clear", "status")
gateway: run the scheduler and the configured chat channels until stopped
status:  show which providers, channels and tools are configured
init:    write a .env template (to --config, or ./.env)
tool:    run a single tool directly, bypassing the LLM

Run with:
    python -m clawgate.main agent

Or after installing:
    clawgate agent
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

from clawgate import __version__
from clawgate.errors import ClawgateError, ConfigError, ToolNotFoundError
from clawgate.utils.config import Config, get_config, write_env_template
from clawgate.utils.logger import Logger, set_log_level

main_logger = Logger("Main")

EXIT_COMMANDS = {"exit", "quit"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clawgate",
        description="Personal AI agent gateway",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to a .env configuration file")

    sub = parser.add_subparsers(dest="command", required=True)

    agent = sub.add_parser("agent", help="Chat with the agent in the terminal.")
    agent.add_argument("--prompt", "-p", help="Send this message first")
    agent.add_argument("--session", "-s", help="Session id to resume (default: new session)")

    gateway = sub.add_parser("gateway", help="Run the scheduler and chat channels.")
    gateway.add_argument("--channel", "-c", help="Only start this channel (slack, telegram)")

    sub.add_parser("status", help="Show configuration status.")

    init = sub.add_parser("init", help="Write a .env configuration template.")
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    tool = sub.add_parser("tool", help="Run a tool directly.")
    tool.add_argument("name", help="Tool name, e.g. shell or read_file")
    tool.add_argument("--args", "-a", default="{}", help="Tool arguments as a JSON object")

    return parser


# ==============================================================================
# Component wiring
# ==============================================================================

def _build_scheduler(config: Config):
    if not config.scheduler.enabled:
        return None
    from clawgate.scheduler import Scheduler
    return Scheduler.from_config(config.scheduler)


def _create_channel(name: str, config: Config):
    """
    Raises:
        ConfigError: For unknown or unconfigured channels
    """
    if name == "telegram":
        from clawgate.channels.telegram import TelegramChannel
        return TelegramChannel(config.telegram)
    if name == "slack":
        from clawgate.channels.slack import SlackChannel
        return SlackChannel(config.slack)
    raise ConfigError(f"Unknown channel: {name}")


def _configured_channels(config: Config) -> list[str]:
    names = []
    if config.telegram.is_configured:
        names.append("telegram")
    if config.slack.is_configured:
        names.append("slack")
    return names


# ==============================================================================
# Commands
# ==============================================================================

async def cmd_agent(config: Config, args: argparse.Namespace) -> int:
    from clawgate.agent import Agent
    from clawgate.llm import LLMManager
    from clawgate.memory import MemoryStore
    from clawgate.scheduler import ReminderHandler
    from clawgate.tools import ToolContext, build_default_registry

    llm = LLMManager.from_config(config)
    memory = MemoryStore.from_config(config.memory)
    scheduler = _build_scheduler(config)
    tools = build_default_registry(config, scheduler)

    agent = await Agent.create(config, llm, tools, memory, session_id=args.session)
    session_id = await agent.session_id()
    agent.executor.context = ToolContext(
        config=config.tools,
        working_dir=Path.cwd(),
        channel="cli",
        chat_id=session_id,
    )

    async def print_reminder(channel: str, chat_id: str, text: str) -> None:
        print(f"\n⏰ {text}\n")

    if scheduler is not None:
        await scheduler.register_handler(ReminderHandler(print_reminder))
        await scheduler.start()

    print(f"clawgate agent (session {session_id})")
    print("Type 'exit' or 'quit' to leave, 'clear' to reset the context, 'status' for info.\n")

    async def ask(text: str) -> None:
        try:
            response = await agent.chat(text)
        except ClawgateError as e:
            print(f"Error: {e}\n", file=sys.stderr)
            return
        print(f"\nAssistant: {response.content}\n")

    try:
        if args.prompt:
            print(f"You: {args.prompt}")
            await ask(args.prompt)

        while True:
            try:
                line = await asyncio.to_thread(input, "You: ")
            except EOFError:
                print("\nBye!")
                break

            text = line.strip()
            if not text:
                continue

            command = text.lower()
            if command in EXIT_COMMANDS:
                print("Bye!")
                break
            if command == "clear":
                await agent.clear_context()
                print("Context cleared.\n")
                continue
            if command == "status":
                print(f"Session: {await agent.session_id()}")
                print(f"Context messages: {await agent.context_length()}")
                print(f"Tokens used: {await agent.total_tokens()}\n")
                continue

            await ask(text)
    finally:
        if scheduler is not None:
            await scheduler.stop()

    return 0


async def cmd_gateway(config: Config, args: argparse.Namespace) -> int:
    from clawgate.agent import Agent
    from clawgate.channels import ChannelManager, IncomingMessage
    from clawgate.llm import LLMManager
    from clawgate.memory import MemoryStore
    from clawgate.scheduler import ReminderHandler
    from clawgate.tools import ToolContext, build_default_registry

    main_logger.info("Starting clawgate gateway...")

    llm = LLMManager.from_config(config)
    memory = MemoryStore.from_config(config.memory)
    scheduler = _build_scheduler(config)
    tools = build_default_registry(config, scheduler)

    async def make_agent(message: IncomingMessage) -> Agent:
        tool_context = ToolContext(
            config=config.tools,
            working_dir=Path.cwd(),
            channel=message.channel,
            chat_id=message.chat_id,
        )
        return await Agent.create(
            config, llm, tools, memory,
            session_id=message.conversation_key,
            tool_context=tool_context,
        )

    manager = ChannelManager(make_agent)

    names = [args.channel] if args.channel else _configured_channels(config)
    for name in names:
        try:
            manager.register(_create_channel(name, config))
        except ConfigError as e:
            main_logger.warning(f"Could not create channel '{name}': {e}")

    if not manager.list_channels():
        main_logger.warning("No channels configured. Set TELEGRAM_BOT_TOKEN or SLACK_* first.")
        return 1

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        if scheduler is not None:
            await scheduler.register_handler(ReminderHandler(manager.send))
            await scheduler.start()

        await manager.start_all()
        main_logger.info("clawgate gateway is running! Press Ctrl+C to stop.")
        await stop_event.wait()
    finally:
        main_logger.info("Shutting down...")
        await manager.stop_all()
        if scheduler is not None:
            await scheduler.stop()
        main_logger.info("Shutdown complete")

    return 0


def _mark(ok: bool) -> str:
    return "✅" if ok else "❌"


async def cmd_status(config: Config) -> int:
    print("clawgate status\n")

    print("Agent:")
    print(f"  Default provider: {config.agent.default_provider}")
    print(f"  Default model: {config.agent.default_model}")
    print(f"  Max context: {config.agent.max_context}")
    print(f"  Max iterations: {config.agent.max_iterations}")

    print("\nLLM providers:")
    for name, provider in config.llm.providers().items():
        suffix = "" if provider.is_configured else " (not configured)"
        print(f"  {_mark(provider.is_configured)} {name}{suffix}")

    print("\nChannels:")
    print(f"  {_mark(config.telegram.is_configured)} telegram")
    print(f"  {_mark(config.slack.is_configured)} slack")

    print("\nTools:")
    print(f"  Shell whitelist: {', '.join(config.tools.shell_whitelist) or '(any command)'}")
    print(f"  Allowed paths: {', '.join(config.tools.allowed_paths) or '(any path)'}")
    print(f"  {_mark(bool(config.tools.search_api_key))} web_search")

    print("\nMemory:")
    if config.memory.workspace is None:
        print("  Disabled")
    else:
        print(f"  Workspace: {config.memory.workspace}")

    print("\nScheduler:")
    if not config.scheduler.enabled:
        print("  Disabled")
    else:
        scheduler = _build_scheduler(config)
        jobs = await scheduler.list_jobs()
        print(f"  State file: {config.scheduler.state_file or '(in memory)'}")
        print(f"  Stored jobs: {len(jobs)}")

    print("\nRun `clawgate agent` to chat, `clawgate gateway` to serve channels.")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    path = Path(args.config).expanduser() if args.config else Path(".env")

    if not write_env_template(path, force=args.force):
        print(f"Config file already exists: {path}")
        print("Use --force to overwrite")
        return 1

    print(f"Created config file: {path}")
    print("\nEdit it and add at least one API key:")
    print("  - OPENROUTER_API_KEY")
    print("  - DEEPSEEK_API_KEY")
    print("  - TELEGRAM_BOT_TOKEN (for the Telegram channel)")
    return 0


async def cmd_tool(config: Config, args: argparse.Namespace) -> int:
    from clawgate.tools import ToolContext, build_default_registry

    try:
        params = json.loads(args.args)
    except json.JSONDecodeError as e:
        print(f"Error: --args is not valid JSON: {e}", file=sys.stderr)
        return 2
    if not isinstance(params, dict):
        print("Error: --args must be a JSON object", file=sys.stderr)
        return 2

    registry = build_default_registry(config, _build_scheduler(config))
    ctx = ToolContext(config=config.tools, working_dir=Path.cwd())

    print(f"Running tool: {args.name}\n")
    try:
        result = await registry.execute(args.name, params, ctx)
    except ToolNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(f"Available tools: {', '.join(registry.list_names())}", file=sys.stderr)
        return 1

    if result.success:
        print(f"✅ Success:\n{result.output}")
        return 0

    print(f"❌ Failed:\n{result.error}")
    return 1


async def main(argv: list[str] | None = None) -> int:
    """
    Main async entry point.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    # init writes the config file, so it must not require one
    if args.command == "init":
        return cmd_init(args)

    try:
        config = get_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    set_log_level(config.log_level)

    try:
        if args.command == "agent":
            return await cmd_agent(config, args)
        if args.command == "gateway":
            return await cmd_gateway(config, args)
        if args.command == "status":
            return await cmd_status(config)
        if args.command == "tool":
            return await cmd_tool(config, args)
    except ConfigError as e:
        main_logger.error("Configuration error", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 2


def run():
    """
    Synchronous entry point.

    This is called when running with the `clawgate` command.
    """
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
