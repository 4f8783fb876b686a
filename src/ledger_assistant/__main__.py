"""CLI entry point for ledger-assistant."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Awaitable, Callable

from ledger_assistant.app import LedgerAssistantApp
from ledger_assistant.assistant.models import ChatContext, ChatRequest
from ledger_assistant.config import AppConfig, load_config
from ledger_assistant.errors import ConfigError
from ledger_assistant.log import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="ledger-assistant",
        description="AI assistant for a multi-tenant accounting ledger",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = _add_command(subparsers, "chat", "Start an interactive chat session")
    chat_parser.add_argument("--session", default=None, help="Resume an existing session id")
    chat_parser.add_argument("--user", type=int, default=None, help="Acting user id")
    chat_parser.add_argument("--module", default=None, help="UI module to report as context")

    _add_command(subparsers, "config-check", "Validate configuration", tenant=False)
    _add_command(subparsers, "usage", "Show today's assistant usage for a tenant")

    history_parser = _add_command(subparsers, "history", "Show chat history for a tenant")
    history_parser.add_argument("--session", default=None, help="Only this session")
    history_parser.add_argument("--take", type=int, default=20, help="Number of messages")

    clear_parser = _add_command(subparsers, "clear-history", "Delete all messages of a session")
    clear_parser.add_argument("--session", required=True, help="Session id to clear")

    _add_command(subparsers, "seed-demo", "Insert demo customers and invoices for a tenant")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "config-check":
        _check_config(args.config, args.env)
        return

    commands: dict[str, Callable[[LedgerAssistantApp, argparse.Namespace], Awaitable[None]]] = {
        "chat": _chat,
        "usage": _usage,
        "history": _history,
        "clear-history": _clear_history,
        "seed-demo": _seed_demo,
    }
    _run(args, commands[args.command])


def _add_command(
    subparsers: argparse._SubParsersAction, name: str, help_text: str, tenant: bool = True
) -> argparse.ArgumentParser:
    command = subparsers.add_parser(name, help=help_text)
    command.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    command.add_argument("-e", "--env", default=".env", help="Path to .env file")
    if tenant:
        command.add_argument("-t", "--tenant", type=int, default=1, help="Tenant (company) id")
    return command


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and .env.example to .env")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load(config_path, env_path)
    assistant = config.assistant
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path}")
    if config.anthropic:
        print(f"  Anthropic: timeout={config.anthropic.timeout}s attempts={config.anthropic.max_retries}")
    else:
        print("  Anthropic: (not configured - chat is unavailable)")
    print(f"  Model: {assistant.defaults.model} (max_tokens={assistant.defaults.max_tokens})")
    print(f"  Daily limit: {assistant.defaults.daily_limit}")
    print(f"  History window: {assistant.history_window} messages")
    print(f"  Row cap: {assistant.max_result_rows}")


def _run(
    args: argparse.Namespace,
    command: Callable[[LedgerAssistantApp, argparse.Namespace], Awaitable[None]],
) -> None:
    config = _load(args.config, args.env)
    setup_logging(config.log_level, config.log_format)

    async def _async_main() -> None:
        app = LedgerAssistantApp(config)
        await app.start()
        try:
            await command(app, args)
        finally:
            await app.stop()

    try:
        asyncio.run(_async_main())
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


async def _chat(app: LedgerAssistantApp, args: argparse.Namespace) -> None:
    orchestrator = app.orchestrator()
    context = ChatContext(current_module=args.module) if args.module else None
    session_id = args.session
    print("Type a message, or 'exit' to quit.")
    while True:
        try:
            text = await asyncio.to_thread(input, "you> ")
        except EOFError:
            break
        text = text.strip()
        if not text:
            continue
        if text.lower() in ("exit", "quit"):
            break

        response = await orchestrator.send_message(
            ChatRequest(message=text, session_id=session_id, context=context),
            tenant_id=args.tenant,
            user_id=args.user,
        )
        session_id = response.session_id
        if not response.success:
            print(f"[{response.error_kind}] {response.error_message}")
            continue
        print(f"assistant> {response.message}")
        if response.interactive:
            for field in response.interactive.fields:
                marker = "*" if field.required else " "
                print(f"  {marker} {field.label} ({field.type})")
        if response.executed_functions:
            print(f"  (functions: {', '.join(response.executed_functions)})")
        for action in response.suggested_actions:
            print(f"  -> {action.title}: {action.url}")
    print(f"Session: {session_id}")


async def _usage(app: LedgerAssistantApp, args: argparse.Namespace) -> None:
    orchestrator = app.orchestrator()
    availability = await orchestrator.check_availability(args.tenant)
    print(f"Tenant {args.tenant}")
    print(f"  Enabled   : {availability.enabled}")
    print(f"  Usage     : {availability.current_usage}/{availability.daily_limit}")
    print(f"  Remaining : {availability.remaining}")
    print(f"  Available : {availability.available}")


async def _history(app: LedgerAssistantApp, args: argparse.Namespace) -> None:
    orchestrator = app.orchestrator()
    if args.session is None:
        listing = await orchestrator.list_sessions(args.tenant)
        print(f"{listing.total_count} sessions")
        for session in listing.sessions:
            print(f"  {session.session_id}  {session.updated_at:%Y-%m-%d %H:%M}  "
                  f"[{session.message_count}] {session.title}")
        return

    page = await orchestrator.get_history(args.tenant, args.session, take=args.take)
    for message in page.messages:
        print(f"[{message.timestamp:%H:%M:%S}] {message.role}: {message.content}")
    if page.has_more:
        print(f"... {page.total_count - len(page.messages)} older messages")


async def _clear_history(app: LedgerAssistantApp, args: argparse.Namespace) -> None:
    deleted = await app.orchestrator().clear_history(args.tenant, args.session)
    print(f"Deleted {deleted} messages from session {args.session}")


async def _seed_demo(app: LedgerAssistantApp, args: argparse.Namespace) -> None:
    customers, invoices = await app.seed_demo(args.tenant)
    print(f"Tenant {args.tenant}: created {customers} customers and {invoices} invoices")


if __name__ == "__main__":
    main()
