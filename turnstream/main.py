"""
Main entry point for turnstream.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import ConfigManager, get_config
from .constants import APP_NAME, APP_VERSION, APP_DESCRIPTION
from .engine.projection import AssistantMessageProjection
from .errors import (
    ErrorResult,
    ErrorType,
    PermissionActionError,
    TransportError,
    UnauthorizedError,
    describe_error,
)
from .history.db import Database, SQLiteMessageStore
from .rich_ui.turn_renderer import TurnView
from .session import ChatSession
from .transport.agent_client import AgentClient
from .utils import format_json


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNAUTHORIZED = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=APP_DESCRIPTION
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"{APP_NAME} {APP_VERSION}"
    )

    parser.add_argument(
        "--url",
        type=str,
        help="Agent backend base URL"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to config file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser("chat", help="Send a message and stream the reply")
    chat.add_argument("message", type=str, help="Message to send")
    chat.add_argument("--agent", type=str, help="Agent to talk to")
    chat.add_argument("--conversation", type=str, help="Continue an existing conversation")
    decision = chat.add_mutually_exclusive_group()
    decision.add_argument(
        "--approve-all",
        action="store_true",
        help="Approve every permission request of the turn"
    )
    decision.add_argument(
        "--deny-all",
        action="store_true",
        help="Deny every permission request of the turn"
    )
    chat.add_argument(
        "--json",
        action="store_true",
        help="Print the final message as JSON instead of rendering it"
    )
    chat.add_argument(
        "--no-save",
        action="store_true",
        help="Do not store the conversation locally"
    )

    permission = subparsers.add_parser("permission", help="Answer or inspect a permission request")
    permission.add_argument("action", choices=["approve", "deny", "show"])
    permission.add_argument("permission_id", type=str)

    return parser


def setup_logging(console: Console, debug: bool) -> None:
    """Route log records through rich; only warnings unless debugging."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=debug)],
        force=True,
    )


class ConsoleErrorReporter:
    """Error reporter that prints to the console and remembers what it saw."""

    def __init__(self, console: Console) -> None:
        self._console = console
        self.reported: list[ErrorResult] = []

    def __call__(self, result: ErrorResult) -> None:
        self.reported.append(result)
        style = "yellow" if result.recoverable else "red"
        self._console.print(f"[{style}]✗ {result.message}[/{style}]")
        if result.action:
            self._console.print(f"  [dim]{result.action}[/dim]")

    @property
    def failed(self) -> bool:
        return any(r.error_type is not ErrorType.PERMISSION_ACTION for r in self.reported)


class AutoDecider:
    """Answers every new permission request of a session with a fixed decision."""

    def __init__(self, session: ChatSession, approve: bool) -> None:
        self._session = session
        self._approve = approve
        self._seen: set[str] = set()
        self._tasks: list[asyncio.Task] = []

    def __call__(self, projection: AssistantMessageProjection) -> None:
        engine = self._session.current_turn
        if engine is None:
            return
        for permission in engine.context.permissions.awaiting:
            if permission.permission_id in self._seen:
                continue
            self._seen.add(permission.permission_id)
            action = self._session.approve if self._approve else self._session.deny
            self._tasks.append(asyncio.ensure_future(action(permission.permission_id)))

    async def wait(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks)


async def run_chat(args: argparse.Namespace, manager: ConfigManager, console: Console) -> int:
    """Stream one turn and render it."""
    reporter = ConsoleErrorReporter(console)
    store = None
    if manager.history.enabled and not args.no_save:
        store = SQLiteMessageStore(Database(manager.history.db_path))

    client = AgentClient(manager.agent)
    session = ChatSession(
        client,
        conversation_id=args.conversation,
        agent_id=args.agent,
        store=store,
        stream_config=manager.stream,
        error_reporter=reporter,
    )
    if args.conversation:
        session.load_history()

    decider = None
    if args.approve_all or args.deny_all:
        decider = AutoDecider(session, approve=args.approve_all)

    view: Optional[TurnView] = None

    def on_update(projection: AssistantMessageProjection) -> None:
        if view is not None:
            view.update(projection)
        if decider is not None:
            decider(projection)

    try:
        if args.json:
            projection = await session.send_message(args.message, on_update=on_update)
        else:
            with TurnView(console, manager.ui) as view:
                projection = await session.send_message(args.message, on_update=on_update)
        if decider is not None:
            await decider.wait()
            if session.current_turn is not None:
                projection = session.current_turn.projection
    except UnauthorizedError as e:
        reporter(describe_error(ErrorType.UNAUTHORIZED, str(e), recoverable=False))
        return EXIT_UNAUTHORIZED

    if args.json:
        print(json.dumps(projection.to_dict(), indent=2, ensure_ascii=False, default=str))
    else:
        console.print(f"[dim]conversation {session.conversation_id}[/dim]")

    if projection.error or reporter.failed:
        return EXIT_FAILURE
    return EXIT_OK


async def run_permission(args: argparse.Namespace, manager: ConfigManager, console: Console) -> int:
    """Approve, deny or show a permission request."""
    client = AgentClient(manager.agent)
    try:
        if args.action == "show":
            data = await client.get_permission(args.permission_id)
        else:
            data = await client.respond_to_permission(
                args.permission_id, args.action == "approve"
            )
    except UnauthorizedError as e:
        console.print(f"[red]✗ {e}[/red]")
        return EXIT_UNAUTHORIZED
    except (PermissionActionError, TransportError) as e:
        console.print(f"[red]✗ {e}[/red]")
        return EXIT_FAILURE

    if args.action != "show":
        verb = "Approved" if args.action == "approve" else "Denied"
        console.print(f"[green]✓ {verb} {args.permission_id}[/green]")
    if data:
        console.print(format_json(data))
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    console = Console()
    setup_logging(console, args.debug)

    manager = ConfigManager(args.config) if args.config else get_config()
    if args.url:
        manager.update_agent(base_url=args.url)

    try:
        if args.command == "chat":
            return asyncio.run(run_chat(args, manager, console))
        return asyncio.run(run_permission(args, manager, console))
    except KeyboardInterrupt:
        console.print(f"\n[yellow]{describe_error(ErrorType.INTERRUPTED).message}[/yellow]")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
