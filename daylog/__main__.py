"""CLI entry point for daylog."""

import argparse
import asyncio
import getpass
import inspect
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from . import __version__
from .client import JournalClient, SyncStatus
from .config import Config, load_config
from .entries import Category, LogEntry, category_display_name, preview
from .errors import DaylogError, NotificationError


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            return json.dumps(log_data, default=str)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.WARNING

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    logging.basicConfig(level=level, handlers=[handler], force=True)


def _open_database(config: Config):
    from .storage import JournalDatabase

    db_path = ":memory:" if config.storage.backend == "memory" else config.storage.db_path
    db = JournalDatabase(db_path)
    db.connect()
    return db


def _make_client(config: Config) -> JournalClient:
    from .sync import LocalCache

    cache = LocalCache(config.client.cache_path)
    cache.connect()
    return JournalClient(
        cache=cache,
        server_url=config.client.server_url,
        username=config.client.username,
        password=config.client.password,
        max_retries=config.client.retry_max_attempts,
        timeout=config.client.timeout_seconds,
        target_days=config.progress.target_days,
    )


def _print_entry(entry: LogEntry) -> None:
    stamp = entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M")
    print(f"[{entry.id}] {stamp}  {entry.title}")
    print(f"    {category_display_name(entry.category)} | understanding {entry.importance}/5 ({entry.understanding})")
    print(f"    {preview(entry.content)}")


# ==================== Server commands ====================


async def cmd_serve(args: argparse.Namespace) -> int:
    """Start the journal server."""
    config = load_config(args.config)

    try:
        import uvicorn

        from .web import create_app
    except ImportError as e:
        print(f"Server dependencies not installed: {e}", file=sys.stderr)
        return 1

    host = args.host or config.server.host
    port = args.port or config.server.port

    db = _open_database(config)
    app = create_app(config, db)

    print(f"Starting Daily Logger ({config.server.environment})")
    print(f"Storage: {db.storage_type}")
    print(f"Email notifications: {'enabled' if config.email.enabled else 'disabled'}")
    print(f"URL: http://{host}:{port}")

    try:
        uvicorn_config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if args.verbose else "warning",
        )
        server = uvicorn.Server(uvicorn_config)
        await server.serve()
    finally:
        db.close()

    return 0


def cmd_add_user(args: argparse.Namespace) -> int:
    """Create an account on the server's database."""
    from .auth import register_user

    config = load_config(args.config)
    password = args.password or getpass.getpass("Password: ")

    db = _open_database(config)
    try:
        register_user(db, args.username, password)
    except DaylogError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"Created user {args.username}")
    return 0


async def cmd_test_email(args: argparse.Namespace) -> int:
    """Send a test email using the local email settings."""
    from .notify import EmailNotifier

    config = load_config(args.config)
    notifier = EmailNotifier(config.email)

    try:
        message_id = await notifier.send_test()
    except NotificationError as e:
        print(f"Failed to send test email: {e}", file=sys.stderr)
        return 1

    print(f"Test email sent to {config.email.to} ({message_id})")
    return 0


# ==================== Client commands ====================


async def cmd_status(args: argparse.Namespace) -> int:
    """Show server reachability and local cache state."""
    config = load_config(args.config)

    async with _make_client(config) as client:
        server = await client.server_status()
        status_data = {
            "timestamp": datetime.now().isoformat(),
            "server": server or {"status": "offline"},
            "sync": client.get_sync_status(),
        }
        client.cache.close()

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print(f"Server: {config.client.server_url} ({status_data['server'].get('status')})")
    if server:
        print(f"  Environment: {server.get('environment')}")
        print(f"  Storage: {server.get('storage_type')}")
        print(f"  Email notifications: {'enabled' if server.get('email_enabled') else 'disabled'}")
    print(f"Cached entries: {status_data['sync']['cached_entries']}")
    print(f"Pending sync: {status_data['sync']['pending_entries']}")
    return 0


async def cmd_add(args: argparse.Namespace) -> int:
    """Create an entry."""
    from .entries import motivational_message

    config = load_config(args.config)
    content = args.content if args.content is not None else sys.stdin.read()

    async with _make_client(config) as client:
        try:
            entry, offline = await client.create_entry(
                title=args.title,
                content=content,
                category=args.category,
                importance=args.importance,
            )
        finally:
            client.cache.close()

    _print_entry(entry)
    print("Saved locally (offline mode)" if offline else motivational_message(entry.category))
    return 0


async def cmd_list(args: argparse.Namespace) -> int:
    """List entries, newest first."""
    config = load_config(args.config)

    async with _make_client(config) as client:
        try:
            entries, offline = await client.list_entries(args.category, args.search)
        finally:
            client.cache.close()

    if args.json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return 0

    if offline:
        print("(offline: showing cached entries)")
    if not entries:
        print("No entries found.")
    for entry in entries:
        _print_entry(entry)
    return 0


async def cmd_edit(args: argparse.Namespace) -> int:
    """Edit an entry's title, category, content or importance."""
    config = load_config(args.config)

    async with _make_client(config) as client:
        try:
            entry, local = await client.update_entry(
                args.id,
                title=args.title,
                category=args.category,
                content=args.content,
                importance=args.importance,
            )
        finally:
            client.cache.close()

    _print_entry(entry)
    print("Entry updated locally (sent on next sync)" if local else "Entry updated successfully!")
    return 0


async def cmd_delete(args: argparse.Namespace) -> int:
    """Delete an entry."""
    config = load_config(args.config)

    async with _make_client(config) as client:
        try:
            online = await client.delete_entry(args.id)
        finally:
            client.cache.close()

    print("Entry deleted successfully" if online else "Entry deleted locally")
    return 0


async def cmd_sync(args: argparse.Namespace) -> int:
    """Push cached entries to the server and refresh the cache."""
    config = load_config(args.config)

    async with _make_client(config) as client:
        try:
            result = await client.sync()
        finally:
            client.cache.close()

    if result.status != SyncStatus.SUCCESS:
        print(f"Sync {result.status.value}: {result.error}", file=sys.stderr)
        return 1

    print(
        f"Synced {result.added} new and {result.updated} updated logs "
        f"({result.entries_pushed} pushed, {result.entries_pulled} refreshed)"
    )
    return 0


async def cmd_progress(args: argparse.Namespace) -> int:
    """Show course progress."""
    config = load_config(args.config)

    async with _make_client(config) as client:
        try:
            progress, offline = await client.progress()
        finally:
            client.cache.close()

    if args.json:
        print(json.dumps(progress.to_dict(), indent=2))
        return 0

    suffix = " (offline)" if offline else ""
    print(f"Days logged: {progress.days_label} of {progress.target_days}{suffix}")
    print(f"Progress: {progress.percentage}%")
    print(f"Total entries: {progress.total_entries}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="daylog",
        description="Personal learning journal with offline sync",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    categories = [c.value for c in Category]

    # Server commands
    serve_parser = subparsers.add_parser("serve", help="Start the journal server")
    serve_parser.add_argument("-p", "--port", type=int, default=None, help="Port (default: from config)")
    serve_parser.add_argument("--host", type=str, default=None, help="Host (default: from config)")
    serve_parser.set_defaults(func=cmd_serve)

    add_user_parser = subparsers.add_parser("add-user", help="Create an account")
    add_user_parser.add_argument("username")
    add_user_parser.add_argument("--password", default=None, help="Password (prompted if omitted)")
    add_user_parser.set_defaults(func=cmd_add_user)

    test_email_parser = subparsers.add_parser("test-email", help="Send a test email")
    test_email_parser.set_defaults(func=cmd_test_email)

    # Client commands
    status_parser = subparsers.add_parser("status", help="Check server and cache status")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")
    status_parser.set_defaults(func=cmd_status)

    add_parser = subparsers.add_parser("add", help="Add an entry")
    add_parser.add_argument("title")
    add_parser.add_argument("--content", default=None, help="Entry text (read from stdin if omitted)")
    add_parser.add_argument("--category", default=Category.OTHER.value, help=f"One of: {', '.join(categories)}")
    add_parser.add_argument("--importance", type=int, default=3, choices=range(1, 6), help="Understanding level 1-5")
    add_parser.set_defaults(func=cmd_add)

    list_parser = subparsers.add_parser("list", help="List entries")
    list_parser.add_argument("--category", default=None, help="Category filter (or 'all')")
    list_parser.add_argument("--search", default=None, help="Search title and content")
    list_parser.add_argument("--json", action="store_true", help="Output entries as JSON")
    list_parser.set_defaults(func=cmd_list)

    edit_parser = subparsers.add_parser("edit", help="Edit an entry")
    edit_parser.add_argument("id")
    edit_parser.add_argument("--title", default=None)
    edit_parser.add_argument("--category", default=None)
    edit_parser.add_argument("--content", default=None)
    edit_parser.add_argument("--importance", type=int, default=None, choices=range(1, 6))
    edit_parser.set_defaults(func=cmd_edit)

    delete_parser = subparsers.add_parser("delete", help="Delete an entry")
    delete_parser.add_argument("id")
    delete_parser.set_defaults(func=cmd_delete)

    sync_parser = subparsers.add_parser("sync", help="Push cached entries to the server")
    sync_parser.set_defaults(func=cmd_sync)

    progress_parser = subparsers.add_parser("progress", help="Show course progress")
    progress_parser.add_argument("--json", action="store_true", help="Output progress as JSON")
    progress_parser.set_defaults(func=cmd_progress)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    try:
        if inspect.iscoroutinefunction(func):
            return asyncio.run(func(args))
        return func(args)
    except DaylogError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
