"""CLI entry point and argument parsing"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

import settings
from client import ApiError, HttpClient
from hooks import ApiHook, Backoff, PaginatedApiHook, Poller, RetryPolicy
from utils.storage import TokenStorage
from cli.debug_setup import setup_logging
from cli.status_display import get_auth_status, show_token_status


console = Console()


def parse_query(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turn ``key=value`` arguments into a query dict"""
    query: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got '{pair}'")
        query[key] = value
    return query


def print_payload(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_error(error: Optional[ApiError], fallback: str = "Request failed") -> None:
    if error is None:
        console.print(f"[red]ERROR:[/red] {fallback}")
        return
    code = f" [{error.code}]" if error.code else ""
    console.print(f"[red]ERROR ({error.status_code}){code}:[/red] {error.message}")


def build_client(args: argparse.Namespace) -> HttpClient:
    storage = TokenStorage(args.token_file) if args.token_file else TokenStorage()
    client = HttpClient(base_url=args.base_url, storage=storage)
    client.events.on_session_invalidated(
        lambda error: console.print("[red]Session ended: the account no longer exists. Log in again.[/red]")
    )
    return client


def session_expired(client: HttpClient):
    """Logout side effect for requests still unauthorized after a refresh"""
    def logout() -> None:
        client.clear_auth_tokens()
        console.print("[yellow]Session expired, stored tokens cleared. Log in again.[/yellow]")
    return logout


async def cmd_status(client: HttpClient, args: argparse.Namespace) -> int:
    verified = None
    if args.verify:
        verified = await client.verify_current_token()
    state, detail = get_auth_status(client.storage)
    console.print(f"Authentication: [bold]{state}[/bold] - {detail}")
    show_token_status(client.storage, console, verified=verified)
    return 0


async def cmd_login(client: HttpClient, args: argparse.Namespace) -> int:
    try:
        client.set_auth_tokens(args.access_token, args.refresh_token)
    except ValueError as e:
        console.print(f"[red]ERROR:[/red] {e}")
        return 1
    console.print(f"[green]✓ Tokens saved to {client.storage.token_file}[/green]")

    if args.verify and not await client.verify_current_token():
        console.print("[yellow]Warning: the server did not accept the access token[/yellow]")
        return 1
    return 0


async def cmd_logout(client: HttpClient, args: argparse.Namespace) -> int:
    if not client.is_authenticated():
        console.print("[yellow]Not logged in[/yellow]")
        return 0
    await client.logout()
    console.print("[green]✓ Logged out, tokens cleared[/green]")
    return 0


async def cmd_get(client: HttpClient, args: argparse.Namespace) -> int:
    hook = ApiHook(
        client.get,
        name=f"GET {args.path}",
        cache_ttl=args.cache_ttl,
        on_unauthorized=session_expired(client),
        retry=RetryPolicy(attempts=args.retries, delay=args.retry_delay, backoff=Backoff(args.backoff)),
    )
    data = await hook.execute(args.path, parse_query(args.query))
    if hook.error_detail is not None:
        print_error(hook.error_detail)
        return 1
    print_payload(data)
    return 0


async def cmd_list(client: HttpClient, args: argparse.Namespace) -> int:
    async def fetch_page(params: Dict[str, Any]):
        return await client.get(args.path, params)

    hook = PaginatedApiHook(
        fetch_page,
        limit=args.limit,
        id_field=args.id_field,
        on_unauthorized=session_expired(client),
    )
    query = parse_query(args.query)

    pages = 0
    while hook.has_more and (args.pages is None or pages < args.pages):
        await hook.load_more(query)
        pages += 1
        if hook.error_detail is not None:
            print_error(hook.error_detail)
            return 1

    print_payload(hook.items)

    table = Table(title=f"GET {args.path}")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Pages Loaded", str(pages))
    table.add_row("Items", str(len(hook.items)))
    table.add_row("Total", str(hook.total))
    table.add_row("Has More", "Yes" if hook.has_more else "No")
    console.print(table)
    return 0


async def cmd_poll(client: HttpClient, args: argparse.Namespace) -> int:
    tick = {"n": 0}

    def show(payload: Any) -> None:
        console.print(f"[cyan]Tick {tick['n']}[/cyan]")
        print_payload(payload)
        tick["n"] += 1

    hook = ApiHook(
        client.get,
        name=f"GET {args.path}",
        on_success=show,
        on_unauthorized=session_expired(client),
    )
    poller = Poller(hook, interval=args.interval, max_ticks=args.ticks)
    handle = await poller.start(args.path, parse_query(args.query))
    if hook.error_detail is not None:
        print_error(hook.error_detail)

    try:
        await handle.task
    finally:
        poller.stop_all()
    return 0 if hook.data is not None else 1


COMMANDS = {
    "status": cmd_status,
    "login": cmd_login,
    "logout": cmd_logout,
    "get": cmd_get,
    "list": cmd_list,
    "poll": cmd_poll,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dashstream", description="DashStream API client CLI")
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug logging")
    parser.add_argument("--base-url", default=None, help="Override API base URL (default: from config)")
    parser.add_argument("--token-file", default=None, help="Override token file (default: from config)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    status = subparsers.add_parser("status", help="Show stored token status")
    status.add_argument("--verify", action="store_true", help="Also ask the server whether the token is valid")

    login = subparsers.add_parser("login", help="Store a credential pair")
    login.add_argument("--access-token", required=True)
    login.add_argument("--refresh-token", required=True)
    login.add_argument("--verify", action="store_true", help="Verify the access token after saving")

    subparsers.add_parser("logout", help="End the session and clear stored tokens")

    get = subparsers.add_parser("get", help="GET a resource and print its data")
    get.add_argument("path")
    get.add_argument("-q", "--query", action="append", metavar="KEY=VALUE", help="Query parameter (repeatable)")
    get.add_argument("--cache-ttl", type=float, default=settings.DEFAULT_CACHE_TTL,
                     help="Seconds a cached result stays fresh (0 disables caching)")
    get.add_argument("--retries", type=int, default=0, help="Retries for transient failures")
    get.add_argument("--retry-delay", type=float, default=settings.DEFAULT_RETRY_DELAY)
    get.add_argument("--backoff", choices=[b.value for b in Backoff], default=Backoff.LINEAR.value)

    list_ = subparsers.add_parser("list", help="Page through a listing endpoint")
    list_.add_argument("path")
    list_.add_argument("-q", "--query", action="append", metavar="KEY=VALUE", help="Query parameter (repeatable)")
    list_.add_argument("--pages", type=int, default=None, help="Stop after this many pages (default: all)")
    list_.add_argument("--limit", type=int, default=settings.DEFAULT_PAGE_LIMIT, help="Page size")
    list_.add_argument("--id-field", default="_id", help="Record identity field used for de-duplication")

    poll = subparsers.add_parser("poll", help="Fetch a resource repeatedly at a fixed interval")
    poll.add_argument("path")
    poll.add_argument("-q", "--query", action="append", metavar="KEY=VALUE", help="Query parameter (repeatable)")
    poll.add_argument("--interval", type=float, default=settings.POLL_INTERVAL, help="Seconds between ticks")
    poll.add_argument("--ticks", type=int, default=3, help="Number of ticks after the first fetch")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the CLI"""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.debug)

    try:
        client = build_client(args)
        exit_code = asyncio.run(COMMANDS[args.command](client, args))
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        exit_code = 130
    except Exception as e:
        console.print(f"\n[red]Fatal error:[/red] {e}")
        if args.debug:
            import traceback
            traceback.print_exc()
        exit_code = 1

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
