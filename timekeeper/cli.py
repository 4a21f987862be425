"""CLI entry point: token, clear-cache, fetch, resolve, monitor."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import date

from timekeeper.client import TimekeeperClient
from timekeeper.config import load_config
from timekeeper.errors import TimekeeperError
from timekeeper.logging_config import configure_logging

logger = logging.getLogger("timekeeper.cli")


def _parse_params(pairs: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {pair!r}")
        params[key] = value
    return params


def cmd_token(args: argparse.Namespace, client: TimekeeperClient) -> None:
    """Authenticate if needed and show token status."""
    if args.refresh:
        client.invalidate_credential()
    client.get_credential()
    print(json.dumps(client.token_status(), indent=2))


def cmd_clear_cache(args: argparse.Namespace, client: TimekeeperClient) -> None:
    client.invalidate_credential()
    print("Token cache cleared.")


def cmd_fetch(args: argparse.Namespace, client: TimekeeperClient) -> None:
    """Fetch every page of an endpoint and print a summary."""
    params = _parse_params(args.param)
    if not args.no_company:
        params.setdefault("company", client.scope_id())
    result = client.fetch_all(args.endpoint, params)

    summary = {
        "endpoint": args.endpoint,
        "totalCount": result.total_count,
        "pagesFetched": result.pages_fetched,
        "fetchedCompletely": result.fetched_completely,
        "terminationReason": result.termination_reason.value,
    }
    if result.is_single_object:
        summary["payload"] = result.payload
    elif args.show_items:
        summary["items"] = result.items
    print(json.dumps(summary, indent=2, default=str))


def cmd_resolve(args: argparse.Namespace, client: TimekeeperClient) -> None:
    resolutions = [client.resolve_identity(uid).to_dict() for uid in args.user_ids]
    print(json.dumps(resolutions, indent=2))


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {value!r}") from None


def cmd_monitor(args: argparse.Namespace, client: TimekeeperClient) -> None:
    """Sweep every user's monitoring feeds and print a per-user summary."""
    report = client.monitor_users(start=args.start, end=args.end, delay=args.delay)
    print(json.dumps(report.to_dict(), indent=2))


def main() -> None:
    """Main CLI entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    parser = argparse.ArgumentParser(
        prog="timekeeper",
        description="TimeDoctor API client: token, pagination and identity tools",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    token_parser = subparsers.add_parser("token", help="Show token status")
    token_parser.add_argument(
        "--refresh", action="store_true", help="Discard the cached token first"
    )
    token_parser.set_defaults(func=cmd_token)

    clear_parser = subparsers.add_parser("clear-cache", help="Delete the cached token")
    clear_parser.set_defaults(func=cmd_clear_cache)

    fetch_parser = subparsers.add_parser("fetch", help="Fetch all pages of an endpoint")
    fetch_parser.add_argument("endpoint", help="e.g. /api/1.0/users")
    fetch_parser.add_argument(
        "--param", "-p",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter (repeatable)",
    )
    fetch_parser.add_argument(
        "--no-company", action="store_true", help="Do not add the company parameter"
    )
    fetch_parser.add_argument(
        "--show-items", action="store_true", help="Include the fetched items in the output"
    )
    fetch_parser.set_defaults(func=cmd_fetch)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve user ids to names")
    resolve_parser.add_argument("user_ids", nargs="+", metavar="USER_ID")
    resolve_parser.set_defaults(func=cmd_resolve)

    monitor_parser = subparsers.add_parser("monitor", help="Sweep monitoring feeds for all users")
    monitor_parser.add_argument("--from", dest="start", type=_parse_date, help="YYYY-MM-DD")
    monitor_parser.add_argument("--to", dest="end", type=_parse_date, help="YYYY-MM-DD")
    monitor_parser.add_argument(
        "--delay", type=float, default=0.3, help="Seconds to wait between users"
    )
    monitor_parser.set_defaults(func=cmd_monitor)

    args = parser.parse_args()

    try:
        config = load_config()
    except ValueError as exc:
        logger.error("%s", exc)
        sys.exit(2)

    client = TimekeeperClient.from_config(config)
    try:
        args.func(args, client)
    except (TimekeeperError, argparse.ArgumentTypeError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        sys.exit(1)
    finally:
        client.close()


if __name__ == "__main__":
    main()
