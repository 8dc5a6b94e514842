#!/usr/bin/env python3
"""Inspect and revoke cached login sessions.

Usage:
    # How many devices a user is logged in on, and the current limit:
    python scripts/session_admin.py count 1001

    # List a user's active tokens:
    python scripts/session_admin.py list 1001

    # Log a user out everywhere:
    python scripts/session_admin.py revoke-user 1001

    # Revoke a single token:
    python scripts/session_admin.py revoke-token <token>

    # Drop index entries whose session already expired:
    python scripts/session_admin.py reconcile 1001

    # Change the device limit stored in Redis:
    python scripts/session_admin.py set-max 5

Environment Variables:
    REDIS_URL: Redis connection string (default redis://localhost:6379/0)
    SESSION_KEY_PREFIX: Key namespace (default "session")
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


async def run_command(args: argparse.Namespace, store=None) -> dict:
    """Execute one subcommand and return its result."""
    # Import here to avoid loading config before env vars are set
    from tokenstore.service.session_store import create_session_store

    owns_store = store is None
    if owns_store:
        store = create_session_store()
    try:
        if owns_store:
            store.cache.verify_connection()
        if args.command == "count":
            return {
                "user_id": args.user_id,
                "count": await store.user_token_count(args.user_id),
                "limit": await store.user_token_max_count(),
            }
        if args.command == "list":
            return {
                "user_id": args.user_id,
                "tokens": sorted(await store.list_user_tokens(args.user_id)),
            }
        if args.command == "revoke-user":
            return {
                "user_id": args.user_id,
                "revoked": await store.revoke_user_tokens(args.user_id),
            }
        if args.command == "revoke-token":
            await store.del_user_token_cache(args.token)
            return {"revoked": 1}
        if args.command == "reconcile":
            return {
                "user_id": args.user_id,
                "removed": await store.reconcile_user_tokens(args.user_id),
            }
        if args.command == "set-max":
            await store.set_user_token_max_count(args.limit)
            return {"limit": args.limit}
        raise ValueError(f"unknown command: {args.command}")
    finally:
        if owns_store:
            await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inspect and revoke cached login sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("count", "Show active session count and device limit"),
        ("list", "List active tokens"),
        ("revoke-user", "Revoke every session of the user"),
        ("reconcile", "Remove index entries for expired sessions"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("user_id", help="Numeric user id")
    revoke_token = sub.add_parser("revoke-token", help="Revoke one session")
    revoke_token.add_argument("token")
    set_max = sub.add_parser("set-max", help="Set the device limit stored in Redis")
    set_max.add_argument("limit", type=int)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    from tokenstore.service.errors import ServiceError
    from tokenstore.storage.errors import CacheError

    try:
        result = asyncio.run(run_command(args))
    except (ServiceError, CacheError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    for key, value in result.items():
        if isinstance(value, list):
            print(f"{key}:")
            for item in value:
                print(f"  {item}")
        else:
            print(f"{key}: {value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
