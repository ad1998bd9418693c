#!/usr/bin/env python3
"""Delete a user together with their todos, tags and sessions.

Usage:
    python scripts/delete_user.py username [--yes] [--db PATH]
"""
import os
import sys
proj_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if proj_root not in sys.path:
    sys.path.insert(0, proj_root)

import argparse
import asyncio


async def _delete(username: str) -> bool:
    from tagtodo.db import init_db
    from tagtodo.auth import get_user_by_username, delete_user
    await init_db()
    user = await get_user_by_username(username)
    if not user:
        print(f"No such user: {username}", file=sys.stderr)
        return False
    return await delete_user(user.id)


def parse_args(argv):
    p = argparse.ArgumentParser(description="Delete a user and everything they own")
    p.add_argument("username")
    p.add_argument("--yes", action="store_true", help="do not ask for confirmation")
    p.add_argument("--db", help="path to a sqlite file to use instead of DATABASE_URL")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv if argv is not None else sys.argv[1:])
    if args.db:
        os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{args.db}"
    if not args.yes:
        answer = input(f"Delete user '{args.username}' and all their todos and tags? [y/N] ")
        if answer.strip().lower() not in ('y', 'yes'):
            print("Aborted")
            return 1
    if not asyncio.run(_delete(args.username)):
        return 2
    print(f"Deleted user '{args.username}'")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
