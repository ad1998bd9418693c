#!/usr/bin/env python3
"""Admin script to add a user, or reset an existing user's password.

Usage:
    python scripts/add_user.py username [password] [--db PATH]

The password is prompted for when omitted.
"""
# Make the script runnable from anywhere by putting the project root (parent
# of scripts/) on sys.path so the `tagtodo` package is importable.
import os
import sys
proj_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if proj_root not in sys.path:
    sys.path.insert(0, proj_root)

import argparse
import asyncio
import getpass
from typing import Optional


async def _create_or_update(username: str, password: str) -> Optional['User']:
    # Import lazily: tagtodo.db reads DATABASE_URL at import time, and `-h`
    # should work without the runtime dependencies.
    from tagtodo.db import init_db, async_session
    from tagtodo.models import User
    from tagtodo.auth import pwd_context
    from sqlmodel import select
    from sqlalchemy.exc import SQLAlchemyError
    await init_db()
    ph = pwd_context.hash(password)
    async with async_session() as sess:
        q = await sess.exec(select(User).where(User.username == username))
        user = q.first()
        if user:
            user.password_hash = ph
        else:
            user = User(username=username, password_hash=ph)
        sess.add(user)
        try:
            await sess.commit()
        except SQLAlchemyError as e:
            await sess.rollback()
            print(f"Failed to save user {username}: {e}", file=sys.stderr)
            return None
        await sess.refresh(user)
        return user


def parse_args(argv):
    p = argparse.ArgumentParser(description="Create or update a user in the tagtodo DB")
    p.add_argument("username", help="username to create/update")
    p.add_argument("password", nargs="?", help="password for the user (omit to prompt)")
    p.add_argument("--db", help="path to a sqlite file to use instead of DATABASE_URL")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv if argv is not None else sys.argv[1:])
    if args.db:
        os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{args.db}"
    from tagtodo.config import USERNAME_MIN_LENGTH, PASSWORD_MIN_LENGTH
    if len(args.username.strip()) < USERNAME_MIN_LENGTH:
        print(f"Username must be at least {USERNAME_MIN_LENGTH} characters", file=sys.stderr)
        return 2
    password = args.password
    if not password:
        pw = getpass.getpass("Password: ")
        pw2 = getpass.getpass("Confirm password: ")
        if pw != pw2:
            print("Passwords do not match", file=sys.stderr)
            return 2
        password = pw
    if len(password) < PASSWORD_MIN_LENGTH:
        print(f"Password must be at least {PASSWORD_MIN_LENGTH} characters", file=sys.stderr)
        return 2

    user = asyncio.run(_create_or_update(args.username.strip(), password))
    if not user:
        return 2
    print(f"User '{user.username}' saved with id={user.id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
