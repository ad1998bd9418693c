#!/usr/bin/env python3
"""List users with their todo and tag counts.

Usage:
  DATABASE_URL="sqlite+aiosqlite:///./tagtodo.db" python scripts/list_users.py
"""
import os
import sys
proj_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if proj_root not in sys.path:
    sys.path.insert(0, proj_root)

import asyncio


async def main():
    # import here so we pick up DATABASE_URL if set
    from sqlmodel import select, func
    from tagtodo.db import init_db, async_session, DATABASE_URL
    from tagtodo.models import User, Todo, Tag

    print(f"Using DATABASE_URL={DATABASE_URL}")
    await init_db()

    async with async_session() as sess:
        q = await sess.exec(select(User).order_by(User.id))
        users = q.all()
        if not users:
            print("No users found in DB.")
            return
        print(f"Found {len(users)} users:\n")
        for u in users:
            todos = (await sess.exec(select(func.count()).select_from(Todo).where(Todo.user_id == u.id))).one()
            tags = (await sess.exec(select(func.count()).select_from(Tag).where(Tag.user_id == u.id))).one()
            print(f"{u.id:>5}  {u.username}\n  created_at: {u.created_at}\n  todos: {todos}  tags: {tags}\n")


if __name__ == '__main__':
    asyncio.run(main())
