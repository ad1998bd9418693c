from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy import event
from sqlalchemy.pool import NullPool

import os
import logging
import atexit

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./tagtodo.db")


def _is_sqlite(url: str | None) -> bool:
    return bool(url) and url.startswith('sqlite')


# NullPool: every session opens its own connection, so sessions created in
# different event loops (tests, scripts) never share a pooled connection.
engine = create_async_engine(DATABASE_URL, echo=False, future=True, poolclass=NullPool)


if _is_sqlite(DATABASE_URL):
    @event.listens_for(engine.sync_engine, 'connect')
    def _sqlite_enable_foreign_keys(dbapi_con, con_record):
        # SQLite ignores ON DELETE CASCADE unless enabled per connection.
        cur = dbapi_con.cursor()
        try:
            cur.execute("PRAGMA foreign_keys=ON")
        finally:
            cur.close()


async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    # import models so their tables are registered on SQLModel.metadata
    from . import models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info('database schema ready (%s)', DATABASE_URL.split('://', 1)[0])


def _dispose_sync_engine():
    # Close anything still open at interpreter exit to avoid pool finalizer
    # warnings about non-checked-in connections.
    try:
        engine.sync_engine.dispose()
    except Exception:
        logger.exception('failed to dispose engine at exit')


atexit.register(_dispose_sync_engine)
