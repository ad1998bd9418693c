from typing import Optional
from datetime import datetime
from .utils import now_utc
from .config import TITLE_MAX_LENGTH, DESCRIPTION_MAX_LENGTH, TAG_NAME_MAX_LENGTH
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint


class TodoTag(SQLModel, table=True):
    """Association between a todo and a tag; one row per (todo, tag) pair."""
    __tablename__ = 'todo_tag'

    todo_id: Optional[int] = Field(default=None, foreign_key="todo.id", primary_key=True, ondelete="CASCADE")
    tag_id: Optional[int] = Field(default=None, foreign_key="tag.id", primary_key=True, index=True, ondelete="CASCADE")
    assigned_at: datetime | None = Field(default_factory=now_utc)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, sa_column_kwargs={"unique": True})
    password_hash: str
    created_at: datetime | None = Field(default_factory=now_utc)


class Session(SQLModel, table=True):
    """Server-side session store for browser clients.

    session_token is a secure random string stored in an HttpOnly cookie and
    mapped to a user_id in the DB. Expired rows are deleted when looked up.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    session_token: str = Field(sa_column_kwargs={"unique": True, "index": True})
    user_id: int = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    created_at: datetime | None = Field(default_factory=now_utc)
    expires_at: Optional[datetime] = None


class Todo(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    title: str = Field(max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    completed: bool = Field(default=False)
    created_at: datetime | None = Field(default_factory=now_utc, index=True)
    updated_at: datetime | None = Field(default_factory=now_utc)


class Tag(SQLModel, table=True):
    # Name uniqueness is per owner, not global.
    __table_args__ = (UniqueConstraint('user_id', 'name', name='uq_tag_user_name'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    name: str = Field(max_length=TAG_NAME_MAX_LENGTH)
    color_hex: str = Field(max_length=7)
    created_at: datetime | None = Field(default_factory=now_utc)
