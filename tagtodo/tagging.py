"""Tag assignment for todos.

``add_tags_to_todo`` is the one multi-statement write in the app that needs
transactional isolation: for every requested name it lazily creates the
owner's tag and links it to the todo, without ever producing a duplicate tag
or a duplicate link, even when several requests target the same todo at
once. Both inserts are ``INSERT .. ON CONFLICT DO NOTHING`` against the
unique index (tag: user_id+name, link: todo_id+tag_id) followed by a select,
so a concurrent insert that wins the race is simply picked up.
"""
from typing import Optional, Iterable, Mapping
import logging

from pydantic import BaseModel, Field, computed_field
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy import insert as sqlalchemy_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from .config import TAG_NAME_MAX_LENGTH
from .db import async_session
from .models import Todo, Tag, TodoTag
from .utils import now_utc, is_valid_hex_color, fallback_color, dedupe_tag_names, serialize_tag

logger = logging.getLogger(__name__)

STATUS_OK = 'ok'
STATUS_INVALID = 'invalid'
STATUS_NOT_FOUND = 'not_found'
STATUS_FAILED = 'failed'


class TagAssignmentResult(BaseModel):
    """Outcome of ``add_tags_to_todo``.

    ``linked`` holds tags newly attached to the todo, ``skipped`` tags that
    were already attached, ``errors`` per-name problems that caused a name to
    be left out. ``status`` is not 'ok' only when nothing was attempted
    (invalid input, unknown todo) or the whole transaction was rolled back.
    """
    status: str = STATUS_OK
    todo_id: Optional[int] = None
    linked: list[dict] = Field(default_factory=list)
    skipped: list[dict] = Field(default_factory=list)
    errors: dict[str, list[str]] = Field(default_factory=dict)
    error: Optional[str] = None

    @computed_field
    @property
    def success(self) -> bool:
        return self.status == STATUS_OK and not self.errors

    def add_error(self, name: str, message: str) -> None:
        self.errors.setdefault(name, []).append(message)


def _insert_ignore(sess, model, values: dict, conflict_cols: list[str]):
    """Build an INSERT that does nothing when ``conflict_cols`` already exist.

    Only SQLite and PostgreSQL have the ON CONFLICT form; other backends get a
    plain INSERT and surface a duplicate as an IntegrityError.
    """
    dialect = sess.bind.dialect.name
    if dialect == 'sqlite':
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert
    else:
        return sqlalchemy_insert(model).values(**values)
    return insert(model).values(**values).on_conflict_do_nothing(index_elements=conflict_cols)


async def _get_owned_todo(sess, todo_id: int, user_id: Optional[int]) -> Optional[Todo]:
    q = select(Todo).where(Todo.id == todo_id)
    if user_id is not None:
        q = q.where(Todo.user_id == user_id)
    res = await sess.exec(q)
    return res.first()


async def _find_tag(sess, user_id: int, name: str) -> Optional[Tag]:
    res = await sess.exec(select(Tag).where(Tag.user_id == user_id).where(Tag.name == name))
    return res.first()


async def _get_or_create_tag(sess, user_id: int, name: str, color_hex: Optional[str] = None) -> tuple[Tag, bool]:
    tag = await _find_tag(sess, user_id, name)
    if tag:
        return tag, False
    stmt = _insert_ignore(
        sess,
        Tag,
        {'user_id': user_id, 'name': name, 'color_hex': color_hex or fallback_color(name), 'created_at': now_utc()},
        ['user_id', 'name'],
    )
    res = await sess.exec(stmt)
    created = bool(res.rowcount)
    tag = await _find_tag(sess, user_id, name)
    if tag is None:
        # inserted or conflicted, the row must be visible now
        raise SQLAlchemyError(f'tag {name!r} vanished after insert')
    return tag, created


async def _link_exists(sess, todo_id: int, tag_id: int) -> bool:
    res = await sess.exec(select(TodoTag).where(TodoTag.todo_id == todo_id).where(TodoTag.tag_id == tag_id))
    return res.first() is not None


async def _insert_link(sess, todo_id: int, tag_id: int) -> bool:
    """Insert the (todo, tag) link; False when another writer got there first."""
    stmt = _insert_ignore(
        sess,
        TodoTag,
        {'todo_id': todo_id, 'tag_id': tag_id, 'assigned_at': now_utc()},
        ['todo_id', 'tag_id'],
    )
    res = await sess.exec(stmt)
    return bool(res.rowcount)


async def add_tags_to_todo(
    todo_id: int,
    names: Iterable[str] | None,
    colors: Mapping[str, str] | None = None,
    *,
    user_id: Optional[int] = None,
) -> TagAssignmentResult:
    """Ensure each named tag exists for the todo's owner and is linked to it.

    ``names`` are stripped, blank entries dropped and duplicates collapsed
    (exact, case-sensitive match). ``colors`` optionally maps a name to the
    color used if that tag has to be created; an invalid color skips that
    name only. When ``user_id`` is given the todo must belong to that user.
    """
    # names are matched after stripping, so the color keys must be too
    colors = {k.strip(): v for k, v in (colors or {}).items() if isinstance(k, str)}
    result = TagAssignmentResult(todo_id=todo_id)
    candidates = dedupe_tag_names(names)
    if not candidates:
        result.status = STATUS_INVALID
        result.error = 'no tag names provided'
        return result

    async with async_session() as sess:
        try:
            todo = await _get_owned_todo(sess, todo_id, user_id)
            if todo is None:
                result.status = STATUS_NOT_FOUND
                result.error = 'todo not found'
                return result
            owner_id = todo.user_id
            linked_any = False
            for name in candidates:
                color = colors.get(name)
                if color is not None and not is_valid_hex_color(color):
                    result.add_error(name, f'invalid color {color!r}: expected #RRGGBB')
                    continue
                if len(name) > TAG_NAME_MAX_LENGTH:
                    result.add_error(name, f'tag name longer than {TAG_NAME_MAX_LENGTH} characters')
                    continue
                tag, created = await _get_or_create_tag(sess, owner_id, name, color)
                if created:
                    logger.info('created tag %r (id=%s) for user %s', name, tag.id, owner_id)
                entry = serialize_tag(tag)
                if await _link_exists(sess, todo.id, tag.id):
                    result.skipped.append(entry)
                elif await _insert_link(sess, todo.id, tag.id):
                    result.linked.append(entry)
                    linked_any = True
                else:
                    result.skipped.append(entry)
            if linked_any:
                todo.updated_at = now_utc()
                sess.add(todo)
            await sess.commit()
        except SQLAlchemyError:
            await sess.rollback()
            logger.exception('add_tags_to_todo failed for todo %s; rolled back', todo_id)
            return TagAssignmentResult(todo_id=todo_id, status=STATUS_FAILED, error='failed to add tags to todo')
    return result


async def get_or_create_tag(user_id: int, name: str, color_hex: Optional[str] = None) -> tuple[Tag, bool]:
    """Return the user's tag called ``name``, creating it when missing.

    The boolean is True when this call created the row.
    """
    async with async_session() as sess:
        tag, created = await _get_or_create_tag(sess, user_id, name, color_hex)
        await sess.commit()
        return tag, created


async def remove_tag_from_todo(todo_id: int, tag_id: int, user_id: int) -> bool:
    """Unlink one tag from one of the user's todos; False if there was no such link."""
    async with async_session() as sess:
        todo = await _get_owned_todo(sess, todo_id, user_id)
        if todo is None:
            return False
        res = await sess.exec(
            sqlalchemy_delete(TodoTag).where(TodoTag.todo_id == todo_id).where(TodoTag.tag_id == tag_id)
        )
        if not res.rowcount:
            return False
        todo.updated_at = now_utc()
        sess.add(todo)
        await sess.commit()
        return True
