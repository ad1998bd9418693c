import logging
from fastapi import APIRouter, Request, HTTPException, Depends
from fastapi.responses import JSONResponse
from sqlmodel import select
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy.exc import IntegrityError

from .auth import require_login
from .db import async_session
from .models import User, Todo, Tag, TodoTag
from .schemas import parse_payload, CreateTodo, PatchTodo, CreateTag, PatchTag, AddTags
from .tagging import (
    add_tags_to_todo,
    get_or_create_tag,
    remove_tag_from_todo,
    STATUS_OK,
    STATUS_INVALID,
    STATUS_NOT_FOUND,
)
from .utils import now_utc, serialize_todo, serialize_tag

# Every route here is scoped to the authenticated caller. A todo or tag that
# exists but belongs to someone else is reported as 404, never 403.
router = APIRouter(dependencies=[Depends(require_login)])
logger = logging.getLogger(__name__)


async def _tag_ids_by_todo(sess, todo_ids: list[int]) -> dict[int, list[int]]:
    out: dict[int, list[int]] = {tid: [] for tid in todo_ids}
    if not todo_ids:
        return out
    res = await sess.exec(select(TodoTag.todo_id, TodoTag.tag_id).where(TodoTag.todo_id.in_(todo_ids)))
    for todo_id, tag_id in res.all():
        out.setdefault(todo_id, []).append(tag_id)
    return out


async def _owned_todo(sess, todo_id: int, user: User) -> Todo:
    todo = await sess.get(Todo, todo_id)
    if not todo or todo.user_id != user.id:
        raise HTTPException(status_code=404, detail="todo not found")
    return todo


async def _owned_tag(sess, tag_id: int, user: User) -> Tag:
    tag = await sess.get(Tag, tag_id)
    if not tag or tag.user_id != user.id:
        raise HTTPException(status_code=404, detail="tag not found")
    return tag


async def _todo_response(sess, todo: Todo) -> dict:
    tags = await _tag_ids_by_todo(sess, [todo.id])
    return serialize_todo(todo, tags.get(todo.id, []))


# ---------------- todos -----------------

@router.get('/todos')
async def list_todos(current_user: User = Depends(require_login)):
    """All of the caller's todos, newest first, each with its tag ids."""
    async with async_session() as sess:
        res = await sess.exec(
            select(Todo).where(Todo.user_id == current_user.id).order_by(Todo.created_at.desc(), Todo.id.desc())
        )
        todos = res.all()
        tag_map = await _tag_ids_by_todo(sess, [t.id for t in todos])
        return [serialize_todo(t, tag_map.get(t.id, [])) for t in todos]


@router.post('/todos', status_code=201)
async def create_todo(request: Request, current_user: User = Depends(require_login)):
    data = await parse_payload(request, CreateTodo)
    async with async_session() as sess:
        todo = Todo(user_id=current_user.id, title=data.title, description=data.description, completed=False)
        sess.add(todo)
        await sess.commit()
        await sess.refresh(todo)
        logger.info('created todo id=%s for user %s', todo.id, current_user.id)
        return serialize_todo(todo, [])


@router.get('/todos/{todo_id}')
async def get_todo(todo_id: int, current_user: User = Depends(require_login)):
    async with async_session() as sess:
        todo = await _owned_todo(sess, todo_id, current_user)
        return await _todo_response(sess, todo)


@router.patch('/todos/{todo_id}')
async def patch_todo(todo_id: int, request: Request, current_user: User = Depends(require_login)):
    """Update title, description and/or completed; only fields present in the
    body are touched (an explicit null description clears it)."""
    data = await parse_payload(request, PatchTodo)
    async with async_session() as sess:
        todo = await _owned_todo(sess, todo_id, current_user)
        for field in ('title', 'description', 'completed'):
            if field in data.model_fields_set:
                setattr(todo, field, getattr(data, field))
        todo.updated_at = now_utc()
        sess.add(todo)
        await sess.commit()
        await sess.refresh(todo)
        return await _todo_response(sess, todo)


@router.delete('/todos/{todo_id}')
async def delete_todo(todo_id: int, current_user: User = Depends(require_login)):
    async with async_session() as sess:
        todo = await _owned_todo(sess, todo_id, current_user)
        # remove link rows first; the tags themselves are left alone
        await sess.exec(sqlalchemy_delete(TodoTag).where(TodoTag.todo_id == todo_id))
        await sess.delete(todo)
        await sess.commit()
    logger.info('deleted todo id=%s for user %s', todo_id, current_user.id)
    return {"ok": True, "deleted": todo_id}


# ---------------- todo <-> tag links -----------------

@router.get('/todos/{todo_id}/tags')
async def list_todo_tags(todo_id: int, current_user: User = Depends(require_login)):
    async with async_session() as sess:
        await _owned_todo(sess, todo_id, current_user)
        res = await sess.exec(
            select(Tag).join(TodoTag, TodoTag.tag_id == Tag.id).where(TodoTag.todo_id == todo_id).order_by(Tag.name)
        )
        return [serialize_tag(t) for t in res.all()]


@router.post('/todos/{todo_id}/tags')
async def add_todo_tags(todo_id: int, request: Request, current_user: User = Depends(require_login)):
    """Attach tags by name, creating missing ones. The body is
    {"names": [...], "colors": {name: "#RRGGBB"}}; per-name problems come back
    in the result's ``errors`` with a 200 so partial success is visible."""
    data = await parse_payload(request, AddTags)
    result = await add_tags_to_todo(todo_id, data.names, data.colors, user_id=current_user.id)
    body = result.model_dump()
    if result.status == STATUS_OK:
        return body
    if result.status == STATUS_INVALID:
        status_code = 400
    elif result.status == STATUS_NOT_FOUND:
        status_code = 404
    else:
        status_code = 500
    return JSONResponse(body, status_code=status_code)


@router.delete('/todos/{todo_id}/tags/{tag_id}')
async def delete_todo_tag(todo_id: int, tag_id: int, current_user: User = Depends(require_login)):
    if not await remove_tag_from_todo(todo_id, tag_id, current_user.id):
        raise HTTPException(status_code=404, detail="link not found")
    return {"ok": True}


# ---------------- tags -----------------

@router.get('/tags')
async def list_tags(current_user: User = Depends(require_login)):
    async with async_session() as sess:
        res = await sess.exec(select(Tag).where(Tag.user_id == current_user.id).order_by(Tag.name))
        return [serialize_tag(t) for t in res.all()]


@router.post('/tags')
async def create_tag(request: Request, current_user: User = Depends(require_login)):
    """Create a tag, or return the caller's existing tag of the same name
    (201 when created, 200 when it already existed)."""
    data = await parse_payload(request, CreateTag)
    tag, created = await get_or_create_tag(current_user.id, data.name, data.color_hex)
    return JSONResponse(serialize_tag(tag), status_code=201 if created else 200)


@router.patch('/tags/{tag_id}')
async def patch_tag(tag_id: int, request: Request, current_user: User = Depends(require_login)):
    data = await parse_payload(request, PatchTag)
    async with async_session() as sess:
        tag = await _owned_tag(sess, tag_id, current_user)
        if data.name is not None:
            tag.name = data.name
        if data.color_hex is not None:
            tag.color_hex = data.color_hex
        sess.add(tag)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            raise HTTPException(status_code=409, detail="a tag with that name already exists")
        await sess.refresh(tag)
        return serialize_tag(tag)


@router.delete('/tags/{tag_id}')
async def delete_tag(tag_id: int, current_user: User = Depends(require_login)):
    async with async_session() as sess:
        tag = await _owned_tag(sess, tag_id, current_user)
        await sess.exec(sqlalchemy_delete(TodoTag).where(TodoTag.tag_id == tag_id))
        await sess.delete(tag)
        await sess.commit()
    logger.info('deleted tag id=%s for user %s', tag_id, current_user.id)
    return {"ok": True, "deleted": tag_id}
