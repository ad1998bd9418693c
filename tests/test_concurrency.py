import pytest
import asyncio
from sqlmodel import select

from tagtodo.db import async_session
from tagtodo.models import Tag, TodoTag

pytestmark = pytest.mark.asyncio

CONCURRENCY = 10


async def run_many(tasks):
    return await asyncio.gather(*tasks)


async def test_concurrent_add_same_tag_to_todo(client):
    r = await client.post('/todos', json={'title': 'race-todo'})
    assert r.status_code == 201
    tid = r.json()['id']

    async def add_tag():
        resp = await client.post(f'/todos/{tid}/tags', json={'names': ['race']})
        return resp.status_code

    results = await run_many([add_tag() for _ in range(CONCURRENCY)])
    # no server errors
    assert all(code < 500 for code in results)

    async with async_session() as sess:
        q = await sess.exec(select(Tag).where(Tag.user_id == client.user.id).where(Tag.name == 'race'))
        tags = q.all()
        assert len(tags) == 1
        ql = await sess.exec(select(TodoTag).where(TodoTag.todo_id == tid).where(TodoTag.tag_id == tags[0].id))
        assert len(ql.all()) == 1


async def test_concurrent_create_tag(client):
    async def make_tag():
        resp = await client.post('/tags', json={'name': 'concurrent'})
        return resp.status_code, resp.json().get('id')

    results = await run_many([make_tag() for _ in range(CONCURRENCY)])
    assert all(code < 500 for code, _ in results)
    # exactly one request created it, everyone got the same row
    assert [code for code, _ in results].count(201) == 1
    assert len({tag_id for _, tag_id in results}) == 1


async def test_concurrent_same_tag_on_different_todos(client):
    tids = []
    for i in range(CONCURRENCY):
        r = await client.post('/todos', json={'title': f'todo {i}'})
        tids.append(r.json()['id'])

    async def add_tag(tid):
        resp = await client.post(f'/todos/{tid}/tags', json={'names': ['common']})
        return resp.status_code

    results = await run_many([add_tag(tid) for tid in tids])
    assert all(code == 200 for code in results)

    async with async_session() as sess:
        q = await sess.exec(select(Tag).where(Tag.user_id == client.user.id).where(Tag.name == 'common'))
        tags = q.all()
        assert len(tags) == 1
        ql = await sess.exec(select(TodoTag).where(TodoTag.tag_id == tags[0].id))
        assert sorted(link.todo_id for link in ql.all()) == sorted(tids)
