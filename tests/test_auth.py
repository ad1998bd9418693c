import pytest
from datetime import timedelta
from sqlmodel import select

from tagtodo.db import async_session
from tagtodo.models import Session, Todo, Tag, TodoTag, User
from tagtodo.auth import (
    create_user,
    delete_user,
    create_session_for_user,
    get_user_by_session_token,
    SESSION_COOKIE_NAME,
)
from tagtodo.tagging import add_tags_to_todo
from conftest import unique_username

pytestmark = pytest.mark.asyncio


async def test_signup_then_login_with_cookie(anon_client):
    username = unique_username('signup')
    r = await anon_client.post('/auth/signup', json={'username': username, 'password': 'secret1'})
    assert r.status_code == 201
    assert r.json()['username'] == username

    r = await anon_client.post('/auth/login', json={'username': username, 'password': 'secret1'})
    assert r.status_code == 200
    assert r.json()['ok'] is True
    assert SESSION_COOKIE_NAME in r.cookies
    set_cookie = r.headers['set-cookie'].lower()
    assert 'httponly' in set_cookie
    assert 'samesite=lax' in set_cookie

    # the cookie jar now carries the session
    r = await anon_client.get('/auth/me')
    assert r.status_code == 200
    assert r.json()['username'] == username
    r = await anon_client.post('/todos', json={'title': 'via cookie'})
    assert r.status_code == 201


async def test_signup_duplicate_and_validation(anon_client):
    username = unique_username('dup')
    r = await anon_client.post('/auth/signup', json={'username': username, 'password': 'secret1'})
    assert r.status_code == 201
    r = await anon_client.post('/auth/signup', json={'username': username, 'password': 'secret2'})
    assert r.status_code == 409

    r = await anon_client.post('/auth/signup', json={'username': 'ab', 'password': 'secret1'})
    assert r.status_code == 400
    assert 'username' in r.json()['detail']['fields']
    r = await anon_client.post('/auth/signup', json={'username': unique_username(), 'password': '12345'})
    assert r.status_code == 400
    assert 'password' in r.json()['detail']['fields']


async def test_login_wrong_password(anon_client):
    username = unique_username('wrong')
    await create_user(username, 'right-password')
    r = await anon_client.post('/auth/login', json={'username': username, 'password': 'nope'})
    assert r.status_code == 401
    r = await anon_client.post('/auth/token', json={'username': username, 'password': 'nope'})
    assert r.status_code == 401


async def test_logout_ends_session(anon_client):
    username = unique_username('logout')
    await create_user(username, 'secret1')
    r = await anon_client.post('/auth/login', json={'username': username, 'password': 'secret1'})
    token = r.cookies[SESSION_COOKIE_NAME]

    r = await anon_client.post('/auth/logout')
    assert r.status_code == 200
    assert await get_user_by_session_token(token) is None
    anon_client.cookies.clear()
    anon_client.cookies.set(SESSION_COOKIE_NAME, token)
    r = await anon_client.get('/auth/me')
    assert r.status_code == 401


async def test_expired_session_is_removed(ensure_db):
    user = await create_user(unique_username('expired'), 'secret1')
    token = await create_session_for_user(user, expires_delta=timedelta(seconds=-1))
    assert await get_user_by_session_token(token) is None
    async with async_session() as sess:
        q = await sess.exec(select(Session).where(Session.session_token == token))
        assert q.first() is None


async def test_me_with_bearer(client):
    r = await client.get('/auth/me')
    assert r.status_code == 200
    assert r.json()['id'] == client.user.id


async def test_delete_user_removes_everything_they_own(client, other_client):
    r = await client.post('/todos', json={'title': 'doomed'})
    tid = r.json()['id']
    await add_tags_to_todo(tid, ['a', 'b'])
    await create_session_for_user(client.user)
    # another user's data must survive
    r = await other_client.post('/todos', json={'title': 'bystander'})
    other_tid = r.json()['id']
    await add_tags_to_todo(other_tid, ['a'])

    assert await delete_user(client.user.id)
    assert not await delete_user(client.user.id)

    async with async_session() as sess:
        assert await sess.get(User, client.user.id) is None
        assert (await sess.exec(select(Todo).where(Todo.user_id == client.user.id))).all() == []
        assert (await sess.exec(select(Tag).where(Tag.user_id == client.user.id))).all() == []
        assert (await sess.exec(select(TodoTag).where(TodoTag.todo_id == tid))).all() == []
        assert (await sess.exec(select(Session).where(Session.user_id == client.user.id))).all() == []
        assert len((await sess.exec(select(TodoTag).where(TodoTag.todo_id == other_tid))).all()) == 1


async def test_database_cascade_on_user_row_delete(ensure_db):
    """Deleting the user row directly relies on ON DELETE CASCADE."""
    user = await create_user(unique_username('cascade'), 'secret1')
    async with async_session() as sess:
        todo = Todo(user_id=user.id, title='t')
        sess.add(todo)
        await sess.commit()
        await sess.refresh(todo)
    await add_tags_to_todo(todo.id, ['c'])

    from sqlalchemy import delete as sqlalchemy_delete
    async with async_session() as sess:
        await sess.exec(sqlalchemy_delete(User).where(User.id == user.id))
        await sess.commit()
        assert (await sess.exec(select(Todo).where(Todo.user_id == user.id))).all() == []
        assert (await sess.exec(select(Tag).where(Tag.user_id == user.id))).all() == []
        assert (await sess.exec(select(TodoTag).where(TodoTag.todo_id == todo.id))).all() == []
