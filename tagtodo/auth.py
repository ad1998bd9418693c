import os
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import select
from sqlalchemy import delete as sqlalchemy_delete
from passlib.context import CryptContext
from jose import JWTError, jwt
from pydantic import BaseModel
from .models import User, Session, Todo, Tag, TodoTag
from .db import async_session
from . import config
import secrets
import logging

logger = logging.getLogger(__name__)

# SECRET_KEY should be set in the environment in production. We fall back to a
# predictable value for local testing; the server lifespan refuses to start
# with it.
INSECURE_SECRET_KEY = "CHANGE_ME_IN_ENV_FOR_TESTS"
SECRET_KEY = os.getenv("SECRET_KEY", INSECURE_SECRET_KEY)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))
SESSION_COOKIE_NAME = "session_token"

# prefer a pure-Python, widely-available scheme for tests and portability;
# keep bcrypt as a fallback if available.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


class TokenData(BaseModel):
    username: Optional[str] = None


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands datetimes back naive; they were stored as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


async def get_user_by_username(username: str) -> Optional[User]:
    async with async_session() as sess:
        q = await sess.exec(select(User).where(User.username == username))
        return q.first()


async def create_user(username: str, password: str) -> Optional[User]:
    """Create a user; return None when the username is already taken."""
    from sqlalchemy.exc import IntegrityError
    async with async_session() as sess:
        u = User(username=username, password_hash=pwd_context.hash(password))
        sess.add(u)
        try:
            await sess.commit()
        except IntegrityError:
            await sess.rollback()
            return None
        await sess.refresh(u)
        return u


async def delete_user(user_id: int) -> bool:
    """Delete a user and everything they own.

    Rows are removed explicitly in dependency order so the result does not
    depend on the database enforcing ON DELETE CASCADE.
    """
    async with async_session() as sess:
        u = await sess.get(User, user_id)
        if not u:
            return False
        todo_ids = select(Todo.id).where(Todo.user_id == user_id)
        tag_ids = select(Tag.id).where(Tag.user_id == user_id)
        await sess.exec(sqlalchemy_delete(TodoTag).where(TodoTag.todo_id.in_(todo_ids)))
        await sess.exec(sqlalchemy_delete(TodoTag).where(TodoTag.tag_id.in_(tag_ids)))
        await sess.exec(sqlalchemy_delete(Todo).where(Todo.user_id == user_id))
        await sess.exec(sqlalchemy_delete(Tag).where(Tag.user_id == user_id))
        await sess.exec(sqlalchemy_delete(Session).where(Session.user_id == user_id))
        await sess.delete(u)
        await sess.commit()
    logger.info('deleted user id=%s and owned rows', user_id)
    return True


async def create_session_for_user(user: User, token: Optional[str] = None, expires_delta: Optional[timedelta] = None) -> str:
    """Create a server-side session and return the session token.

    If token is provided it will be used; otherwise a secure random token
    is generated.
    """
    sess_token = token or secrets.token_urlsafe(32)
    if expires_delta is None:
        expires_delta = timedelta(days=config.SESSION_EXPIRE_DAYS)
    expires_at = datetime.now(timezone.utc) + expires_delta
    async with async_session() as s:
        s.add(Session(session_token=sess_token, user_id=user.id, expires_at=expires_at))
        await s.commit()
    return sess_token


async def get_user_by_session_token(session_token: str) -> Optional[User]:
    async with async_session() as s:
        q = await s.exec(select(Session).where(Session.session_token == session_token))
        sess_row = q.first()
        if not sess_row:
            return None
        if sess_row.expires_at and _as_utc(sess_row.expires_at) < datetime.now(timezone.utc):
            # expired: delete row and return None
            await s.exec(sqlalchemy_delete(Session).where(Session.session_token == session_token))
            await s.commit()
            return None
        return await s.get(User, sess_row.user_id)


async def delete_session(session_token: str) -> None:
    async with async_session() as s:
        await s.exec(sqlalchemy_delete(Session).where(Session.session_token == session_token))
        await s.commit()


async def authenticate_user(username: str, password: str) -> Optional[User]:
    user = await get_user_by_username(username)
    if not user:
        return None
    if not pwd_context.verify(password, user.password_hash):
        return None
    return user


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    # RFC 7519 recommends NumericDate (seconds since epoch). Encode as int.
    to_encode.update({"exp": int(expire.timestamp())})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[User]:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    # An Authorization header is authoritative: a tampered bearer token must
    # not fall through to a valid cookie.
    if token is None:
        session_token = request.cookies.get(SESSION_COOKIE_NAME)
        if session_token:
            return await get_user_by_session_token(session_token)
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = TokenData(username=username)
    except JWTError:
        raise credentials_exception
    user = await get_user_by_username(token_data.username)
    if user is None:
        raise credentials_exception
    return user


async def require_login(user: Optional[User] = Depends(get_current_user)) -> User:
    """Dependency that enforces an authenticated user.

    Returns the User when present, otherwise raises 401 Unauthorized.
    """
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication required")
    return user
