from fastapi import FastAPI, Request, HTTPException, Depends
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
import logging
import sys
import time

from .db import init_db, DATABASE_URL
from .models import User
from .auth import (
    SECRET_KEY,
    INSECURE_SECRET_KEY,
    SESSION_COOKIE_NAME,
    create_user,
    authenticate_user,
    create_access_token,
    create_session_for_user,
    delete_session,
    require_login,
)
from .schemas import parse_payload, Credentials, TokenRequest
from .api import router as api_router
from . import config

# Configure the package logger once; module loggers (tagtodo.api,
# tagtodo.tagging, ...) propagate to it.
package_logger = logging.getLogger('tagtodo')
if not package_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s')
    handler.setFormatter(formatter)
    package_logger.addHandler(handler)
package_logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The app must not start with the well-known test secret: anyone could
    # mint bearer tokens with it.
    if not SECRET_KEY or SECRET_KEY == INSECURE_SECRET_KEY:
        raise RuntimeError("SECRET_KEY not set or insecure fallback in use; set the SECRET_KEY environment variable before starting the server")
    await init_db()
    logger.info('starting server using DATABASE_URL=%s', DATABASE_URL)
    yield


app = FastAPI(lifespan=lifespan)
app.include_router(api_router)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception('database error on %s %s', request.method, request.url.path, exc_info=exc)
    return JSONResponse({'detail': 'internal server error'}, status_code=500)


@app.middleware('http')
async def timing_middleware(request: Request, call_next):
    start = time.perf_counter()
    resp = await call_next(request)
    if config.TIMING_LOG:
        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.info('timing %s %s %s %.1fms', request.method, request.url.path, resp.status_code, duration_ms)
    return resp


def _user_json(user: User) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'created_at': user.created_at.isoformat() if user.created_at else None,
    }


# ---------------- auth -----------------

@app.post('/auth/signup', status_code=201)
async def signup(request: Request):
    creds = await parse_payload(request, Credentials)
    user = await create_user(creds.username, creds.password)
    if user is None:
        raise HTTPException(status_code=409, detail='username already taken')
    logger.info('signup: created user %s (id=%s)', user.username, user.id)
    return _user_json(user)


@app.post('/auth/login')
async def login(request: Request):
    """Password login for browsers: opens a server-side session and hands
    its token back in an HttpOnly cookie."""
    creds = await parse_payload(request, TokenRequest)
    user = await authenticate_user(creds.username, creds.password)
    if not user:
        raise HTTPException(status_code=401, detail='Incorrect username or password')
    session_token = await create_session_for_user(user)
    resp = JSONResponse({'ok': True, 'user': _user_json(user)})
    resp.set_cookie(
        SESSION_COOKIE_NAME,
        session_token,
        httponly=True,
        samesite='lax',
        secure=config.COOKIE_SECURE,
        max_age=config.SESSION_EXPIRE_DAYS * 24 * 3600,
    )
    return resp


@app.post('/auth/logout')
async def logout(request: Request):
    session_token = request.cookies.get(SESSION_COOKIE_NAME)
    if session_token:
        await delete_session(session_token)
    resp = JSONResponse({'ok': True})
    resp.delete_cookie(SESSION_COOKIE_NAME)
    return resp


@app.post('/auth/token')
async def login_for_access_token(request: Request):
    req = await parse_payload(request, TokenRequest)
    user = await authenticate_user(req.username, req.password)
    if not user:
        raise HTTPException(status_code=401, detail='Incorrect username or password')
    access_token = create_access_token(data={'sub': user.username})
    return {'access_token': access_token, 'token_type': 'bearer'}


@app.get('/auth/me')
async def me(current_user: User = Depends(require_login)):
    return _user_json(current_user)
