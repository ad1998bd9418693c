"""Simple runtime configuration for the tagtodo app.

Control flags are read from environment variables to allow toggling in
development or production without code changes.
"""
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


# Log level for the server loggers (DEBUG, INFO, WARNING, ...).
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# When true, every HTTP request logs a one-line timing entry.
TIMING_LOG = _trueish(os.getenv('TIMING_LOG', '1'))

# Set COOKIE_SECURE=1 when serving over HTTPS so the session cookie is only
# sent on secure connections.
COOKIE_SECURE = _trueish(os.getenv('COOKIE_SECURE', '0'))

# Server-side session lifetime for browser logins.
SESSION_EXPIRE_DAYS = _int_env('SESSION_EXPIRE_DAYS', 30)

# Field limits mirrored by the request schemas and the table columns.
TITLE_MAX_LENGTH = 500
DESCRIPTION_MAX_LENGTH = 1000
TAG_NAME_MAX_LENGTH = 100
USERNAME_MIN_LENGTH = 3
PASSWORD_MIN_LENGTH = 6

# Fallback colors for tags created without an explicit color. A tag name is
# hashed onto this palette so the same name always gets the same color.
TAG_PALETTE = (
    '#E57373',
    '#F06292',
    '#BA68C8',
    '#7986CB',
    '#4FC3F7',
    '#4DB6AC',
    '#81C784',
    '#DCE775',
    '#FFD54F',
    '#FF8A65',
    '#A1887F',
    '#90A4AE',
)


# Optional local overrides: define variables in tagtodo/local_config.py to
# extend or override the defaults above without changing versioned config.
try:
    from .local_config import *  # type: ignore  # noqa: F401,F403
except ImportError:
    # No local overrides present; proceed with defaults.
    pass
