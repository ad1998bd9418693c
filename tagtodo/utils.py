from datetime import datetime, timezone
import hashlib
import logging
import re
from typing import Iterable, Optional

from . import config

logger = logging.getLogger(__name__)

# Strict '#RRGGBB'; hex digits may be either case.
HEX_COLOR_RE = re.compile(r"#[0-9A-Fa-f]{6}")


def now_utc() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(timezone.utc)


def is_valid_hex_color(value: Optional[str]) -> bool:
    if not isinstance(value, str):
        return False
    return HEX_COLOR_RE.fullmatch(value) is not None


def fallback_color(name: str) -> str:
    """Pick a deterministic palette color for a tag name.

    The same name always maps to the same color, independent of process or
    platform (unlike the builtin ``hash``, which is salted per process).
    """
    digest = hashlib.sha256(name.encode('utf-8')).digest()
    idx = int.from_bytes(digest[:4], 'big') % len(config.TAG_PALETTE)
    return config.TAG_PALETTE[idx]


def dedupe_tag_names(names: Iterable[Optional[str]] | None) -> list[str]:
    """Strip, drop blanks and dedupe tag names preserving first-seen order.

    Matching is exact (case-sensitive): 'Frontend' and 'frontend' are two
    different tags.
    """
    if not names:
        return []
    seen: set[str] = set()
    out: list[str] = []
    for n in names:
        if not isinstance(n, str):
            continue
        t = n.strip()
        if not t or t in seen:
            continue
        seen.add(t)
        out.append(t)
    return out


def serialize_todo(todo, tag_ids: Iterable[int] = ()) -> dict:
    return {
        'id': todo.id,
        'user_id': todo.user_id,
        'title': todo.title,
        'description': todo.description,
        'completed': bool(todo.completed),
        'tags': sorted(int(t) for t in tag_ids),
        'created_at': todo.created_at.isoformat() if todo.created_at else None,
        'updated_at': todo.updated_at.isoformat() if todo.updated_at else None,
    }


def serialize_tag(tag) -> dict:
    return {
        'id': tag.id,
        'user_id': tag.user_id,
        'name': tag.name,
        'color_hex': tag.color_hex,
        'created_at': tag.created_at.isoformat() if tag.created_at else None,
    }
