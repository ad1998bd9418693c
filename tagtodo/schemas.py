"""Request payload schemas and the helper that turns validation failures into
400 responses with field-level detail."""
from typing import Optional, Dict, List, Type, TypeVar

from fastapi import HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .config import (
    TITLE_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    TAG_NAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    PASSWORD_MIN_LENGTH,
)
from .utils import is_valid_hex_color

M = TypeVar('M', bound=BaseModel)


class _Payload(BaseModel):
    model_config = ConfigDict(extra='ignore')


def _require_text(v: Optional[str], what: str) -> Optional[str]:
    if v is not None and not v.strip():
        raise ValueError(f'{what} is required')
    return v


def _check_color(v: Optional[str]) -> Optional[str]:
    if v is not None and not is_valid_hex_color(v):
        raise ValueError('color must be a hex color like #1A2B3C')
    return v


class CreateTodo(_Payload):
    title: str = Field(max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)

    @field_validator('title')
    @classmethod
    def _title(cls, v):
        return _require_text(v, 'title')


class PatchTodo(_Payload):
    title: Optional[str] = Field(default=None, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    completed: Optional[bool] = None

    @field_validator('title')
    @classmethod
    def _title(cls, v):
        return _require_text(v, 'title')

    @model_validator(mode='after')
    def _at_least_one(self):
        if not self.model_fields_set & {'title', 'description', 'completed'}:
            raise ValueError('provide at least one of title, description, or completed')
        if 'title' in self.model_fields_set and self.title is None:
            raise ValueError('title cannot be null')
        if 'completed' in self.model_fields_set and self.completed is None:
            raise ValueError('completed cannot be null')
        return self


class CreateTag(_Payload):
    name: str = Field(max_length=TAG_NAME_MAX_LENGTH)
    color_hex: Optional[str] = None

    @field_validator('name')
    @classmethod
    def _name(cls, v):
        return _require_text(v, 'name').strip()

    @field_validator('color_hex')
    @classmethod
    def _color(cls, v):
        return _check_color(v)


class PatchTag(_Payload):
    name: Optional[str] = Field(default=None, max_length=TAG_NAME_MAX_LENGTH)
    color_hex: Optional[str] = None

    @field_validator('name')
    @classmethod
    def _name(cls, v):
        v = _require_text(v, 'name')
        return v.strip() if v is not None else v

    @field_validator('color_hex')
    @classmethod
    def _color(cls, v):
        return _check_color(v)

    @model_validator(mode='after')
    def _at_least_one(self):
        if self.name is None and self.color_hex is None:
            raise ValueError('provide at least one of name or color_hex')
        return self


class AddTags(_Payload):
    # Per-name problems (bad color, overlong name) are reported in the
    # association result, not rejected here.
    names: List[str]
    colors: Dict[str, str] = Field(default_factory=dict)


class Credentials(_Payload):
    username: str = Field(min_length=USERNAME_MIN_LENGTH, max_length=150)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH)

    @field_validator('username')
    @classmethod
    def _username(cls, v):
        v = v.strip()
        if len(v) < USERNAME_MIN_LENGTH:
            raise ValueError(f'username must be at least {USERNAME_MIN_LENGTH} characters')
        return v


class TokenRequest(_Payload):
    username: str
    password: str


def field_errors(exc: ValidationError) -> dict[str, list[str]]:
    """Flatten a pydantic ValidationError into {field: [messages]}."""
    out: dict[str, list[str]] = {}
    for err in exc.errors(include_url=False, include_context=False, include_input=False):
        loc = '.'.join(str(p) for p in err.get('loc', ())) or '__root__'
        out.setdefault(loc, []).append(err.get('msg', 'invalid'))
    return out


async def read_json(request: Request):
    try:
        return await request.json()
    except Exception:
        raise HTTPException(status_code=400, detail="invalid JSON")


async def parse_payload(request: Request, model: Type[M]) -> M:
    """Read the JSON body and validate it against ``model``.

    Malformed JSON -> 400 'invalid JSON'; schema failures -> 400 with
    field-level detail.
    """
    payload = await read_json(request)
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail={'error': 'invalid payload', 'fields': {'__root__': ['expected a JSON object']}})
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={'error': 'invalid payload', 'fields': field_errors(e)})
