"""HTTP client for the tagtodo JSON API."""

import logging
from typing import Dict, Any, List, Optional

import requests

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised for any non-2xx response from the server."""

    def __init__(self, status_code: int, detail: Any = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f'HTTP {status_code}: {detail}')


class TodoClient:
    """Client for todo and tag operations.

    ``session`` is anything with a requests-style ``request(method, url,
    json=..., headers=...)`` method; a ``requests.Session`` by default. Tests
    pass a Starlette ``TestClient`` with an empty base_url.
    """

    def __init__(self, base_url: str = '', session=None):
        self.base_url = (base_url or '').rstrip('/')
        self.session = session if session is not None else requests.Session()
        self.access_token: Optional[str] = None

    def _get_auth_headers(self) -> Dict[str, str]:
        headers = {}
        if self.access_token:
            headers['Authorization'] = f'Bearer {self.access_token}'
        return headers

    def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        kwargs: Dict[str, Any] = {'headers': self._get_auth_headers()}
        if payload is not None:
            kwargs['json'] = payload
        response = self.session.request(method, url, **kwargs)
        try:
            data = response.json()
        except ValueError:
            data = None
        if response.status_code >= 400:
            detail = data.get('detail', data) if isinstance(data, dict) else (data or response.text)
            logger.debug('%s %s -> %s %r', method, path, response.status_code, detail)
            raise ApiError(response.status_code, detail)
        return data

    # ---- auth ----

    def signup(self, username: str, password: str) -> Dict[str, Any]:
        return self._request('POST', '/auth/signup', {'username': username, 'password': password})

    def login(self, username: str, password: str) -> bool:
        """Fetch a bearer token; False on bad credentials."""
        try:
            data = self._request('POST', '/auth/token', {'username': username, 'password': password})
        except ApiError as e:
            if e.status_code == 401:
                return False
            raise
        self.access_token = data.get('access_token')
        return bool(self.access_token)

    def me(self) -> Dict[str, Any]:
        return self._request('GET', '/auth/me')

    # ---- todos ----

    def list_todos(self) -> List[Dict[str, Any]]:
        return self._request('GET', '/todos')

    def get_todo(self, todo_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/todos/{todo_id}')

    def create_todo(self, title: str, description: Optional[str] = None) -> Dict[str, Any]:
        payload = {'title': title}
        if description is not None:
            payload['description'] = description
        return self._request('POST', '/todos', payload)

    def patch_todo(self, todo_id: int, **fields) -> Dict[str, Any]:
        return self._request('PATCH', f'/todos/{todo_id}', fields)

    def delete_todo(self, todo_id: int) -> Dict[str, Any]:
        return self._request('DELETE', f'/todos/{todo_id}')

    # ---- tags ----

    def list_tags(self) -> List[Dict[str, Any]]:
        return self._request('GET', '/tags')

    def create_tag(self, name: str, color_hex: Optional[str] = None) -> Dict[str, Any]:
        payload = {'name': name}
        if color_hex is not None:
            payload['color_hex'] = color_hex
        return self._request('POST', '/tags', payload)

    def patch_tag(self, tag_id: int, **fields) -> Dict[str, Any]:
        return self._request('PATCH', f'/tags/{tag_id}', fields)

    def delete_tag(self, tag_id: int) -> Dict[str, Any]:
        return self._request('DELETE', f'/tags/{tag_id}')

    # ---- associations ----

    def todo_tags(self, todo_id: int) -> List[Dict[str, Any]]:
        return self._request('GET', f'/todos/{todo_id}/tags')

    def add_tags(self, todo_id: int, names: List[str], colors: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'names': list(names)}
        if colors:
            payload['colors'] = dict(colors)
        return self._request('POST', f'/todos/{todo_id}/tags', payload)

    def remove_tag(self, todo_id: int, tag_id: int) -> Dict[str, Any]:
        return self._request('DELETE', f'/todos/{todo_id}/tags/{tag_id}')
