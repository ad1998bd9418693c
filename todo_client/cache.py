"""Optimistic in-memory cache of the user's todos and tags.

Every mutation is applied to the cache first, then sent to the server. On
success the cached entry is replaced by what the server returned; on an
``ApiError`` or a transport failure the cache is restored to its state
before the mutation and the error is re-raised so the caller can show it.
"""

import copy
import itertools
import logging
from contextlib import contextmanager
from typing import Dict, Any, List, Optional

from .client import TodoClient

logger = logging.getLogger(__name__)

# Placeholders for rows the server has not confirmed yet get negative ids so
# they can never collide with a real primary key.
_temp_ids = itertools.count(-1, -1)


class _Collection:
    """Dict of id -> JSON object with snapshot/rollback."""

    def __init__(self):
        self.items: Dict[int, Dict[str, Any]] = {}

    def load(self, rows: List[Dict[str, Any]]) -> None:
        self.items = {r['id']: dict(r) for r in rows}

    def get(self, item_id: int) -> Optional[Dict[str, Any]]:
        return self.items.get(item_id)

    def __contains__(self, item_id) -> bool:
        return item_id in self.items

    def __len__(self) -> int:
        return len(self.items)

    @contextmanager
    def optimistic(self):
        """Roll ``items`` back if the block raises, then re-raise.

        Covers ``ApiError`` as well as transport failures (connection
        refused, timeouts) where the server never answered.
        """
        snapshot = copy.deepcopy(self.items)
        try:
            yield
        except Exception as e:
            self.items = snapshot
            logger.info('rolled back optimistic change: %s', e)
            raise


class TodoCache(_Collection):

    def ordered(self) -> List[Dict[str, Any]]:
        # newest first, like GET /todos; placeholders sort on top
        return sorted(
            self.items.values(),
            key=lambda t: (t['id'] < 0, t.get('created_at') or '', t['id']),
            reverse=True,
        )

    def with_tag(self, tag_id: int) -> List[Dict[str, Any]]:
        return [t for t in self.ordered() if tag_id in t.get('tags', [])]


class TagCache(_Collection):

    def ordered(self) -> List[Dict[str, Any]]:
        return sorted(self.items.values(), key=lambda t: t['name'])

    def by_name(self, name: str) -> Optional[Dict[str, Any]]:
        for tag in self.items.values():
            if tag['name'] == name:
                return tag
        return None


class OptimisticStore:
    """Todos and tags for one signed-in client, kept in step with the server."""

    def __init__(self, client: TodoClient):
        self.client = client
        self.todos = TodoCache()
        self.tags = TagCache()

    def refresh(self) -> None:
        self.todos.load(self.client.list_todos())
        self.tags.load(self.client.list_tags())

    # ---- todos ----

    def create_todo(self, title: str, description: Optional[str] = None) -> Dict[str, Any]:
        temp_id = next(_temp_ids)
        with self.todos.optimistic():
            self.todos.items[temp_id] = {
                'id': temp_id,
                'title': title,
                'description': description,
                'completed': False,
                'tags': [],
            }
            created = self.client.create_todo(title, description)
            del self.todos.items[temp_id]
            self.todos.items[created['id']] = created
        return created

    def update_todo(self, todo_id: int, **fields) -> Dict[str, Any]:
        with self.todos.optimistic():
            current = self.todos.items.get(todo_id)
            if current is not None:
                current.update(fields)
            updated = self.client.patch_todo(todo_id, **fields)
            self.todos.items[todo_id] = updated
        return updated

    def toggle_completed(self, todo_id: int) -> Dict[str, Any]:
        current = self.todos.get(todo_id) or {}
        return self.update_todo(todo_id, completed=not current.get('completed', False))

    def delete_todo(self, todo_id: int) -> None:
        with self.todos.optimistic():
            self.todos.items.pop(todo_id, None)
            self.client.delete_todo(todo_id)

    # ---- tags ----

    def create_tag(self, name: str, color_hex: Optional[str] = None) -> Dict[str, Any]:
        temp_id = next(_temp_ids)
        with self.tags.optimistic():
            self.tags.items[temp_id] = {'id': temp_id, 'name': name, 'color_hex': color_hex}
            tag = self.client.create_tag(name, color_hex)
            del self.tags.items[temp_id]
            # an existing tag of the same name comes back with its real id
            self.tags.items[tag['id']] = tag
        return tag

    def update_tag(self, tag_id: int, **fields) -> Dict[str, Any]:
        with self.tags.optimistic():
            current = self.tags.items.get(tag_id)
            if current is not None:
                current.update(fields)
            tag = self.client.patch_tag(tag_id, **fields)
            self.tags.items[tag_id] = tag
        return tag

    def delete_tag(self, tag_id: int) -> None:
        with self.tags.optimistic(), self.todos.optimistic():
            self.tags.items.pop(tag_id, None)
            for todo in self.todos.items.values():
                if tag_id in todo.get('tags', []):
                    todo['tags'] = [t for t in todo['tags'] if t != tag_id]
            self.client.delete_tag(tag_id)

    # ---- associations ----

    def add_tags(self, todo_id: int, names: List[str], colors: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Attach tags by name. Names already cached as tags are shown on the
        todo immediately; the rest appear once the server has created them."""
        with self.tags.optimistic(), self.todos.optimistic():
            todo = self.todos.items.get(todo_id)
            added_locally = set()
            if todo is not None:
                for name in names:
                    known = self.tags.by_name(name)
                    if known is not None and known['id'] not in todo.setdefault('tags', []):
                        todo['tags'].append(known['id'])
                        added_locally.add(known['id'])
            result = self.client.add_tags(todo_id, names, colors)
            confirmed = result.get('linked', []) + result.get('skipped', [])
            for tag in confirmed:
                self.tags.items[tag['id']] = tag
            if todo is not None:
                server_ids = {t['id'] for t in confirmed}
                # names rejected per-name by the server must not stay attached
                todo['tags'] = sorted((set(todo['tags']) - (added_locally - server_ids)) | server_ids)
        return result

    def remove_tag(self, todo_id: int, tag_id: int) -> None:
        with self.todos.optimistic():
            todo = self.todos.items.get(todo_id)
            if todo is not None:
                todo['tags'] = [t for t in todo.get('tags', []) if t != tag_id]
            self.client.remove_tag(todo_id, tag_id)
