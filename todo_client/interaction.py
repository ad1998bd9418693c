"""UI interaction state: single vs double click, and inline editing.

Neither class does I/O. ``ClickDebouncer`` only calls back into the caller,
and ``InlineEdit.commit`` only decides what should happen; ``apply_edit``
then runs that decision against an ``OptimisticStore``.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from .config import DEFAULT_DOUBLE_CLICK_DELAY_MS

logger = logging.getLogger(__name__)

IDLE = 'idle'
PENDING = 'pending'
COMMITTED = 'committed'


def _thread_timer(delay: float, callback: Callable[[], None]):
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class ClickDebouncer:
    """Tell a single click from a double click on the same target.

    The first click moves to ``pending`` and schedules ``on_single``; a second
    click on the same key inside the delay cancels that timer and fires
    ``on_double`` instead. Either way the state ends ``committed`` until the
    next click. A click on a different key while one is pending resolves the
    pending one as a single click first.

    ``scheduler(delay_seconds, callback)`` must return a handle with
    ``cancel()``; the default runs a daemon ``threading.Timer``.
    """

    def __init__(
        self,
        on_single: Callable[[Any], None],
        on_double: Callable[[Any], None],
        delay_ms: int = DEFAULT_DOUBLE_CLICK_DELAY_MS,
        scheduler: Optional[Callable[[float, Callable[[], None]], Any]] = None,
    ):
        self.on_single = on_single
        self.on_double = on_double
        self.delay_ms = delay_ms
        self.scheduler = scheduler or _thread_timer
        self.state = IDLE
        self._key: Any = None
        self._handle = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def pending_key(self) -> Any:
        return self._key if self.state == PENDING else None

    def click(self, key: Any = None) -> None:
        resolve_previous = False
        previous = None
        fire_double = False
        with self._lock:
            if self.state == PENDING:
                self._cancel_timer()
                if key == self._key:
                    self.state = COMMITTED
                    fire_double = True
                else:
                    resolve_previous = True
                    previous = self._key
            if not fire_double:
                self.state = PENDING
                self._key = key
                self._generation += 1
                generation = self._generation
                self._handle = self.scheduler(self.delay_ms / 1000.0, lambda: self._expire(generation))
        if resolve_previous:
            self.on_single(previous)
        if fire_double:
            logger.debug('double click on %r', key)
            self.on_double(key)

    def _expire(self, generation: int) -> None:
        with self._lock:
            # a timer that lost a cancel race must not fire for a newer click
            if self.state != PENDING or generation != self._generation:
                return
            self.state = COMMITTED
            self._handle = None
            key = self._key
        self.on_single(key)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def reset(self) -> None:
        """Drop any pending click without firing it."""
        with self._lock:
            self._cancel_timer()
            self._generation += 1
            self.state = IDLE
            self._key = None


NO_CHANGE = 'none'
PATCH = 'patch'
DELETE = 'delete'


class InlineEdit:
    """Edit buffer for one item's text fields.

    ``commit`` compares the buffer with the values captured at ``begin`` and
    returns ``(action, changes)``: ``('none', {})`` when nothing changed,
    ``('delete', {})`` when every field was emptied, otherwise
    ``('patch', {field: new_value})`` with only the changed fields.
    """

    fields: Tuple[str, ...] = ()

    def __init__(self):
        self.item_id: Optional[int] = None
        self.original: Dict[str, Any] = {}
        self.buffer: Dict[str, Any] = {}

    @property
    def active(self) -> bool:
        return self.item_id is not None

    def begin(self, item: Dict[str, Any]) -> None:
        self.item_id = item['id']
        self.original = {f: item.get(f) for f in self.fields}
        self.buffer = dict(self.original)

    def change(self, **values) -> None:
        if not self.active:
            raise ValueError('no edit in progress')
        for k, v in values.items():
            if k not in self.fields:
                raise ValueError(f'unknown field {k!r}')
            self.buffer[k] = v

    def cancel(self) -> None:
        self.item_id = None
        self.original = {}
        self.buffer = {}

    def _normalized(self, field: str, value: Any) -> Any:
        # blank text counts as no value
        if isinstance(value, str):
            return value.strip() or None
        return value

    def commit(self) -> Tuple[str, Dict[str, Any]]:
        if not self.active:
            return NO_CHANGE, {}
        new = {f: self._normalized(f, self.buffer.get(f)) for f in self.fields}
        if not any(new.values()):
            return DELETE, {}
        changes = {f: v for f, v in new.items() if v != self._normalized(f, self.original.get(f))}
        return (PATCH, changes) if changes else (NO_CHANGE, {})


class TodoEdit(InlineEdit):
    fields = ('title', 'description')

    def commit(self) -> Tuple[str, Dict[str, Any]]:
        action, changes = super().commit()
        if action == PATCH:
            if 'title' in changes and not changes['title']:
                # title is required while the description keeps the todo alive
                changes.pop('title')
                if not changes:
                    return NO_CHANGE, {}
        return action, changes


class TagEdit(InlineEdit):
    fields = ('name',)


def apply_edit(store, edit: InlineEdit) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Commit ``edit`` against ``store`` and end the edit.

    Returns the action taken and the server's copy of the item (None after a
    delete or when nothing changed). ``ApiError`` propagates after the store
    has rolled back; the edit stays open so the user can retry or cancel.
    """
    action, changes = edit.commit()
    item_id = edit.item_id
    result = None
    if action == DELETE:
        if isinstance(edit, TagEdit):
            store.delete_tag(item_id)
        else:
            store.delete_todo(item_id)
    elif action == PATCH:
        if isinstance(edit, TagEdit):
            result = store.update_tag(item_id, **changes)
        else:
            result = store.update_todo(item_id, **changes)
    edit.cancel()
    return action, result
