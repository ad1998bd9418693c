import pytest

from todo_client.interaction import (
    ClickDebouncer,
    TodoEdit,
    TagEdit,
    apply_edit,
    IDLE,
    PENDING,
    COMMITTED,
    NO_CHANGE,
    PATCH,
    DELETE,
)


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


class FakeScheduler:
    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        t = FakeTimer(delay, callback)
        self.timers.append(t)
        return t

    @property
    def last(self):
        return self.timers[-1]


@pytest.fixture
def clicks():
    events = []
    sched = FakeScheduler()
    deb = ClickDebouncer(
        on_single=lambda key: events.append(('single', key)),
        on_double=lambda key: events.append(('double', key)),
        scheduler=sched,
    )
    return deb, sched, events


def test_single_click_fires_after_delay(clicks):
    deb, sched, events = clicks
    assert deb.state == IDLE
    deb.click(7)
    assert deb.state == PENDING
    assert deb.pending_key == 7
    assert sched.last.delay == pytest.approx(0.2)
    assert events == []

    sched.last.fire()
    assert events == [('single', 7)]
    assert deb.state == COMMITTED


def test_double_click_cancels_single(clicks):
    deb, sched, events = clicks
    deb.click(7)
    first = sched.last
    deb.click(7)
    assert first.cancelled
    assert events == [('double', 7)]
    assert deb.state == COMMITTED
    # a late timer callback must not produce a single click
    first.callback()
    assert events == [('double', 7)]


def test_click_on_other_item_resolves_pending_as_single(clicks):
    deb, sched, events = clicks
    deb.click(1)
    deb.click(2)
    assert events == [('single', 1)]
    assert deb.pending_key == 2
    sched.last.fire()
    assert events == [('single', 1), ('single', 2)]


def test_third_click_starts_over(clicks):
    deb, sched, events = clicks
    deb.click(3)
    deb.click(3)
    deb.click(3)
    assert deb.state == PENDING
    sched.last.fire()
    assert events == [('double', 3), ('single', 3)]


def test_reset_drops_pending(clicks):
    deb, sched, events = clicks
    deb.click(5)
    timer = sched.last
    deb.reset()
    assert timer.cancelled
    assert deb.state == IDLE
    timer.callback()
    assert events == []


def test_real_timer_single_click():
    import threading
    fired = threading.Event()
    deb = ClickDebouncer(on_single=lambda key: fired.set(), on_double=lambda key: None, delay_ms=10)
    deb.click('x')
    assert fired.wait(2.0)


# ---- inline edit ----

TODO = {'id': 1, 'title': 'Write report', 'description': 'quarterly', 'completed': False}


def test_inline_edit_no_change():
    e = TodoEdit()
    e.begin(TODO)
    e.change(title='  Write report ')
    assert e.commit() == (NO_CHANGE, {})


def test_inline_edit_patch_only_changed_fields():
    e = TodoEdit()
    e.begin(TODO)
    e.change(title='Write the report')
    assert e.commit() == (PATCH, {'title': 'Write the report'})


def test_inline_edit_clearing_description_sends_null():
    e = TodoEdit()
    e.begin(TODO)
    e.change(description='   ')
    assert e.commit() == (PATCH, {'description': None})


def test_inline_edit_empty_title_and_description_deletes():
    e = TodoEdit()
    e.begin(TODO)
    e.change(title='', description='')
    assert e.commit() == (DELETE, {})


def test_inline_edit_empty_title_alone_is_ignored():
    e = TodoEdit()
    e.begin(TODO)
    e.change(title='')
    assert e.commit() == (NO_CHANGE, {})


def test_inline_edit_cancel_and_unknown_field():
    e = TodoEdit()
    with pytest.raises(ValueError):
        e.change(title='x')
    e.begin(TODO)
    with pytest.raises(ValueError):
        e.change(completed=True)
    e.cancel()
    assert not e.active
    assert e.commit() == (NO_CHANGE, {})


def test_tag_edit_empty_name_deletes():
    e = TagEdit()
    e.begin({'id': 4, 'name': 'urgent', 'color_hex': '#FF0000'})
    e.change(name=' ')
    assert e.commit() == (DELETE, {})


class RecordingStore:
    def __init__(self):
        self.calls = []

    def update_todo(self, todo_id, **fields):
        self.calls.append(('update_todo', todo_id, fields))
        return {'id': todo_id, **fields}

    def delete_todo(self, todo_id):
        self.calls.append(('delete_todo', todo_id))

    def update_tag(self, tag_id, **fields):
        self.calls.append(('update_tag', tag_id, fields))
        return {'id': tag_id, **fields}

    def delete_tag(self, tag_id):
        self.calls.append(('delete_tag', tag_id))


def test_apply_edit_dispatches_to_store():
    store = RecordingStore()
    e = TodoEdit()
    e.begin(TODO)
    e.change(description='annual')
    action, result = apply_edit(store, e)
    assert action == PATCH
    assert result == {'id': 1, 'description': 'annual'}
    assert not e.active

    e.begin(TODO)
    e.change(title='', description=None)
    assert apply_edit(store, e) == (DELETE, None)

    t = TagEdit()
    t.begin({'id': 9, 'name': 'x'})
    t.change(name='')
    apply_edit(store, t)
    assert store.calls == [
        ('update_todo', 1, {'description': 'annual'}),
        ('delete_todo', 1),
        ('delete_tag', 9),
    ]
