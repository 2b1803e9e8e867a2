import threading
import time

import pytest

from realtime.relay import MessageRelay, generate_message_id
from realtime.state import ReplyScheduler


class InlineSocketIO:
    """Just enough of flask_socketio.SocketIO for the scheduler and relay."""

    def __init__(self):
        self.emitted = []

    def sleep(self, seconds):
        time.sleep(seconds)

    def start_background_task(self, target, *args, **kwargs):
        t = threading.Thread(target=target, args=args, kwargs=kwargs, daemon=True)
        t.start()
        return t

    def emit(self, event, data, to=None, namespace=None):
        self.emitted.append((event, data, to, namespace))


def _wait(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def sio():
    return InlineSocketIO()


def test_scheduled_task_runs_once(sio):
    calls = []
    scheduler = ReplyScheduler(sio)

    scheduler.schedule(("o1", "m1"), 0.01, calls.append, "x")

    assert _wait(lambda: calls == ["x"])
    assert _wait(lambda: scheduler.pending() == [])


def test_cancelled_task_never_runs(sio):
    calls = []
    scheduler = ReplyScheduler(sio)
    scheduler.schedule("k", 0.1, calls.append, "x")

    assert scheduler.cancel("k") is True
    time.sleep(0.2)

    assert calls == []
    assert scheduler.cancel("k") is False


def test_rescheduling_a_key_replaces_earlier_task(sio):
    calls = []
    scheduler = ReplyScheduler(sio)
    scheduler.schedule("k", 0.1, calls.append, "first")
    scheduler.schedule("k", 0.1, calls.append, "second")

    assert _wait(lambda: calls == ["second"])
    time.sleep(0.1)
    assert calls == ["second"]


def test_cancel_all(sio):
    calls = []
    scheduler = ReplyScheduler(sio)
    for i in range(3):
        scheduler.schedule(i, 0.1, calls.append, i)

    assert scheduler.cancel_all() == 3
    time.sleep(0.2)
    assert calls == []


def test_failing_task_is_logged_and_dropped(sio, caplog):
    def boom():
        raise RuntimeError("nope")

    scheduler = ReplyScheduler(sio)
    scheduler.schedule("k", 0, boom)

    assert _wait(lambda: scheduler.pending() == [])
    assert _wait(lambda: "Scheduled task 'k' failed" in caplog.text)


def test_relay_stamps_and_emits_to_room(sio):
    relay = MessageRelay(sio, id_factory=lambda: "gen-1", clock=lambda: "2024-01-01T00:00:00.000Z")

    message = relay.send("order1", "Hello", "user")

    assert message == {"id": "gen-1", "text": "Hello", "sender": "user", "timestamp": "2024-01-01T00:00:00.000Z"}
    assert sio.emitted == [("receive_message", message, "order1", "/support")]


@pytest.mark.parametrize("given,expected", [("m1", "m1"), ("  ", "gen-1"), (None, "gen-1"), (42, "42")])
def test_caller_supplied_id_wins_when_present(sio, given, expected):
    relay = MessageRelay(sio, id_factory=lambda: "gen-1")
    assert relay.stamp("t", "user", given)["id"] == expected


def test_generated_message_ids_are_unique():
    ids = {generate_message_id() for _ in range(200)}
    assert len(ids) == 200
