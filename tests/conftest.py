import os
import time

# Must be set before server_init is imported (it reads these at import time).
os.environ["MARKETMATCH_SOCKETIO_ASYNC"] = "threading"
os.environ["MARKETMATCH_PERSIST_SECRETS"] = "0"

import pytest
import requests
from flask_jwt_extended import create_access_token

from currency import CurrencyRateCache
from defaults import get_default_settings
from server_init import create_app
from storage import KeyValueStore

JWT_SECRET = "test-jwt-secret-0123456789abcdef0123456789abcdef"


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    """Stands in for requests.Session; records every GET."""

    def __init__(self, rates=None, fail=False):
        self.rates = rates if rates is not None else {"USD": 0.00065, "EUR": 0.0006, "NGN": 1.0}
        self.fail = fail
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        if self.fail:
            raise requests.ConnectionError("network down")
        return FakeResponse({"success": True, "base": (params or {}).get("base"), "rates": dict(self.rates)})


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def settings(tmp_path):
    s = get_default_settings()
    s.update(
        secret_key="test-secret-key",
        jwt_secret=JWT_SECRET,
        support_reply_delay_seconds=0.05,
        log_file_path=str(tmp_path / "server.log"),
    )
    return s


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def store():
    return KeyValueStore()


@pytest.fixture
def relay(settings, store, fake_session):
    rates = CurrencyRateCache(store, session=fake_session)
    return create_app(settings, store=store, rates=rates)


@pytest.fixture
def app(relay):
    return relay[0]


@pytest.fixture
def socketio(relay):
    return relay[1]


@pytest.fixture
def ctx(app):
    return app.extensions["marketmatch"]


@pytest.fixture
def make_token(app):
    def _make(user_id="u1", **kwargs):
        with app.app_context():
            return create_access_token(identity=user_id, **kwargs)

    return _make


def wait_for_events(client, name, count, namespace=None, timeout=2.0):
    """Collect ``name`` events from a Flask-SocketIO test client until ``count`` arrive."""
    got = []
    deadline = time.time() + timeout
    while True:
        for item in client.get_received(namespace):
            if item["name"] == name:
                got.append(item["args"][0])
        if len(got) >= count or time.time() >= deadline:
            return got
        time.sleep(0.01)
