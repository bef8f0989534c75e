"""
Shared pytest fixtures for the market data backend tests.
"""

import pytest
from unittest.mock import MagicMock, patch

import cache_utils
import resilient_fetch
from app import create_app


# ============================================================================
# Upstream HTTP doubles
# ============================================================================

def make_response(payload=None, status=200, content=b'', headers=None):
    """requests.Response stand-in; a ValueError payload makes .json() fail."""
    resp = MagicMock(status_code=status, content=content, headers=headers or {})
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


class FakeUpstream:
    """Routes requests.get calls by URL fragment (longest fragment wins).

    Each fragment holds a queue of outcomes; the last one repeats forever.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, fragment, payload=None, status=200, exc=None, **kwargs):
        self.routes.setdefault(fragment, []).append((payload, status, exc, kwargs))
        return self

    def urls(self):
        return [url for url, _ in self.calls]

    def __call__(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params))
        matches = [f for f in self.routes if f in url]
        if not matches:
            raise AssertionError(f'unexpected upstream call: {url}')
        queue = self.routes[max(matches, key=len)]
        payload, status, exc, kwargs = queue.pop(0) if len(queue) > 1 else queue[0]
        if exc is not None:
            raise exc
        return make_response(payload, status, **kwargs)


@pytest.fixture
def upstream():
    fake = FakeUpstream()
    with patch('requests.get', side_effect=fake):
        yield fake


# ============================================================================
# Module state
# ============================================================================

@pytest.fixture(autouse=True)
def reset_state():
    resilient_fetch.reset_fetch_metrics()
    cache_utils.clear_all()
    yield
    cache_utils.clear_all()


@pytest.fixture(autouse=True)
def no_sleep():
    """Backoff sleeps are recorded, never slept."""
    with patch('resilient_fetch.time.sleep') as sleep:
        yield sleep


# ============================================================================
# Application
# ============================================================================

class MarketGate:
    def __init__(self, is_open=True):
        self.is_open = is_open

    def __call__(self):
        return self.is_open


@pytest.fixture
def market_gate():
    return MarketGate(True)


@pytest.fixture
def app(market_gate):
    app = create_app({'INTERNAL_API_BASE': 'http://internal.test'}, market_gate=market_gate)
    app.testing = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c
