from unittest.mock import patch

import pytest

import cache_utils
from cache_utils import ttl_memo


def test_ttl_memo_caches_per_arguments():
    calls = []

    @ttl_memo(ttl=60)
    def square(x):
        calls.append(x)
        return x * x

    assert square(3) == 9
    assert square(3) == 9
    assert square(4) == 16
    assert calls == [3, 4]


def test_ttl_memo_expires():
    calls = []

    @ttl_memo(ttl=10)
    def value():
        calls.append(1)
        return len(calls)

    with patch('cache_utils.time.time', return_value=1000.0):
        assert value() == 1
    with patch('cache_utils.time.time', return_value=1005.0):
        assert value() == 1
    with patch('cache_utils.time.time', return_value=1011.0):
        assert value() == 2


def test_ttl_memo_does_not_cache_errors():
    attempts = []

    @ttl_memo(ttl=60)
    def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError('first call fails')
        return 'ok'

    with pytest.raises(RuntimeError):
        flaky()
    assert flaky() == 'ok'
    assert flaky() == 'ok'
    assert len(attempts) == 2


def test_clear_all_resets_every_memo():
    calls = []

    @ttl_memo(ttl=60)
    def cached():
        calls.append(1)
        return len(calls)

    assert cached() == 1
    assert cache_utils.clear_all() >= 1
    assert cached() == 2
