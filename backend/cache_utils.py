import time
import threading
from functools import wraps

_registry = []  # every memoized function, for clear_all()


def _make_key(args, kwargs):
    try:
        key = (tuple(args), tuple(sorted(kwargs.items())))
        hash(key)
        return key
    except TypeError:
        return ('__unhashable__', repr(args), repr(sorted(kwargs.items())))


def ttl_memo(ttl: float = 300.0):
    """Cache return values for `ttl` seconds and de-duplicate concurrent calls.

    Exceptions are not cached; waiters on a failed call recompute.
    """
    def deco(fn):
        store = {}      # key -> (expiry_ts, value)
        inflight = {}   # key -> threading.Event
        lock = threading.Lock()

        @wraps(fn)
        def wrapper(*args, **kwargs):
            key = _make_key(args, kwargs)
            while True:
                with lock:
                    hit = store.get(key)
                    if hit and hit[0] > time.time():
                        return hit[1]
                    evt = inflight.get(key)
                    if evt is None:
                        evt = threading.Event()
                        inflight[key] = evt
                        break
                evt.wait(timeout=30.0)
            try:
                value = fn(*args, **kwargs)
                with lock:
                    store[key] = (time.time() + ttl, value)
                return value
            finally:
                with lock:
                    e = inflight.pop(key, None)
                if e:
                    e.set()

        def _cache_clear():
            with lock:
                store.clear()

        wrapper._cache_clear = _cache_clear
        _registry.append(wrapper)
        return wrapper
    return deco


def clear_all() -> int:
    for fn in _registry:
        fn._cache_clear()
    return len(_registry)
