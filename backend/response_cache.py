"""
Response Cache for the market wrapper proxy.

In-memory, process-lifetime store of proxied responses. Entries expire after a
fixed window (one hour by default). Once the list grows past the trim
threshold, expired entries are dropped and only the most recent ones are kept.
Not distributed and not persisted.
"""
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode


def _now_ms() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True)
class CacheEntry:
    """One captured response.

    - data: decoded JSON body of the forwarded call
    - captured_at_ms: epoch milliseconds at capture
    - endpoint_key: route (plus query, depending on keying mode)
    """
    data: Any
    captured_at_ms: float
    endpoint_key: str

    def age_seconds(self, now_ms: float) -> float:
        return (now_ms - self.captured_at_ms) / 1000.0

    def captured_iso(self) -> str:
        return datetime.fromtimestamp(self.captured_at_ms / 1000.0, tz=timezone.utc).isoformat().replace('+00:00', 'Z')


def cache_key(endpoint: str, params: Optional[Dict[str, str]] = None, include_query: bool = True) -> str:
    """Cache key for a proxied route.

    With ``include_query`` the sorted query string is part of the key, so
    ``/api/us-markets?symbol=^GSPC`` and ``/api/us-markets`` are stored apart.
    """
    if not include_query or not params:
        return endpoint
    query = urlencode(sorted((k, v) for k, v in params.items() if k != 'endpoint'))
    return f"{endpoint}?{query}" if query else endpoint


class ResponseCache:
    def __init__(
        self,
        expiration_seconds: int = 3600,
        trim_threshold: int = 50,
        keep_recent: int = 30,
        clock: Callable[[], float] = _now_ms,
    ):
        self.expiration_ms = expiration_seconds * 1000.0
        self.trim_threshold = trim_threshold
        self.keep_recent = keep_recent
        self._clock = clock
        self._entries: List[CacheEntry] = []
        self._lock = threading.Lock()

    def _is_fresh(self, entry: CacheEntry, now_ms: float) -> bool:
        return now_ms - entry.captured_at_ms < self.expiration_ms

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """Newest unexpired entry for ``key``, or None."""
        now_ms = self._clock()
        with self._lock:
            for entry in reversed(self._entries):
                if entry.endpoint_key == key and self._is_fresh(entry, now_ms):
                    return entry
        return None

    def record(self, key: str, data: Any) -> CacheEntry:
        now_ms = self._clock()
        entry = CacheEntry(data=data, captured_at_ms=now_ms, endpoint_key=key)
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self.trim_threshold:
                fresh = [e for e in self._entries if self._is_fresh(e, now_ms)]
                self._entries = fresh[-self.keep_recent:]
        return entry

    def clear(self) -> int:
        with self._lock:
            n = len(self._entries)
            self._entries = []
        return n

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def snapshot(self) -> List[CacheEntry]:
        with self._lock:
            return list(self._entries)

    def stats(self) -> Dict[str, Any]:
        now_ms = self._clock()
        entries = self.snapshot()
        ages = [e.age_seconds(now_ms) for e in entries]
        return {
            'entries': len(entries),
            'fresh_entries': sum(1 for e in entries if self._is_fresh(e, now_ms)),
            'keys': sorted({e.endpoint_key for e in entries}),
            'oldest_age_seconds': round(max(ages), 3) if ages else None,
            'newest_age_seconds': round(min(ages), 3) if ages else None,
            'expiration_seconds': self.expiration_ms / 1000.0,
        }
