"""HTTP GET with bounded retry and exponential backoff.

Retries on rate limiting (429 by default) and on network errors. A retryable
status on the final attempt is returned to the caller as-is; a network error
on the final attempt is re-raised.
"""
import time, requests, logging, threading
from typing import Iterable, Optional, Tuple

from requests.exceptions import RequestException

from config import CONFIG

DEFAULT_MAX_RETRIES = int(CONFIG.get('FETCH_MAX_RETRIES', 3))
DEFAULT_BASE_DELAY_MS = int(CONFIG.get('FETCH_BASE_DELAY_MS', 1000))
API_TIMEOUT: Tuple[float, float] = (
    float(CONFIG.get('API_TIMEOUT_CONNECT', 5)),
    float(CONFIG.get('API_TIMEOUT_READ', 15)),
)

_metrics_lock = threading.Lock()
_metrics = {
    'total_calls': 0,
    'upstream_requests': 0,
    'retries': 0,
    'rate_limited': 0,
    'network_errors': 0,
    'exhausted': 0,
    'last_fetch_duration_ms': 0.0,
}


def _bump(key: str, by: int = 1) -> None:
    with _metrics_lock:
        _metrics[key] += by


def backoff_delay_ms(attempt: int, base_delay_ms: int = DEFAULT_BASE_DELAY_MS) -> int:
    """Delay before retry number ``attempt + 1`` (attempt is zero based)."""
    return base_delay_ms * (2 ** attempt)


def fetch_with_retry(
    url: str,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    retry_statuses: Iterable[int] = (429,),
    timeout=API_TIMEOUT,
):
    """GET ``url``, retrying up to ``max_retries`` times.

    Returns the ``requests.Response`` of the first attempt whose status is not
    retryable, or the last retryable response once attempts are exhausted.
    Raises the last ``RequestException`` if the final attempt fails at the
    network level.
    """
    retry_statuses = frozenset(retry_statuses)
    started = time.time()
    _bump('total_calls')
    retries = 0
    try:
        while True:
            _bump('upstream_requests')
            try:
                resp = requests.get(url, params=params, headers=headers, timeout=timeout)
            except RequestException as e:
                _bump('network_errors')
                if retries >= max_retries:
                    _bump('exhausted')
                    logging.error(
                        'resilient_fetch.network_error_exhausted',
                        extra={'event': 'network_error_exhausted', 'url': url, 'attempts': retries + 1, 'error': str(e)},
                    )
                    raise
                delay = backoff_delay_ms(retries, base_delay_ms)
                logging.warning(
                    f"Fetch error. Retrying in {delay}ms (attempt {retries + 1}/{max_retries})",
                    extra={'event': 'network_error_retry', 'url': url, 'delay_ms': delay, 'error': str(e)},
                )
            else:
                if resp.status_code not in retry_statuses:
                    return resp
                if resp.status_code == 429:
                    _bump('rate_limited')
                if retries >= max_retries:
                    _bump('exhausted')
                    logging.warning(
                        'resilient_fetch.retries_exhausted',
                        extra={'event': 'retries_exhausted', 'url': url, 'status': resp.status_code},
                    )
                    return resp
                delay = backoff_delay_ms(retries, base_delay_ms)
                logging.warning(
                    f"Rate limited. Retrying in {delay}ms (attempt {retries + 1}/{max_retries})",
                    extra={'event': 'rate_limited_retry', 'url': url, 'status': resp.status_code, 'delay_ms': delay},
                )
            _bump('retries')
            time.sleep(delay / 1000.0)
            retries += 1
    finally:
        with _metrics_lock:
            _metrics['last_fetch_duration_ms'] = round((time.time() - started) * 1000.0, 2)


def get_fetch_metrics() -> dict:
    with _metrics_lock:
        return dict(_metrics)


def reset_fetch_metrics() -> None:
    with _metrics_lock:
        for key in _metrics:
            _metrics[key] = 0.0 if key == 'last_fetch_duration_ms' else 0
