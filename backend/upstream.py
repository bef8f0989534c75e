"""Upstream providers: endpoints, JSON fetch helper and request fan-out."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from requests.exceptions import RequestException

from config import CONFIG
from errors import MalformedUpstreamPayload, MarketDataError, UpstreamRateLimited, UpstreamUnavailable
from resilient_fetch import fetch_with_retry

COINGECKO_API = CONFIG.get('COINGECKO_API_BASE', 'https://api.coingecko.com/api/v3').rstrip('/')
COINSTATS_API = CONFIG.get('COINSTATS_API_BASE', 'https://openapiv1.coinstats.app').rstrip('/')
FEAR_GREED_API = CONFIG.get('FEAR_GREED_API_BASE', 'https://api.alternative.me/fng/')
MAX_WORKERS = int(CONFIG.get('FANOUT_MAX_WORKERS', 8))


def coingecko_headers() -> dict:
    headers = {'Accept': 'application/json', 'User-Agent': CONFIG.get('USER_AGENT')}
    key = CONFIG.get('COINGECKO_API_KEY')
    if key:
        headers['x-cg-demo-api-key'] = key
    return headers


def coinstats_headers() -> dict:
    headers = {'Accept': 'application/json'}
    key = CONFIG.get('COINSTATS_API_KEY')
    if key:
        headers['X-API-KEY'] = key
    return headers


def get_json(url: str, params: Optional[dict] = None, headers: Optional[dict] = None,
             source: str = 'upstream', **retry_kwargs) -> Any:
    """Fetch ``url`` and decode its JSON body, mapping failures to MarketDataError."""
    try:
        resp = fetch_with_retry(url, params=params, headers=headers, **retry_kwargs)
    except RequestException as e:
        raise UpstreamUnavailable(f"{source} request failed: {e}", source=source) from e
    status = resp.status_code
    if status == 429:
        raise UpstreamRateLimited(f"{source} rate limited", source=source)
    if not 200 <= status < 300:
        raise UpstreamUnavailable(f"{source} returned HTTP {status}", source=source, status=status)
    try:
        return resp.json()
    except ValueError as e:
        raise MalformedUpstreamPayload(f"{source} returned a non-JSON body", source=source) from e


def coingecko(path: str, params: Optional[dict] = None, **retry_kwargs) -> Any:
    return get_json(f"{COINGECKO_API}/{path.lstrip('/')}", params=params,
                    headers=coingecko_headers(), source='coingecko', **retry_kwargs)


def coinstats(path: str, params: Optional[dict] = None) -> Any:
    return get_json(f"{COINSTATS_API}/{path.lstrip('/')}", params=params,
                    headers=coinstats_headers(), source='coinstats')


def fear_greed(limit: int = 1, **extra) -> Any:
    params = {'limit': limit}
    params.update(extra)
    return get_json(FEAR_GREED_API, params=params, headers={'Accept': 'application/json'}, source='alternative.me')


def gather_settled(calls: Dict[str, Callable[[], Any]]) -> Dict[str, Any]:
    """Run every call concurrently and wait for all of them.

    Returns a dict name -> result, where a failed call maps to its exception.
    """
    if not calls:
        return {}
    out: Dict[str, Any] = {}
    workers = max(1, min(MAX_WORKERS, len(calls)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {name: pool.submit(fn) for name, fn in calls.items()}
        for name, fut in futures.items():
            try:
                out[name] = fut.result()
            except MarketDataError as e:
                out[name] = e
            except Exception as e:  # unexpected bug in a call; surface as an upstream failure
                logging.exception('upstream.call_crashed', extra={'event': 'call_crashed', 'call': name})
                out[name] = UpstreamUnavailable(f"{name} crashed: {e}", source=name)
    return out


def gather(calls: Dict[str, Callable[[], Any]]) -> Dict[str, Any]:
    """All-or-nothing fan-out: every call must succeed.

    When any call fails, a rate limit takes precedence; otherwise the first
    failure (in declaration order) is raised.
    """
    results = gather_settled(calls)
    failures = [r for r in results.values() if isinstance(r, MarketDataError)]
    if failures:
        for f in failures:
            if isinstance(f, UpstreamRateLimited):
                raise f
        raise failures[0]
    return results
