"""
/api/market-wrapper: market-hours aware proxy over the equity routes.

While the US session is closed the last captured response for a route is
replayed from the ResponseCache; otherwise the request is forwarded over HTTP
to the route itself and the result captured.
"""
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from flask import Blueprint, current_app, jsonify, request
from requests.exceptions import RequestException

from errors import InvalidRequest
from market_hours import is_market_open
from resilient_fetch import fetch_with_retry
from response_cache import ResponseCache, cache_key

ALLOWED_ENDPOINTS = frozenset({
    '/api/market-indices',
    '/api/market-movers',
    '/api/us-markets',
    '/api/top-companies',
    '/api/global-markets',
})

FORWARD_FAILED = 'Failed to fetch data from endpoint'

market_wrapper_bp = Blueprint('market_wrapper', __name__)


class MarketWrapper:
    def __init__(
        self,
        cache: ResponseCache,
        gate: Callable[[], bool] = is_market_open,
        base_url: str = '',
        key_by_query: bool = True,
    ):
        self.cache = cache
        self.gate = gate
        self.base_url = base_url.rstrip('/')
        self.key_by_query = key_by_query

    @staticmethod
    def validate(endpoint: Optional[str]) -> str:
        if not endpoint:
            raise InvalidRequest('Missing endpoint parameter')
        # Exact match only, so '../' or suffixed paths never reach the forwarder
        if endpoint not in ALLOWED_ENDPOINTS:
            raise InvalidRequest('Invalid endpoint')
        return endpoint

    def dispatch(self, endpoint: Optional[str], params: Dict[str, str], host_url: str = '') -> Tuple[Any, int]:
        """Return ``(body, status)`` for a proxied call.

        Raises InvalidRequest for a missing or disallowed endpoint.
        """
        endpoint = self.validate(endpoint)
        forward_params = {k: v for k, v in params.items() if k != 'endpoint'}
        key = cache_key(endpoint, forward_params, include_query=self.key_by_query)

        if not self.gate():
            entry = self.cache.lookup(key)
            if entry is not None:
                logging.info(f"market closed, replaying {key} captured {entry.captured_iso()}",
                             extra={'event': 'market_wrapper_cache_hit'})
                return self._replay(entry), 200

        base = self.base_url or host_url.rstrip('/')
        try:
            resp = fetch_with_retry(f"{base}{endpoint}", params=forward_params or None)
            body = resp.json()
        except (RequestException, ValueError) as e:
            logging.error(f"market wrapper forward to {endpoint} failed: {e}",
                          extra={'event': 'market_wrapper_forward_failed'})
            return {'success': False, 'error': FORWARD_FAILED}, 500

        if 200 <= resp.status_code < 300:
            self.cache.record(key, body)
        else:
            logging.warning(f"market wrapper: {endpoint} returned {resp.status_code}, not cached",
                            extra={'event': 'market_wrapper_passthrough'})
        return body, resp.status_code

    @staticmethod
    def _replay(entry):
        data = entry.data
        if isinstance(data, dict):
            return {**data, 'cached': True, 'cachedTime': entry.captured_iso()}
        return {'data': data, 'cached': True, 'cachedTime': entry.captured_iso()}


@market_wrapper_bp.route('/api/market-wrapper')
def market_wrapper():
    wrapper: MarketWrapper = current_app.extensions['market_wrapper']
    try:
        body, status = wrapper.dispatch(request.args.get('endpoint'), request.args.to_dict(), request.host_url)
    except InvalidRequest as e:
        return jsonify({'success': False, 'error': e.public_message}), 400
    return jsonify(body), status
