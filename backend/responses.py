"""JSON response helpers shared by the route blueprints."""
import logging
from functools import wraps
from typing import Optional

from flask import jsonify

from errors import InvalidRequest, MalformedUpstreamPayload, MarketDataError, UpstreamRateLimited

ERROR_CACHE_CONTROL = 'public, max-age=60, s-maxage=60'
NO_STORE_CACHE_CONTROL = 'private, max-age=0'


def cache_control(max_age: int, stale_while_revalidate: Optional[int] = None) -> str:
    value = f'public, max-age={int(max_age)}, s-maxage={int(max_age)}'
    if stale_while_revalidate is not None:
        value += f', stale-while-revalidate={int(stale_while_revalidate)}'
    return value


def json_response(body, max_age: Optional[int] = None, stale_while_revalidate: Optional[int] = None,
                  status: int = 200, headers: Optional[dict] = None):
    resp = jsonify(body)
    resp.status_code = status
    if max_age is not None:
        resp.headers['Cache-Control'] = cache_control(max_age, stale_while_revalidate)
    for k, v in (headers or {}).items():
        resp.headers[k] = v
    return resp


def fallback_response(body, status: int = 200):
    """Synthesized data: never cached by clients or CDNs."""
    if isinstance(body, dict):
        body = dict(body, fallback=True)
    resp = jsonify(body)
    resp.status_code = status
    resp.headers['Cache-Control'] = NO_STORE_CACHE_CONTROL
    resp.headers['X-Data-Source'] = 'fallback'
    return resp


def error_body(message: str, envelope: str = 'plain') -> dict:
    if envelope == 'success':
        return {'success': False, 'error': message}
    return {'error': message}


def error_response(message: str, status: int, envelope: str = 'plain'):
    resp = jsonify(error_body(message, envelope))
    resp.status_code = status
    resp.headers['Cache-Control'] = ERROR_CACHE_CONTROL
    return resp


def handle_upstream_errors(message: str = 'Failed to fetch data', envelope: str = 'plain'):
    """Map MarketDataError raised by a view to a JSON error response.

    ``message`` is the generic text returned for upstream failures; the
    underlying detail is only logged.
    """
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except UpstreamRateLimited as e:
                logging.warning(f"{fn.__name__}: {e}", extra={'event': 'upstream_rate_limited', 'source': e.source})
                return error_response(e.public_message, 429, envelope)
            except InvalidRequest as e:
                return error_response(e.public_message, 400, envelope)
            except MalformedUpstreamPayload as e:
                logging.error(f"{fn.__name__}: {e}", extra={'event': 'upstream_malformed', 'source': e.source})
                return error_response(e.public_message, 500, envelope)
            except MarketDataError as e:
                logging.error(f"{fn.__name__}: {e}", extra={'event': 'upstream_error', 'source': e.source})
                return error_response(message, e.status_code, envelope)
        return wrapper
    return deco
