"""Runtime configuration for the market data backend.

Values come from the environment (optionally a local ``.env`` file) and are
exposed as a flat ``CONFIG`` dict so call sites can use ``CONFIG.get(...)``.
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {'1', 'true', 'yes', 'on'}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def load_config() -> dict:
    return {
        # Server
        'HOST': os.environ.get('HOST', '0.0.0.0'),
        'PORT': _env_int('PORT', 5001),
        'DEBUG': _env_bool('DEBUG', False),
        'CORS_ALLOWED_ORIGINS': os.environ.get('CORS_ALLOWED_ORIGINS', '*'),
        'ENABLE_DEBUG_ENDPOINTS': _env_bool('ENABLE_DEBUG_ENDPOINTS', False),
        'LOG_FORMAT': os.environ.get('LOG_FORMAT', 'text'),
        'LOG_DIR': os.environ.get('LOG_DIR', ''),

        # Outbound HTTP
        'API_TIMEOUT_CONNECT': _env_float('API_TIMEOUT_CONNECT', 5),
        'API_TIMEOUT_READ': _env_float('API_TIMEOUT_READ', 15),
        'FETCH_MAX_RETRIES': _env_int('FETCH_MAX_RETRIES', 3),
        'FETCH_BASE_DELAY_MS': _env_int('FETCH_BASE_DELAY_MS', 1000),
        'FANOUT_MAX_WORKERS': _env_int('FANOUT_MAX_WORKERS', 8),
        'USER_AGENT': os.environ.get('USER_AGENT', 'Mozilla/5.0 (compatible; CryptoGreedIndex/1.0)'),

        # Providers (keys are never hardcoded)
        'COINGECKO_API_BASE': os.environ.get('COINGECKO_API_BASE', 'https://api.coingecko.com/api/v3'),
        'COINGECKO_API_KEY': os.environ.get('COINGECKO_API_KEY', ''),
        'COINSTATS_API_BASE': os.environ.get('COINSTATS_API_BASE', 'https://openapiv1.coinstats.app'),
        'COINSTATS_API_KEY': os.environ.get('COINSTATS_API_KEY', ''),
        'FEAR_GREED_API_BASE': os.environ.get('FEAR_GREED_API_BASE', 'https://api.alternative.me/fng/'),
        'YAHOO_CHART_API_BASE': os.environ.get('YAHOO_CHART_API_BASE', 'https://query1.finance.yahoo.com/v8/finance/chart'),

        # Market wrapper proxy
        'INTERNAL_API_BASE': os.environ.get('INTERNAL_API_BASE', ''),
        'MARKET_TIMEZONE': os.environ.get('MARKET_TIMEZONE', 'America/New_York'),
        'RESPONSE_CACHE_EXPIRATION_SECONDS': _env_int('RESPONSE_CACHE_EXPIRATION_SECONDS', 3600),
        'RESPONSE_CACHE_TRIM_THRESHOLD': _env_int('RESPONSE_CACHE_TRIM_THRESHOLD', 50),
        'RESPONSE_CACHE_KEEP': _env_int('RESPONSE_CACHE_KEEP', 30),
        'MARKET_WRAPPER_KEY_BY_QUERY': _env_bool('MARKET_WRAPPER_KEY_BY_QUERY', True),

        # Handler memo windows
        'FEAR_GREED_CACHE_SECONDS': _env_int('FEAR_GREED_CACHE_SECONDS', 300),
    }


CONFIG = load_config()

SECRET_KEYS = ('COINGECKO_API_KEY', 'COINSTATS_API_KEY')


def redacted(config: dict) -> dict:
    """Copy of ``config`` safe to log or return to clients."""
    out = dict(config)
    for key in SECRET_KEYS:
        if out.get(key):
            out[key] = '***'
    return out
