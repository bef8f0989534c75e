"""
Deterministic synthetic series served when an upstream is down or empty.

Every generator is seeded from the asset id and its base price, so the same
request produces the same series within a time bucket. Route handlers must
serve this data with ``responses.fallback_response`` so it is never cached
as if it were real.
"""
import random
import time
import zlib
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

COIN_BASE_PRICES = {
    'bitcoin': 30000.0,
    'ethereum': 1800.0,
    'binancecoin': 250.0,
    'solana': 40.0,
}
DEFAULT_COIN_BASE_PRICE = 100.0

# period -> (points, step seconds)
CHART_PERIODS = {
    '24h': (24, 3600),
    '1w': (7, 86400),
    '1m': (30, 86400),
    '3m': (90, 86400 * 3),
    '6m': (180, 86400 * 6),
    '1y': (365, 86400 * 7),
}
DEFAULT_CHART_PERIOD = (100, 86400)

INDEX_FALLBACK_PRICES = {
    '^GSPC': 5958.0,
    '^IXIC': 19211.0,
    '^DJI': 42655.0,
    '^RUT': 2113.0,
    'DX-Y.NYB': 105.5,
}
INDEX_FALLBACK_NAMES = {
    '^GSPC': 'S&P 500',
    '^IXIC': 'NASDAQ Composite',
    '^DJI': 'Dow Jones Industrial Average',
    '^RUT': 'Russell 2000',
    'DX-Y.NYB': 'US Dollar Index',
}
DEFAULT_INDEX_PRICE = 1000.0

BREADTH_BASELINES = {
    'sp': {'advancing': 325, 'declining': 175, 'unchanged': 10, 'total': 510},
    'nasdaq': {'advancing': 1876, 'declining': 1243, 'unchanged': 98, 'total': 3217},
    'dow': {'advancing': 23, 'declining': 7, 'unchanged': 0, 'total': 30},
    'russell': {'advancing': 1125, 'declining': 842, 'unchanged': 33, 'total': 2000},
}


def seeded_rng(*parts) -> random.Random:
    """Random generator seeded from ``parts`` (stable across processes)."""
    key = '|'.join(str(p) for p in parts).encode('utf-8')
    return random.Random(zlib.crc32(key))


def random_walk(base: float, points: int, rng: random.Random, drift: float = 0.0005, noise: float = 0.05) -> List[float]:
    """Trending walk from ``base`` with proportional noise on each point."""
    trend = 1.0 + drift if rng.random() > 0.5 else 1.0 - drift
    price = base
    out = []
    for _ in range(points):
        price *= trend
        out.append(price + price * noise * (rng.random() - 0.5))
    return out


def coin_chart(coin_id: str, period: str = '24h', now: Optional[float] = None) -> List[List[float]]:
    """``[[unix_seconds, price], ...]`` ending at ``now``."""
    points, step = CHART_PERIODS.get(period, DEFAULT_CHART_PERIOD)
    base = COIN_BASE_PRICES.get(coin_id.lower(), DEFAULT_COIN_BASE_PRICE)
    end = int(now if now is not None else time.time())
    end -= end % step
    rng = seeded_rng(coin_id.lower(), base, period, end)
    prices = random_walk(base, points, rng)
    return [[end - (points - i - 1) * step, prices[i]] for i in range(points)]


def index_snapshot(symbol: str, now: Optional[datetime] = None) -> Dict:
    """Fallback ``{historicalData, currentStats}`` for a US index."""
    price = INDEX_FALLBACK_PRICES.get(symbol, DEFAULT_INDEX_PRICE)
    now = now or datetime.now(timezone.utc)
    change = price * 0.007
    return {
        'name': INDEX_FALLBACK_NAMES.get(symbol, 'Unknown Index'),
        'historicalData': [
            {'date': (now - timedelta(hours=1)).isoformat(), 'value': price - change / 2},
            {'date': now.isoformat(), 'value': price},
        ],
        'currentStats': {
            'price': price,
            'change': change,
            'changePercent': 0.7,
            'weekChange': price * 0.02,
            'weekChangePercent': 2.0,
            'monthChange': price * 0.04,
            'monthChangePercent': 4.0,
            'yearToDateChange': price * 0.06,
            'yearToDatePercent': 6.0,
            'high52Week': price * 1.1,
            'low52Week': price * 0.85,
            'dailyHigh': price * 1.01,
            'dailyLow': price * 0.995,
            'volume': 2000000000,
        },
    }


def dominance_estimate(asset: str, current: float, days: int = 30, now: Optional[datetime] = None) -> List[Dict]:
    """Daily series jittered by up to +/-1 point around today's dominance."""
    now = now or datetime.now(timezone.utc)
    start = (now - timedelta(days=days)).replace(hour=0, minute=0, second=0, microsecond=0)
    rng = seeded_rng(asset, round(current, 2), start.date().isoformat())
    out = []
    for i in range(days):
        value = current + (rng.random() - 0.5) * 2
        out.append({
            'date': (start + timedelta(days=i)).isoformat().replace('+00:00', 'Z'),
            'dominance': round(max(0.0, min(100.0, value)), 2),
        })
    return out


def market_breadth(symbol: str, now: Optional[float] = None) -> Optional[Dict[str, int]]:
    """Advancing/declining counts for a known index, or None."""
    base = BREADTH_BASELINES.get(symbol.lower())
    if base is None:
        return None
    data = dict(base)
    # Shift within a five minute bucket so refreshes stay stable
    bucket = int((now if now is not None else time.time()) // 300)
    variation = seeded_rng(symbol.lower(), data['total'], bucket).randint(0, 49)
    if data['advancing'] > variation and data['declining'] > variation:
        data['advancing'] -= variation
        data['declining'] += variation
    return data


def _channel(rng: random.Random, base: float, volatility_weight: float, spread: float,
             volume: tuple, positive: tuple, negative: tuple, volatility: float) -> Dict:
    sentiment = base + volatility * volatility_weight + rng.random() * spread
    return {
        'sentiment': min(100.0, max(0.0, sentiment)),
        'volume': int(volume[0] + rng.random() * volume[1]),
        'positiveCount': int(positive[0] + rng.random() * positive[1]),
        'negativeCount': int(negative[0] + rng.random() * negative[1]),
    }


def social_sentiment(monthly_prices: Dict[str, Dict[str, float]], months: int = 12,
                     now: Optional[datetime] = None) -> List[Dict]:
    """Monthly social sentiment estimate driven by BTC monthly volatility.

    ``monthly_prices`` maps ``YYYY-MM`` to ``{min, max, avg}``.
    """
    now = now or datetime.now(timezone.utc)
    out = []
    for back in range(months - 1, -1, -1):
        year, month = now.year, now.month - back
        while month <= 0:
            month += 12
            year -= 1
        key = f'{year}-{month:02d}'
        btc = monthly_prices.get(key) or {'min': 0.0, 'max': 0.0, 'avg': 0.0}
        volatility = (btc['max'] - btc['min']) / btc['avg'] * 100.0 if btc['avg'] else 0.0
        rng = seeded_rng('social', key, round(btc['avg'], 2))
        twitter = _channel(rng, 40, 0.3, 20, (100000, 900000), (10000, 40000), (5000, 20000), volatility)
        reddit = _channel(rng, 35, 0.25, 25, (80000, 700000), (8000, 35000), (4000, 18000), volatility)
        telegram = _channel(rng, 30, 0.2, 30, (60000, 500000), (6000, 30000), (3000, 15000), volatility)
        channels = (twitter, reddit, telegram)
        out.append({
            'date': f'{key}-01',
            'btcPrice': btc['avg'],
            'btcPriceMin': btc['min'],
            'btcPriceMax': btc['max'],
            'twitter': twitter,
            'reddit': reddit,
            'telegram': telegram,
            'aggregate': {
                'sentiment': round(sum(c['sentiment'] for c in channels) / 3),
                'volume': sum(c['volume'] for c in channels),
                'positiveCount': sum(c['positiveCount'] for c in channels),
                'negativeCount': sum(c['negativeCount'] for c in channels),
            },
        })
    return out
