"""Yahoo Finance access.

Quotes and daily history go through ``yfinance``; intraday bars come from the
public v8 chart endpoint through ``resilient_fetch`` since yfinance's intraday
window handling differs from what the dashboards expect.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Dict, List, Optional

import yfinance as yf
from yfinance.exceptions import YFRateLimitError

from config import CONFIG
from errors import MarketDataError, UpstreamRateLimited, UpstreamUnavailable
from upstream import get_json

YAHOO_CHART_API = CONFIG.get('YAHOO_CHART_API_BASE', 'https://query1.finance.yahoo.com/v8/finance/chart').rstrip('/')

# Keep yfinance's own retry chatter out of our logs
logging.getLogger('yfinance').setLevel(logging.CRITICAL)

QUOTE_FIELDS = (
    'symbol', 'shortName', 'longName', 'marketCap',
    'regularMarketPrice', 'regularMarketChange', 'regularMarketChangePercent',
    'regularMarketVolume', 'regularMarketOpen', 'regularMarketPreviousClose',
    'regularMarketDayHigh', 'regularMarketDayLow', 'regularMarketTime',
    'fiftyTwoWeekHigh', 'fiftyTwoWeekLow',
)

INTRADAY_PARAMS = {
    '1D': {'interval': '5m', 'range': '1d'},
    '1W': {'interval': '15m', 'range': '7d'},
}


def get_quote(symbol: str) -> Dict:
    """Current quote for ``symbol`` with the regularMarket* fields used by the routes."""
    try:
        info = yf.Ticker(symbol).info or {}
    except YFRateLimitError as e:
        raise UpstreamRateLimited(f"yahoo quote {symbol} rate limited", source='yahoo') from e
    except Exception as e:
        raise UpstreamUnavailable(f"yahoo quote {symbol} failed: {e}", source='yahoo') from e
    quote = {k: info.get(k) for k in QUOTE_FIELDS}
    if quote['regularMarketPrice'] is None:
        # Some indices only expose currentPrice
        quote['regularMarketPrice'] = info.get('currentPrice')
    if quote['regularMarketPrice'] is None:
        raise UpstreamUnavailable(f"yahoo quote {symbol} has no price", source='yahoo')
    quote['symbol'] = quote['symbol'] or symbol
    return quote


def _clean(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value


def get_history(symbol: str, start: datetime, end: Optional[datetime] = None, interval: str = '1d') -> List[Dict]:
    """Daily bars ``[{date, close, high, low}]``, oldest first, dates in UTC."""
    try:
        df = yf.Ticker(symbol).history(start=start, end=end, interval=interval, auto_adjust=False)
    except YFRateLimitError as e:
        raise UpstreamRateLimited(f"yahoo history {symbol} rate limited", source='yahoo') from e
    except Exception as e:
        raise UpstreamUnavailable(f"yahoo history {symbol} failed: {e}", source='yahoo') from e
    if df is None or df.empty:
        return []
    rows = []
    for ts, row in df.iterrows():
        close = _clean(row.get('Close'))
        if close is None:
            continue
        dt = ts.to_pydatetime()
        dt = dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)
        rows.append({'date': dt, 'close': close, 'high': _clean(row.get('High')), 'low': _clean(row.get('Low'))})
    return rows


def get_intraday(symbol: str, time_range: str) -> List[Dict]:
    """5m bars for ``1D`` or 15m bars for ``1W``; empty when Yahoo has nothing.

    Null bars reuse the previous bar's values.
    """
    params = INTRADAY_PARAMS[time_range]
    try:
        payload = get_json(f"{YAHOO_CHART_API}/{symbol}", params=params,
                           headers={'User-Agent': CONFIG.get('USER_AGENT')}, source='yahoo')
    except MarketDataError as e:
        logging.warning(f"intraday fetch failed for {symbol}: {e}", extra={'event': 'yahoo_intraday_failed'})
        return []
    result = ((payload.get('chart') or {}).get('result') or [None])[0] or {}
    timestamps = result.get('timestamp') or []
    quotes = ((result.get('indicators') or {}).get('quote') or [{}])[0] or {}
    closes = quotes.get('close') or []
    if not timestamps or not closes:
        logging.warning(f"Missing intraday data for {symbol}, returning empty list")
        return []
    highs = quotes.get('high') or []
    lows = quotes.get('low') or []

    def at(seq, i):
        for j in (i, i - 1):
            if 0 <= j < len(seq) and seq[j]:
                return seq[j]
        return 0

    return [
        {
            'date': datetime.fromtimestamp(ts, tz=timezone.utc),
            'close': at(closes, i),
            'high': at(highs, i),
            'low': at(lows, i),
        }
        for i, ts in enumerate(timestamps)
    ]
