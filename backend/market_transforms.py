"""Reshaping for Yahoo Finance quotes and history."""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

STOCKS_BY_INDEX = {
    'dow': [
        'AAPL', 'MSFT', 'JPM', 'GS', 'V', 'CRM', 'HD', 'INTC', 'IBM', 'WMT',
        'NKE', 'MCD', 'DIS', 'BA', 'CAT', 'AXP', 'VZ', 'CSCO', 'KO', 'MRK',
        'MMM', 'PG', 'TRV', 'UNH', 'HON', 'DOW', 'CVX', 'AMGN', 'JNJ', 'WBA',
    ],
    'nasdaq': [
        'AAPL', 'MSFT', 'GOOGL', 'AMZN', 'META', 'NVDA', 'TSLA', 'ADBE', 'NFLX', 'PYPL',
        'INTC', 'CSCO', 'CMCSA', 'PEP', 'COST', 'AVGO', 'TXN', 'QCOM', 'TMUS', 'AMAT',
    ],
    'sp500': [
        'AAPL', 'MSFT', 'AMZN', 'GOOGL', 'META', 'NVDA', 'BRK-B', 'JPM', 'V', 'JNJ',
        'PG', 'XOM', 'HD', 'CVX', 'MA', 'BAC', 'UNH', 'ABBV', 'PFE', 'DIS',
    ],
}

MARKET_INDICES = {
    '^DJI': 'Dow Jones Industrial Average',
    '^IXIC': 'NASDAQ Composite',
    '^GSPC': 'S&P 500',
    '^RUT': 'Russell 2000',
}

US_MARKET_KEYS = {
    '^GSPC': 'sp500',
    '^IXIC': 'nasdaq',
    '^DJI': 'dowJones',
    '^RUT': 'russell2000',
    'DX-Y.NYB': 'dollarIndex',
}

US_MARKET_SLUGS = {
    'sp500': '^GSPC',
    'nasdaq': '^IXIC',
    'dow-jones': '^DJI',
    'russell2000': '^RUT',
    'dollar-index': 'DX-Y.NYB',
}

TOP_COMPANIES = [
    ('AAPL', 'Apple Inc'),
    ('MSFT', 'Microsoft'),
    ('NVDA', 'Nvidia'),
    ('AMZN', 'Amazon'),
    ('WMT', 'Walmart'),
]

# symbol -> (key, name, region, country)
GLOBAL_INDICES = {
    '^N225': ('nikkei225', 'Nikkei 225', 'Asia Pacific', 'Japan'),
    '^HSI': ('hangSeng', 'Hang Seng', 'Asia Pacific', 'Hong Kong'),
    '000001.SS': ('shanghai', 'Shanghai Composite', 'Asia Pacific', 'China'),
    '399001.SZ': ('shenzhen', 'Shenzhen Component', 'Asia Pacific', 'China'),
    '^AXJO': ('asx200', 'ASX 200', 'Asia Pacific', 'Australia'),
    '^KS11': ('kospi', 'KOSPI', 'Asia Pacific', 'South Korea'),
    '^TWII': ('taiex', 'TAIEX', 'Asia Pacific', 'Taiwan'),
    '^STI': ('sti', 'Straits Times Index', 'Asia Pacific', 'Singapore'),
    '^JKSE': ('jakarta', 'Jakarta Composite', 'Asia Pacific', 'Indonesia'),
    '^BSESN': ('sensex', 'BSE SENSEX', 'Asia Pacific', 'India'),
    '^NSEI': ('nifty50', 'NIFTY 50', 'Asia Pacific', 'India'),
    '^FTSE': ('ftse100', 'FTSE 100', 'Europe', 'United Kingdom'),
    '^GDAXI': ('dax', 'DAX 40', 'Europe', 'Germany'),
    '^FCHI': ('cac40', 'CAC 40', 'Europe', 'France'),
    '^STOXX50E': ('eurostoxx50', 'Euro Stoxx 50', 'Europe', 'Eurozone'),
    '^IBEX': ('ibex35', 'IBEX 35', 'Europe', 'Spain'),
    'FTSEMIB.MI': ('ftseItalia', 'FTSE MIB', 'Europe', 'Italy'),
    '^AEX': ('aex', 'AEX', 'Europe', 'Netherlands'),
    '^SSMI': ('smi', 'SMI', 'Europe', 'Switzerland'),
    '^OMX': ('omx30', 'OMX 30', 'Europe', 'Sweden'),
    'IMOEX.ME': ('moex', 'MOEX', 'Europe', 'Russia'),
    '^BVSP': ('bovespa', 'Bovespa', 'Americas', 'Brazil'),
    '^MXX': ('ipc', 'S&P/BMV IPC', 'Americas', 'Mexico'),
    '^GSPTSE': ('tsx', 'S&P/TSX Composite', 'Americas', 'Canada'),
    '^MERV': ('merval', 'S&P Merval', 'Americas', 'Argentina'),
    '^IPSA': ('ipsa', 'S&P/CLX IPSA', 'Americas', 'Chile'),
    '^COLCAP': ('colcap', 'COLCAP', 'Americas', 'Colombia'),
    'TASI.SR': ('tasi', 'Tadawul All Share', 'Middle East & Africa', 'Saudi Arabia'),
    '^TA125.TA': ('ta125', 'TA-125', 'Middle East & Africa', 'Israel'),
    '^QSI': ('qsi', 'Qatar General', 'Middle East & Africa', 'Qatar'),
    '^ADI': ('adi', 'ADX General', 'Middle East & Africa', 'UAE'),
    '^DFMGI': ('dfmgi', 'DFM General', 'Middle East & Africa', 'UAE'),
    '^EGX30': ('egx30', 'EGX 30', 'Middle East & Africa', 'Egypt'),
    '^CASE30': ('case30', 'EGX 30 Capped', 'Middle East & Africa', 'Egypt'),
    '^JSE': ('jse', 'JSE Top 40', 'Middle East & Africa', 'South Africa'),
}

TIME_RANGES = ('1D', '1W', '1M', '3M', '6M', '1Y')
TOUCH_TOLERANCE = 0.005


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def time_range_start(time_range: str, now: Optional[datetime] = None) -> datetime:
    now = now or _utcnow()
    if time_range == '1D':
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    days = {'1W': 7, '1M': 30, '3M': 91, '6M': 182}.get(time_range, 365)
    return now - timedelta(days=days)


def short_date(d: datetime) -> str:
    return f"{d:%b} {d.day}, {d.year}"


def _first_on_or_after(history: List[Dict], cutoff: datetime) -> Optional[Dict]:
    for row in history:
        if row['date'] >= cutoff:
            return row
    return None


def change_since(price: float, history: List[Dict], cutoff: datetime):
    """Absolute and percent change from the first close at or after ``cutoff``."""
    ref = _first_on_or_after(history, cutoff)
    base = (ref or {}).get('close') or price
    change = price - base
    pct = (change / base) * 100 if base else 0.0
    return change, pct


def year_to_date(price: float, history: List[Dict], now: Optional[datetime] = None):
    now = now or _utcnow()
    return change_since(price, history, datetime(now.year, 1, 1, tzinfo=timezone.utc))


def index_stats(quote: Dict, history: List[Dict], now: Optional[datetime] = None) -> Dict:
    """``{historicalData, currentStats}`` block shared by the us/global market listings."""
    price = quote.get('regularMarketPrice') or 0
    ytd_change, ytd_pct = year_to_date(price, history, now)
    stats = {
        'price': price,
        'change': quote.get('regularMarketChange') or 0,
        'changePercent': quote.get('regularMarketChangePercent') or 0,
        'yearToDateChange': ytd_change,
        'yearToDatePercent': ytd_pct,
        'high52Week': quote.get('fiftyTwoWeekHigh') or price,
        'low52Week': quote.get('fiftyTwoWeekLow') or price,
        'volume': quote.get('regularMarketVolume') or 0,
    }
    market_time = quote.get('regularMarketTime')
    if market_time:
        stats['regularMarketTime'] = _market_time_iso(market_time)
    return {
        'historicalData': [{'date': short_date(r['date']), 'value': r['close']} for r in history],
        'currentStats': stats,
    }


def _market_time_iso(value) -> str:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
    return str(value)


def index_detail(quote: Dict, history: List[Dict], now: Optional[datetime] = None) -> Dict:
    """Single index view with week / month / YTD changes."""
    now = now or _utcnow()
    price = quote.get('regularMarketPrice') or 0
    week_change, week_pct = change_since(price, history, now - timedelta(days=7))
    month_change, month_pct = change_since(price, history, now - timedelta(days=30))
    ytd_change, ytd_pct = year_to_date(price, history, now)
    return {
        'historicalData': [{'date': r['date'].isoformat(), 'value': r['close']} for r in history],
        'currentStats': {
            'price': price,
            'change': quote.get('regularMarketChange') or 0,
            'changePercent': quote.get('regularMarketChangePercent') or 0,
            'weekChange': week_change,
            'weekChangePercent': week_pct,
            'monthChange': month_change,
            'monthChangePercent': month_pct,
            'yearToDateChange': ytd_change,
            'yearToDatePercent': ytd_pct,
            'high52Week': quote.get('fiftyTwoWeekHigh') or price * 1.1,
            'low52Week': quote.get('fiftyTwoWeekLow') or price * 0.85,
            'dailyHigh': quote.get('regularMarketDayHigh') or price,
            'dailyLow': quote.get('regularMarketDayLow') or price,
            'volume': quote.get('regularMarketVolume') or 0,
        },
    }


def market_index_row(symbol: str, quote: Dict, history: List[Dict]) -> Dict:
    """Row for /api/market-indices; YTD is measured from the first point of the window."""
    price = quote.get('regularMarketPrice') or 0
    start = (history[0]['close'] if history else None) or price
    ytd = ((price - start) / start) * 100 if start else 0.0
    row = {
        'symbol': quote.get('symbol') or symbol,
        'name': MARKET_INDICES.get(symbol) or quote.get('shortName') or quote.get('longName') or '',
        'price': price,
        'change': quote.get('regularMarketChange') or 0,
        'changePercent': quote.get('regularMarketChangePercent') or 0,
        'volume': quote.get('regularMarketVolume') or 0,
        'ytdChange': ytd,
        'high52Week': quote.get('fiftyTwoWeekHigh') or 0,
        'low52Week': quote.get('fiftyTwoWeekLow') or 0,
        'openPrice': quote.get('regularMarketOpen') or price,
        'previousClose': quote.get('regularMarketPreviousClose') or price,
        'dayHigh': quote.get('regularMarketDayHigh') or price,
        'dayLow': quote.get('regularMarketDayLow') or price,
        'historicalData': [{'date': r['date'].isoformat(), 'value': r['close']} for r in history],
    }
    if quote.get('regularMarketTime'):
        row['regularMarketTime'] = _market_time_iso(quote['regularMarketTime'])
    return row


def stock_row(quote: Dict) -> Dict:
    symbol = quote.get('symbol') or ''
    return {
        'symbol': symbol,
        'name': quote.get('shortName') or quote.get('longName') or symbol,
        'price': quote.get('regularMarketPrice') or 0,
        'change': quote.get('regularMarketChange') or 0,
        'changePercent': quote.get('regularMarketChangePercent') or 0,
        'volume': quote.get('regularMarketVolume') or 0,
    }


def split_stock_movers(quotes: List[Dict], n: int = 5) -> Dict[str, List[Dict]]:
    rows = [r for r in (stock_row(q) for q in quotes) if r['price'] > 0 and r['symbol'] and r['name']]
    ranked = sorted(rows, key=lambda r: r['changePercent'], reverse=True)
    return {'gainers': ranked[:n], 'losers': list(reversed(ranked))[:n]}


def _touching(price: float, bound: float) -> bool:
    if not bound:
        return False
    return abs((price - bound) / bound) <= TOUCH_TOLERANCE


def company_row(symbol: str, name: str, quote: Dict) -> Dict:
    price = quote.get('regularMarketPrice') or 0
    high = quote.get('fiftyTwoWeekHigh') or 0
    low = quote.get('fiftyTwoWeekLow') or 0
    return {
        'symbol': symbol,
        'name': name,
        'price': price,
        'marketCap': quote.get('marketCap') or 0,
        'change': quote.get('regularMarketChange') or 0,
        'changePercent': quote.get('regularMarketChangePercent') or 0,
        'high52Week': high,
        'low52Week': low,
        'touchingHigh': _touching(price, high),
        'touchingLow': _touching(price, low),
    }


def group_by_region(rows: List[Dict]) -> Dict[str, List[Dict]]:
    """Rows carrying a ``region`` key -> ``{region: [row without region]}`` in input order."""
    out: Dict[str, List[Dict]] = {}
    for row in rows:
        item = dict(row)
        region = item.pop('region')
        out.setdefault(region, []).append(item)
    return out
