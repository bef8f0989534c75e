"""Yahoo Finance backed equity market routes."""
import logging
from datetime import datetime, timedelta, timezone

from flask import Blueprint, request

from errors import MarketDataError, UpstreamUnavailable
import fallback_data
from market_hours import MARKET_TZ, get_refresh_interval, is_market_open, should_fetch_market_data
from market_transforms import (
    GLOBAL_INDICES, MARKET_INDICES, STOCKS_BY_INDEX, TIME_RANGES, TOP_COMPANIES, US_MARKET_KEYS,
    US_MARKET_SLUGS, company_row, group_by_region, index_detail, index_stats, market_index_row,
    split_stock_movers, time_range_start,
)
from responses import error_response, fallback_response, handle_upstream_errors, json_response
from upstream import gather_settled
import yahoo_client

markets_bp = Blueprint('markets', __name__)


def _local_label(fmt: str) -> str:
    return datetime.now(MARKET_TZ).strftime(fmt)


def _quote_and_history(symbol: str, start: datetime):
    """Quote plus daily closes since ``start``; both must succeed."""
    results = gather_settled({
        'quote': lambda: yahoo_client.get_quote(symbol),
        'history': lambda: yahoo_client.get_history(symbol, start),
    })
    for part in ('quote', 'history'):
        if isinstance(results[part], MarketDataError):
            raise results[part]
    return results['quote'], results['history']


def _settled_or_raise(results: dict, what: str) -> dict:
    """Drop failed items; raise only when nothing succeeded."""
    ok = {k: v for k, v in results.items() if not isinstance(v, MarketDataError)}
    failed = [k for k in results if k not in ok]
    if failed:
        logging.warning(f"{what}: {len(failed)} item(s) failed: {', '.join(failed)}",
                        extra={'event': 'partial_listing'})
    if results and not ok:
        raise next(iter(results.values()))
    return ok


def _one_year_ago() -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=365)


@markets_bp.route('/api/market-indices')
@handle_upstream_errors('Failed to fetch market indices data', envelope='success')
def market_indices():
    start = datetime.now(timezone.utc) - timedelta(days=5)
    results = gather_settled({
        symbol: (lambda s=symbol: _quote_and_history(s, start)) for symbol in MARKET_INDICES
    })
    ok = _settled_or_raise(results, 'market-indices')
    rows = [market_index_row(symbol, *ok[symbol]) for symbol in MARKET_INDICES if symbol in ok]
    body = {
        'success': True,
        'data': {
            'indices': [r for r in rows if r['price'] > 0],
            'lastUpdated': _local_label('%I:%M %p'),
        },
    }
    return json_response(body, max_age=60, stale_while_revalidate=60)


@markets_bp.route('/api/market-movers')
@handle_upstream_errors('Failed to fetch market movers data', envelope='success')
def market_movers():
    index = (request.args.get('index') or 'dow').lower()
    symbols = STOCKS_BY_INDEX.get(index) or STOCKS_BY_INDEX['dow']
    results = gather_settled({s: (lambda s=s: yahoo_client.get_quote(s)) for s in symbols})
    ok = _settled_or_raise(results, 'market-movers')
    movers = split_stock_movers([ok[s] for s in symbols if s in ok])
    body = {
        'success': True,
        'data': dict(movers, asOf=_local_label('%b %d, %I:%M %p %Z')),
    }
    return json_response(body, max_age=60, stale_while_revalidate=60)


@markets_bp.route('/api/us-markets')
@handle_upstream_errors('Failed to fetch market data')
def us_markets():
    symbol = request.args.get('symbol')
    start = _one_year_ago()
    if symbol:
        quote, history = _quote_and_history(symbol, start)
        return json_response({'success': True, 'data': index_stats(quote, history)}, max_age=300)
    results = gather_settled({s: (lambda s=s: _quote_and_history(s, start)) for s in US_MARKET_KEYS})
    ok = _settled_or_raise(results, 'us-markets')
    data = {US_MARKET_KEYS[s]: index_stats(*ok[s]) for s in US_MARKET_KEYS if s in ok}
    return json_response({'success': True, 'data': data}, max_age=300)


@markets_bp.route('/api/us-markets/<slug>')
def us_market_detail(slug):
    symbol = US_MARKET_SLUGS.get(slug)
    if not symbol:
        return error_response('Invalid market index symbol', 400, envelope='success')
    time_range = request.args.get('timeRange') or '1Y'
    if time_range not in TIME_RANGES:
        time_range = '1Y'
    now = datetime.now(timezone.utc)
    try:
        if time_range in yahoo_client.INTRADAY_PARAMS:
            quote = yahoo_client.get_quote(symbol)
            history = yahoo_client.get_intraday(symbol, time_range)
        else:
            quote, history = _quote_and_history(symbol, time_range_start(time_range, now))
        if not quote.get('regularMarketPrice'):
            raise UpstreamUnavailable(f'no price for {symbol}', source='yahoo')
    except MarketDataError as e:
        logging.warning(f"us-markets/{slug}: serving fallback data ({e})", extra={'event': 'index_fallback'})
        data = dict(fallback_data.index_snapshot(symbol), lastUpdated=_local_label('%I:%M:%S %p'))
        return fallback_response({'success': True, 'data': data})
    data = dict(index_detail(quote, history, now), lastUpdated=_local_label('%I:%M:%S %p'))
    return json_response({'success': True, 'data': data}, max_age=60, stale_while_revalidate=60)


@markets_bp.route('/api/top-companies')
@handle_upstream_errors('Failed to fetch top companies data')
def top_companies():
    results = gather_settled({symbol: (lambda s=symbol: yahoo_client.get_quote(s)) for symbol, _ in TOP_COMPANIES})
    ok = _settled_or_raise(results, 'top-companies')
    rows = [company_row(symbol, name, ok[symbol]) for symbol, name in TOP_COMPANIES if symbol in ok]
    rows.sort(key=lambda r: r['marketCap'], reverse=True)
    body = {
        'success': True,
        'data': {'companies': rows, 'lastUpdated': _local_label('%m/%d/%Y, %I:%M %p %Z')},
    }
    return json_response(body, max_age=300)


@markets_bp.route('/api/global-markets')
@handle_upstream_errors('Failed to fetch market data')
def global_markets():
    symbol = request.args.get('symbol')
    start = _one_year_ago()
    if symbol:
        quote, history = _quote_and_history(symbol, start)
        return json_response({'success': True, 'data': index_stats(quote, history)}, max_age=300)
    region = request.args.get('region')
    selected = {s: info for s, info in GLOBAL_INDICES.items() if not region or info[2] == region}
    results = gather_settled({s: (lambda s=s: _quote_and_history(s, start)) for s in selected})
    ok = _settled_or_raise(results, 'global-markets')
    rows = []
    for s, (key, name, reg, country) in selected.items():
        if s in ok:
            rows.append(dict(key=key, name=name, country=country, region=reg, **index_stats(*ok[s])))
    return json_response({'success': True, 'data': group_by_region(rows)}, max_age=300)


@markets_bp.route('/api/market-breadth/<symbol>')
def market_breadth(symbol):
    data = fallback_data.market_breadth(symbol)
    if data is None:
        return error_response(f'No market breadth data available for {symbol}', 404, envelope='success')
    return fallback_response({'success': True, 'data': data})


@markets_bp.route('/api/market-status')
def market_status():
    """Session state for clients; ``lastUpdate`` (epoch ms) of their data drives ``shouldFetch``."""
    now = datetime.now(MARKET_TZ)
    last_update = request.args.get('lastUpdate', type=float)
    body = {
        'success': True,
        'data': {
            'open': is_market_open(now),
            'timezone': str(MARKET_TZ),
            'checkedAt': now.isoformat(),
            'refreshIntervalSeconds': get_refresh_interval(),
            'shouldFetch': should_fetch_market_data(last_update, existing_data=last_update is not None, now=now),
        },
    }
    return json_response(body, max_age=60)
