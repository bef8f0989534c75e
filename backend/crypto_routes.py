"""CoinGecko / CoinStats aggregation routes."""
import logging
from urllib.parse import urlparse

from flask import Blueprint, Response, current_app, request
from requests.exceptions import RequestException

from api_contracts import CoinMarket, GlobalResponse, MarketChart, parse
from config import CONFIG
from crypto_transforms import (
    altcoin_dominance, altcoin_metrics, bitcoin_metrics, dominance_series, enrich_market_coin,
    enrich_top_coin, ethereum_metrics, format_coin_detail, format_coinstats_coin, format_exchange,
    split_movers,
)
from errors import InvalidRequest, MalformedUpstreamPayload, MarketDataError, UpstreamUnavailable
import fallback_data
from resilient_fetch import fetch_with_retry
from responses import (
    NO_STORE_CACHE_CONTROL, error_response, fallback_response, handle_upstream_errors, json_response,
)
from upstream import coingecko, coinstats, gather, gather_settled
from utils import parse_int_arg

crypto_bp = Blueprint('crypto', __name__)

IMAGE_PROXY_DOMAINS = {'assets.coingecko.com', 'static.coingecko.com', 'coin-images.coingecko.com'}


def _global_data(payload):
    return parse(GlobalResponse, payload, 'coingecko').data


def _dominance(coin_id: str, short: str):
    days = parse_int_arg(request.args.get('days'), 365, 1, 365)
    results = gather({
        'global': lambda: coingecko('global'),
        'chart': lambda: coingecko(f'coins/{coin_id}/market_chart', {'vs_currency': 'usd', 'days': days}),
    })
    glob = _global_data(results['global'])
    chart = parse(MarketChart, results['chart'], 'coingecko')
    total = glob.total_market_cap.get('usd')
    if not total or not chart.market_caps:
        raise MalformedUpstreamPayload(f'{coin_id} dominance: missing total market cap or market caps', source='coingecko')
    body = {
        'data': dominance_series(chart.market_caps, total),
        'current': round(glob.market_cap_percentage.get(short) or 0.0, 2),
    }
    return json_response(body, max_age=300, stale_while_revalidate=300)


@crypto_bp.route('/api/global')
@handle_upstream_errors('Failed to fetch global market data')
def global_market():
    return json_response(coingecko('global'), max_age=300)


@crypto_bp.route('/api/btc-dominance')
@handle_upstream_errors('Failed to fetch BTC dominance data')
def btc_dominance():
    return _dominance('bitcoin', 'btc')


@crypto_bp.route('/api/eth-dominance')
@handle_upstream_errors('Failed to fetch ETH dominance data')
def eth_dominance():
    return _dominance('ethereum', 'eth')


@crypto_bp.route('/api/altcoin-dominance')
@handle_upstream_errors('Failed to fetch altcoin dominance data')
def altcoin_dominance_view():
    glob = _global_data(coingecko('global'))
    current = round(altcoin_dominance(glob.market_cap_percentage), 2)
    # Free API has no dominance history; the series is estimated around today's value
    body = {
        'data': fallback_data.dominance_estimate('altcoin', current),
        'current': current,
        'estimated': True,
    }
    return json_response(body, headers={'Cache-Control': NO_STORE_CACHE_CONTROL, 'X-Data-Source': 'estimated'})


@crypto_bp.route('/api/altcoin-metrics')
@handle_upstream_errors('Failed to fetch altcoin metrics')
def altcoin_metrics_view():
    results = gather({
        'global': lambda: coingecko('global'),
        'coins': lambda: coingecko('coins/markets', {
            'vs_currency': 'usd', 'order': 'volume_desc', 'per_page': 100, 'page': 1, 'sparkline': 'false',
        }),
    })
    glob = _global_data(results['global'])
    coins = results['coins']
    if not isinstance(coins, list):
        raise MalformedUpstreamPayload('coins/markets did not return a list', source='coingecko')
    return json_response({'data': altcoin_metrics(glob.model_dump(), coins)}, max_age=300)


@crypto_bp.route('/api/bitcoin-metrics')
@handle_upstream_errors('Failed to fetch Bitcoin metrics')
def bitcoin_metrics_view():
    # This pair of endpoints answers 403 under load as well as 429
    retry = {'retry_statuses': (403, 429), 'base_delay_ms': 500}
    results = gather({
        'price': lambda: coingecko('simple/price', {
            'ids': 'bitcoin', 'vs_currencies': 'usd', 'include_market_cap': 'true', 'include_24hr_change': 'true',
        }, **retry),
        'network': lambda: coingecko('coins/bitcoin', {
            'localization': 'false', 'tickers': 'false', 'market_data': 'false',
            'community_data': 'true', 'developer_data': 'true', 'sparkline': 'false',
        }, **retry),
    })
    return json_response({'data': bitcoin_metrics(results['price'], results['network'])}, max_age=300)


@crypto_bp.route('/api/ethereum-metrics')
@handle_upstream_errors('Failed to fetch Ethereum metrics')
def ethereum_metrics_view():
    results = gather({
        'price': lambda: coingecko('simple/price', {
            'ids': 'ethereum', 'vs_currencies': 'usd', 'include_market_cap': 'true', 'include_24hr_change': 'true',
        }),
        'chart': lambda: coingecko('coins/ethereum/market_chart', {'vs_currency': 'usd', 'days': 1, 'interval': 'daily'}),
        'tickers': lambda: coingecko('coins/ethereum/tickers', {'include_exchange_logo': 'true', 'depth': 'true'}),
    })
    eth = (results['price'] or {}).get('ethereum') or {}
    if not eth.get('usd') or not eth.get('usd_market_cap'):
        raise MalformedUpstreamPayload('ethereum simple/price missing usd fields', source='coingecko')
    return json_response({'data': ethereum_metrics(results['price'], results['chart'], results['tickers'])}, max_age=300)


@crypto_bp.route('/api/bitcoin-price')
@handle_upstream_errors('Failed to fetch Bitcoin price data')
def bitcoin_price():
    days = parse_int_arg(request.args.get('days'), 90, 1, 3650)
    data = coingecko('coins/bitcoin/market_chart', {'vs_currency': 'usd', 'days': days, 'interval': 'daily'})
    return json_response(data, max_age=300)


@crypto_bp.route('/api/crypto-movers')
@handle_upstream_errors('Failed to fetch crypto movers data')
def crypto_movers():
    coins = coingecko('coins/markets', {
        'vs_currency': 'usd', 'order': 'price_change_percentage_24h_desc', 'per_page': 100, 'sparkline': 'false',
    })
    if not isinstance(coins, list) or not coins:
        raise UpstreamUnavailable('No crypto data available', source='coingecko')
    return json_response(split_movers(coins), max_age=300)


@crypto_bp.route('/api/coins')
@handle_upstream_errors('Failed to fetch cryptocurrency data')
def coins():
    page = parse_int_arg(request.args.get('page'), 1, 1)
    per_page = parse_int_arg(request.args.get('per_page'), 10, 1, 250)
    data = coingecko('coins/markets', {
        'vs_currency': 'usd', 'order': 'market_cap_desc', 'per_page': per_page, 'page': page,
        'sparkline': 'true', 'price_change_percentage': '24h,7d,30d', 'locale': 'en',
    })
    if not isinstance(data, list):
        raise MalformedUpstreamPayload('coins/markets did not return a list', source='coingecko')
    return json_response([enrich_market_coin(c) for c in data], max_age=300)


@crypto_bp.route('/api/crypto/top-10')
@handle_upstream_errors('Failed to fetch cryptocurrency data')
def top_10():
    markets = coingecko('coins/markets', {
        'vs_currency': 'usd', 'order': 'market_cap_desc', 'per_page': 10,
        'sparkline': 'true', 'price_change_percentage': '24h,7d,30d',
    })
    if not isinstance(markets, list):
        raise MalformedUpstreamPayload('coins/markets did not return a list', source='coingecko')
    for coin in markets:
        parse(CoinMarket, coin, 'coingecko')
    # Per-coin OHLC is optional; a failed coin keeps its current price as its range
    ohlc = gather_settled({
        c['id']: (lambda cid=c['id']: coingecko(f'coins/{cid}/ohlc', {'vs_currency': 'usd', 'days': 30}))
        for c in markets
    })
    enriched = []
    for coin in markets:
        rows = ohlc.get(coin['id'])
        if isinstance(rows, MarketDataError):
            logging.warning(f"OHLC unavailable for {coin['id']}: {rows}", extra={'event': 'ohlc_fallback'})
            rows = None
        enriched.append(enrich_top_coin(coin, rows if isinstance(rows, list) else None))
    return json_response(enriched, max_age=300, stale_while_revalidate=300)


@crypto_bp.route('/api/crypto/top-by-price')
@handle_upstream_errors('Failed to fetch cryptocurrency data')
def top_by_price():
    data = coingecko('coins/markets', {
        'vs_currency': 'usd', 'order': 'price_desc', 'per_page': 10,
        'sparkline': 'true', 'price_change_percentage': '24h',
    })
    return json_response(data, max_age=300, stale_while_revalidate=300)


@crypto_bp.route('/api/exchanges')
@handle_upstream_errors('Failed to fetch exchanges')
def exchanges():
    data = coingecko('exchanges', {'per_page': 100, 'page': 1})
    if not isinstance(data, list):
        raise MalformedUpstreamPayload('exchanges did not return a list', source='coingecko')
    return json_response([format_exchange(e) for e in data], max_age=3600)


def _coin_detail(coin_id: str):
    if not coin_id or not coin_id.strip():
        raise InvalidRequest('Coin ID is required')
    results = gather({
        'coin': lambda: coingecko(f'coins/{coin_id}', {
            'localization': 'false', 'tickers': 'false', 'market_data': 'true',
            'community_data': 'true', 'developer_data': 'true', 'sparkline': 'false',
        }),
        'history': lambda: coingecko(f'coins/{coin_id}/market_chart', {'vs_currency': 'usd', 'days': 365, 'interval': 'daily'}),
    })
    history = parse(MarketChart, results['history'], 'coingecko')
    return json_response({'data': format_coin_detail(results['coin'], history.model_dump())}, max_age=300)


@crypto_bp.route('/api/coin/<coin_id>')
@handle_upstream_errors('Internal Server Error')
def coin_detail(coin_id):
    return _coin_detail(coin_id)


def _names_local_route(coin_id: str) -> bool:
    # Werkzeug falls through to this rule when a named /api route rejects the method
    path = f'/api/{coin_id}'
    return any(rule.rule == path for rule in current_app.url_map.iter_rules())


@crypto_bp.route('/api/<coin_id>')
@handle_upstream_errors('Internal Server Error')
def coin_detail_alias(coin_id):
    if _names_local_route(coin_id):
        return error_response('Method Not Allowed', 405)
    return _coin_detail(coin_id)


@crypto_bp.route('/api/coins/<coin_id>')
@handle_upstream_errors('Failed to fetch coin data')
def coinstats_coin(coin_id):
    data = coinstats(f'coins/{coin_id}')
    if not isinstance(data, dict) or not data.get('id'):
        raise MalformedUpstreamPayload('Invalid response format from CoinStats API', source='coinstats')
    return json_response(format_coinstats_coin(data), max_age=300)


@crypto_bp.route('/api/coins/<coin_id>/charts')
def coinstats_chart(coin_id):
    period = request.args.get('period') or '24h'
    try:
        data = coinstats(f'coins/{coin_id}/charts', {'period': period})
    except MarketDataError as e:
        logging.warning(f"chart fallback for {coin_id} ({period}): {e}", extra={'event': 'chart_fallback'})
        data = None
    if isinstance(data, dict):
        data = data.get('chart')
    if isinstance(data, list) and data:
        return json_response(data, max_age=300)
    return fallback_response(fallback_data.coin_chart(coin_id, period))


@crypto_bp.route('/api/image-proxy')
def image_proxy():
    image_url = request.args.get('url')
    if not image_url:
        return Response('Missing image URL', status=400, mimetype='text/plain')
    parsed = urlparse(image_url)
    if parsed.scheme not in ('http', 'https') or parsed.hostname not in IMAGE_PROXY_DOMAINS:
        return Response('Invalid image domain', status=400, mimetype='text/plain')
    try:
        upstream = fetch_with_retry(image_url, headers={'User-Agent': CONFIG.get('USER_AGENT')})
    except RequestException as e:
        logging.error(f"Image proxy error: {e}", extra={'event': 'image_proxy_failed'})
        return Response('Failed to fetch image', status=500, mimetype='text/plain')
    if not 200 <= upstream.status_code < 300:
        logging.error(f"Image proxy upstream returned {upstream.status_code}", extra={'event': 'image_proxy_failed'})
        return Response('Failed to fetch image', status=500, mimetype='text/plain')
    resp = Response(upstream.content, mimetype=upstream.headers.get('content-type') or 'image/jpeg')
    resp.headers['Cache-Control'] = 'public, max-age=31536000, immutable'
    return resp
