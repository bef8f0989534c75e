"""Alternative.me Fear & Greed routes and the derived social sentiment series."""
from flask import Blueprint, request

from api_contracts import FearGreedResponse, MarketChart, parse
from cache_utils import ttl_memo
from config import CONFIG
from crypto_transforms import fear_greed_historical, fear_greed_series, monthly_price_buckets, price_series
from errors import MalformedUpstreamPayload
import fallback_data
from responses import handle_upstream_errors, json_response
from upstream import coingecko, fear_greed, gather
from utils import parse_int_arg

sentiment_bp = Blueprint('sentiment', __name__)

FEAR_GREED_CACHE_SECONDS = float(CONFIG.get('FEAR_GREED_CACHE_SECONDS', 300))


@sentiment_bp.route('/api/fear-greed')
@handle_upstream_errors('Failed to fetch Fear & Greed data')
def fear_greed_index():
    limit = parse_int_arg(request.args.get('limit'), 90, 1, 3650)
    return json_response(fear_greed(limit), max_age=300)


@sentiment_bp.route('/api/fear-greed/historical')
@handle_upstream_errors('Failed to fetch historical Fear & Greed data')
def fear_greed_history():
    payload = parse(FearGreedResponse, fear_greed(30), 'alternative.me')
    if not payload.data:
        raise MalformedUpstreamPayload('fear & greed returned no data', source='alternative.me')
    return json_response(fear_greed_historical(payload.data), max_age=3600)


@ttl_memo(ttl=FEAR_GREED_CACHE_SECONDS)
def fear_and_greed_snapshot():
    """One year of the index next to BTC daily closes."""
    results = gather({
        'fng': lambda: fear_greed(365, format='json'),
        'btc': lambda: coingecko('coins/bitcoin/market_chart', {'vs_currency': 'usd', 'days': 365, 'interval': 'daily'}),
    })
    fng = parse(FearGreedResponse, results['fng'], 'alternative.me')
    btc = parse(MarketChart, results['btc'], 'coingecko')
    if not fng.data or not btc.prices:
        raise MalformedUpstreamPayload('fear & greed or BTC price series is empty', source='alternative.me')
    series = fear_greed_series(fng.data)
    return {
        'fearGreed': series,
        'btcPrice': price_series(btc.prices),
        'timeRange': {'start': series[0]['timestamp'], 'end': series[-1]['timestamp']},
    }


@sentiment_bp.route('/api/fear-and-greed')
@handle_upstream_errors('Failed to fetch data')
def fear_and_greed():
    return json_response(fear_and_greed_snapshot(), max_age=300, stale_while_revalidate=600)


@sentiment_bp.route('/api/social-sentiment')
@handle_upstream_errors('Failed to generate data', envelope='success')
def social_sentiment():
    # ``days`` is accepted for compatibility; the series always spans the last twelve months
    chart = parse(MarketChart, coingecko('coins/bitcoin/market_chart', {
        'vs_currency': 'usd', 'days': 365, 'interval': 'daily',
    }), 'coingecko')
    data = fallback_data.social_sentiment(monthly_price_buckets(chart.prices))
    return json_response({'success': True, 'data': data}, max_age=3600)
