"""Pure reshaping functions for CoinGecko / CoinStats / Fear & Greed payloads.

Nothing here does I/O; the route modules fetch and pass the decoded JSON in.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from utils import format_percentage


def iso_from_ms(ts_ms: float) -> str:
    """Epoch milliseconds -> ISO-8601 UTC string with millisecond precision."""
    dt = datetime.fromtimestamp(float(ts_ms) / 1000.0, tz=timezone.utc)
    return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def compute_dominance(subset_cap: float, total_cap: float) -> float:
    """``subset_cap`` as a percentage of ``total_cap``, rounded to 2 places."""
    if not subset_cap or not total_cap or subset_cap <= 0 or total_cap <= 0:
        return 0.0
    return round(subset_cap / total_cap * 100.0, 2)


def dominance_series(market_caps: Iterable[Sequence[float]], total_cap: float) -> List[Dict[str, Any]]:
    return [
        {'date': iso_from_ms(ts), 'dominance': compute_dominance(cap, total_cap)}
        for ts, cap in market_caps
    ]


def altcoin_dominance(market_cap_percentage: Dict[str, float]) -> float:
    btc = market_cap_percentage.get('btc') or 0.0
    eth = market_cap_percentage.get('eth') or 0.0
    return max(0.0, 100.0 - btc - eth)


def classify_market_sentiment(avg_change: float) -> str:
    if avg_change < -2:
        return 'bearish'
    if avg_change > 2:
        return 'bullish'
    return 'neutral'


def altcoin_metrics(global_data: Dict[str, Any], coins: List[Dict[str, Any]]) -> Dict[str, Any]:
    total_cap = (global_data.get('total_market_cap') or {}).get('usd') or 0.0
    pct = global_data.get('market_cap_percentage') or {}
    btc_cap = (pct.get('btc') or 0.0) * total_cap / 100.0
    eth_cap = (pct.get('eth') or 0.0) * total_cap / 100.0
    changes = [c.get('price_change_percentage_24h') or 0.0 for c in coins]
    avg_change = sum(changes) / len(changes) if changes else 0.0
    return {
        'totalMarketCap': total_cap - btc_cap - eth_cap,
        'volume24h': (global_data.get('total_volume') or {}).get('usd') or 0,
        'numberOfCoins': global_data.get('active_cryptocurrencies') or 0,
        'topGainers': sum(1 for c in changes if c > 0),
        'topLosers': sum(1 for c in changes if c < 0),
        'marketSentiment': classify_market_sentiment(avg_change),
        'priceChange24h': avg_change,
    }


def mover_row(coin: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'symbol': (coin.get('symbol') or '').upper(),
        'name': coin.get('name'),
        'price': coin.get('current_price'),
        'change': coin.get('price_change_percentage_24h'),
        'marketCap': coin.get('market_cap'),
        'volume': coin.get('total_volume'),
    }


def split_movers(coins: List[Dict[str, Any]], n: int = 10) -> Dict[str, List[Dict[str, Any]]]:
    """Coins ordered by 24h change descending -> top ``n`` gainers and losers."""
    gainers = [mover_row(c) for c in coins[:n]]
    losers = [mover_row(c) for c in reversed(coins[-n:])]
    return {'gainers': gainers, 'losers': losers}


def ohlc_ranges(ohlc: List[Sequence[float]]) -> Dict[str, Optional[float]]:
    """7d and 30d high/low from daily-ish OHLC rows ``[ts, open, high, low, close]``."""
    week = ohlc[-7:]
    return {
        'high_7d': max(r[2] for r in week) if week else None,
        'low_7d': min(r[3] for r in week) if week else None,
        'high_30d': max(r[2] for r in ohlc) if ohlc else None,
        'low_30d': min(r[3] for r in ohlc) if ohlc else None,
    }


def enrich_top_coin(coin: Dict[str, Any], ohlc: Optional[List[Sequence[float]]]) -> Dict[str, Any]:
    """Attach price ranges to a /coins/markets row; missing ranges fall back to the current price."""
    price = coin.get('current_price')
    ranges = ohlc_ranges(ohlc) if ohlc else {}
    out = dict(coin)
    out.update({
        'high_24h': coin.get('high_24h') or price,
        'low_24h': coin.get('low_24h') or price,
        'high_7d': ranges.get('high_7d') or price,
        'low_7d': ranges.get('low_7d') or price,
        'high_30d': ranges.get('high_30d') or price,
        'low_30d': ranges.get('low_30d') or price,
        'price_change_percentage_7d': coin.get('price_change_percentage_7d_in_currency'),
        'price_change_percentage_30d': coin.get('price_change_percentage_30d_in_currency'),
    })
    return out


def enrich_market_coin(coin: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(coin)
    out['sparkline_data'] = (coin.get('sparkline_in_7d') or {}).get('price') or []
    for period in ('24h', '7d', '30d'):
        value = coin.get(f'price_change_percentage_{period}')
        if value is None:
            value = coin.get(f'price_change_percentage_{period}_in_currency')
        out[f'price_change_percentage_{period}_formatted'] = format_percentage(value)
    return out


def format_exchange(exchange: Dict[str, Any]) -> Dict[str, Any]:
    centralized = bool(exchange.get('centralized'))
    features = [
        'Trading Incentives' if exchange.get('has_trading_incentive') else None,
        'Centralized' if centralized else 'Decentralized',
        'High Public Interest' if (exchange.get('public_interest_score') or 0) > 0 else None,
        'High Liquidity' if (exchange.get('liquidity_score') or 0) > 0 else None,
    ]
    year = exchange.get('year_established')
    return {
        'id': exchange.get('id'),
        'name': exchange.get('name'),
        'logo': exchange.get('image'),
        'description': exchange.get('description'),
        'volume24h': exchange.get('trade_volume_24h_btc'),
        'tradingPairs': exchange.get('number_of_trading_pairs'),
        'status': 'Centralized' if centralized else 'Decentralized',
        'founded': str(year) if year is not None else None,
        'website': exchange.get('url'),
        'apiUrl': exchange.get('api_url'),
        'features': [f for f in features if f],
        'trust_score': exchange.get('trust_rank') if exchange.get('trust_rank') is not None else exchange.get('trust_score_rank'),
    }


def _first(values) -> Optional[str]:
    if isinstance(values, list):
        for v in values:
            if v:
                return v
    return None


def format_coin_detail(coin: Dict[str, Any], history: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten CoinGecko /coins/{id} plus its market chart into the coin detail contract."""
    md = coin.get('market_data') or {}
    links = coin.get('links') or {}
    community = coin.get('community_data') or {}
    dev = coin.get('developer_data') or {}
    repos = links.get('repos_url') or {}
    code = dev.get('code_additions_deletions_4_weeks') or {}

    def usd(field):
        return (md.get(field) or {}).get('usd')

    twitter = links.get('twitter_screen_name')
    facebook = links.get('facebook_username')
    telegram = links.get('telegram_channel_identifier')
    return {
        'id': coin.get('id'),
        'symbol': coin.get('symbol'),
        'name': coin.get('name'),
        'currentPrice': usd('current_price'),
        'marketCap': usd('market_cap'),
        'marketCapRank': md.get('market_cap_rank') or coin.get('market_cap_rank'),
        'volume24h': usd('total_volume'),
        'volumeChange24h': md.get('total_volume_change_24h'),
        'high24h': usd('high_24h'),
        'low24h': usd('low_24h'),
        'priceChange': {
            '24h': md.get('price_change_percentage_24h'),
            '7d': md.get('price_change_percentage_7d'),
            '30d': md.get('price_change_percentage_30d'),
        },
        'marketCapChange24h': md.get('market_cap_change_percentage_24h'),
        'supply': {
            'total': md.get('total_supply'),
            'circulating': md.get('circulating_supply'),
            'max': md.get('max_supply'),
        },
        'links': {
            'homepage': _first(links.get('homepage')),
            'blockchain': _first(links.get('blockchain_site')),
            'forum': _first(links.get('official_forum_url')),
            'chat': _first(links.get('chat_url')),
            'announcements': _first(links.get('announcement_url')),
            'twitter': f'https://twitter.com/{twitter}' if twitter else None,
            'facebook': f'https://facebook.com/{facebook}' if facebook else None,
            'telegram': f'https://t.me/{telegram}' if telegram else None,
            'reddit': links.get('subreddit_url') or None,
            'github': _first(repos.get('github')),
            'bitbucket': _first(repos.get('bitbucket')),
        },
        'community': {
            'facebook': community.get('facebook_likes'),
            'twitter': community.get('twitter_followers'),
            'reddit': community.get('reddit_subscribers'),
            'telegram': community.get('telegram_channel_user_count'),
        },
        'development': {
            'forks': dev.get('forks'),
            'stars': dev.get('stars'),
            'subscribers': dev.get('subscribers'),
            'issues': {'total': dev.get('total_issues'), 'closed': dev.get('closed_issues')},
            'pullRequests': {
                'merged': dev.get('pull_requests_merged'),
                'contributors': dev.get('pull_request_contributors'),
            },
            'activity': {
                'additions': code.get('additions'),
                'deletions': code.get('deletions'),
                'commits': dev.get('commit_count_4_weeks'),
            },
        },
        'historicalData': [
            {'date': iso_from_ms(ts), 'price': price} for ts, price in (history.get('prices') or [])
        ],
    }


def format_coinstats_coin(data: Dict[str, Any]) -> Dict[str, Any]:
    """CoinStats /coins/{id} -> CoinGecko-like market row.

    CoinStats has no 30d change, so the 1w change stands in for it. The 24h
    range is derived from the 1d change.
    """
    price = data.get('price') or 0.0
    d1 = data.get('priceChange1d') or 0.0
    w1 = data.get('priceChange1w')
    h1 = data.get('priceChange1h')
    return {
        'id': data.get('id'),
        'symbol': (data.get('symbol') or '').lower(),
        'name': data.get('name'),
        'image': data.get('icon'),
        'current_price': data.get('price'),
        'market_cap': data.get('marketCap'),
        'market_cap_rank': data.get('rank'),
        'total_volume': data.get('volume'),
        'high_24h': price * (1 + max(0.0, d1 / 100.0)),
        'low_24h': price * (1 - max(0.0, -d1 / 100.0)),
        'price_change_24h': price * (d1 / 100.0),
        'price_change_percentage_24h': data.get('priceChange1d'),
        'price_change_percentage_7d': w1,
        'price_change_percentage_1h': h1,
        'price_change_percentage_30d': w1,
        'price_change_percentage_24h_formatted': format_percentage(data.get('priceChange1d')),
        'price_change_percentage_7d_formatted': format_percentage(w1),
        'price_change_percentage_1h_formatted': format_percentage(h1),
        'price_change_percentage_30d_formatted': format_percentage(w1),
        'fully_diluted_valuation': data.get('fullyDilutedValuation'),
        'total_supply': data.get('totalSupply'),
        'available_supply': data.get('availableSupply'),
        'website_url': data.get('websiteUrl'),
        'twitter_url': data.get('twitterUrl'),
        'reddit_url': data.get('redditUrl'),
        'explorers': data.get('explorers') or [],
        'contract_address': data.get('contractAddress'),
    }


def ethereum_congestion(gas_price: float) -> str:
    if gas_price < 30:
        return 'low'
    if gas_price < 100:
        return 'medium'
    return 'high'


def _last_value(series) -> Optional[float]:
    if isinstance(series, list) and series:
        last = series[-1]
        if isinstance(last, (list, tuple)) and len(last) > 1:
            return last[1]
    return None


def ethereum_metrics(price: Dict[str, Any], chart: Dict[str, Any], tickers: Dict[str, Any]) -> Dict[str, Any]:
    eth = price.get('ethereum') or {}
    gas = _last_value(chart.get('gas_prices')) or 0
    first_ticker = (tickers.get('tickers') or [{}])[0] or {}
    return {
        'price': eth.get('usd'),
        'marketCap': eth.get('usd_market_cap'),
        'activeAddresses': _last_value(chart.get('active_addresses')) or 0,
        'tvl': (first_ticker.get('converted_volume') or {}).get('usd') or 0,
        'gasPrice': gas,
        'networkCongestion': ethereum_congestion(gas),
        'priceChange24h': eth.get('usd_24h_change'),
    }


def bitcoin_metrics(price: Dict[str, Any], network: Dict[str, Any]) -> Dict[str, Any]:
    btc = price.get('bitcoin') or {}
    dev = network.get('developer_data') or {}
    return {
        'price': btc.get('usd'),
        'marketCap': btc.get('usd_market_cap'),
        'priceChange24h': btc.get('usd_24h_change'),
        'activeAddresses': (network.get('community_data') or {}).get('active_addresses') or 0,
        # Free tier has no chain stats; developer counters stand in
        'hashRate': dev.get('closed_issues') or 0,
        'difficulty': dev.get('total_issues') or 0,
        'networkCongestion': 'low',
    }


# ---------------------------------------------------------------------------
# Fear & Greed
# ---------------------------------------------------------------------------

FEAR_GREED_BUCKETS = (
    (24, 'Extreme Fear'),
    (44, 'Fear'),
    (55, 'Neutral'),
    (75, 'Greed'),
    (100, 'Extreme Greed'),
)


def classify_fear_greed(value: int) -> str:
    for upper, label in FEAR_GREED_BUCKETS:
        if value <= upper:
            return label
    return 'Extreme Greed'


def fear_greed_point(item) -> Dict[str, Any]:
    """FearGreedItem -> ``{value, value_classification, timestamp}`` (unix seconds)."""
    return {
        'value': item.value,
        'value_classification': item.value_classification or classify_fear_greed(item.value),
        'timestamp': item.timestamp,
    }


def fear_greed_historical(items: List[Any]) -> Dict[str, Dict[str, Any]]:
    """Now / yesterday / last week / last month, each falling back to the newer point."""
    now = items[0]
    yesterday = items[1] if len(items) > 1 else now
    last_week = items[7] if len(items) > 7 else yesterday
    last_month = items[29] if len(items) > 29 else last_week
    return {
        'now': fear_greed_point(now),
        'yesterday': fear_greed_point(yesterday),
        'lastWeek': fear_greed_point(last_week),
        'lastMonth': fear_greed_point(last_month),
    }


def fear_greed_series(items: List[Any]) -> List[Dict[str, Any]]:
    """Newest first, ISO timestamps."""
    rows = sorted(items, key=lambda i: i.timestamp, reverse=True)
    return [
        {
            'value': i.value,
            'timestamp': iso_from_ms(i.timestamp * 1000),
            'value_classification': i.value_classification or classify_fear_greed(i.value),
        }
        for i in rows
    ]


def price_series(prices: Iterable[Sequence[float]]) -> List[Dict[str, Any]]:
    """Oldest first, ISO timestamps."""
    rows = sorted(prices, key=lambda p: p[0])
    return [{'timestamp': iso_from_ms(ts), 'price': price} for ts, price in rows]


def monthly_price_buckets(prices: Iterable[Sequence[float]]) -> Dict[str, Dict[str, float]]:
    """``YYYY-MM`` -> ``{min, max, avg}`` over ``[ts_ms, price]`` pairs (UTC months)."""
    acc: Dict[str, Dict[str, float]] = {}
    for ts, price in prices:
        key = datetime.fromtimestamp(ts / 1000.0, tz=timezone.utc).strftime('%Y-%m')
        b = acc.get(key)
        if b is None:
            acc[key] = {'min': price, 'max': price, 'sum': price, 'count': 1}
        else:
            b['min'] = min(b['min'], price)
            b['max'] = max(b['max'], price)
            b['sum'] += price
            b['count'] += 1
    return {k: {'min': b['min'], 'max': b['max'], 'avg': b['sum'] / b['count']} for k, b in acc.items()}
