from datetime import datetime, timezone

import pytest

import fallback_data

NOW = 1_704_067_200  # 2024-01-01T00:00:00Z


def test_coin_chart_is_deterministic():
    a = fallback_data.coin_chart('bitcoin', '24h', now=NOW)
    b = fallback_data.coin_chart('bitcoin', '24h', now=NOW)
    assert a == b


@pytest.mark.parametrize('period,points', [('24h', 24), ('1w', 7), ('1m', 30), ('1y', 365), ('bogus', 100)])
def test_coin_chart_length(period, points):
    chart = fallback_data.coin_chart('ethereum', period, now=NOW)
    assert len(chart) == points
    timestamps = [p[0] for p in chart]
    assert timestamps == sorted(timestamps)
    assert timestamps[-1] <= NOW


def test_coin_chart_starts_near_base_price():
    chart = fallback_data.coin_chart('bitcoin', '24h', now=NOW)
    assert 0.9 * 30000 < chart[0][1] < 1.1 * 30000
    other = fallback_data.coin_chart('unknown-coin', '24h', now=NOW)
    assert 0.9 * 100 < other[0][1] < 1.1 * 100


def test_index_snapshot():
    snap = fallback_data.index_snapshot('^GSPC', now=datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert snap['name'] == 'S&P 500'
    assert snap['currentStats']['price'] == 5958.0
    assert snap['historicalData'][-1]['value'] == 5958.0
    assert fallback_data.index_snapshot('^UNKNOWN')['currentStats']['price'] == 1000.0


def test_dominance_estimate_stays_near_current():
    now = datetime(2024, 1, 31, tzinfo=timezone.utc)
    series = fallback_data.dominance_estimate('altcoin', 40.0, now=now)
    assert len(series) == 30
    assert series[0]['date'] == '2024-01-01T00:00:00Z'
    assert all(39.0 <= p['dominance'] <= 41.0 for p in series)
    assert series == fallback_data.dominance_estimate('altcoin', 40.0, now=now)


@pytest.mark.parametrize('symbol', ['sp', 'nasdaq', 'dow', 'russell', 'DOW'])
def test_market_breadth_keeps_total(symbol):
    data = fallback_data.market_breadth(symbol, now=NOW)
    base = fallback_data.BREADTH_BASELINES[symbol.lower()]
    assert data['total'] == base['total']
    assert data['advancing'] + data['declining'] == base['advancing'] + base['declining']
    assert data['unchanged'] == base['unchanged']


def test_market_breadth_stable_within_bucket():
    assert fallback_data.market_breadth('sp', now=NOW) == fallback_data.market_breadth('sp', now=NOW + 60)


def test_market_breadth_unknown_symbol():
    assert fallback_data.market_breadth('ftse', now=NOW) is None


def test_social_sentiment_twelve_months():
    now = datetime(2024, 3, 15, tzinfo=timezone.utc)
    monthly = {'2024-03': {'min': 60000.0, 'max': 72000.0, 'avg': 66000.0}}
    rows = fallback_data.social_sentiment(monthly, now=now)
    assert len(rows) == 12
    assert rows[0]['date'] == '2023-04-01'
    assert rows[-1]['date'] == '2024-03-01'
    assert rows[-1]['btcPrice'] == 66000.0
    assert rows[0]['btcPrice'] == 0.0
    for row in rows:
        for channel in ('twitter', 'reddit', 'telegram'):
            assert 0 <= row[channel]['sentiment'] <= 100
        assert row['aggregate']['volume'] == sum(row[c]['volume'] for c in ('twitter', 'reddit', 'telegram'))
    assert rows == fallback_data.social_sentiment(monthly, now=now)
