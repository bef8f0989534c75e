from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from yfinance.exceptions import YFRateLimitError

import yahoo_client
from errors import UpstreamRateLimited, UpstreamUnavailable

T0 = 1704117600  # 2024-01-01T14:00:00Z


def _ticker(info=None, history=None):
    ticker = MagicMock()
    ticker.info = info
    ticker.history.return_value = history
    return ticker


@patch('yahoo_client.yf.Ticker')
def test_get_quote(mock_ticker):
    mock_ticker.return_value = _ticker(info={'symbol': '^GSPC', 'regularMarketPrice': 5000.0, 'extra': 1})
    quote = yahoo_client.get_quote('^GSPC')
    assert quote['regularMarketPrice'] == 5000.0
    assert quote['fiftyTwoWeekHigh'] is None
    assert 'extra' not in quote
    mock_ticker.assert_called_once_with('^GSPC')


@patch('yahoo_client.yf.Ticker')
def test_get_quote_uses_current_price(mock_ticker):
    mock_ticker.return_value = _ticker(info={'currentPrice': 12.5})
    quote = yahoo_client.get_quote('AAPL')
    assert quote['regularMarketPrice'] == 12.5
    assert quote['symbol'] == 'AAPL'


@patch('yahoo_client.yf.Ticker')
def test_get_quote_without_price(mock_ticker):
    mock_ticker.return_value = _ticker(info={})
    with pytest.raises(UpstreamUnavailable):
        yahoo_client.get_quote('NOPE')


@patch('yahoo_client.yf.Ticker')
def test_get_quote_rate_limited(mock_ticker):
    mock_ticker.side_effect = YFRateLimitError()
    with pytest.raises(UpstreamRateLimited):
        yahoo_client.get_quote('AAPL')


@patch('yahoo_client.yf.Ticker')
def test_get_quote_other_failure(mock_ticker):
    mock_ticker.side_effect = RuntimeError('boom')
    with pytest.raises(UpstreamUnavailable):
        yahoo_client.get_quote('AAPL')


def _frame(rows):
    df = MagicMock()
    df.empty = not rows
    df.iterrows.return_value = [(MagicMock(**{'to_pydatetime.return_value': ts}), row) for ts, row in rows]
    return df


@patch('yahoo_client.yf.Ticker')
def test_get_history(mock_ticker):
    rows = [
        (datetime(2024, 1, 2), {'Close': 10.0, 'High': 11.0, 'Low': 9.0}),
        (datetime(2024, 1, 3), {'Close': float('nan'), 'High': 1.0, 'Low': 1.0}),
        (datetime(2024, 1, 4, tzinfo=timezone.utc), {'Close': 12.0, 'High': 12.5, 'Low': float('nan')}),
    ]
    mock_ticker.return_value = _ticker(history=_frame(rows))
    history = yahoo_client.get_history('^DJI', datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert history == [
        {'date': datetime(2024, 1, 2, tzinfo=timezone.utc), 'close': 10.0, 'high': 11.0, 'low': 9.0},
        {'date': datetime(2024, 1, 4, tzinfo=timezone.utc), 'close': 12.0, 'high': 12.5, 'low': None},
    ]


@patch('yahoo_client.yf.Ticker')
def test_get_history_empty(mock_ticker):
    mock_ticker.return_value = _ticker(history=_frame([]))
    assert yahoo_client.get_history('^DJI', datetime(2024, 1, 1, tzinfo=timezone.utc)) == []


@patch('yahoo_client.yf.Ticker')
def test_get_history_rate_limited(mock_ticker):
    mock_ticker.side_effect = YFRateLimitError()
    with pytest.raises(UpstreamRateLimited):
        yahoo_client.get_history('^DJI', datetime(2024, 1, 1, tzinfo=timezone.utc))


def test_get_intraday_carries_previous_bar(upstream):
    upstream.add('/v8/finance/chart/^GSPC', {
        'chart': {'result': [{
            'timestamp': [T0, T0 + 300, T0 + 600],
            'indicators': {'quote': [{
                'close': [100.0, None, 102.0],
                'high': [101.0, None, 103.0],
                'low': [99.0, None, 101.0],
            }]},
        }]},
    })
    bars = yahoo_client.get_intraday('^GSPC', '1D')
    assert [b['close'] for b in bars] == [100.0, 100.0, 102.0]
    assert bars[1]['high'] == 101.0
    assert bars[0]['date'] == datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc)
    assert upstream.calls[0][1] == {'interval': '5m', 'range': '1d'}


def test_get_intraday_failure_is_empty(upstream):
    upstream.add('/v8/finance/chart/', {}, status=500)
    assert yahoo_client.get_intraday('^GSPC', '1W') == []


def test_get_intraday_without_bars(upstream):
    upstream.add('/v8/finance/chart/', {'chart': {'result': [{'timestamp': []}]}})
    assert yahoo_client.get_intraday('^GSPC', '1D') == []
