import pytest

from app import create_app


def test_health(client):
    resp = client.get('/api/health')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['status'] == 'ok'
    assert body['market_open'] is True
    assert body['errors_5xx'] == 0
    assert body['uptime_seconds'] >= 0


def test_health_reports_closed_market():
    app = create_app(market_gate=lambda: False)
    with app.test_client() as c:
        assert c.get('/api/health').get_json()['market_open'] is False


def test_request_id_is_echoed(client):
    resp = client.get('/api/health', headers={'X-Request-ID': 'abc123'})
    assert resp.headers['X-Request-ID'] == 'abc123'


def test_request_id_is_generated(client):
    first = client.get('/api/health').headers['X-Request-ID']
    second = client.get('/api/health').headers['X-Request-ID']
    assert len(first) == 32
    assert first != second


def test_metrics_json(client, upstream):
    upstream.add('/global', {}, status=429)
    client.get('/api/global')
    body = client.get('/api/metrics').get_json()
    assert body['ok'] is True
    assert body['fetch']['total_calls'] == 1
    assert body['fetch']['rate_limited'] == 4
    assert body['fetch']['retries'] == 3
    assert body['response_cache']['entries'] == 0
    assert body['errors_5xx'] == 0


def test_metrics_prometheus(client):
    resp = client.get('/metrics.prom')
    assert resp.status_code == 200
    assert resp.mimetype == 'text/plain'
    text = resp.get_data(as_text=True)
    for name in ('fetch_calls_total', 'fetch_retries_total', 'response_cache_entries',
                 'http_errors_5xx_total'):
        assert f'# TYPE {name}' in text
    assert 'market_open 1' in text.splitlines()
    # empty cache has no oldest entry
    assert 'response_cache_oldest_age_seconds NaN' in text.splitlines()


def test_config_redacts_keys():
    app = create_app({'COINGECKO_API_KEY': 'secret', 'COINSTATS_API_KEY': ''})
    with app.test_client() as c:
        config = c.get('/api/config').get_json()['config']
    assert config['COINGECKO_API_KEY'] == '***'
    assert config['COINSTATS_API_KEY'] == ''
    assert 'secret' not in str(config)


def test_debug_cache_hidden_by_default(client):
    resp = client.get('/debug/cache')
    assert resp.status_code == 404
    assert resp.get_json() == {'error': 'Not found'}


def test_debug_cache_lists_entries():
    app = create_app({'ENABLE_DEBUG_ENDPOINTS': True})
    app.extensions['response_cache'].record('/api/market-indices', {'success': True})
    with app.test_client() as c:
        body = c.get('/debug/cache').get_json()
    assert body['stats']['entries'] == 1
    assert body['entries'][0]['key'] == '/api/market-indices'
    assert body['entries'][0]['captured'].endswith('Z')


def test_clear_cache(app, client):
    cache = app.extensions['response_cache']
    cache.record('/api/market-indices', {'success': True})
    cache.record('/api/top-companies', {'success': True})
    resp = client.post('/api/clear-cache')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['success'] is True
    assert body['cleared']['response_cache'] == 2
    assert len(cache) == 0


def test_clear_cache_rejects_get(client, upstream):
    assert client.get('/api/clear-cache').status_code == 405
    assert upstream.calls == []


def test_5xx_counter(app, client, upstream):
    upstream.add('/global', {}, status=503)
    assert client.get('/api/global').status_code == 500
    assert app.extensions['error_stats']['5xx'] == 1
    assert client.get('/api/health').get_json()['errors_5xx'] == 1


def test_cors_header(client):
    resp = client.get('/api/health', headers={'Origin': 'http://localhost:3000'})
    assert resp.headers['Access-Control-Allow-Origin'] in ('*', 'http://localhost:3000')


@pytest.mark.parametrize('origin,allowed', [('http://a.test', True), ('http://evil.test', False)])
def test_cors_allow_list(origin, allowed):
    app = create_app({'CORS_ALLOWED_ORIGINS': 'http://a.test, http://b.test'})
    with app.test_client() as c:
        resp = c.get('/api/health', headers={'Origin': origin})
    assert (resp.headers.get('Access-Control-Allow-Origin') == origin) is allowed
