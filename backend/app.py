import argparse
import logging
import time
import uuid

from flask import Flask, Response, g, jsonify, request
from flask_cors import CORS

import cache_utils
from api_contracts import HealthResponse
from config import CONFIG, redacted
from crypto_routes import crypto_bp
from logging_config import REQUEST_ID_CTX, log_config, setup_logging
from market_hours import is_market_open
from market_wrapper import MarketWrapper, market_wrapper_bp
from markets_routes import markets_bp
from metrics import collect_metrics, render_prometheus
from resilient_fetch import get_fetch_metrics
from response_cache import ResponseCache
from sentiment_routes import sentiment_bp
from utils import find_available_port


def create_app(config_overrides=None, market_gate=None):
    """Build the Flask app.

    ``market_gate`` replaces the session clock used by the market wrapper
    (a zero-argument callable returning True while the market is open).
    """
    settings = dict(CONFIG)
    settings.update(config_overrides or {})

    app = Flask(__name__)
    app.config.update(settings)
    startup_time = time.time()

    cors_env = settings.get('CORS_ALLOWED_ORIGINS', '*')
    if cors_env == '*':
        cors_origins = '*'
    else:
        cors_origins = [origin.strip() for origin in cors_env.split(',') if origin.strip()]
    CORS(app, origins=cors_origins)

    cache = ResponseCache(
        expiration_seconds=settings['RESPONSE_CACHE_EXPIRATION_SECONDS'],
        trim_threshold=settings['RESPONSE_CACHE_TRIM_THRESHOLD'],
        keep_recent=settings['RESPONSE_CACHE_KEEP'],
    )
    app.extensions['response_cache'] = cache
    app.extensions['market_wrapper'] = MarketWrapper(
        cache,
        gate=market_gate or is_market_open,
        base_url=settings.get('INTERNAL_API_BASE') or '',
        key_by_query=settings['MARKET_WRAPPER_KEY_BY_QUERY'],
    )
    error_stats = {'5xx': 0}
    app.extensions['error_stats'] = error_stats

    app.register_blueprint(market_wrapper_bp)
    app.register_blueprint(markets_bp)
    app.register_blueprint(sentiment_bp)
    app.register_blueprint(crypto_bp)

    # ---------------- Request correlation + error stats -----------------
    @app.before_request
    def _before_req():
        g._start_time = time.time()
        g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex
        REQUEST_ID_CTX.set(g.request_id)

    @app.after_request
    def _after_req(resp):
        if 500 <= resp.status_code < 600:
            error_stats['5xx'] += 1
        rid = getattr(g, 'request_id', None)
        if rid:
            resp.headers['X-Request-ID'] = rid
        return resp

    # ---------------- Health + Metrics -----------------
    @app.route('/api/health')
    def api_health():
        """Lightweight liveness probe."""
        body = HealthResponse(
            status='ok',
            uptime_seconds=round(time.time() - startup_time, 2),
            errors_5xx=error_stats['5xx'],
            market_open=app.extensions['market_wrapper'].gate(),
        )
        return jsonify(body.model_dump())

    @app.route('/api/metrics')
    def metrics_json():
        return jsonify(collect_metrics(get_fetch_metrics(), cache.stats(), error_stats['5xx']))

    @app.route('/metrics.prom')
    def metrics_prom():
        text = render_prometheus(get_fetch_metrics(), cache.stats(), error_stats['5xx'],
                                 app.extensions['market_wrapper'].gate())
        return Response(text, mimetype='text/plain; version=0.0.4')

    @app.route('/api/config')
    def get_config():
        return jsonify({'config': redacted(settings)})

    @app.route('/debug/cache')
    def debug_cache():
        if not settings.get('ENABLE_DEBUG_ENDPOINTS'):
            return jsonify({'error': 'Not found'}), 404
        now_ms = time.time() * 1000.0
        entries = [
            {'key': e.endpoint_key, 'captured': e.captured_iso(), 'age_seconds': round(e.age_seconds(now_ms), 3)}
            for e in cache.snapshot()
        ]
        return jsonify({'stats': cache.stats(), 'entries': entries})

    @app.route('/api/clear-cache', methods=['POST'])
    def clear_cache():
        removed = cache.clear()
        memos = cache_utils.clear_all()
        logging.info(f"caches cleared: {removed} response entries, {memos} memos",
                     extra={'event': 'cache_cleared'})
        return jsonify({'success': True, 'cleared': {'response_cache': removed, 'memoized_functions': memos}})

    return app


app = create_app()


def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='Crypto Greed Index market data backend')
    parser.add_argument('--port', type=int, help='Port to run the server on')
    parser.add_argument('--host', type=str, help='Host to bind the server to')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    parser.add_argument('--auto-port', action='store_true', help='Automatically find available port')
    return parser.parse_args()


def main():
    args = parse_arguments()
    setup_logging(CONFIG.get('LOG_FORMAT', 'text'), CONFIG.get('LOG_DIR', ''))
    log_config(CONFIG)

    host = args.host or CONFIG.get('HOST', '0.0.0.0')
    port = args.port or CONFIG.get('PORT', 5001)
    if args.auto_port:
        port = find_available_port(port)
        logging.info(f"Using available port {port}")
    app.run(host=host, port=port, debug=args.debug or CONFIG.get('DEBUG', False), threaded=True)


if __name__ == "__main__":
    main()
