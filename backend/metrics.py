"""Metrics exposition helpers for JSON and Prometheus outputs.

Kept apart from app.py so the route stays a thin wrapper.
"""
from __future__ import annotations
from typing import Any, Dict

from api_contracts import MetricsResponse


def collect_metrics(fetch: Dict[str, Any], cache_stats: Dict[str, Any], errors_5xx: int) -> Dict[str, Any]:
    """JSON body for /api/metrics, validated against MetricsResponse."""
    payload = MetricsResponse(ok=True, fetch=fetch, response_cache=cache_stats, errors_5xx=errors_5xx)
    return payload.model_dump()


def emit_prometheus(lines: list[str], name: str, value: Any, mtype: str, help_text: str):
    lines.append(f'# HELP {name} {help_text}')
    lines.append(f'# TYPE {name} {mtype}')
    if value is None:
        value = 'NaN'
    elif value is True or value is False:
        value = int(value)
    lines.append(f'{name} {value}')


def render_prometheus(fetch: Dict[str, Any], cache_stats: Dict[str, Any], errors_5xx: int,
                      market_open: bool) -> str:
    """Text exposition without prometheus_client. Keep names stable & snake_case."""
    lines: list[str] = []
    emit_prometheus(lines, 'fetch_calls_total', fetch.get('total_calls', 0), 'counter', 'Resilient fetch calls')
    emit_prometheus(lines, 'fetch_upstream_requests_total', fetch.get('upstream_requests', 0), 'counter',
                    'HTTP requests sent upstream, retries included')
    emit_prometheus(lines, 'fetch_retries_total', fetch.get('retries', 0), 'counter', 'Backoff retries performed')
    emit_prometheus(lines, 'fetch_rate_limited_total', fetch.get('rate_limited', 0), 'counter',
                    'Upstream 429 responses seen')
    emit_prometheus(lines, 'fetch_network_errors_total', fetch.get('network_errors', 0), 'counter',
                    'Network level fetch failures')
    emit_prometheus(lines, 'fetch_exhausted_total', fetch.get('exhausted', 0), 'counter',
                    'Calls that ran out of retries')
    emit_prometheus(lines, 'fetch_last_duration_ms', fetch.get('last_fetch_duration_ms'), 'gauge',
                    'Duration of the most recent fetch including backoff (ms)')
    emit_prometheus(lines, 'response_cache_entries', cache_stats.get('entries', 0), 'gauge',
                    'Entries held by the market wrapper response cache')
    emit_prometheus(lines, 'response_cache_fresh_entries', cache_stats.get('fresh_entries', 0), 'gauge',
                    'Unexpired entries in the response cache')
    emit_prometheus(lines, 'response_cache_oldest_age_seconds', cache_stats.get('oldest_age_seconds'), 'gauge',
                    'Age of the oldest cached response')
    emit_prometheus(lines, 'http_errors_5xx_total', errors_5xx, 'counter', '5xx responses served')
    emit_prometheus(lines, 'market_open', market_open, 'gauge', 'US equity session open flag')
    return '\n'.join(lines) + '\n'
