import json
import logging

from logging_config import REQUEST_ID_CTX, CorrelationIdFilter, JsonFormatter


def _record(**extra):
    record = logging.LogRecord('market', logging.WARNING, __file__, 1, 'rate limited %s', ('coingecko',), None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_correlation_filter_attaches_request_id():
    token = REQUEST_ID_CTX.set('req-1')
    try:
        record = _record()
        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == 'req-1'
    finally:
        REQUEST_ID_CTX.reset(token)


def test_json_formatter_includes_structured_fields():
    record = _record(correlation_id='req-2', event='rate_limited_retry', delay_ms=1000)
    out = json.loads(JsonFormatter().format(record))
    assert out['msg'] == 'rate limited coingecko'
    assert out['level'] == 'WARNING'
    assert out['correlation_id'] == 'req-2'
    assert out['event'] == 'rate_limited_retry'
    assert out['delay_ms'] == 1000
    assert 'source' not in out
