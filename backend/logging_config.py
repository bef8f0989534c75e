import logging, json, os
from logging.handlers import RotatingFileHandler
from contextvars import ContextVar

from config import redacted

# Per-request correlation id, set by the app before each request
REQUEST_ID_CTX: ContextVar[str | None] = ContextVar('request_id', default=None)

# ``extra=`` keys copied into JSON records
STRUCTURED_FIELDS = ('event', 'source', 'url', 'status', 'delay_ms', 'attempts', 'call')


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.correlation_id = REQUEST_ID_CTX.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        base = {
            'ts': self.formatTime(record, datefmt='%Y-%m-%dT%H:%M:%S'),
            'level': record.levelname,
            'msg': record.getMessage(),
            'logger': record.name,
            'correlation_id': getattr(record, 'correlation_id', None),
        }
        for key in STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                base[key] = value
        if record.exc_info:
            base['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)


TEXT_FORMAT = '%(asctime)s %(levelname)-7s [%(correlation_id)s] %(name)s: %(message)s'
LOG_FILE_NAME = 'market_data.log'


def _attach(root: logging.Logger, handler: logging.Handler, fmt: logging.Formatter) -> None:
    handler.setFormatter(fmt)
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)


def setup_logging(log_format: str = 'text', log_dir: str = '', level=logging.INFO):
    """Route the root logger to stderr and, when ``log_dir`` is set, a rotating file."""
    root = logging.getLogger()
    root.setLevel(level)
    # Reloads would otherwise stack handlers
    root.handlers = []
    fmt = JsonFormatter() if str(log_format).lower() == 'json' else logging.Formatter(TEXT_FORMAT)
    _attach(root, logging.StreamHandler(), fmt)
    if not log_dir:
        return
    try:
        os.makedirs(log_dir, exist_ok=True)
        # 5 MB per file, 3 backups
        handler = RotatingFileHandler(os.path.join(log_dir, LOG_FILE_NAME), maxBytes=5 * 1024 * 1024, backupCount=3)
    except OSError as e:
        root.warning(f'Could not open log file in {log_dir} ({e}); console only')
        return
    _attach(root, handler, fmt)


def log_config(config):
    """Log the effective configuration with secrets masked."""
    logging.info("market data backend configuration:")
    for key, value in sorted(redacted(config).items()):
        logging.info(f"  {key}={value}")
