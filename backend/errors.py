"""Error taxonomy for upstream data fetching.

Handlers raise these from the upstream layer; ``responses.handle_upstream_errors``
turns them into JSON error responses.
"""


class MarketDataError(Exception):
    """Base class for every failure the API layer knows how to report."""

    status_code = 500
    public_message = 'Failed to fetch data'

    def __init__(self, message: str = '', source: str | None = None):
        super().__init__(message or self.public_message)
        self.source = source


class UpstreamRateLimited(MarketDataError):
    """Upstream answered 429 and retries were exhausted."""

    status_code = 429
    public_message = 'Rate limit exceeded. Please try again later.'


class UpstreamUnavailable(MarketDataError):
    """Non-2xx (other than 429) status, or a network failure."""

    def __init__(self, message: str = '', source: str | None = None, status: int | None = None):
        super().__init__(message, source)
        self.status = status


class InvalidRequest(MarketDataError):
    status_code = 400
    public_message = 'Invalid request'

    def __init__(self, message: str = '', source: str | None = None):
        super().__init__(message, source)
        # Validation messages are written by us, safe to return
        self.public_message = message or self.public_message


class MalformedUpstreamPayload(MarketDataError):
    """2xx response whose body does not have the expected shape."""

    public_message = 'Invalid data structure received'
