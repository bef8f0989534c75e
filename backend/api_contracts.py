"""
Upstream payload contracts and service response models.

Upstream models only declare the fields the handlers read and allow anything
else through, so provider additions never break parsing. A payload that
lacks a required field is reported as MalformedUpstreamPayload.
"""

from __future__ import annotations

from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from errors import MalformedUpstreamPayload

M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# CoinGecko
# ---------------------------------------------------------------------------

class GlobalMarketData(BaseModel):
    model_config = ConfigDict(extra="allow")

    total_market_cap: dict[str, float]
    total_volume: dict[str, float] = Field(default_factory=dict)
    market_cap_percentage: dict[str, float] = Field(default_factory=dict)
    market_cap_change_percentage_24h_usd: float | None = None
    active_cryptocurrencies: int | None = None
    markets: int | None = None


class GlobalResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    data: GlobalMarketData


class MarketChart(BaseModel):
    """/coins/{id}/market_chart: lists of [timestamp_ms, value] pairs."""

    model_config = ConfigDict(extra="allow")

    prices: List[List[float]] = Field(default_factory=list)
    market_caps: List[List[float]] = Field(default_factory=list)
    total_volumes: List[List[float]] = Field(default_factory=list)


class CoinMarket(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    symbol: str
    name: str
    current_price: float | None = None
    market_cap: float | None = None
    total_volume: float | None = None
    price_change_percentage_24h: float | None = None


# ---------------------------------------------------------------------------
# Alternative.me Fear & Greed
# ---------------------------------------------------------------------------

class FearGreedItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    value: int
    value_classification: Optional[str] = None
    timestamp: int
    time_until_update: Optional[str] = None


class FearGreedResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    data: List[FearGreedItem]


# ---------------------------------------------------------------------------
# Service responses
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = Field(pattern='^ok$')
    uptime_seconds: float
    errors_5xx: int
    market_open: bool


class FetchMetrics(BaseModel):
    total_calls: int
    upstream_requests: int
    retries: int
    rate_limited: int
    network_errors: int
    exhausted: int
    last_fetch_duration_ms: float


class ResponseCacheStats(BaseModel):
    entries: int
    fresh_entries: int
    keys: List[str]
    oldest_age_seconds: Optional[float]
    newest_age_seconds: Optional[float]
    expiration_seconds: float


class MetricsResponse(BaseModel):
    ok: bool
    fetch: FetchMetrics
    response_cache: ResponseCacheStats
    errors_5xx: int


def parse(model: Type[M], payload: Any, source: str = 'upstream') -> M:
    """Validate ``payload`` against ``model``; raise MalformedUpstreamPayload on mismatch."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedUpstreamPayload(
            f"{source}: {model.__name__} validation failed ({e.error_count()} errors)", source=source
        ) from e
