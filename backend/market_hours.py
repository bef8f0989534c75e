"""US equity session clock (America/New_York).

The session is treated as open from pre-market (04:00) through the end of
after-hours trading (20:00), Monday to Friday. Exchange holidays are not
modelled.
"""
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from config import CONFIG

MARKET_TZ = ZoneInfo(CONFIG.get('MARKET_TIMEZONE', 'America/New_York'))

SESSION_OPEN_MINUTES = 4 * 60
SESSION_CLOSE_MINUTES = 20 * 60
REFRESH_INTERVAL_SECONDS = 5 * 60


def _as_market_time(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(MARKET_TZ)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(MARKET_TZ)


def is_market_open(now: Optional[datetime] = None) -> bool:
    local = _as_market_time(now)
    # Monday=0 .. Friday=4
    if local.weekday() > 4:
        return False
    minutes = local.hour * 60 + local.minute
    return SESSION_OPEN_MINUTES <= minutes <= SESSION_CLOSE_MINUTES


def get_refresh_interval() -> int:
    """Seconds between refreshes while the market is open."""
    return REFRESH_INTERVAL_SECONDS


def should_fetch_market_data(
    last_update_ms: Optional[float],
    force_first_load: bool = True,
    existing_data: bool = False,
    now: Optional[datetime] = None,
) -> bool:
    # Always fetch on first load when nothing has been shown yet
    if force_first_load and not existing_data:
        return True
    if existing_data and not is_market_open(now):
        return False
    if not last_update_ms:
        return True
    current_ms = _as_market_time(now).timestamp() * 1000.0
    return current_ms - last_update_ms > REFRESH_INTERVAL_SECONDS * 1000
