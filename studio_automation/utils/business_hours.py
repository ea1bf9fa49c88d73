"""Business hours gate for outbound automation emails.

Emails flagged `business_hours_only` are held back while the studio is closed
and reconsidered on the next tick. Hour-level precision, DST-safe.
"""

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

import holidays


@lru_cache(maxsize=10)
def get_us_holidays(year: int) -> frozenset:
    """Cache holiday sets per year for performance."""
    return frozenset(holidays.US(years=year).keys())


def is_holiday(local_dt: datetime) -> bool:
    return local_dt.date() in get_us_holidays(local_dt.year)


def is_within_business_hours(
    now: datetime,
    timezone: str,
    open_hour: int,
    close_hour: int,
    *,
    skip_holidays: bool = False,
) -> bool:
    """
    Check whether `now` falls inside the studio's opening hours.

    Args:
        now: Timezone-aware instant (usually UTC)
        timezone: IANA timezone of the studio (e.g., 'America/Los_Angeles')
        open_hour: First local hour that counts as open (inclusive)
        close_hour: Local hour at which the studio closes (exclusive)
        skip_holidays: Treat US federal holidays as closed all day

    Returns:
        True when open_hour <= local hour < close_hour
    """
    local = now.astimezone(ZoneInfo(timezone))
    if skip_holidays and is_holiday(local):
        return False
    return open_hour <= local.hour < close_hour


@dataclass(frozen=True)
class BusinessHours:
    """The studio's configured opening hours."""

    timezone: str = "America/Los_Angeles"
    open_hour: int = 9
    close_hour: int = 20
    skip_holidays: bool = False

    def __post_init__(self) -> None:
        ZoneInfo(self.timezone)
        if not 0 <= self.open_hour <= 24 or not 0 <= self.close_hour <= 24:
            raise ValueError("Business hours must be between 0 and 24")
        if self.open_hour >= self.close_hour:
            raise ValueError("Business hours must open before they close")

    def is_open(self, now: datetime) -> bool:
        return is_within_business_hours(
            now,
            self.timezone,
            self.open_hour,
            self.close_hour,
            skip_holidays=self.skip_holidays,
        )
