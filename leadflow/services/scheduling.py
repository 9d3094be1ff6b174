"""Business-hours scheduling in the tenant's timezone."""

from datetime import datetime, timedelta
from typing import Optional

import pytz

from leadflow.core.logging import get_logger

logger = get_logger(__name__)

FRIDAY = 4
SATURDAY = 5


def resolve_timezone(name: Optional[str], default: str = "UTC"):
    """pytz timezone for `name`, falling back to `default` when unknown."""
    try:
        return pytz.timezone(name or default)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone, using default", timezone=name, default=default)
        return pytz.timezone(default)


def next_available_time(timezone_name: Optional[str] = None,
                        start_hour: int = 9,
                        end_hour: int = 18,
                        now: Optional[datetime] = None,
                        default_timezone: str = "UTC") -> datetime:
    """Next moment outbound contact is allowed for a tenant.

    Before opening time it is today's opening time. After closing time, or
    on a weekend, it is the next business day's opening time. Otherwise it
    is `now`.

    Args:
        timezone_name: Tenant timezone (IANA name)
        start_hour: Opening hour, local time
        end_hour: Closing hour, local time
        now: Reference instant (aware); defaults to the current time

    Returns:
        Timezone-aware datetime in the tenant's timezone
    """
    tz = resolve_timezone(timezone_name, default_timezone)
    if now is None:
        local = datetime.now(tz)
    else:
        local = now.astimezone(tz)

    if local.hour < start_hour:
        return _at_hour(tz, local, start_hour)

    weekday = local.weekday()
    if local.hour >= end_hour or weekday >= SATURDAY:
        if weekday == FRIDAY:
            days = 3
        elif weekday == SATURDAY:
            days = 2
        else:
            days = 1
        return _at_hour(tz, local + timedelta(days=days), start_hour)

    return local


def seconds_until(target: datetime, now: Optional[datetime] = None) -> float:
    now = now or datetime.now(pytz.utc)
    return (target - now).total_seconds()


def _at_hour(tz, local: datetime, hour: int) -> datetime:
    naive = local.replace(tzinfo=None).replace(hour=hour, minute=0, second=0, microsecond=0)
    return tz.localize(naive)
