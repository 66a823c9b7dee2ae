"""
Time-zone aware date helpers.

Every local-day computation (day keys, local midnight, month grids) goes
through this module so that no caller reimplements midnight arithmetic.
Instants are always timezone-aware UTC datetimes.
"""

from datetime import date, datetime, time, timedelta

import pytz

from spacedrep.domain.constants import DAY_MS

utc = pytz.utc


def get_zone(time_zone: str):
    """Resolve an IANA zone name, raising ValueError for unknown names."""
    try:
        return pytz.timezone(time_zone)
    except pytz.UnknownTimeZoneError as e:
        raise ValueError(f"Unknown time zone: {time_zone!r}") from e


def parse_instant(value: str | datetime | date) -> datetime:
    """
    Normalize an ISO string, naive datetime or date into an aware UTC instant.

    Naive values are taken to be UTC. Raises ValueError on malformed input.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time())
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Empty date value")
        # fromisoformat accepts "Z" only on newer interpreters
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid date value: {value!r}")

    if dt.tzinfo is None:
        return utc.localize(dt)
    return dt.astimezone(utc)


def format_instant(instant: datetime) -> str:
    """ISO-8601 UTC with a trailing Z."""
    return parse_instant(instant).isoformat().replace("+00:00", "Z")


def to_local(instant: datetime, time_zone: str) -> datetime:
    return parse_instant(instant).astimezone(get_zone(time_zone))


def local_date(instant: datetime, time_zone: str) -> date:
    return to_local(instant, time_zone).date()


def day_key(instant: datetime | str, time_zone: str) -> str:
    """Canonical ``YYYY-MM-DD`` key of the local calendar day of ``instant``."""
    return local_date(parse_instant(instant), time_zone).isoformat()


def combine_local(day: date, at: time, time_zone: str) -> datetime:
    """Local wall-clock ``day`` + ``at`` in ``time_zone`` as a UTC instant."""
    zone = get_zone(time_zone)
    return zone.localize(datetime.combine(day, at)).astimezone(utc)


def start_of_day(instant: datetime, time_zone: str) -> datetime:
    return combine_local(local_date(instant, time_zone), time(), time_zone)


def next_start_of_day(instant: datetime, time_zone: str) -> datetime:
    """Next local midnight after ``instant``, e.g. when a daily lock lifts."""
    tomorrow = local_date(instant, time_zone) + timedelta(days=1)
    return combine_local(tomorrow, time(), time_zone)


def elapsed_ms(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() * 1000


def add_days(instant: datetime, days: float) -> datetime:
    return instant + timedelta(milliseconds=days * DAY_MS)


def month_start(instant: datetime, time_zone: str) -> date:
    """First day of the local month containing ``instant``."""
    return local_date(instant, time_zone).replace(day=1)


def add_months(day: date, amount: int) -> date:
    """First day of the month ``amount`` months after ``day``'s month."""
    index = day.month - 1 + amount
    return date(day.year + index // 12, index % 12 + 1, 1)
