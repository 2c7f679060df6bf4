"""Time and date helpers shared by the booking client and the backend.

The client works with quarter-hour wall-clock slots ("2:15 PM") and has to
turn them into zone-qualified RFC 3339 timestamps before they reach the
API. The backend uses ``parse_datetime`` and ``compute_end_time``.
"""

from __future__ import annotations

import os
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from dateutil import parser as date_parser
from dateutil import tz

QUARTER_HOUR = 15
SLOTS_PER_DAY = 24 * 4

_OFFSET_PATTERN = re.compile(r"([+-])(\d{2}):(\d{2})")


def _local_zone(zone: Optional[tzinfo] = None) -> tzinfo:
    return zone if zone is not None else tz.tzlocal()


def populate_time_options(now: Optional[datetime] = None) -> list[str]:
    """Return display strings for every quarter-hour slot left today.

    The current time is floored to its quarter-hour, so the slot that is
    already under way is still offered.
    """
    now = now or datetime.now(_local_zone())

    current_hours = now.hour
    current_minutes = (now.minute // QUARTER_HOUR) * QUARTER_HOUR
    if current_minutes == 60:
        current_minutes = 0
        current_hours += 1

    current = to_minutes_since_midnight(current_hours, current_minutes)

    options: list[str] = []
    for i in range(SLOTS_PER_DAY):
        hours, quarter = divmod(i, 4)
        minutes = quarter * QUARTER_HOUR
        if to_minutes_since_midnight(hours, minutes) >= current:
            options.append(format_time(hours, minutes))
    return options


def to_minutes_since_midnight(hours: int, minutes: int) -> int:
    return hours * 60 + minutes


def format_time(hours: int, minutes: int) -> str:
    """Format a 24-hour ``(hours, minutes)`` pair as ``H:MM AM/PM``."""
    period = "PM" if hours >= 12 else "AM"
    hours = hours % 12 or 12
    return f"{hours}:{minutes:02d} {period}"


def _is_zone_name(name: str) -> bool:
    # POSIX rules such as "UTC0" resolve to tzstr, not a zoneinfo file
    return isinstance(tz.gettz(name), (tz.tzfile, tz.tzutc))


def get_time_zone_string() -> str:
    """Return the IANA name of the local time zone, e.g. ``Asia/Dhaka``."""
    name = os.environ.get("TZ", "").lstrip(":")
    if name and not name.startswith("/") and _is_zone_name(name):
        return name

    target = os.path.realpath("/etc/localtime")
    if "zoneinfo/" in target:
        return target.split("zoneinfo/", 1)[1]

    return "UTC"


def get_timezone_offset(
    zone: Optional[tzinfo] = None, when: Optional[datetime] = None
) -> str:
    """Return the local UTC offset as ``±HH:MM``.

    Derived from the browser convention where the offset is counted in
    minutes west of UTC (UTC+05:30 is -330), so a non-positive count maps
    to ``+``.
    """
    zone = _local_zone(zone)
    if when is None:
        when = datetime.now(zone)
    elif when.tzinfo is None:
        when = when.replace(tzinfo=zone)

    utc_offset = when.utcoffset() or timedelta(0)
    offset_in_minutes = -int(utc_offset.total_seconds() // 60)

    sign = "+" if offset_in_minutes <= 0 else "-"
    hours, minutes = divmod(abs(offset_in_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def parse_offset_minutes(offset: str) -> int:
    """Turn ``±HH:MM`` into signed minutes. Raises ValueError on bad input."""
    match = _OFFSET_PATTERN.fullmatch(offset or "")
    if not match:
        raise ValueError(f"Invalid UTC offset {offset!r}, expected ±HH:MM")
    sign, hours, minutes = match.groups()
    total = int(hours) * 60 + int(minutes)
    return total if sign == "+" else -total


def convert_to_rfc3339(
    date_string: str,
    time_string: str,
    zone: Optional[tzinfo] = None,
    offset: Optional[str] = None,
) -> str:
    """Build ``{date}T{time}{offset}`` from a date and a wall-clock time.

    The wall-clock value is read in ``zone`` and moved to UTC, then shifted
    forward by ``offset`` and printed with ``offset`` appended. When
    ``offset`` matches the zone this reproduces the wall-clock time.
    """
    zone = _local_zone(zone)
    if offset is None:
        offset = get_timezone_offset(zone)
    offset_in_minutes = parse_offset_minutes(offset)

    try:
        naive = date_parser.parse(f"{date_string} {time_string}")
    except (ValueError, OverflowError) as exc:
        raise ValueError(
            f"Could not parse date/time {date_string!r} {time_string!r}"
        ) from exc

    as_utc = naive.replace(tzinfo=zone).astimezone(timezone.utc)
    shifted = as_utc + timedelta(minutes=offset_in_minutes)

    return f"{shifted.strftime('%Y-%m-%dT%H:%M:%S')}{offset}"


def convert_to_locale_time(
    date_str: Optional[str] = None, zone: Optional[tzinfo] = None
) -> str:
    """Render an ISO timestamp as ``HH:MM AM/PM`` local time, ``-`` if absent."""
    if not date_str:
        return "-"

    parsed = date_parser.isoparse(date_str)
    zone = _local_zone(zone)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)

    return parsed.astimezone(zone).strftime("%I:%M %p")


def parse_datetime(value: str) -> datetime:
    """Parse an ISO 8601 / RFC 3339 timestamp; naive values are taken as UTC."""
    parsed = date_parser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_end_time(start_time: str, duration: int) -> str:
    """Return ``start_time + duration`` minutes as a UTC ISO string."""
    start = parse_datetime(start_time)
    end = (start + timedelta(minutes=duration)).astimezone(timezone.utc)
    return f"{end.strftime('%Y-%m-%dT%H:%M:%S')}.{end.microsecond // 1000:03d}Z"
