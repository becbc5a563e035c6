"""Time formatting and parsing helpers.

Holds the one piece of process-wide configuration in the toolkit: the agency
timezone used to interpret GTFS schedule times and to render timestamps.
When no agency timezone is set, UTC is used.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

import pytz

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y%m%d"

_agency_timezone: Optional[str] = None


def set_agency_timezone(name: Optional[str]) -> None:
    """
    Set the agency timezone.

    Args:
        name: IANA zone name such as "America/New_York", or None to fall back to UTC.

    Raises:
        ConfigError: If the zone name is unknown.
    """
    global _agency_timezone

    if name is not None:
        try:
            pytz.timezone(name)
        except pytz.UnknownTimeZoneError as e:
            raise ConfigError(f"Unknown agency timezone: {name}") from e

    _agency_timezone = name
    logger.debug(f"Agency timezone set to {name or 'UTC'}")


def get_agency_timezone() -> Optional[str]:
    return _agency_timezone


def _tzinfo():
    return pytz.timezone(_agency_timezone) if _agency_timezone else pytz.utc


def format_timestamp(posix_seconds: Optional[float] = None, fmt: Optional[str] = None) -> str:
    """
    Render a POSIX timestamp in the agency timezone.

    Args:
        posix_seconds: Seconds since the Epoch. Defaults to now.
        fmt: strftime format. Defaults to ISO 8601.

    Returns:
        The formatted time.
    """
    moment = (
        datetime.now(pytz.utc)
        if posix_seconds is None
        else datetime.fromtimestamp(posix_seconds, pytz.utc)
    )
    moment = moment.astimezone(_tzinfo())
    return moment.strftime(fmt) if fmt else moment.isoformat()


def parse_timestamp(text: str, fmt: str) -> int:
    """Parse a wall-clock string in the agency timezone into POSIX seconds."""
    naive = datetime.strptime(text, fmt)
    return int(_tzinfo().localize(naive).timestamp())


def get_date_from_date_string(date_string: Optional[str]) -> Optional[date]:
    """Parse a GTFS service date ("YYYYMMDD")."""
    if not date_string:
        return None
    try:
        return datetime.strptime(date_string, DATE_FORMAT).date()
    except ValueError:
        logger.debug(f"Malformed service date: {date_string!r}")
        return None


def scheduled_time_to_timestamp(
    time_of_day: Optional[str],
    service_date: Optional[str] = None,
) -> Optional[int]:
    """
    Combine a GTFS schedule time with its service date.

    GTFS schedule times may run past midnight ("25:10:00" is 01:10 on the
    following day), so hours of 24 or more roll the date forward.

    Args:
        time_of_day: "HH:MM:SS" as found in stop_times.txt.
        service_date: "YYYYMMDD" start date of the trip. Defaults to today in
            the agency timezone.

    Returns:
        POSIX seconds, or None if either input is malformed.
    """
    if not time_of_day:
        return None

    try:
        hours, minutes, seconds = (int(part) for part in time_of_day.strip().split(":"))
    except ValueError:
        logger.debug(f"Malformed schedule time: {time_of_day!r}")
        return None

    if service_date:
        day = get_date_from_date_string(service_date)
        if day is None:
            return None
    else:
        day = datetime.now(_tzinfo()).date()

    extra_days, hours = divmod(hours, 24)
    day += timedelta(days=extra_days)

    try:
        naive = datetime(day.year, day.month, day.day, hours, minutes, seconds)
    except ValueError:
        logger.debug(f"Out of range schedule time: {time_of_day!r}")
        return None

    return int(_tzinfo().localize(naive).timestamp())
