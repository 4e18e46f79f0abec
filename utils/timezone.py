"""UTC-everywhere time handling. Local time only for business calendar decisions."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

# Invoice numbering and fiscal years follow the issuer's legal calendar
BUSINESS_TIMEZONE = "Europe/Paris"


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_local(dt: datetime, tz_name: str = BUSINESS_TIMEZONE) -> datetime:
    """
    Convert UTC datetime to a local timezone.

    Raises:
        ValueError: If datetime is naive or timezone name is invalid
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime. Datetime must be timezone-aware."
        )

    try:
        local_tz = ZoneInfo(tz_name)
    except KeyError:
        raise ValueError(f"Unknown timezone: {tz_name}")

    return dt.astimezone(local_tz)


def today_local(tz_name: str = BUSINESS_TIMEZONE) -> date:
    """Calendar date in the business timezone."""
    return to_local(now_utc(), tz_name).date()


def current_year(tz_name: str = BUSINESS_TIMEZONE) -> int:
    """
    Calendar year in the business timezone.

    Numbering resets at local midnight on January 1st, not at UTC midnight.
    """
    return today_local(tz_name).year

