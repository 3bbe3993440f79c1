"""
Timestamp parsing and formatting helpers.
"""

from datetime import datetime, timezone

from dateutil import tz
from dateutil.parser import isoparse

from ..core.exceptions import ConfigurationError

STORE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO8601 timestamp into an aware datetime.

    Naive timestamps are assumed to be UTC.
    """
    parsed = isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_zone(value: datetime, zone_name: str) -> datetime:
    """Convert an aware datetime into the named IANA time zone."""
    zone = tz.gettz(zone_name)
    if zone is None:
        raise ConfigurationError(
            message=f"Unknown time zone: {zone_name}",
            error_code="invalid-timezone",
            details={"timezone": zone_name},
        )
    return value.astimezone(zone)


def format_store_timestamp(value: datetime) -> str:
    """Format a datetime as a timestamp without zone, e.g. ``2020-06-19 09:44:00``."""
    return value.strftime(STORE_TIMESTAMP_FORMAT)


def to_store_timestamp(value: datetime, zone_name: str) -> str:
    return format_store_timestamp(to_zone(value, zone_name))
