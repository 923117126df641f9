"""
Timestamp helpers. All stored timestamps are naive UTC.
"""
from datetime import datetime, timezone
from typing import Optional, Union

from dateutil import parser as date_parser
from dateutil import tz


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[Union[datetime, str]]) -> Optional[datetime]:
    """Normalise a datetime or an ISO/RFC 2822 date string to naive UTC"""
    if value is None:
        return None
    if isinstance(value, str):
        value = date_parser.parse(value)
    if value.tzinfo is not None:
        value = value.astimezone(tz.UTC).replace(tzinfo=None)
    return value
