"""
Lenient date parsing for scraper payloads.
"""

from datetime import date, datetime, time
from datetime import timezone as dt_timezone
from typing import Any, Optional

from django.utils.dateparse import parse_date, parse_datetime


def parse_date_or_none(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime into an aware UTC datetime.

    Naive values are taken as UTC. Empty, malformed or non-string values
    return None rather than raising, since scrapers routinely emit
    placeholders such as "N/A".
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = parse_datetime(text)
            if parsed is None:
                day = parse_date(text)
                parsed = datetime.combine(day, time.min) if day else None
        except ValueError:
            return None
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=dt_timezone.utc)
    return parsed.astimezone(dt_timezone.utc)
