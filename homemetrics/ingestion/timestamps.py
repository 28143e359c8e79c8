"""
Timestamp normalization to UTC.
"""

import re
from datetime import datetime
from typing import Tuple

import pytz

from homemetrics.ingestion.errors import TimestampParseError

RFC3339_PATTERN = re.compile(
    r'(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})'
)

# Tried in order after RFC 3339; all are interpreted as UTC.
NAIVE_FORMATS: Tuple[str, ...] = (
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S',
    '%d/%m/%Y %H:%M:%S',
    '%m/%d/%Y %H:%M:%S',
)


def _parse_offset(offset: str):
    if offset in ('Z', 'z'):
        return pytz.UTC
    minutes = int(offset[1:3]) * 60 + int(offset[4:6])
    return pytz.FixedOffset(-minutes if offset[0] == '-' else minutes)


def _parse_rfc3339(value: str) -> datetime:
    match = RFC3339_PATTERN.fullmatch(value)
    if not match:
        raise ValueError(f"Not an RFC 3339 timestamp: '{value}'")

    year, month, day, hour, minute, second = (int(group) for group in match.groups()[:6])
    fraction = match.group(7) or ''
    # Digits beyond microseconds are truncated
    microsecond = int(fraction[:6].ljust(6, '0')) if fraction else 0

    parsed = datetime(
        year, month, day, hour, minute, second, microsecond,
        tzinfo=_parse_offset(match.group(8))
    )
    return parsed.astimezone(pytz.UTC)


def parse(text: str) -> datetime:
    """Parse a timestamp in one of the supported formats into a UTC datetime."""
    try:
        return _parse_rfc3339(text)
    except ValueError:
        pass

    for fmt in NAIVE_FORMATS:
        try:
            naive_dt = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return pytz.UTC.localize(naive_dt)

    raise TimestampParseError(text)
