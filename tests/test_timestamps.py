from __future__ import annotations

from datetime import datetime

import pytest
import pytz

from homemetrics.ingestion import timestamps
from homemetrics.ingestion.errors import TimestampParseError

EXPECTED = pytz.UTC.localize(datetime(2025, 11, 4, 10, 0, 0))


@pytest.mark.parametrize(
    "text",
    [
        "2025-11-04T10:00:00Z",
        "2025-11-04T10:00:00+00:00",
        "2025-11-04T11:00:00+01:00",
        "2025-11-04 10:00:00",
        "2025-11-04T10:00:00",
        "04/11/2025 10:00:00",
    ],
)
def test_parse_supported_formats(text: str) -> None:
    parsed = timestamps.parse(text)

    assert parsed == EXPECTED
    assert parsed.utcoffset().total_seconds() == 0


def test_offset_is_converted_to_utc() -> None:
    parsed = timestamps.parse("2025-11-05T08:30:00+01:00")

    assert (parsed.hour, parsed.minute) == (7, 30)
    assert parsed.tzinfo is not None


def test_day_first_wins_when_ambiguous() -> None:
    assert timestamps.parse("03/04/2025 12:00:00").month == 4


def test_month_first_when_day_first_is_impossible() -> None:
    parsed = timestamps.parse("11/25/2025 12:00:00")

    assert (parsed.month, parsed.day) == (11, 25)


@pytest.mark.parametrize("text", ["", "yesterday", "2025/11/04 10:00", "2025-11-04"])
def test_unsupported_formats(text: str) -> None:
    with pytest.raises(TimestampParseError):
        timestamps.parse(text)


def test_parse_error_is_a_value_error() -> None:
    with pytest.raises(ValueError, match="Unsupported timestamp format"):
        timestamps.parse("not a timestamp")


def test_fractional_seconds() -> None:
    parsed = timestamps.parse("2025-11-04T10:00:00.1Z")

    assert parsed == EXPECTED.replace(microsecond=100000)
    assert timestamps.parse("2025-11-04T10:00:00.123456789+00:00").microsecond == 123456


def test_negative_offset() -> None:
    parsed = timestamps.parse("2025-11-04T05:30:00-04:30")

    assert parsed == EXPECTED


@pytest.mark.parametrize(
    "text",
    ["2025-11-04T10:00+01:00", "20251104T100000Z", "2025-11-04T10:00:00+0100", "2025-13-04T10:00:00Z"],
)
def test_non_rfc3339_offsets_are_rejected(text: str) -> None:
    with pytest.raises(TimestampParseError):
        timestamps.parse(text)
