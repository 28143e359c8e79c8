"""
Pattern-based extraction from loosely structured content.

Covers JSON reading exports, plain text logs and the Blue Riot pool report
emails (temperature, pH and ORP written in prose, French or English).
"""

import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Pattern, Sequence

from pydantic import TypeAdapter, ValidationError

from homemetrics.ingestion import timestamps
from homemetrics.ingestion.errors import FormatError, NoMetricsFound
from homemetrics.ingestion.models import PoolReading, TemperatureReading

logger = logging.getLogger(__name__)

PH_RANGE = (0.0, 14.0)
ORP_RANGE = (0, 1000)

TEMPERATURE_PATTERNS: Sequence[Pattern] = (
    re.compile(r'temp[ée]rature[:\s]+([0-9]+[.,][0-9]+)', re.IGNORECASE),
    re.compile(r'temp[:\s]+([0-9]+[.,][0-9]+)', re.IGNORECASE),
    re.compile(r'([0-9]+[.,][0-9]+)\s*°C'),
)

PH_PATTERNS: Sequence[Pattern] = (
    re.compile(r'ph[:\s]+([0-9]+[.,][0-9]+)', re.IGNORECASE),
    re.compile(r'ph\s*=\s*([0-9]+[.,][0-9]+)', re.IGNORECASE),
)

ORP_PATTERNS: Sequence[Pattern] = (
    re.compile(r'orp[:\s]+([0-9]+)\s*m?V?', re.IGNORECASE),
    re.compile(r'redox[:\s]+([0-9]+)\s*m?V?', re.IGNORECASE),
    re.compile(r'([0-9]+)\s*mV'),
)

# <timestamp> <sensor> <value>[°C]; the sensor token cannot start with a digit.
# The word boundary fixes where the sensor token ends, which keeps matching
# linear on long lines without a value.
TEXT_LINE_PATTERN = re.compile(
    r'(\d{4}-\d{2}-\d{2}[\sT]\d{2}:\d{2}:\d{2})[^\w-]*([^\W\d]\w*)\b[^\d]*?(-?\d+(?:\.\d+)?)(?:°C)?'
)

TIMESTAMP_KEYS = ('timestamp', 'time', 'date')
SENSOR_KEYS = ('sensor_id', 'sensor', 'device_id')
TEMPERATURE_KEYS = ('temperature', 'temp')
HUMIDITY_KEYS = ('humidity', 'hum')
LOCATION_KEYS = ('location', 'room')

_READINGS_ADAPTER = TypeAdapter(List[TemperatureReading])


def _decode_utf8(content: bytes, kind: str, filename: Optional[str]) -> str:
    try:
        return content.decode('utf-8')
    except UnicodeDecodeError as e:
        raise FormatError(f"Unable to decode {kind} content as UTF-8: {e}", filename=filename) from e


def _first_present(item: Dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if key in item:
            return item[key]
    return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def parse_json_reading(item: Any) -> TemperatureReading:
    """Map a generic JSON object to a reading using common field aliases."""
    if not isinstance(item, dict):
        raise ValueError("Reading is not a JSON object")

    timestamp_value = _first_present(item, TIMESTAMP_KEYS)
    if not isinstance(timestamp_value, str):
        raise ValueError("Missing timestamp in JSON")

    sensor_value = _first_present(item, SENSOR_KEYS)
    sensor_id = sensor_value if isinstance(sensor_value, str) else "unknown"

    temperature = _as_number(_first_present(item, TEMPERATURE_KEYS))
    if temperature is None:
        raise ValueError("Missing temperature in JSON")

    location = _first_present(item, LOCATION_KEYS)

    return TemperatureReading(
        sensor_id=sensor_id,
        timestamp=timestamps.parse(timestamp_value),
        temperature=temperature,
        humidity=_as_number(_first_present(item, HUMIDITY_KEYS)),
        location=location if isinstance(location, str) else None,
    )


def extract_from_json(content: bytes, filename: Optional[str] = None) -> List[TemperatureReading]:
    """Extract readings from a JSON array, or a ``data``/``readings`` wrapper."""
    logger.debug("Extracting from JSON file")

    content_str = _decode_utf8(content, 'JSON', filename)

    # Strict: numeric strings and epoch timestamps are not readings
    try:
        readings = _READINGS_ADAPTER.validate_json(content_str, strict=True)
        logger.info(f"Extracted {len(readings)} temperature readings from JSON (direct format)")
        return readings
    except ValidationError:
        pass

    try:
        value = json.loads(content_str)
    except json.JSONDecodeError as e:
        raise FormatError(f"Unable to parse JSON: {e}", filename=filename) from e

    items: List[Any] = []
    if isinstance(value, dict):
        if isinstance(value.get('data'), list):
            items = value['data']
        elif isinstance(value.get('readings'), list):
            items = value['readings']

    readings = []
    for index, item in enumerate(items):
        try:
            readings.append(parse_json_reading(item))
        except (ValueError, ValidationError) as e:
            logger.debug(f"Skipping JSON reading {index}: {e}")

    logger.info(f"Extracted {len(readings)} temperature readings from JSON")
    return readings


def extract_from_text(content: bytes, filename: Optional[str] = None) -> List[TemperatureReading]:
    """Extract one reading per text line of the form ``<timestamp> <sensor> <value>``."""
    logger.debug("Extracting from text file")

    content_str = _decode_utf8(content, 'text', filename)
    readings = []

    for line in content_str.splitlines():
        match = TEXT_LINE_PATTERN.search(line)
        if not match:
            continue

        timestamp_str, sensor_id, temp_str = match.groups()
        try:
            readings.append(TemperatureReading(
                sensor_id=sensor_id,
                timestamp=timestamps.parse(timestamp_str),
                temperature=float(temp_str),
            ))
        except (ValueError, ValidationError) as e:
            logger.debug(f"Skipping text line '{line}': {e}")

    logger.info(f"Extracted {len(readings)} temperature readings from text file")
    return readings


def _parse_decimal(raw: str) -> Optional[float]:
    try:
        return float(raw.replace(',', '.'))
    except ValueError:
        return None


def extract_temperature(text: str) -> Optional[float]:
    """Find a water temperature, e.g. ``Temperature: 25.5°C`` or ``Temp: 25,5``."""
    for pattern in TEMPERATURE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        temperature = _parse_decimal(match.group(1))
        if temperature is not None:
            logger.debug(f"Found temperature: {temperature}°C (pattern: {pattern.pattern})")
            return temperature

    logger.warning("Temperature not found in text")
    return None


def extract_ph(text: str) -> Optional[float]:
    """Find a pH value within 0-14, e.g. ``pH: 7.2`` or ``ph = 7,2``."""
    low, high = PH_RANGE
    for pattern in PH_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        ph = _parse_decimal(match.group(1))
        if ph is None:
            continue
        if low <= ph <= high:
            logger.debug(f"Found pH: {ph} (pattern: {pattern.pattern})")
            return ph
        logger.warning(f"pH value out of range: {ph}")

    logger.warning("pH not found in text")
    return None


def extract_orp(text: str) -> Optional[int]:
    """Find an ORP value in mV within 0-1000, e.g. ``ORP: 720 mV`` or ``Redox: 720``."""
    low, high = ORP_RANGE
    for pattern in ORP_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        orp = int(match.group(1))
        if low <= orp <= high:
            logger.debug(f"Found ORP: {orp} mV (pattern: {pattern.pattern})")
            return orp
        logger.warning(f"ORP value out of range: {orp}")

    logger.warning("ORP not found in text")
    return None


def extract_pool_metrics(text: str, timestamp: datetime) -> PoolReading:
    """Extract pool metrics from report text; at least one metric is required."""
    logger.debug(f"Extracting pool metrics from text (length: {len(text)} chars)")

    temperature = extract_temperature(text)
    ph = extract_ph(text)
    orp = extract_orp(text)

    if temperature is None and ph is None and orp is None:
        raise NoMetricsFound("No pool metrics found in email text")

    reading = PoolReading(timestamp=timestamp, temperature=temperature, ph=ph, orp=orp)

    logger.debug(f"Extracted pool reading: temp={temperature}°C, pH={ph}, ORP={orp} mV")
    return reading
