"""
CSV processor for X-Sense thermometer exports.

Export files look like ``Thermo-<sensor>_Exporter les données_<date>.csv``
with three columns: time (``YYYY/MM/DD HH:MM``), temperature and humidity.
"""

import csv
import logging
import math
import re
from datetime import datetime
from io import StringIO
from typing import List

import pytz

from homemetrics.ingestion.errors import FormatError, RowError
from homemetrics.ingestion.models import Attachment, TemperatureReading

logger = logging.getLogger(__name__)

SENSOR_NAME_RE = re.compile(r'Thermo-([^_]+)_')

TIMESTAMP_FORMAT = '%Y/%m/%d %H:%M'

MIN_COLUMNS = 3


def extract_sensor_name(filename: str) -> str:
    """Derive the sensor name from an export filename."""
    match = SENSOR_NAME_RE.search(filename)
    if match:
        return match.group(1)

    # Fallback: everything before the first dot
    return filename.split('.')[0]


class CSVProcessor:
    """
    Parses X-Sense CSV exports into temperature readings.

    Rows with fewer than three values are logged and skipped. A value that
    fails to parse aborts the whole file with a RowError.
    """

    TIMESTAMP_COLUMN = 0
    TEMPERATURE_COLUMN = 1
    HUMIDITY_COLUMN = 2

    def __init__(self):
        self.skipped_rows: List[int] = []

    def extract(self, attachment: Attachment) -> List[TemperatureReading]:
        """Extract readings from a CSV attachment."""
        logger.info(f"Extracting temperature data from: {attachment.filename}")

        sensor_name = extract_sensor_name(attachment.filename)
        logger.debug(f"Extracted sensor name: {sensor_name}")

        return self.parse_csv_content(attachment.content, sensor_name, attachment.filename)

    def parse_csv_content(
        self,
        csv_content: bytes,
        sensor_name: str,
        filename: str = None
    ) -> List[TemperatureReading]:
        """Parse CSV content for a single sensor."""
        self.skipped_rows = []

        csv_text = csv_content.decode('utf-8', errors='replace')
        csv_reader = csv.reader(StringIO(csv_text))

        try:
            headers = next(csv_reader, [])
            rows = [(csv_reader.line_num, row) for row in csv_reader]
        except csv.Error as e:
            raise FormatError(f"Unreadable CSV: {e}", filename=filename) from e

        logger.debug(f"Found CSV headers: {headers}")

        if len(headers) < MIN_COLUMNS:
            raise FormatError(
                f"Invalid CSV: found {len(headers)} columns, expected at least {MIN_COLUMNS}",
                filename=filename
            )

        readings = []

        for line_number, row in rows:
            if not row:
                continue

            if len(row) < MIN_COLUMNS:
                logger.warning(f"Line {line_number} skipped: not enough columns ({len(row)} < {MIN_COLUMNS})")
                self.skipped_rows.append(line_number)
                continue

            readings.append(self._parse_row(row, line_number, sensor_name))

        logger.info(f"Extraction completed: {len(readings)} temperature readings for sensor '{sensor_name}'")
        return readings

    def _parse_row(self, row: List[str], line_number: int, sensor_name: str) -> TemperatureReading:
        """Parse a single data row."""
        timestamp = self._parse_timestamp(row[self.TIMESTAMP_COLUMN], 'timestamp', line_number)
        temperature = self._parse_float(row[self.TEMPERATURE_COLUMN], 'temperature', line_number)
        humidity = self._parse_float(row[self.HUMIDITY_COLUMN], 'humidity', line_number)

        return TemperatureReading(
            sensor_id=sensor_name,
            timestamp=timestamp,
            temperature=temperature,
            humidity=humidity,
            location=sensor_name
        )

    def _parse_float(self, value: str, field_name: str, line_number: int) -> float:
        """Parse a decimal value using '.' as separator."""
        try:
            parsed = float(value)
        except (ValueError, TypeError):
            raise RowError(line_number, field_name, value, "expected a decimal number")

        if not math.isfinite(parsed):
            raise RowError(line_number, field_name, value, "expected a finite number")

        return parsed

    def _parse_timestamp(self, value: str, field_name: str, line_number: int) -> datetime:
        """Parse an export timestamp; the local time is stored as UTC unchanged."""
        try:
            naive_dt = datetime.strptime(value, TIMESTAMP_FORMAT)
        except (ValueError, TypeError):
            raise RowError(line_number, field_name, value, "expected format 'YYYY/MM/DD HH:MM'")

        return pytz.UTC.localize(naive_dt)
