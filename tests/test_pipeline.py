from __future__ import annotations

import logging
from datetime import datetime
from typing import List

import pytest
import pytz

from conftest import XSENSE_CSV, XSENSE_FILENAME, attachment_part, base64_block, build_message
from homemetrics.ingestion.errors import NoMetricsFound
from homemetrics.ingestion.models import Attachment, PoolReading, TemperatureReading
from homemetrics.ingestion.pipeline import ExtractionPipeline, extract_from_attachment


class FakeReadingStore:
    def __init__(self) -> None:
        self.readings: List[TemperatureReading] = []
        self.pool_readings: List[PoolReading] = []

    def save_readings(self, readings: List[TemperatureReading]) -> int:
        self.readings.extend(readings)
        return len(readings)

    def save_pool_reading(self, reading: PoolReading) -> int:
        self.pool_readings.append(reading)
        return 1


@pytest.fixture()
def store() -> FakeReadingStore:
    return FakeReadingStore()


@pytest.fixture()
def pipeline(store: FakeReadingStore, tmp_path) -> ExtractionPipeline:
    return ExtractionPipeline(reading_store=store, data_dir=str(tmp_path), save_attachments=False)


def test_process_sensor_message(pipeline: ExtractionPipeline, store: FakeReadingStore, xsense_message: bytes) -> None:
    result = pipeline.process_sensor_message(xsense_message)

    assert result.attachments_found == 1
    assert result.attachments_processed == 1
    assert result.attachments_failed == 0
    assert result.readings_extracted == 3
    assert result.readings_saved == 3
    assert [r.sensor_id for r in store.readings] == ["cabane"] * 3
    assert result.errors == []


def test_failing_attachment_does_not_stop_siblings(pipeline: ExtractionPipeline, store: FakeReadingStore) -> None:
    narrow_csv = b"Temps,Temperature\n2025/11/04 23:59,15.0\n"
    message = build_message([
        attachment_part("Thermo-garage_export.csv", narrow_csv),
        attachment_part(XSENSE_FILENAME, XSENSE_CSV),
    ])

    result = pipeline.process_sensor_message(message)

    assert result.attachments_found == 2
    assert result.attachments_processed == 1
    assert result.attachments_failed == 1
    assert result.readings_saved == 3
    assert len(result.errors) == 1
    assert "Thermo-garage_export.csv" in result.errors[0]
    assert len(store.readings) == 3


def test_message_without_attachments(pipeline: ExtractionPipeline, store: FakeReadingStore) -> None:
    result = pipeline.process_sensor_message(build_message([]))

    assert result.attachments_found == 0
    assert result.readings == []
    assert store.readings == []


def test_unnamed_mime_part_fails_alone(pipeline: ExtractionPipeline, store: FakeReadingStore) -> None:
    named = (
        "Content-Type: text/csv\r\n"
        "content-disposition: attachment; filename*=utf-8''Thermo-cave_export.csv\r\n"
        "Content-Transfer-Encoding: base64",
        base64_block(XSENSE_CSV),
    )
    unnamed = (
        "Content-Type: application/octet-stream\r\nContent-Disposition: ATTACHMENT",
        "a payload long enough to be kept",
    )

    result = pipeline.process_sensor_message(build_message([named, unnamed]))

    assert result.attachments_found == 2
    assert result.attachments_processed == 1
    assert result.attachments_failed == 1
    assert len(result.errors) == 1
    assert [r.sensor_id for r in store.readings] == ["cave"] * 3


def test_save_failure_does_not_stop_extraction(store: FakeReadingStore, tmp_path, xsense_message: bytes) -> None:
    blocked = tmp_path / "data"
    blocked.write_text("not a directory")
    pipeline = ExtractionPipeline(reading_store=store, data_dir=str(blocked), save_attachments=True)

    result = pipeline.process_sensor_message(xsense_message)

    assert result.attachments_processed == 1
    assert result.readings_saved == 3
    assert blocked.read_text() == "not a directory"


def test_extraction_failure_is_logged_with_traceback(pipeline: ExtractionPipeline, caplog) -> None:
    message = build_message([attachment_part("Thermo-garage_export.csv", b"Temps,Temperature\n")])

    with caplog.at_level(logging.ERROR):
        result = pipeline.process_sensor_message(message)

    assert result.attachments_failed == 1
    assert "Failed to extract attachment" in caplog.text
    assert "FormatError" in caplog.text


def test_attachments_saved_when_enabled(store: FakeReadingStore, tmp_path, xsense_message: bytes) -> None:
    pipeline = ExtractionPipeline(reading_store=store, data_dir=str(tmp_path), save_attachments=True)

    pipeline.process_sensor_message(xsense_message)

    saved = tmp_path / f"20251104_235900_{XSENSE_FILENAME}"
    assert saved.read_bytes() == XSENSE_CSV


def test_settings_from_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("SAVE_ATTACHMENTS", "TRUE")

    pipeline = ExtractionPipeline()

    assert pipeline.data_dir == str(tmp_path)
    assert pipeline.save_attachments is True
    assert pipeline.reading_store is None


def test_process_pool_message(pipeline: ExtractionPipeline, store: FakeReadingStore, pool_message: bytes) -> None:
    reading = pipeline.process_pool_message(pool_message)

    assert (reading.temperature, reading.ph, reading.orp) == (15.8, 6.8, 249)
    assert reading.timestamp == pytz.UTC.localize(datetime(2025, 11, 5, 7, 30))
    assert store.pool_readings == [reading]


def test_pool_message_without_metrics(pipeline: ExtractionPipeline, store: FakeReadingStore) -> None:
    message = b"Subject: Bonjour\r\nContent-Type: text/plain\r\n\r\nRien a signaler.\r\n"

    with pytest.raises(NoMetricsFound):
        pipeline.process_pool_message(message)

    assert store.pool_readings == []


@pytest.mark.parametrize("filename", ["export.xml", "book.xlsx", "notes.pdf"])
def test_unsupported_formats_yield_nothing(filename: str) -> None:
    attachment = Attachment(filename=filename, content=b"<readings/>")

    assert extract_from_attachment(attachment) == []


def test_dispatch_is_case_insensitive() -> None:
    attachment = Attachment(
        filename="READINGS.JSON",
        content=b'[{"sensor_id": "cave", "timestamp": "2025-11-04T10:00:00Z", "temperature": 12.0}]',
    )

    readings = extract_from_attachment(attachment)

    assert [r.sensor_id for r in readings] == ["cave"]
