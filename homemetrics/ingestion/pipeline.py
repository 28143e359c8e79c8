"""
Message-level pipeline: raw email bytes in, typed readings out.

Sensor export emails carry their data as attachments; pool report emails
carry it in the body text. Transport and persistence are supplied by the
caller.
"""

import os
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from dotenv import load_dotenv

from homemetrics.ingestion import attachment_scanner, email_content
from homemetrics.ingestion.csv_processor import CSVProcessor, extract_sensor_name
from homemetrics.ingestion.errors import AttachmentParseError, IngestionError
from homemetrics.ingestion.freeform_extractor import (
    extract_from_json,
    extract_from_text,
    extract_pool_metrics,
)
from homemetrics.ingestion.models import Attachment, PoolReading, TemperatureReading
from homemetrics.monitoring.logger_config import IngestionLogger, OperationLogger

load_dotenv()

logger = logging.getLogger(__name__)


class ReadingStore(Protocol):
    """Persistence collaborator; deduplication by natural key is its job."""

    def save_readings(self, readings: List[TemperatureReading]) -> int:
        ...

    def save_pool_reading(self, reading: PoolReading) -> int:
        ...


@dataclass
class ProcessingResult:
    """Counters for one processed message."""

    attachments_found: int = 0
    attachments_processed: int = 0
    attachments_failed: int = 0
    readings_extracted: int = 0
    readings_saved: int = 0
    readings: List[TemperatureReading] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _extract_unsupported(attachment: Attachment) -> List[TemperatureReading]:
    logger.warning(f"Unsupported file format: {attachment.filename}")
    return []


def _extract_xml(attachment: Attachment) -> List[TemperatureReading]:
    # TODO: map the X-Sense XML export once a sample file is available
    logger.warning(f"XML extraction not yet implemented: {attachment.filename}")
    return []


EXTRACTORS: Dict[str, Callable[[Attachment], List[TemperatureReading]]] = {
    '.csv': lambda attachment: CSVProcessor().extract(attachment),
    '.json': lambda attachment: extract_from_json(attachment.content, attachment.filename),
    '.txt': lambda attachment: extract_from_text(attachment.content, attachment.filename),
    '.xml': _extract_xml,
}


def extract_from_attachment(attachment: Attachment) -> List[TemperatureReading]:
    """Extract temperature readings, choosing the extractor by file extension."""
    logger.info(f"Extracting temperature data from: {attachment.filename}")
    logger.debug(f"Sensor name from filename: {extract_sensor_name(attachment.filename)}")

    _, extension = os.path.splitext(attachment.filename.lower())
    extractor = EXTRACTORS.get(extension, _extract_unsupported)

    return extractor(attachment)


class ExtractionPipeline:
    """Orchestrates scanning, extraction and hand-off to the reading store."""

    def __init__(
        self,
        reading_store: Optional[ReadingStore] = None,
        data_dir: Optional[str] = None,
        save_attachments: Optional[bool] = None
    ):
        IngestionLogger.setup_logging()

        self.reading_store = reading_store
        self.data_dir = data_dir or os.getenv('DATA_DIR', './data')
        if save_attachments is None:
            save_attachments = os.getenv('SAVE_ATTACHMENTS', 'false').lower() == 'true'
        self.save_attachments = save_attachments

        logger.info("Extraction pipeline initialized")

    def process_sensor_message(self, raw_message: bytes) -> ProcessingResult:
        """Extract and store temperature readings from every attachment of a message."""
        correlation_id = str(uuid.uuid4())
        result = ProcessingResult()

        with OperationLogger("process_sensor_message", correlation_id) as op_logger:
            try:
                attachments = attachment_scanner.scan(raw_message)
            except AttachmentParseError as e:
                op_logger.error("Unnamed attachment parts", error=str(e), part_indexes=e.part_indexes)
                result.attachments_failed += len(e.part_indexes)
                result.errors.append(str(e))
                attachments = e.attachments

            result.attachments_found = len(attachments) + result.attachments_failed

            if not attachments:
                op_logger.warning("No attachments found in message")
                return result

            email_date = email_content.extract_message_date(raw_message) if self.save_attachments else None

            for attachment in attachments:
                attachment_logger = op_logger.bind(filename=attachment.filename)

                if self.save_attachments:
                    try:
                        attachment_scanner.save_attachment(attachment, self.data_dir, email_date)
                    except OSError as e:
                        attachment_logger.error("Failed to save attachment", data_dir=self.data_dir, error=str(e))

                try:
                    readings = extract_from_attachment(attachment)
                except IngestionError as e:
                    result.attachments_failed += 1
                    result.errors.append(f"{attachment.filename}: {e}")
                    attachment_logger.exception("Failed to extract attachment", error=str(e))
                    continue

                result.attachments_processed += 1
                result.readings_extracted += len(readings)
                result.readings.extend(readings)

                if readings and self.reading_store is not None:
                    saved = self.reading_store.save_readings(readings)
                    result.readings_saved += saved
                    attachment_logger.info("Readings saved", extracted=len(readings), saved=saved)

            op_logger.info(
                "Sensor message processed",
                attachments=result.attachments_found,
                failed=result.attachments_failed,
                readings=result.readings_extracted
            )

        return result

    def process_pool_message(self, raw_message: bytes) -> PoolReading:
        """Extract and store a pool reading from the body of a report message."""
        correlation_id = str(uuid.uuid4())

        with OperationLogger("process_pool_message", correlation_id) as op_logger:
            text_content = email_content.extract_body_text(raw_message)
            email_date = email_content.extract_message_date(raw_message)

            reading = extract_pool_metrics(text_content, email_date)

            if self.reading_store is not None:
                self.reading_store.save_pool_reading(reading)

            op_logger.info(
                "Pool message processed",
                temperature=reading.temperature,
                ph=reading.ph,
                orp=reading.orp
            )

        return reading
