"""
Error taxonomy for the extraction pipeline.

Scanning-phase misses (DecodeFailure, HeaderNotFound, FilenameNotFound) are
absorbed where they happen. Parsing-phase errors propagate to the caller with
enough context to log and skip the offending attachment.
"""

from typing import List, Optional

from homemetrics.ingestion.models import Attachment


class IngestionError(Exception):
    """Base class for all extraction errors."""


class DecodeFailure(IngestionError):
    """A content block could not be decoded with the detected encoding."""


class HeaderNotFound(IngestionError):
    """No attachment header was found from the current scan position."""


class FilenameNotFound(IngestionError):
    """An attachment header did not carry a parseable filename."""


class AttachmentParseError(IngestionError):
    """
    The MIME parser fallback produced attachment parts it could not name.

    ``attachments`` holds the named parts recovered from the same message.
    """

    def __init__(
        self,
        message: str,
        part_indexes: Optional[List[int]] = None,
        attachments: Optional[List[Attachment]] = None
    ):
        super().__init__(message)
        self.part_indexes = part_indexes or []
        self.attachments = attachments or []


class FormatError(IngestionError):
    """Attachment content does not have the expected overall shape."""

    def __init__(self, message: str, filename: Optional[str] = None):
        if filename:
            message = f"{filename}: {message}"
        super().__init__(message)
        self.filename = filename


class RowError(IngestionError):
    """A single value in a tabular attachment could not be parsed."""

    def __init__(self, line_number: int, field_name: str, value: str, reason: str = ""):
        message = f"Unable to parse {field_name} '{value}' on line {line_number}"
        if reason:
            message = f"{message} - {reason}"
        super().__init__(message)
        self.line_number = line_number
        self.field_name = field_name
        self.value = value


class NoMetricsFound(IngestionError):
    """Freeform extraction did not find any metric in the text."""


class TimestampParseError(IngestionError, ValueError):
    """A timestamp string matched none of the supported formats."""

    def __init__(self, value: str):
        super().__init__(f"Unsupported timestamp format: {value}")
        self.value = value
