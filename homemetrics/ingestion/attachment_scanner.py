"""
Attachment scanner for raw RFC-822 messages.

Attachments are located by scanning the message text for header markers
rather than by walking a full MIME tree. When the header scan finds nothing,
a direct ``filename=`` search is tried, then the standard library parser.
"""

import logging
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Iterable, List, Mapping, Optional, Tuple

import pytz

from homemetrics.ingestion import content_decoder
from homemetrics.ingestion.email_content import parse_mime_attachments
from homemetrics.ingestion.errors import (
    AttachmentParseError,
    FilenameNotFound,
    HeaderNotFound,
)
from homemetrics.ingestion.models import Attachment

logger = logging.getLogger(__name__)

ATTACHMENT_HEADER = 'Content-Disposition: attachment'
FILENAME_TOKEN = 'filename='
HEADER_END = '\r\n\r\n'
BOUNDARY_MARKER = '--'
LINE_BOUNDARY_MARKER = '\r\n--'

# Parts this small from the MIME parser are treated as parsing artifacts.
MIN_PARSED_CONTENT_LENGTH = 10

DEFAULT_CONTENT_TYPE = 'application/octet-stream'

CONTENT_TYPES: Mapping[str, str] = MappingProxyType({
    '.csv': 'text/csv',
    '.json': 'application/json',
    '.xml': 'application/xml',
    '.txt': 'text/plain',
    '.xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    '.xls': 'application/vnd.ms-excel',
})

DATA_FILE_EXTENSIONS: Tuple[str, ...] = tuple(CONTENT_TYPES)

MimeParser = Callable[[bytes], Iterable[Tuple[Optional[str], bytes]]]


def guess_content_type(filename: str, content_types: Mapping[str, str] = CONTENT_TYPES) -> str:
    """Guess a MIME type from the filename extension."""
    lowercase_name = filename.lower()
    for extension, content_type in content_types.items():
        if lowercase_name.endswith(extension):
            return content_type
    return DEFAULT_CONTENT_TYPE


def is_data_file(filename: str, extensions: Tuple[str, ...] = DATA_FILE_EXTENSIONS) -> bool:
    return filename.lower().endswith(extensions)


def _clean_filename(value: str) -> Optional[str]:
    filename = value.strip('"').strip()
    return filename or None


def extract_filename_from_headers(headers: str) -> str:
    """
    Extract the ``filename=`` value from a header block.

    The value runs up to the first CR, LF or ``;``.
    """
    start = headers.find(FILENAME_TOKEN)
    if start == -1:
        raise FilenameNotFound("No filename= token in header block")

    filename_part = headers[start + len(FILENAME_TOKEN):]
    end = min((pos for pos in (filename_part.find(c) for c in '\r\n;') if pos != -1), default=-1)
    if end == -1:
        raise FilenameNotFound("Unterminated filename value")

    filename = _clean_filename(filename_part[:end])
    if filename is None:
        raise FilenameNotFound("Empty filename value")
    return filename


def extract_filename_from_line(line: str) -> str:
    """Extract a filename from text starting at a ``filename=`` token."""
    start = line.find(FILENAME_TOKEN)
    if start == -1:
        raise FilenameNotFound("No filename= token in line")

    filename_part = line[start + len(FILENAME_TOKEN):]
    end = min((pos for pos in (filename_part.find(c) for c in '\r\n; ') if pos != -1), default=-1)
    if end != -1:
        filename_part = filename_part[:end]

    filename = _clean_filename(filename_part)
    if filename is None:
        raise FilenameNotFound("Empty filename value")
    return filename


def _header_block(message_text: str, start: int) -> str:
    end = message_text.find(HEADER_END, start)
    if end == -1:
        return message_text[start:]
    return message_text[start:end + len(HEADER_END)]


def _find_next_header(message_text: str, cursor: int) -> int:
    position = message_text.find(ATTACHMENT_HEADER, cursor)
    if position == -1:
        raise HeaderNotFound(f"No attachment header after position {cursor}")
    return position


def _build_attachment(filename: str, content_block: str) -> Attachment:
    content = content_decoder.decode(content_block)
    content_type = guess_content_type(filename)

    logger.debug(f"Attachment found: {filename} ({content_type}), size: {len(content)} bytes")
    return Attachment(filename=filename, content=content, content_type=content_type)


def scan_attachment_headers(message_text: str) -> List[Attachment]:
    """Find attachments introduced by ``Content-Disposition: attachment`` headers."""
    attachments = []
    cursor = 0

    while True:
        try:
            header_start = _find_next_header(message_text, cursor)
        except HeaderNotFound:
            break

        # Advance by one so overlapping headers are still visited.
        cursor = header_start + 1
        logger.debug(f"Found {ATTACHMENT_HEADER} at position {header_start}")

        try:
            filename = extract_filename_from_headers(_header_block(message_text, header_start))
        except FilenameNotFound as e:
            logger.debug(f"Skipping attachment header at {header_start}: {e}")
            continue

        if not is_data_file(filename):
            logger.debug(f"Ignoring non-data attachment: {filename}")
            continue

        content_start = message_text.find(HEADER_END, header_start)
        if content_start == -1:
            logger.debug(f"No content found for attachment {filename}")
            continue
        content_start += len(HEADER_END)

        content_end = message_text.find(BOUNDARY_MARKER, content_start)
        if content_end == -1:
            content_end = len(message_text)

        attachments.append(_build_attachment(filename, message_text[content_start:content_end]))

    return attachments


def scan_filename_tokens(message_text: str) -> List[Attachment]:
    """Find attachments from any ``filename=`` token in the message."""
    logger.debug("Trying direct filename search")

    attachments = []
    cursor = 0

    while True:
        token_start = message_text.find(FILENAME_TOKEN, cursor)
        if token_start == -1:
            break
        cursor = token_start + 1

        try:
            filename = extract_filename_from_line(message_text[token_start:token_start + 200])
        except FilenameNotFound:
            continue

        logger.debug(f"Found filename via direct search: {filename}")

        if not is_data_file(filename):
            continue

        content_start = message_text.find(HEADER_END, token_start)
        if content_start == -1:
            continue
        content_start += len(HEADER_END)

        content_end = message_text.find(LINE_BOUNDARY_MARKER, content_start)
        if content_end == -1:
            content_end = len(message_text)

        attachments.append(_build_attachment(filename, message_text[content_start:content_end]))

    return attachments


def scan_with_mime_parser(raw_message: bytes, mime_parser: MimeParser = parse_mime_attachments) -> List[Attachment]:
    """Delegate to a full MIME parser, dropping tiny parts."""
    logger.debug("Trying MIME parser fallback")

    attachments = []
    unnamed_parts = []

    for index, (filename, content) in enumerate(mime_parser(raw_message)):
        if len(content) <= MIN_PARSED_CONTENT_LENGTH:
            logger.debug(f"Content too small for attachment {index}, skipping")
            continue

        if not filename:
            logger.warning(f"MIME parser returned attachment {index} without a filename")
            unnamed_parts.append(index)
            continue

        attachments.append(Attachment(
            filename=filename,
            content=content,
            content_type=guess_content_type(filename),
        ))

    if unnamed_parts:
        raise AttachmentParseError(
            f"MIME parser returned {len(unnamed_parts)} attachment(s) without a filename",
            part_indexes=unnamed_parts,
            attachments=attachments,
        )

    return attachments


def scan(raw_message: bytes, mime_parser: MimeParser = parse_mime_attachments) -> List[Attachment]:
    """
    Extract data-file attachments from a raw message.

    Strategies are tried in order until one returns attachments: header
    scan, direct filename search, then the MIME parser.
    """
    message_text = raw_message.decode('utf-8', errors='replace')
    logger.debug(f"Email size: {len(message_text)} chars")

    strategies = (
        lambda: scan_attachment_headers(message_text),
        lambda: scan_filename_tokens(message_text),
        lambda: scan_with_mime_parser(raw_message, mime_parser),
    )

    attachments: List[Attachment] = []
    for strategy in strategies:
        attachments = strategy()
        if attachments:
            break
        logger.debug("No attachments found, trying next strategy")

    logger.info(f"Found {len(attachments)} attachment(s)")
    return attachments


def save_attachment(
    attachment: Attachment,
    data_dir: str,
    email_date: Optional[datetime] = None
) -> Path:
    """Write an attachment under data_dir, prefixed with the message date."""
    data_path = Path(data_dir)
    data_path.mkdir(parents=True, exist_ok=True)

    date_to_use = email_date or datetime.now(pytz.UTC)
    file_path = data_path / f"{date_to_use.strftime('%Y%m%d_%H%M%S')}_{Path(attachment.filename).name}"

    file_path.write_bytes(attachment.content)
    logger.info(f"Attachment saved: {file_path}")

    return file_path
