"""
Helpers built on the standard library email parser.

Used as the last-resort attachment parser, and to read the body text, date
and subject of report emails that carry their data inline.
"""

import email
import logging
import re
from datetime import datetime
from email.header import decode_header
from email.message import Message
from email.utils import parsedate_to_datetime
from typing import List, Optional, Tuple

import pytz

logger = logging.getLogger(__name__)

_HTML_TAG_RE = re.compile(r'<[^>]+>')
_HTML_LINE_BREAKS = ('<br>', '<BR>', '</p>', '</P>')


def parse_mime_attachments(raw_message: bytes) -> List[Tuple[Optional[str], bytes]]:
    """
    Return ``(filename, content)`` for every attachment part of a message.

    Parts declared as attachments without a filename are reported with
    ``None`` as the filename; naming them is left to the caller.
    """
    email_message = email.message_from_bytes(raw_message)
    attachments = []

    for part in email_message.walk():
        if part.is_multipart():
            continue

        filename = part.get_filename()
        if part.get_content_disposition() != 'attachment' and not filename:
            continue

        content = part.get_payload(decode=True) or b''
        attachments.append((decode_header_value(filename) if filename else None, content))

    logger.debug(f"MIME parser found {len(attachments)} attachment part(s)")
    return attachments


def decode_header_value(header: str) -> str:
    """Decode an RFC 2047 encoded header value."""
    if not header:
        return ""

    decoded_string = ""

    for part, encoding in decode_header(header):
        if isinstance(part, bytes):
            if encoding:
                try:
                    decoded_string += part.decode(encoding)
                except (UnicodeDecodeError, LookupError):
                    decoded_string += part.decode('utf-8', errors='ignore')
            else:
                decoded_string += part.decode('utf-8', errors='ignore')
        else:
            decoded_string += part

    return decoded_string


def _part_text(part: Message) -> str:
    payload = part.get_payload(decode=True) or b''
    charset = part.get_content_charset() or 'utf-8'
    try:
        return payload.decode(charset, errors='replace')
    except LookupError:
        return payload.decode('utf-8', errors='replace')


def _strip_html(html: str) -> str:
    for tag in _HTML_LINE_BREAKS:
        html = html.replace(tag, '\n')
    return _HTML_TAG_RE.sub('', html)


def _first_body_part(email_message: Message, content_type: str) -> Optional[Message]:
    for part in email_message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == 'attachment':
            continue
        if part.get_content_type() == content_type:
            return part
    return None


def extract_body_text(raw_message: bytes) -> str:
    """Return the readable body text of a message, preferring text/plain."""
    email_message = email.message_from_bytes(raw_message)

    text_part = _first_body_part(email_message, 'text/plain')
    if text_part is not None:
        text_content = _part_text(text_part)
        if text_content:
            return text_content

    html_part = _first_body_part(email_message, 'text/html')
    if html_part is not None:
        text_content = _strip_html(_part_text(html_part))
        if text_content:
            return text_content

    logger.debug("No text body found, using raw message content")
    return raw_message.decode('utf-8', errors='replace')


def extract_message_date(raw_message: bytes) -> datetime:
    """Parse the Date header to UTC, falling back to the current time."""
    email_message = email.message_from_bytes(raw_message)
    date_string = email_message.get('Date', '')

    if date_string:
        try:
            dt = parsedate_to_datetime(date_string)
            if dt.tzinfo is None:
                return pytz.UTC.localize(dt)
            return dt.astimezone(pytz.UTC)
        except (TypeError, ValueError):
            logger.warning(f"Could not parse email date: {date_string}")

    return datetime.now(pytz.UTC)


def extract_subject(raw_message: bytes) -> str:
    email_message = email.message_from_bytes(raw_message)
    return decode_header_value(email_message.get('Subject', ''))
