"""
Content-transfer-encoding detection and decoding for attachment blocks.

Detection is heuristic and ordered: base64, then quoted-printable, then
plain text. The thresholds below are kept as-is for compatibility with
the legacy detector.
"""

import base64
import binascii
import logging
import string

from homemetrics.ingestion.errors import DecodeFailure

logger = logging.getLogger(__name__)

BASE64_MIN_LENGTH = 10
BASE64_RATIO_THRESHOLD = 0.8
QUOTED_PRINTABLE_MIN_EQUALS = 2

BASE64_ALPHABET = frozenset(string.ascii_letters + string.digits + '+/=')
_BASE64_DATA_CHARS = frozenset(string.ascii_letters + string.digits + '+/')
_HEX_DIGITS = frozenset(string.hexdigits)


def is_base64_content(content: str) -> bool:
    """Check whether a block looks like base64 text."""
    clean_content = ''.join(ch for ch in content if not ch.isspace())

    if not clean_content or len(clean_content) <= BASE64_MIN_LENGTH:
        return False

    if not all(ch in BASE64_ALPHABET for ch in clean_content):
        return False

    data_chars = sum(1 for ch in clean_content if ch in _BASE64_DATA_CHARS)
    ratio = data_chars / len(clean_content)

    return ratio > BASE64_RATIO_THRESHOLD


def is_quoted_printable_content(content: str) -> bool:
    """Check whether a block looks like quoted-printable text."""
    return content.count('=') > QUOTED_PRINTABLE_MIN_EQUALS


def decode_base64(content: str) -> bytes:
    """Decode base64 with whitespace removed, retrying once on the raw text."""
    stripped = ''.join(content.split())
    try:
        return base64.b64decode(stripped, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("Base64 decoding failed, trying without whitespace removal")

    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeFailure(f"Invalid base64 content: {e}") from e


def decode_quoted_printable(content: str) -> bytes:
    """
    Decode quoted-printable text.

    Valid ``=XX`` escapes become the encoded byte. A malformed escape is
    emitted as-is: the ``=`` and the two characters that followed it. A
    trailing ``=`` with fewer than two characters after it is kept and the
    leftover character dropped. Carriage returns are dropped, and a line
    feed is kept unless it would be the first output byte.
    """
    result = bytearray()
    length = len(content)
    i = 0

    while i < length:
        ch = content[i]
        i += 1

        if ch == '=':
            if i + 1 < length:
                h1, h2 = content[i], content[i + 1]
                i += 2
                if h1 in _HEX_DIGITS and h2 in _HEX_DIGITS:
                    result.append(int(h1 + h2, 16))
                else:
                    result.extend(('=' + h1 + h2).encode('utf-8'))
            else:
                i = length
                result.append(ord('='))
        elif ch == '\r':
            continue
        elif ch != '\n' or result:
            result.extend(ch.encode('utf-8'))

    return bytes(result)


def decode(content_block: str) -> bytes:
    """
    Decode an attachment content block.

    Never fails: when no encoding applies, or decoding the detected encoding
    fails, the trimmed block is returned as UTF-8 bytes.
    """
    content = content_block.strip()

    logger.debug(f"Attempting to decode content of {len(content)} chars")

    try:
        if is_base64_content(content):
            logger.debug("Detected base64 encoding")
            decoded = decode_base64(content)
            logger.debug(f"Decoded {len(decoded)} bytes from base64")
            return decoded

        if is_quoted_printable_content(content):
            logger.debug("Detected quoted-printable encoding")
            decoded = decode_quoted_printable(content)
            logger.debug(f"Decoded {len(decoded)} bytes from quoted-printable")
            return decoded

        logger.debug("Content appears to be plain text")

    except DecodeFailure as e:
        logger.debug(f"Falling back to raw content: {e}")

    return content.encode('utf-8')
