"""
Byte and entity decoding primitives used by the email decoder.

Every function here is pure: text or bytes in, text or bytes out, no
shared state.
"""

import base64
import binascii
import logging
import re
from typing import Union

from domain.errors import AttachmentDecodeError

logger = logging.getLogger(__name__)

_QP_SOFT_BREAK = re.compile(r'=[ \t]*\n')
_QP_ESCAPE = re.compile(rb'=([0-9A-Fa-f]{2})')
_WHITESPACE = re.compile(r'\s+')

# &amp; is last so "&amp;lt;" decodes to "&lt;" and not "<"
_HTML_ENTITIES = (
    ('&nbsp;', ' '),
    ('&lt;', '<'),
    ('&gt;', '>'),
    ('&quot;', '"'),
    ('&#x27;', "'"),
    ('&amp;', '&'),
)


def bytes_to_text(raw: Union[bytes, str]) -> str:
    """
    Turn a fully received message into one UTF-8 text buffer.

    Invalid UTF-8 sequences are replaced rather than rejected, and CRLF/CR
    line endings are normalized to LF.

    Args:
        raw: Raw email bytes (str is accepted and passed through)

    Returns:
        str: Decoded text with "\\n" line endings
    """
    if isinstance(raw, bytes):
        text = raw.decode('utf-8', errors='replace')
    else:
        text = raw
    return text.replace('\r\n', '\n').replace('\r', '\n')


def text_to_bytes(text: str) -> bytes:
    """
    Literal byte-per-character encoding.

    Characters up to U+00FF map to the byte of the same value; anything
    above that is UTF-8 encoded, since it can only have come from a UTF-8
    decoded message.
    """
    try:
        return text.encode('latin-1')
    except UnicodeEncodeError:
        return b''.join(
            ch.encode('latin-1') if ord(ch) < 256 else ch.encode('utf-8')
            for ch in text
        )


def decode_quoted_printable(text: str) -> bytes:
    """
    Decode a quoted-printable payload.

    Soft line breaks are removed and every "=XX" hex escape becomes the
    byte it names. Everything else is written back as the UTF-8 bytes it
    was decoded from, including malformed escapes such as "=ZZ".

    Example:
        >>> decode_quoted_printable('caf=C3=A9')
        b'caf\\xc3\\xa9'
    """
    text = _QP_SOFT_BREAK.sub('', text)
    return _QP_ESCAPE.sub(lambda m: bytes([int(m.group(1), 16)]), text.encode('utf-8'))


def decode_base64(text: str) -> bytes:
    """
    Decode a base64 payload after stripping all whitespace.

    Raises:
        AttachmentDecodeError: If the payload has characters outside the
            base64 alphabet or broken padding
    """
    cleaned = _WHITESPACE.sub('', text)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AttachmentDecodeError(f"Invalid base64 payload: {e}") from e


def decode_html_entities(text: str) -> str:
    """Replace the handful of HTML entities mail clients actually emit."""
    for entity, literal in _HTML_ENTITIES:
        text = text.replace(entity, literal)
    return text


def decode_text_payload(body: str, transfer_encoding: str) -> str:
    """
    Decode a text part body according to its Content-Transfer-Encoding.

    Text parts never fail: an undecodable base64 body is returned as-is so
    the body selector still has something to work with.
    """
    if transfer_encoding == 'quoted-printable':
        return bytes_to_text(decode_quoted_printable(body))
    if transfer_encoding == 'base64':
        try:
            return bytes_to_text(decode_base64(body))
        except AttachmentDecodeError as e:
            logger.debug(f"Keeping undecodable base64 text part as-is: {e}")
            return body
    return body
