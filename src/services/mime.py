"""
Header block splitting and MIME part walking.

Headers are matched one line at a time: the first occurrence of a header
wins and its value is the remainder of that line. Folded continuation
lines are not joined (the multipart boundary lookup is the one place that
peeks at them, since mailers routinely fold it onto its own line).
"""

import logging
import re
from typing import List, Optional, Tuple

from domain.models import HeaderSet, MimePart

logger = logging.getLogger(__name__)

_HEADER_LINE = re.compile(r'^([!-9;-~]+):[ \t]*(.*)$')
_MULTIPART_HEADER = re.compile(
    r'^Content-Type:[ \t]*multipart/[^\n]*(?:\n[ \t]+[^\n]*)*',
    re.IGNORECASE | re.MULTILINE
)
_BOUNDARY_PARAM = re.compile(r'\bboundary\s*=\s*(?:"([^"\n]+)"|([^\s;"]+))', re.IGNORECASE)
_FILENAME_PARAM = re.compile(r'(?<![\w-])filename\*?\s*=\s*(?:"([^"]*)"|([^\s;]+))', re.IGNORECASE)
_NAME_PARAM = re.compile(r'(?<![\w-])name\*?\s*=\s*(?:"([^"]*)"|([^\s;]+))', re.IGNORECASE)

_IDENTITY_ENCODINGS = ('', '7bit', '8bit', 'binary', 'identity')


def split_header_block(text: str) -> Tuple[str, str]:
    """
    Split text into header block and body block on the first blank line.

    Args:
        text: Message (or part) text with "\\n" line endings

    Returns:
        (header_block, body_block). When no blank line exists the whole text
        is the header block and the body block is empty.
    """
    lines = text.split('\n')
    for index, line in enumerate(lines):
        if not line.strip():
            return '\n'.join(lines[:index]), '\n'.join(lines[index + 1:])
    return text, ''


def find_header(header_block: str, name: str) -> Optional[str]:
    """
    Return the trimmed value of the first "<name>:" line, or None.

    The header name is matched literally and case-sensitively at the start
    of a line, the way the From and Subject lines are located.
    """
    pattern = r'^' + re.escape(name) + r':[ \t]*(.*)$'
    match = re.search(pattern, header_block, re.MULTILINE)
    return match.group(1).strip() if match else None


def parse_headers(header_block: str) -> HeaderSet:
    """Build a case-insensitive HeaderSet from single-line headers."""
    pairs = []
    for line in header_block.split('\n'):
        match = _HEADER_LINE.match(line)
        if match:
            pairs.append((match.group(1), match.group(2).strip()))
    return HeaderSet(pairs)


def find_boundary(text: str) -> Optional[str]:
    """
    Locate the boundary declared by the first multipart Content-Type header.

    Example:
        >>> find_boundary('Content-Type: multipart/mixed; boundary="b1"')
        'b1'
    """
    for header in _MULTIPART_HEADER.finditer(text):
        match = _BOUNDARY_PARAM.search(header.group(0))
        if match:
            return match.group(1) or match.group(2)
    return None


def media_type(content_type: str) -> str:
    """Lowercased media type without parameters ("text/plain; x=y" -> "text/plain")."""
    return content_type.split(';', 1)[0].strip().lower()


def normalize_transfer_encoding(value: Optional[str]) -> str:
    """Map a Content-Transfer-Encoding value onto base64/quoted-printable/identity."""
    encoding = (value or '').strip().lower()
    if encoding in _IDENTITY_ENCODINGS:
        return 'identity'
    return encoding


def _param(pattern, value: str) -> Optional[str]:
    match = pattern.search(value)
    if not match:
        return None
    found = match.group(1) if match.group(1) is not None else match.group(2)
    return found.strip() or None


def build_part(header_block: str, body: str) -> MimePart:
    """Classify one part from its header block."""
    headers = parse_headers(header_block)
    content_type = headers.get('Content-Type', '')
    disposition_header = headers.get('Content-Disposition', '')

    disposition = media_type(disposition_header) or None
    if disposition not in ('attachment', 'inline'):
        disposition = None

    filename = _param(_FILENAME_PARAM, disposition_header) or _param(_NAME_PARAM, content_type)

    content_id = headers.get('Content-ID', '').strip().strip('<>').strip() or None

    return MimePart(
        content_type=media_type(content_type),
        transfer_encoding=normalize_transfer_encoding(headers.get('Content-Transfer-Encoding')),
        disposition=disposition,
        filename=filename,
        content_id=content_id,
        raw_body=body,
    )


def walk_parts(body: str, boundary: str) -> List[MimePart]:
    """
    Split a multipart body into classified parts.

    The boundary is matched literally at the start of a line, so boundaries
    containing regex metacharacters ("=_Part.0+1?") are safe. The preamble before the first
    delimiter and the epilogue after the closing delimiter are ignored, and
    parts whose body is empty after trimming are discarded. Nested
    multipart parts are returned as-is without being walked.

    Args:
        body: Text containing the delimited parts
        boundary: Boundary string without the leading "--"

    Returns:
        List of MimePart in encounter order
    """
    delimiter = re.compile(
        r'^' + re.escape('--' + boundary) + r'(?=--|[ \t]*$)',
        re.MULTILINE
    )
    segments = delimiter.split(body)
    parts: List[MimePart] = []

    for segment in segments[1:]:
        if segment.startswith('--'):
            # Closing delimiter, everything after it is epilogue
            break

        # Drop the remainder of the delimiter line (transport padding)
        _, _, segment = segment.partition('\n')

        header_block, part_body = split_header_block(segment)
        if not part_body.strip():
            continue
        if part_body.endswith('\n'):
            part_body = part_body[:-1]

        parts.append(build_part(header_block, part_body))

    logger.debug(f"Walked {len(parts)} MIME part(s) for boundary {boundary!r}")
    return parts
