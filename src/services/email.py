"""
Email decoding for the email-to-issue pipeline.

This module turns a raw RFC 2822 message into a ParsedEmail: subject,
sender, a markdown body and the decoded image attachments. It never raises
on malformed input; anything it cannot classify degrades to a best-effort
text extraction, and an email without subject or body decodes to SKIP.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from domain.errors import AttachmentDecodeError
from domain.models import SKIP, Attachment, MimePart, ParsedEmail, Skip
from services.encoding import (
    bytes_to_text,
    decode_base64,
    decode_quoted_printable,
    decode_text_payload,
    text_to_bytes,
)
from services.markdown import convert_html_to_markdown
from services.mime import (
    find_boundary,
    find_header,
    media_type,
    normalize_transfer_encoding,
    parse_headers,
    split_header_block,
    walk_parts,
)

logger = logging.getLogger(__name__)

EMAIL_ADDRESS_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')

_CLOSING_MARKER = re.compile(r"^--(?=[^\s]*[0-9A-Za-z])[0-9A-Za-z'()+_,./:=?-]+--$")
_PLACEHOLDER = re.compile(r'\[(?:image|cid):[^\]\n]*\]', re.IGNORECASE)
_DELIMITER_LINE = re.compile(r'^--\S+\s*$')
_STRIPPED_HEADERS = ('Content-Type:', 'Content-Transfer-Encoding:')


class ScanState(Enum):
    """Where the line scanner is while walking an unclassified body."""
    SEARCHING = 'searching'
    IN_PLAIN = 'in-plain'
    IN_HTML = 'in-html'


@dataclass
class TextSection:
    """Lines collected by the line scanner for one text/* section."""
    state: ScanState
    transfer_encoding: str = 'identity'
    lines: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return decode_text_payload('\n'.join(self.lines), self.transfer_encoding)


def extract_email_address(from_header: str) -> str:
    """
    Extract the bare, lowercased email address from a From header.

    Example:
        >>> extract_email_address('Jane Doe <Jane.Doe@Example.com>')
        'jane.doe@example.com'
    """
    match = EMAIL_ADDRESS_PATTERN.search(from_header or '')
    return match.group(0).lower() if match else ''


def normalize_body(text: str) -> str:
    """
    Final cleanup applied to every selected body.

    Removes MIME closing markers, stray Content-Type/Content-Transfer-Encoding
    lines, "[image: ...]"/"[cid: ...]" placeholders and blank lines, then
    trims. Applying it to its own output changes nothing.
    """
    previous = None
    while previous != text:
        previous = text
        text = _PLACEHOLDER.sub('', text)

    kept = []
    for line in text.split('\n'):
        stripped = line.strip()
        if not stripped:
            continue
        if _CLOSING_MARKER.match(stripped):
            continue
        if stripped.startswith(_STRIPPED_HEADERS):
            continue
        kept.append(line)

    return '\n'.join(kept).strip()


def scan_text_sections(body: str) -> List[TextSection]:
    """
    Walk body lines looking for text/plain and text/html sections.

    Used when boundary splitting found no text parts, e.g. a text part nested
    one level deeper than the walker goes or a multipart message whose
    boundary could not be read. A Content-Type line opens a section, the
    first blank line after it starts the content, and a delimiter-shaped
    line ("--something") closes it.
    """
    sections: List[TextSection] = []
    current: Optional[TextSection] = None
    in_content = False

    for line in body.split('\n'):
        lowered = line.strip().lower()

        if lowered.startswith('content-type:'):
            if 'text/plain' in lowered:
                current = TextSection(ScanState.IN_PLAIN)
                sections.append(current)
            elif 'text/html' in lowered:
                current = TextSection(ScanState.IN_HTML)
                sections.append(current)
            else:
                current = None
            in_content = False
            continue

        if lowered.startswith('content-transfer-encoding:'):
            if current is not None and not in_content:
                current.transfer_encoding = normalize_transfer_encoding(line.split(':', 1)[1])
            continue

        if _DELIMITER_LINE.match(line):
            current = None
            in_content = False
            continue

        if current is None:
            continue

        if not in_content:
            if not line.strip():
                in_content = True
            continue

        current.lines.append(line)

    return [section for section in sections if section.lines]


def extract_fallback_body(raw_text: str) -> str:
    """
    Last-resort body recovery for messages that could not be classified.

    Everything after the first blank line is kept, except blank lines and
    lines starting with "Content-" or "--".
    """
    body_started = False
    content_lines = []

    for line in raw_text.split('\n'):
        if not body_started:
            if not line.strip():
                body_started = True
            continue
        if line.startswith('Content-') or line.startswith('--') or not line.strip():
            continue
        content_lines.append(line)

    return '\n'.join(content_lines).strip()


def _collect_text_parts(parts: List[MimePart]) -> Tuple[str, str]:
    plain, html = [], []
    for part in parts:
        if part.content_type.startswith('text/plain'):
            plain.append(decode_text_payload(part.raw_body, part.transfer_encoding))
        elif part.content_type.startswith('text/html'):
            html.append(decode_text_payload(part.raw_body, part.transfer_encoding))
    return '\n'.join(plain).strip(), '\n'.join(html).strip()


def _select_from_sections(sections: List[TextSection]) -> str:
    plain = '\n'.join(s.text for s in sections if s.state is ScanState.IN_PLAIN).strip()
    if plain:
        return plain
    html = '\n'.join(s.text for s in sections if s.state is ScanState.IN_HTML).strip()
    return convert_html_to_markdown(html).strip()


def select_body(
    parts: List[MimePart],
    body_block: str,
    raw_text: str,
    top_content_type: str = '',
    top_transfer_encoding: str = 'identity'
) -> str:
    """
    Choose the best textual representation of the message.

    Priority (first non-empty wins):
    1. text/plain parts, concatenated in encounter order
    2. text/html parts, converted to markdown
    3. for single-part messages, the body block decoded by the top-level
       Content-Type/Content-Transfer-Encoding; otherwise a line scan of the
       body block for text sections
    4. extract_fallback_body() over the raw text

    Args:
        parts: Parts produced by walk_parts() (empty for single-part mail)
        body_block: Text after the top-level header block
        raw_text: Entire message text
        top_content_type: Media type from the top-level header block
        top_transfer_encoding: Normalized top-level transfer encoding

    Returns:
        str: Normalized markdown body (may be empty)
    """
    plain, html = _collect_text_parts(parts)
    if plain:
        logger.debug("Selected text/plain part(s) for body")
        return normalize_body(plain)

    if html:
        logger.debug("Selected text/html part(s) for body")
        return normalize_body(convert_html_to_markdown(html))

    is_multipart = bool(parts) or top_content_type.startswith('multipart/')
    if not is_multipart:
        if top_content_type in ('', 'text/plain'):
            body = decode_text_payload(body_block, top_transfer_encoding).strip()
        elif top_content_type == 'text/html':
            body = convert_html_to_markdown(decode_text_payload(body_block, top_transfer_encoding))
        else:
            # Single non-text part (e.g. a bare image): nothing readable
            logger.debug(f"No readable body for single-part {top_content_type} message")
            return ''
        body = normalize_body(body)
        if body:
            logger.debug(f"Selected single-part {top_content_type or 'text/plain'} body")
            return body
    else:
        body = normalize_body(_select_from_sections(scan_text_sections(body_block)))
        if body:
            logger.debug("Selected body from line scan")
            return body

    logger.debug("Falling back to raw body extraction")
    return normalize_body(extract_fallback_body(raw_text))


def _decode_attachment_payload(part: MimePart) -> bytes:
    if part.transfer_encoding == 'base64':
        return decode_base64(part.raw_body)
    if part.transfer_encoding == 'quoted-printable':
        return decode_quoted_printable(part.raw_body)
    return text_to_bytes(part.raw_body)


def is_attachment_eligible(part: MimePart) -> bool:
    """An image part that is either a named attachment/inline part or has a Content-ID."""
    if not part.is_image:
        return False
    if part.disposition in ('attachment', 'inline') and part.filename:
        return True
    return bool(part.content_id)


def extract_attachments(parts: List[MimePart]) -> List[Attachment]:
    """
    Decode eligible image parts into Attachment records.

    A part whose payload cannot be decoded is logged and skipped; the
    remaining parts are still extracted. Filenames are not sanitized here.

    Args:
        parts: Parts produced by walk_parts()

    Returns:
        List of Attachment in encounter order
    """
    attachments = []
    for part in parts:
        if not is_attachment_eligible(part):
            continue

        filename = part.filename or part.content_id or 'attachment'
        try:
            data = _decode_attachment_payload(part)
        except AttachmentDecodeError as e:
            logger.warning(f"Dropping attachment {filename} ({part.content_type}): {e}")
            continue

        attachments.append(Attachment(
            filename=filename,
            content_type=part.content_type,
            data=data,
            content_id=part.content_id
        ))

    return attachments


def decode_email(
    raw_email: Union[bytes, str],
    default_subject: Optional[str] = None
) -> Union[ParsedEmail, Skip]:
    """
    Decode a raw email into a ParsedEmail.

    Args:
        raw_email: Complete raw message, already fully received
        default_subject: Title used when the Subject header is missing or
            blank (None keeps the subject empty, which yields SKIP)

    Returns:
        ParsedEmail, or SKIP when subject or body is empty after trimming

    Example:
        >>> parsed = decode_email(b"From: a@x.com\\nSubject: Hello\\n\\nHi there")
        >>> parsed.body
        'Hi there'
    """
    text = bytes_to_text(raw_email)
    header_block, body_block = split_header_block(text)

    from_header = find_header(header_block, 'From') or ''
    subject = find_header(header_block, 'Subject') or ''
    if not subject and default_subject:
        subject = default_subject.strip()

    top_headers = parse_headers(header_block)
    top_content_type = media_type(top_headers.get('Content-Type', ''))
    top_transfer_encoding = normalize_transfer_encoding(top_headers.get('Content-Transfer-Encoding'))

    parts: List[MimePart] = []
    boundary = find_boundary(text)
    if boundary:
        parts = walk_parts(body_block or text, boundary)
        if not parts and body_block:
            parts = walk_parts(text, boundary)

    body = select_body(parts, body_block, text, top_content_type, top_transfer_encoding)
    attachments = extract_attachments(parts)

    logger.debug(
        f"Decoded email: parts={len(parts)}, body_length={len(body)}, "
        f"attachments={len(attachments)}"
    )

    if not subject or not body:
        logger.info("Skipping email due to empty subject or body")
        return SKIP

    return ParsedEmail(
        subject=subject,
        from_header=from_header,
        body=body,
        attachments=attachments,
        sender_email=extract_email_address(from_header)
    )
