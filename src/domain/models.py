"""
Data models for email processing domain.

These type-safe data structures define clear contracts between the decoder,
the pipeline and the external collaborators (image host, GitHub, Discord).
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional


class HeaderSet(Mapping):
    """
    Read-only, case-insensitive view of a header block.

    Only the first occurrence of each header name is kept, and values are
    the remainder of that single line (no folding support).
    """

    def __init__(self, pairs=()):
        self._values: Dict[str, str] = {}
        self._names: Dict[str, str] = {}
        for name, value in pairs:
            key = name.lower()
            if key not in self._values:
                self._values[key] = value
                self._names[key] = name

    def __getitem__(self, name: str) -> str:
        return self._values[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._names.values())

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"HeaderSet({dict(zip(self._names.values(), self._values.values()))!r})"


@dataclass
class MimePart:
    """
    One body segment produced by boundary splitting.

    Attributes:
        content_type: Lowercased media type without parameters (may be empty)
        transfer_encoding: "base64", "quoted-printable" or "identity"
        disposition: "attachment", "inline" or None
        filename: Declared filename (Content-Disposition filename or
            Content-Type name parameter)
        content_id: Content-ID with angle brackets stripped
        raw_body: Body text before transfer decoding
    """
    content_type: str = ''
    transfer_encoding: str = 'identity'
    disposition: Optional[str] = None
    filename: Optional[str] = None
    content_id: Optional[str] = None
    raw_body: str = ''

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith('image/')


@dataclass
class Attachment:
    """
    Decoded image attachment with optional hosted URL.

    Attributes:
        filename: Declared filename, Content-ID, or "attachment" (unsanitized)
        content_type: MIME type, always image/*
        data: Decoded binary content
        content_id: Content-ID used to rewrite cid: references in the body
        url: Public URL after upload (None until uploaded)
    """
    filename: str
    content_type: str
    data: bytes
    content_id: Optional[str] = None
    url: Optional[str] = None

    @property
    def size(self) -> int:
        """Size of the decoded content in bytes."""
        return len(self.data)

    @property
    def is_image(self) -> bool:
        """Check if attachment is an image."""
        return self.content_type.lower().startswith('image/')


@dataclass
class ParsedEmail:
    """
    Normalized record produced by the decoder.

    Attributes:
        subject: Subject header value (or caller default)
        from_header: Raw From header value
        body: Markdown body with blank lines and MIME artifacts removed
        attachments: Image attachments in encounter order
        sender_email: Lowercased bare address from the From header, or ""
    """
    subject: str
    from_header: str
    body: str
    attachments: List[Attachment] = field(default_factory=list)
    sender_email: str = ''

    @property
    def images_with_urls(self) -> List[Attachment]:
        """Get attachments that have been uploaded and have URLs."""
        return [a for a in self.attachments if a.url]

    def body_with_urls(self) -> str:
        """
        Return the body with cid:<id> references replaced by hosted URLs.

        Attachments without a URL or a Content-ID leave the body untouched.
        """
        body = self.body
        for attachment in self.images_with_urls:
            if not attachment.content_id:
                continue
            pattern = r'cid:' + re.escape(attachment.content_id) + r'(?![\w.@-])'
            body = re.sub(pattern, lambda _m, url=attachment.url: url, body)
        return body


class Skip:
    """
    Decoder outcome meaning "do not publish".

    Returned when the subject or body is empty after trimming. This is a
    normal result, not an error, and it is falsy so callers can write
    ``if not parsed: ...``.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return 'SKIP'


SKIP = Skip()


@dataclass
class EmailMetadata:
    """
    Structured email metadata extracted from SES notification.

    Attributes:
        message_id: Unique SQS message identifier
        from_address: Email sender address
        to_addresses: List of recipient addresses
        subject: Email subject line
        timestamp: ISO 8601 timestamp when email was received
        bucket_name: S3 bucket containing the raw email
        object_key: S3 object key for the raw email
    """
    message_id: str
    from_address: str
    to_addresses: List[str]
    subject: str
    timestamp: str
    bucket_name: str
    object_key: str


@dataclass
class ProcessingResult:
    """
    Result of email processing operation.

    Attributes:
        success: Whether processing succeeded (a skipped email is a success)
        message_id: SQS message identifier
        metadata: Email metadata (if parsing succeeded)
        skipped: True when the decoder signalled "do not publish"
        destination_url: URL of the created issue or posted message
        error_message: Error description (if processing failed)
    """
    success: bool
    message_id: str
    metadata: Optional[EmailMetadata] = None
    skipped: bool = False
    destination_url: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def should_delete_message(self) -> bool:
        """Always True - delete all messages to prevent infinite retries."""
        return True

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if not self.success:
            return f"ProcessingResult(success=False, message_id={self.message_id}, error={self.error_message})"
        if self.skipped:
            return f"ProcessingResult(success=True, skipped=True, message_id={self.message_id})"
        return f"ProcessingResult(success=True, message_id={self.message_id})"
