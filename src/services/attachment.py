"""
Image hosting for decoded email attachments.

Images are uploaded to S3 and served through CloudFront so that GitHub
issues and Discord messages can reference them by URL.
"""

import os
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from domain.models import Attachment

logger = logging.getLogger(__name__)

# Configure S3 client with timeouts
s3_config = Config(
    retries={
        'max_attempts': 1,
        'mode': 'standard'
    },
    connect_timeout=10,
    read_timeout=60
)

# Module-level client (reused across invocations)
s3_client = boto3.client('s3', config=s3_config)

# Configuration from environment
ATTACHMENTS_BUCKET = os.environ.get('ATTACHMENTS_S3_BUCKET', '')
CLOUDFRONT_DOMAIN = os.environ.get('ATTACHMENTS_CLOUDFRONT_DOMAIN', '')
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'dev')

# File size limits (default: 20 MB)
DEFAULT_MAX_FILE_SIZE_MB = 20
MAX_FILE_SIZE_BYTES = int(os.environ.get('ATTACHMENT_MAX_SIZE_MB', DEFAULT_MAX_FILE_SIZE_MB)) * 1024 * 1024

# Concurrent uploads per email
UPLOAD_WORKERS = max(1, int(os.environ.get('ATTACHMENT_UPLOAD_WORKERS', '4')))


def is_configured() -> bool:
    """
    Check if attachment upload is configured.

    Returns:
        True if both bucket and CloudFront domain are set
    """
    return bool(ATTACHMENTS_BUCKET and CLOUDFRONT_DOMAIN)


def is_image_content_type(content_type: str) -> bool:
    """
    Check if content type is an image.

    Args:
        content_type: MIME type string

    Returns:
        True if content type starts with 'image/'
    """
    return content_type.lower().startswith('image/')


def sanitize_filename(value: str) -> str:
    """
    Reduce a filename or message ID to characters safe in S3 keys and URLs.

    Angle brackets around Message-IDs are removed, anything outside
    letters, digits, ".", "_", "-" and "@" becomes "_", and an empty
    result falls back to "attachment".

    Args:
        value: String to sanitize

    Returns:
        Sanitized string safe for S3 keys
    """
    # Remove angle brackets common in Message-IDs: <abc@example.com>
    result = value.strip().strip('<>')

    # Remove control characters outright
    result = re.sub(r'[\x00-\x1f\x7f]', '', result)

    # Replace everything else that is not URL-safe
    result = re.sub(r'[^A-Za-z0-9._@-]', '_', result)

    # No leading dots (hidden files, "..")
    result = result.lstrip('.')

    return result or 'attachment'


def upload_attachment(
    filename: str,
    content: bytes,
    content_type: str,
    message_id: str
) -> Optional[str]:
    """
    Upload an image to S3 and return its public CloudFront URL.

    Args:
        filename: Original filename (sanitized here before use)
        content: Binary content
        content_type: MIME type (must be image/*)
        message_id: Email message ID (for unique path)

    Returns:
        Public URL via CloudFront, or None if upload fails/skipped

    Note:
        - Non-image content and files exceeding MAX_FILE_SIZE_BYTES are skipped
        - Upload failures are logged but don't raise exceptions
    """
    if not is_configured():
        logger.warning("Attachment upload not configured (missing env vars)")
        return None

    if not is_image_content_type(content_type):
        logger.warning(f"Refusing to host non-image attachment: {filename} ({content_type})")
        return None

    # Check file size
    if len(content) > MAX_FILE_SIZE_BYTES:
        logger.warning(
            f"Attachment too large, skipping: {filename} "
            f"({len(content):,} bytes > {MAX_FILE_SIZE_BYTES:,} limit)"
        )
        return None

    safe_message_id = sanitize_filename(message_id)
    safe_filename = sanitize_filename(filename)

    # Include environment in path: attachments/{env}/{message_id}/{filename}
    key = f"attachments/{ENVIRONMENT}/{safe_message_id}/{safe_filename}"

    try:
        s3_client.put_object(
            Bucket=ATTACHMENTS_BUCKET,
            Key=key,
            Body=content,
            ContentType=content_type
        )

        url = f"https://{CLOUDFRONT_DOMAIN}/{key}"
        logger.info(f"Uploaded attachment: {filename} -> {url}")

        return url

    except ClientError as e:
        logger.error(f"Failed to upload attachment {filename}: {e}")
        return None
    except BotoCoreError as e:
        logger.error(f"Unexpected error uploading attachment {filename}: {e}")
        return None


def _unique_filenames(attachments: List[Attachment]) -> List[str]:
    """Prefix repeated names with a number so uploads never overwrite each other."""
    seen = set()
    names = []
    for index, attachment in enumerate(attachments):
        name = sanitize_filename(attachment.filename)
        candidate, counter = name, index
        while candidate in seen:
            candidate = f"{counter}-{name}"
            counter += 1
        seen.add(candidate)
        names.append(candidate)
    return names


def upload_attachments(attachments: List[Attachment], message_id: str) -> int:
    """
    Upload all attachments concurrently and set their URLs in place.

    Attachment order is untouched; an attachment whose upload fails keeps
    url=None and is left out of rendering by the caller.

    Args:
        attachments: Decoded image attachments
        message_id: Email message ID (for unique path)

    Returns:
        int: Number of attachments that now have a URL
    """
    if not attachments:
        return 0

    names = _unique_filenames(attachments)
    workers = min(UPLOAD_WORKERS, len(attachments))

    with ThreadPoolExecutor(max_workers=workers) as executor:
        urls = list(executor.map(
            lambda pair: upload_attachment(
                filename=pair[1],
                content=pair[0].data,
                content_type=pair[0].content_type,
                message_id=message_id
            ),
            zip(attachments, names)
        ))

    for attachment, url in zip(attachments, urls):
        attachment.url = url

    return sum(1 for url in urls if url)
