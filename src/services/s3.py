"""
Inbound raw-message fetch from S3.

SES stores each received message as an object in S3; this module drains
that object into a single buffer before anything is decoded.
"""

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# Read the object in 64 KiB chunks
CHUNK_SIZE = 64 * 1024

# Configure S3 client with timeouts to prevent infinite hangs
s3_config = Config(
    retries={
        'max_attempts': 1,  # 1 attempt total (no retries)
        'mode': 'standard'
    },
    connect_timeout=10,  # 10 seconds to establish connection
    read_timeout=60      # 60 seconds max for reading response
)

# Initialize S3 client at module level (thread-safe, reused across invocations)
s3_client = boto3.client('s3', config=s3_config)


def _drain(stream) -> bytes:
    """Read a botocore StreamingBody to the end, one chunk at a time."""
    buffer = bytearray()
    for chunk in stream.iter_chunks(chunk_size=CHUNK_SIZE):
        buffer.extend(chunk)
    return bytes(buffer)


def fetch_email_from_s3(bucket: str, key: str) -> bytes:
    """
    Fetch raw email content from S3.

    The object body is fully drained before returning; partial reads are
    never handed to the decoder.

    Args:
        bucket: S3 bucket name
        key: S3 object key (path to the email file)

    Returns:
        bytes: The raw email content as bytes

    Raises:
        ValueError: If bucket/key is empty, or the object or bucket is missing
        ClientError: For other S3 errors

    Example:
        >>> email_bytes = fetch_email_from_s3(
        ...     bucket="my-ses-bucket",
        ...     key="emails/2025/11/12/message-id.eml"
        ... )
        >>> print(len(email_bytes))
        12345
    """
    if not bucket:
        raise ValueError("S3 bucket name cannot be empty")
    if not key:
        raise ValueError("S3 object key cannot be empty")

    try:
        response = s3_client.get_object(Bucket=bucket, Key=key)
        raw_email = _drain(response['Body'])
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', '')
        if error_code == 'NoSuchKey':
            logger.error(f"S3 object not found: s3://{bucket}/{key}")
            raise ValueError(f"Email file not found in S3: {key}")
        elif error_code == 'NoSuchBucket':
            logger.error(f"S3 bucket not found: {bucket}")
            raise ValueError(f"S3 bucket not found: {bucket}")
        else:
            logger.error(f"Failed to fetch from S3 s3://{bucket}/{key}: {e}")
            raise

    logger.info(f"Fetched {len(raw_email):,} bytes from s3://{bucket}/{key}")
    return raw_email
