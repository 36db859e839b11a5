"""
Email processing pipeline - core business logic.

This module handles the end-to-end processing of SES email notifications:
1. Check delivery configuration (fail fast, before any decoding)
2. Parse SES notification from SQS record
3. Fetch the raw email from S3
4. Decode it (subject, sender, markdown body, images)
5. Upload images and publish to GitHub or Discord
6. Return result (success, skipped or failure)

All errors are caught and returned as ProcessingResult with success=False.
No exceptions propagate out of the public methods.
"""

import json
import logging
import os
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import ConfigurationError
from .models import EmailMetadata, ParsedEmail, ProcessingResult
from services import email as email_service
from services import s3 as s3_service
from services import attachment as attachment_service
from integrations import discord_webhook, github_issues

logger = logging.getLogger(__name__)

DELIVERY_MODES = ('github', 'discord')

# Title used when neither the Subject header nor SES has one ("" disables it)
DEFAULT_ISSUE_TITLE = os.environ.get('DEFAULT_ISSUE_TITLE', 'Email to Issue')


Publisher = Callable[[ParsedEmail], Optional[str]]


class EmailProcessor:
    """
    Handles end-to-end email processing pipeline.

    Processes SES email notifications and publishes each decoded email as a
    GitHub issue or a Discord message, depending on DELIVERY_MODE. Returns
    ProcessingResult for explicit success/skip/failure handling.
    """

    def __init__(self, default_subject: Optional[str] = None):
        """
        Initialize email processor.

        Args:
            default_subject: Title for emails without a subject (defaults to
                DEFAULT_ISSUE_TITLE; an empty string makes them skip)
        """
        self.default_subject = DEFAULT_ISSUE_TITLE if default_subject is None else default_subject

    def process_ses_record(self, record: Dict[str, Any]) -> ProcessingResult:
        """
        Process a single SQS record containing SES notification.

        Args:
            record: SQS record dict containing SES notification

        Returns:
            ProcessingResult with success=True (possibly skipped=True) or
            success=False (errors logged)
        """
        message_id = record.get('messageId', 'UNKNOWN')
        logger.info(f"Processing SQS message: {message_id}")

        metadata = None
        try:
            mode, publish = self._resolve_publisher()

            metadata = self._parse_ses_notification(record)
            logger.info(f"Parsed: from={metadata.from_address}, subject={metadata.subject}")

            parsed = self._fetch_and_decode(metadata)
            if not parsed:
                logger.info(f"Skipping message {message_id}: empty subject or body")
                return ProcessingResult(
                    success=True,
                    message_id=message_id,
                    metadata=metadata,
                    skipped=True
                )

            self._upload_attachments(metadata, parsed)

            destination_url = publish(parsed)

            self._log_processing_success(mode, metadata, parsed, destination_url)

            return ProcessingResult(
                success=True,
                message_id=message_id,
                metadata=metadata,
                destination_url=destination_url
            )

        except Exception as e:
            logger.error(f"Failed to process {message_id}: {e}", exc_info=True)

            return ProcessingResult(
                success=False,
                message_id=message_id,
                metadata=metadata,
                error_message=str(e)
            )

    def _resolve_publisher(self) -> Tuple[str, Publisher]:
        """
        Read delivery configuration and return the matching publisher.

        Returns:
            (mode, publish function)

        Raises:
            ConfigurationError: If the mode is unknown or its settings are missing
        """
        mode = os.environ.get('DELIVERY_MODE', 'github').strip().lower() or 'github'

        if mode == 'github':
            github_config = github_issues.read_config()
            return mode, lambda parsed: github_issues.publish(parsed, github_config)

        if mode == 'discord':
            discord_config = discord_webhook.read_config()
            return mode, lambda parsed: discord_webhook.publish(parsed, discord_config)

        raise ConfigurationError(
            f"DELIVERY_MODE must be one of {', '.join(DELIVERY_MODES)}, got: '{mode}'"
        )

    def _parse_ses_notification(self, record: Dict[str, Any]) -> EmailMetadata:
        """
        Parse SQS record and extract SES notification metadata.

        Handles both direct SES->SQS and SNS-wrapped notifications.

        Args:
            record: SQS record dict

        Returns:
            EmailMetadata: Structured email metadata

        Raises:
            ValueError: If notification structure is invalid
            json.JSONDecodeError: If JSON parsing fails
        """
        message_id = record.get('messageId', 'UNKNOWN')

        sqs_body = json.loads(record['body'])

        # Check if wrapped in SNS (optional setup: SES -> SNS -> SQS)
        if sqs_body.get('Type') == 'Notification' and 'Message' in sqs_body:
            logger.info("Unwrapping SNS message (SES -> SNS -> SQS)")
            ses_notification = json.loads(sqs_body['Message'])
        else:
            ses_notification = sqs_body

        if 'mail' not in ses_notification or 'receipt' not in ses_notification:
            raise ValueError("SES notification missing 'mail' or 'receipt' fields")

        mail = ses_notification['mail']
        receipt = ses_notification['receipt']
        common_headers = mail.get('commonHeaders', {})

        # From can be a list or a string; fall back to returnPath
        from_field = common_headers.get('from', [])
        if isinstance(from_field, list) and len(from_field) > 0:
            from_address = from_field[0]
        elif isinstance(from_field, str) and from_field:
            from_address = from_field
        else:
            from_address = mail.get('returnPath', '')

        to_field = common_headers.get('to', [])
        if isinstance(to_field, list):
            to_addresses = to_field
        elif isinstance(to_field, str) and to_field:
            to_addresses = [to_field]
        else:
            to_addresses = []

        action = receipt.get('action', {})
        bucket_name = action.get('bucketName')
        object_key = action.get('objectKey')

        if not bucket_name or not object_key:
            raise ValueError("Missing S3 location in SES notification")

        return EmailMetadata(
            message_id=message_id,
            from_address=from_address,
            to_addresses=to_addresses,
            subject=(common_headers.get('subject') or '').strip(),
            timestamp=mail.get('timestamp', ''),
            bucket_name=bucket_name,
            object_key=object_key
        )

    def _fetch_and_decode(self, metadata: EmailMetadata):
        """
        Fetch the raw email from S3 and decode it.

        The SES-supplied subject, then the configured default title, stand in
        for a missing Subject header.

        Returns:
            ParsedEmail, or SKIP when there is nothing to publish
        """
        logger.info(f"Fetching email from: s3://{metadata.bucket_name}/{metadata.object_key}")

        raw_email = s3_service.fetch_email_from_s3(
            metadata.bucket_name,
            metadata.object_key
        )

        parsed = email_service.decode_email(
            raw_email,
            default_subject=metadata.subject or self.default_subject or None
        )

        if parsed:
            logger.info(
                f"Decoded: sender={parsed.sender_email or 'unknown'}, "
                f"body={len(parsed.body)}, attachments={len(parsed.attachments)}"
            )
        return parsed

    def _upload_attachments(self, metadata: EmailMetadata, parsed: ParsedEmail) -> None:
        """
        Upload decoded images and set URLs on the Attachment objects.

        Note:
            - Skips if attachment service is not configured
            - Individual upload failures are logged but don't stop processing
        """
        if not parsed.attachments:
            logger.info("No attachments to upload")
            return

        if not attachment_service.is_configured():
            logger.info("Attachment upload not configured, skipping")
            return

        logger.info(f"Uploading {len(parsed.attachments)} attachment(s)...")

        uploaded_count = attachment_service.upload_attachments(
            parsed.attachments,
            message_id=metadata.message_id
        )

        logger.info(f"Uploaded {uploaded_count}/{len(parsed.attachments)} attachment(s)")

    def _log_processing_success(
        self,
        mode: str,
        metadata: EmailMetadata,
        parsed: ParsedEmail,
        destination_url: Optional[str]
    ) -> None:
        """Log successful processing summary."""
        logger.info("=" * 50)
        logger.info("EMAIL PROCESSED SUCCESSFULLY")
        logger.info(f"Delivery: {mode}")
        logger.info(f"From: {parsed.from_header}")
        logger.info(f"To: {', '.join(metadata.to_addresses) or 'unknown'}")
        logger.info(f"Received: {metadata.timestamp or 'unknown'}")
        logger.info(f"Subject: {parsed.subject}")
        logger.info(f"Attachments: {len(parsed.attachments)}")

        preview = parsed.body[:200] + ('...' if len(parsed.body) > 200 else '')
        logger.info(f"Body preview: {preview}")

        if destination_url:
            logger.info(f"Published: {destination_url}")
        logger.info("=" * 50)
