"""
Exception types shared across the email-to-issue pipeline.

Decoding problems are recovered locally and never leave the decoder, with
the single exception of AttachmentDecodeError, which the attachment
extractor catches per part. Delivery errors propagate to EmailProcessor.
"""


class ConfigurationError(Exception):
    """Raised when required environment configuration is missing or invalid."""
    pass


class AttachmentDecodeError(ValueError):
    """Raised when an attachment payload cannot be decoded."""
    pass


class DeliveryError(Exception):
    """Base class for failures talking to an external collaborator."""
    pass


class IssueCreationError(DeliveryError):
    """Raised when the GitHub issue could not be created."""
    pass


class WebhookDeliveryError(DeliveryError):
    """Raised when the Discord webhook rejects or never receives a message."""
    pass
