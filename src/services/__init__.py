"""
Service functions for the email-to-issue pipeline.

This package contains the email decoder (email, mime, markdown, encoding)
and the S3-backed inbound fetch and image hosting services.
"""

__all__ = ['attachment', 'email', 'encoding', 'markdown', 'mime', 's3']
