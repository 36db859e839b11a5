"""
Domain layer for email processing business logic.

This layer contains:
- Data models (decoded messages, attachments, MIME parts)
- Error types (configuration, decoding and delivery failures)
- The email-to-issue processing pipeline
"""
