"""
Pytest configuration and fixtures for all tests.
"""

import base64
import os
import sys
import pytest

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

# Set up test environment variables before importing any modules
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'INFO')

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    'iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=='
)


@pytest.fixture
def png_bytes():
    """Decoded bytes of a 1x1 PNG."""
    return PNG_BYTES


@pytest.fixture
def png_base64():
    """Base64 of a 1x1 PNG, wrapped at 40 columns like a mailer would."""
    encoded = base64.b64encode(PNG_BYTES).decode('ascii')
    return '\n'.join(encoded[i:i + 40] for i in range(0, len(encoded), 40))
