"""
Tests for S3 inbound fetch.
"""

import pytest
from unittest.mock import patch, MagicMock
from botocore.exceptions import ClientError
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from services import s3


def _streaming_body(*chunks):
    body = MagicMock()
    body.iter_chunks.return_value = iter(chunks)
    return body


class TestFetchEmailFromS3:
    """Test fetching email content from S3."""

    @patch('services.s3.s3_client')
    def test_fetch_email_success(self, mock_s3_client):
        """Test successful email fetch from S3."""
        sample_email = b"From: test@example.com\r\nSubject: Test\r\n\r\nBody content"
        mock_s3_client.get_object.return_value = {'Body': _streaming_body(sample_email)}

        result = s3.fetch_email_from_s3('test-bucket', 'emails/test.eml')

        assert result == sample_email
        assert isinstance(result, bytes)
        mock_s3_client.get_object.assert_called_once_with(
            Bucket='test-bucket',
            Key='emails/test.eml'
        )

    @patch('services.s3.s3_client')
    def test_fetch_drains_all_chunks(self, mock_s3_client):
        """Test every chunk is read before returning."""
        mock_s3_client.get_object.return_value = {
            'Body': _streaming_body(b"From: a@x.com\n", b"Subject: Hi\n", b"\nBody")
        }

        result = s3.fetch_email_from_s3('test-bucket', 'emails/test.eml')

        assert result == b"From: a@x.com\nSubject: Hi\n\nBody"

    @patch('services.s3.s3_client')
    def test_fetch_email_no_such_key(self, mock_s3_client):
        """Test fetch when S3 object doesn't exist."""
        mock_s3_client.get_object.side_effect = ClientError(
            {'Error': {'Code': 'NoSuchKey', 'Message': 'The specified key does not exist.'}},
            'GetObject'
        )

        with pytest.raises(ValueError, match="Email file not found in S3"):
            s3.fetch_email_from_s3('test-bucket', 'missing-email.eml')

    @patch('services.s3.s3_client')
    def test_fetch_email_no_such_bucket(self, mock_s3_client):
        """Test fetch when S3 bucket doesn't exist."""
        mock_s3_client.get_object.side_effect = ClientError(
            {'Error': {'Code': 'NoSuchBucket', 'Message': 'The specified bucket does not exist'}},
            'GetObject'
        )

        with pytest.raises(ValueError, match="S3 bucket not found"):
            s3.fetch_email_from_s3('missing-bucket', 'emails/test.eml')

    @patch('services.s3.s3_client')
    def test_fetch_email_other_client_error(self, mock_s3_client):
        """Test other S3 errors propagate unchanged."""
        mock_s3_client.get_object.side_effect = ClientError(
            {'Error': {'Code': 'AccessDenied', 'Message': 'Access Denied'}},
            'GetObject'
        )

        with pytest.raises(ClientError):
            s3.fetch_email_from_s3('test-bucket', 'emails/test.eml')

    @pytest.mark.parametrize('bucket,key', [('', 'key'), ('bucket', '')])
    def test_fetch_requires_location(self, bucket, key):
        """Test empty bucket or key is rejected before calling S3."""
        with pytest.raises(ValueError):
            s3.fetch_email_from_s3(bucket, key)
