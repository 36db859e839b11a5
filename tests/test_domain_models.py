"""
Tests for domain models (data structures).
"""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.models import (
    SKIP,
    Attachment,
    EmailMetadata,
    HeaderSet,
    ParsedEmail,
    ProcessingResult,
    Skip,
)


class TestHeaderSet:
    """Test HeaderSet mapping."""

    def test_case_insensitive(self):
        """Test lookups ignore header name case."""
        headers = HeaderSet([('Content-Type', 'text/plain')])

        assert headers['content-type'] == 'text/plain'
        assert headers.get('CONTENT-TYPE') == 'text/plain'
        assert headers.get('Content-ID') is None

    def test_first_occurrence_kept(self):
        """Test only the first value of a repeated header is kept."""
        headers = HeaderSet([('Subject', 'one'), ('subject', 'two')])

        assert headers['Subject'] == 'one'
        assert list(headers) == ['Subject']

    def test_missing_raises_key_error(self):
        """Test item access for a missing header."""
        with pytest.raises(KeyError):
            HeaderSet()['From']


class TestAttachment:
    """Test Attachment dataclass."""

    def test_size_and_image(self):
        """Test size reflects the data length."""
        attachment = Attachment(filename='a.png', content_type='image/PNG', data=b'12345')

        assert attachment.size == 5
        assert attachment.is_image is True
        assert attachment.url is None
        assert attachment.content_id is None


class TestParsedEmail:
    """Test ParsedEmail dataclass."""

    def _parsed(self, body, attachments):
        return ParsedEmail(subject='S', from_header='a@x.com', body=body, attachments=attachments)

    def test_cid_replaced_by_url(self):
        """Test cid: references are rewritten to hosted URLs."""
        image = Attachment(filename='img1', content_type='image/png', data=b'x',
                           content_id='img1', url='https://cdn/img1.png')
        parsed = self._parsed('See ![](cid:img1) here', [image])

        assert parsed.body_with_urls() == 'See ![](https://cdn/img1.png) here'
        assert parsed.body == 'See ![](cid:img1) here'

    def test_cid_prefix_not_replaced(self):
        """Test cid:img1 does not match inside cid:img10."""
        image = Attachment(filename='img1', content_type='image/png', data=b'x',
                           content_id='img1', url='https://cdn/1')
        parsed = self._parsed('cid:img10 and cid:img1', [image])

        assert parsed.body_with_urls() == 'cid:img10 and https://cdn/1'

    def test_cid_with_metacharacters(self):
        """Test Content-IDs are matched literally."""
        image = Attachment(filename='x', content_type='image/png', data=b'x',
                           content_id='ii_l+3(a)', url='https://cdn/x')
        parsed = self._parsed('<cid:ii_l+3(a)>', [image])

        assert parsed.body_with_urls() == '<https://cdn/x>'

    def test_not_uploaded_left_alone(self):
        """Test attachments without URL leave the body untouched."""
        image = Attachment(filename='img1', content_type='image/png', data=b'x', content_id='img1')
        parsed = self._parsed('cid:img1', [image])

        assert parsed.body_with_urls() == 'cid:img1'
        assert parsed.images_with_urls == []


class TestSkip:
    """Test the SKIP sentinel."""

    def test_singleton_and_falsy(self):
        """Test SKIP is a falsy singleton."""
        assert Skip() is SKIP
        assert not SKIP
        assert repr(SKIP) == 'SKIP'


class TestEmailMetadata:
    """Test EmailMetadata dataclass."""

    def test_email_metadata_creation(self):
        """Test creating EmailMetadata instance."""
        metadata = EmailMetadata(
            message_id="msg-123",
            from_address="sender@example.com",
            to_addresses=["recipient@example.com"],
            subject="Test Subject",
            timestamp="2025-01-01T00:00:00Z",
            bucket_name="test-bucket",
            object_key="test-key"
        )

        assert metadata.message_id == "msg-123"
        assert metadata.to_addresses == ["recipient@example.com"]
        assert metadata.bucket_name == "test-bucket"


class TestProcessingResult:
    """Test ProcessingResult dataclass."""

    def test_success_repr(self):
        """Test repr of a published result."""
        result = ProcessingResult(success=True, message_id="msg-1")
        assert repr(result) == "ProcessingResult(success=True, message_id=msg-1)"
        assert result.should_delete_message is True

    def test_skipped_repr(self):
        """Test repr of a skipped result."""
        result = ProcessingResult(success=True, message_id="msg-1", skipped=True)
        assert repr(result) == "ProcessingResult(success=True, skipped=True, message_id=msg-1)"

    def test_failure_repr(self):
        """Test repr of a failed result."""
        result = ProcessingResult(success=False, message_id="msg-1", error_message="boom")
        assert repr(result) == "ProcessingResult(success=False, message_id=msg-1, error=boom)"
        assert result.should_delete_message is True
