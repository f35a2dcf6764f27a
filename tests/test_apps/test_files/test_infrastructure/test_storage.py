"""Tests for the S3 storage backend against mocked S3."""

from urllib.parse import parse_qs, urlparse

import pytest
from botocore.exceptions import ClientError

from server.apps.files.exceptions import UpstreamUnavailableError


def _query(url: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(url).query)


class TestWriteHandle:
    """Tests for get_write_handle."""

    def test_presigned_for_exact_key(self, file_storage):
        """Test write handle targets the reserved key only."""
        url = file_storage.get_write_handle('u1/docs/abc-a.txt', 'text/plain', 300)

        parsed = urlparse(url)
        assert parsed.path.endswith('/u1/docs/abc-a.txt')
        assert _query(url)['X-Amz-Expires'] == ['300']
        assert 'X-Amz-Signature' in _query(url)

    def test_signing_failure_is_upstream_error(self, file_storage, monkeypatch):
        """Test botocore errors surface as UpstreamUnavailableError."""
        client = file_storage.bucket.meta.client

        def fail(*args, **kwargs):
            raise ClientError({'Error': {'Code': 'InternalError'}}, 'Sign')

        monkeypatch.setattr(client, 'generate_presigned_url', fail)

        with pytest.raises(UpstreamUnavailableError):
            file_storage.get_write_handle('u1/abc-a.txt', 'text/plain', 60)


def test_read_handle(file_storage):
    """Test read handle is a presigned GET URL with the given expiry."""
    url = file_storage.get_read_handle('u1/abc-a.txt', 120)

    assert urlparse(url).path.endswith('/u1/abc-a.txt')
    assert _query(url)['X-Amz-Expires'] == ['120']


class TestDiscardObject:
    """Tests for discard_object."""

    def test_removes_orphaned_object(self, file_storage, mock_s3):
        """Test object uploaded under an abandoned key is deleted."""
        bucket = mock_s3.Bucket('shared-files')
        bucket.put_object(Key='u1/abc-a.txt', Body=b'orphan')

        file_storage.discard_object('u1/abc-a.txt')

        assert list(bucket.objects.filter(Prefix='u1/')) == []

    def test_missing_object_is_fine(self, file_storage):
        """Test discarding a key that was never written does not raise."""
        file_storage.discard_object('u1/never-uploaded.txt')

    def test_failure_is_logged_not_raised(
        self,
        file_storage,
        monkeypatch,
        caplog,
    ):
        """Test S3 failures during discard are swallowed and logged."""
        def fail(name):
            raise ClientError({'Error': {'Code': 'InternalError'}}, 'Delete')

        monkeypatch.setattr(file_storage, 'delete', fail)

        file_storage.discard_object('u1/abc-a.txt')

        assert 'orphaned' in caplog.text
