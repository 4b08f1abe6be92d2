"""
Unit Tests — S3BlobStorage
═══════════════════════════
Tests for docpipeline/storage/s3.py

Coverage:
  ✅ Successful download returns the object body
  ✅ Bucket / key passed through to get_object
  ✅ NoSuchKey and 404 → StorageError("Object not found")
  ✅ Other ClientError / BotoCoreError → StorageError, original chained
  ✅ Zero-byte object → StorageError
  ✅ Empty path rejected before any S3 call
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from docpipeline.core.exceptions import StorageError


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "test"}}, "GetObject")


def _build_s3_mock(body: bytes = b"%PDF-1.7 data") -> AsyncMock:
    """Build a mock S3 client context manager whose get_object returns ``body``."""
    stream = MagicMock()
    stream.read = AsyncMock(return_value=body)

    s3 = AsyncMock()
    s3.__aenter__ = AsyncMock(return_value=s3)
    s3.__aexit__  = AsyncMock(return_value=None)
    s3.get_object = AsyncMock(return_value={"Body": stream})
    return s3


# ─────────────────────────────────────────────────────────────────────────────
# Tests
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.storage
class TestS3BlobStorage:

    async def test_download_returns_body(self):
        from docpipeline.storage.s3 import S3BlobStorage

        s3_mock = _build_s3_mock(b"pdf-bytes")

        with patch("docpipeline.storage.s3.aioboto3.Session") as mock_session:
            mock_session.return_value.client.return_value = s3_mock
            data = await S3BlobStorage(bucket="docs").download("subjects/a/notes.pdf")

        assert data == b"pdf-bytes"
        s3_mock.get_object.assert_awaited_once_with(Bucket="docs", Key="subjects/a/notes.pdf")

    async def test_default_bucket_comes_from_settings(self):
        from docpipeline.core.config import settings
        from docpipeline.storage.s3 import S3BlobStorage

        s3_mock = _build_s3_mock()

        with patch("docpipeline.storage.s3.aioboto3.Session") as mock_session:
            mock_session.return_value.client.return_value = s3_mock
            await S3BlobStorage().download("k.pdf")

        assert s3_mock.get_object.await_args.kwargs["Bucket"] == settings.s3_bucket

    @pytest.mark.parametrize("code", ["NoSuchKey", "404"])
    async def test_missing_object_raises_not_found(self, code):
        from docpipeline.storage.s3 import S3BlobStorage

        s3_mock = _build_s3_mock()
        s3_mock.get_object = AsyncMock(side_effect=_client_error(code))

        with patch("docpipeline.storage.s3.aioboto3.Session") as mock_session:
            mock_session.return_value.client.return_value = s3_mock
            with pytest.raises(StorageError, match="Object not found") as exc_info:
                await S3BlobStorage(bucket="docs").download("gone.pdf")

        assert exc_info.value.details["path"] == "gone.pdf"
        assert isinstance(exc_info.value.__cause__, ClientError)

    async def test_access_denied_raises_storage_error(self):
        from docpipeline.storage.s3 import S3BlobStorage

        s3_mock = _build_s3_mock()
        s3_mock.get_object = AsyncMock(side_effect=_client_error("AccessDenied"))

        with patch("docpipeline.storage.s3.aioboto3.Session") as mock_session:
            mock_session.return_value.client.return_value = s3_mock
            with pytest.raises(StorageError, match="S3 download failed") as exc_info:
                await S3BlobStorage(bucket="docs").download("secret.pdf")

        assert exc_info.value.details["code"] == "AccessDenied"

    async def test_transport_error_raises_storage_error(self):
        from docpipeline.storage.s3 import S3BlobStorage

        s3_mock = _build_s3_mock()
        s3_mock.get_object = AsyncMock(
            side_effect=EndpointConnectionError(endpoint_url="http://localhost:4566")
        )

        with patch("docpipeline.storage.s3.aioboto3.Session") as mock_session:
            mock_session.return_value.client.return_value = s3_mock
            with pytest.raises(StorageError) as exc_info:
                await S3BlobStorage(bucket="docs").download("a.pdf")

        assert isinstance(exc_info.value.__cause__, EndpointConnectionError)

    async def test_zero_byte_object_raises(self):
        from docpipeline.storage.s3 import S3BlobStorage

        s3_mock = _build_s3_mock(b"")

        with patch("docpipeline.storage.s3.aioboto3.Session") as mock_session:
            mock_session.return_value.client.return_value = s3_mock
            with pytest.raises(StorageError, match="empty"):
                await S3BlobStorage(bucket="docs").download("blank.pdf")

    async def test_empty_path_rejected_without_s3_call(self):
        from docpipeline.storage.s3 import S3BlobStorage

        s3_mock = _build_s3_mock()

        with patch("docpipeline.storage.s3.aioboto3.Session") as mock_session:
            mock_session.return_value.client.return_value = s3_mock
            with pytest.raises(StorageError, match="no file path"):
                await S3BlobStorage(bucket="docs").download("")

        s3_mock.get_object.assert_not_awaited()
