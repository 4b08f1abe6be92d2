"""
S3 Blob Storage

Documents are uploaded by the surrounding application; the pipeline only
reads them back. ``Document.file_path`` is the object key inside the
configured bucket.

Error mapping:
  NoSuchKey / 404       → StorageError("Object not found")
  any other ClientError → StorageError (original error chained)
  zero-byte object      → StorageError("Object is empty")
"""

from __future__ import annotations

import logging

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from docpipeline.core.config import settings
from docpipeline.core.exceptions import StorageError
from docpipeline.storage.base import BlobStorage

logger = logging.getLogger(__name__)


class S3BlobStorage(BlobStorage):
    """
    Async S3 reads against a single bucket.

    Usage:
        storage = S3BlobStorage()                  # bucket from settings
        data    = await storage.download("subjects/abc/notes.pdf")
    """

    def __init__(self, bucket: str | None = None) -> None:
        self._bucket = bucket or settings.s3_bucket
        self._session = aioboto3.Session(
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
            region_name=settings.aws_region,
        )

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url or None,
        )

    async def download(self, path: str) -> bytes:
        if not path:
            raise StorageError("Document has no file path")

        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=self._bucket, Key=path)
                body = await resp["Body"].read()
            except ClientError as exc:
                code = exc.response.get("Error", {}).get("Code", "")
                if code in ("NoSuchKey", "404"):
                    raise StorageError(
                        f"Object not found: {path}", path=path,
                        details={"bucket": self._bucket},
                    ) from exc
                raise StorageError(
                    f"S3 download failed: {exc}", path=path,
                    details={"bucket": self._bucket, "code": code},
                ) from exc
            except BotoCoreError as exc:
                raise StorageError(
                    f"S3 download failed: {exc}", path=path,
                    details={"bucket": self._bucket},
                ) from exc

        if not body:
            raise StorageError("Object is empty", path=path, details={"bucket": self._bucket})

        logger.info("S3 download ok | bucket=%s key=%s size=%d", self._bucket, path, len(body))
        return body
