"""Document storage for generated invoices and exports.

Generated files go to the MinIO bucket when object storage is configured and
to ``Settings.documents_dir`` otherwise. Both backends use the same object
names (``invoices/INV-00042.pdf``, ``exports/7-counties.csv``), so callers
never care which one is active.

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging
import mimetypes
from datetime import timedelta

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from billing.shared.config import Settings

logger = logging.getLogger(__name__)

LOCAL_BUCKET = "local"


class StorageResult(BaseModel):
    """Where a document ended up, or why it did not.

    Attributes:
        success: Whether the document was stored
        object_name: Name relative to the bucket or documents directory
        bucket: MinIO bucket, or "local" for the filesystem
        path: ``bucket/object`` for MinIO, absolute file path for local storage
        error: Failure description
        etag: MinIO ETag of the stored object
        size: Stored size in bytes
    """

    success: bool
    object_name: str | None = None
    bucket: str | None = None
    path: str | None = None
    error: str | None = None
    etag: str | None = None
    size: int | None = None

    @property
    def is_local(self) -> bool:
        return self.bucket == LOCAL_BUCKET


class PresignedUrlResult(BaseModel):
    """Temporary download link for a stored object."""

    success: bool
    url: str | None = None
    expires_in_seconds: int | None = None
    error: str | None = None


class StorageService:
    """Saves generated documents to MinIO or to the local documents directory."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: Minio | None = None
        self._known_buckets: set[str] = set()

    def _get_client(self) -> Minio:
        """MinIO client, created on first use.

        Raises:
            ValueError: If an access or secret key is missing
        """
        if self._client is not None:
            return self._client

        for name in ("storage_access_key", "storage_secret_key"):
            if not getattr(self.settings, name):
                raise ValueError(f"{name} is empty. Set APP_{name.upper()} to use object storage.")

        self._client = Minio(
            endpoint=self.settings.storage_endpoint,
            access_key=self.settings.storage_access_key,
            secret_key=self.settings.storage_secret_key,
            secure=self.settings.storage_secure,
        )
        logger.info(f"Connected document storage to MinIO at {self.settings.storage_endpoint}")
        return self._client

    def is_available(self) -> bool:
        """True when MinIO is enabled and both keys are set."""
        settings = self.settings
        return settings.storage_enabled and bool(
            settings.storage_access_key and settings.storage_secret_key
        )

    def health_check(self) -> bool:
        """Whether the active backend can accept documents."""
        if not self.is_available():
            try:
                self.settings.documents_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning(f"Documents directory {self.settings.documents_dir} unusable: {e}")
                return False
            return True

        try:
            self._get_client().list_buckets()
        except Exception as e:
            logger.warning(f"MinIO health check failed: {e}")
            return False
        return True

    def _ensure_bucket(self, bucket: str) -> None:
        if bucket in self._known_buckets:
            return
        client = self._get_client()
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")
        self._known_buckets.add(bucket)

    @staticmethod
    def _detect_content_type(filename: str) -> str:
        content_type, _ = mimetypes.guess_type(filename)
        return content_type or "application/octet-stream"

    def save(
        self,
        data: bytes,
        object_name: str,
        content_type: str | None = None,
    ) -> StorageResult:
        """Store ``data`` under ``object_name`` in the active backend.

        Existing objects with the same name are replaced.

        Args:
            data: Document content
            object_name: Object name, e.g. ``invoices/INV-00001.pdf``
            content_type: MIME type, guessed from the name when omitted

        Returns:
            StorageResult; ``success`` is False if the write failed
        """
        if not self.is_available():
            return self._write_local(data, object_name)

        try:
            return self.upload_bytes(data, object_name, content_type=content_type)
        except S3Error as e:
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=self.settings.storage_bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )

    def _write_local(self, data: bytes, object_name: str) -> StorageResult:
        target = self.settings.documents_dir / object_name
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"Could not write {target}: {e}")
            return StorageResult(
                success=False, object_name=object_name, bucket=LOCAL_BUCKET, error=str(e)
            )

        logger.info(f"Wrote {object_name} to {self.settings.documents_dir} ({len(data)} bytes)")
        return StorageResult(
            success=True,
            object_name=object_name,
            bucket=LOCAL_BUCKET,
            path=str(target),
            size=len(data),
        )

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def upload_bytes(
        self,
        data: bytes,
        object_name: str,
        content_type: str | None = None,
        bucket: str | None = None,
    ) -> StorageResult:
        """Put ``data`` into a MinIO bucket, retrying S3 errors.

        Raises:
            S3Error: When the last attempt still fails
        """
        bucket = bucket or self.settings.storage_bucket
        try:
            client = self._get_client()
            self._ensure_bucket(bucket)
            written = client.put_object(
                bucket_name=bucket,
                object_name=object_name,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type or self._detect_content_type(object_name),
            )
        except S3Error as e:
            logger.error(f"S3 error storing {object_name} in {bucket}: {e}")
            raise
        except Exception as e:
            logger.error(f"Could not store {object_name} in {bucket}: {e}")
            return StorageResult(success=False, object_name=object_name, bucket=bucket, error=str(e))

        logger.info(f"Stored {object_name} in bucket {bucket} ({len(data)} bytes)")
        return StorageResult(
            success=True,
            object_name=object_name,
            bucket=bucket,
            path=f"{bucket}/{object_name}",
            etag=written.etag,
            size=len(data),
        )

    def get_presigned_url(
        self,
        object_name: str,
        bucket: str | None = None,
        expires_seconds: int = 3600,
    ) -> PresignedUrlResult:
        """Time-limited download link for a MinIO object.

        Local files have no such link; the result is unsuccessful then.
        """
        if not self.is_available():
            return PresignedUrlResult(success=False, error="Object storage is not enabled")

        bucket = bucket or self.settings.storage_bucket
        try:
            url = self._get_client().presigned_get_object(
                bucket_name=bucket,
                object_name=object_name,
                expires=timedelta(seconds=expires_seconds),
            )
        except S3Error as e:
            logger.error(f"S3 error signing {object_name}: {e}")
            return PresignedUrlResult(success=False, error=f"S3 error: {e.code} - {e.message}")
        except Exception as e:
            logger.error(f"Could not sign {object_name}: {e}")
            return PresignedUrlResult(success=False, error=str(e))

        return PresignedUrlResult(success=True, url=url, expires_in_seconds=expires_seconds)
