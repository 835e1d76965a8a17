"""Object storage backends.

Every backend implements the same capability set over ``(bucket, key)``
addresses. Operations a backend cannot perform raise ``NotConfiguredError``;
SDK failures are wrapped in ``StorageError``.
"""
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import quote
import io
import logging

from minio import Minio
from minio.datatypes import Part
from minio.error import S3Error
from storage3.exceptions import StorageApiError
from supabase import create_client

from cloudvault.core.config import Settings, settings
from cloudvault.utils.exceptions import NotConfiguredError, StorageError

logger = logging.getLogger(__name__)


class StorageBackend:
    """Interface for object storage implementations"""

    backend_id: str = "base"
    supports_presign: bool = False
    supports_multipart: bool = False
    # Whether public_url returns something a client can fetch directly
    serves_public_urls: bool = False

    def __init__(self, bucket: str):
        self.bucket = bucket

    async def ensure_bucket_exists(self) -> None:
        """Prepare the default bucket; backends without setup do nothing"""
        return None

    async def put_object(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    async def get_object(self, bucket: str, key: str) -> bytes:
        raise NotImplementedError

    async def delete_object(self, bucket: str, key: str) -> None:
        raise NotImplementedError

    async def public_url(self, bucket: str, key: str) -> str:
        raise NotConfiguredError(f"{self.backend_id} storage does not serve public URLs")

    async def presign_upload(self, bucket: str, key: str, content_type: str, expires: int) -> str:
        raise NotConfiguredError(f"{self.backend_id} storage does not issue presigned upload URLs")

    async def presign_download(self, bucket: str, key: str, expires: int) -> str:
        raise NotConfiguredError(f"{self.backend_id} storage does not issue presigned download URLs")

    async def create_multipart_upload(self, bucket: str, key: str, content_type: str) -> str:
        raise NotConfiguredError(f"{self.backend_id} storage does not support multipart uploads")

    async def presign_part(self, bucket: str, key: str, upload_id: str, part_number: int, expires: int) -> str:
        raise NotConfiguredError(f"{self.backend_id} storage does not support multipart uploads")

    async def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: List[Tuple[int, str]]
    ) -> None:
        raise NotConfiguredError(f"{self.backend_id} storage does not support multipart uploads")

    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        raise NotConfiguredError(f"{self.backend_id} storage does not support multipart uploads")


class LocalStorage(StorageBackend):
    """Local filesystem storage used for single-node deployments and development"""

    backend_id = "local"

    def __init__(self, root: str, bucket: str):
        super().__init__(bucket)
        self.root = Path(root).resolve()

    async def ensure_bucket_exists(self) -> None:
        try:
            (self.root / self.bucket).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Error creating storage directory: {exc}") from exc

    def _resolve_path(self, bucket: str, key: str) -> Path:
        bucket_root = (self.root / bucket).resolve()
        candidate = Path(key)
        if candidate.is_absolute():
            raise StorageError("Absolute keys are not allowed")
        target = (bucket_root / candidate).resolve()
        try:
            target.relative_to(bucket_root)
        except ValueError as exc:
            raise StorageError("Key escapes the storage bucket") from exc
        return target

    async def put_object(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        target = self._resolve_path(bucket, key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Error writing object {key}: {exc}") from exc

    async def get_object(self, bucket: str, key: str) -> bytes:
        target = self._resolve_path(bucket, key)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise StorageError(f"Error reading object {key}: {exc}") from exc

    async def delete_object(self, bucket: str, key: str) -> None:
        target = self._resolve_path(bucket, key)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Error deleting object {key}: {exc}") from exc


class MinioStorage(StorageBackend):
    """S3-compatible storage through the MinIO SDK"""

    backend_id = "minio"
    supports_presign = True
    supports_multipart = True
    serves_public_urls = True

    def __init__(self, endpoint: str, access_key: str, secret_key: str, bucket: str, secure: bool = False):
        super().__init__(bucket)
        self.endpoint = endpoint
        self.secure = secure
        self.client = Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure
        )

    async def ensure_bucket_exists(self):
        """Ensure the bucket exists, create if not"""
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info("Created bucket %s", self.bucket)
        except S3Error as e:
            raise StorageError(f"Error ensuring bucket exists: {e}") from e

    async def put_object(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        try:
            self.client.put_object(
                bucket,
                key,
                io.BytesIO(data),
                len(data),
                content_type=content_type
            )
        except S3Error as e:
            raise StorageError(f"Error uploading object: {e}") from e

    async def get_object(self, bucket: str, key: str) -> bytes:
        try:
            response = self.client.get_object(bucket, key)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()
        except S3Error as e:
            raise StorageError(f"Error downloading object: {e}") from e

    async def delete_object(self, bucket: str, key: str) -> None:
        try:
            self.client.remove_object(bucket, key)
        except S3Error as e:
            raise StorageError(f"Error deleting object: {e}") from e

    async def public_url(self, bucket: str, key: str) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.endpoint}/{bucket}/{quote(key)}"

    async def presign_upload(self, bucket: str, key: str, content_type: str, expires: int) -> str:
        try:
            return self.client.presigned_put_object(bucket, key, expires=timedelta(seconds=expires))
        except S3Error as e:
            raise StorageError(f"Error generating presigned upload URL: {e}") from e

    async def presign_download(self, bucket: str, key: str, expires: int) -> str:
        try:
            return self.client.presigned_get_object(bucket, key, expires=timedelta(seconds=expires))
        except S3Error as e:
            raise StorageError(f"Error generating presigned URL: {e}") from e

    async def create_multipart_upload(self, bucket: str, key: str, content_type: str) -> str:
        try:
            # The SDK only exposes multipart primitives on its low-level API
            return self.client._create_multipart_upload(bucket, key, {"Content-Type": content_type})
        except S3Error as e:
            raise StorageError(f"Error creating multipart upload: {e}") from e

    async def presign_part(self, bucket: str, key: str, upload_id: str, part_number: int, expires: int) -> str:
        try:
            return self.client.get_presigned_url(
                "PUT",
                bucket,
                key,
                expires=timedelta(seconds=expires),
                extra_query_params={"uploadId": upload_id, "partNumber": str(part_number)},
            )
        except S3Error as e:
            raise StorageError(f"Error generating presigned part URL: {e}") from e

    async def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: List[Tuple[int, str]]
    ) -> None:
        try:
            self.client._complete_multipart_upload(
                bucket,
                key,
                upload_id,
                [Part(number, etag) for number, etag in sorted(parts)],
            )
        except S3Error as e:
            raise StorageError(f"Error completing multipart upload: {e}") from e

    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        try:
            self.client._abort_multipart_upload(bucket, key, upload_id)
        except S3Error as e:
            raise StorageError(f"Error aborting multipart upload: {e}") from e


class SupabaseStorage(StorageBackend):
    """Supabase Storage: signed single-shot uploads, no multipart"""

    backend_id = "supabase"
    supports_presign = True
    serves_public_urls = True

    def __init__(self, url: str, service_role_key: str, bucket: str):
        super().__init__(bucket)
        self.client = create_client(url, service_role_key)

    def _bucket(self, bucket: str):
        return self.client.storage.from_(bucket)

    async def put_object(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        try:
            self._bucket(bucket).upload(
                path=key,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except StorageApiError as exc:
            raise StorageError(f"Supabase upload failed for {key}: {exc}") from exc

    async def get_object(self, bucket: str, key: str) -> bytes:
        try:
            return self._bucket(bucket).download(key)
        except StorageApiError as exc:
            raise StorageError(f"Supabase download failed for {key}: {exc}") from exc

    async def delete_object(self, bucket: str, key: str) -> None:
        try:
            self._bucket(bucket).remove([key])
        except StorageApiError as exc:
            raise StorageError(f"Supabase delete failed for {key}: {exc}") from exc

    async def public_url(self, bucket: str, key: str) -> str:
        return self._bucket(bucket).get_public_url(key)

    async def presign_upload(self, bucket: str, key: str, content_type: str, expires: int) -> str:
        try:
            data = self._bucket(bucket).create_signed_upload_url(key)
        except StorageApiError as exc:
            raise StorageError(f"Failed to generate upload URL: {exc}") from exc
        url = _signed_url_from(data)
        if not url:
            raise StorageError("Supabase did not return a signed upload URL")
        return url

    async def presign_download(self, bucket: str, key: str, expires: int) -> str:
        try:
            data = self._bucket(bucket).create_signed_url(key, expires)
        except StorageApiError as exc:
            raise StorageError(f"Failed to generate download URL: {exc}") from exc
        url = _signed_url_from(data)
        if not url:
            raise StorageError("Supabase did not return a signed download URL")
        return url


def _signed_url_from(data) -> Optional[str]:
    # storage3 has used signedURL, signedUrl and signed_url across releases
    if isinstance(data, dict):
        return data.get("signed_url") or data.get("signedUrl") or data.get("signedURL")
    return None


def build_storage(config: Settings) -> StorageBackend:
    """Construct the storage backend selected by configuration"""
    backend = (config.STORAGE_BACKEND or "").strip().lower()

    if backend == "local":
        return LocalStorage(config.LOCAL_STORAGE_ROOT, config.STORAGE_BUCKET)
    if backend == "minio":
        return MinioStorage(
            config.MINIO_ENDPOINT,
            config.MINIO_ROOT_USER,
            config.MINIO_ROOT_PASSWORD,
            config.STORAGE_BUCKET,
            secure=config.MINIO_SECURE,
        )
    if backend == "supabase":
        if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE_KEY:
            raise NotConfiguredError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        return SupabaseStorage(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY, config.STORAGE_BUCKET)

    raise NotConfiguredError(
        f"Unsupported storage backend '{backend}'. Set STORAGE_BACKEND to local, minio or supabase."
    )


@lru_cache
def get_storage() -> StorageBackend:
    """Dependency returning the configured storage backend"""
    storage = build_storage(settings)
    logger.info("Using %s storage backend", storage.backend_id)
    return storage
