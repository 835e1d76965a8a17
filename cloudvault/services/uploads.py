from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
import logging
import uuid

from cloudvault.core.config import settings
from cloudvault.core.queue import THUMBNAIL_TOPIC, EnqueueError, JobQueue
from cloudvault.core.storage import StorageBackend
from cloudvault.models import File
from cloudvault.repositories.activity import ActivityRepository
from cloudvault.repositories.item import ItemRepository
from cloudvault.schemas.enums import ActivityAction, FileStatus, ItemKind, Permission
from cloudvault.schemas.upload import UploadInitResponse, UploadPart
from cloudvault.services.access import AccessResolver
from cloudvault.services.items import validate_name
from cloudvault.utils.exceptions import (
    CloudVaultException,
    InvalidStatusError,
    NotConfiguredError,
    NotFoundError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class UploadCoordinator:
    """Upload lifecycle: uploading -> ready | error"""

    def __init__(self, db: AsyncSession, storage: StorageBackend, job_queue: JobQueue):
        self.item_repo = ItemRepository(db)
        self.activity_repo = ActivityRepository(db)
        self.access = AccessResolver(db)
        self.storage = storage
        self.job_queue = job_queue

    def _generate_storage_key(self, user_id: uuid.UUID, file_id: uuid.UUID, name: str) -> str:
        """Generate the object key for an upload"""
        return f"{user_id}/{file_id}/{name}"

    async def init_upload(
        self,
        user_id: uuid.UUID,
        name: str,
        folder_id: Optional[uuid.UUID],
        mime_type: str,
        size: int,
        part_count: int = 1
    ) -> UploadInitResponse:
        """Reserve a file row and hand out presigned upload URLs"""
        name = validate_name(name)
        if size < 0 or size > settings.MAX_FILE_SIZE:
            raise ValidationError(f"File size must be between 0 and {settings.MAX_FILE_SIZE} bytes")
        if part_count < 1 or part_count > settings.MAX_PART_COUNT:
            raise ValidationError(f"Part count must be between 1 and {settings.MAX_PART_COUNT}")

        if not self.storage.supports_presign:
            raise NotConfiguredError(
                f"{self.storage.backend_id} storage does not issue presigned upload URLs; use direct upload"
            )

        if folder_id is not None:
            await self.access.require_access(user_id, folder_id, ItemKind.FOLDER, Permission.EDITOR)

        file_id = uuid.uuid4()
        storage_key = self._generate_storage_key(user_id, file_id, name)
        db_file = await self.item_repo.create_file(
            file_id=file_id,
            owner_id=user_id,
            parent_id=folder_id,
            name=name,
            mime_type=mime_type or "application/octet-stream",
            size=size,
            storage_key=storage_key,
            storage_bucket=self.storage.bucket,
            status=FileStatus.UPLOADING
        )

        expires = settings.PRESIGNED_URL_EXPIRE_SECONDS
        upload_id = None
        try:
            if self.storage.supports_multipart and part_count > 1:
                upload_id = await self.storage.create_multipart_upload(db_file.storage_bucket, storage_key, db_file.mime_type)
                await self.item_repo.set_upload_id(db_file, upload_id)
                parts = []
                for part_number in range(1, part_count + 1):
                    url = await self.storage.presign_part(db_file.storage_bucket, storage_key, upload_id, part_number, expires)
                    parts.append(UploadPart(part_number=part_number, upload_url=url))
            else:
                url = await self.storage.presign_upload(db_file.storage_bucket, storage_key, db_file.mime_type, expires)
                parts = [UploadPart(part_number=1, upload_url=url)]
        except (StorageError, NotConfiguredError):
            logger.error("Upload init failed for %s, marking as error", file_id)
            await self.item_repo.transition_status(file_id, FileStatus.UPLOADING, FileStatus.ERROR)
            raise

        logger.info("Upload %s initialised by %s (%d parts)", file_id, user_id, len(parts))
        return UploadInitResponse(
            file_id=file_id,
            storage_key=storage_key,
            upload_id=upload_id,
            parts=parts
        )

    async def complete_upload(
        self,
        user_id: uuid.UUID,
        file_id: uuid.UUID,
        parts: Optional[List[Tuple[int, str]]] = None
    ) -> File:
        """Finalise an upload and mark the file ready"""
        db_file = await self._get_own_upload(user_id, file_id)

        if db_file.upload_id:
            if not parts:
                raise ValidationError("Parts are required to complete a multipart upload")
            try:
                await self.storage.complete_multipart_upload(
                    db_file.storage_bucket,
                    db_file.storage_key,
                    db_file.upload_id,
                    sorted(parts)
                )
            except StorageError:
                logger.error("Multipart completion failed for %s, marking as error", file_id)
                await self.item_repo.transition_status(file_id, FileStatus.UPLOADING, FileStatus.ERROR)
                raise

        # Guarded flip so a concurrent second completion loses
        if not await self.item_repo.transition_status(file_id, FileStatus.UPLOADING, FileStatus.READY):
            raise InvalidStatusError()

        logger.info("Upload %s completed", file_id)
        await self.activity_repo.record(user_id, ItemKind.FILE, file_id, ActivityAction.UPLOAD)
        if db_file.is_image:
            await self._enqueue_thumbnail(file_id)
        return db_file

    async def abort_upload(self, user_id: uuid.UUID, file_id: uuid.UUID) -> File:
        """Abandon an upload and clean up whatever reached storage"""
        db_file = await self._get_own_upload(user_id, file_id)

        if not await self.item_repo.transition_status(file_id, FileStatus.UPLOADING, FileStatus.ERROR):
            raise InvalidStatusError()

        if db_file.upload_id:
            try:
                await self.storage.abort_multipart_upload(db_file.storage_bucket, db_file.storage_key, db_file.upload_id)
            except (StorageError, NotConfiguredError) as e:
                logger.warning("Could not abort multipart upload %s: %s", db_file.upload_id, e)
        try:
            await self.storage.delete_object(db_file.storage_bucket, db_file.storage_key)
        except (StorageError, NotConfiguredError) as e:
            logger.warning("Could not remove partial object %s: %s", db_file.storage_key, e)

        logger.info("Upload %s aborted by %s", file_id, user_id)
        return db_file

    async def upload_direct(
        self,
        user_id: uuid.UUID,
        folder_id: Optional[uuid.UUID],
        name: str,
        mime_type: Optional[str],
        data: bytes
    ) -> File:
        """Store a small file through the API and create a ready file row"""
        name = validate_name(name)
        if len(data) > settings.MAX_DIRECT_UPLOAD_SIZE_BYTES:
            raise ValidationError(f"File size exceeds maximum of {settings.MAX_DIRECT_UPLOAD_SIZE_MB}MB")

        if folder_id is not None:
            await self.access.require_access(user_id, folder_id, ItemKind.FOLDER, Permission.EDITOR)

        file_id = uuid.uuid4()
        storage_key = self._generate_storage_key(user_id, file_id, name)
        mime_type = mime_type or "application/octet-stream"
        await self.storage.put_object(self.storage.bucket, storage_key, data, mime_type)

        try:
            db_file = await self.item_repo.create_file(
                file_id=file_id,
                owner_id=user_id,
                parent_id=folder_id,
                name=name,
                mime_type=mime_type,
                size=len(data),
                storage_key=storage_key,
                storage_bucket=self.storage.bucket,
                status=FileStatus.READY
            )
        except SQLAlchemyError:
            # Clean up the stored object if the database insert fails
            try:
                await self.storage.delete_object(self.storage.bucket, storage_key)
            except CloudVaultException:
                logger.exception("Could not remove orphaned object %s", storage_key)
            raise

        logger.info("File %s uploaded directly by %s (%d bytes)", file_id, user_id, len(data))
        await self.activity_repo.record(user_id, ItemKind.FILE, file_id, ActivityAction.UPLOAD)
        if db_file.is_image:
            await self._enqueue_thumbnail(file_id)
        return db_file

    async def _get_own_upload(self, user_id: uuid.UUID, file_id: uuid.UUID) -> File:
        db_file = await self.item_repo.get_file(file_id)
        if not db_file or db_file.owner_id != user_id or db_file.is_deleted:
            raise NotFoundError("File not found")
        if db_file.status != FileStatus.UPLOADING.value:
            raise InvalidStatusError()
        return db_file

    async def _enqueue_thumbnail(self, file_id: uuid.UUID) -> None:
        try:
            await self.job_queue.enqueue(THUMBNAIL_TOPIC, {"file_id": str(file_id)})
        except EnqueueError:
            logger.exception("Could not enqueue thumbnail for %s", file_id)
