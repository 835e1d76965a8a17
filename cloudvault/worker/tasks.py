from typing import Optional
import asyncio
import logging
import uuid

from cloudvault.core.config import settings
from cloudvault.core.database import AsyncSessionLocal
from cloudvault.core.queue import THUMBNAIL_TOPIC
from cloudvault.core.storage import get_storage
from cloudvault.services.thumbnails import ThumbnailPipeline
from cloudvault.utils.exceptions import NotFoundError, StorageError, ThumbnailError
from cloudvault.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_thumbnail_job(file_id: uuid.UUID) -> Optional[str]:
    async with AsyncSessionLocal() as db:
        pipeline = ThumbnailPipeline(db, get_storage())
        return await pipeline.process(file_id)


@celery_app.task(
    bind=True,
    name=THUMBNAIL_TOPIC,
    autoretry_for=(StorageError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    max_retries=settings.THUMBNAIL_MAX_RETRIES,
)
def generate_thumbnail(self, file_id: str):
    """Generate the thumbnail for an uploaded image"""
    logger.info("Thumbnail job %s for file %s (attempt %d)", self.request.id, file_id, self.request.retries + 1)
    try:
        thumbnail_url = asyncio.run(run_thumbnail_job(uuid.UUID(file_id)))
    except (NotFoundError, ThumbnailError) as e:
        # Retrying cannot fix a missing file or an undecodable image
        logger.error("Thumbnail job for %s failed permanently: %s", file_id, e)
        raise

    return {"file_id": file_id, "thumbnail_url": thumbnail_url}
