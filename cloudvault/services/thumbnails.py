from io import BytesIO
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import re
import uuid

from PIL import Image, UnidentifiedImageError

from cloudvault.core.config import settings
from cloudvault.core.storage import StorageBackend
from cloudvault.models import File
from cloudvault.repositories.item import ItemRepository
from cloudvault.utils.exceptions import NotFoundError, ThumbnailError

logger = logging.getLogger(__name__)


def thumbnail_key(storage_key: str) -> str:
    """Derive the thumbnail key: original key without extension plus _thumb.jpg"""
    return re.sub(r"\.[^/.]+$", "", storage_key) + "_thumb.jpg"


def make_thumbnail(data: bytes, size: Optional[int] = None, quality: Optional[int] = None) -> bytes:
    """Shrink an image to fit a size x size box and encode it as JPEG"""
    size = size or settings.THUMBNAIL_SIZE
    quality = quality or settings.THUMBNAIL_QUALITY
    try:
        img = Image.open(BytesIO(data))
        img = img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ThumbnailError(f"Cannot decode image: {e}") from e

    # thumbnail() keeps the aspect ratio and never upscales
    img.thumbnail((size, size), Image.LANCZOS)
    out = BytesIO()
    img.save(out, format="JPEG", quality=quality)
    return out.getvalue()


class ThumbnailPipeline:
    """Derive and store a thumbnail for an uploaded image"""

    def __init__(self, db: AsyncSession, storage: StorageBackend):
        self.item_repo = ItemRepository(db)
        self.storage = storage

    async def process(self, file_id: uuid.UUID) -> Optional[str]:
        """Generate the thumbnail for a file and return its URL, or None when skipped"""
        file = await self.item_repo.get_file(file_id)
        if not file:
            raise NotFoundError(f"File {file_id} not found")

        if not file.is_image:
            logger.info("Skipping thumbnail for %s: not an image (%s)", file_id, file.mime_type)
            return None

        if file.is_deleted:
            logger.info("Skipping thumbnail for %s: file was deleted", file_id)
            return None

        original = await self.storage.get_object(file.storage_bucket, file.storage_key)
        thumbnail = make_thumbnail(original)

        key = thumbnail_key(file.storage_key)
        await self.storage.put_object(file.storage_bucket, key, thumbnail, "image/jpeg")
        url = await self._thumbnail_url(file, key)

        await self.item_repo.set_thumbnail_url(file.id, url)
        logger.info("Thumbnail for %s stored at %s", file_id, key)
        return url

    async def _thumbnail_url(self, file: File, key: str) -> str:
        if self.storage.serves_public_urls:
            return await self.storage.public_url(file.storage_bucket, key)
        # Served through the access-checked thumbnail route
        return f"{settings.API_V1_PREFIX}/files/{file.id}/thumbnail"
