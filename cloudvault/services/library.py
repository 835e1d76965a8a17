from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import uuid

from cloudvault.core.config import settings
from cloudvault.models import File
from cloudvault.repositories.activity import ActivityRepository, StarRepository
from cloudvault.schemas.enums import ActivityAction, ItemKind, Permission
from cloudvault.schemas.item import FolderContents
from cloudvault.services.access import AccessResolver

logger = logging.getLogger(__name__)

RECENT_ACTIONS = (ActivityAction.UPLOAD, ActivityAction.DOWNLOAD, ActivityAction.VIEW)


class LibraryService:
    """Per-user views over the tree: starred items and recently used files"""

    def __init__(self, db: AsyncSession):
        self.star_repo = StarRepository(db)
        self.activity_repo = ActivityRepository(db)
        self.access = AccessResolver(db)

    async def toggle_star(self, user_id: uuid.UUID, item_id: uuid.UUID, kind: ItemKind) -> bool:
        """Star or unstar an item the user can view; returns the new state"""
        await self.access.require_access(user_id, item_id, kind, Permission.VIEWER)

        star = await self.star_repo.get(user_id, kind, item_id)
        if star:
            await self.star_repo.delete(star)
            logger.info("%s %s unstarred by %s", kind.value.capitalize(), item_id, user_id)
            return False

        await self.star_repo.add(user_id, kind, item_id)
        logger.info("%s %s starred by %s", kind.value.capitalize(), item_id, user_id)
        return True

    async def list_starred(self, user_id: uuid.UUID) -> FolderContents:
        """Starred items the user can still view"""
        folders, files = await self.star_repo.list_starred(user_id)
        folders = [f for f in folders if await self.access.resolve_access(user_id, f.id, ItemKind.FOLDER, Permission.VIEWER)]
        files = [f for f in files if await self.access.resolve_access(user_id, f.id, ItemKind.FILE, Permission.VIEWER)]
        return FolderContents.from_items(folders, files)

    async def list_recent(self, user_id: uuid.UUID, limit: Optional[int] = None) -> List[File]:
        """Files recently uploaded, downloaded or viewed by the user that they can still view"""
        files = await self.activity_repo.recent_files(user_id, RECENT_ACTIONS, limit or settings.RECENT_FILES_LIMIT)
        return [f for f in files if await self.access.resolve_access(user_id, f.id, ItemKind.FILE, Permission.VIEWER)]
