from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import uuid

from cloudvault.core.config import settings
from cloudvault.models import Item
from cloudvault.repositories.item import ItemRepository
from cloudvault.repositories.share import ShareRepository
from cloudvault.schemas.enums import ItemKind, Permission
from cloudvault.utils.exceptions import DataIntegrityError, ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)


def _satisfies(granted: str, required: Permission) -> bool:
    return required == Permission.VIEWER or granted == Permission.EDITOR.value


class AccessResolver:
    """Effective permission from ownership, direct shares and ancestor folder shares"""

    def __init__(self, db: AsyncSession, max_depth: Optional[int] = None):
        self.item_repo = ItemRepository(db)
        self.share_repo = ShareRepository(db)
        self.max_depth = max_depth or settings.MAX_TREE_DEPTH

    async def resolve_access(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        kind: ItemKind,
        required: Permission
    ) -> bool:
        """Return True when the user holds at least the required permission on the item"""
        item = await self.item_repo.get(kind, item_id)
        visited = set()
        depth = 0

        while item is not None:
            if item.is_deleted:
                return False
            if item.owner_id == user_id:
                return True

            share = await self.share_repo.get_for_user(kind, item.id, user_id)
            if share and _satisfies(share.permission, required):
                return True

            visited.add(item.id)
            depth += 1
            if item.parent_id is None:
                return False
            if item.parent_id in visited:
                logger.error("Cycle in folder tree at %s", item.parent_id)
                raise DataIntegrityError(f"Folder {item.parent_id} is its own ancestor")
            if depth >= self.max_depth:
                logger.error("Folder tree deeper than %d below %s", self.max_depth, item_id)
                raise DataIntegrityError(f"Folder tree exceeds maximum depth of {self.max_depth}")

            kind = ItemKind.FOLDER
            item = await self.item_repo.get_folder(item.parent_id)

        return False

    async def require_access(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        kind: ItemKind,
        required: Permission
    ) -> Item:
        """Load a live item and verify access, raising NotFound or Forbidden"""
        item = await self.item_repo.get(kind, item_id)
        if not item or item.is_deleted:
            raise NotFoundError(f"{kind.value.capitalize()} not found")

        if not await self.resolve_access(user_id, item_id, kind, required):
            raise ForbiddenError(f"{required.value.capitalize()} access to this {kind.value} is required")

        return item
