from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import uuid

from cloudvault.core.config import settings
from cloudvault.core.security import generate_link_token, get_password_hash, verify_password
from cloudvault.core.storage import StorageBackend
from cloudvault.models import File, LinkShare, Share
from cloudvault.models.base import as_utc, utcnow
from cloudvault.repositories.item import ItemRepository
from cloudvault.repositories.share import LinkShareRepository, ShareRepository
from cloudvault.repositories.user import UserRepository
from cloudvault.schemas.item import item_schema
from cloudvault.schemas.enums import FileStatus, ItemKind, Permission
from cloudvault.schemas.share import ItemShares, ResolvedLink
from cloudvault.services.access import AccessResolver
from cloudvault.utils.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidPasswordError,
    InvalidShareError,
    LinkExpiredError,
    LinkLimitReachedError,
    LinkNotFoundError,
    NotFoundError,
    PasswordRequiredError,
    UserNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class ShareManager:
    """Direct user shares and public link shares"""

    def __init__(self, db: AsyncSession, storage: Optional[StorageBackend] = None):
        self.share_repo = ShareRepository(db)
        self.link_repo = LinkShareRepository(db)
        self.item_repo = ItemRepository(db)
        self.user_repo = UserRepository(db)
        self.access = AccessResolver(db)
        self.storage = storage

    async def share_with_user(
        self,
        caller_id: uuid.UUID,
        item_id: uuid.UUID,
        kind: ItemKind,
        email: str,
        permission: Permission
    ) -> Share:
        """Grant another user access to an item, overwriting any earlier grant"""
        item = await self.access.require_access(caller_id, item_id, kind, Permission.EDITOR)

        target = await self.user_repo.get_by_email(email)
        if not target:
            raise UserNotFoundError()

        if target.id == caller_id:
            raise InvalidShareError("Cannot share with yourself")
        if target.id == item.owner_id:
            raise InvalidShareError("Cannot share an item with its owner")

        share = await self.share_repo.upsert(kind, item.id, item.owner_id, target.id, permission)
        logger.info("%s %s shared with %s as %s by %s", kind.value.capitalize(), item_id, target.id, permission.value, caller_id)
        return share

    async def revoke_share(self, caller_id: uuid.UUID, share_id: uuid.UUID) -> None:
        share = await self.share_repo.get(share_id)
        if not share:
            raise NotFoundError("Share not found")

        # Verify ownership
        if share.owner_id != caller_id:
            raise ForbiddenError("You do not have permission to revoke this share")

        await self.share_repo.delete(share)
        logger.info("Share %s revoked by %s", share_id, caller_id)

    async def create_public_link(
        self,
        caller_id: uuid.UUID,
        item_id: uuid.UUID,
        kind: ItemKind,
        permission: Permission = Permission.VIEWER,
        password: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        max_access_count: Optional[int] = None
    ) -> LinkShare:
        """Create a token-addressed public link to an item"""
        item = await self.access.require_access(caller_id, item_id, kind, Permission.EDITOR)

        expires_at = as_utc(expires_at)
        if expires_at is not None and expires_at <= utcnow():
            raise ValidationError("Expiry must be in the future")
        if max_access_count is not None and max_access_count < 1:
            raise ValidationError("Access limit must be at least 1")

        password_hash = get_password_hash(password) if password else None

        for _ in range(settings.LINK_TOKEN_ATTEMPTS):
            link = await self.link_repo.create(
                kind,
                item.id,
                item.owner_id,
                generate_link_token(),
                permission,
                password_hash=password_hash,
                expires_at=expires_at,
                max_access_count=max_access_count
            )
            if link:
                logger.info("Link %s created for %s %s by %s", link.id, kind.value, item_id, caller_id)
                return link
            logger.warning("Link token collision for %s %s, retrying", kind.value, item_id)

        raise ConflictError("Could not allocate a unique link token")

    async def resolve_public_link(self, token: str, password: Optional[str] = None) -> ResolvedLink:
        """Check a link's gates, count the access and return what it points to"""
        link = await self.link_repo.get_by_token(token)
        if not link:
            raise LinkNotFoundError()

        # Expiry is checked before the password
        if link.expires_at and as_utc(link.expires_at) <= utcnow():
            raise LinkExpiredError()

        if link.max_access_count is not None and link.access_count >= link.max_access_count:
            raise LinkLimitReachedError()

        if link.has_password:
            if not password:
                raise PasswordRequiredError()
            if not verify_password(password, link.password_hash):
                raise InvalidPasswordError()

        kind = ItemKind(link.item_kind)
        item = await self.item_repo.get(kind, link.item_id)
        if not item or item.is_deleted:
            raise LinkNotFoundError()

        # Concurrent resolutions race here; the guarded update decides
        if not await self.link_repo.try_increment(link):
            raise LinkLimitReachedError()

        return ResolvedLink(
            item_kind=kind,
            item_id=link.item_id,
            permission=Permission(link.permission),
            access_count=link.access_count,
            item=item_schema(item, kind),
            download_url=await self._download_url(item)
        )

    async def revoke_public_link(self, caller_id: uuid.UUID, link_id: uuid.UUID) -> None:
        link = await self.link_repo.get(link_id)
        if not link:
            raise LinkNotFoundError()

        # Verify ownership
        if link.owner_id != caller_id:
            raise ForbiddenError("You do not have permission to revoke this link")

        await self.link_repo.delete(link)
        logger.info("Link %s revoked by %s", link_id, caller_id)

    async def list_shares(self, caller_id: uuid.UUID, item_id: uuid.UUID, kind: ItemKind) -> ItemShares:
        """List the direct shares and link shares of an item"""
        item = await self.access.require_access(caller_id, item_id, kind, Permission.EDITOR)
        shares = await self.share_repo.list_for_item(kind, item.id)
        links = await self.link_repo.list_for_item(kind, item.id)
        return ItemShares.model_validate({"shares": shares, "link_shares": links}, from_attributes=True)

    async def _download_url(self, item) -> Optional[str]:
        if not isinstance(item, File) or item.status != FileStatus.READY.value:
            return None
        if not self.storage or not self.storage.supports_presign:
            return None
        return await self.storage.presign_download(
            item.storage_bucket,
            item.storage_key,
            settings.PRESIGNED_URL_EXPIRE_SECONDS
        )
