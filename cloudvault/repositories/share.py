from typing import List, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import uuid

from cloudvault.models import Share, LinkShare
from cloudvault.models.base import utcnow
from cloudvault.schemas.enums import ItemKind, Permission
from cloudvault.utils.exceptions import ConflictError

UPSERT_ATTEMPTS = 3


class ShareRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, share_id: uuid.UUID) -> Optional[Share]:
        query = select(Share).filter(Share.id == share_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_for_user(self, kind: ItemKind, item_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Share]:
        """Get the direct share of an item with a user"""
        query = select(Share).filter(
            Share.item_kind == kind.value,
            Share.item_id == item_id,
            Share.shared_with_id == user_id
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        kind: ItemKind,
        item_id: uuid.UUID,
        owner_id: uuid.UUID,
        shared_with_id: uuid.UUID,
        permission: Permission
    ) -> Share:
        """Create a share, or overwrite the permission of the existing one"""
        for _ in range(UPSERT_ATTEMPTS):
            share = await self.get_for_user(kind, item_id, shared_with_id)
            if share:
                share.permission = permission.value
                share.updated_at = utcnow()
            else:
                share = Share(
                    item_kind=kind.value,
                    item_id=item_id,
                    owner_id=owner_id,
                    shared_with_id=shared_with_id,
                    permission=permission.value
                )
                self.db.add(share)

            try:
                await self.db.commit()
            except IntegrityError:
                # A concurrent request inserted the same share first; read it back
                await self.db.rollback()
                continue

            await self.db.refresh(share)
            return share

        raise ConflictError("Share is being modified concurrently")

    async def list_for_item(self, kind: ItemKind, item_id: uuid.UUID) -> List[Share]:
        query = select(Share).filter(
            Share.item_kind == kind.value,
            Share.item_id == item_id
        ).order_by(Share.created_at)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def delete(self, share: Share) -> None:
        await self.db.delete(share)
        await self.db.commit()


class LinkShareRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        kind: ItemKind,
        item_id: uuid.UUID,
        owner_id: uuid.UUID,
        token: str,
        permission: Permission,
        password_hash: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        max_access_count: Optional[int] = None
    ) -> Optional[LinkShare]:
        """Create a link share; None when the token is already taken"""
        link = LinkShare(
            item_kind=kind.value,
            item_id=item_id,
            owner_id=owner_id,
            token=token,
            permission=permission.value,
            password_hash=password_hash,
            expires_at=expires_at,
            max_access_count=max_access_count,
            access_count=0
        )
        self.db.add(link)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return None
        await self.db.refresh(link)
        return link

    async def get(self, link_id: uuid.UUID) -> Optional[LinkShare]:
        query = select(LinkShare).filter(LinkShare.id == link_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_token(self, token: str) -> Optional[LinkShare]:
        query = select(LinkShare).filter(LinkShare.token == token)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def try_increment(self, link: LinkShare) -> bool:
        """Atomically count one access; False when the quota is already used up"""
        stmt = (
            update(LinkShare)
            .where(
                LinkShare.id == link.id,
                or_(
                    LinkShare.max_access_count.is_(None),
                    LinkShare.access_count < LinkShare.max_access_count
                )
            )
            .values(access_count=LinkShare.access_count + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        if result.rowcount != 1:
            return False
        await self.db.refresh(link)
        return True

    async def list_for_item(self, kind: ItemKind, item_id: uuid.UUID) -> List[LinkShare]:
        query = select(LinkShare).filter(
            LinkShare.item_kind == kind.value,
            LinkShare.item_id == item_id
        ).order_by(LinkShare.created_at)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def delete(self, link: LinkShare) -> None:
        await self.db.delete(link)
        await self.db.commit()
