from fastapi import APIRouter, Depends, status
import uuid

from cloudvault.api.deps import get_current_active_user, get_share_manager
from cloudvault.models.user import User
from cloudvault.schemas.enums import ItemKind
from cloudvault.schemas.share import ItemShares, Share, ShareCreate
from cloudvault.services.shares import ShareManager

router = APIRouter()


@router.post("", response_model=Share, status_code=status.HTTP_201_CREATED)
async def share_item(
    share_data: ShareCreate,
    current_user: User = Depends(get_current_active_user),
    share_manager: ShareManager = Depends(get_share_manager)
):
    """Share a file or folder with another user"""
    return await share_manager.share_with_user(
        current_user.id,
        share_data.item_id,
        share_data.item_kind,
        share_data.email,
        share_data.permission
    )


@router.get("", response_model=ItemShares)
async def list_shares(
    item_id: uuid.UUID,
    item_kind: ItemKind,
    current_user: User = Depends(get_current_active_user),
    share_manager: ShareManager = Depends(get_share_manager)
):
    """List shares and links of an item"""
    return await share_manager.list_shares(current_user.id, item_id, item_kind)


@router.delete("/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_share(
    share_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    share_manager: ShareManager = Depends(get_share_manager)
):
    """Revoke a share"""
    await share_manager.revoke_share(current_user.id, share_id)
    return None
