from typing import Optional
from fastapi import APIRouter, Depends, status
import uuid

from cloudvault.api.deps import get_current_active_user, get_share_manager
from cloudvault.models.user import User
from cloudvault.schemas.share import LinkResolveRequest, LinkShare, LinkShareCreate, ResolvedLink
from cloudvault.services.shares import ShareManager

router = APIRouter()


@router.post("", response_model=LinkShare, status_code=status.HTTP_201_CREATED)
async def create_link(
    link_data: LinkShareCreate,
    current_user: User = Depends(get_current_active_user),
    share_manager: ShareManager = Depends(get_share_manager)
):
    """Create a public link to a file or folder"""
    return await share_manager.create_public_link(
        current_user.id,
        link_data.item_id,
        link_data.item_kind,
        permission=link_data.permission,
        password=link_data.password,
        expires_at=link_data.expires_at,
        max_access_count=link_data.max_access_count
    )


@router.delete("/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_link(
    link_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    share_manager: ShareManager = Depends(get_share_manager)
):
    """Revoke a public link"""
    await share_manager.revoke_public_link(current_user.id, link_id)
    return None


@router.post("/{token}/resolve", response_model=ResolvedLink)
async def resolve_link(
    token: str,
    body: Optional[LinkResolveRequest] = None,
    share_manager: ShareManager = Depends(get_share_manager)
):
    """Open a public link (no authentication required)"""
    return await share_manager.resolve_public_link(token, body.password if body else None)
