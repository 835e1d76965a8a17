from fastapi import APIRouter, Depends

from cloudvault.api.deps import get_current_active_user
from cloudvault.schemas.user import User
from cloudvault.models.user import User as UserModel

router = APIRouter()


@router.get("/me", response_model=User)
async def get_current_user_profile(
    current_user: UserModel = Depends(get_current_active_user)
):
    """Get current user profile"""
    return current_user
