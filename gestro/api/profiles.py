"""
Signed-in user's own profile.
"""

from fastapi import APIRouter, Depends, HTTPException

from gestro.api.deps import get_context, require_user
from gestro.models import Profile
from gestro.schemas import ProfileResponse, ProfileUpdate
from gestro.services.context import ServiceContext
from gestro.services.profiles import ProfileRepository

router = APIRouter(prefix="/api/me", tags=["Profile"])


@router.get("", response_model=ProfileResponse)
async def get_me(user: Profile = Depends(require_user)):
    return user


@router.patch("", response_model=ProfileResponse)
async def update_me(
    data: ProfileUpdate,
    ctx: ServiceContext = Depends(get_context),
    user: Profile = Depends(require_user),
):
    """Update name and phone; the phone number is used for order SMS updates."""
    profile = await ProfileRepository(ctx).update_profile(user.id, data)
    if profile is None:
        raise HTTPException(status_code=500, detail="Could not update profile")
    return profile
