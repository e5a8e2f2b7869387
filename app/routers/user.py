# app/routers/user.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user, get_external_user_id
from app.core.security import jwt_manager
from app.models.user import User
from app.schemas.lesson_access import AccessGrantResponse
from app.schemas.user import (
    CompleteProfileRequest,
    CompleteProfileResponse,
    UpdateProfileRequest,
    UserResponse,
)
from app.services.enrollment_lifecycle import EnrollmentLifecycleManager
from app.services.user import UserService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    responses={404: {"description": "Not found"}},
)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the current user's profile"""
    return current_user


@router.post("/me/profile", response_model=CompleteProfileResponse)
async def complete_profile(
    profile_in: CompleteProfileRequest,
    external_id: str = Depends(get_external_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Complete the profile after signing up with the identity provider.

    When the visitor arrived from a lesson preview, pass its preview_token:
    the user is enrolled in that lesson's course and the lesson is unlocked
    immediately, and the client is redirected to it. The token is only
    honoured on the call that first completes the profile.
    """
    user, first_completion = await UserService(db).complete_profile(
        external_id, profile_in
    )
    user_out = UserResponse.model_validate(user)

    lesson_access = None
    redirect_to = "/home"

    if profile_in.preview_token:
        lesson_slug = jwt_manager.verify_preview_token(profile_in.preview_token)
        if not first_completion:
            # A preview unlocks a lesson once, at sign-up; not on profile edits
            logger.warning(
                f"User {user_out.id} sent a preview token after signing up, ignored"
            )
            lesson_access = AccessGrantResponse(
                success=False,
                lesson_slug=lesson_slug,
                error="Preview tokens only apply when signing up",
            )
        elif lesson_slug is None:
            lesson_access = AccessGrantResponse(
                success=False, error="Invalid or expired preview token"
            )
        else:
            result = await EnrollmentLifecycleManager(db).grant_lesson_access_on_signup(
                lesson_slug, user_out.id
            )
            lesson_access = AccessGrantResponse.model_validate(result)
            if result.success:
                redirect_to = f"/lessons/{lesson_slug}"

    return CompleteProfileResponse(
        user=user_out,
        lesson_access=lesson_access,
        redirect_to=redirect_to,
    )


@router.patch("/me", response_model=UserResponse)
async def update_me(
    update_in: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Update the current user's display name"""
    return await UserService(db).update_profile(current_user, update_in.full_name)
