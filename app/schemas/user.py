# app/schemas/user.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.user import UserRole
from app.schemas.lesson_access import AccessGrantResponse


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: UserRole
    created_at: datetime
    updated_at: datetime


class CompleteProfileRequest(BaseModel):
    """Sent once after sign-up, before any course page is reachable"""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(..., min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    avatar_url: Optional[str] = None
    preview_token: Optional[str] = Field(
        None,
        description="Token from a lesson preview; unlocks that lesson on completion",
    )


class CompleteProfileResponse(BaseModel):
    user: UserResponse
    lesson_access: Optional[AccessGrantResponse] = None
    redirect_to: str = Field("/home", description="Where the client should go next")


class UpdateProfileRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(..., min_length=2, max_length=255)


class AdminUpdateUserRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None


class ListUsersResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int
    size: int
    total_pages: int
