# app/schemas/lesson_access.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# ==================== Access Override Schemas ====================


class LessonAccessOverrideCreate(BaseModel):
    """Admin grant of one lesson to one user, bypassing the drip schedule"""

    user_id: int = Field(..., gt=0)
    lesson_id: int = Field(..., gt=0)


class LessonAccessOverrideResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    lesson_id: int
    course_id: int
    granted_at: datetime


class LessonAccessOverrideListResponse(BaseModel):
    overrides: List[LessonAccessOverrideResponse]
    total: int
    page: int
    size: int
    total_pages: int


class AccessGrantResponse(BaseModel):
    """Outcome of unlocking a previewed lesson after profile completion"""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    lesson_slug: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
