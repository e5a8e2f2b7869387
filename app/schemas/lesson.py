# app/schemas/lesson.py
import enum
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LessonAvailability(str, enum.Enum):
    AVAILABLE = "available"
    COMING_SOON = "coming_soon"
    HIDDEN = "hidden"


# ==================== Lesson Schemas ====================


class LessonBase(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: Optional[str] = None
    workbook: Optional[str] = Field(
        None, description="Reflection questions, one per line"
    )
    thumbnail_url: Optional[str] = None
    video_url: str = Field(..., min_length=1)
    day_number: int = Field(1, ge=1, description="Drip day on which it unlocks")


class LessonCreate(LessonBase):
    course_id: int = Field(..., gt=0)


class LessonUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = None
    workbook: Optional[str] = None
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = Field(None, min_length=1)
    day_number: Optional[int] = Field(None, ge=1)


class LessonResponse(LessonBase):
    """Full lesson record (admin views)"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    slug: str
    created_at: datetime
    updated_at: datetime


class LessonListResponse(BaseModel):
    lessons: List[LessonResponse]
    total: int
    page: int
    size: int
    total_pages: int


class LessonSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    day_number: int


class LessonCardResponse(LessonSummary):
    """Lesson entry on a course page; locked lessons carry no video"""

    availability: LessonAvailability


class LessonDetailResponse(BaseModel):
    """Lesson page for a learner who may watch it"""

    id: int
    course_id: int
    course_slug: str
    slug: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    video_url: str
    day_number: int
    workbook_questions: List[str] = Field(default_factory=list)
    availability: LessonAvailability
    days_since_enrollment: int
    note: Optional[str] = None


class LessonPreviewResponse(BaseModel):
    """Public teaser shown before sign-up"""

    slug: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    course_slug: str
    course_title: str
    preview_token: str = Field(
        ..., description="Pass to profile completion to unlock this lesson"
    )
