# app/schemas/course.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.lesson import LessonCardResponse

# ==================== Course Schemas ====================


class CourseBase(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    subtitle: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    is_active: bool = True
    start_date: Optional[datetime] = None


class CourseCreate(CourseBase):
    pass


class CourseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=255)
    subtitle: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None


class CourseResponse(CourseBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    created_at: datetime
    updated_at: datetime


class CourseListResponse(BaseModel):
    courses: List[CourseResponse]
    total: int
    page: int
    size: int
    total_pages: int


class CoursePageResponse(BaseModel):
    """Course page for a learner: only available and coming-soon lessons"""

    course: CourseResponse
    is_enrolled: bool
    enrolled_at: Optional[datetime] = None
    days_since_enrollment: int = Field(
        0, description="1-based drip day, 0 when not enrolled"
    )
    lessons: List[LessonCardResponse]
    warnings: List[str] = Field(default_factory=list)
