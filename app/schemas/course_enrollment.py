# app/schemas/course_enrollment.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# ==================== Course Enrollment Schemas ====================


class CourseEnrollmentResponse(BaseModel):
    """Schema for course enrollment response"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    course_id: int
    status: str
    enrolled_at: datetime
    created_at: datetime
    updated_at: datetime


class EnrollmentStatusResponse(BaseModel):
    is_enrolled: bool
    enrollment: Optional[CourseEnrollmentResponse] = None
    days_since_enrollment: int = 0


class AdminEnrollmentView(BaseModel):
    """Enrollment row with user and course names for the admin table"""

    id: int
    user_id: int
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    course_id: int
    course_title: str
    status: str
    enrolled_at: datetime


class AdminEnrollmentListResponse(BaseModel):
    enrollments: List[AdminEnrollmentView]
    total: int
    page: int
    size: int
    total_pages: int


class AdminEnrollmentCreate(BaseModel):
    user_id: int = Field(..., gt=0)
    course_id: int = Field(..., gt=0)
    enrolled_at: Optional[datetime] = Field(
        None, description="Defaults to now; earlier dates unlock more lessons"
    )


class AdminEnrollmentDateUpdate(BaseModel):
    enrolled_at: datetime = Field(..., description="New start of the drip schedule")
