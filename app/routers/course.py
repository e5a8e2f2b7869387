# app/routers/course.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user, pagination_params
from app.core.exceptions import NotFoundError
from app.models.course import Course
from app.models.user import User
from app.schemas.course import CourseListResponse, CoursePageResponse, CourseResponse
from app.schemas.course_enrollment import (
    CourseEnrollmentResponse,
    EnrollmentStatusResponse,
)
from app.schemas.lesson import LessonCardResponse
from app.services.course import CourseService, is_course_visible
from app.services.enrollment_lifecycle import EnrollmentLifecycleManager

router = APIRouter(
    prefix="/courses",
    tags=["Courses"],
    responses={404: {"description": "Not found"}},
)


async def _get_visible_course(slug: str, user: User, db: AsyncSession) -> Course:
    course = await CourseService(db).get_course_by_slug(slug)
    # Inactive or unstarted courses look missing to everyone but admins
    if not course or not (user.is_admin or is_course_visible(course)):
        raise NotFoundError("Course not found")
    return course


@router.get("/", response_model=CourseListResponse)
async def list_courses(
    search: Optional[str] = Query(None, description="Search by title or description"),
    pagination: dict = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Get active courses that have started.
    """
    courses, meta = await CourseService(db).get_courses(
        search=search, visible_only=True, **pagination
    )
    return {"courses": courses, **meta}


@router.get("/{slug}", response_model=CoursePageResponse)
async def get_course_page(
    slug: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Course page.

    Visiting enrolls the user on the spot. Only available and coming-soon
    lessons are returned, without video URLs. If the
    enrollment could not be confirmed the page still renders, drip-locked,
    with a warning.
    """
    course = await _get_visible_course(slug, current_user, db)
    course_out = CourseResponse.model_validate(course)

    manager = EnrollmentLifecycleManager(db)
    result = await manager.course_availability(current_user.id, course_out.id)

    lessons = [
        LessonCardResponse(**item.lesson.model_dump(), availability=item.availability)
        for item in result.lessons
    ]

    return CoursePageResponse(
        course=course_out,
        is_enrolled=result.enrollment is not None,
        enrolled_at=result.enrollment.enrolled_at if result.enrollment else None,
        days_since_enrollment=result.days_since_enrollment,
        lessons=lessons,
        warnings=result.warnings,
    )


@router.get("/{slug}/enrollment", response_model=EnrollmentStatusResponse)
async def get_enrollment_status(
    slug: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Whether the current user is enrolled, without enrolling them."""
    course = await _get_visible_course(slug, current_user, db)

    manager = EnrollmentLifecycleManager(db)
    status = await manager.enrollment_status(current_user.id, course.id)

    return EnrollmentStatusResponse(
        is_enrolled=status.is_enrolled,
        enrollment=(
            CourseEnrollmentResponse.model_validate(status.enrollment)
            if status.enrollment
            else None
        ),
        days_since_enrollment=manager.days_for_enrollment(status.enrollment),
    )
