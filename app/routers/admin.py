from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import pagination_params, require_role
from app.core.exceptions import NotFoundError
from app.models.user import User, UserRole
from app.schemas.course import (
    CourseCreate,
    CourseListResponse,
    CourseResponse,
    CourseUpdate,
)
from app.schemas.course_enrollment import (
    AdminEnrollmentCreate,
    AdminEnrollmentDateUpdate,
    AdminEnrollmentListResponse,
    CourseEnrollmentResponse,
)
from app.schemas.lesson import (
    LessonCreate,
    LessonListResponse,
    LessonResponse,
    LessonUpdate,
)
from app.schemas.lesson_access import (
    LessonAccessOverrideCreate,
    LessonAccessOverrideListResponse,
    LessonAccessOverrideResponse,
)
from app.schemas.user import AdminUpdateUserRequest, ListUsersResponse, UserResponse
from app.services.course import CourseService
from app.services.course_enrollment import CourseEnrollmentService
from app.services.lesson import LessonService
from app.services.lesson_access import LessonAccessOverrideService
from app.services.user import UserService

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={404: {"description": "Not found"}},
)

require_admin = require_role(UserRole.ADMIN)


# ==================== Courses ====================


@router.post("/courses", response_model=CourseResponse, status_code=201)
async def create_course(
    course_in: CourseCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Create a new course. Admin only.
    """
    return await CourseService(db).create_course(course_in)


@router.get("/courses", response_model=CourseListResponse)
async def list_courses(
    search: Optional[str] = Query(None, description="Search by title or description"),
    pagination: dict = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    All courses, including inactive and unstarted ones. Admin only.
    """
    courses, meta = await CourseService(db).get_courses(search=search, **pagination)
    return {"courses": courses, **meta}


@router.get("/courses/{course_id}", response_model=CourseResponse)
async def get_course(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    course = await CourseService(db).get_course(course_id)
    if not course:
        raise NotFoundError("Course not found")
    return course


@router.patch("/courses/{course_id}", response_model=CourseResponse)
async def update_course(
    course_id: int,
    course_in: CourseUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Update a course. Admin only.
    """
    return await CourseService(db).update_course(course_id, course_in)


@router.delete("/courses/{course_id}", status_code=204)
async def delete_course(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Delete a course with its lessons, enrollments and overrides. Admin only.
    """
    await CourseService(db).delete_course(course_id)


# ==================== Lessons ====================


@router.post("/lessons", response_model=LessonResponse, status_code=201)
async def create_lesson(
    lesson_in: LessonCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Create a lesson. Admin only.
    """
    return await LessonService(db).create_lesson(lesson_in)


@router.get("/lessons", response_model=LessonListResponse)
async def list_lessons(
    course_id: Optional[int] = Query(None, description="Filter by course"),
    pagination: dict = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    lessons, meta = await LessonService(db).get_lessons(course_id=course_id, **pagination)
    return {"lessons": lessons, **meta}


@router.get("/lessons/{lesson_id}", response_model=LessonResponse)
async def get_lesson(
    lesson_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    lesson = await LessonService(db).get_lesson(lesson_id)
    if not lesson:
        raise NotFoundError("Lesson not found")
    return lesson


@router.patch("/lessons/{lesson_id}", response_model=LessonResponse)
async def update_lesson(
    lesson_id: int,
    lesson_in: LessonUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Update a lesson. Admin only.
    """
    return await LessonService(db).update_lesson(lesson_id, lesson_in)


@router.delete("/lessons/{lesson_id}", status_code=204)
async def delete_lesson(
    lesson_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Delete a lesson with its overrides and notes. Admin only.
    """
    await LessonService(db).delete_lesson(lesson_id)


# ==================== Enrollments ====================


@router.get("/enrollments", response_model=AdminEnrollmentListResponse)
async def list_enrollments(
    course_id: Optional[int] = Query(None, description="Filter by course"),
    pagination: dict = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Enrollments newest first, with user and course names. Admin only.
    """
    rows, meta = await CourseEnrollmentService(db).list_enrollments(
        course_id=course_id, **pagination
    )
    return {"enrollments": rows, **meta}


@router.post("/enrollments", response_model=CourseEnrollmentResponse, status_code=201)
async def create_enrollment(
    enrollment_in: AdminEnrollmentCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Enroll a user, optionally backdated. 409 if already enrolled. Admin only.
    """
    if not await UserService(db).get_user(enrollment_in.user_id):
        raise NotFoundError("User not found")
    if not await CourseService(db).get_course(enrollment_in.course_id):
        raise NotFoundError("Course not found")

    return await CourseEnrollmentService(db).create_enrollment(
        enrollment_in.user_id,
        enrollment_in.course_id,
        enrolled_at=enrollment_in.enrolled_at,
    )


@router.patch("/enrollments/{enrollment_id}", response_model=CourseEnrollmentResponse)
async def update_enrollment_date(
    enrollment_id: int,
    update_in: AdminEnrollmentDateUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Move the start of a user's drip schedule. Admin only.
    """
    return await CourseEnrollmentService(db).update_enrollment_date(
        enrollment_id, update_in.enrolled_at
    )


@router.delete("/enrollments/{enrollment_id}", status_code=204)
async def delete_enrollment(
    enrollment_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Delete an enrollment. The user is re-enrolled on their next course
    visit with a fresh start date. Admin only.
    """
    await CourseEnrollmentService(db).delete_enrollment(enrollment_id)


# ==================== Access Overrides ====================


@router.get("/overrides", response_model=LessonAccessOverrideListResponse)
async def list_overrides(
    user_id: Optional[int] = Query(None, description="Filter by user"),
    course_id: Optional[int] = Query(None, description="Filter by course"),
    pagination: dict = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    overrides, meta = await LessonAccessOverrideService(db).list_overrides(
        user_id=user_id, course_id=course_id, **pagination
    )
    return {"overrides": overrides, **meta}


@router.post(
    "/overrides", response_model=LessonAccessOverrideResponse, status_code=201
)
async def grant_override(
    override_in: LessonAccessOverrideCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Unlock one lesson for one user regardless of the drip schedule.
    Granting an existing override returns it unchanged. Admin only.
    """
    if not await UserService(db).get_user(override_in.user_id):
        raise NotFoundError("User not found")

    lesson = await LessonService(db).get_lesson(override_in.lesson_id)
    if not lesson:
        raise NotFoundError("Lesson not found")

    service = LessonAccessOverrideService(db)
    await service.grant_override(override_in.user_id, lesson.id, lesson.course_id)
    return await service.get_override(override_in.user_id, override_in.lesson_id)


@router.delete("/overrides/{override_id}", status_code=204)
async def revoke_override(
    override_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Revoke an override; the lesson falls back to the drip schedule. Admin only.
    """
    await LessonAccessOverrideService(db).revoke_override(override_id)


# ==================== Users ====================


@router.get("/users", response_model=ListUsersResponse)
async def list_users(
    search: Optional[str] = Query(None, description="Search by name or email"),
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    pagination: dict = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    users, meta = await UserService(db).get_all_users(
        search=search, role=role, **pagination
    )
    return {"users": users, **meta}


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    user = await UserService(db).get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    update_in: AdminUpdateUserRequest,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Edit a user's name, email or role. Admin only.
    """
    return await UserService(db).update_user(user_id, update_in)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin),
):
    """
    Delete a user with their enrollments, overrides and notes. Admin only.
    """
    await UserService(db).delete_user(user_id)
    return {"message": "User deleted successfully"}
