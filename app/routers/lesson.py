# app/routers/lesson.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_current_user, get_optional_user
from app.core.exceptions import LessonLockedError, NotFoundError
from app.core.limiter import limiter
from app.core.security import jwt_manager
from app.models.lesson import Lesson
from app.models.user import User
from app.schemas.lesson import (
    LessonAvailability,
    LessonDetailResponse,
    LessonPreviewResponse,
)
from app.schemas.lesson_note import LessonNoteResponse, LessonNoteUpsert
from app.services.course import is_course_visible
from app.services.enrollment_lifecycle import EnrollmentLifecycleManager
from app.services.lesson import LessonService
from app.services.lesson_note import LessonNoteService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/lessons",
    tags=["Lessons"],
    responses={404: {"description": "Not found"}},
)


async def _get_lesson(slug: str, db: AsyncSession, user: User = None) -> Lesson:
    lesson = await LessonService(db).get_lesson_by_slug(slug)
    if not lesson:
        raise NotFoundError("Lesson not found")
    if not (user and user.is_admin) and not is_course_visible(lesson.course):
        raise NotFoundError("Lesson not found")
    return lesson


@router.get("/{slug}/preview", response_model=LessonPreviewResponse)
@limiter.limit(settings.preview_rate_limit)
async def preview_lesson(
    request: Request,
    slug: str,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """
    Public teaser for a lesson, no sign-in required.

    The returned preview_token is handed to profile completion after
    sign-up to unlock this lesson. Signed-in admins may also preview
    lessons of courses that are not visible yet.
    """
    lesson = await _get_lesson(slug, db, current_user)

    return LessonPreviewResponse(
        slug=lesson.slug,
        title=lesson.title,
        description=lesson.description,
        thumbnail_url=lesson.thumbnail_url,
        course_slug=lesson.course.slug,
        course_title=lesson.course.title,
        preview_token=jwt_manager.create_preview_token(lesson.slug),
    )


@router.get("/{slug}", response_model=LessonDetailResponse)
async def get_lesson(
    slug: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Lesson page.

    404 when the lesson does not exist, 403 with its availability when the
    drip schedule has not released it for this user.
    """
    lesson = await _get_lesson(slug, db, current_user)
    user_id = current_user.id
    lesson_data = {
        "id": lesson.id,
        "course_id": lesson.course_id,
        "course_slug": lesson.course.slug,
        "slug": lesson.slug,
        "title": lesson.title,
        "description": lesson.description,
        "thumbnail_url": lesson.thumbnail_url,
        "video_url": lesson.video_url,
        "day_number": lesson.day_number,
        "workbook_questions": lesson.workbook_questions,
    }

    manager = EnrollmentLifecycleManager(db)
    result = await manager.lesson_availability(user_id, lesson)

    if result.availability != LessonAvailability.AVAILABLE:
        logger.info(
            f"User {user_id} blocked from lesson {lesson_data['id']} ({result.availability.value})"
        )
        raise LessonLockedError(result.availability.value)

    note = await LessonNoteService(db).get_note(user_id, lesson_data["id"])

    return LessonDetailResponse(
        **lesson_data,
        availability=result.availability,
        days_since_enrollment=result.days_since_enrollment,
        note=note.content if note else None,
    )


# ==================== Notes ====================


async def _get_unlocked_lesson_id(slug: str, db: AsyncSession, user: User) -> int:
    """Notes follow the lesson page: locked lessons take no notes."""
    user_id = user.id
    lesson = await _get_lesson(slug, db, user)
    lesson_id = lesson.id

    result = await EnrollmentLifecycleManager(db).lesson_availability(user_id, lesson)
    if result.availability != LessonAvailability.AVAILABLE:
        raise LessonLockedError(result.availability.value)
    return lesson_id


@router.get("/{slug}/note", response_model=LessonNoteResponse)
async def get_note(
    slug: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user_id = current_user.id
    lesson_id = await _get_unlocked_lesson_id(slug, db, current_user)

    note = await LessonNoteService(db).get_note(user_id, lesson_id)
    if not note:
        raise NotFoundError("Note not found")
    return note


@router.put("/{slug}/note", response_model=LessonNoteResponse)
async def save_note(
    slug: str,
    note_in: LessonNoteUpsert,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create or replace the current user's note on a lesson"""
    user_id = current_user.id
    lesson_id = await _get_unlocked_lesson_id(slug, db, current_user)
    return await LessonNoteService(db).save_note(user_id, lesson_id, note_in.content)
