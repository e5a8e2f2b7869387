# app/services/enrollment_lifecycle.py
"""
Enrollment lifecycle.

Composes the enrollment store, the override store and the lesson catalog
into the flows a page render needs: implicit enrollment on first visit,
elapsed drip days, lesson classification and the preview-to-signup grant.

Ordering within one render is fixed: enrollment is ensured first, then
elapsed days are computed, then lessons are classified.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.decorator import db_exception
from app.core.exceptions import (
    ConflictError,
    DBException,
    NotFoundError,
    StoreUnavailableError,
)
from app.models.course import Course
from app.models.course_enrollment import CourseEnrollment
from app.models.lesson import Lesson
from app.schemas.lesson import LessonAvailability, LessonSummary
from app.services.course_enrollment import CourseEnrollmentService
from app.services.drip import (
    LessonRef,
    ResolvedLesson,
    resolve_course_lessons,
    resolve_lesson_availability,
)
from app.services.lesson import LessonService
from app.services.lesson_access import LessonAccessOverrideService
from app.utils.enrollment_days import days_since_enrollment

logger = logging.getLogger(__name__)

ENROLLMENT_WARNING = (
    "We could not confirm your enrollment right now; "
    "some lessons may appear locked. Please reload in a moment."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AccessGrantResult:
    success: bool
    lesson_slug: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


@dataclass
class EnrollmentStatus:
    is_enrolled: bool
    enrollment: Optional[CourseEnrollment] = None


@dataclass
class CourseAvailability:
    """Everything a course page needs, hidden lessons already removed."""

    enrollment: Optional[CourseEnrollment]
    days_since_enrollment: int
    lessons: List[ResolvedLesson] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class LessonAvailabilityResult:
    enrollment: Optional[CourseEnrollment]
    days_since_enrollment: int
    availability: LessonAvailability
    warnings: List[str] = field(default_factory=list)


class EnrollmentLifecycleManager:
    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = _utcnow,
        utc_offset_hours: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.utc_offset_hours = (
            settings.business_utc_offset_hours
            if utc_offset_hours is None
            else utc_offset_hours
        )
        self.enrollments = CourseEnrollmentService(db)
        self.overrides = LessonAccessOverrideService(db)
        self.lessons = LessonService(db)

    # ==================== Enrollment ====================

    async def ensure_enrolled(self, user_id: int, course_id: int) -> CourseEnrollment:
        """
        Return the user's enrollment in the course, creating it on first call.

        A concurrent creator winning the unique constraint is treated as
        success and its row is returned, so every caller sees the same
        enrolled_at. Raises NotFoundError for an unknown course.
        """
        enrollment = await self.enrollments.find_enrollment(user_id, course_id)
        if enrollment:
            return enrollment

        if not await self._course_exists(course_id):
            raise NotFoundError("Course not found")

        try:
            return await self.enrollments.create_enrollment(
                user_id, course_id, enrolled_at=self.clock()
            )
        except ConflictError:
            logger.info(
                f"Enrollment race for user {user_id} in course {course_id}, re-fetching"
            )

        enrollment = await self.enrollments.find_enrollment(user_id, course_id)
        if enrollment is None:
            # Constraint fired but the row is gone: user or course was deleted
            raise NotFoundError("Course or user not found")
        return enrollment

    async def try_ensure_enrolled(
        self, user_id: int, course_id: int, warnings: List[str]
    ) -> Optional[CourseEnrollment]:
        """
        Page-render variant of ensure_enrolled: store failures degrade to
        "not enrolled" and append a warning instead of raising.
        """
        try:
            return await self.ensure_enrolled(user_id, course_id)
        except StoreUnavailableError as e:
            logger.warning(
                f"Could not ensure enrollment of user {user_id} in course {course_id}: {e}"
            )
            warnings.append(ENROLLMENT_WARNING)
            return None

    async def enrollment_status(self, user_id: int, course_id: int) -> EnrollmentStatus:
        enrollment = await self.enrollments.find_enrollment(user_id, course_id)
        return EnrollmentStatus(is_enrolled=enrollment is not None, enrollment=enrollment)

    def days_for_enrollment(self, enrollment: Optional[CourseEnrollment]) -> int:
        """0 without an enrollment or a known date, otherwise the drip day."""
        if enrollment is None or enrollment.enrolled_at is None:
            return 0
        return days_since_enrollment(
            enrollment.enrolled_at, self.clock(), self.utc_offset_hours
        )

    async def days_since_enrollment_for_course(self, user_id: int, course_id: int) -> int:
        try:
            enrollment = await self.enrollments.find_enrollment(user_id, course_id)
        except StoreUnavailableError as e:
            logger.warning(
                f"Enrollment lookup failed for user {user_id} in course {course_id}: {e}"
            )
            return 0
        return self.days_for_enrollment(enrollment)

    # ==================== Overrides ====================

    async def has_lesson_override(self, user_id: int, lesson_id: int) -> bool:
        try:
            return await self.overrides.has_override(user_id, lesson_id)
        except StoreUnavailableError as e:
            logger.warning(
                f"Override lookup failed for user {user_id}, lesson {lesson_id}: {e}"
            )
            return False

    async def overridden_lesson_ids(
        self, user_id: int, lesson_ids: Iterable[int]
    ) -> Set[int]:
        try:
            return await self.overrides.overridden_lesson_ids(user_id, lesson_ids)
        except StoreUnavailableError as e:
            logger.warning(f"Batched override lookup failed for user {user_id}: {e}")
            return set()

    async def grant_lesson_access_on_signup(
        self, lesson_slug: str, user_id: int
    ) -> AccessGrantResult:
        """
        Unlock the lesson a new user previewed before signing up.

        Enrolls the user in the lesson's course and grants an override for
        that one lesson only. Failures are returned, never raised.
        """
        try:
            lesson = await self._lesson_ref_for_slug(lesson_slug)
            if lesson is None:
                logger.warning(f"Signup grant: lesson '{lesson_slug}' not found")
                return AccessGrantResult(
                    success=False,
                    lesson_slug=lesson_slug,
                    error="Lesson not found",
                )

            lesson_id, course_id = lesson
            await self.ensure_enrolled(user_id, course_id)
            await self.overrides.grant_override(user_id, lesson_id, course_id)
        except DBException as e:
            logger.warning(
                f"Signup grant of '{lesson_slug}' to user {user_id} failed: {e.message}"
            )
            return AccessGrantResult(
                success=False, lesson_slug=lesson_slug, error=e.message
            )

        logger.info(f"Signup grant: user {user_id} unlocked lesson '{lesson_slug}'")
        return AccessGrantResult(
            success=True,
            lesson_slug=lesson_slug,
            message="Lesson unlocked",
        )

    # ==================== Page flows ====================

    async def course_availability(
        self, user_id: int, course_id: int
    ) -> CourseAvailability:
        """Ensure enrollment, compute days, then classify every lesson."""
        warnings: List[str] = []

        enrollment = await self.try_ensure_enrolled(user_id, course_id, warnings)
        days = self.days_for_enrollment(enrollment)

        lessons = [
            LessonSummary.model_validate(lesson)
            for lesson in await self.lessons.list_course_lessons(course_id)
        ]
        resolved = await resolve_course_lessons(
            lessons,
            days,
            lambda ids: self.overridden_lesson_ids(user_id, ids),
        )

        return CourseAvailability(
            enrollment=enrollment,
            days_since_enrollment=days,
            lessons=resolved,
            warnings=warnings,
        )

    async def lesson_availability(
        self, user_id: int, lesson: Lesson
    ) -> LessonAvailabilityResult:
        warnings: List[str] = []
        # Read before any write: a rollback expires loaded instances
        ref = LessonRef(id=lesson.id, day_number=lesson.day_number)
        course_id = lesson.course_id

        enrollment = await self.try_ensure_enrolled(user_id, course_id, warnings)
        days = self.days_for_enrollment(enrollment)

        availability = await resolve_lesson_availability(
            ref,
            days,
            lambda lesson_id: self.has_lesson_override(user_id, lesson_id),
        )

        return LessonAvailabilityResult(
            enrollment=enrollment,
            days_since_enrollment=days,
            availability=availability,
            warnings=warnings,
        )

    # ==================== Helpers ====================

    @db_exception
    async def _course_exists(self, course_id: int) -> bool:
        result = await self.db.execute(select(Course.id).where(Course.id == course_id))
        return result.first() is not None

    @db_exception
    async def _lesson_ref_for_slug(self, lesson_slug: str) -> Optional[Tuple[int, int]]:
        """(lesson id, course id) for a slug, or None."""
        result = await self.db.execute(
            select(Lesson.id, Lesson.course_id).where(Lesson.slug == lesson_slug)
        )
        row = result.first()
        return (row.id, row.course_id) if row else None
