# app/services/lesson_access.py
import logging
import math
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.decorator import db_exception
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.lesson import Lesson
from app.models.lesson_access_override import LessonAccessOverride

logger = logging.getLogger(__name__)


class LessonAccessOverrideService:
    """
    Per-user, per-lesson grants that bypass the drip schedule.

    Grants are idempotent: a second grant of the same (user, lesson) pair is
    a no-op, including when two requests race on the unique constraint.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @db_exception
    async def has_override(self, user_id: int, lesson_id: int) -> bool:
        result = await self.db.execute(
            select(LessonAccessOverride.id).where(
                LessonAccessOverride.user_id == user_id,
                LessonAccessOverride.lesson_id == lesson_id,
            )
        )
        return result.first() is not None

    @db_exception
    async def overridden_lesson_ids(
        self, user_id: int, lesson_ids: Iterable[int]
    ) -> Set[int]:
        """Subset of ``lesson_ids`` the user holds an override for."""
        lesson_ids = list(lesson_ids)
        if not lesson_ids:
            return set()

        result = await self.db.execute(
            select(LessonAccessOverride.lesson_id).where(
                LessonAccessOverride.user_id == user_id,
                LessonAccessOverride.lesson_id.in_(lesson_ids),
            )
        )
        return set(result.scalars().all())

    async def grant_override(self, user_id: int, lesson_id: int, course_id: int) -> None:
        """
        Record an override for (user, lesson).

        ``course_id`` must be the lesson's own course. An existing override,
        or one inserted concurrently, counts as success.
        """
        lesson_course_id = await self._lesson_course_id(lesson_id)
        if lesson_course_id is None:
            raise NotFoundError("Lesson not found")
        if lesson_course_id != course_id:
            raise ValidationError(
                f"Lesson {lesson_id} belongs to course {lesson_course_id}, not {course_id}"
            )

        if await self.has_override(user_id, lesson_id):
            return

        try:
            await self._insert_override(user_id, lesson_id, course_id)
        except ConflictError:
            logger.info(
                f"Override for user {user_id} on lesson {lesson_id} already granted"
            )
            return

        logger.info(f"Granted user {user_id} access to lesson {lesson_id}")

    @db_exception
    async def _lesson_course_id(self, lesson_id: int) -> Optional[int]:
        result = await self.db.execute(
            select(Lesson.course_id).where(Lesson.id == lesson_id)
        )
        return result.scalar_one_or_none()

    @db_exception
    async def _insert_override(
        self, user_id: int, lesson_id: int, course_id: int
    ) -> LessonAccessOverride:
        override = LessonAccessOverride(
            user_id=user_id, lesson_id=lesson_id, course_id=course_id
        )
        self.db.add(override)
        await self.db.commit()
        await self.db.refresh(override)
        return override

    # ==================== Admin ====================

    @db_exception
    async def list_overrides(
        self,
        user_id: Optional[int] = None,
        course_id: Optional[int] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[LessonAccessOverride], dict]:
        query = select(LessonAccessOverride)
        count_query = select(func.count(LessonAccessOverride.id))
        if user_id is not None:
            query = query.where(LessonAccessOverride.user_id == user_id)
            count_query = count_query.where(LessonAccessOverride.user_id == user_id)
        if course_id is not None:
            query = query.where(LessonAccessOverride.course_id == course_id)
            count_query = count_query.where(
                LessonAccessOverride.course_id == course_id
            )

        total = (await self.db.execute(count_query)).scalar_one()

        offset = (page - 1) * size
        result = await self.db.execute(
            query.order_by(
                LessonAccessOverride.granted_at.desc(), LessonAccessOverride.id.desc()
            )
            .offset(offset)
            .limit(size)
        )
        overrides = list(result.scalars().all())

        total_pages = math.ceil(total / size) if size > 0 else 0
        pagination = {
            "total": total,
            "page": page,
            "size": size,
            "total_pages": total_pages,
        }

        return overrides, pagination

    @db_exception
    async def get_override(self, user_id: int, lesson_id: int) -> LessonAccessOverride:
        result = await self.db.execute(
            select(LessonAccessOverride).where(
                LessonAccessOverride.user_id == user_id,
                LessonAccessOverride.lesson_id == lesson_id,
            )
        )
        override = result.scalar_one_or_none()
        if not override:
            raise NotFoundError("Override not found")
        return override

    @db_exception
    async def revoke_override(self, override_id: int) -> None:
        override = await self.db.get(LessonAccessOverride, override_id)
        if not override:
            raise NotFoundError("Override not found")

        await self.db.delete(override)
        await self.db.commit()
        logger.info(
            f"Revoked override {override_id} (user {override.user_id}, lesson {override.lesson_id})"
        )
