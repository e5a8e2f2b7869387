# app/services/lesson.py
import logging
import math
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.decorator import db_exception
from app.core.exceptions import NotFoundError
from app.models.course import Course
from app.models.lesson import Lesson
from app.schemas.lesson import LessonCreate, LessonUpdate
from app.utils.slug import generate_slug

logger = logging.getLogger(__name__)


class LessonService:
    """
    Lesson catalog.

    Reads always return lessons ordered by day number, the order the drip
    resolver and course pages expect.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Catalog ====================

    @db_exception
    async def get_lesson(self, lesson_id: int) -> Optional[Lesson]:
        return await self.db.get(Lesson, lesson_id)

    @db_exception
    async def get_lesson_by_slug(self, slug: str) -> Optional[Lesson]:
        """Get a lesson with its course loaded"""
        result = await self.db.execute(
            select(Lesson)
            .options(selectinload(Lesson.course))
            .where(Lesson.slug == slug)
        )
        return result.scalar_one_or_none()

    @db_exception
    async def list_course_lessons(self, course_id: int) -> List[Lesson]:
        result = await self.db.execute(
            select(Lesson)
            .where(Lesson.course_id == course_id)
            .order_by(Lesson.day_number.asc(), Lesson.id.asc())
        )
        return list(result.scalars().all())

    # ==================== Admin ====================

    @db_exception
    async def get_lessons(
        self,
        course_id: Optional[int] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Lesson], dict]:
        conditions = []
        if course_id is not None:
            conditions.append(Lesson.course_id == course_id)

        total = (
            await self.db.execute(select(func.count(Lesson.id)).where(*conditions))
        ).scalar_one()

        offset = (page - 1) * size
        result = await self.db.execute(
            select(Lesson)
            .where(*conditions)
            .order_by(Lesson.course_id.asc(), Lesson.day_number.asc(), Lesson.id.asc())
            .offset(offset)
            .limit(size)
        )
        lessons = list(result.scalars().all())

        total_pages = math.ceil(total / size) if size > 0 else 0
        pagination = {
            "total": total,
            "page": page,
            "size": size,
            "total_pages": total_pages,
        }

        return lessons, pagination

    @db_exception
    async def create_lesson(self, lesson_in: LessonCreate) -> Lesson:
        """Create a lesson in an existing course (admin only)"""
        course = await self.db.get(Course, lesson_in.course_id)
        if not course:
            raise NotFoundError("Course not found")

        lesson = Lesson(**lesson_in.model_dump(), slug=generate_slug(lesson_in.title))

        self.db.add(lesson)
        await self.db.commit()
        await self.db.refresh(lesson)

        logger.info(
            f"Lesson created: {lesson.slug} (course {lesson.course_id}, day {lesson.day_number})"
        )
        return lesson

    @db_exception
    async def update_lesson(self, lesson_id: int, lesson_in: LessonUpdate) -> Lesson:
        lesson = await self.db.get(Lesson, lesson_id)
        if not lesson:
            raise NotFoundError("Lesson not found")

        update_data = lesson_in.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if field in ("title", "video_url", "day_number") and value is None:
                continue
            setattr(lesson, field, value)

        await self.db.commit()
        await self.db.refresh(lesson)
        return lesson

    @db_exception
    async def delete_lesson(self, lesson_id: int) -> None:
        """Delete a lesson; its overrides and notes go with it."""
        lesson = await self.db.get(Lesson, lesson_id)
        if not lesson:
            raise NotFoundError("Lesson not found")

        await self.db.delete(lesson)
        await self.db.commit()
        logger.info(f"Lesson {lesson_id} deleted")
