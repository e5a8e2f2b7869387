# app/services/course.py
import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.decorator import db_exception
from app.core.exceptions import NotFoundError
from app.models.course import Course
from app.schemas.course import CourseCreate, CourseUpdate
from app.utils.enrollment_days import as_utc
from app.utils.slug import generate_slug

logger = logging.getLogger(__name__)


def is_course_visible(course: Course, now: Optional[datetime] = None) -> bool:
    """Active and past its start date, if it has one."""
    if not course.is_active:
        return False
    if course.start_date is None:
        return True
    now = now or datetime.now(timezone.utc)
    return as_utc(course.start_date) <= as_utc(now)


class CourseService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @db_exception
    async def create_course(self, course_in: CourseCreate) -> Course:
        """Create a new course (admin only)"""
        data = course_in.model_dump()
        if data.get("start_date"):
            data["start_date"] = as_utc(data["start_date"])

        course = Course(**data, slug=generate_slug(course_in.title))

        self.db.add(course)
        await self.db.commit()
        await self.db.refresh(course)

        logger.info(f"Course created: {course.slug}")
        return course

    @db_exception
    async def get_course(self, course_id: int) -> Optional[Course]:
        """Get a course by ID"""
        return await self.db.get(Course, course_id)

    @db_exception
    async def get_course_by_slug(self, slug: str) -> Optional[Course]:
        result = await self.db.execute(select(Course).where(Course.slug == slug))
        return result.scalar_one_or_none()

    @db_exception
    async def get_courses(
        self,
        page: int = 1,
        size: int = 20,
        search: Optional[str] = None,
        visible_only: bool = False,
    ) -> Tuple[List[Course], dict]:
        """
        Get list of courses with pagination.
        ``visible_only`` keeps active courses whose start date has passed.
        """
        conditions = []

        if visible_only:
            now = datetime.now(timezone.utc)
            conditions.append(Course.is_active.is_(True))
            conditions.append(
                or_(Course.start_date.is_(None), Course.start_date <= now)
            )

        # Search by title or description
        if search:
            search_pattern = f"%{search}%"
            conditions.append(
                or_(
                    Course.title.ilike(search_pattern),
                    Course.description.ilike(search_pattern),
                )
            )

        # Get total count
        total = (
            await self.db.execute(select(func.count(Course.id)).where(*conditions))
        ).scalar_one()

        # Apply pagination
        offset = (page - 1) * size
        result = await self.db.execute(
            select(Course)
            .where(*conditions)
            .order_by(Course.created_at.desc(), Course.id.desc())
            .offset(offset)
            .limit(size)
        )
        courses = list(result.scalars().all())

        # Pagination metadata
        total_pages = math.ceil(total / size) if size > 0 else 0
        pagination = {
            "total": total,
            "page": page,
            "size": size,
            "total_pages": total_pages,
        }

        return courses, pagination

    @db_exception
    async def update_course(self, course_id: int, course_in: CourseUpdate) -> Course:
        course = await self.db.get(Course, course_id)
        if not course:
            raise NotFoundError("Course not found")

        update_data = course_in.model_dump(exclude_unset=True)
        if update_data.get("start_date"):
            update_data["start_date"] = as_utc(update_data["start_date"])

        for field, value in update_data.items():
            setattr(course, field, value)

        await self.db.commit()
        await self.db.refresh(course)
        return course

    @db_exception
    async def delete_course(self, course_id: int) -> None:
        """Delete a course; its lessons, enrollments and overrides go with it."""
        course = await self.db.get(Course, course_id)
        if not course:
            raise NotFoundError("Course not found")

        await self.db.delete(course)
        await self.db.commit()
        logger.info(f"Course {course_id} deleted")
