# app/services/course_enrollment.py
import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.decorator import db_exception
from app.core.exceptions import NotFoundError
from app.models.course import Course
from app.models.course_enrollment import CourseEnrollment
from app.models.user import User
from app.utils.enrollment_days import as_utc

logger = logging.getLogger(__name__)


class CourseEnrollmentService:
    """
    Persistence for (user, course) enrollments.

    The unique (user_id, course_id) constraint is the only guard against
    duplicates; a rejected insert surfaces as ConflictError.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @db_exception
    async def find_enrollment(
        self, user_id: int, course_id: int
    ) -> Optional[CourseEnrollment]:
        """Get specific enrollment for a user and course"""
        result = await self.db.execute(
            select(CourseEnrollment).where(
                CourseEnrollment.user_id == user_id,
                CourseEnrollment.course_id == course_id,
            )
        )
        return result.scalar_one_or_none()

    @db_exception
    async def create_enrollment(
        self,
        user_id: int,
        course_id: int,
        enrolled_at: Optional[datetime] = None,
    ) -> CourseEnrollment:
        enrollment = CourseEnrollment(
            user_id=user_id,
            course_id=course_id,
            status="enrolled",
            enrolled_at=as_utc(enrolled_at) if enrolled_at else datetime.now(timezone.utc),
        )
        self.db.add(enrollment)
        await self.db.commit()
        await self.db.refresh(enrollment)

        logger.info(f"User {user_id} enrolled in course {course_id}")
        return enrollment

    # ==================== Admin ====================

    @db_exception
    async def list_enrollments(
        self,
        course_id: Optional[int] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[dict], dict]:
        """
        Get enrollments newest first, joined with user and course names.
        Returns rows shaped for the admin table and pagination metadata.
        """
        query = (
            select(CourseEnrollment, User, Course)
            .join(User, CourseEnrollment.user_id == User.id)
            .join(Course, CourseEnrollment.course_id == Course.id)
        )
        count_query = select(func.count(CourseEnrollment.id))
        if course_id is not None:
            query = query.where(CourseEnrollment.course_id == course_id)
            count_query = count_query.where(CourseEnrollment.course_id == course_id)

        total = (await self.db.execute(count_query)).scalar_one()

        offset = (page - 1) * size
        result = await self.db.execute(
            query.order_by(
                CourseEnrollment.enrolled_at.desc(), CourseEnrollment.id.desc()
            )
            .offset(offset)
            .limit(size)
        )

        rows = [
            {
                "id": enrollment.id,
                "user_id": user.id,
                "user_name": user.full_name,
                "user_email": user.email,
                "course_id": course.id,
                "course_title": course.title,
                "status": enrollment.status,
                "enrolled_at": enrollment.enrolled_at,
            }
            for enrollment, user, course in result.all()
        ]

        total_pages = math.ceil(total / size) if size > 0 else 0
        pagination = {
            "total": total,
            "page": page,
            "size": size,
            "total_pages": total_pages,
        }

        return rows, pagination

    @db_exception
    async def update_enrollment_date(
        self, enrollment_id: int, enrolled_at: datetime
    ) -> CourseEnrollment:
        """Move the start of a user's drip schedule. Admin only."""
        enrollment = await self.db.get(CourseEnrollment, enrollment_id)
        if not enrollment:
            raise NotFoundError("Enrollment not found")

        enrollment.enrolled_at = as_utc(enrolled_at)
        await self.db.commit()
        await self.db.refresh(enrollment)

        logger.info(f"Enrollment {enrollment_id} start moved to {enrolled_at}")
        return enrollment

    @db_exception
    async def delete_enrollment(self, enrollment_id: int) -> None:
        enrollment = await self.db.get(CourseEnrollment, enrollment_id)
        if not enrollment:
            raise NotFoundError("Enrollment not found")

        await self.db.delete(enrollment)
        await self.db.commit()
        logger.info(f"Enrollment {enrollment_id} deleted")
