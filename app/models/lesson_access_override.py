# app/models/lesson_access_override.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.sql import func

from app.core.database import Base


class LessonAccessOverride(Base):
    """
    Lets one user view one lesson regardless of the drip schedule.
    course_id is a copy of the lesson's course kept for filtering only.
    """

    __tablename__ = "lesson_access_overrides"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "lesson_id", name="uq_lesson_access_overrides_user_lesson"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    lesson_id = Column(
        Integer,
        ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id = Column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    granted_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<LessonAccessOverride(user_id={self.user_id}, lesson_id={self.lesson_id})>"
