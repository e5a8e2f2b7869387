# app/models/lesson.py
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.sql import func

from app.core.database import Base


class Lesson(Base):
    __tablename__ = "lessons"
    __table_args__ = (
        CheckConstraint("day_number >= 1", name="ck_lessons_day_number_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Course relationship
    course_id = Column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Basic Info
    slug = Column(String(255), unique=True, nullable=False, index=True)
    title = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    workbook = Column(Text, nullable=True)  # One reflection question per line
    thumbnail_url = Column(Text, nullable=True)
    video_url = Column(Text, nullable=False)

    # Drip schedule key
    day_number = Column(Integer, default=1, server_default="1", nullable=False)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def workbook_questions(self) -> list:
        if not self.workbook:
            return []
        return [q.strip() for q in self.workbook.split("\n") if q.strip()]

    def __repr__(self):
        return (
            f"<Lesson(id={self.id}, slug='{self.slug}', course_id={self.course_id}, "
            f"day={self.day_number})>"
        )
