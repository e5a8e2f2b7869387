# app/models/relations.py

from sqlalchemy.orm import relationship

# Import all relevant models
from .course import Course
from .course_enrollment import CourseEnrollment
from .lesson import Lesson
from .lesson_access_override import LessonAccessOverride
from .lesson_note import LessonNote
from .user import User


def setup_relationships():
    """
    Configure all SQLAlchemy relationships between models.

    Child rows are removed by the database (ON DELETE CASCADE), so every
    collection uses passive_deletes and is never lazily loaded on delete.
    """

    # --- Course System Relationships ---

    # 1. Course to Lessons (One-to-Many)
    Course.lessons = relationship(
        "Lesson",
        back_populates="course",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Lesson.day_number",
    )
    Lesson.course = relationship("Course", back_populates="lessons")

    # --- Enrollment Relationships ---

    # 2. Course to Enrollments (One-to-Many)
    Course.enrollments = relationship(
        "CourseEnrollment",
        back_populates="course",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    CourseEnrollment.course = relationship("Course", back_populates="enrollments")

    # 3. User to Enrollments (One-to-Many)
    User.enrollments = relationship(
        "CourseEnrollment",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    CourseEnrollment.user = relationship("User", back_populates="enrollments")

    # --- Access Override Relationships ---

    # 4. User to Overrides (One-to-Many)
    User.lesson_access_overrides = relationship(
        "LessonAccessOverride",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    LessonAccessOverride.user = relationship(
        "User", back_populates="lesson_access_overrides"
    )

    # 5. Lesson to Overrides (One-to-Many)
    Lesson.access_overrides = relationship(
        "LessonAccessOverride",
        back_populates="lesson",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    LessonAccessOverride.lesson = relationship(
        "Lesson", back_populates="access_overrides"
    )

    # 6. Override to Course (Many-to-One, denormalized)
    LessonAccessOverride.course = relationship("Course", viewonly=True)

    # --- Notes ---

    # 7. Lesson to Notes (One-to-Many)
    Lesson.notes = relationship(
        "LessonNote",
        back_populates="lesson",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    LessonNote.lesson = relationship("Lesson", back_populates="notes")

    # 8. User to Notes (One-to-Many)
    User.lesson_notes = relationship(
        "LessonNote",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    LessonNote.user = relationship("User", back_populates="lesson_notes")
