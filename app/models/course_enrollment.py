# app/models/course_enrollment.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from app.core.database import Base


class CourseEnrollment(Base):
    """
    Anchors a user's drip-schedule clock for one course.
    Enrollments are free and created implicitly on the first course visit.
    """

    __tablename__ = "course_enrollments"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "course_id", name="uq_course_enrollments_user_course"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # User and Course relationship
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id = Column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = Column(String(50), nullable=False, default="enrolled")

    # Set once at first enrollment; only an admin edit moves it
    enrolled_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

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

    def __repr__(self):
        return f"<CourseEnrollment(id={self.id}, user_id={self.user_id}, course_id={self.course_id}, enrolled_at={self.enrolled_at})>"
