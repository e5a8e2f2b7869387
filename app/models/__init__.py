"""
Models package initialization
Import all models and setup relationships
"""

from .course import Course
from .course_enrollment import CourseEnrollment
from .lesson import Lesson
from .lesson_access_override import LessonAccessOverride
from .lesson_note import LessonNote

# Import and setup relationships
from .relations import setup_relationships
from .user import User, UserRole

# Setup all relationships after models are imported
setup_relationships()

# Make models available at package level
__all__ = [
    "Course",
    "CourseEnrollment",
    "Lesson",
    "LessonAccessOverride",
    "LessonNote",
    "User",
    "UserRole",
]
