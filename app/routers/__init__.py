from .admin import router as admin_router
from .course import router as course_router
from .lesson import router as lesson_router
from .user import router as user_router

routes = [
    admin_router,
    user_router,
    course_router,
    lesson_router,
]
