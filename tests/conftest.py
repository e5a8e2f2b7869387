import asyncio
import os
import tempfile
from datetime import datetime, timezone

# Settings are read at import time; point them at a throwaway SQLite file
# before anything under app/ is imported.
_IMPORT_DB_DIR = tempfile.mkdtemp(prefix="drip-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_IMPORT_DB_DIR}/import.db"
os.environ["ADMIN_DEFAULT_EXTERNAL_ID"] = ""
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DEBUG"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.database import Base, enable_sqlite_foreign_keys, get_db
from app.core.limiter import limiter
from app.core.security import jwt_manager
from app.models import Course, Lesson, User, UserRole


def run(coro):
    """Drive a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool
    )
    enable_sqlite_foreign_keys(engine.sync_engine)

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    run(create_schema())
    yield engine
    run(engine.dispose())


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def client(session_factory):
    from main import app

    async def override_get_db():
        async with session_factory() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.enabled = True


def auth_headers(external_id: str) -> dict:
    token = jwt_manager.create_identity_token(external_id)
    return {"Authorization": f"Bearer {token}"}


# ==================== Seed helpers ====================


async def create_user(
    session_factory,
    external_id: str = "ext-user",
    full_name: str = "Test Learner",
    role: UserRole = UserRole.USER,
) -> User:
    async with session_factory() as db:
        user = User(
            external_id=external_id,
            full_name=full_name,
            email=f"{external_id}@example.com",
            role=role,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


async def create_course(
    session_factory,
    title: str = "Thirty Days of Calm",
    slug: str = "thirty-days-of-calm",
    **kwargs,
) -> Course:
    async with session_factory() as db:
        course = Course(title=title, slug=slug, **kwargs)
        db.add(course)
        await db.commit()
        await db.refresh(course)
        return course


async def create_lesson(
    session_factory, course_id: int, day_number: int, slug: str = None, **kwargs
) -> Lesson:
    slug = slug or f"day-{day_number}-{course_id}"
    async with session_factory() as db:
        lesson = Lesson(
            course_id=course_id,
            slug=slug,
            title=kwargs.pop("title", f"Lesson {slug}"),
            video_url=kwargs.pop("video_url", f"https://videos.example.com/{slug}.mp4"),
            day_number=day_number,
            **kwargs,
        )
        db.add(lesson)
        await db.commit()
        await db.refresh(lesson)
        return lesson


async def count_rows(session_factory, model, *conditions) -> int:
    async with session_factory() as db:
        result = await db.execute(select(func.count(model.id)).where(*conditions))
        return result.scalar_one()
