from datetime import datetime, timedelta, timezone

import pytest
from conftest import count_rows, create_course, create_lesson, create_user, run, utc
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import CourseEnrollment, Lesson, LessonAccessOverride, LessonNote
from app.schemas.user import CompleteProfileRequest
from app.services.course import CourseService
from app.services.course_enrollment import CourseEnrollmentService
from app.services.lesson import LessonService
from app.services.lesson_access import LessonAccessOverrideService
from app.services.lesson_note import LessonNoteService
from app.services.user import UserService
from app.utils.enrollment_days import as_utc


@pytest.fixture
def seeded(session_factory):
    async def seed():
        user = await create_user(session_factory)
        course = await create_course(session_factory)
        other = await create_course(session_factory, title="Sleep Better", slug="sleep-better")
        lessons = [await create_lesson(session_factory, course.id, day) for day in (1, 2, 3)]
        return user, course, other, lessons

    return run(seed())


# ==================== Enrollments ====================


def test_duplicate_enrollment_is_a_conflict(session_factory, seeded):
    user, course, _, _ = seeded

    async def scenario():
        async with session_factory() as db:
            service = CourseEnrollmentService(db)
            first = await service.create_enrollment(user.id, course.id, utc(2025, 6, 1, 1))
            first_id = first.id
            with pytest.raises(ConflictError):
                await service.create_enrollment(user.id, course.id, utc(2025, 6, 5))

            # Session is still usable after the rejected insert
            found = await service.find_enrollment(user.id, course.id)
            return first_id, found

    first_id, found = run(scenario())

    assert found.id == first_id
    assert as_utc(found.enrolled_at) == utc(2025, 6, 1, 1)
    assert run(count_rows(session_factory, CourseEnrollment)) == 1


def test_find_enrollment_returns_none_when_missing(session_factory, seeded):
    user, course, _, _ = seeded

    async def scenario():
        async with session_factory() as db:
            return await CourseEnrollmentService(db).find_enrollment(user.id, course.id)

    assert run(scenario()) is None


def test_enrollment_date_is_stored_in_utc(session_factory, seeded):
    user, course, _, _ = seeded
    local = datetime(2025, 6, 1, 8, 0, tzinfo=timezone(timedelta(hours=7)))

    async def scenario():
        async with session_factory() as db:
            await CourseEnrollmentService(db).create_enrollment(user.id, course.id, local)
        async with session_factory() as db:
            return await CourseEnrollmentService(db).find_enrollment(user.id, course.id)

    assert as_utc(run(scenario()).enrolled_at) == utc(2025, 6, 1, 1)


def test_list_enrollments_joins_names_and_filters(session_factory, seeded):
    user, course, other, _ = seeded

    async def scenario():
        second = await create_user(session_factory, external_id="ext-2", full_name="Second")
        async with session_factory() as db:
            service = CourseEnrollmentService(db)
            await service.create_enrollment(user.id, course.id, utc(2025, 6, 1))
            await service.create_enrollment(second.id, course.id, utc(2025, 6, 3))
            await service.create_enrollment(user.id, other.id, utc(2025, 6, 2))

            all_rows, all_pages = await service.list_enrollments()
            course_rows, course_pages = await service.list_enrollments(course_id=course.id)
            return all_rows, all_pages, course_rows, course_pages

    all_rows, all_pages, course_rows, course_pages = run(scenario())

    assert all_pages["total"] == 3
    assert [row["course_title"] for row in all_rows] == [
        "Thirty Days of Calm",
        "Sleep Better",
        "Thirty Days of Calm",
    ]
    assert course_pages == {"total": 2, "page": 1, "size": 20, "total_pages": 1}
    assert [row["user_name"] for row in course_rows] == ["Second", "Test Learner"]
    assert course_rows[1]["user_email"] == "ext-user@example.com"


def test_update_enrollment_date(session_factory, seeded):
    user, course, _, _ = seeded

    async def scenario():
        async with session_factory() as db:
            service = CourseEnrollmentService(db)
            enrollment = await service.create_enrollment(user.id, course.id, utc(2025, 6, 10))
            updated = await service.update_enrollment_date(enrollment.id, utc(2025, 6, 1))
            return as_utc(updated.enrolled_at)

    assert run(scenario()) == utc(2025, 6, 1)


def test_update_missing_enrollment(session_factory, seeded):
    async def scenario():
        async with session_factory() as db:
            await CourseEnrollmentService(db).update_enrollment_date(999, utc(2025, 6, 1))

    with pytest.raises(NotFoundError):
        run(scenario())


def test_delete_enrollment(session_factory, seeded):
    user, course, _, _ = seeded

    async def scenario():
        async with session_factory() as db:
            service = CourseEnrollmentService(db)
            enrollment = await service.create_enrollment(user.id, course.id)
            await service.delete_enrollment(enrollment.id)
            with pytest.raises(NotFoundError):
                await service.delete_enrollment(enrollment.id)

    run(scenario())
    assert run(count_rows(session_factory, CourseEnrollment)) == 0


# ==================== Overrides ====================


def test_grant_override_is_idempotent(session_factory, seeded):
    user, course, _, lessons = seeded
    lesson = lessons[2]

    async def scenario():
        async with session_factory() as db:
            service = LessonAccessOverrideService(db)
            await service.grant_override(user.id, lesson.id, course.id)
            await service.grant_override(user.id, lesson.id, course.id)
            return await service.has_override(user.id, lesson.id)

    assert run(scenario()) is True
    assert run(count_rows(session_factory, LessonAccessOverride)) == 1


def test_grant_override_absorbs_insert_race(session_factory, seeded, monkeypatch):
    user, course, _, lessons = seeded
    lesson = lessons[1]

    async def scenario():
        async with session_factory() as db:
            await LessonAccessOverrideService(db).grant_override(user.id, lesson.id, course.id)

        async with session_factory() as db:
            service = LessonAccessOverrideService(db)

            # The pre-check misses the row another request just inserted
            async def stale_check(user_id, lesson_id):
                return False

            monkeypatch.setattr(service, "has_override", stale_check)
            await service.grant_override(user.id, lesson.id, course.id)

    run(scenario())
    assert run(count_rows(session_factory, LessonAccessOverride)) == 1


def test_grant_override_rejects_mismatched_course(session_factory, seeded):
    user, _, other, lessons = seeded

    async def scenario():
        async with session_factory() as db:
            await LessonAccessOverrideService(db).grant_override(
                user.id, lessons[0].id, other.id
            )

    with pytest.raises(ValidationError):
        run(scenario())
    assert run(count_rows(session_factory, LessonAccessOverride)) == 0


def test_grant_override_for_missing_lesson(session_factory, seeded):
    user, course, _, _ = seeded

    async def scenario():
        async with session_factory() as db:
            await LessonAccessOverrideService(db).grant_override(user.id, 999, course.id)

    with pytest.raises(NotFoundError):
        run(scenario())


def test_overridden_lesson_ids_returns_subset(session_factory, seeded):
    user, course, _, lessons = seeded
    ids = [lesson.id for lesson in lessons]

    async def scenario():
        second = await create_user(session_factory, external_id="ext-2")
        async with session_factory() as db:
            service = LessonAccessOverrideService(db)
            await service.grant_override(user.id, ids[1], course.id)
            await service.grant_override(second.id, ids[2], course.id)
            return (
                await service.overridden_lesson_ids(user.id, ids),
                await service.overridden_lesson_ids(user.id, []),
            )

    subset, empty = run(scenario())
    assert subset == {ids[1]}
    assert empty == set()


def test_list_get_and_revoke_overrides(session_factory, seeded):
    user, course, other, lessons = seeded

    async def scenario():
        other_lesson = await create_lesson(session_factory, other.id, 1)
        async with session_factory() as db:
            service = LessonAccessOverrideService(db)
            await service.grant_override(user.id, lessons[1].id, course.id)
            await service.grant_override(user.id, other_lesson.id, other.id)

            _, everything = await service.list_overrides(user_id=user.id)
            filtered, _ = await service.list_overrides(course_id=other.id)
            override = await service.get_override(user.id, other_lesson.id)

            await service.revoke_override(override.id)
            with pytest.raises(NotFoundError):
                await service.get_override(user.id, other_lesson.id)
            still_there = await service.has_override(user.id, lessons[1].id)
            return everything, filtered, other_lesson.id, still_there

    everything, filtered, other_lesson_id, still_there = run(scenario())

    assert everything["total"] == 2
    assert [o.lesson_id for o in filtered] == [other_lesson_id]
    assert still_there is True
    assert run(count_rows(session_factory, LessonAccessOverride)) == 1


# ==================== Lessons ====================


def test_course_lessons_are_ordered_by_day(session_factory, seeded):
    _, _, other, _ = seeded

    async def scenario():
        for day in (3, 1, 2):
            await create_lesson(session_factory, other.id, day, slug=f"sleep-{day}")
        async with session_factory() as db:
            service = LessonService(db)
            return (
                await service.list_course_lessons(other.id),
                await service.get_lesson_by_slug("sleep-2"),
                await service.get_lesson_by_slug("missing"),
            )

    lessons, found, missing = run(scenario())

    assert [lesson.slug for lesson in lessons] == ["sleep-1", "sleep-2", "sleep-3"]
    assert found.course.slug == "sleep-better"
    assert missing is None


def test_day_number_must_be_positive(session_factory, seeded):
    _, course, _, _ = seeded

    with pytest.raises(IntegrityError):
        run(create_lesson(session_factory, course.id, 0, slug="day-zero"))
    assert run(count_rows(session_factory, Lesson, Lesson.slug == "day-zero")) == 0


# ==================== Notes ====================


def test_save_note_upserts(session_factory, seeded):
    user, _, _, lessons = seeded
    lesson = lessons[0]

    async def scenario():
        async with session_factory() as db:
            service = LessonNoteService(db)
            first = await service.save_note(user.id, lesson.id, "  first thought ")
            second = await service.save_note(user.id, lesson.id, "second thought")
            return first.id, second.id, second.content

    first_id, second_id, content = run(scenario())

    assert first_id == second_id
    assert content == "second thought"
    assert run(count_rows(session_factory, LessonNote)) == 1


def test_blank_note_is_rejected(session_factory, seeded):
    user, _, _, lessons = seeded

    async def scenario():
        async with session_factory() as db:
            await LessonNoteService(db).save_note(user.id, lessons[0].id, "   ")

    with pytest.raises(ValidationError):
        run(scenario())


# ==================== Cascades ====================


def test_deleting_a_course_removes_its_rows(session_factory, seeded):
    user, course, other, lessons = seeded

    async def scenario():
        async with session_factory() as db:
            await CourseEnrollmentService(db).create_enrollment(user.id, course.id)
            await CourseEnrollmentService(db).create_enrollment(user.id, other.id)
            await LessonAccessOverrideService(db).grant_override(
                user.id, lessons[2].id, course.id
            )
            await LessonNoteService(db).save_note(user.id, lessons[0].id, "keep going")
        async with session_factory() as db:
            await CourseService(db).delete_course(course.id)

    run(scenario())

    assert run(count_rows(session_factory, Lesson)) == 0
    assert run(count_rows(session_factory, LessonAccessOverride)) == 0
    assert run(count_rows(session_factory, LessonNote)) == 0
    assert run(count_rows(session_factory, CourseEnrollment)) == 1


# ==================== Users ====================


def test_complete_profile_reports_first_completion_once(session_factory):
    async def scenario():
        async with session_factory() as db:
            service = UserService(db)
            created, created_first = await service.complete_profile(
                "ext-new", CompleteProfileRequest(full_name="New Learner")
            )
            created_id = created.id
            again, again_first = await service.complete_profile(
                "ext-new", CompleteProfileRequest(full_name="Renamed Learner")
            )
            return created_id, created_first, again.id, again_first, again.full_name

    created_id, created_first, again_id, again_first, name = run(scenario())

    assert created_first is True
    assert again_first is False
    assert again_id == created_id
    assert name == "Renamed Learner"
