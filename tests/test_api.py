from datetime import datetime, timedelta, timezone

import pytest
from click.testing import CliRunner
from conftest import (
    auth_headers,
    count_rows,
    create_course,
    create_lesson,
    create_user,
    run,
)

from app.core.security import jwt_manager
from app.models import CourseEnrollment, LessonAccessOverride, LessonNote, UserRole
from main import cli


@pytest.fixture
def course_with_lessons(session_factory):
    async def seed():
        course = await create_course(session_factory, description="Breathe, daily")
        lessons = [
            await create_lesson(
                session_factory,
                course.id,
                day,
                workbook="What did you notice?\n\nWhat will you try tomorrow?",
            )
            for day in (1, 2, 3, 4)
        ]
        return course, lessons

    return run(seed())


@pytest.fixture
def learner(session_factory):
    run(create_user(session_factory, external_id="ext-learner"))
    return auth_headers("ext-learner")


@pytest.fixture
def admin(session_factory):
    run(
        create_user(
            session_factory,
            external_id="ext-admin",
            full_name="Course Admin",
            role=UserRole.ADMIN,
        )
    )
    return auth_headers("ext-admin")


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_health_reports_the_database(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "healthy"}


def test_cli_info_shows_the_business_day_offset():
    result = CliRunner().invoke(cli, ["info"])

    assert result.exit_code == 0
    assert "Business day offset: UTC+7" in result.output


# ==================== Authentication ====================


def test_missing_token_is_unauthorized(client):
    response = client.get("/courses/")

    assert response.status_code == 401


def test_garbage_token_is_unauthorized(client):
    response = client.get("/users/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_preview_token_is_not_an_identity(client):
    token = jwt_manager.create_preview_token("day-1-1")

    response = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_incomplete_profile_is_forbidden(client):
    response = client.get("/users/me", headers=auth_headers("ext-nobody"))

    assert response.status_code == 403
    assert response.json()["detail"] == "Profile not completed"


# ==================== Profile completion ====================


def test_complete_profile_creates_then_updates(client):
    headers = auth_headers("ext-fresh")

    first = client.post("/users/me/profile", json={"full_name": "Fresh Learner"}, headers=headers)
    second = client.post("/users/me/profile", json={"full_name": "Renamed Learner"}, headers=headers)

    assert first.status_code == 200
    assert first.json()["redirect_to"] == "/home"
    assert first.json()["lesson_access"] is None
    assert second.json()["user"]["id"] == first.json()["user"]["id"]

    me = client.get("/users/me", headers=headers).json()
    assert me["full_name"] == "Renamed Learner"
    assert me["role"] == "user"


def test_update_me(client, learner):
    response = client.patch("/users/me", json={"full_name": "New Name"}, headers=learner)

    assert response.status_code == 200
    assert response.json()["full_name"] == "New Name"


def test_preview_to_signup_unlocks_the_lesson(client, session_factory, course_with_lessons):
    course, lessons = course_with_lessons
    previewed = lessons[2]

    preview = client.get(f"/lessons/{previewed.slug}/preview")
    assert preview.status_code == 200
    body = preview.json()
    assert body["course_slug"] == course.slug
    assert "video_url" not in body

    headers = auth_headers("ext-visitor")
    completed = client.post(
        "/users/me/profile",
        json={"full_name": "Curious Visitor", "preview_token": body["preview_token"]},
        headers=headers,
    )

    assert completed.status_code == 200
    result = completed.json()
    assert result["lesson_access"]["success"] is True
    assert result["redirect_to"] == f"/lessons/{previewed.slug}"

    lesson = client.get(f"/lessons/{previewed.slug}", headers=headers)
    assert lesson.status_code == 200
    assert lesson.json()["availability"] == "available"
    assert lesson.json()["days_since_enrollment"] == 1

    # Only the previewed lesson is unlocked early
    locked = client.get(f"/lessons/{lessons[3].slug}", headers=headers)
    assert locked.status_code == 403

    assert run(count_rows(session_factory, CourseEnrollment)) == 1
    assert run(count_rows(session_factory, LessonAccessOverride)) == 1


def test_preview_token_after_signup_unlocks_nothing(
    client, session_factory, course_with_lessons, learner
):
    course, lessons = course_with_lessons
    later = lessons[3]

    assert client.get(f"/courses/{course.slug}", headers=learner).status_code == 200
    token = client.get(f"/lessons/{later.slug}/preview").json()["preview_token"]

    response = client.post(
        "/users/me/profile",
        json={"full_name": "Test Learner", "preview_token": token},
        headers=learner,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["lesson_access"]["success"] is False
    assert body["redirect_to"] == "/home"

    locked = client.get(f"/lessons/{later.slug}", headers=learner)
    assert locked.status_code == 403
    assert run(count_rows(session_factory, LessonAccessOverride)) == 0


def test_invalid_preview_token_does_not_block_signup(client, session_factory):
    response = client.post(
        "/users/me/profile",
        json={"full_name": "Curious Visitor", "preview_token": "tampered"},
        headers=auth_headers("ext-visitor"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["lesson_access"]["success"] is False
    assert body["lesson_access"]["error"] == "Invalid or expired preview token"
    assert body["redirect_to"] == "/home"
    assert run(count_rows(session_factory, LessonAccessOverride)) == 0


def test_expired_preview_token_unlocks_nothing(client, course_with_lessons):
    _, lessons = course_with_lessons
    token = jwt_manager.create_preview_token(
        lessons[2].slug, custom_expiration=timedelta(seconds=-5)
    )

    response = client.post(
        "/users/me/profile",
        json={"full_name": "Late Visitor", "preview_token": token},
        headers=auth_headers("ext-late"),
    )

    assert response.json()["lesson_access"]["success"] is False


def test_preview_of_hidden_course_is_admin_only(client, session_factory, admin):
    async def seed():
        course = await create_course(session_factory, title="Paused", slug="paused", is_active=False)
        return await create_lesson(session_factory, course.id, 1, slug="paused-day-1")

    run(seed())

    assert client.get("/lessons/paused-day-1/preview").status_code == 404
    assert client.get("/lessons/paused-day-1/preview", headers=admin).status_code == 200


def test_preview_of_missing_lesson(client):
    response = client.get("/lessons/no-such-lesson/preview")

    assert response.status_code == 404
    assert response.json()["type"] == "not_found"


# ==================== Courses ====================


def test_course_listing_shows_visible_courses_only(client, session_factory, learner):
    future = datetime.now(timezone.utc) + timedelta(days=30)

    async def seed():
        await create_course(session_factory)
        await create_course(session_factory, title="Paused", slug="paused", is_active=False)
        await create_course(session_factory, title="Upcoming", slug="upcoming", start_date=future)

    run(seed())

    response = client.get("/courses/", headers=learner)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert [c["slug"] for c in body["courses"]] == ["thirty-days-of-calm"]


def test_first_course_visit_enrolls_and_drips(client, course_with_lessons, learner):
    course, _ = course_with_lessons

    before = client.get(f"/courses/{course.slug}/enrollment", headers=learner)
    assert before.json() == {"is_enrolled": False, "enrollment": None, "days_since_enrollment": 0}

    page = client.get(f"/courses/{course.slug}", headers=learner)

    assert page.status_code == 200
    body = page.json()
    assert body["is_enrolled"] is True
    assert body["days_since_enrollment"] == 1
    assert body["warnings"] == []
    assert [(card["day_number"], card["availability"]) for card in body["lessons"]] == [
        (1, "available"),
        (2, "coming_soon"),
    ]
    assert all("video_url" not in card for card in body["lessons"])

    after = client.get(f"/courses/{course.slug}/enrollment", headers=learner)
    assert after.json()["is_enrolled"] is True
    assert after.json()["days_since_enrollment"] == 1


def test_repeat_visits_keep_one_enrollment(client, session_factory, course_with_lessons, learner):
    course, _ = course_with_lessons

    for _ in range(3):
        assert client.get(f"/courses/{course.slug}", headers=learner).status_code == 200

    assert run(count_rows(session_factory, CourseEnrollment)) == 1


def test_hidden_courses_are_missing_except_for_admins(client, session_factory, learner, admin):
    run(create_course(session_factory, title="Paused", slug="paused", is_active=False))

    assert client.get("/courses/paused", headers=learner).status_code == 404
    assert client.get("/courses/paused", headers=admin).status_code == 200


def test_unknown_course(client, learner):
    response = client.get("/courses/nope", headers=learner)

    assert response.status_code == 404
    assert response.json() == {"error": "Course not found", "type": "not_found"}


# ==================== Lessons ====================


def test_lesson_page_for_available_lesson(client, course_with_lessons, learner):
    _, lessons = course_with_lessons

    response = client.get(f"/lessons/{lessons[0].slug}", headers=learner)

    assert response.status_code == 200
    body = response.json()
    assert body["video_url"] == f"https://videos.example.com/{lessons[0].slug}.mp4"
    assert body["workbook_questions"] == [
        "What did you notice?",
        "What will you try tomorrow?",
    ]
    assert body["note"] is None


def test_locked_lessons_are_forbidden_with_their_availability(
    client, course_with_lessons, learner
):
    _, lessons = course_with_lessons

    coming_soon = client.get(f"/lessons/{lessons[1].slug}", headers=learner)
    hidden = client.get(f"/lessons/{lessons[3].slug}", headers=learner)

    assert coming_soon.status_code == 403
    assert coming_soon.json()["type"] == "lesson_locked"
    assert coming_soon.json()["availability"] == "coming_soon"
    assert hidden.status_code == 403
    assert hidden.json()["availability"] == "hidden"


def test_missing_lesson_is_not_found(client, learner):
    response = client.get("/lessons/no-such-lesson", headers=learner)

    assert response.status_code == 404
    assert response.json()["type"] == "not_found"


def test_notes(client, course_with_lessons, learner):
    _, lessons = course_with_lessons
    url = f"/lessons/{lessons[0].slug}/note"

    assert client.get(url, headers=learner).status_code == 404

    saved = client.put(url, json={"content": " Felt calmer "}, headers=learner)
    assert saved.status_code == 200
    assert saved.json()["content"] == "Felt calmer"

    replaced = client.put(url, json={"content": "Felt much calmer"}, headers=learner)
    assert replaced.json()["id"] == saved.json()["id"]

    assert client.get(url, headers=learner).json()["content"] == "Felt much calmer"
    lesson = client.get(f"/lessons/{lessons[0].slug}", headers=learner)
    assert lesson.json()["note"] == "Felt much calmer"


def test_notes_on_locked_lessons_are_forbidden(
    client, session_factory, course_with_lessons, learner
):
    _, lessons = course_with_lessons

    for lesson, availability in ((lessons[1], "coming_soon"), (lessons[3], "hidden")):
        url = f"/lessons/{lesson.slug}/note"

        saved = client.put(url, json={"content": "Peeking ahead"}, headers=learner)
        assert saved.status_code == 403
        assert saved.json()["type"] == "lesson_locked"
        assert saved.json()["availability"] == availability

        assert client.get(url, headers=learner).status_code == 403

    assert run(count_rows(session_factory, LessonNote)) == 0


def test_blank_note_is_rejected(client, course_with_lessons, learner):
    _, lessons = course_with_lessons

    response = client.put(
        f"/lessons/{lessons[0].slug}/note", json={"content": "   "}, headers=learner
    )

    assert response.status_code == 422
    assert response.json()["type"] == "validation_error"


# ==================== Admin ====================


def test_admin_routes_require_admin_role(client, learner):
    response = client.get("/admin/courses", headers=learner)

    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"


def test_admin_course_and_lesson_crud(client, admin):
    created = client.post(
        "/admin/courses",
        json={"title": "Morning Pages", "is_active": False},
        headers=admin,
    )
    assert created.status_code == 201
    course = created.json()
    assert course["slug"].startswith("morning-pages-")

    lesson = client.post(
        "/admin/lessons",
        json={
            "course_id": course["id"],
            "title": "Write three pages",
            "video_url": "https://videos.example.com/pages.mp4",
        },
        headers=admin,
    )
    assert lesson.status_code == 201
    assert lesson.json()["day_number"] == 1

    updated = client.patch(
        f"/admin/lessons/{lesson.json()['id']}", json={"day_number": 2}, headers=admin
    )
    assert updated.json()["day_number"] == 2

    listing = client.get(f"/admin/lessons?course_id={course['id']}", headers=admin)
    assert listing.json()["total"] == 1

    activated = client.patch(
        f"/admin/courses/{course['id']}", json={"is_active": True}, headers=admin
    )
    assert activated.json()["is_active"] is True

    assert client.delete(f"/admin/courses/{course['id']}", headers=admin).status_code == 204
    assert client.get(f"/admin/courses/{course['id']}", headers=admin).status_code == 404
    assert client.get(f"/admin/lessons/{lesson.json()['id']}", headers=admin).status_code == 404


def test_admin_lesson_needs_existing_course(client, admin):
    response = client.post(
        "/admin/lessons",
        json={"course_id": 999, "title": "Orphan", "video_url": "https://v.example.com/o.mp4"},
        headers=admin,
    )

    assert response.status_code == 404


def test_admin_rejects_day_zero(client, course_with_lessons, admin):
    course, _ = course_with_lessons

    response = client.post(
        "/admin/lessons",
        json={
            "course_id": course.id,
            "title": "Day zero",
            "video_url": "https://videos.example.com/zero.mp4",
            "day_number": 0,
        },
        headers=admin,
    )

    assert response.status_code == 422


def test_admin_override_regrant_returns_same_row(
    client, session_factory, course_with_lessons, admin
):
    course, lessons = course_with_lessons
    user = run(create_user(session_factory, external_id="ext-student"))
    payload = {"user_id": user.id, "lesson_id": lessons[3].id}

    first = client.post("/admin/overrides", json=payload, headers=admin)
    second = client.post("/admin/overrides", json=payload, headers=admin)

    assert first.status_code == 201
    assert second.json()["id"] == first.json()["id"]
    assert first.json()["course_id"] == course.id

    student = auth_headers("ext-student")
    assert client.get(f"/lessons/{lessons[3].slug}", headers=student).status_code == 200

    listing = client.get(f"/admin/overrides?user_id={user.id}", headers=admin)
    assert listing.json()["total"] == 1

    revoked = client.delete(f"/admin/overrides/{first.json()['id']}", headers=admin)
    assert revoked.status_code == 204
    assert client.get(f"/lessons/{lessons[3].slug}", headers=student).status_code == 403


def test_admin_override_for_missing_lesson(client, learner, admin, session_factory):
    response = client.post(
        "/admin/overrides", json={"user_id": 1, "lesson_id": 999}, headers=admin
    )

    assert response.status_code == 404


def test_admin_backdating_unlocks_more_lessons(client, course_with_lessons, learner, admin):
    course, _ = course_with_lessons

    client.get(f"/courses/{course.slug}", headers=learner)
    rows = client.get(f"/admin/enrollments?course_id={course.id}", headers=admin).json()
    enrollment = rows["enrollments"][0]
    assert enrollment["user_name"] == "Test Learner"

    two_days_ago = datetime.now(timezone.utc) - timedelta(days=2)
    moved = client.patch(
        f"/admin/enrollments/{enrollment['id']}",
        json={"enrolled_at": two_days_ago.isoformat()},
        headers=admin,
    )
    assert moved.status_code == 200

    page = client.get(f"/courses/{course.slug}", headers=learner).json()
    assert page["days_since_enrollment"] == 3
    assert [(card["day_number"], card["availability"]) for card in page["lessons"]] == [
        (1, "available"),
        (2, "available"),
        (3, "available"),
        (4, "coming_soon"),
    ]


def test_admin_enrollment_create_and_conflict(client, session_factory, course_with_lessons, admin):
    course, _ = course_with_lessons
    user = run(create_user(session_factory, external_id="ext-student"))
    payload = {"user_id": user.id, "course_id": course.id}

    created = client.post("/admin/enrollments", json=payload, headers=admin)
    duplicate = client.post("/admin/enrollments", json=payload, headers=admin)

    assert created.status_code == 201
    assert duplicate.status_code == 409
    assert duplicate.json()["type"] == "conflict"

    deleted = client.delete(f"/admin/enrollments/{created.json()['id']}", headers=admin)
    assert deleted.status_code == 204
    assert run(count_rows(session_factory, CourseEnrollment)) == 0


def test_admin_user_management(client, session_factory, admin):
    user = run(create_user(session_factory, external_id="ext-student", full_name="Student"))

    listing = client.get("/admin/users?role=user", headers=admin)
    assert [u["external_id"] for u in listing.json()["users"]] == ["ext-student"]

    promoted = client.patch(f"/admin/users/{user.id}", json={"role": "admin"}, headers=admin)
    assert promoted.json()["role"] == "admin"

    removed = client.delete(f"/admin/users/{user.id}", headers=admin)
    assert removed.json() == {"message": "User deleted successfully"}
    assert client.get(f"/admin/users/{user.id}", headers=admin).status_code == 404
