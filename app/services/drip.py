# app/services/drip.py
"""
Drip availability resolver.

Classifies a lesson for one user from the lesson's day number, the user's
elapsed days in the course and any access override:

- available:   days >= day_number, or an override exists
- coming_soon: not available and day_number - days == 1
- hidden:      anything else; never listed

The drip rule is evaluated first. Overrides can only promote a lesson to
available, so they are looked up only for lessons drip leaves locked.
"""

import logging
from typing import Any, Awaitable, Callable, Iterable, List, NamedTuple, Set

from app.core.exceptions import StoreUnavailableError
from app.schemas.lesson import LessonAvailability

logger = logging.getLogger(__name__)

DEFAULT_DAY_NUMBER = 1

OverrideLookup = Callable[[int], Awaitable[bool]]
BatchOverrideLookup = Callable[[List[int]], Awaitable[Set[int]]]

# Lookup failures that count as "no override"
_LOOKUP_FAILURES = (StoreUnavailableError, OSError)


class LessonRef(NamedTuple):
    """Plain snapshot of the two fields classification reads."""

    id: int
    day_number: int


class ResolvedLesson(NamedTuple):
    lesson: Any
    availability: LessonAvailability


def normalize_day_number(day_number) -> int:
    """Missing, non-integer or non-positive day numbers count as day 1."""
    if isinstance(day_number, bool) or not isinstance(day_number, int):
        return DEFAULT_DAY_NUMBER
    if day_number < 1:
        return DEFAULT_DAY_NUMBER
    return day_number


def _normalize_days(days) -> int:
    # 0 means not enrolled or enrollment date unknown
    if isinstance(days, bool) or not isinstance(days, int) or days < 0:
        return 0
    return days


def classify_by_drip(day_number, days_since_enrollment) -> LessonAvailability:
    """Classification from the schedule alone, without overrides."""
    day = normalize_day_number(day_number)
    days = _normalize_days(days_since_enrollment)

    if days >= day:
        return LessonAvailability.AVAILABLE
    if day - days == 1:
        return LessonAvailability.COMING_SOON
    return LessonAvailability.HIDDEN


async def resolve_lesson_availability(
    lesson, days_since_enrollment: int, has_override: OverrideLookup
) -> LessonAvailability:
    """Classify a single lesson. Never raises for lookup failures."""
    lesson_id = lesson.id
    availability = classify_by_drip(lesson.day_number, days_since_enrollment)
    if availability == LessonAvailability.AVAILABLE:
        return availability

    try:
        overridden = await has_override(lesson_id)
    except _LOOKUP_FAILURES as e:
        logger.warning(
            f"Override lookup failed for lesson {lesson_id}, treating as none: {e}"
        )
        overridden = False

    if overridden:
        return LessonAvailability.AVAILABLE
    return availability


async def resolve_course_lessons(
    lessons: Iterable,
    days_since_enrollment: int,
    overridden_lesson_ids: BatchOverrideLookup,
    include_hidden: bool = False,
) -> List[ResolvedLesson]:
    """
    Classify every lesson of a course, keeping the input order.

    Overrides are fetched in one batched lookup covering exactly the
    lessons the drip rule leaves locked. Hidden lessons are dropped unless
    ``include_hidden`` is set.
    """
    lessons = list(lessons)
    lesson_ids = [lesson.id for lesson in lessons]
    drip = [
        classify_by_drip(lesson.day_number, days_since_enrollment)
        for lesson in lessons
    ]

    locked_ids = [
        lesson_id
        for lesson_id, availability in zip(lesson_ids, drip)
        if availability != LessonAvailability.AVAILABLE
    ]

    overridden: Set[int] = set()
    if locked_ids:
        try:
            overridden = set(await overridden_lesson_ids(locked_ids))
        except _LOOKUP_FAILURES as e:
            logger.warning(
                f"Override lookup failed for {len(locked_ids)} lessons, treating as none: {e}"
            )

    resolved = []
    for lesson, lesson_id, availability in zip(lessons, lesson_ids, drip):
        if availability != LessonAvailability.AVAILABLE and lesson_id in overridden:
            availability = LessonAvailability.AVAILABLE
        if availability == LessonAvailability.HIDDEN and not include_hidden:
            continue
        resolved.append(ResolvedLesson(lesson, availability))

    return resolved
