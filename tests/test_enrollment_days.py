from datetime import datetime, timedelta, timezone

from conftest import utc

from app.utils.enrollment_days import business_date, days_since_enrollment


def test_same_business_day_is_day_one():
    # 08:00 and 17:00 in UTC+7 on 2025-06-01
    assert days_since_enrollment(utc(2025, 6, 1, 1), utc(2025, 6, 1, 10)) == 1


def test_next_business_day_is_day_two():
    # Enrolled at 2025-05-31T00:00 UTC+7, checked 2025-06-01T17:00 UTC+7
    assert days_since_enrollment(utc(2025, 5, 30, 17), utc(2025, 6, 1, 10)) == 2


def test_utc_midnight_is_not_the_day_boundary():
    # 23:59 and 00:00 in UTC+7, both on 2025-06-01 in UTC
    assert days_since_enrollment(utc(2025, 6, 1, 16, 59), utc(2025, 6, 1, 17, 0)) == 2


def test_month_boundary():
    assert days_since_enrollment(utc(2025, 1, 30, 3), utc(2025, 2, 1, 3)) == 3


def test_leap_year_february():
    assert days_since_enrollment(utc(2024, 2, 28, 5), utc(2024, 3, 1, 5)) == 3
    assert days_since_enrollment(utc(2025, 2, 28, 5), utc(2025, 3, 1, 5)) == 2


def test_year_boundary():
    assert days_since_enrollment(utc(2024, 12, 31, 5), utc(2025, 1, 1, 5)) == 2


def test_clock_skew_never_goes_below_one():
    enrolled = utc(2025, 6, 10, 12)
    assert days_since_enrollment(enrolled, enrolled - timedelta(days=3)) == 1
    assert days_since_enrollment(enrolled, enrolled - timedelta(minutes=1)) == 1


def test_naive_datetimes_are_utc():
    assert days_since_enrollment(datetime(2025, 6, 1, 1), datetime(2025, 6, 1, 10)) == 1
    assert days_since_enrollment(datetime(2025, 5, 30, 17), utc(2025, 6, 1, 10)) == 2


def test_other_offsets_are_converted_first():
    plus_seven = timezone(timedelta(hours=7))
    minus_five = timezone(timedelta(hours=-5))

    enrolled = datetime(2025, 6, 1, 8, 0, tzinfo=plus_seven)
    now = datetime(2025, 6, 1, 5, 0, tzinfo=minus_five)  # 10:00Z

    assert days_since_enrollment(enrolled, now) == 1


def test_custom_offset():
    # Same instants as the day-two case, counted in UTC instead
    assert (
        days_since_enrollment(utc(2025, 5, 30, 17), utc(2025, 6, 1, 10), utc_offset_hours=0)
        == 3
    )


def test_business_date_shifts_by_offset():
    assert business_date(utc(2025, 6, 1, 17)).isoformat() == "2025-06-02"
    assert business_date(utc(2025, 6, 1, 16, 59)).isoformat() == "2025-06-01"


def test_defaults_to_current_time():
    enrolled = datetime.now(timezone.utc) - timedelta(days=10)
    assert days_since_enrollment(enrolled) in (10, 11)


def test_monotonic_in_now():
    enrolled = utc(2025, 3, 14, 15, 26)
    previous = 0
    now = enrolled - timedelta(days=1)
    for _ in range(24 * 12):
        days = days_since_enrollment(enrolled, now)
        assert days >= 1
        assert days >= previous
        previous = days
        now += timedelta(hours=1)

    # Twelve days later, counted from day one
    assert previous in (11, 12)
