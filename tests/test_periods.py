from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from clock import Clock, FixedClock
from errors import ValidationFailed
from periods import (
    FAR_PAST,
    PeriodSlug,
    parse_civil_date,
    parse_period,
    resolve_custom_range,
    resolve_period,
)

TZ = "America/Argentina/Buenos_Aires"
ART = ZoneInfo(TZ)


def local(y, m, d, h=0, mi=0) -> datetime:
    return datetime(y, m, d, h, mi, tzinfo=ART)


def test_today_is_one_civil_day() -> None:
    clock = FixedClock(local(2024, 3, 13, 15), TZ)
    date_range = resolve_period("today", clock.now(), clock)

    assert date_range.start == local(2024, 3, 13)
    assert date_range.end == local(2024, 3, 14)
    assert date_range.start.tzinfo == timezone.utc


def test_today_follows_the_civil_day_not_utc() -> None:
    # 02:00 UTC on the 14th is still the 13th in Buenos Aires
    clock = FixedClock(datetime(2024, 3, 14, 2, 0, tzinfo=timezone.utc), TZ)
    date_range = resolve_period(PeriodSlug.today, clock.now(), clock)

    assert date_range.start == local(2024, 3, 13)


def test_resolution_is_deterministic_for_a_fixed_now() -> None:
    clock = FixedClock(local(2024, 3, 13, 15), TZ)
    for slug in PeriodSlug:
        assert resolve_period(slug, clock.now(), clock) == resolve_period(
            slug, clock.now(), clock
        )


def test_week_starts_on_configured_weekday() -> None:
    clock = FixedClock(local(2024, 3, 13, 15), TZ)  # Wednesday

    sunday_week = resolve_period("week", clock.now(), clock, week_start=6)
    assert sunday_week.start == local(2024, 3, 10)
    assert sunday_week.end == local(2024, 3, 17)

    monday_week = resolve_period("week", clock.now(), clock, week_start=0)
    assert monday_week.start == local(2024, 3, 11)
    assert monday_week.end == local(2024, 3, 18)


def test_week_on_its_first_day_starts_today() -> None:
    clock = FixedClock(local(2024, 3, 10, 9), TZ)  # Sunday
    date_range = resolve_period("week", clock.now(), clock, week_start=6)

    assert date_range.start == local(2024, 3, 10)


def test_month_rolls_over_the_year() -> None:
    clock = FixedClock(local(2024, 12, 31, 23, 59), TZ)
    date_range = resolve_period("month", clock.now(), clock)

    assert date_range.start == local(2024, 12, 1)
    assert date_range.end == local(2025, 1, 1)


def test_all_spans_far_past_to_ten_years_ahead() -> None:
    clock = FixedClock(local(2024, 3, 13, 15), TZ)
    date_range = resolve_period("all", clock.now(), clock)

    assert date_range.start == local(FAR_PAST.year, FAR_PAST.month, FAR_PAST.day)
    assert date_range.end == local(2034, 3, 13)
    assert date_range.contains(clock.now())


def test_all_from_leap_day() -> None:
    clock = FixedClock(local(2024, 2, 29, 12), TZ)
    date_range = resolve_period("all", clock.now(), clock)

    assert date_range.end == local(2034, 2, 28)


def test_custom_range_includes_both_days() -> None:
    clock = Clock(TZ)
    date_range = resolve_custom_range(date(2024, 3, 1), date(2024, 3, 5), clock)

    assert date_range.contains(local(2024, 3, 1))
    assert date_range.contains(local(2024, 3, 5, 23, 59))
    assert not date_range.contains(local(2024, 3, 6))


def test_custom_range_single_day() -> None:
    clock = Clock(TZ)
    date_range = resolve_custom_range(date(2024, 3, 1), date(2024, 3, 1), clock)

    assert date_range.end - date_range.start == timedelta(days=1)


def test_custom_range_rejects_inverted_days() -> None:
    with pytest.raises(ValidationFailed):
        resolve_custom_range(date(2024, 3, 5), date(2024, 3, 1), Clock(TZ))


def test_today_on_dst_transition_is_23_hours() -> None:
    berlin = "Europe/Berlin"
    clock = FixedClock(datetime(2024, 3, 31, 12, tzinfo=ZoneInfo(berlin)), berlin)
    date_range = resolve_period("today", clock.now(), clock)

    assert date_range.start == datetime(2024, 3, 30, 23, tzinfo=timezone.utc)
    assert date_range.end - date_range.start == timedelta(hours=23)


def test_unknown_period_and_bad_dates_are_rejected() -> None:
    with pytest.raises(ValidationFailed):
        parse_period("fortnight")
    with pytest.raises(ValidationFailed):
        parse_civil_date("05/03/2024")
    assert parse_civil_date(" 2024-03-05 ") == date(2024, 3, 5)


def test_fixed_clock_advance_and_naive_instants() -> None:
    clock = FixedClock(datetime(2024, 3, 13, 23, 30), TZ)
    assert clock.now() == local(2024, 3, 13, 23, 30)
    assert clock.to_civil_date_key(clock.now()) == "2024-03-13"

    clock.advance(hours=1)
    assert clock.to_civil_date_key(clock.now()) == "2024-03-14"
    assert clock.format_civil_date(clock.now()) == "14/03/2024"


def test_shift_civil_days_lands_on_midnight() -> None:
    clock = Clock(TZ)
    shifted = clock.shift_civil_days(local(2024, 3, 13, 15), -2)

    assert shifted == local(2024, 3, 11)
