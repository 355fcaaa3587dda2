from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union

from clock import Clock
from config import get_settings
from errors import ValidationFailed
from ledger import DateRange

FAR_PAST = date(2000, 1, 1)
ALL_TIME_YEARS_AHEAD = 10


class PeriodSlug(str, Enum):
    today = "today"
    week = "week"
    month = "month"
    all = "all"


def parse_period(value: Union[str, PeriodSlug]) -> PeriodSlug:
    try:
        return PeriodSlug(value)
    except ValueError as exc:
        raise ValidationFailed(f"Unknown period: {value!r}") from exc


def parse_civil_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationFailed(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc


def _years_later(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # 29 February
        return day.replace(year=day.year + years, day=28)


def resolve_period(
    period: Union[str, PeriodSlug],
    now: datetime,
    clock: Clock,
    *,
    week_start: Optional[int] = None,
) -> DateRange:
    slug = parse_period(period)
    today = clock.civil_date(now)

    if slug is PeriodSlug.today:
        return DateRange(
            clock.start_of_civil_date(today),
            clock.start_of_civil_date(today + timedelta(days=1)),
        )
    if slug is PeriodSlug.week:
        first_weekday = get_settings().week_start if week_start is None else week_start
        offset = (today.weekday() - first_weekday) % 7
        week_first = today - timedelta(days=offset)
        return DateRange(
            clock.start_of_civil_date(week_first),
            clock.start_of_civil_date(week_first + timedelta(days=7)),
        )
    if slug is PeriodSlug.month:
        first = today.replace(day=1)
        if first.month == 12:
            next_month = first.replace(year=first.year + 1, month=1)
        else:
            next_month = first.replace(month=first.month + 1)
        return DateRange(
            clock.start_of_civil_date(first), clock.start_of_civil_date(next_month)
        )

    return DateRange(
        clock.start_of_civil_date(FAR_PAST),
        clock.start_of_civil_date(_years_later(today, ALL_TIME_YEARS_AHEAD)),
    )


def resolve_custom_range(from_day: date, to_day: date, clock: Clock) -> DateRange:
    """Both civil days are included: ``[start(from_day), start(to_day) + 1 day)``."""
    if from_day > to_day:
        raise ValidationFailed("Start date must be before end date")
    return DateRange(
        clock.start_of_civil_date(from_day),
        clock.start_of_civil_date(to_day + timedelta(days=1)),
    )
