from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from clock import Clock
from filters import EntryQuery, FilterState
from ledger import DateRange, DayBucket, LedgerEntry, MethodTotal, Report, SummaryData
from models import EntryType, PaymentMethod
from store import newest_first

ZERO = Decimal("0")


def summarize(entries: Iterable[LedgerEntry]) -> SummaryData:
    income = ZERO
    expenses = ZERO
    for entry in entries:
        if entry.type == EntryType.income:
            income += entry.amount
        else:
            expenses += entry.amount
    return SummaryData(total_income=income, total_expenses=expenses)


def bucket_by_day(
    entries: Iterable[LedgerEntry], date_range: DateRange, clock: Clock
) -> list[DayBucket]:
    """Income and expense per civil day, ascending.

    Days without activity are left out rather than zero-filled, so an
    all-time range does not produce years of empty points.
    """
    totals: dict[str, list[Decimal]] = {}
    for entry in entries:
        key = clock.to_civil_date_key(entry.date)
        bucket = totals.setdefault(key, [ZERO, ZERO])
        if entry.type == EntryType.income:
            bucket[0] += entry.amount
        else:
            bucket[1] += entry.amount

    first_key = clock.to_civil_date_key(clock.civil_day_start(date_range.start))
    last_key = clock.to_civil_date_key(clock.civil_day_start(date_range.end))
    series: list[DayBucket] = []
    # ISO keys sort chronologically
    for key in sorted(totals):
        if not first_key <= key <= last_key:
            continue
        income, expense = totals[key]
        if income or expense:
            series.append(DayBucket(day_key=key, income=income, expense=expense))
    return series


def bucket_by_method(entries: Iterable[LedgerEntry]) -> list[MethodTotal]:
    totals: dict[PaymentMethod, Decimal] = {}
    for entry in entries:
        totals[entry.method] = totals.get(entry.method, ZERO) + entry.amount
    ordered = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [MethodTotal(method=method, total=total) for method, total in ordered if total]


def select_entries(
    entries: Iterable[LedgerEntry], query: EntryQuery
) -> list[LedgerEntry]:
    return newest_first(e for e in entries if query.matches(e))


def build_report(
    entries: Iterable[LedgerEntry],
    filter_state: FilterState,
    clock: Clock,
    now: Optional[datetime] = None,
) -> Report:
    query = filter_state.to_query(clock, now)
    selected = select_entries(entries, query)
    return Report(
        date_range=query.date_range,
        entries=tuple(selected),
        summary=summarize(selected),
        daily=bucket_by_day(selected, query.date_range, clock),
        methods=bucket_by_method(selected),
    )
