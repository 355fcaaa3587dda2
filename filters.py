from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Mapping, Optional, Union

from clock import Clock
from errors import ValidationFailed
from ledger import DateRange, LedgerEntry, coerce_entry_type, coerce_payment_method
from models import EntryType, PaymentMethod
from periods import (
    PeriodSlug,
    parse_civil_date,
    parse_period,
    resolve_custom_range,
    resolve_period,
)

ALL = "all"


def _strip_all(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    if not value or value == ALL:
        return None
    return value


@dataclass(frozen=True)
class EntryPredicate:
    method: Optional[PaymentMethod] = None
    type: Optional[EntryType] = None
    created_by: Optional[str] = None

    def matches(self, entry: LedgerEntry) -> bool:
        if self.method is not None and entry.method != self.method:
            return False
        if self.type is not None and entry.type != self.type:
            return False
        if self.created_by is not None and entry.created_by != self.created_by:
            return False
        return True


@dataclass(frozen=True)
class EntryQuery:
    """One predicate plus one range; count and page fetch share the same instance."""

    predicate: EntryPredicate
    date_range: DateRange

    def matches(self, entry: LedgerEntry) -> bool:
        return self.date_range.contains(entry.date) and self.predicate.matches(entry)


@dataclass(frozen=True)
class FilterState:
    period: Optional[PeriodSlug] = PeriodSlug.today
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    entry_type: Optional[EntryType] = None
    created_by: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.from_date is None) != (self.to_date is None):
            raise ValidationFailed("A custom range needs both from_date and to_date")
        if self.period is not None and self.from_date is not None:
            raise ValidationFailed("period and a custom range are mutually exclusive")
        if self.from_date is not None and self.from_date > self.to_date:
            raise ValidationFailed("Start date must be before end date")

    @classmethod
    def default(cls) -> "FilterState":
        return cls(period=PeriodSlug.today)

    def reset(self) -> "FilterState":
        return FilterState.default()

    def set_period(self, period: Union[str, PeriodSlug]) -> "FilterState":
        return replace(self, period=parse_period(period), from_date=None, to_date=None)

    def set_custom_range(
        self, from_date: Union[str, date], to_date: Union[str, date]
    ) -> "FilterState":
        if isinstance(from_date, str):
            from_date = parse_civil_date(from_date)
        if isinstance(to_date, str):
            to_date = parse_civil_date(to_date)
        return replace(self, period=None, from_date=from_date, to_date=to_date)

    def with_payment_method(
        self, method: Union[str, PaymentMethod, None]
    ) -> "FilterState":
        value = _strip_all(method.value if isinstance(method, PaymentMethod) else method)
        return replace(
            self, payment_method=coerce_payment_method(value) if value else None
        )

    def with_entry_type(self, entry_type: Union[str, EntryType, None]) -> "FilterState":
        value = _strip_all(
            entry_type.value if isinstance(entry_type, EntryType) else entry_type
        )
        return replace(self, entry_type=coerce_entry_type(value) if value else None)

    def with_created_by(self, user_id: Optional[str]) -> "FilterState":
        return replace(self, created_by=_strip_all(user_id))

    @property
    def is_custom(self) -> bool:
        return self.from_date is not None

    def to_effective_range(
        self, clock: Clock, now: Optional[datetime] = None
    ) -> DateRange:
        now = now or clock.now()
        if self.is_custom:
            return resolve_custom_range(self.from_date, self.to_date, clock)
        return resolve_period(self.period or PeriodSlug.all, now, clock)

    def to_predicate(self) -> EntryPredicate:
        return EntryPredicate(
            method=self.payment_method,
            type=self.entry_type,
            created_by=self.created_by,
        )

    def to_query(self, clock: Clock, now: Optional[datetime] = None) -> EntryQuery:
        return EntryQuery(self.to_predicate(), self.to_effective_range(clock, now))

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.period is not None:
            params["period"] = self.period.value
        if self.is_custom:
            params["from_date"] = self.from_date.isoformat()
            params["to_date"] = self.to_date.isoformat()
        if self.payment_method is not None:
            params["payment_method"] = self.payment_method.value
        if self.entry_type is not None:
            params["entry_type"] = self.entry_type.value
        if self.created_by is not None:
            params["created_by"] = self.created_by
        return params

    @classmethod
    def from_params(cls, params: Mapping[str, Optional[str]]) -> "FilterState":
        state = cls.default()
        from_raw = (params.get("from_date") or "").strip()
        to_raw = (params.get("to_date") or "").strip()
        period_raw = (params.get("period") or "").strip()
        if from_raw or to_raw:
            if not (from_raw and to_raw):
                raise ValidationFailed(
                    "Custom period requires from_date and to_date"
                )
            state = state.set_custom_range(from_raw, to_raw)
        elif period_raw:
            state = state.set_period(period_raw)
        return (
            state.with_payment_method(params.get("payment_method"))
            .with_entry_type(params.get("entry_type"))
            .with_created_by(params.get("created_by"))
        )
