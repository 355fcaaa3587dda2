from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from errors import ValidationFailed
from models import EntryType, PaymentMethod


def coerce_entry_type(value: object) -> EntryType:
    try:
        return EntryType(value)
    except ValueError as exc:
        raise ValidationFailed(f"Unknown entry type: {value!r}") from exc


def coerce_payment_method(value: object) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError as exc:
        raise ValidationFailed(f"Unknown payment method: {value!r}") from exc


def require_aware(instant: datetime, name: str = "date") -> datetime:
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValidationFailed(f"{name} must be timezone-aware")
    return instant


@dataclass(frozen=True)
class LedgerEntry:
    id: str
    type: EntryType
    amount: Decimal
    date: datetime
    method: PaymentMethod
    created_by: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by_label: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", coerce_entry_type(self.type))
        object.__setattr__(self, "method", coerce_payment_method(self.method))
        try:
            amount = Decimal(str(self.amount))
        except InvalidOperation as exc:
            raise ValidationFailed("Invalid amount") from exc
        if not amount.is_finite() or amount <= 0:
            raise ValidationFailed("Amount must be positive")
        object.__setattr__(self, "amount", amount)
        require_aware(self.date)
        if self.created_at is not None:
            require_aware(self.created_at, "created_at")

    def with_description(self, description: Optional[str]) -> "LedgerEntry":
        return replace(self, description=description or None)


@dataclass(frozen=True)
class NewEntry:
    """An entry before the store assigns its id, author and persistence time."""

    type: EntryType
    amount: Decimal
    date: datetime
    method: PaymentMethod
    description: Optional[str] = None


@dataclass(frozen=True)
class DateRange:
    """Half-open interval ``[start, end)`` of aware instants."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        require_aware(self.start, "start")
        require_aware(self.end, "end")
        if self.start > self.end:
            raise ValidationFailed("Range start must not be after its end")

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


@dataclass(frozen=True)
class SummaryData:
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_expenses


@dataclass(frozen=True)
class DayBucket:
    day_key: str
    income: Decimal
    expense: Decimal


@dataclass(frozen=True)
class MethodTotal:
    method: PaymentMethod
    total: Decimal


@dataclass(frozen=True)
class Creator:
    id: str
    label: str


@dataclass(frozen=True)
class PaginatedResult:
    entries: tuple[LedgerEntry, ...]
    total: int
    page: int = 1
    page_size: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


@dataclass(frozen=True)
class Report:
    date_range: DateRange
    entries: tuple[LedgerEntry, ...]
    summary: SummaryData
    daily: list[DayBucket] = field(default_factory=list)
    methods: list[MethodTotal] = field(default_factory=list)
