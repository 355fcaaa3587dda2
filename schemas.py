from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import EntryType, PaymentMethod


def clean_description(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    # CSV rows are newline-terminated and only comma-bearing fields are quoted
    if "\n" in value or "\r" in value:
        raise ValueError("Description must be a single line")
    return value or None


class EntryIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: EntryType
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    date: datetime
    description: Optional[str] = Field(default=None, max_length=200)
    method: PaymentMethod

    @field_validator("description")
    @classmethod
    def single_line_description(cls, value: Optional[str]) -> Optional[str]:
        return clean_description(value)


class DescriptionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(default=None, max_length=200)

    @field_validator("description")
    @classmethod
    def single_line_description(cls, value: Optional[str]) -> Optional[str]:
        return clean_description(value)


class SessionIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)


class EntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: EntryType
    amount: Decimal
    date: datetime
    description: Optional[str] = None
    method: PaymentMethod
    created_by: str
    created_at: Optional[datetime] = None
    created_by_label: Optional[str] = None


class PageOut(BaseModel):
    items: list[EntryOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class SummaryOut(BaseModel):
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal


class DayBucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_key: str
    income: Decimal
    expense: Decimal


class MethodTotalOut(BaseModel):
    method: PaymentMethod
    label: str
    total: Decimal


class CreatorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str


class ReportOut(BaseModel):
    start: datetime
    end: datetime
    summary: SummaryOut
    daily: list[DayBucketOut]
    methods: list[MethodTotalOut]
