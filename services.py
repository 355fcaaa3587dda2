from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from aggregation import build_report
from clock import Clock
from csv_utils import export_filename, serialize_entries
from errors import Forbidden, NotFound, Unauthenticated, ValidationFailed
from filters import FilterState
from ledger import Creator, LedgerEntry, NewEntry, Report
from models import User
from schemas import DescriptionIn, EntryIn
from store import EntryStore

logger = logging.getLogger(__name__)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return "; ".join(parts)


class EntryService:
    def __init__(
        self, store: EntryStore, clock: Clock, user_id: Optional[str] = None
    ) -> None:
        self.store = store
        self.clock = clock
        self.user_id = user_id

    def _require_user(self) -> str:
        if not self.user_id:
            raise Unauthenticated("A session is required to modify entries")
        return self.user_id

    async def create(self, data: Union[EntryIn, Mapping[str, Any]]) -> LedgerEntry:
        user_id = self._require_user()
        if not isinstance(data, EntryIn):
            try:
                data = EntryIn.model_validate(dict(data))
            except ValidationError as exc:
                raise ValidationFailed(_validation_message(exc)) from exc
        entry_date = data.date
        if entry_date.tzinfo is None:
            entry_date = entry_date.replace(tzinfo=self.clock.tz)
        new_entry = NewEntry(
            type=data.type,
            amount=data.amount,
            date=entry_date,
            method=data.method,
            description=data.description,
        )
        created = await self.store.insert(new_entry, user_id)
        logger.info(
            f"entry_created: id={created.id} type={created.type.value} "
            f"method={created.method.value} user={user_id}"
        )
        return created

    async def delete(self, entry_id: str) -> None:
        user_id = self._require_user()
        await self.store.delete_by_id(entry_id)
        logger.info(f"entry_deleted: id={entry_id} user={user_id}")

    async def update_description(
        self, entry_id: str, description: Optional[str]
    ) -> LedgerEntry:
        user_id = self._require_user()
        try:
            clean = DescriptionIn(description=description).description
        except ValidationError as exc:
            raise ValidationFailed(_validation_message(exc)) from exc
        entry = await self.store.get(entry_id)
        if entry.created_by != user_id:
            raise Forbidden("Only the author can edit this entry")
        await self.store.update_description(entry_id, clean)
        logger.info(f"entry_description_updated: id={entry_id} user={user_id}")
        return entry.with_description(clean)

    async def list_creators(self) -> list[Creator]:
        return await self.store.list_creators()


class ReportService:
    def __init__(self, store: EntryStore, clock: Clock) -> None:
        self.store = store
        self.clock = clock

    async def report(
        self, filter_state: FilterState, now: Optional[datetime] = None
    ) -> Report:
        now = now or self.clock.now()
        entries = await self.store.get_matching(filter_state.to_query(self.clock, now))
        return build_report(entries, filter_state, self.clock, now)

    async def export_csv(
        self, filter_state: FilterState, now: Optional[datetime] = None
    ) -> tuple[str, str]:
        now = now or self.clock.now()
        report = await self.report(filter_state, now)
        csv_text = serialize_entries(report.entries, self.clock)
        logger.info(
            f"csv_exported: rows={len(report.entries)} filter={filter_state.to_params()}"
        )
        return export_filename(now, self.clock), csv_text


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_email(self, email: str) -> User:
        user = self.session.scalar(
            select(User).where(User.email == email.strip().lower())
        )
        if not user:
            raise NotFound("User not found")
        return user
