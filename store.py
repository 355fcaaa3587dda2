from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Iterable, Optional, Protocol, TypeVar

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from errors import NotFound, StoreUnavailable, Unauthenticated
from filters import EntryQuery
from ledger import Creator, LedgerEntry, NewEntry
from models import Entry, User

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StorePage:
    entries: list[LedgerEntry]
    total: int


class EntryStore(Protocol):
    async def get_all(self) -> list[LedgerEntry]: ...

    async def get_matching(self, query: EntryQuery) -> list[LedgerEntry]: ...

    async def get(self, entry_id: str) -> LedgerEntry: ...

    async def get_page(
        self, *, offset: int, limit: int, query: EntryQuery
    ) -> StorePage: ...

    async def insert(self, entry: NewEntry, user_id: str) -> LedgerEntry: ...

    async def delete_by_id(self, entry_id: str) -> None: ...

    async def update_description(
        self, entry_id: str, description: Optional[str]
    ) -> None: ...

    async def list_creators(self) -> list[Creator]: ...


def newest_first(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    return sorted(entries, key=lambda e: (e.date, e.id), reverse=True)


def to_storage_instant(instant: datetime) -> datetime:
    return instant.astimezone(timezone.utc).replace(tzinfo=None)


def from_storage_instant(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MemoryEntryStore:
    """Entries held in a list; used for the in-memory backend and in tests."""

    def __init__(
        self,
        entries: Iterable[LedgerEntry] = (),
        users: Optional[dict[str, str]] = None,
    ) -> None:
        self._entries: dict[str, LedgerEntry] = {e.id: e for e in entries}
        self.users: dict[str, str] = dict(users or {})

    async def get_all(self) -> list[LedgerEntry]:
        return newest_first(self._entries.values())

    async def get_matching(self, query: EntryQuery) -> list[LedgerEntry]:
        return newest_first(e for e in self._entries.values() if query.matches(e))

    async def get(self, entry_id: str) -> LedgerEntry:
        try:
            return self._entries[entry_id]
        except KeyError as exc:
            raise NotFound("Entry not found") from exc

    async def get_page(self, *, offset: int, limit: int, query: EntryQuery) -> StorePage:
        matching = newest_first(e for e in self._entries.values() if query.matches(e))
        return StorePage(matching[offset : offset + limit], len(matching))

    async def insert(self, entry: NewEntry, user_id: str) -> LedgerEntry:
        if user_id not in self.users:
            raise Unauthenticated("Unknown user")
        created = LedgerEntry(
            id=str(uuid.uuid4()),
            type=entry.type,
            amount=entry.amount,
            date=entry.date,
            method=entry.method,
            description=entry.description,
            created_by=user_id,
            created_at=datetime.now(timezone.utc),
            created_by_label=self.users[user_id],
        )
        self._entries[created.id] = created
        return created

    async def delete_by_id(self, entry_id: str) -> None:
        if self._entries.pop(entry_id, None) is None:
            raise NotFound("Entry not found")

    async def update_description(
        self, entry_id: str, description: Optional[str]
    ) -> None:
        current = await self.get(entry_id)
        self._entries[entry_id] = current.with_description(description)

    async def list_creators(self) -> list[Creator]:
        seen: dict[str, Creator] = {}
        for entry in self._entries.values():
            if entry.created_by not in seen:
                label = self.users.get(entry.created_by) or entry.created_by_label
                seen[entry.created_by] = Creator(entry.created_by, label or entry.created_by)
        return sorted(seen.values(), key=lambda c: c.label)


class SqlEntryStore:
    """Entry store over a synchronous SQLAlchemy session.

    Each call runs its session work in FastAPI's threadpool, so the event loop
    keeps serving other requests during the database round trip. Calls on one
    store are awaited one at a time, which is all a ``Session`` allows.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def _to_record(row: Entry) -> LedgerEntry:
        return LedgerEntry(
            id=row.id,
            type=row.type,
            amount=row.amount,
            date=from_storage_instant(row.date),
            method=row.method,
            description=row.description,
            created_by=row.created_by,
            created_at=from_storage_instant(row.created_at),
            created_by_label=row.author.email if row.author else None,
        )

    def _where(self, stmt, query: EntryQuery):
        stmt = stmt.where(
            Entry.date >= to_storage_instant(query.date_range.start),
            Entry.date < to_storage_instant(query.date_range.end),
        )
        predicate = query.predicate
        if predicate.method is not None:
            stmt = stmt.where(Entry.method == predicate.method)
        if predicate.type is not None:
            stmt = stmt.where(Entry.type == predicate.type)
        if predicate.created_by is not None:
            stmt = stmt.where(Entry.created_by == predicate.created_by)
        return stmt

    def _fail(self, operation: str, exc: SQLAlchemyError) -> StoreUnavailable:
        self.session.rollback()
        logger.error(f"store_failed: operation={operation} error={exc}")
        return StoreUnavailable(f"Entry store unavailable during {operation}")

    def _run(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except SQLAlchemyError as exc:
            raise self._fail(operation, exc) from exc

    def _select_entries(self, query: Optional[EntryQuery] = None) -> list[LedgerEntry]:
        stmt = select(Entry).options(joinedload(Entry.author))
        if query is not None:
            stmt = self._where(stmt, query)
        rows = self.session.scalars(
            stmt.order_by(Entry.date.desc(), Entry.id.desc())
        ).all()
        return [self._to_record(row) for row in rows]

    def _get(self, entry_id: str) -> LedgerEntry:
        row = self.session.scalar(
            select(Entry).options(joinedload(Entry.author)).where(Entry.id == entry_id)
        )
        if not row:
            raise NotFound("Entry not found")
        return self._to_record(row)

    def _get_page(self, offset: int, limit: int, query: EntryQuery) -> StorePage:
        count_stmt = self._where(select(func.count(Entry.id)), query)
        page_stmt = (
            self._where(select(Entry).options(joinedload(Entry.author)), query)
            .order_by(Entry.date.desc(), Entry.id.desc())
            .offset(offset)
            .limit(limit)
        )
        total = int(self.session.execute(count_stmt).scalar_one() or 0)
        rows = self.session.scalars(page_stmt).all()
        return StorePage([self._to_record(row) for row in rows], total)

    def _insert(self, entry: NewEntry, user_id: str) -> LedgerEntry:
        author = self.session.get(User, user_id)
        if not author:
            raise Unauthenticated("Unknown user")
        row = Entry(
            type=entry.type,
            amount=entry.amount,
            date=to_storage_instant(entry.date),
            description=entry.description,
            method=entry.method,
            created_by=author.id,
        )
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return self._to_record(row)

    def _delete(self, entry_id: str) -> None:
        result = self.session.execute(delete(Entry).where(Entry.id == entry_id))
        if not result.rowcount:
            self.session.rollback()
            raise NotFound("Entry not found")
        self.session.commit()

    def _update_description(self, entry_id: str, description: Optional[str]) -> None:
        result = self.session.execute(
            update(Entry)
            .where(Entry.id == entry_id)
            .values(description=description or None)
        )
        if not result.rowcount:
            self.session.rollback()
            raise NotFound("Entry not found")
        self.session.commit()

    def _list_creators(self) -> list[Creator]:
        stmt = (
            select(User.id, User.email)
            .where(select(Entry.id).where(Entry.created_by == User.id).exists())
            .order_by(User.email)
        )
        return [Creator(row.id, row.email) for row in self.session.execute(stmt).all()]

    async def get_all(self) -> list[LedgerEntry]:
        return await run_in_threadpool(self._run, "get_all", self._select_entries)

    async def get_matching(self, query: EntryQuery) -> list[LedgerEntry]:
        return await run_in_threadpool(
            self._run, "get_matching", partial(self._select_entries, query)
        )

    async def get(self, entry_id: str) -> LedgerEntry:
        return await run_in_threadpool(self._run, "get", partial(self._get, entry_id))

    async def get_page(self, *, offset: int, limit: int, query: EntryQuery) -> StorePage:
        return await run_in_threadpool(
            self._run, "get_page", partial(self._get_page, offset, limit, query)
        )

    async def insert(self, entry: NewEntry, user_id: str) -> LedgerEntry:
        return await run_in_threadpool(
            self._run, "insert", partial(self._insert, entry, user_id)
        )

    async def delete_by_id(self, entry_id: str) -> None:
        await run_in_threadpool(self._run, "delete_by_id", partial(self._delete, entry_id))

    async def update_description(
        self, entry_id: str, description: Optional[str]
    ) -> None:
        await run_in_threadpool(
            self._run,
            "update_description",
            partial(self._update_description, entry_id, description),
        )

    async def list_creators(self) -> list[Creator]:
        return await run_in_threadpool(self._run, "list_creators", self._list_creators)
