from __future__ import annotations

import logging
from datetime import datetime
from typing import AsyncIterator, Iterable, Optional, Protocol

from clock import Clock
from config import Settings, get_settings
from errors import QueryFailed, ValidationFailed
from filters import EntryQuery, FilterState
from ledger import LedgerEntry, PaginatedResult
from store import EntryStore, StorePage, newest_first

logger = logging.getLogger(__name__)


class PageBackend(Protocol):
    async def fetch(self, query: EntryQuery, offset: int, limit: int) -> StorePage: ...


class StorePageBackend:
    """Pages are counted and sliced by the store itself."""

    def __init__(self, store: EntryStore) -> None:
        self.store = store

    async def fetch(self, query: EntryQuery, offset: int, limit: int) -> StorePage:
        return await self.store.get_page(offset=offset, limit=limit, query=query)


class MemoryPageBackend:
    """Pages are sliced from a snapshot of every entry, loaded once from the store."""

    def __init__(
        self,
        store: Optional[EntryStore] = None,
        entries: Optional[Iterable[LedgerEntry]] = None,
    ) -> None:
        self.store = store
        self._entries: Optional[list[LedgerEntry]] = (
            newest_first(entries) if entries is not None else None
        )

    def load(self, entries: Iterable[LedgerEntry]) -> None:
        self._entries = newest_first(entries)

    async def fetch(self, query: EntryQuery, offset: int, limit: int) -> StorePage:
        if self._entries is None:
            if self.store is None:
                raise ValueError("MemoryPageBackend has neither entries nor a store")
            self._entries = newest_first(await self.store.get_all())
        matching = [e for e in self._entries if query.matches(e)]
        return StorePage(matching[offset : offset + limit], len(matching))


class RequestSequencer:
    """Monotonic request tokens; only the most recently issued one may be applied."""

    def __init__(self) -> None:
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest


class QueryPlanner:
    def __init__(self, backend: PageBackend, clock: Clock) -> None:
        self.backend = backend
        self.clock = clock

    async def fetch_page(
        self,
        filter_state: FilterState,
        page: int,
        page_size: int,
        *,
        now: Optional[datetime] = None,
    ) -> PaginatedResult:
        if page < 1:
            raise ValidationFailed("page must be 1 or greater")
        if page_size < 1:
            raise ValidationFailed("page_size must be 1 or greater")
        query = filter_state.to_query(self.clock, now)
        offset = (page - 1) * page_size
        try:
            result = await self.backend.fetch(query, offset, page_size)
        except ValidationFailed:
            raise
        except Exception as exc:
            logger.warning(
                f"query_failed: filter={filter_state.to_params()} page={page} error={exc}"
            )
            raise QueryFailed(exc) from exc
        return PaginatedResult(
            entries=tuple(result.entries),
            total=result.total,
            page=page,
            page_size=page_size,
        )

    async def iter_pages(
        self, filter_state: FilterState, page_size: int
    ) -> AsyncIterator[PaginatedResult]:
        now = self.clock.now()
        page = 1
        while True:
            result = await self.fetch_page(filter_state, page, page_size, now=now)
            yield result
            if page >= result.total_pages:
                return
            page += 1


def planner_for(
    store: EntryStore, clock: Clock, settings: Optional[Settings] = None
) -> QueryPlanner:
    settings = settings or get_settings()
    if settings.query_backend == "memory":
        backend: PageBackend = MemoryPageBackend(store)
    else:
        backend = StorePageBackend(store)
    return QueryPlanner(backend, clock)
