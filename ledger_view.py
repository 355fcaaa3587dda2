"""Visible ledger state for one screen: the full entry set and the current page.

Two fetch families feed it. The full set drives summary cards, charts and the
CSV export; the filtered page drives the table. They are refreshed in sequence
after a mutation, never as one transaction. Page loads carry a sequencer token
and a response is applied only while its token is still the newest, so a slow
request for an old filter can never overwrite a newer one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from aggregation import build_report
from clock import Clock
from csv_utils import serialize_entries
from errors import QueryFailed
from filters import FilterState
from ledger import Creator, LedgerEntry, PaginatedResult, Report
from planner import MemoryPageBackend, QueryPlanner, RequestSequencer
from services import EntryService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeleteOutcome:
    entry_id: str
    deleted: bool
    refresh_error: Optional[QueryFailed] = None

    @property
    def refreshed(self) -> bool:
        return self.refresh_error is None


class LedgerView:
    def __init__(
        self,
        service: EntryService,
        planner: QueryPlanner,
        clock: Clock,
        page_size: int = 10,
    ) -> None:
        self.service = service
        self.planner = planner
        self.clock = clock
        self.page_size = page_size
        self.filter = FilterState.default()
        self.page = 1
        self.page_result: Optional[PaginatedResult] = None
        self.entries: list[LedgerEntry] = []
        self.creators: list[Creator] = []
        self.sequencer = RequestSequencer()

    async def load(self) -> None:
        """Initial load: full set and creators first, then the first page."""
        self.entries = await self.service.store.get_all()
        self.creators = await self.service.list_creators()
        self._sync_backend()
        await self.load_page()

    def _sync_backend(self) -> None:
        if isinstance(self.planner.backend, MemoryPageBackend):
            self.planner.backend.load(self.entries)

    async def load_page(
        self, filter_state: Optional[FilterState] = None, page: Optional[int] = None
    ) -> bool:
        """Fetch one page and make it visible together with its filter.

        Filter, page number and rows change only when this request is still the
        newest one and succeeded; False if a newer request superseded it.
        """
        token = self.sequencer.issue()
        filter_state = self.filter if filter_state is None else filter_state
        page = self.page if page is None else max(page, 1)
        try:
            result = await self.planner.fetch_page(filter_state, page, self.page_size)
        except QueryFailed:
            if not self.sequencer.is_current(token):
                logger.info(f"page_failure_ignored: token={token}")
                return False
            raise
        if not self.sequencer.is_current(token):
            logger.info(
                f"page_discarded: token={token} latest={self.sequencer.latest}"
            )
            return False
        self.filter = filter_state
        self.page = page
        self.page_result = result
        return True

    async def apply_filter(self, filter_state: FilterState) -> bool:
        return await self.load_page(filter_state, 1)

    async def reset_filters(self) -> bool:
        return await self.apply_filter(self.filter.reset())

    async def change_page(self, page: int) -> bool:
        return await self.load_page(self.filter, page)

    def report(self, now: Optional[datetime] = None) -> Report:
        return build_report(self.entries, self.filter, self.clock, now)

    def export_csv(self, now: Optional[datetime] = None) -> str:
        return serialize_entries(self.report(now).entries, self.clock)

    async def add_entry(self, data) -> LedgerEntry:
        created = await self.service.create(data)
        self.entries = [*self.entries, created]
        self._sync_backend()
        await self.load_page()
        return created

    async def delete_entry(self, entry_id: str) -> DeleteOutcome:
        await self.service.delete(entry_id)
        self.entries = [e for e in self.entries if e.id != entry_id]
        self._sync_backend()
        try:
            await self.load_page()
        except QueryFailed as exc:
            logger.warning(f"refresh_after_delete_failed: id={entry_id} error={exc}")
            return DeleteOutcome(entry_id, deleted=True, refresh_error=exc)
        return DeleteOutcome(entry_id, deleted=True)

    async def update_description(
        self, entry_id: str, description: Optional[str]
    ) -> LedgerEntry:
        updated = await self.service.update_description(entry_id, description)
        self.entries = [updated if e.id == entry_id else e for e in self.entries]
        self._sync_backend()
        if self.page_result is not None:
            self.page_result = PaginatedResult(
                entries=tuple(
                    updated if e.id == entry_id else e for e in self.page_result.entries
                ),
                total=self.page_result.total,
                page=self.page_result.page,
                page_size=self.page_result.page_size,
            )
        return updated
