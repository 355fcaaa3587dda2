import asyncio
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from clock import FixedClock
from errors import Forbidden, NotFound, QueryFailed, StoreUnavailable
from filters import FilterState
from ledger import LedgerEntry
from ledger_view import LedgerView
from models import EntryType, PaymentMethod
from planner import MemoryPageBackend, QueryPlanner, StorePageBackend
from services import EntryService
from store import MemoryEntryStore

TZ = "America/Argentina/Buenos_Aires"
ART = ZoneInfo(TZ)


def make_clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 13, 15, tzinfo=ART), TZ)


def seed_entries() -> list[LedgerEntry]:
    def entry(entry_id, hour, method, created_by="u1"):
        return LedgerEntry(
            id=entry_id,
            type=EntryType.income,
            amount=Decimal("25"),
            date=datetime(2024, 3, 13, hour, tzinfo=ART),
            method=method,
            created_by=created_by,
            description=f"entry {entry_id}",
        )

    return [
        entry("a", 8, PaymentMethod.cash),
        entry("b", 9, PaymentMethod.transfer),
        entry("c", 10, PaymentMethod.cash, created_by="u2"),
        entry("d", 11, PaymentMethod.transfer),
    ]


class GatedStore(MemoryEntryStore):
    """Holds page requests for each gated method until its event is set."""

    def __init__(self, entries, *slow_methods):
        super().__init__(entries, users={"u1": "ana@example.com", "u2": "luis@example.com"})
        self.gates = {method: asyncio.Event() for method in slow_methods}

    async def get_page(self, *, offset, limit, query):
        gate = self.gates.get(query.predicate.method)
        if gate is not None:
            await gate.wait()
        return await super().get_page(offset=offset, limit=limit, query=query)


class FlakyPageStore(MemoryEntryStore):
    def __init__(self, entries):
        super().__init__(entries, users={"u1": "ana@example.com"})
        self.fail_pages = False

    async def get_page(self, *, offset, limit, query):
        if self.fail_pages:
            raise StoreUnavailable("timeout")
        return await super().get_page(offset=offset, limit=limit, query=query)


def make_view(store, user_id="u1", page_size=10) -> LedgerView:
    clock = make_clock()
    return LedgerView(
        EntryService(store, clock, user_id),
        QueryPlanner(StorePageBackend(store), clock),
        clock,
        page_size=page_size,
    )


@pytest.mark.asyncio
async def test_load_fills_entries_creators_and_first_page() -> None:
    view = make_view(GatedStore(seed_entries()))
    await view.load()

    assert len(view.entries) == 4
    assert [c.label for c in view.creators] == ["ana@example.com", "luis@example.com"]
    assert [e.id for e in view.page_result.entries] == ["d", "c", "b", "a"]


@pytest.mark.asyncio
async def test_older_slow_response_is_discarded() -> None:
    store = GatedStore(seed_entries(), PaymentMethod.cash)
    view = make_view(store)
    cash = FilterState.default().with_payment_method("cash")
    transfer = FilterState.default().with_payment_method("transfer")

    slow = asyncio.create_task(view.apply_filter(cash))
    await asyncio.sleep(0)
    applied = await view.apply_filter(transfer)
    store.gates[PaymentMethod.cash].set()
    stale_applied = await slow

    assert applied is True
    assert stale_applied is False
    assert view.filter == transfer
    assert [e.id for e in view.page_result.entries] == ["d", "b"]


@pytest.mark.asyncio
async def test_older_response_arriving_first_is_not_applied() -> None:
    store = GatedStore(seed_entries(), PaymentMethod.cash, PaymentMethod.transfer)
    view = make_view(store)
    cash = FilterState.default().with_payment_method("cash")
    transfer = FilterState.default().with_payment_method("transfer")

    older = asyncio.create_task(view.apply_filter(cash))
    await asyncio.sleep(0)
    newer = asyncio.create_task(view.apply_filter(transfer))
    await asyncio.sleep(0)

    store.gates[PaymentMethod.cash].set()
    assert await older is False
    assert view.page_result is None

    store.gates[PaymentMethod.transfer].set()
    assert await newer is True
    assert [e.id for e in view.page_result.entries] == ["d", "b"]


@pytest.mark.asyncio
async def test_filter_change_resets_page() -> None:
    view = make_view(GatedStore(seed_entries()), page_size=2)
    await view.load()
    await view.change_page(2)
    assert view.page == 2
    assert [e.id for e in view.page_result.entries] == ["b", "a"]

    await view.apply_filter(view.filter.with_entry_type("income"))

    assert view.page == 1
    assert view.page_result.page == 1


@pytest.mark.asyncio
async def test_reset_twice_gives_the_same_state() -> None:
    view = make_view(GatedStore(seed_entries()))
    await view.apply_filter(
        FilterState.default().set_custom_range("2024-03-01", "2024-03-05")
    )

    await view.reset_filters()
    first = (view.filter, view.page, view.page_result)
    await view.reset_filters()

    assert (view.filter, view.page, view.page_result) == first


@pytest.mark.asyncio
async def test_delete_succeeds_even_when_refresh_fails() -> None:
    store = FlakyPageStore(seed_entries())
    view = make_view(store)
    await view.load()

    store.fail_pages = True
    outcome = await view.delete_entry("b")

    assert outcome.deleted is True
    assert outcome.refreshed is False
    assert isinstance(outcome.refresh_error, QueryFailed)
    assert "b" not in {e.id for e in view.entries}
    assert "b" not in {e.id for e in await store.get_all()}


@pytest.mark.asyncio
async def test_delete_failure_leaves_view_untouched() -> None:
    view = make_view(FlakyPageStore(seed_entries()))
    await view.load()

    with pytest.raises(NotFound):
        await view.delete_entry("missing")

    assert len(view.entries) == 4


@pytest.mark.asyncio
async def test_failed_filter_change_keeps_previous_filter_and_page() -> None:
    store = FlakyPageStore(seed_entries())
    view = make_view(store)
    await view.load()
    before = (view.filter, view.page, view.page_result)

    store.fail_pages = True
    with pytest.raises(QueryFailed):
        await view.apply_filter(FilterState.default().with_payment_method("cash"))

    assert (view.filter, view.page, view.page_result) == before
    assert len(view.report().entries) == len(view.page_result.entries)


@pytest.mark.asyncio
async def test_failed_page_change_keeps_current_page() -> None:
    store = FlakyPageStore(seed_entries())
    view = make_view(store, page_size=2)
    await view.load()

    store.fail_pages = True
    with pytest.raises(QueryFailed):
        await view.change_page(2)

    assert view.page == 1
    assert [e.id for e in view.page_result.entries] == ["d", "c"]

    store.fail_pages = False
    assert await view.change_page(2) is True
    assert view.page == 2


@pytest.mark.asyncio
async def test_description_edit_patches_page_and_full_set() -> None:
    view = make_view(FlakyPageStore(seed_entries()))
    await view.load()

    updated = await view.update_description("a", "  cambio de caja  ")

    assert updated.description == "cambio de caja"
    assert {e.id: e.description for e in view.page_result.entries}["a"] == "cambio de caja"
    assert {e.id: e.description for e in view.entries}["a"] == "cambio de caja"


@pytest.mark.asyncio
async def test_description_edit_by_other_user_is_forbidden() -> None:
    view = make_view(FlakyPageStore(seed_entries()))
    await view.load()

    with pytest.raises(Forbidden):
        await view.update_description("c", "not mine")


@pytest.mark.asyncio
async def test_add_entry_with_memory_backend() -> None:
    store = MemoryEntryStore(seed_entries(), users={"u1": "ana@example.com"})
    clock = make_clock()
    view = LedgerView(
        EntryService(store, clock, "u1"),
        QueryPlanner(MemoryPageBackend(store), clock),
        clock,
    )
    await view.load()

    created = await view.add_entry(
        {
            "type": "expense",
            "amount": "12.50",
            "date": "2024-03-13T14:00:00",
            "method": "debit_card",
        }
    )

    assert view.page_result.total == 5
    assert view.page_result.entries[0].id == created.id
    assert view.report().summary.total_expenses == Decimal("12.50")
    assert "Tarjeta de Débito" in view.export_csv()
