from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from clock import FixedClock
from errors import EmptyExport, Forbidden, Unauthenticated, ValidationFailed
from filters import FilterState
from services import EntryService, ReportService
from store import MemoryEntryStore

TZ = "America/Argentina/Buenos_Aires"
ART = ZoneInfo(TZ)


def make_clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 13, 15, tzinfo=ART), TZ)


def make_store() -> MemoryEntryStore:
    return MemoryEntryStore(users={"u1": "ana@example.com", "u2": "luis@example.com"})


def payload(**overrides):
    data = {
        "type": "income",
        "amount": "150",
        "date": "2024-03-13T10:00:00-03:00",
        "method": "cash",
        "description": "bought rice, beans",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_create_requires_a_session() -> None:
    store = make_store()
    service = EntryService(store, make_clock())

    with pytest.raises(Unauthenticated):
        await service.create(payload())
    assert await store.get_all() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": "0"},
        {"amount": "-5"},
        {"method": "bitcoin"},
        {"type": "refund"},
        {"description": "x" * 201},
        {"description": "rice\nbeans"},
        {"description": "rice\r\nbeans"},
    ],
)
async def test_invalid_input_never_reaches_the_store(overrides) -> None:
    store = make_store()
    service = EntryService(store, make_clock(), "u1")

    with pytest.raises(ValidationFailed):
        await service.create(payload(**overrides))
    assert await store.get_all() == []


@pytest.mark.asyncio
async def test_naive_date_is_read_in_ledger_timezone() -> None:
    service = EntryService(make_store(), make_clock(), "u1")

    created = await service.create(payload(date="2024-03-13T23:30:00", description="  "))

    assert created.date == datetime(2024, 3, 13, 23, 30, tzinfo=ART)
    assert created.description is None
    assert created.amount == Decimal("150")
    assert created.created_by == "u1"


@pytest.mark.asyncio
async def test_only_the_author_edits_the_description() -> None:
    store = make_store()
    created = await EntryService(store, make_clock(), "u1").create(payload())

    with pytest.raises(Forbidden):
        await EntryService(store, make_clock(), "u2").update_description(created.id, "mine")

    updated = await EntryService(store, make_clock(), "u1").update_description(
        created.id, "  venta mostrador "
    )
    assert updated.description == "venta mostrador"
    assert (await store.get(created.id)).description == "venta mostrador"


@pytest.mark.asyncio
async def test_delete_requires_a_session() -> None:
    store = make_store()
    created = await EntryService(store, make_clock(), "u1").create(payload())

    with pytest.raises(Unauthenticated):
        await EntryService(store, make_clock()).delete(created.id)

    await EntryService(store, make_clock(), "u2").delete(created.id)
    assert await store.get_all() == []


@pytest.mark.asyncio
async def test_export_csv_for_today() -> None:
    store = make_store()
    await EntryService(store, make_clock(), "u1").create(payload())
    service = ReportService(store, make_clock())

    filename, csv_text = await service.export_csv(FilterState.default())

    assert filename == "caja-verduleria-2024-03-13.csv"
    assert csv_text.split("\n")[1] == 'Ingreso,150,13/03/2024,Efectivo,"bought rice, beans"'


@pytest.mark.asyncio
async def test_export_csv_with_no_matches() -> None:
    service = ReportService(make_store(), make_clock())

    with pytest.raises(EmptyExport):
        await service.export_csv(FilterState.default().set_period("month"))


@pytest.mark.asyncio
async def test_multiline_description_edit_is_rejected() -> None:
    store = make_store()
    created = await EntryService(store, make_clock(), "u1").create(payload())

    with pytest.raises(ValidationFailed):
        await EntryService(store, make_clock(), "u1").update_description(
            created.id, "first line\nsecond line"
        )
    assert (await store.get(created.id)).description == "bought rice, beans"


@pytest.mark.asyncio
async def test_report_reads_only_matching_entries() -> None:
    class RecordingStore(MemoryEntryStore):
        async def get_all(self):
            raise AssertionError("report must not load every entry")

    store = RecordingStore(users={"u1": "ana@example.com"})
    await EntryService(store, make_clock(), "u1").create(payload())

    report = await ReportService(store, make_clock()).report(FilterState.default())

    assert report.summary.total_income == Decimal("150")
