import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.orm import Session

from auth import (
    SESSION_COOKIE,
    generate_csrf_token,
    issue_session_token,
    user_id_from_token,
    validate_csrf_token,
)
from clock import Clock, SystemClock
from config import get_settings
from csv_utils import METHOD_LABELS
from database import SessionLocal, init_db
from errors import (
    EmptyExport,
    Forbidden,
    LedgerError,
    NotFound,
    QueryFailed,
    StoreUnavailable,
    Unauthenticated,
    ValidationFailed,
)
from filters import FilterState
from ledger import Report
from planner import planner_for
from schemas import (
    CreatorOut,
    DayBucketOut,
    DescriptionIn,
    EntryIn,
    EntryOut,
    MethodTotalOut,
    PageOut,
    ReportOut,
    SessionIn,
    SummaryOut,
)
from services import EntryService, ReportService, UserService
from store import SqlEntryStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Caja")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Clock:
    return SystemClock()


@app.on_event("startup")
def startup_event():
    init_db()


def http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, ValidationFailed):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, Unauthenticated):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, Forbidden):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, (NotFound, EmptyExport)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (QueryFailed, StoreUnavailable)):
        return HTTPException(status_code=503, detail=str(exc))
    logger.error(f"unhandled_ledger_error: {exc!r}")
    return HTTPException(status_code=500, detail=str(exc))


def filter_from_request(request: Request) -> FilterState:
    try:
        return FilterState.from_params(request.query_params)
    except ValidationFailed as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def require_user(request: Request) -> str:
    try:
        user_id = user_id_from_token(request.cookies.get(SESSION_COOKIE))
    except Unauthenticated as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    if not validate_csrf_token(request.headers.get("X-CSRF-Token", ""), user_id):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")
    return user_id


def page_params(request: Request) -> tuple[int, int]:
    settings = get_settings()
    try:
        page = int(request.query_params.get("page", "1"))
        page_size = int(request.query_params.get("page_size", settings.page_size))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid pagination") from exc
    page = max(page, 1)
    page_size = min(max(page_size, 1), settings.max_page_size)
    return page, page_size


def summary_out(report: Report) -> SummaryOut:
    return SummaryOut(
        total_income=report.summary.total_income,
        total_expenses=report.summary.total_expenses,
        balance=report.summary.balance,
    )


def methods_out(report: Report) -> list[MethodTotalOut]:
    return [
        MethodTotalOut(
            method=item.method, label=METHOD_LABELS[item.method], total=item.total
        )
        for item in report.methods
    ]


async def load_report(request: Request, db: Session, clock: Clock) -> Report:
    filter_state = filter_from_request(request)
    try:
        return await ReportService(SqlEntryStore(db), clock).report(filter_state)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.post("/api/session")
def create_session(data: SessionIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).get_by_email(data.email)
    except NotFound as exc:
        raise HTTPException(status_code=401, detail="Unknown user") from exc
    response = JSONResponse(
        {"user_id": user.id, "csrf_token": generate_csrf_token(user.id)}
    )
    response.set_cookie(
        SESSION_COOKIE, issue_session_token(user.id), httponly=True, samesite="lax"
    )
    logger.info(f"session_started: user={user.id}")
    return response


@app.get("/api/entries", response_model=PageOut)
async def api_entries(
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    filter_state = filter_from_request(request)
    page, page_size = page_params(request)
    planner = planner_for(SqlEntryStore(db), clock)
    try:
        result = await planner.fetch_page(filter_state, page, page_size)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return PageOut(
        items=[EntryOut.model_validate(entry) for entry in result.entries],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@app.get("/api/summary", response_model=SummaryOut)
async def api_summary(
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    report = await load_report(request, db, clock)
    return summary_out(report)


@app.get("/api/series/daily", response_model=list[DayBucketOut])
async def api_daily_series(
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    report = await load_report(request, db, clock)
    return [DayBucketOut.model_validate(bucket) for bucket in report.daily]


@app.get("/api/series/methods", response_model=list[MethodTotalOut])
async def api_method_series(
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    report = await load_report(request, db, clock)
    return methods_out(report)


@app.get("/api/report", response_model=ReportOut)
async def api_report(
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    report = await load_report(request, db, clock)
    return ReportOut(
        start=report.date_range.start,
        end=report.date_range.end,
        summary=summary_out(report),
        daily=[DayBucketOut.model_validate(bucket) for bucket in report.daily],
        methods=methods_out(report),
    )


@app.get("/api/creators", response_model=list[CreatorOut])
async def api_creators(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
):
    try:
        creators = await EntryService(SqlEntryStore(db), clock).list_creators()
    except LedgerError as exc:
        raise http_error(exc) from exc
    return [CreatorOut.model_validate(creator) for creator in creators]


@app.get("/entries/export.csv")
async def export_entries_endpoint(
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    filter_state = filter_from_request(request)
    try:
        filename, csv_text = await ReportService(SqlEntryStore(db), clock).export_csv(
            filter_state
        )
    except LedgerError as exc:
        raise http_error(exc) from exc
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/entries", response_model=EntryOut, status_code=201)
async def create_entry(
    data: EntryIn,
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    user_id = require_user(request)
    try:
        created = await EntryService(SqlEntryStore(db), clock, user_id).create(data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return EntryOut.model_validate(created)


@app.delete("/api/entries/{entry_id}")
async def delete_entry(
    entry_id: str,
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    user_id = require_user(request)
    try:
        await EntryService(SqlEntryStore(db), clock, user_id).delete(entry_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.patch("/api/entries/{entry_id}/description", response_model=EntryOut)
async def update_entry_description(
    entry_id: str,
    data: DescriptionIn,
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    user_id = require_user(request)
    try:
        updated = await EntryService(
            SqlEntryStore(db), clock, user_id
        ).update_description(entry_id, data.description)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return EntryOut.model_validate(updated)
