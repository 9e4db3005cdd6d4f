import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import Owner, current_owner
from config import get_settings
from currency import currency_options, format_currency
from database import get_db, session_scope
from errors import TrackerError, UpstreamUnavailable, ValidationFailed
from events import feed
from fx_rates import ExchangeRateService
from models import TimeGrain, TransactionType
from periods import local_now, resolve_period
from recurrence import is_pending
from scheduler import SchedulerManager
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    ProfileOut,
    ProfileUpdate,
    RecurringIn,
    RecurringOut,
    RecurringUpdate,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import (
    BalanceService,
    CategoryService,
    ExpenseService,
    IncomeService,
    MetricsService,
    ProfileService,
    RecurringService,
    TransactionFilters,
    seed_default_categories,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="FinTrack")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def ok(data) -> dict:
    return {"data": jsonable_encoder(data), "error": None}


def _error_body(message: str, code: str, fields: Optional[dict] = None) -> dict:
    return {"data": None, "error": message, "code": code, "fields": fields or {}}


@app.exception_handler(TrackerError)
def handle_tracker_error(request: Request, exc: TrackerError):
    fields = getattr(exc, "fields", None)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.code, fields),
    )


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError):
    fields = {}
    for err in exc.errors():
        loc = [
            str(part)
            for part in err.get("loc", ())
            if part not in ("body", "query", "path")
        ]
        fields[".".join(loc) or "request"] = err.get("msg", "Invalid value")
    return JSONResponse(
        status_code=ValidationFailed.status_code,
        content=_error_body(
            ValidationFailed.default_message, ValidationFailed.code, fields
        ),
    )


@app.exception_handler(SQLAlchemyError)
def handle_store_error(request: Request, exc: SQLAlchemyError):
    logger.exception(f"store_error: path={request.url.path}")
    return JSONResponse(
        status_code=UpstreamUnavailable.status_code,
        content=_error_body(
            UpstreamUnavailable.default_message, UpstreamUnavailable.code
        ),
    )


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: path={request.url.path}")
    return JSONResponse(
        status_code=500, content=_error_body("Something went wrong", "unknown")
    )


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    feed.install()
    try:
        with session_scope() as session:
            added = seed_default_categories(session)
        logger.info(f"default_categories_seeded: added={added}")
    except SQLAlchemyError:
        logger.exception("default_categories_seed_failed")
    if settings.scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.get("/api/health")
def api_health():
    return ok({"status": "ok", "version": APP_VERSION})


# Categories


@app.get("/api/categories")
def list_categories(
    kind: Optional[TransactionType] = Query(None, alias="type"),
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    categories = CategoryService(db, owner.id).list_all(kind)
    return ok([CategoryOut.model_validate(c) for c in categories])


@app.get("/api/categories/stats")
def category_stats(
    grain: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    period = resolve_period(grain, start, end)
    return ok(CategoryService(db, owner.id).stats_for_window(period.start, period.end))


@app.get("/api/categories/{category_id}")
def get_category(
    category_id: int,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return ok(CategoryOut.model_validate(CategoryService(db, owner.id).get(category_id)))


@app.post("/api/categories", status_code=201)
def create_category(
    data: CategoryIn,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, owner.id).create(data)
    return ok(CategoryOut.model_validate(category))


@app.patch("/api/categories/{category_id}")
def update_category(
    category_id: int,
    data: CategoryUpdate,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, owner.id).update(category_id, data)
    return ok(CategoryOut.model_validate(category))


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    CategoryService(db, owner.id).delete(category_id)
    return ok({"id": category_id})


# Expenses and income share one set of routes per ledger kind


def register_ledger_routes(prefix: str, service_cls) -> None:
    @app.get(prefix, name=f"list_{service_cls.kind.value}")
    def list_entries(
        start: Optional[date] = None,
        end: Optional[date] = None,
        category_id: Optional[int] = None,
        limit: int = Query(50, ge=1, le=100),
        offset: int = Query(0, ge=0),
        owner: Owner = Depends(current_owner),
        db: Session = Depends(get_db),
    ):
        filters = TransactionFilters(
            start=start, end=end, category_id=category_id, limit=limit, offset=offset
        )
        items, total_count = service_cls(db, owner.id).list(filters)
        return ok(
            {
                "items": [TransactionOut.model_validate(t) for t in items],
                "total_count": total_count,
                "limit": limit,
                "offset": offset,
            }
        )

    @app.get(f"{prefix}/total", name=f"total_{service_cls.kind.value}")
    def window_total(
        start: date,
        end: date,
        owner: Owner = Depends(current_owner),
        db: Session = Depends(get_db),
    ):
        if start > end:
            raise ValidationFailed("Start date must be before end date", field="start")
        total = service_cls(db, owner.id).total_for_window(start, end)
        return ok({"total_cents": total})

    @app.get(f"{prefix}/stats", name=f"stats_{service_cls.kind.value}")
    def period_stats(
        grain: TimeGrain = TimeGrain.month,
        owner: Owner = Depends(current_owner),
        db: Session = Depends(get_db),
    ):
        return ok(service_cls(db, owner.id).period_stats(grain))

    @app.get(f"{prefix}/recent", name=f"recent_{service_cls.kind.value}")
    def recent_entries(
        limit: int = Query(10, ge=1, le=100),
        owner: Owner = Depends(current_owner),
        db: Session = Depends(get_db),
    ):
        items = service_cls(db, owner.id).recent(limit)
        return ok([TransactionOut.model_validate(t) for t in items])

    @app.get(f"{prefix}/{{entry_id}}", name=f"get_{service_cls.kind.value}")
    def get_entry(
        entry_id: int,
        owner: Owner = Depends(current_owner),
        db: Session = Depends(get_db),
    ):
        return ok(TransactionOut.model_validate(service_cls(db, owner.id).get(entry_id)))

    @app.post(prefix, status_code=201, name=f"create_{service_cls.kind.value}")
    def create_entry(
        data: TransactionIn,
        owner: Owner = Depends(current_owner),
        db: Session = Depends(get_db),
    ):
        txn = service_cls(db, owner.id).create(data)
        return ok(TransactionOut.model_validate(txn))

    @app.patch(f"{prefix}/{{entry_id}}", name=f"update_{service_cls.kind.value}")
    def update_entry(
        entry_id: int,
        data: TransactionUpdate,
        owner: Owner = Depends(current_owner),
        db: Session = Depends(get_db),
    ):
        txn = service_cls(db, owner.id).update(entry_id, data)
        return ok(TransactionOut.model_validate(txn))

    @app.delete(f"{prefix}/{{entry_id}}", name=f"delete_{service_cls.kind.value}")
    def delete_entry(
        entry_id: int,
        owner: Owner = Depends(current_owner),
        db: Session = Depends(get_db),
    ):
        service_cls(db, owner.id).delete(entry_id)
        return ok({"id": entry_id})


register_ledger_routes("/api/expenses", ExpenseService)
register_ledger_routes("/api/income", IncomeService)


# Recurring obligations


def recurring_out(item, now=None) -> RecurringOut:
    out = RecurringOut.model_validate(item)
    return out.model_copy(update={"is_pending": is_pending(item, now or local_now())})


@app.get("/api/recurring")
def list_recurring(
    owner: Owner = Depends(current_owner), db: Session = Depends(get_db)
):
    now = local_now()
    items = RecurringService(db, owner.id).list()
    return ok([recurring_out(item, now) for item in items])


@app.get("/api/recurring/pending")
def list_pending_recurring(
    owner: Owner = Depends(current_owner), db: Session = Depends(get_db)
):
    now = local_now()
    items = RecurringService(db, owner.id).list_pending(now)
    return ok([recurring_out(item, now) for item in items])


@app.get("/api/recurring/pending/total")
def pending_recurring_total(
    owner: Owner = Depends(current_owner), db: Session = Depends(get_db)
):
    return ok({"total_cents": RecurringService(db, owner.id).pending_total()})


@app.get("/api/recurring/upcoming")
def upcoming_recurring(
    days: int = Query(7, ge=1, le=366),
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    now = local_now()
    items = RecurringService(db, owner.id).upcoming(days, now)
    return ok([recurring_out(item, now) for item in items])


@app.get("/api/recurring/{item_id}")
def get_recurring(
    item_id: int,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return ok(recurring_out(RecurringService(db, owner.id).get(item_id)))


@app.post("/api/recurring", status_code=201)
def create_recurring(
    data: RecurringIn,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return ok(recurring_out(RecurringService(db, owner.id).create(data)))


@app.patch("/api/recurring/{item_id}")
def update_recurring(
    item_id: int,
    data: RecurringUpdate,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return ok(recurring_out(RecurringService(db, owner.id).update(item_id, data)))


@app.delete("/api/recurring/{item_id}")
def delete_recurring(
    item_id: int,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    RecurringService(db, owner.id).delete(item_id)
    return ok({"id": item_id})


@app.post("/api/recurring/{item_id}/pay")
def pay_recurring(
    item_id: int,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    service = RecurringService(db, owner.id)
    now = local_now()
    result = service.mark_as_paid(item_id, now)
    return ok(
        {
            "success": result.success,
            "expense_id": result.expense_id,
            "item": recurring_out(service.get(item_id), now),
        }
    )


# Balance and health


@app.get("/api/balance")
def get_balance(owner: Owner = Depends(current_owner), db: Session = Depends(get_db)):
    balance = BalanceService(db, owner.id).current_balance()
    currency = ProfileService(db, owner.id).currency()
    return ok(
        {
            "balance_cents": balance,
            "currency": currency,
            "display": format_currency(balance, currency),
        }
    )


@app.post("/api/balance/recompute")
def recompute_balance(
    owner: Owner = Depends(current_owner), db: Session = Depends(get_db)
):
    return ok({"balance_cents": BalanceService(db, owner.id).refresh_cache()})


@app.get("/api/balance/cached")
def cached_balance(
    owner: Owner = Depends(current_owner), db: Session = Depends(get_db)
):
    return ok({"balance_cents": BalanceService(db, owner.id).cached_balance()})


@app.get("/api/balance/cash-flow")
def cash_flow(
    grain: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    period = resolve_period(grain, start, end)
    return ok(BalanceService(db, owner.id).cash_flow(period.start, period.end))


@app.get("/api/balance/history")
def balance_history(
    days: int = Query(30, ge=1, le=366),
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return ok(BalanceService(db, owner.id).balance_history(days))


@app.get("/api/balance/health")
def financial_health(
    owner: Owner = Depends(current_owner), db: Session = Depends(get_db)
):
    return ok(BalanceService(db, owner.id).financial_health())


# Dashboard


@app.get("/api/dashboard/spending")
def dashboard_spending(
    grain: TimeGrain = TimeGrain.month,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return ok(MetricsService(db, owner.id).spending_series(grain))


@app.get("/api/dashboard/income-expenses")
def dashboard_income_expenses(
    grain: TimeGrain = TimeGrain.month,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return ok(MetricsService(db, owner.id).income_expense_series(grain))


@app.get("/api/dashboard/summary")
def dashboard_summary(
    grain: TimeGrain = TimeGrain.month,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return ok(MetricsService(db, owner.id).summary(grain))


# Profile and currencies


@app.get("/api/profile")
def get_profile(owner: Owner = Depends(current_owner), db: Session = Depends(get_db)):
    profile = ProfileService(db, owner.id).get_or_create(owner.email)
    return ok(ProfileOut.model_validate(profile))


@app.patch("/api/profile")
def update_profile(
    data: ProfileUpdate,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return ok(ProfileOut.model_validate(ProfileService(db, owner.id).update(data)))


@app.get("/api/currencies")
def list_currencies():
    return ok(currency_options())


@app.get("/api/exchange-rates")
def exchange_rates(
    base: Optional[str] = None,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    base = base or ProfileService(db, owner.id).currency()
    rates = ExchangeRateService().latest_rates(base)
    return ok({"base": base.upper(), "rates": rates})


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
