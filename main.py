import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import SessionLocal, session_scope
from models import Budget, Category, Transaction, TransactionType
from periods import Period, resolve_period
from schemas import BudgetIn, BudgetUpdate, CategoryIn, CategoryUpdate, TransactionIn
from services import (
    AsyncAnalyticsService,
    BudgetService,
    CategoryService,
    ProtectedCategoryError,
    TransactionFilters,
    TransactionService,
    local_now,
)
from store import AsyncLedgerStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger Reports")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_analytics() -> AsyncAnalyticsService:
    return AsyncAnalyticsService(AsyncLedgerStore(SessionLocal))


def get_now() -> datetime:
    return local_now()


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        CategoryService(session).seed_defaults()


def http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, ProtectedCategoryError):
        return HTTPException(status_code=403, detail=str(exc))
    if "not found" in str(exc).lower():
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def period_from_request(request: Request, now: datetime) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end, now=now)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def type_from_request(
    request: Request, default: Optional[TransactionType] = None
) -> Optional[TransactionType]:
    type_param = request.query_params.get("type")
    if not type_param:
        return default
    try:
        return TransactionType(type_param)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def category_out(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "icon": category.icon,
        "type": category.type.value,
        "is_default": category.is_default,
    }


def transaction_out(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "amount": txn.amount,
        "description": txn.description,
        "date": txn.date.isoformat(),
        "type": txn.type.value,
        "category": category_out(txn.category) if txn.category else None,
        "payment_method": txn.payment_method.value,
        "notes": txn.notes,
    }


def budget_out(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "category": category_out(budget.category),
        "amount": budget.amount,
        "month": budget.month,
        "year": budget.year,
        "notes": budget.notes,
    }


# Analytics


@app.get("/api/analytics/monthly-summary")
async def api_monthly_summary(
    year: Optional[int] = None,
    analytics: AsyncAnalyticsService = Depends(get_analytics),
    now: datetime = Depends(get_now),
):
    try:
        return await analytics.monthly_summary(year or now.year)
    except SQLAlchemyError as exc:
        logger.exception("Error fetching monthly summary")
        raise HTTPException(status_code=500, detail="Server error") from exc


@app.get("/api/analytics/monthly-expenses")
async def api_monthly_expenses(
    year: Optional[int] = None,
    analytics: AsyncAnalyticsService = Depends(get_analytics),
    now: datetime = Depends(get_now),
):
    try:
        return await analytics.monthly_expenses(year or now.year)
    except SQLAlchemyError as exc:
        logger.exception("Error fetching monthly expenses")
        raise HTTPException(status_code=500, detail="Server error") from exc


@app.get("/api/analytics/category-summary")
async def api_category_summary(
    request: Request,
    analytics: AsyncAnalyticsService = Depends(get_analytics),
    now: datetime = Depends(get_now),
):
    period = period_from_request(request, now)
    txn_type = type_from_request(request, TransactionType.expense)
    try:
        return await analytics.category_summary(period, txn_type)
    except SQLAlchemyError as exc:
        logger.exception("Error fetching category summary")
        raise HTTPException(status_code=500, detail="Server error") from exc


@app.get("/api/analytics/dashboard-summary")
async def api_dashboard_summary(
    analytics: AsyncAnalyticsService = Depends(get_analytics),
    now: datetime = Depends(get_now),
):
    try:
        return await analytics.dashboard_summary(now)
    except SQLAlchemyError as exc:
        logger.exception("Error fetching dashboard summary")
        raise HTTPException(status_code=500, detail="Server error") from exc


@app.get("/api/analytics/budget-comparison")
async def api_budget_comparison(
    month: Optional[int] = None,
    year: Optional[int] = None,
    analytics: AsyncAnalyticsService = Depends(get_analytics),
    now: datetime = Depends(get_now),
):
    month = month or now.month
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1-12")
    try:
        return await analytics.budget_comparison(month, year or now.year)
    except SQLAlchemyError as exc:
        logger.exception("Error fetching budget comparison")
        raise HTTPException(status_code=500, detail="Server error") from exc


@app.get("/api/analytics/insights")
async def api_insights(
    analytics: AsyncAnalyticsService = Depends(get_analytics),
    now: datetime = Depends(get_now),
):
    try:
        return await analytics.insights(now)
    except SQLAlchemyError as exc:
        logger.exception("Error generating insights")
        raise HTTPException(status_code=500, detail="Server error") from exc


# Categories


@app.get("/api/categories")
def list_categories(db: Session = Depends(get_db)):
    return [category_out(c) for c in CategoryService(db).list_all()]


@app.post("/api/categories", status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        return category_out(CategoryService(db).create(data))
    except ValueError as exc:
        raise http_error(exc) from exc


@app.post("/api/categories/seed-defaults")
def seed_categories(db: Session = Depends(get_db)):
    return {"created": CategoryService(db).seed_defaults()}


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int, data: CategoryUpdate, db: Session = Depends(get_db)
):
    try:
        return category_out(CategoryService(db).update(category_id, data))
    except ValueError as exc:
        raise http_error(exc) from exc


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"message": "Category removed"}


# Transactions


@app.get("/api/transactions")
def list_transactions(request: Request, db: Session = Depends(get_db)):
    params = request.query_params
    page = max(int(params.get("page", "1")), 1)
    limit = min(max(int(params.get("limit", "10")), 1), 100)
    period = None
    if params.get("period") or params.get("start") or params.get("end"):
        period = period_from_request(request, local_now())
    category_id = int(params["category"]) if params.get("category") else None
    filters = TransactionFilters(
        period=period,
        type=type_from_request(request),
        category_id=category_id,
        sort_by="amount" if params.get("sort_by") == "amount" else "date",
        descending=params.get("sort_order", "desc") != "asc",
    )
    service = TransactionService(db)
    total = service.count(filters)
    items = service.list(filters, limit=limit, offset=(page - 1) * limit)
    return {
        "transactions": [transaction_out(t) for t in items],
        "total_pages": math.ceil(total / limit),
        "current_page": page,
        "total_transactions": total,
    }


@app.get("/api/transactions/{transaction_id}")
def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        return transaction_out(TransactionService(db).get(transaction_id))
    except ValueError as exc:
        raise http_error(exc) from exc


@app.post("/api/transactions", status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        return transaction_out(TransactionService(db).create(data))
    except ValueError as exc:
        raise http_error(exc) from exc


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int, data: TransactionIn, db: Session = Depends(get_db)
):
    try:
        return transaction_out(TransactionService(db).update(transaction_id, data))
    except ValueError as exc:
        raise http_error(exc) from exc


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"message": "Transaction removed"}


# Budgets


@app.get("/api/budgets")
def list_budgets(
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return [budget_out(b) for b in BudgetService(db).list(month=month, year=year)]


@app.post("/api/budgets", status_code=201)
def create_budget(data: BudgetIn, db: Session = Depends(get_db)):
    try:
        return budget_out(BudgetService(db).create(data))
    except ValueError as exc:
        raise http_error(exc) from exc


@app.put("/api/budgets/{budget_id}")
def update_budget(budget_id: int, data: BudgetUpdate, db: Session = Depends(get_db)):
    try:
        return budget_out(BudgetService(db).update(budget_id, data))
    except ValueError as exc:
        raise http_error(exc) from exc


@app.delete("/api/budgets/{budget_id}")
def delete_budget(budget_id: int, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete(budget_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"message": "Budget removed"}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
