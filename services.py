from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from analytics import (
    CategorySlice,
    ComparisonRow,
    DashboardSummary,
    Insight,
    MonthlyAmount,
    MonthlyBucket,
    compare_budgets,
    expense_actuals_by_category,
    project_insights,
    summarize_categories,
    summarize_dashboard,
    summarize_monthly_expenses,
    summarize_months,
)
from config import Settings, get_settings
from models import Budget, Category, CategoryType, Transaction, TransactionType
from periods import (
    Period,
    add_months,
    days_in_month,
    month_period,
    month_to_date_period,
    previous_month_period,
    year_period,
)
from schemas import BudgetIn, BudgetUpdate, CategoryIn, CategoryUpdate, TransactionIn
from store import AsyncLedgerStore, LedgerStore, TransactionQuery

logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES: tuple[tuple[str, str, str, CategoryType], ...] = (
    ("Food & Dining", "#FF6B6B", "utensils", CategoryType.expense),
    ("Transportation", "#4ECDC4", "car", CategoryType.expense),
    ("Housing", "#45B7D1", "home", CategoryType.expense),
    ("Utilities", "#FFA5AB", "bolt", CategoryType.expense),
    ("Entertainment", "#FFBE0B", "film", CategoryType.expense),
    ("Shopping", "#9381FF", "shopping-bag", CategoryType.expense),
    ("Health & Medical", "#FB5607", "medkit", CategoryType.expense),
    ("Personal Care", "#8AC926", "spa", CategoryType.expense),
    ("Education", "#1982C4", "graduation-cap", CategoryType.expense),
    ("Travel", "#6A4C93", "plane", CategoryType.expense),
    ("Gifts & Donations", "#FF595E", "gift", CategoryType.expense),
    ("Business", "#8EBBFF", "briefcase", CategoryType.expense),
    ("Investments", "#52B788", "chart-line", CategoryType.expense),
    ("Other", "#6E7582", "ellipsis-h", CategoryType.expense),
    ("Salary", "#52B788", "wallet", CategoryType.income),
    ("Freelance", "#4CC9F0", "laptop-code", CategoryType.income),
    ("Investment Income", "#8AC926", "chart-line", CategoryType.income),
    ("Gifts Received", "#FF595E", "gift", CategoryType.income),
    ("Other Income", "#6E7582", "ellipsis-h", CategoryType.income),
)


def local_now(settings: Optional[Settings] = None) -> datetime:
    settings = settings or get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


class ProtectedCategoryError(ValueError):
    pass


@dataclass
class TransactionFilters:
    period: Optional[Period] = None
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    sort_by: str = "date"
    descending: bool = True


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        return self.session.scalars(select(Category).order_by(Category.name)).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise ValueError("Category not found")
        return category

    def _ensure_name_available(
        self, name: str, *, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category).where(func.lower(Category.name) == name.lower())
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError(f"Category name '{name}' already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        self._ensure_name_available(name)
        category = Category(
            name=name,
            color=data.color,
            icon=data.icon,
            type=data.type,
            is_default=data.is_default,
        )
        self.session.add(category)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValueError(f"Category name '{name}' already exists") from exc
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        if category.is_default and (data.name is not None or data.type is not None):
            raise ProtectedCategoryError(
                "Cannot modify name or type of default categories"
            )
        if data.name is not None:
            name = data.name.strip()
            self._ensure_name_available(name, exclude_id=category.id)
            category.name = name
        if data.type is not None:
            category.type = data.type
        if data.color is not None:
            category.color = data.color
        if data.icon is not None:
            category.icon = data.icon
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValueError(f"Category name '{category.name}' already exists") from exc
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_default:
            raise ProtectedCategoryError("Cannot delete default categories")
        used = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(
                    Transaction.category_id == category_id
                )
            ).scalar_one()
            or 0
        )
        if used:
            raise ValueError(
                f"Cannot delete category. It is used in {used} transactions."
            )
        self.session.delete(category)
        self.session.commit()

    def seed_defaults(self) -> int:
        existing = {
            name.lower() for name in self.session.scalars(select(Category.name))
        }
        created = 0
        for name, color, icon, category_type in DEFAULT_CATEGORIES:
            if name.lower() in existing:
                continue
            self.session.add(
                Category(
                    name=name,
                    color=color,
                    icon=icon,
                    type=category_type,
                    is_default=True,
                )
            )
            created += 1
        self.session.commit()
        logger.info(f"seed_defaults: created={created}")
        return created


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _check_category(
        self, category_id: Optional[int], txn_type: TransactionType
    ) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if not category:
            raise ValueError("Category not found")
        if category.type not in (CategoryType.both, CategoryType(txn_type.value)):
            raise ValueError("Category type mismatch")

    def create(self, data: TransactionIn) -> Transaction:
        self._check_category(data.category_id, data.type)
        txn = Transaction(
            amount=data.amount,
            description=data.description.strip(),
            date=data.date,
            type=data.type,
            category_id=data.category_id,
            payment_method=data.payment_method,
            notes=data.notes,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.id == transaction_id)
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._check_category(data.category_id, data.type)
        txn.amount = data.amount
        txn.description = data.description.strip()
        txn.date = data.date
        txn.type = data.type
        txn.category_id = data.category_id
        txn.payment_method = data.payment_method
        txn.notes = data.notes
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def _filtered(self, stmt, filters: TransactionFilters):
        if filters.period is not None:
            stmt = stmt.where(
                Transaction.date >= filters.period.start,
                Transaction.date < filters.period.end,
            )
        if filters.type is not None:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id is not None:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        return stmt

    def count(self, filters: TransactionFilters) -> int:
        stmt = self._filtered(select(func.count(Transaction.id)), filters)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def list(
        self, filters: TransactionFilters, *, limit: int = 10, offset: int = 0
    ) -> list[Transaction]:
        column = Transaction.amount if filters.sort_by == "amount" else Transaction.date
        order = column.desc() if filters.descending else column.asc()
        id_order = Transaction.id.desc() if filters.descending else Transaction.id.asc()
        stmt = (
            self._filtered(select(Transaction), filters)
            .options(joinedload(Transaction.category))
            .order_by(order, id_order)
            .limit(limit)
            .offset(offset)
        )
        return self.session.scalars(stmt).all()


class BudgetService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(
        self, *, month: Optional[int] = None, year: Optional[int] = None
    ) -> list[Budget]:
        stmt = (
            select(Budget)
            .join(Category, Category.id == Budget.category_id)
            .options(joinedload(Budget.category))
            .order_by(Category.name, Budget.year, Budget.month)
        )
        if month is not None:
            stmt = stmt.where(Budget.month == month)
        if year is not None:
            stmt = stmt.where(Budget.year == year)
        return self.session.scalars(stmt).all()

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget:
            raise ValueError("Budget not found")
        return budget

    def _commit_unique(self) -> None:
        # The (category, month, year) unique constraint decides; no pre-read.
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValueError(
                "Budget already exists for this category and month/year"
            ) from exc

    def create(self, data: BudgetIn) -> Budget:
        if not self.session.get(Category, data.category_id):
            raise ValueError("Category not found")
        budget = Budget(
            category_id=data.category_id,
            amount=data.amount,
            month=data.month,
            year=data.year,
            notes=data.notes,
        )
        self.session.add(budget)
        self._commit_unique()
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: int, data: BudgetUpdate) -> Budget:
        budget = self.get(budget_id)
        if data.category_id is not None:
            if not self.session.get(Category, data.category_id):
                raise ValueError("Category not found")
            budget.category_id = data.category_id
        if data.amount is not None:
            budget.amount = data.amount
        if data.month is not None:
            budget.month = data.month
        if data.year is not None:
            budget.year = data.year
        if data.notes is not None:
            budget.notes = data.notes
        self._commit_unique()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()


def _dashboard_queries(
    now: datetime, recent_limit: int
) -> tuple[TransactionQuery, TransactionQuery, TransactionQuery]:
    return (
        TransactionQuery(period=month_period(now.year, now.month)),
        TransactionQuery(period=previous_month_period(now)),
        TransactionQuery(newest_first=True, limit=recent_limit),
    )


def _insight_queries(now: datetime) -> tuple[TransactionQuery, TransactionQuery]:
    return (
        TransactionQuery(
            period=month_to_date_period(now), type=TransactionType.expense
        ),
        TransactionQuery(
            period=previous_month_period(now), type=TransactionType.expense
        ),
    )


def _project(now: datetime, current, previous, categories) -> Insight:
    prev_year, prev_month = add_months(now.year, now.month, -1)
    return project_insights(
        current,
        previous,
        now.day,
        days_in_month(now.year, now.month),
        categories=categories,
        previous_days_in_period=days_in_month(prev_year, prev_month),
    )


class AnalyticsService:
    """Report entry points: fetch through the store, then compute."""

    def __init__(self, session: Session, settings: Optional[Settings] = None) -> None:
        self.store = LedgerStore(session)
        self.settings = settings or get_settings()

    def monthly_summary(self, year: int) -> list[MonthlyBucket]:
        records = self.store.query_transactions(
            TransactionQuery(period=year_period(year))
        )
        logger.info(f"report_run: name=monthly_summary year={year} rows={len(records)}")
        return summarize_months(records, year)

    def monthly_expenses(self, year: int) -> list[MonthlyAmount]:
        records = self.store.query_transactions(
            TransactionQuery(period=year_period(year))
        )
        return summarize_monthly_expenses(records, year)

    def category_summary(
        self,
        period: Period,
        transaction_type: TransactionType = TransactionType.expense,
    ) -> list[CategorySlice]:
        records = self.store.query_transactions(
            TransactionQuery(period=period, type=transaction_type)
        )
        categories = self.store.query_categories()
        return summarize_categories(
            records, categories, transaction_type=transaction_type
        )

    def dashboard_summary(self, now: datetime) -> DashboardSummary:
        current_q, previous_q, recent_q = _dashboard_queries(
            now, self.settings.recent_transactions
        )
        current = self.store.query_transactions(current_q)
        previous = self.store.query_transactions(previous_q)
        recent = self.store.query_transactions(recent_q)
        categories = self.store.query_categories()
        logger.info(
            f"report_run: name=dashboard_summary now={now.isoformat()} "
            f"current_rows={len(current)} previous_rows={len(previous)}"
        )
        return summarize_dashboard(
            current,
            previous,
            recent,
            categories,
            top_limit=self.settings.top_categories,
            recent_limit=self.settings.recent_transactions,
        )

    def budget_comparison(self, month: int, year: int) -> list[ComparisonRow]:
        budgets = self.store.query_budgets(month=month, year=year)
        expenses = self.store.query_transactions(
            TransactionQuery(
                period=month_period(year, month), type=TransactionType.expense
            )
        )
        categories = self.store.query_categories()
        actuals = expense_actuals_by_category(expenses, categories)
        return compare_budgets(budgets, actuals, categories)

    def insights(self, now: datetime) -> Insight:
        current_q, previous_q = _insight_queries(now)
        current = self.store.query_transactions(current_q)
        previous = self.store.query_transactions(previous_q)
        categories = self.store.query_categories()
        logger.info(
            f"report_run: name=insights now={now.isoformat()} "
            f"current_rows={len(current)} previous_rows={len(previous)}"
        )
        return _project(now, current, previous, categories)


class AsyncAnalyticsService:
    """Same reports; independent fetches are awaited concurrently."""

    def __init__(
        self,
        store: Optional[AsyncLedgerStore] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store or AsyncLedgerStore()
        self.settings = settings or get_settings()

    async def monthly_summary(self, year: int) -> list[MonthlyBucket]:
        records = await self.store.query_transactions(
            TransactionQuery(period=year_period(year))
        )
        return summarize_months(records, year)

    async def monthly_expenses(self, year: int) -> list[MonthlyAmount]:
        records = await self.store.query_transactions(
            TransactionQuery(period=year_period(year))
        )
        return summarize_monthly_expenses(records, year)

    async def category_summary(
        self,
        period: Period,
        transaction_type: TransactionType = TransactionType.expense,
    ) -> list[CategorySlice]:
        records, categories = await asyncio.gather(
            self.store.query_transactions(
                TransactionQuery(period=period, type=transaction_type)
            ),
            self.store.query_categories(),
        )
        return summarize_categories(
            records, categories, transaction_type=transaction_type
        )

    async def dashboard_summary(self, now: datetime) -> DashboardSummary:
        current_q, previous_q, recent_q = _dashboard_queries(
            now, self.settings.recent_transactions
        )
        current, previous, recent, categories = await asyncio.gather(
            self.store.query_transactions(current_q),
            self.store.query_transactions(previous_q),
            self.store.query_transactions(recent_q),
            self.store.query_categories(),
        )
        logger.info(
            f"report_run: name=dashboard_summary now={now.isoformat()} "
            f"current_rows={len(current)} previous_rows={len(previous)}"
        )
        return summarize_dashboard(
            current,
            previous,
            recent,
            categories,
            top_limit=self.settings.top_categories,
            recent_limit=self.settings.recent_transactions,
        )

    async def budget_comparison(self, month: int, year: int) -> list[ComparisonRow]:
        budgets, expenses, categories = await asyncio.gather(
            self.store.query_budgets(month=month, year=year),
            self.store.query_transactions(
                TransactionQuery(
                    period=month_period(year, month), type=TransactionType.expense
                )
            ),
            self.store.query_categories(),
        )
        actuals = expense_actuals_by_category(expenses, categories)
        return compare_budgets(budgets, actuals, categories)

    async def insights(self, now: datetime) -> Insight:
        current_q, previous_q = _insight_queries(now)
        current, previous, categories = await asyncio.gather(
            self.store.query_transactions(current_q),
            self.store.query_transactions(previous_q),
            self.store.query_categories(),
        )
        logger.info(
            f"report_run: name=insights now={now.isoformat()} "
            f"current_rows={len(current)} previous_rows={len(previous)}"
        )
        return _project(now, current, previous, categories)
