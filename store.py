"""Read side of the ledger: snapshots of stored rows for the report engine.

Everything here returns immutable records detached from the session, so the
compute phase never touches the database. Failures from SQLAlchemy are not
caught; callers decide whether to retry.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from database import SessionLocal
from models import (
    Budget,
    Category,
    CategoryType,
    PaymentMethod,
    Transaction,
    TransactionType,
)
from periods import Period

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CategoryRecord:
    id: int
    name: str
    color: str
    icon: str
    type: CategoryType = CategoryType.expense
    is_default: bool = False

    @classmethod
    def from_model(cls, category: Category) -> CategoryRecord:
        return cls(
            id=category.id,
            name=category.name,
            color=category.color,
            icon=category.icon,
            type=category.type,
            is_default=category.is_default,
        )


@dataclass(frozen=True)
class TransactionRecord:
    id: int
    amount: float
    date: datetime
    type: TransactionType = TransactionType.expense
    category_id: Optional[int] = None
    description: str = ""
    payment_method: PaymentMethod = PaymentMethod.cash
    notes: Optional[str] = None

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.expense

    @classmethod
    def from_model(cls, txn: Transaction) -> TransactionRecord:
        return cls(
            id=txn.id,
            amount=txn.amount,
            date=txn.date,
            type=txn.type,
            category_id=txn.category_id,
            description=txn.description,
            payment_method=txn.payment_method,
            notes=txn.notes,
        )


@dataclass(frozen=True)
class BudgetRecord:
    id: int
    category_id: int
    amount: float
    month: int
    year: int
    notes: Optional[str] = None

    @classmethod
    def from_model(cls, budget: Budget) -> BudgetRecord:
        return cls(
            id=budget.id,
            category_id=budget.category_id,
            amount=budget.amount,
            month=budget.month,
            year=budget.year,
            notes=budget.notes,
        )


@dataclass(frozen=True)
class TransactionQuery:
    period: Optional[Period] = None
    category_id: Optional[int] = None
    type: Optional[TransactionType] = None
    newest_first: bool = False
    limit: Optional[int] = None


class LedgerStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def query_transactions(
        self, query: Optional[TransactionQuery] = None
    ) -> list[TransactionRecord]:
        query = query or TransactionQuery()
        stmt = select(Transaction)
        if query.period is not None:
            stmt = stmt.where(
                Transaction.date >= query.period.start,
                Transaction.date < query.period.end,
            )
        if query.category_id is not None:
            stmt = stmt.where(Transaction.category_id == query.category_id)
        if query.type is not None:
            stmt = stmt.where(Transaction.type == query.type)
        if query.newest_first:
            stmt = stmt.order_by(Transaction.date.desc(), Transaction.id.desc())
        else:
            stmt = stmt.order_by(Transaction.date.asc(), Transaction.id.asc())
        if query.limit is not None:
            stmt = stmt.limit(query.limit)
        records = [TransactionRecord.from_model(t) for t in self.session.scalars(stmt)]
        period_slug = query.period.slug if query.period else "all"
        type_label = query.type.value if query.type else "any"
        logger.debug(
            f"query_transactions: period={period_slug} type={type_label} "
            f"rows={len(records)}"
        )
        return records

    def query_budgets(
        self, *, month: Optional[int] = None, year: Optional[int] = None
    ) -> list[BudgetRecord]:
        stmt = select(Budget).order_by(Budget.id)
        if month is not None:
            stmt = stmt.where(Budget.month == month)
        if year is not None:
            stmt = stmt.where(Budget.year == year)
        return [BudgetRecord.from_model(b) for b in self.session.scalars(stmt)]

    def query_categories(self) -> list[CategoryRecord]:
        stmt = select(Category).order_by(Category.name)
        return [CategoryRecord.from_model(c) for c in self.session.scalars(stmt)]


class AsyncLedgerStore:
    """Runs each query on a worker thread with its own session.

    Independent fetches can be awaited together with ``asyncio.gather``.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self.session_factory = session_factory

    def _run(self, fetch: Callable[[LedgerStore], T]) -> T:
        with self.session_factory() as session:
            return fetch(LedgerStore(session))

    async def query_transactions(
        self, query: Optional[TransactionQuery] = None
    ) -> list[TransactionRecord]:
        return await asyncio.to_thread(
            self._run, lambda store: store.query_transactions(query)
        )

    async def query_budgets(
        self, *, month: Optional[int] = None, year: Optional[int] = None
    ) -> list[BudgetRecord]:
        return await asyncio.to_thread(
            self._run, lambda store: store.query_budgets(month=month, year=year)
        )

    async def query_categories(self) -> list[CategoryRecord]:
        return await asyncio.to_thread(
            self._run, lambda store: store.query_categories()
        )
