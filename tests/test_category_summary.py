from datetime import datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from analytics import UNCATEGORIZED_ID, summarize_categories
from database import Base
from models import Category, CategoryType, Transaction, TransactionType
from periods import Period, month_period
from services import AnalyticsService
from store import CategoryRecord, TransactionRecord


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def test_category_summary_sorted_descending_without_zero_rows() -> None:
    with make_session() as session:
        food = Category(name="Food", color="#FF6B6B", type=CategoryType.expense)
        rent = Category(name="Rent", color="#45B7D1", type=CategoryType.expense)
        fees = Category(name="Fees", type=CategoryType.expense)
        session.add_all([food, rent, fees])
        session.commit()

        rows = [
            (-30, datetime(2025, 5, 2), food.id),
            (-900, datetime(2025, 5, 1), rent.id),
            (-25, datetime(2025, 5, 9), food.id),
            (0, datetime(2025, 5, 10), fees.id),
            (-12, datetime(2025, 5, 11), None),
            (-400, datetime(2025, 6, 1), food.id),
        ]
        for amount, when, category_id in rows:
            session.add(
                Transaction(
                    amount=amount,
                    description="entry",
                    date=when,
                    type=TransactionType.expense,
                    category_id=category_id,
                )
            )
        session.add(
            Transaction(
                amount=3000,
                description="salary",
                date=datetime(2025, 5, 1),
                type=TransactionType.income,
            )
        )
        session.commit()

        summary = AnalyticsService(session).category_summary(month_period(2025, 5))

        assert [row.name for row in summary] == ["Rent", "Food", "Uncategorized"]
        assert [row.value for row in summary] == [900, 55, 12]
        assert summary[0].color == "#45B7D1"
        assert summary[1].count == 2
        assert all(row.value != 0 for row in summary)


def test_income_summary_only_counts_income() -> None:
    with make_session() as session:
        salary = Category(name="Salary", type=CategoryType.income)
        session.add(salary)
        session.commit()
        session.add_all(
            [
                Transaction(
                    amount=2500,
                    description="pay",
                    date=datetime(2025, 5, 28),
                    type=TransactionType.income,
                    category_id=salary.id,
                ),
                Transaction(
                    amount=-80,
                    description="groceries",
                    date=datetime(2025, 5, 3),
                    type=TransactionType.expense,
                ),
            ]
        )
        session.commit()

        summary = AnalyticsService(session).category_summary(
            month_period(2025, 5), TransactionType.income
        )

        assert len(summary) == 1
        assert summary[0].id == salary.id
        assert summary[0].value == 2500


def test_vanished_and_missing_categories_collapse_into_one_slice() -> None:
    categories = [CategoryRecord(id=1, name="Food", color="#FF6B6B", icon="utensils")]
    records = [
        TransactionRecord(id=1, amount=-10, date=datetime(2025, 1, 1), category_id=None),
        TransactionRecord(id=2, amount=-15, date=datetime(2025, 1, 2), category_id=99),
        TransactionRecord(id=3, amount=-5, date=datetime(2025, 1, 3), category_id=1),
    ]

    summary = summarize_categories(
        records, categories, transaction_type=TransactionType.expense
    )

    assert [(row.id, row.value) for row in summary] == [
        (UNCATEGORIZED_ID, 25.0),
        (1, 5.0),
    ]


def test_empty_period_gives_empty_summary() -> None:
    with make_session() as session:
        period = Period("empty", datetime(2020, 1, 1), datetime(2020, 2, 1))
        assert AnalyticsService(session).category_summary(period) == []
