from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from analytics import BudgetStatus, compare_budgets
from database import Base
from models import Category, CategoryType, Transaction, TransactionType
from schemas import BudgetIn
from services import AnalyticsService, BudgetService
from store import BudgetRecord, CategoryRecord


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


CATEGORIES = [
    CategoryRecord(id=1, name="Food", color="#FF6B6B", icon="utensils"),
    CategoryRecord(id=2, name="Gym", color="#8AC926", icon="dumbbell"),
    CategoryRecord(id=3, name="Rent", color="#45B7D1", icon="home"),
    CategoryRecord(id=4, name="Books", color="#1982C4", icon="book"),
]


def test_rows_ordered_by_percentage_used_with_unbudgeted_spending() -> None:
    budgets = [
        BudgetRecord(id=10, category_id=1, amount=400, month=3, year=2025),
        BudgetRecord(id=11, category_id=2, amount=0, month=3, year=2025),
        BudgetRecord(id=12, category_id=3, amount=500, month=3, year=2025),
    ]
    actuals = {1: 450.0, 3: 100.0, 4: 80.0}

    rows = compare_budgets(budgets, actuals, CATEGORIES)

    assert [row.id for row in rows] == [10, "unbudgeted-4", 12, 11]

    food, books, rent, gym = rows
    assert food.percentage_used == 100
    assert food.difference == -50
    assert food.status == BudgetStatus.exceeded

    assert books.category.name == "Books"
    assert books.budgeted == 0
    assert books.difference == -80
    assert books.status == BudgetStatus.unbudgeted

    assert rent.percentage_used == pytest.approx(20)
    assert rent.status == BudgetStatus.within

    # Zero budget, zero spending: nothing used, nothing exceeded.
    assert gym.percentage_used == 0
    assert gym.actual == 0
    assert gym.status == BudgetStatus.within


def test_zero_actuals_do_not_produce_unbudgeted_rows() -> None:
    rows = compare_budgets([], {4: 0.0}, CATEGORIES)

    assert rows == []


def test_first_budget_for_a_category_wins() -> None:
    budgets = [
        BudgetRecord(id=1, category_id=1, amount=200, month=3, year=2025),
        BudgetRecord(id=2, category_id=1, amount=900, month=3, year=2025),
    ]

    rows = compare_budgets(budgets, {1: 100.0}, CATEGORIES)

    assert len(rows) == 1
    assert rows[0].id == 1
    assert rows[0].budgeted == 200


def test_budget_comparison_groups_uncategorized_spending() -> None:
    session = make_session()

    food = Category(name="Food", type=CategoryType.expense)
    session.add(food)
    session.commit()
    session.refresh(food)

    BudgetService(session).create(
        BudgetIn(category_id=food.id, amount=200, month=3, year=2025)
    )
    session.add_all(
        [
            Transaction(
                amount=-50,
                description="groceries",
                date=datetime(2025, 3, 4),
                type=TransactionType.expense,
                category_id=food.id,
            ),
            Transaction(
                amount=-30,
                description="parking",
                date=datetime(2025, 3, 6),
                type=TransactionType.expense,
            ),
            Transaction(
                amount=-70,
                description="april groceries",
                date=datetime(2025, 4, 1),
                type=TransactionType.expense,
                category_id=food.id,
            ),
        ]
    )
    session.commit()

    rows = AnalyticsService(session).budget_comparison(3, 2025)

    assert len(rows) == 2
    assert rows[0].id == "unbudgeted-uncategorized"
    assert rows[0].category.name == "Uncategorized"
    assert rows[0].actual == 30
    assert rows[1].category.name == "Food"
    assert rows[1].actual == 50
    assert rows[1].percentage_used == pytest.approx(25)


def test_budget_for_month_without_spending_is_within() -> None:
    session = make_session()

    food = Category(name="Food", type=CategoryType.expense)
    session.add(food)
    session.commit()
    session.refresh(food)
    BudgetService(session).create(
        BudgetIn(category_id=food.id, amount=150, month=7, year=2025)
    )

    rows = AnalyticsService(session).budget_comparison(7, 2025)

    assert len(rows) == 1
    assert rows[0].actual == 0
    assert rows[0].difference == 150
    assert rows[0].status == BudgetStatus.within


def test_duplicate_budget_is_rejected() -> None:
    session = make_session()

    food = Category(name="Food", type=CategoryType.expense)
    session.add(food)
    session.commit()
    session.refresh(food)

    budgets = BudgetService(session)
    budgets.create(BudgetIn(category_id=food.id, amount=200, month=3, year=2025))

    with pytest.raises(ValueError, match="already exists"):
        budgets.create(BudgetIn(category_id=food.id, amount=300, month=3, year=2025))

    # Same category in another month is fine.
    budgets.create(BudgetIn(category_id=food.id, amount=300, month=4, year=2025))
    assert len(budgets.list(year=2025)) == 2


def test_budget_for_unknown_category_is_not_found() -> None:
    session = make_session()

    with pytest.raises(ValueError, match="not found"):
        BudgetService(session).create(
            BudgetIn(category_id=999, amount=10, month=1, year=2025)
        )
