from datetime import datetime

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Budget, CategoryType, TransactionType
from schemas import BudgetIn, CategoryIn, CategoryUpdate, TransactionIn
from services import (
    DEFAULT_CATEGORIES,
    BudgetService,
    CategoryService,
    ProtectedCategoryError,
    TransactionService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_category_names_are_unique_ignoring_case() -> None:
    session = make_session()
    categories = CategoryService(session)

    categories.create(CategoryIn(name="Food"))

    with pytest.raises(ValueError, match="already exists"):
        categories.create(CategoryIn(name="  food "))


def test_seed_defaults_is_idempotent() -> None:
    session = make_session()
    categories = CategoryService(session)

    assert categories.seed_defaults() == len(DEFAULT_CATEGORIES)
    assert categories.seed_defaults() == 0
    assert len(categories.list_all()) == len(DEFAULT_CATEGORIES)
    assert all(c.is_default for c in categories.list_all())


def test_default_categories_keep_name_and_type() -> None:
    session = make_session()
    categories = CategoryService(session)
    categories.seed_defaults()
    salary = next(c for c in categories.list_all() if c.name == "Salary")

    with pytest.raises(ProtectedCategoryError):
        categories.update(salary.id, CategoryUpdate(name="Wages"))
    with pytest.raises(ProtectedCategoryError):
        categories.update(salary.id, CategoryUpdate(type=CategoryType.both))
    with pytest.raises(ProtectedCategoryError):
        categories.delete(salary.id)

    updated = categories.update(salary.id, CategoryUpdate(color="#000000"))
    assert updated.color == "#000000"
    assert updated.name == "Salary"


def test_category_in_use_cannot_be_deleted() -> None:
    session = make_session()
    food = CategoryService(session).create(CategoryIn(name="Food"))
    TransactionService(session).create(
        TransactionIn(
            amount=-12.5,
            description="lunch",
            date=datetime(2025, 3, 3, 12),
            category_id=food.id,
        )
    )

    with pytest.raises(ValueError, match="used in 1 transactions"):
        CategoryService(session).delete(food.id)


def test_deleting_category_removes_its_budgets() -> None:
    session = make_session()
    books = CategoryService(session).create(CategoryIn(name="Books"))
    BudgetService(session).create(
        BudgetIn(category_id=books.id, amount=40, month=5, year=2025)
    )

    CategoryService(session).delete(books.id)

    assert session.scalars(select(Budget)).all() == []


def test_transaction_category_must_match_type() -> None:
    session = make_session()
    categories = CategoryService(session)
    salary = categories.create(CategoryIn(name="Salary", type=CategoryType.income))
    misc = categories.create(CategoryIn(name="Misc", type=CategoryType.both))
    txns = TransactionService(session)

    with pytest.raises(ValueError, match="type mismatch"):
        txns.create(
            TransactionIn(
                amount=-5,
                description="coffee",
                date=datetime(2025, 3, 3),
                type=TransactionType.expense,
                category_id=salary.id,
            )
        )

    txn = txns.create(
        TransactionIn(
            amount=-5,
            description="coffee",
            date=datetime(2025, 3, 3),
            type=TransactionType.expense,
            category_id=misc.id,
        )
    )
    assert txn.category.name == "Misc"


def test_unknown_transaction_is_not_found() -> None:
    session = make_session()

    with pytest.raises(ValueError, match="not found"):
        TransactionService(session).get(404)
