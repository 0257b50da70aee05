"""Report computations over ledger snapshots.

Nothing in this module reads the clock or touches a session: callers fetch
records through ``store`` and pass them in, together with the reference
instant where one matters. Missing categories, empty inputs and zero
baselines all resolve to defined values instead of raising.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Hashable, Optional, TypeVar, Union

from models import DEFAULT_CATEGORY_COLOR, DEFAULT_CATEGORY_ICON, TransactionType
from store import BudgetRecord, CategoryRecord, TransactionRecord

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

CategoryKey = Union[int, str]
Categories = Union[Mapping[int, CategoryRecord], Iterable[CategoryRecord]]

MONTH_NAMES = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

UNCATEGORIZED_ID = "uncategorized"

# Ties for the highest-spending day go to the earliest calendar day.
PEAK_DAY_TIE_BREAK: Callable[[list[date]], date] = min


class BudgetStatus(str, Enum):
    within = "within"
    exceeded = "exceeded"
    unbudgeted = "unbudgeted"


@dataclass(frozen=True)
class CategoryRef:
    id: CategoryKey
    name: str
    color: str
    icon: str = DEFAULT_CATEGORY_ICON


UNCATEGORIZED = CategoryRef(
    id=UNCATEGORIZED_ID,
    name="Uncategorized",
    color=DEFAULT_CATEGORY_COLOR,
    icon=DEFAULT_CATEGORY_ICON,
)


@dataclass(frozen=True)
class Bucket:
    total: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class MonthlyBucket:
    month: int
    expense: float
    income: float


@dataclass(frozen=True)
class MonthlyAmount:
    month: int
    name: str
    amount: float


@dataclass(frozen=True)
class CategorySlice:
    id: CategoryKey
    name: str
    color: str
    value: float
    count: int


@dataclass(frozen=True)
class ComparisonRow:
    id: Union[int, str]
    category: CategoryRef
    budgeted: float
    actual: float
    difference: float
    percentage_used: float
    status: BudgetStatus


@dataclass(frozen=True)
class PeriodTotals:
    income: float
    expense: float
    balance: float


@dataclass(frozen=True)
class RecentTransaction:
    id: int
    amount: float
    description: str
    date: datetime
    type: TransactionType
    category: CategoryRef
    payment_method: str
    notes: Optional[str]


@dataclass(frozen=True)
class DashboardSummary:
    current_month: PeriodTotals
    previous_month: PeriodTotals
    changes: dict[str, float]
    top_categories: list[CategorySlice]
    recent_transactions: list[RecentTransaction]


@dataclass(frozen=True)
class PeriodSpending:
    total: float
    daily_average: float
    transaction_count: int


@dataclass(frozen=True)
class PeakDay:
    day: date
    amount: float
    transaction_count: int


@dataclass(frozen=True)
class CategoryDelta:
    category: CategoryRef
    current_amount: float
    previous_amount: float
    change: float
    increasing: bool


@dataclass(frozen=True)
class Insight:
    current: PeriodSpending
    previous: PeriodSpending
    projected_total: float
    projected_change: float
    peak_day: Optional[PeakDay]
    top_category_deltas: list[CategoryDelta]

    @property
    def current_total(self) -> float:
        return self.current.total

    @property
    def daily_average(self) -> float:
        return self.current.daily_average


# Grouping


def signed_amount(record: TransactionRecord) -> float:
    return record.amount


def absolute_amount(record: TransactionRecord) -> float:
    return abs(record.amount)


def group_and_sum(
    records: Iterable[V],
    key_fn: Callable[[V], Optional[K]],
    value_fn: Callable[[V], float] = signed_amount,
) -> dict[Union[K, str], float]:
    """Sum ``value_fn`` per key. ``None`` keys share the uncategorized bucket."""
    totals: dict[Union[K, str], float] = {}
    for record in records:
        key = key_fn(record)
        if key is None:
            key = UNCATEGORIZED_ID
        totals[key] = totals.get(key, 0.0) + value_fn(record)
    return totals


def group_buckets(
    records: Iterable[V],
    key_fn: Callable[[V], Optional[K]],
    value_fn: Callable[[V], float] = signed_amount,
) -> dict[Union[K, str], Bucket]:
    buckets: dict[Union[K, str], Bucket] = {}
    for record in records:
        key = key_fn(record)
        if key is None:
            key = UNCATEGORIZED_ID
        current = buckets.get(key, Bucket())
        buckets[key] = Bucket(current.total + value_fn(record), current.count + 1)
    return buckets


def group_by_month_and_type(
    records: Iterable[TransactionRecord],
) -> dict[int, dict[str, float]]:
    composite = group_and_sum(
        records, lambda r: (r.date.month, r.type.value), absolute_amount
    )
    nested: dict[int, dict[str, float]] = {}
    for (month, type_label), total in composite.items():
        nested.setdefault(month, {})[type_label] = total
    return nested


def fill_months(
    partial: Mapping[int, V], month_count: int = 12, default: V = 0.0
) -> list[tuple[int, V]]:
    """Dense ascending sequence for months 1..month_count.

    Absent months get a copy of ``default``. When both the default and a
    present value are mappings, keys missing from the value come from the
    default.
    """
    filled: list[tuple[int, V]] = []
    for month in range(1, month_count + 1):
        value = partial.get(month)
        if value is None:
            value = copy.copy(default)
        elif isinstance(default, Mapping) and isinstance(value, Mapping):
            value = {**default, **value}
        filled.append((month, value))
    return filled


# Categories


def index_categories(categories: Categories) -> dict[int, CategoryRecord]:
    if isinstance(categories, Mapping):
        return dict(categories)
    return {category.id: category for category in categories}


def resolve_category(
    category_id: Optional[CategoryKey], categories: Categories
) -> CategoryRef:
    index = categories if isinstance(categories, Mapping) else index_categories(
        categories
    )
    category = index.get(category_id) if category_id is not None else None
    if category is None:
        return UNCATEGORIZED
    return CategoryRef(
        id=category.id, name=category.name, color=category.color, icon=category.icon
    )


def category_key(
    category_id: Optional[CategoryKey], categories: Mapping[int, CategoryRecord]
) -> CategoryKey:
    if category_id is None or category_id not in categories:
        return UNCATEGORIZED_ID
    return category_id


def percent_change(current: float, previous: float) -> float:
    # Any activity against an empty baseline counts as a full swing.
    if previous == 0:
        return 100.0
    return ((current - previous) / previous) * 100


# Reports


def summarize_months(
    records: Iterable[TransactionRecord], year: int
) -> list[MonthlyBucket]:
    nested = group_by_month_and_type(r for r in records if r.date.year == year)
    filled = fill_months(
        nested,
        default={TransactionType.expense.value: 0.0, TransactionType.income.value: 0.0},
    )
    return [
        MonthlyBucket(
            month=month,
            expense=totals[TransactionType.expense.value],
            income=totals[TransactionType.income.value],
        )
        for month, totals in filled
    ]


def summarize_monthly_expenses(
    records: Iterable[TransactionRecord], year: int
) -> list[MonthlyAmount]:
    # Classified by sign rather than type: this series only charts outflows.
    totals = group_and_sum(
        (r for r in records if r.date.year == year and r.amount < 0),
        lambda r: r.date.month,
        absolute_amount,
    )
    return [
        MonthlyAmount(month=month, name=MONTH_NAMES[month - 1], amount=amount)
        for month, amount in fill_months(totals, default=0.0)
    ]


def summarize_categories(
    records: Iterable[TransactionRecord],
    categories: Categories,
    *,
    transaction_type: Optional[TransactionType] = None,
    limit: Optional[int] = None,
) -> list[CategorySlice]:
    index = index_categories(categories)
    if transaction_type is not None:
        records = (r for r in records if r.type == transaction_type)
    buckets = group_buckets(
        records, lambda r: category_key(r.category_id, index), absolute_amount
    )

    slices: list[CategorySlice] = []
    for key, bucket in buckets.items():
        if bucket.total == 0:
            continue
        ref = resolve_category(key, index)
        slices.append(
            CategorySlice(
                id=ref.id,
                name=ref.name,
                color=ref.color,
                value=bucket.total,
                count=bucket.count,
            )
        )
    slices.sort(key=lambda s: s.value, reverse=True)
    if limit is not None:
        slices = slices[:limit]
    return slices


def expense_actuals_by_category(
    records: Iterable[TransactionRecord], categories: Categories
) -> dict[CategoryKey, float]:
    index = index_categories(categories)
    return group_and_sum(
        (r for r in records if r.is_expense),
        lambda r: category_key(r.category_id, index),
        absolute_amount,
    )


def compare_budgets(
    budgets: Iterable[BudgetRecord],
    actuals_by_category: Mapping[CategoryKey, float],
    categories: Categories = (),
) -> list[ComparisonRow]:
    index = index_categories(categories)
    rows: list[ComparisonRow] = []
    budgeted: set[CategoryKey] = set()

    for budget in budgets:
        # One budget per category and month; if the store ever returns more,
        # the first one found wins.
        if budget.category_id in budgeted:
            continue
        budgeted.add(budget.category_id)

        actual = actuals_by_category.get(budget.category_id, 0.0)
        difference = budget.amount - actual
        percentage = (actual / budget.amount) * 100 if budget.amount > 0 else 0.0
        rows.append(
            ComparisonRow(
                id=budget.id,
                category=resolve_category(budget.category_id, index),
                budgeted=budget.amount,
                actual=actual,
                difference=difference,
                percentage_used=min(percentage, 100.0),
                status=(
                    BudgetStatus.within if difference >= 0 else BudgetStatus.exceeded
                ),
            )
        )

    for key, actual in actuals_by_category.items():
        if key in budgeted or actual == 0:
            continue
        rows.append(
            ComparisonRow(
                id=f"unbudgeted-{key}",
                category=resolve_category(key, index),
                budgeted=0.0,
                actual=actual,
                difference=-actual,
                percentage_used=100.0,
                status=BudgetStatus.unbudgeted,
            )
        )

    rows.sort(key=lambda r: r.percentage_used, reverse=True)
    return rows


def period_spending(
    records: Iterable[TransactionRecord], days: int
) -> PeriodSpending:
    expenses = [r for r in records if r.is_expense]
    total = sum(abs(r.amount) for r in expenses)
    return PeriodSpending(
        total=total,
        daily_average=total / max(days, 1),
        transaction_count=len(expenses),
    )


def find_peak_day(records: Iterable[TransactionRecord]) -> Optional[PeakDay]:
    buckets = group_buckets(
        (r for r in records if r.is_expense), lambda r: r.date.date(), absolute_amount
    )
    if not buckets:
        return None
    highest = max(bucket.total for bucket in buckets.values())
    tied = [day for day, bucket in buckets.items() if bucket.total == highest]
    day = PEAK_DAY_TIE_BREAK(tied)
    bucket = buckets[day]
    return PeakDay(day=day, amount=bucket.total, transaction_count=bucket.count)


def delta_is_reportable(current_amount: float, previous_amount: float) -> bool:
    # Reported when either period has spending; a category that dropped to
    # zero this period shows up with a -100 change.
    return current_amount > 0 or previous_amount > 0


def rank_category_deltas(
    current: Iterable[TransactionRecord],
    previous: Iterable[TransactionRecord],
    categories: Categories = (),
    *,
    limit: int = 3,
) -> list[CategoryDelta]:
    index = index_categories(categories)
    current_totals = expense_actuals_by_category(current, index)
    previous_totals = expense_actuals_by_category(previous, index)

    keys = list(current_totals)
    keys.extend(k for k in previous_totals if k not in current_totals)

    deltas: list[CategoryDelta] = []
    for key in keys:
        current_amount = current_totals.get(key, 0.0)
        previous_amount = previous_totals.get(key, 0.0)
        if not delta_is_reportable(current_amount, previous_amount):
            continue
        change = percent_change(current_amount, previous_amount)
        deltas.append(
            CategoryDelta(
                category=resolve_category(key, index),
                current_amount=current_amount,
                previous_amount=previous_amount,
                change=change,
                increasing=change > 0,
            )
        )
    deltas.sort(key=lambda d: abs(d.change), reverse=True)
    return deltas[:limit]


def project_insights(
    current: Iterable[TransactionRecord],
    previous: Iterable[TransactionRecord],
    day_of_period: int,
    days_in_period: int,
    *,
    categories: Categories = (),
    previous_days_in_period: Optional[int] = None,
    delta_limit: int = 3,
) -> Insight:
    """Run-rate projection for the current period against the previous one.

    ``day_of_period`` is 1-based; 0 is treated as 1 so the first instant of a
    period still yields a finite average.
    """
    current = list(current)
    previous = list(previous)

    current_spending = period_spending(current, day_of_period)
    previous_spending = period_spending(
        previous, previous_days_in_period or days_in_period
    )
    projected_total = current_spending.daily_average * days_in_period
    if previous_spending.total > 0:
        projected_change = percent_change(projected_total, previous_spending.total)
    else:
        projected_change = 0.0

    return Insight(
        current=current_spending,
        previous=previous_spending,
        projected_total=projected_total,
        projected_change=projected_change,
        peak_day=find_peak_day(current),
        top_category_deltas=rank_category_deltas(
            current, previous, categories, limit=delta_limit
        ),
    )


def period_totals(records: Iterable[TransactionRecord]) -> PeriodTotals:
    by_type = group_and_sum(records, lambda r: r.type.value, absolute_amount)
    income = by_type.get(TransactionType.income.value, 0.0)
    expense = by_type.get(TransactionType.expense.value, 0.0)
    return PeriodTotals(income=income, expense=expense, balance=income - expense)


def summarize_dashboard(
    current: Iterable[TransactionRecord],
    previous: Iterable[TransactionRecord],
    recent: Iterable[TransactionRecord],
    categories: Categories = (),
    *,
    top_limit: int = 3,
    recent_limit: int = 5,
) -> DashboardSummary:
    index = index_categories(categories)
    current = list(current)
    current_totals = period_totals(current)
    previous_totals = period_totals(previous)

    newest = sorted(recent, key=lambda r: r.date, reverse=True)[:recent_limit]
    return DashboardSummary(
        current_month=current_totals,
        previous_month=previous_totals,
        changes={
            "income": percent_change(current_totals.income, previous_totals.income),
            "expense": percent_change(
                current_totals.expense, previous_totals.expense
            ),
        },
        top_categories=summarize_categories(
            current,
            index,
            transaction_type=TransactionType.expense,
            limit=top_limit,
        ),
        recent_transactions=[
            RecentTransaction(
                id=r.id,
                amount=r.amount,
                description=r.description,
                date=r.date,
                type=r.type,
                category=resolve_category(r.category_id, index),
                payment_method=r.payment_method.value,
                notes=r.notes,
            )
            for r in newest
        ],
    )
