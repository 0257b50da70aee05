from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_CATEGORY_ICON,
    CategoryType,
    PaymentMethod,
    TransactionType,
)

HEX_COLOR_PATTERN = r"^#([0-9A-Fa-f]{3}){1,2}$"


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(DEFAULT_CATEGORY_COLOR, pattern=HEX_COLOR_PATTERN)
    icon: str = Field(DEFAULT_CATEGORY_ICON, min_length=1, max_length=50)
    type: CategoryType = CategoryType.expense
    is_default: bool = False


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(default=None, min_length=1, max_length=50)
    type: Optional[CategoryType] = None


class TransactionIn(BaseModel):
    amount: float
    description: str = Field(..., min_length=1, max_length=200)
    date: datetime
    type: TransactionType = TransactionType.expense
    category_id: Optional[int] = None
    payment_method: PaymentMethod = PaymentMethod.cash
    notes: Optional[str] = None


class BudgetIn(BaseModel):
    category_id: int
    amount: float = Field(..., ge=0)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    notes: Optional[str] = None


class BudgetUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category_id: Optional[int] = None
    amount: Optional[float] = Field(default=None, ge=0)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = Field(default=None, ge=2000, le=2100)
    notes: Optional[str] = None
