from pydantic import BaseModel, Field, model_validator
from typing import List, Optional, Dict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """Convert an incoming amount to Decimal without going through binary float"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value) -> Decimal:
    """Round half-up to the currency's minor unit (2 places)"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class SplitStrategy(str, Enum):
    EQUAL = "EQUAL"
    EXACT = "EXACT"
    PERCENTAGE = "PERCENTAGE"


class SettlementStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Share(BaseModel):
    user_id: str
    amount: Decimal
    percentage: Optional[Decimal] = None
    settled: bool = False
    expense_id: Optional[str] = None


class Expense(BaseModel):
    id: str
    description: str = ""
    amount: Decimal = Field(..., ge=CENT)
    currency: str = "USD"
    group_id: str
    payer_id: str
    split_strategy: SplitStrategy
    category: Optional[str] = None
    notes: Optional[str] = None
    active: bool = True
    shares: List[Share] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Settlement(BaseModel):
    id: str
    group_id: str
    payer_id: str
    payee_id: str
    amount: Decimal = Field(..., gt=0)
    currency: str = "USD"
    status: SettlementStatus = SettlementStatus.PENDING
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    settled_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_parties(self):
        if self.payer_id == self.payee_id:
            raise ValueError("payer and payee must be different users")
        return self


class SettlementSuggestion(BaseModel):
    payer_id: str
    payee_id: str
    amount: Decimal
    currency: str = "USD"


class SettlementPlan(BaseModel):
    group_id: Optional[str] = None
    currency: str = "USD"
    suggestions: List[SettlementSuggestion]
    transaction_count: int
    total_amount: Decimal
    is_settled: bool
    message: str


class UserBalance(BaseModel):
    user_id: str
    total_owed: Decimal = ZERO
    total_owed_to_user: Decimal = ZERO
    net_balance: Decimal = ZERO
    balances: Dict[str, Decimal] = Field(default_factory=dict)


class GroupBalances(BaseModel):
    group_id: str
    balances: Dict[str, Decimal]
