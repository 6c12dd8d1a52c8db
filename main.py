from fastapi import FastAPI, BackgroundTasks, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional, Dict
from decimal import Decimal
import logging

from activity import ActivityEvent, ActivityLog, ActivityType
from balance_aggregator import BalanceAggregator
from config import get_settings
from exceptions import (
    ExpenseNotFoundError,
    InconsistentLedgerError,
    InvalidSplitError,
    LedgerError,
    SettlementNotFoundError,
    SettlementStateError,
)
from ledger import ExpenseLedger, SettlementLedger
from models import (
    CENT,
    Expense,
    GroupBalances,
    Settlement,
    SettlementPlan,
    SettlementStatus,
    SplitStrategy,
    UserBalance,
)
from settlement_optimizer import SettlementOptimizer

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Ledger & Settlement API",
    description="Expense splitting, group balances and debt simplification",
    version="1.0.0"
)

# CORS middleware to allow frontend connections
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# In-memory ledgers (storage is owned by the surrounding system in production)
expense_ledger = ExpenseLedger(default_currency=settings.default_currency)
settlement_ledger = SettlementLedger(default_currency=settings.default_currency)
activity_log = ActivityLog()


# ===== REQUEST MODELS =====
SPLIT_KEYS = {"participants", "exact_amounts", "percentages"}


class SplitParams(BaseModel):
    participants: Optional[List[str]] = Field(None, description="Ordered participant IDs for an EQUAL split")
    exact_amounts: Optional[Dict[str, Decimal]] = Field(None, description="User ID to amount for an EXACT split")
    percentages: Optional[Dict[str, Decimal]] = Field(None, description="User ID to percentage for a PERCENTAGE split")

    def as_params(self) -> dict:
        return self.model_dump(include=SPLIT_KEYS, exclude_none=True)


class ExpenseCreate(SplitParams):
    group_id: str = Field(..., description="ID of the group this expense belongs to")
    description: str = Field("", description="Description of the expense")
    amount: Decimal = Field(..., ge=CENT, description="Amount of the expense")
    paid_by: str = Field(..., description="ID of user who paid the expense")
    split_type: SplitStrategy = Field(SplitStrategy.EQUAL, description="How the expense is split")
    currency: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None


class ExpenseUpdate(SplitParams):
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(None, ge=CENT)
    paid_by: Optional[str] = None
    split_type: Optional[SplitStrategy] = None
    currency: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None


class SettlementCreate(BaseModel):
    group_id: str
    payer_id: str
    payee_id: str
    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = None
    status: SettlementStatus = SettlementStatus.COMPLETED
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_parties(self):
        if self.payer_id == self.payee_id:
            raise ValueError("payer and payee must be different users")
        return self


# ===== ERROR HANDLERS =====
@app.exception_handler(InvalidSplitError)
async def invalid_split_handler(request: Request, exc: InvalidSplitError):
    return JSONResponse(status_code=400, content={
        "detail": exc.message,
        "actual": str(exc.actual) if exc.actual is not None else None,
        "expected": str(exc.expected) if exc.expected is not None else None,
    })


@app.exception_handler(InconsistentLedgerError)
async def inconsistent_ledger_handler(request: Request, exc: InconsistentLedgerError):
    logger.error(f"Ledger inconsistency on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=500, content={"detail": exc.message})


@app.exception_handler(ExpenseNotFoundError)
@app.exception_handler(SettlementNotFoundError)
async def not_found_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(SettlementStateError)
@app.exception_handler(LedgerError)
async def conflict_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# ===== HELPERS =====
def _emit(background_tasks: BackgroundTasks, activity_type: ActivityType, group_id: str,
          user_id: str, description: str, target_user_id: Optional[str] = None, **metadata):
    event = ActivityEvent(
        activity_type=activity_type,
        group_id=group_id,
        user_id=user_id,
        target_user_id=target_user_id,
        description=description,
        metadata=metadata,
    )
    background_tasks.add_task(activity_log.emit, event)


def _group_records(group_id: str):
    # single read of both ledgers per request
    return expense_ledger.get_group_expenses(group_id), settlement_ledger.get_group_settlements(group_id)


# ===== API ENDPOINTS =====
@app.get("/")
async def root():
    return {"message": "Ledger & Settlement API"}


@app.post("/expenses/", response_model=Expense)
async def create_expense(expense: ExpenseCreate, background_tasks: BackgroundTasks):
    """Create an expense and its shares"""
    created = expense_ledger.create_expense(
        group_id=expense.group_id,
        payer_id=expense.paid_by,
        amount=expense.amount,
        strategy=expense.split_type,
        params=expense.as_params(),
        description=expense.description,
        currency=expense.currency,
        category=expense.category,
        notes=expense.notes,
    )
    _emit(background_tasks, ActivityType.EXPENSE_CREATED, created.group_id, created.payer_id,
          f"Added expense '{created.description}' of {created.amount} {created.currency}",
          expense_id=created.id, amount=str(created.amount))
    return created


@app.get("/expenses/{expense_id}", response_model=Expense)
async def get_expense(expense_id: str):
    """Get expense details"""
    return expense_ledger.get_expense(expense_id)


@app.put("/expenses/{expense_id}", response_model=Expense)
async def update_expense(expense_id: str, changes: ExpenseUpdate, background_tasks: BackgroundTasks):
    """Update an expense; its shares are recomputed from scratch"""
    params = changes.as_params() or None
    updated = expense_ledger.update_expense(
        expense_id,
        amount=changes.amount,
        payer_id=changes.paid_by,
        strategy=changes.split_type,
        params=params,
        description=changes.description,
        currency=changes.currency,
        category=changes.category,
        notes=changes.notes,
    )
    _emit(background_tasks, ActivityType.EXPENSE_UPDATED, updated.group_id, updated.payer_id,
          f"Updated expense '{updated.description}'", expense_id=updated.id, amount=str(updated.amount))
    return updated


@app.delete("/expenses/{expense_id}", response_model=Expense)
async def delete_expense(expense_id: str, background_tasks: BackgroundTasks):
    """Soft-delete an expense"""
    deleted = expense_ledger.delete_expense(expense_id)
    _emit(background_tasks, ActivityType.EXPENSE_DELETED, deleted.group_id, deleted.payer_id,
          f"Deleted expense '{deleted.description}'", expense_id=deleted.id)
    return deleted


@app.get("/groups/{group_id}/expenses", response_model=List[Expense])
async def list_group_expenses(group_id: str, include_inactive: bool = False):
    """List the expenses of a group"""
    return expense_ledger.get_group_expenses(group_id, include_inactive=include_inactive)


@app.get("/groups/{group_id}/balances", response_model=GroupBalances)
async def get_group_balances(group_id: str):
    """Net balance of every user in the group"""
    expenses, settlements = _group_records(group_id)
    return GroupBalances(
        group_id=group_id,
        balances=BalanceAggregator.compute_group_balances(expenses, settlements),
    )


@app.get("/groups/{group_id}/users/{user_id}/balance", response_model=UserBalance)
async def get_user_balance(group_id: str, user_id: str):
    """What a user owes and is owed within a group"""
    expenses, settlements = _group_records(group_id)
    return BalanceAggregator.compute_user_balance(user_id, expenses, settlements)


@app.get("/groups/{group_id}/settlements/suggestions", response_model=SettlementPlan)
async def calculate_settlements(group_id: str):
    """Calculate optimal settlements for a group"""
    expenses, settlements = _group_records(group_id)
    _, plan = SettlementOptimizer.optimize_settlements(
        expenses, settlements, group_id=group_id, currency=settings.default_currency
    )
    return plan


@app.post("/settlements/", response_model=Settlement)
async def record_settlement(settlement: SettlementCreate, background_tasks: BackgroundTasks):
    """Record a payment between two users"""
    recorded = settlement_ledger.record_settlement(**settlement.model_dump())
    _emit(background_tasks, ActivityType.PAYMENT_RECORDED, recorded.group_id, recorded.payer_id,
          f"Recorded payment of {recorded.amount} {recorded.currency}",
          target_user_id=recorded.payee_id, settlement_id=recorded.id, amount=str(recorded.amount))
    return recorded


@app.post("/settlements/{settlement_id}/complete", response_model=Settlement)
async def complete_settlement(settlement_id: str, background_tasks: BackgroundTasks):
    """Mark a pending settlement as completed"""
    completed = settlement_ledger.complete_settlement(settlement_id)
    _emit(background_tasks, ActivityType.SETTLEMENT_COMPLETED, completed.group_id, completed.payee_id,
          f"Settlement of {completed.amount} {completed.currency} completed and confirmed",
          target_user_id=completed.payer_id, settlement_id=completed.id)
    return completed


@app.post("/settlements/{settlement_id}/cancel", response_model=Settlement)
async def cancel_settlement(settlement_id: str, background_tasks: BackgroundTasks):
    """Cancel a pending settlement"""
    cancelled = settlement_ledger.cancel_settlement(settlement_id)
    _emit(background_tasks, ActivityType.SETTLEMENT_CANCELLED, cancelled.group_id, cancelled.payer_id,
          f"Settlement of {cancelled.amount} {cancelled.currency} cancelled",
          target_user_id=cancelled.payee_id, settlement_id=cancelled.id)
    return cancelled


@app.get("/settlements/outstanding", response_model=List[Settlement])
async def list_outstanding_settlements():
    """Settlements still waiting for confirmation"""
    return settlement_ledger.get_outstanding_settlements()


@app.get("/settlements/{settlement_id}", response_model=Settlement)
async def get_settlement(settlement_id: str):
    return settlement_ledger.get_settlement(settlement_id)


@app.get("/groups/{group_id}/settlements", response_model=List[Settlement])
async def list_group_settlements(group_id: str):
    return settlement_ledger.get_group_settlements(group_id)


@app.get("/users/{user_id}/settlements", response_model=List[Settlement])
async def list_user_settlements(user_id: str):
    """Settlements a user paid or received, newest first"""
    return settlement_ledger.get_user_settlements(user_id)


@app.get("/groups/{group_id}/activity", response_model=List[ActivityEvent])
async def list_group_activity(group_id: str):
    return activity_log.for_group(group_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
