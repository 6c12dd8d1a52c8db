from typing import Dict, List, Any, Optional
from datetime import datetime
from threading import Lock
import copy
import logging
import uuid

from exceptions import (
    ExpenseNotFoundError,
    LedgerError,
    SettlementNotFoundError,
    SettlementStateError,
)
from models import Expense, Settlement, SettlementStatus, SplitStrategy, to_decimal
from split_calculator import SplitCalculator

logger = logging.getLogger(__name__)

EXPENSE_FIELDS = ("description", "currency", "category", "notes")


class ExpenseLedger:
    """
    In-memory expense store.

    Shares are always produced by the split calculator together with their
    expense; an update rebuilds the whole share list, never patches it.
    Reads return copies so callers aggregate over a stable snapshot.
    """

    def __init__(self, default_currency: str = "USD"):
        self.default_currency = default_currency
        self._expenses: Dict[str, Expense] = {}
        self._split_params: Dict[str, Dict[str, Any]] = {}
        self._lock = Lock()

    def create_expense(self, group_id: str, payer_id: str, amount, strategy,
                       params: Dict[str, Any], description: str = "",
                       currency: Optional[str] = None, category: Optional[str] = None,
                       notes: Optional[str] = None) -> Expense:
        expense_id = str(uuid.uuid4())
        shares = SplitCalculator.compute_shares(amount, payer_id, strategy, params, expense_id=expense_id)
        amount = to_decimal(amount)
        SplitCalculator.validate_shares(shares)

        expense = Expense(
            id=expense_id,
            description=description,
            amount=amount,
            currency=currency or self.default_currency,
            group_id=group_id,
            payer_id=payer_id,
            split_strategy=SplitStrategy(strategy),
            category=category,
            notes=notes,
            shares=shares,
        )

        with self._lock:
            self._expenses[expense_id] = expense
            self._split_params[expense_id] = copy.deepcopy(params)

        logger.info(f"Created expense {expense_id} of {amount} in group {group_id}")
        return expense.model_copy(deep=True)

    def update_expense(self, expense_id: str, amount=None, payer_id: Optional[str] = None,
                       strategy=None, params: Optional[Dict[str, Any]] = None,
                       **fields) -> Expense:
        unknown = set(fields) - set(EXPENSE_FIELDS)
        if unknown:
            raise LedgerError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with self._lock:
            current = self._get_active(expense_id)
            if strategy is not None and params is None and SplitStrategy(strategy) != current.split_strategy:
                raise LedgerError("Changing the split strategy requires new split parameters")

            new_amount = amount if amount is not None else current.amount
            new_payer = payer_id or current.payer_id
            new_strategy = SplitStrategy(strategy) if strategy is not None else current.split_strategy
            new_params = params if params is not None else self._split_params[expense_id]

            shares = SplitCalculator.compute_shares(new_amount, new_payer, new_strategy, new_params,
                                                    expense_id=expense_id)
            new_amount = to_decimal(new_amount)
            SplitCalculator.validate_shares(shares)

            update = {k: v for k, v in fields.items() if v is not None}
            update.update(
                amount=new_amount,
                payer_id=new_payer,
                split_strategy=new_strategy,
                shares=shares,
                updated_at=datetime.now(),
            )
            # validate the merged record before replacing the stored one
            updated = Expense(**{**current.model_dump(), **update})
            self._expenses[expense_id] = updated
            self._split_params[expense_id] = copy.deepcopy(new_params)

        logger.info(f"Updated expense {expense_id}, {len(shares)} shares recreated")
        return updated.model_copy(deep=True)

    def delete_expense(self, expense_id: str) -> Expense:
        with self._lock:
            current = self._get_active(expense_id)
            deleted = current.model_copy(update={"active": False, "updated_at": datetime.now()})
            self._expenses[expense_id] = deleted

        logger.info(f"Soft-deleted expense {expense_id}")
        return deleted.model_copy(deep=True)

    def get_expense(self, expense_id: str) -> Expense:
        with self._lock:
            if expense_id not in self._expenses:
                raise ExpenseNotFoundError(f"Expense {expense_id} not found")
            return self._expenses[expense_id].model_copy(deep=True)

    def get_group_expenses(self, group_id: str, include_inactive: bool = False) -> List[Expense]:
        with self._lock:
            return [
                e.model_copy(deep=True) for e in self._expenses.values()
                if e.group_id == group_id and (include_inactive or e.active)
            ]

    def _get_active(self, expense_id: str) -> Expense:
        if expense_id not in self._expenses:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        expense = self._expenses[expense_id]
        if not expense.active:
            raise LedgerError(f"Expense {expense_id} has been deleted")
        return expense


class SettlementLedger:
    """
    In-memory record of real payments.

    Status moves PENDING -> COMPLETED or PENDING -> CANCELLED exactly once.
    The transition is a compare-and-set under the ledger lock, so a payment
    confirmed twice concurrently is only credited once.
    """

    def __init__(self, default_currency: str = "USD"):
        self.default_currency = default_currency
        self._settlements: Dict[str, Settlement] = {}
        self._lock = Lock()

    def record_settlement(self, group_id: str, payer_id: str, payee_id: str, amount,
                          currency: Optional[str] = None,
                          status: SettlementStatus = SettlementStatus.COMPLETED,
                          payment_method: Optional[str] = None,
                          transaction_id: Optional[str] = None,
                          notes: Optional[str] = None) -> Settlement:
        logger.info(f"Recording settlement: {payer_id} pays {payee_id} amount {amount}")
        status = SettlementStatus(status)
        if status == SettlementStatus.CANCELLED:
            raise SettlementStateError("A settlement cannot be recorded as cancelled")

        settlement = Settlement(
            id=str(uuid.uuid4()),
            group_id=group_id,
            payer_id=payer_id,
            payee_id=payee_id,
            amount=to_decimal(amount),
            currency=currency or self.default_currency,
            status=status,
            payment_method=payment_method,
            transaction_id=transaction_id,
            notes=notes,
        )
        if status == SettlementStatus.COMPLETED:
            settlement.settled_at = settlement.created_at

        with self._lock:
            self._settlements[settlement.id] = settlement

        logger.info(f"Settlement recorded with ID: {settlement.id}")
        return settlement.model_copy()

    def complete_settlement(self, settlement_id: str) -> Settlement:
        return self._transition(settlement_id, SettlementStatus.COMPLETED)

    def cancel_settlement(self, settlement_id: str) -> Settlement:
        return self._transition(settlement_id, SettlementStatus.CANCELLED)

    def _transition(self, settlement_id: str, target: SettlementStatus) -> Settlement:
        with self._lock:
            settlement = self._get(settlement_id)
            if settlement.status != SettlementStatus.PENDING:
                raise SettlementStateError(
                    f"Settlement {settlement_id} is {settlement.status.value}, cannot move to {target.value}"
                )
            update = {"status": target}
            if target == SettlementStatus.COMPLETED:
                update["settled_at"] = datetime.now()
            settlement = settlement.model_copy(update=update)
            self._settlements[settlement_id] = settlement

        logger.info(f"Settlement {settlement_id} marked {target.value}")
        return settlement.model_copy()

    def get_settlement(self, settlement_id: str) -> Settlement:
        with self._lock:
            return self._get(settlement_id).model_copy()

    def get_group_settlements(self, group_id: str) -> List[Settlement]:
        with self._lock:
            return [s.model_copy() for s in self._settlements.values() if s.group_id == group_id]

    def get_user_settlements(self, user_id: str) -> List[Settlement]:
        with self._lock:
            settlements = [
                s.model_copy() for s in self._settlements.values()
                if s.payer_id == user_id or s.payee_id == user_id
            ]
        return sorted(settlements, key=lambda s: s.created_at, reverse=True)

    def get_outstanding_settlements(self) -> List[Settlement]:
        with self._lock:
            return [s.model_copy() for s in self._settlements.values()
                    if s.status == SettlementStatus.PENDING]

    def _get(self, settlement_id: str) -> Settlement:
        if settlement_id not in self._settlements:
            raise SettlementNotFoundError(f"Settlement {settlement_id} not found")
        return self._settlements[settlement_id]
