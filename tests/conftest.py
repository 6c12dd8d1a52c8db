from decimal import Decimal
import itertools

import pytest

from models import Expense, Settlement, SettlementStatus, SplitStrategy
from split_calculator import SplitCalculator

_ids = itertools.count(1)


def make_expense(payer, amount, strategy=SplitStrategy.EQUAL, active=True, group_id="g1", **params):
    expense_id = f"e{next(_ids)}"
    amount = Decimal(amount)
    shares = SplitCalculator.compute_shares(amount, payer, strategy, params, expense_id=expense_id)
    return Expense(
        id=expense_id,
        amount=amount,
        group_id=group_id,
        payer_id=payer,
        split_strategy=strategy,
        active=active,
        shares=shares,
    )


def make_settlement(payer, payee, amount, status=SettlementStatus.COMPLETED, group_id="g1"):
    return Settlement(
        id=f"s{next(_ids)}",
        group_id=group_id,
        payer_id=payer,
        payee_id=payee,
        amount=Decimal(amount),
        status=status,
    )


@pytest.fixture
def trip_expenses():
    return [
        make_expense("alice", "90.00", participants=["alice", "bob", "carol"]),
        make_expense("bob", "45.50", participants=["alice", "bob"]),
        make_expense("carol", "120.00", SplitStrategy.PERCENTAGE,
                     percentages={"alice": "25", "bob": "25", "carol": "50"}),
        make_expense("alice", "10.01", SplitStrategy.EXACT,
                     exact_amounts={"bob": "5.00", "carol": "5.01"}),
    ]
