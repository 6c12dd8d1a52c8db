from decimal import Decimal
import random

import pytest

from balance_aggregator import BalanceAggregator
from exceptions import InconsistentLedgerError
from models import SettlementSuggestion, SplitStrategy
from settlement_optimizer import SETTLED_MESSAGE, SettlementOptimizer

from conftest import make_expense, make_settlement


def as_tuples(suggestions):
    return [(s.payer_id, s.payee_id, s.amount) for s in suggestions]


def test_two_debtors_pay_single_creditor():
    balances = {"u1": Decimal("66.67"), "u2": Decimal("-33.33"), "u3": Decimal("-33.34")}

    suggestions = SettlementOptimizer.minimize_transactions(balances)

    assert len(suggestions) == 2
    assert set(as_tuples(suggestions)) == {
        ("u2", "u1", Decimal("33.33")),
        ("u3", "u1", Decimal("33.34")),
    }


def test_largest_debtor_matched_first():
    balances = {"a": Decimal("50"), "b": Decimal("-20"), "c": Decimal("-30")}

    suggestions = SettlementOptimizer.minimize_transactions(balances)

    assert suggestions == [
        SettlementSuggestion(payer_id="c", payee_id="a", amount=Decimal("30.00"), currency="USD"),
        SettlementSuggestion(payer_id="b", payee_id="a", amount=Decimal("20.00"), currency="USD"),
    ]


def test_ties_broken_by_user_id():
    balances = {"z": Decimal("10"), "y": Decimal("10"), "b": Decimal("-10"), "a": Decimal("-10")}

    suggestions = SettlementOptimizer.minimize_transactions(balances)

    assert as_tuples(suggestions) == [
        ("a", "y", Decimal("10.00")),
        ("b", "z", Decimal("10.00")),
    ]


def test_empty_balances_are_fully_settled():
    plan = SettlementOptimizer.simplify({}, group_id="g1")

    assert plan.suggestions == []
    assert plan.transaction_count == 0
    assert plan.total_amount == Decimal("0")
    assert plan.is_settled
    assert plan.message == SETTLED_MESSAGE


def test_plan_summary():
    plan = SettlementOptimizer.simplify(
        {"a": Decimal("50"), "b": Decimal("-20"), "c": Decimal("-30")}, group_id="g1", currency="EUR"
    )

    assert plan.transaction_count == 2
    assert plan.total_amount == Decimal("50.00")
    assert not plan.is_settled
    assert {s.currency for s in plan.suggestions} == {"EUR"}


def test_single_unmatched_balance_is_inconsistent():
    with pytest.raises(InconsistentLedgerError) as exc_info:
        SettlementOptimizer.minimize_transactions({"a": Decimal("10.00")})

    assert exc_info.value.creditor_total == Decimal("10.00")
    assert exc_info.value.debtor_total == Decimal("0")


def test_non_zero_sum_balances_are_inconsistent():
    with pytest.raises(InconsistentLedgerError):
        SettlementOptimizer.minimize_transactions(
            {"a": Decimal("10.00"), "b": Decimal("-4.00"), "c": Decimal("-5.00")}
        )


def test_simplify_is_idempotent(trip_expenses):
    balances = BalanceAggregator.compute_group_balances(trip_expenses, [])

    first = SettlementOptimizer.simplify(balances, group_id="g1")
    second = SettlementOptimizer.simplify(balances, group_id="g1")

    assert first.model_dump_json() == second.model_dump_json()


def random_group(seed):
    rng = random.Random(seed)
    users = [f"user{i}" for i in range(rng.randint(2, 8))]
    expenses = []
    for _ in range(rng.randint(1, 12)):
        payer = rng.choice(users)
        amount = Decimal(rng.randint(1, 50000)) / 100
        participants = rng.sample(users, rng.randint(1, len(users)))
        kind = rng.choice(["equal", "exact"])
        if kind == "equal" or len(participants) == 1:
            expenses.append(make_expense(payer, amount, participants=participants))
        else:
            first = (amount / 3).quantize(Decimal("0.01"))
            exact = {participants[0]: first, participants[1]: amount - first}
            expenses.append(make_expense(payer, amount, SplitStrategy.EXACT, exact_amounts=exact))
    return expenses


@pytest.mark.parametrize("seed", range(25))
def test_suggestions_settle_the_group(seed):
    expenses = random_group(seed)
    balances = BalanceAggregator.compute_group_balances(expenses, [])
    assert sum(balances.values(), Decimal("0")) == Decimal("0")

    suggestions = SettlementOptimizer.minimize_transactions(balances)
    assert len(suggestions) <= max(0, len(balances) - 1)

    payments = [make_settlement(s.payer_id, s.payee_id, s.amount) for s in suggestions]
    assert BalanceAggregator.compute_group_balances(expenses, payments) == {}


def test_optimize_settlements_end_to_end(trip_expenses):
    balances, plan = SettlementOptimizer.optimize_settlements(trip_expenses, [], group_id="g1")

    assert balances == BalanceAggregator.compute_group_balances(trip_expenses, [])
    assert plan.group_id == "g1"
    assert plan.transaction_count == len(plan.suggestions) <= len(balances) - 1


def test_sub_cent_transfers_are_not_suggested():
    balances = {"a": Decimal("10.004"), "b": Decimal("-10.000"), "c": Decimal("-0.004")}

    suggestions = SettlementOptimizer.minimize_transactions(balances)

    assert as_tuples(suggestions) == [("b", "a", Decimal("10.00"))]
