from typing import Dict, List, Iterable
from decimal import Decimal
import logging

from models import Expense, Settlement, SettlementStatus, UserBalance, ZERO

logger = logging.getLogger(__name__)


def _add(accumulator: Dict[str, Decimal], user_id: str, amount: Decimal) -> None:
    accumulator[user_id] = accumulator.get(user_id, ZERO) + amount


def _active(expenses: Iterable[Expense]) -> List[Expense]:
    return [expense for expense in expenses if expense.active]


def _completed(settlements: Iterable[Settlement]) -> List[Settlement]:
    return [s for s in settlements if s.status == SettlementStatus.COMPLETED]


class BalanceAggregator:
    @staticmethod
    def compute_group_balances(expenses: Iterable[Expense],
                               settlements: Iterable[Settlement] = ()) -> Dict[str, Decimal]:
        """
        Net balance for each user in a group.

        Positive means the user is owed money, negative means the user owes.
        The payer is credited the gross amount and every share, the payer's
        own included, is debited from its user. A completed settlement raises
        the payer's balance and lowers the payee's. Users at exactly zero are
        dropped from the result.
        """
        balances: Dict[str, Decimal] = {}

        for expense in _active(expenses):
            _add(balances, expense.payer_id, expense.amount)
            for share in expense.shares:
                _add(balances, share.user_id, -share.amount)

        for settlement in _completed(settlements):
            _add(balances, settlement.payer_id, settlement.amount)
            _add(balances, settlement.payee_id, -settlement.amount)

        balances = {user_id: value for user_id, value in balances.items() if value != ZERO}
        logger.info(f"Calculated balances for {len(balances)} users")
        return balances

    @staticmethod
    def compute_pairwise_balances(user_id: str, expenses: Iterable[Expense],
                                  settlements: Iterable[Settlement] = ()) -> Dict[str, Decimal]:
        """
        Directed balances between `user_id` and each counterparty.
        Positive value: that counterparty owes the user. Negative: the user owes them.
        """
        balances: Dict[str, Decimal] = {}

        for expense in _active(expenses):
            if expense.payer_id == user_id:
                for share in expense.shares:
                    if share.user_id != user_id:
                        _add(balances, share.user_id, share.amount)
            else:
                for share in expense.shares:
                    if share.user_id == user_id:
                        _add(balances, expense.payer_id, -share.amount)

        for settlement in _completed(settlements):
            if settlement.payer_id == user_id:
                _add(balances, settlement.payee_id, settlement.amount)
            elif settlement.payee_id == user_id:
                _add(balances, settlement.payer_id, -settlement.amount)

        return {other: value for other, value in balances.items() if value != ZERO}

    @staticmethod
    def compute_user_balance(user_id: str, expenses: Iterable[Expense],
                             settlements: Iterable[Settlement] = ()) -> UserBalance:
        """Per-user totals: what the user owes, what is owed to them, and the net"""
        expenses = list(expenses)
        settlements = list(settlements)

        total_owed = ZERO
        total_owed_to_user = ZERO

        for expense in _active(expenses):
            if expense.payer_id == user_id:
                total_owed_to_user += sum(
                    (s.amount for s in expense.shares if s.user_id != user_id and not s.settled),
                    ZERO,
                )
            else:
                total_owed += sum(
                    (s.amount for s in expense.shares if s.user_id == user_id and not s.settled),
                    ZERO,
                )

        # Payments already made reduce the payer's debt and the payee's claim
        for settlement in _completed(settlements):
            if settlement.payer_id == user_id:
                total_owed -= settlement.amount
            elif settlement.payee_id == user_id:
                total_owed_to_user -= settlement.amount

        net_balance = total_owed_to_user - total_owed
        logger.debug(f"Balance for user {user_id} - OwedToUser: {total_owed_to_user}, "
                     f"Owed: {total_owed}, Net: {net_balance}")

        return UserBalance(
            user_id=user_id,
            total_owed=total_owed,
            total_owed_to_user=total_owed_to_user,
            net_balance=net_balance,
            balances=BalanceAggregator.compute_pairwise_balances(user_id, expenses, settlements),
        )
