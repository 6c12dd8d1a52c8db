from typing import Dict, List, Any, Optional, Mapping
from decimal import Decimal, InvalidOperation
import logging

from exceptions import InvalidSplitError
from models import Share, SplitStrategy, HUNDRED, ZERO, to_decimal, quantize_money

logger = logging.getLogger(__name__)


def _entries(values, label: str) -> List[tuple]:
    """Read a user_id -> number mapping, rejecting anything that is not one"""
    if not isinstance(values, Mapping):
        raise InvalidSplitError(f"{label} must be a mapping of user ID to value")
    entries = []
    for user_id, value in values.items():
        try:
            entries.append((user_id, to_decimal(value)))
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidSplitError(f"Invalid {label.lower()} value for user {user_id}: {value!r}")
        if not entries[-1][1].is_finite():
            raise InvalidSplitError(f"Invalid {label.lower()} value for user {user_id}: {value!r}")
    return entries


class SplitCalculator:
    @staticmethod
    def compute_shares(amount, payer_id: str, strategy, params: Dict[str, Any],
                       expense_id: Optional[str] = None) -> List[Share]:
        """
        Turn one expense into per-participant shares.

        `params` carries `participants` for EQUAL, `exact_amounts` for EXACT
        and `percentages` for PERCENTAGE. The returned shares always sum to
        `amount` exactly; the last participant absorbs any rounding remainder,
        so participant order matters.
        """
        try:
            amount = to_decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidSplitError(f"Invalid expense amount: {amount!r}")
        try:
            strategy = SplitStrategy(strategy)
        except ValueError:
            raise InvalidSplitError(f"Unknown split strategy: {strategy}")

        logger.info(f"Calculating {strategy.value} split for amount {amount}")
        params = params or {}

        if strategy == SplitStrategy.EQUAL:
            shares = SplitCalculator._equal_split(amount, payer_id, params.get("participants"))
        elif strategy == SplitStrategy.EXACT:
            shares = SplitCalculator._exact_split(amount, payer_id, params.get("exact_amounts"))
        else:
            shares = SplitCalculator._percentage_split(amount, payer_id, params.get("percentages"))

        if expense_id is not None:
            for share in shares:
                share.expense_id = expense_id
        return shares

    @staticmethod
    def _equal_split(amount: Decimal, payer_id: str, participants) -> List[Share]:
        if not participants:
            raise InvalidSplitError("Participant IDs are required for equal split")
        if isinstance(participants, (str, Mapping)):
            raise InvalidSplitError("Participant IDs must be an ordered list for equal split")
        if len(set(participants)) != len(participants):
            raise InvalidSplitError("Participant IDs must be unique for equal split")

        count = len(participants)
        per_person = quantize_money(amount / count)
        logger.debug(f"Equal split: {count} participants, {per_person} per person")

        shares = []
        allocated = ZERO
        for index, user_id in enumerate(participants):
            if index == count - 1:
                share_amount = amount - allocated
            else:
                share_amount = per_person
                allocated += share_amount
            shares.append(Share(user_id=user_id, amount=share_amount,
                                settled=user_id == payer_id))
        return shares

    @staticmethod
    def _exact_split(amount: Decimal, payer_id: str, exact_amounts) -> List[Share]:
        if not exact_amounts:
            raise InvalidSplitError("Exact amounts are required for exact split")

        values = dict(_entries(exact_amounts, "Exact amounts"))
        total = sum(values.values(), ZERO)
        if total != amount:
            raise InvalidSplitError(
                f"Sum of exact amounts ({total}) must equal total amount ({amount})",
                actual=total, expected=amount,
            )

        logger.debug(f"Exact split created for {len(values)} participants")
        return [
            Share(user_id=user_id, amount=value, settled=user_id == payer_id)
            for user_id, value in values.items()
        ]

    @staticmethod
    def _percentage_split(amount: Decimal, payer_id: str, percentages) -> List[Share]:
        if not percentages:
            raise InvalidSplitError("Percentages are required for percentage split")

        entries = _entries(percentages, "Percentages")
        total_pct = sum((pct for _, pct in entries), ZERO)
        if total_pct != HUNDRED:
            raise InvalidSplitError(
                f"Sum of percentages ({total_pct}) must equal 100",
                actual=total_pct, expected=HUNDRED,
            )

        shares = []
        allocated = ZERO
        last = len(entries) - 1
        for index, (user_id, pct) in enumerate(entries):
            if index == last:
                share_amount = amount - allocated
            else:
                share_amount = quantize_money(amount * pct / HUNDRED)
                allocated += share_amount
            shares.append(Share(user_id=user_id, amount=share_amount, percentage=pct,
                                settled=user_id == payer_id))

        logger.debug(f"Percentage split created for {len(shares)} participants")
        return shares

    @staticmethod
    def validate_shares(shares: List[Share]) -> None:
        """Every share must be strictly positive"""
        for share in shares:
            if share.amount <= ZERO:
                raise InvalidSplitError(
                    f"Split amount must be greater than zero for user: {share.user_id}",
                    actual=share.amount, expected=None,
                )
