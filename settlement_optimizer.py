from typing import Dict, List, Iterable, Optional, Tuple
from decimal import Decimal
import logging

from balance_aggregator import BalanceAggregator
from exceptions import InconsistentLedgerError
from models import (
    Expense,
    Settlement,
    SettlementPlan,
    SettlementSuggestion,
    ZERO,
    quantize_money,
    to_decimal,
)

logger = logging.getLogger(__name__)

SETTLED_MESSAGE = "All settled up!"


class SettlementOptimizer:
    @staticmethod
    def minimize_transactions(balances: Dict[str, Decimal],
                              currency: str = "USD") -> List[SettlementSuggestion]:
        """
        Greedy debt simplification.

        Largest creditor is matched with largest debtor, ties broken by user id,
        so the output is deterministic for a given balance map. Produces at most
        n - 1 payments for n non-zero balances.
        """
        creditors = []
        debtors = []

        for user_id, balance in balances.items():
            balance = to_decimal(balance)
            if balance > ZERO:
                creditors.append([user_id, balance])
            elif balance < ZERO:
                debtors.append([user_id, -balance])

        creditors.sort(key=lambda x: (-x[1], x[0]))
        debtors.sort(key=lambda x: (-x[1], x[0]))

        suggestions = []
        i = j = 0
        while i < len(creditors) and j < len(debtors):
            creditor, cred_amt = creditors[i]
            debtor, deb_amt = debtors[j]

            settlement_amt = min(cred_amt, deb_amt)
            rounded = quantize_money(settlement_amt)
            # sub-cent transfers are not payable
            if rounded > ZERO:
                suggestions.append(SettlementSuggestion(
                    payer_id=debtor,
                    payee_id=creditor,
                    amount=rounded,
                    currency=currency,
                ))

            creditors[i][1] = cred_amt - settlement_amt
            debtors[j][1] = deb_amt - settlement_amt

            if creditors[i][1] == ZERO:
                i += 1
            if debtors[j][1] == ZERO:
                j += 1

        if i < len(creditors) or j < len(debtors):
            creditor_total = sum((amt for _, amt in creditors[i:]), ZERO)
            debtor_total = sum((amt for _, amt in debtors[j:]), ZERO)
            logger.error(f"Balances do not net to zero: {creditor_total} still owed to creditors, "
                         f"{debtor_total} still owed by debtors")
            raise InconsistentLedgerError(
                f"Balances do not sum to zero (unmatched credit {creditor_total}, "
                f"unmatched debt {debtor_total})",
                creditor_total=creditor_total,
                debtor_total=debtor_total,
            )

        logger.info(f"Generated {len(suggestions)} settlement suggestions for {len(balances)} balances")
        return suggestions

    @staticmethod
    def simplify(balances: Dict[str, Decimal], group_id: Optional[str] = None,
                 currency: str = "USD") -> SettlementPlan:
        """Suggested payments plus a summary of the plan"""
        suggestions = SettlementOptimizer.minimize_transactions(balances, currency)
        total = sum((s.amount for s in suggestions), ZERO)

        if suggestions:
            message = f"{len(suggestions)} payment(s) totalling {total} {currency} settle the group"
        else:
            message = SETTLED_MESSAGE

        return SettlementPlan(
            group_id=group_id,
            currency=currency,
            suggestions=suggestions,
            transaction_count=len(suggestions),
            total_amount=total,
            is_settled=not suggestions,
            message=message,
        )

    @staticmethod
    def optimize_settlements(expenses: Iterable[Expense], settlements: Iterable[Settlement] = (),
                             group_id: Optional[str] = None,
                             currency: str = "USD") -> Tuple[Dict[str, Decimal], SettlementPlan]:
        """Main method to calculate optimal settlements"""
        balances = BalanceAggregator.compute_group_balances(expenses, settlements)
        plan = SettlementOptimizer.simplify(balances, group_id=group_id, currency=currency)
        return balances, plan
