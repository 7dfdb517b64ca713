"""
Debt reconciliation pass.

Walks every eligible debt (unpaid or recovery_ongoing, oldest first) and
tries to pay it with a single ledger transfer from the debtor (the hub when
none is set) to the creditor, in the asset the debt is denominated in.
A debt whose transfer fails keeps its status and is retried on the next pass.
Scheduling is up to the caller (an HTTP trigger or a cron job).
"""
import logging
from decimal import Decimal
from typing import List

from innopay import models
from innopay.config import settings
from innopay.ledger.base import EURO_TOKEN, USD_ASSET

logger = logging.getLogger(__name__)


class FailedRepayment:
    def __init__(self, debt_id: str, error: str):
        self.debt_id = debt_id
        self.error = error


class ReconciliationSummary:
    def __init__(self):
        self.attempted = 0
        self.paid = 0
        self.still_pending = 0
        self.failures: List[FailedRepayment] = []

    def as_dict(self):
        return {
            "attempted": self.attempted,
            "paid": self.paid,
            "still_pending": self.still_pending,
        }


def debt_asset(debt: models.OutstandingDebt):
    """Return (asset, amount) for a single-asset debt."""
    euro = Decimal(str(debt.amount_euro or 0))
    usd = Decimal(str(debt.amount_usd_asset or 0))
    if usd > 0 and euro > 0:
        raise ValueError(f"Debt {debt.id} mixes EURO and HBD, settle it manually")
    if usd > 0:
        return USD_ASSET, usd
    if euro > 0:
        return EURO_TOKEN, euro
    raise ValueError(f"Debt {debt.id} has no positive amount")


class ReconciliationWorker:
    def __init__(self, ledger, debts, hub_account: str = settings.hub_account):
        self.ledger = ledger
        self.debts = debts
        self.hub_account = hub_account

    def list_eligible_debts(self) -> List[models.OutstandingDebt]:
        return self.debts.list_eligible()

    async def _repay(self, debt_id: str, debt: models.OutstandingDebt) -> str:
        asset, amount = debt_asset(debt)
        payer = debt.debtor or self.hub_account
        memo = f"Debt repayment {debt_id} ({debt.reason})"
        logger.info(
            "[RECONCILE] Repaying %s: %s %s from %s to %s",
            debt_id, amount, asset, payer, debt.creditor,
        )
        return await self.ledger.transfer(asset, payer, debt.creditor, amount, memo)

    async def run_reconciliation_pass(self) -> ReconciliationSummary:
        """
        Attempt one repayment per eligible debt.

        Per-debt errors are isolated: they are logged, collected in
        summary.failures and leave the debt eligible for the next pass.
        """
        summary = ReconciliationSummary()
        debts = self.list_eligible_debts()
        # Commits and rollbacks expire the loaded rows, ids must not need a reload
        debt_ids = [debt.id for debt in debts]
        for debt_id, debt in zip(debt_ids, debts):
            summary.attempted += 1
            try:
                tx_id = await self._repay(debt_id, debt)
            except Exception as e:
                logger.warning("[RECONCILE] Repayment of %s failed: %s", debt_id, e)
                summary.failures.append(FailedRepayment(debt_id, str(e)))
                summary.still_pending += 1
                continue

            try:
                self.debts.mark_paid([debt_id], tx_id)
            except Exception as e:
                # The creditor has the funds but the debt still reads as open
                logger.exception(
                    "[RECONCILE] %s repaid by %s but could not be marked paid", debt_id, tx_id
                )
                summary.failures.append(FailedRepayment(
                    debt_id, f"repaid by {tx_id} but not marked paid: {e}"
                ))
                summary.still_pending += 1
                continue

            summary.paid += 1

        logger.info(
            "[RECONCILE] Pass complete: attempted=%d paid=%d still_pending=%d",
            summary.attempted, summary.paid, summary.still_pending,
        )
        return summary
