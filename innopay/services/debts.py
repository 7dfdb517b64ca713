"""
Outstanding-debt store.

Debts are the audit trail of every transfer leg that could not be completed.
Rows are appended by the settlement engine and afterwards only ever change
status, through update_status() or mark_paid(). Both check every requested
row against TRANSITIONS before touching any of them, and the UPDATE only
matches rows still in an allowed source status, so a batch either applies
in full or not at all even when another session moves a row in between.

    unpaid ──> withdrawal_pending ──> paid
       │
       ├──> settled_out_of_band
       │
       └──> recovery_ongoing ──> paid
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from innopay import models
from innopay.errors import DebtNotFound, DebtStoreError, InvalidTransition

logger = logging.getLogger(__name__)

UNPAID = "unpaid"
WITHDRAWAL_PENDING = "withdrawal_pending"
RECOVERY_ONGOING = "recovery_ongoing"
SETTLED_OUT_OF_BAND = "settled_out_of_band"
PAID = "paid"

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    UNPAID: frozenset({WITHDRAWAL_PENDING, SETTLED_OUT_OF_BAND, RECOVERY_ONGOING}),
    RECOVERY_ONGOING: frozenset({PAID}),
    WITHDRAWAL_PENDING: frozenset({PAID}),
    SETTLED_OUT_OF_BAND: frozenset(),
    PAID: frozenset(),
}
STATUSES = frozenset(TRANSITIONS)

# Eligible for automated repayment
ELIGIBLE_STATUSES = (UNPAID, RECOVERY_ONGOING)

# mark_paid also accepts unpaid rows: the creditor was paid by a direct
# transfer that never went through recovery or a withdrawal.
PAYABLE_STATUSES = frozenset({UNPAID, RECOVERY_ONGOING, WITHDRAWAL_PENDING})


@dataclass
class DebtEntry:
    creditor: str
    reason: str
    debtor: Optional[str] = None
    amount_euro: Decimal = Decimal(0)
    amount_usd_asset: Decimal = Decimal(0)
    eur_usd_rate: Optional[Decimal] = None
    notes: Optional[str] = None
    euro_tx_id: Optional[str] = None


class DebtLedger:
    def __init__(self, db: Session):
        self.db = db

    def record(self, entry: DebtEntry) -> str:
        """Append a new unpaid debt. Raises DebtStoreError if the row cannot be written."""
        debt_id = models.generate_id()
        debt = models.OutstandingDebt(
            id=debt_id,
            creditor=entry.creditor,
            debtor=entry.debtor,
            amount_euro=entry.amount_euro,
            amount_usd_asset=entry.amount_usd_asset,
            eur_usd_rate=entry.eur_usd_rate,
            reason=entry.reason,
            notes=entry.notes,
            euro_tx_id=entry.euro_tx_id,
            status=UNPAID,
            created_at=models.utcnow(),
        )
        try:
            self.db.add(debt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DebtStoreError(f"Failed to record debt to {entry.creditor}: {e}") from e

        logger.info(
            "[DEBT] Recorded %s (creditor=%s debtor=%s euro=%s hbd=%s reason=%s)",
            debt_id, entry.creditor, entry.debtor or "<hub>",
            entry.amount_euro, entry.amount_usd_asset, entry.reason,
        )
        return debt_id

    def get(self, debt_id: str) -> Optional[models.OutstandingDebt]:
        return self.db.get(models.OutstandingDebt, debt_id)

    def list_eligible(self) -> List[models.OutstandingDebt]:
        """Debts awaiting repayment, oldest first."""
        try:
            return self.db.query(models.OutstandingDebt).filter(
                models.OutstandingDebt.status.in_(ELIGIBLE_STATUSES)
            ).order_by(
                models.OutstandingDebt.created_at.asc(),
                models.OutstandingDebt.id.asc(),
            ).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DebtStoreError(f"Failed to list eligible debts: {e}") from e

    def _load(self, debt_ids: List[str]) -> List[models.OutstandingDebt]:
        unique_ids = list(dict.fromkeys(debt_ids))
        try:
            rows = self.db.query(models.OutstandingDebt).filter(
                models.OutstandingDebt.id.in_(unique_ids)
            ).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DebtStoreError(f"Failed to load debts: {e}") from e
        found = {row.id for row in rows}
        missing = [i for i in unique_ids if i not in found]
        if missing:
            raise DebtNotFound(missing)
        return rows

    def _apply(self, debt_ids: List[str], sources, values: dict, requested: str, what: str):
        """
        Write values to every listed debt whose status is still in sources.

        If any row has left sources since it was checked, the batch is rolled
        back and InvalidTransition names the rows that moved.
        """
        if not debt_ids:
            return
        try:
            updated = self.db.query(models.OutstandingDebt).filter(
                models.OutstandingDebt.id.in_(debt_ids),
                models.OutstandingDebt.status.in_(list(sources)),
            ).update(values, synchronize_session=False)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DebtStoreError(f"Failed to persist debt {what}: {e}") from e

        if updated != len(debt_ids):
            self.db.rollback()
            moved = [row for row in self._load(debt_ids) if row.status not in sources]
            logger.warning(
                "[DEBT] %s rejected: %d debts changed status concurrently", what, len(moved)
            )
            raise InvalidTransition(
                [row.id for row in moved] or debt_ids,
                moved[0].status if moved else "unknown",
                requested,
            )
        self._commit(what)

    def update_status(self, debt_ids: List[str], new_status: str) -> int:
        """
        Move every listed debt to new_status.

        Raises:
            ValueError: new_status is not a known status
            DebtNotFound: an id does not exist (nothing is changed)
            InvalidTransition: any row cannot make the move (nothing is changed)
        """
        if new_status not in STATUSES:
            raise ValueError(f"Unknown debt status: {new_status}")

        rows = self._load(debt_ids)
        rejected = [row for row in rows if new_status not in TRANSITIONS[row.status]]
        if rejected:
            raise InvalidTransition(
                [row.id for row in rejected], rejected[0].status, new_status
            )

        values = {"status": new_status}
        if new_status == PAID:
            values["paid_at"] = models.utcnow()
        sources = [status for status, targets in TRANSITIONS.items() if new_status in targets]
        self._apply([row.id for row in rows], sources, values, new_status, "status update")

        logger.info(
            "[DEBT] Status updated: %d debts -> %s", len(rows), new_status
        )
        return len(rows)

    def mark_paid(self, debt_ids: List[str], payment_tx_ref: str) -> int:
        """
        Settle debts with the transaction that paid them.

        Already-paid debts are left as they are and not counted. Returns the
        number of debts that moved to paid.
        """
        rows = self._load(debt_ids)
        rejected = [
            row for row in rows
            if row.status != PAID and row.status not in PAYABLE_STATUSES
        ]
        if rejected:
            raise InvalidTransition([row.id for row in rejected], rejected[0].status, PAID)

        to_pay = [row.id for row in rows if row.status != PAID]
        self._apply(
            to_pay,
            PAYABLE_STATUSES,
            {"status": PAID, "paid_at": models.utcnow(), "payment_tx_ref": payment_tx_ref},
            PAID,
            "mark paid",
        )

        logger.info("[DEBT] Marked paid: %d/%d debts (tx=%s)", len(to_pay), len(rows), payment_tx_ref)
        return len(to_pay)

    def _commit(self, what: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DebtStoreError(f"Failed to persist debt {what}: {e}") from e
