import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from innopay.config import settings
from innopay.database import get_db
from innopay.dependencies import get_ledger_client
from innopay.errors import DebtNotFound, DebtStoreError, InvalidTransition
from innopay.schemas.requests import DebtStatusUpdateRequest, MarkPaidRequest
from innopay.schemas.responses import (
    DebtListResponse,
    DebtResponse,
    FailedRepaymentEntry,
    ReconciliationResponse,
    UpdatedResponse,
)
from innopay.services.debts import DebtLedger
from innopay.services.reconciliation import ReconciliationWorker

router = APIRouter()


def require_api_key(authorization: Optional[str] = Header(None)):
    """Bearer auth for the debt endpoints. With no key configured, every call is refused."""
    key = settings.debt_api_key
    if not key or not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not hmac.compare_digest(authorization.encode(), f"Bearer {key}".encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("", response_model=DebtListResponse, dependencies=[Depends(require_api_key)])
def list_outstanding_debts(db: Session = Depends(get_db)):
    """Debts eligible for automated repayment (unpaid or recovery_ongoing), oldest first."""
    try:
        debts = DebtLedger(db).list_eligible()
    except DebtStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return DebtListResponse(debts=[DebtResponse.model_validate(d) for d in debts])


@router.post("/update-status", response_model=UpdatedResponse, dependencies=[Depends(require_api_key)])
def update_status(request: DebtStatusUpdateRequest, db: Session = Depends(get_db)):
    """
    Move a batch of debts to a new status.

    The batch is all-or-nothing: one debt that cannot make the transition
    rejects the whole request with 409 and leaves every debt unchanged.
    """
    try:
        updated = DebtLedger(db).update_status(request.debt_ids, request.status)
    except DebtNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DebtStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return UpdatedResponse(updated=updated)


@router.post("/mark-paid", response_model=UpdatedResponse, dependencies=[Depends(require_api_key)])
def mark_paid(request: MarkPaidRequest, db: Session = Depends(get_db)):
    """Record the transfer that settled a batch of debts. Already-paid debts are skipped."""
    try:
        updated = DebtLedger(db).mark_paid(request.debt_ids, request.payment_tx_ref)
    except DebtNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DebtStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return UpdatedResponse(updated=updated)


@router.post("/reconcile", response_model=ReconciliationResponse, dependencies=[Depends(require_api_key)])
async def reconcile(db: Session = Depends(get_db), ledger=Depends(get_ledger_client)):
    """Run one reconciliation pass over all eligible debts."""
    worker = ReconciliationWorker(ledger, DebtLedger(db))
    try:
        summary = await worker.run_reconciliation_pass()
    except DebtStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return ReconciliationResponse(
        **summary.as_dict(),
        failed_debts=[
            FailedRepaymentEntry(debt_id=f.debt_id, error=f.error) for f in summary.failures
        ],
    )
