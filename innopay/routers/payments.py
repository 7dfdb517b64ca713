from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from innopay.database import get_db
from innopay.dependencies import get_ledger_client, get_rate_provider
from innopay.errors import SettlementFailed, ValidationError
from innopay.schemas.requests import OrderPaymentRequest, TopupRequest
from innopay.schemas.responses import SettlementResponse, TopupResponse
from innopay.services.debts import DebtLedger
from innopay.services.settlement import PaymentRequest, SettlementEngine

router = APIRouter()


def get_engine(
    db: Session = Depends(get_db),
    ledger=Depends(get_ledger_client),
    rates=Depends(get_rate_provider),
) -> SettlementEngine:
    return SettlementEngine(ledger, rates, DebtLedger(db))


@router.post("/order", response_model=SettlementResponse)
async def pay_order(request: OrderPaymentRequest, engine: SettlementEngine = Depends(get_engine)):
    """
    Settle one restaurant order through the hub.

    - Optionally collects EURO (and then HBD) from the customer
    - Pays the restaurant in HBD, or EURO tokens when the hub is short of HBD
    - Failed legs are recorded as outstanding debts, not returned as errors

    Only a restaurant left unpaid in both assets fails the request (502).
    """
    try:
        result = await engine.settle_order_payment(PaymentRequest(
            customer_account=request.customer_account,
            restaurant_account=request.restaurant_account,
            order_amount_euro=request.order_amount_euro,
            order_memo=request.order_memo,
            transfer_from_customer=request.transfer_from_customer,
            reason=request.reason,
        ))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SettlementFailed as e:
        raise HTTPException(status_code=502, detail=f"Payment processing failed: {str(e)}")

    return SettlementResponse.model_validate(result)


@router.post("/topup", response_model=TopupResponse)
async def topup(request: TopupRequest, engine: SettlementEngine = Depends(get_engine)):
    """Credit a customer's account with EURO tokens plus the HBD equivalent."""
    try:
        result = await engine.transfer_topup_to_customer(
            request.customer_account,
            request.amount_euro,
            request.memo or f"Top-up via Innopay for {request.amount_euro} EUR.",
            reason=request.reason,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SettlementFailed as e:
        raise HTTPException(status_code=502, detail=f"Top-up failed: {str(e)}")

    return TopupResponse.model_validate(result)
