from decimal import Decimal
from pydantic import BaseModel, field_validator
from typing import List

from innopay.services.debts import STATUSES

MAX_BATCH = 500


def _check_ids(v: List[str]) -> List[str]:
    if not v:
        raise ValueError("debt_ids cannot be empty")
    if len(v) > MAX_BATCH:
        raise ValueError(f"Maximum {MAX_BATCH} debt IDs per request")
    return v


class OrderPaymentRequest(BaseModel):
    customer_account: str = ""
    restaurant_account: str
    order_amount_euro: Decimal
    order_memo: str = ""
    transfer_from_customer: bool = False
    reason: str = "order_payment"


class TopupRequest(BaseModel):
    customer_account: str
    amount_euro: Decimal
    memo: str = ""
    reason: str = "topup"


class DebtStatusUpdateRequest(BaseModel):
    debt_ids: List[str]
    status: str

    @field_validator("debt_ids")
    @classmethod
    def validate_ids(cls, v):
        return _check_ids(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in STATUSES:
            raise ValueError(f"Invalid status. Allowed: {', '.join(sorted(STATUSES))}")
        return v


class MarkPaidRequest(BaseModel):
    debt_ids: List[str]
    payment_tx_ref: str

    @field_validator("debt_ids")
    @classmethod
    def validate_ids(cls, v):
        return _check_ids(v)

    @field_validator("payment_tx_ref")
    @classmethod
    def validate_tx_ref(cls, v):
        if not v.strip():
            raise ValueError("payment_tx_ref cannot be empty")
        return v
