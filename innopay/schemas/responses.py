from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal


class SettlementResponse(BaseModel):
    customer_euro_tx_id: Optional[str] = None
    customer_usd_asset_tx_id: Optional[str] = None
    restaurant_usd_asset_tx_id: Optional[str] = None
    restaurant_euro_tx_id: Optional[str] = None
    eur_usd_rate: Decimal
    rate_is_fresh: bool = False

    model_config = ConfigDict(from_attributes=True)


class TopupResponse(BaseModel):
    euro_tx_id: str
    usd_asset_tx_id: Optional[str] = None
    eur_usd_rate: Decimal

    model_config = ConfigDict(from_attributes=True)


class RateResponse(BaseModel):
    as_of_date: date
    conversion_rate: Decimal
    is_fresh: bool


class DebtResponse(BaseModel):
    id: str
    creditor: str
    debtor: Optional[str] = None  # None: owed by the hub
    amount_euro: Decimal
    amount_usd_asset: Decimal
    eur_usd_rate: Optional[Decimal] = None
    reason: str
    notes: Optional[str] = None
    euro_tx_id: Optional[str] = None
    status: str
    created_at: datetime
    paid_at: Optional[datetime] = None
    payment_tx_ref: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DebtListResponse(BaseModel):
    debts: List[DebtResponse]


class UpdatedResponse(BaseModel):
    updated: int


class FailedRepaymentEntry(BaseModel):
    debt_id: str
    error: str


class ReconciliationResponse(BaseModel):
    attempted: int
    paid: int
    still_pending: int
    failed_debts: List[FailedRepaymentEntry] = []
