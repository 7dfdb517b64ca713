from sqlalchemy import Column, String, Numeric, DateTime, Date, Text
from innopay.database import Base
from datetime import datetime, timezone
import uuid


def generate_id():
    return f"debt_{uuid.uuid4().hex[:12]}"


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OutstandingDebt(Base):
    """
    Append-only record of a liability left behind by a failed transfer leg.

    A missing debtor means the hub itself owes the creditor.
    """
    __tablename__ = "outstanding_debt"

    id = Column(String, primary_key=True, default=generate_id)
    creditor = Column(String, nullable=False, index=True)
    debtor = Column(String, nullable=True, index=True)
    amount_euro = Column(Numeric(18, 8), nullable=False, default=0)
    amount_usd_asset = Column(Numeric(18, 8), nullable=False, default=0)
    eur_usd_rate = Column(Numeric(12, 6), nullable=True)  # null: no rate known at creation
    reason = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    # EURO leg that funded the order or top-up, DIRECT_PAYMENT when the hub paid alone
    euro_tx_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="unpaid", index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    paid_at = Column(DateTime, nullable=True)
    payment_tx_ref = Column(String, nullable=True)


class CurrencyConversion(Base):
    __tablename__ = "currency_conversion"

    date = Column(Date, primary_key=True)
    conversion_rate = Column(Numeric(12, 6), nullable=False)
