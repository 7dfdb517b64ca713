"""
Order settlement service.

Moves an order payment customer -> hub -> restaurant:
1. Validate the request (no side effects on failure)
2. Customer -> hub in EURO tokens (optional, debt on failure)
3. Fetch the EUR/USD rate, once
4. Hub -> restaurant in HBD, falling back to EURO tokens (debt on HBD failure,
   SettlementFailed if the fallback fails too)
5. Customer -> hub in HBD (optional, debt on failure)
6. Return every transaction id obtained plus the rate used

Ledger transfers are irreversible, so nothing here is rolled back. A leg that
fails leaves a debt record behind instead; the reconciliation pass picks those
up later. Retrying a call repeats every transfer: callers that need
at-most-once payment must deduplicate before calling.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from innopay.config import settings
from innopay.errors import LedgerError, SettlementFailed, ValidationError
from innopay.ledger.base import USD_ASSET, quantize
from innopay.services.debts import DebtEntry
from innopay.services.rates import convert_eur_to_usd_asset

logger = logging.getLogger(__name__)

CUSTOMER_PAYMENT_MEMO = "Paiement au restaurant / Payment to restaurant"
# euro_tx_id of a restaurant debt when the customer paid nothing on-chain
DIRECT_PAYMENT = "DIRECT_PAYMENT"


@dataclass
class PaymentRequest:
    customer_account: str
    restaurant_account: str
    order_amount_euro: Decimal
    order_memo: str
    transfer_from_customer: bool = False
    reason: str = "order_payment"


class SettlementResult:
    def __init__(self, eur_usd_rate: Optional[Decimal] = None):
        self.customer_euro_tx_id: Optional[str] = None
        self.customer_usd_asset_tx_id: Optional[str] = None
        self.restaurant_usd_asset_tx_id: Optional[str] = None
        self.restaurant_euro_tx_id: Optional[str] = None
        self.eur_usd_rate = eur_usd_rate
        self.rate_is_fresh = False


class TopupResult:
    def __init__(self, euro_tx_id: str, usd_asset_tx_id: Optional[str], eur_usd_rate: Decimal):
        self.euro_tx_id = euro_tx_id
        self.usd_asset_tx_id = usd_asset_tx_id
        self.eur_usd_rate = eur_usd_rate


def _positive_amount(value, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be greater than 0, got {value!r}")
    return amount


def _shortage_note(reason: str, error: Exception) -> str:
    return f"HBD shortage at {datetime.now(timezone.utc).isoformat()} - {reason}: {error}"


class SettlementEngine:
    def __init__(self, ledger, rates, debts, hub_account: str = settings.hub_account):
        self.ledger = ledger
        self.rates = rates
        self.debts = debts
        self.hub_account = hub_account

    def _record_debt(self, entry: DebtEntry) -> Optional[str]:
        """
        Write a debt record, never raising. A failed write leaves a liability
        nobody is tracking, which is logged loudly but does not change the
        outcome of the settlement.
        """
        try:
            return self.debts.record(entry)
        except Exception:
            logger.exception(
                "[PAYMENT] UNTRACKED LIABILITY: failed to record debt "
                "(creditor=%s debtor=%s euro=%s hbd=%s reason=%s)",
                entry.creditor, entry.debtor or self.hub_account,
                entry.amount_euro, entry.amount_usd_asset, entry.reason,
            )
            return None

    def validate(self, request: PaymentRequest) -> Decimal:
        amount = _positive_amount(request.order_amount_euro, "order_amount_euro")
        if not request.order_memo or not request.order_memo.strip():
            raise ValidationError(
                "order_memo is required: the restaurant cannot match a payment without it"
            )
        if not request.customer_account and request.transfer_from_customer:
            raise ValidationError("customer_account is required to collect from the customer")
        if not request.restaurant_account:
            raise ValidationError("restaurant_account is required")
        return amount

    async def settle_order_payment(self, request: PaymentRequest) -> SettlementResult:
        """
        Pay the restaurant for one order.

        Raises:
            ValidationError: bad request, nothing was transferred
            SettlementFailed: neither HBD nor EURO reached the restaurant
        """
        amount = self.validate(request)
        hub = self.hub_account
        customer = request.customer_account
        restaurant = request.restaurant_account
        reason = request.reason
        result = SettlementResult()

        logger.info(
            "[PAYMENT] Settling order: customer=%s restaurant=%s amount=%s EUR "
            "from_customer=%s memo_length=%d reason=%s",
            customer, restaurant, amount, request.transfer_from_customer,
            len(request.order_memo), reason,
        )

        # Step 2: customer EURO -> hub
        if request.transfer_from_customer:
            try:
                result.customer_euro_tx_id = await self.ledger.transfer_stable_euro_token(
                    customer, hub, amount, CUSTOMER_PAYMENT_MEMO
                )
                logger.info("[PAYMENT] Customer EURO transferred to %s: %s", hub, result.customer_euro_tx_id)
            except LedgerError as e:
                logger.warning("[PAYMENT] Customer EURO transfer failed, hub advances funds: %s", e)
                # No rate has been fetched yet: the rate stays null rather than implying parity
                self._record_debt(DebtEntry(
                    creditor=hub,
                    debtor=customer,
                    amount_euro=amount,
                    reason=reason,
                    notes=f"Customer EURO transfer failed: {e}",
                ))

        # Step 3: one rate for the whole call
        rate = await self.rates.get_eur_usd_rate(datetime.now(timezone.utc).date())
        eur_usd_rate = Decimal(str(rate.eur_per_usd))
        result.eur_usd_rate = eur_usd_rate
        result.rate_is_fresh = bool(rate.is_fresh)
        usd_asset_amount = quantize(USD_ASSET, convert_eur_to_usd_asset(amount, eur_usd_rate))
        if not rate.is_fresh:
            logger.info("[PAYMENT] Using non-fresh EUR/USD rate %s", eur_usd_rate)

        logger.info(
            "[PAYMENT] Paying restaurant %s (EUR: %s, HBD: %s, rate: %s)",
            restaurant, amount, usd_asset_amount, eur_usd_rate,
        )

        # Step 4: hub -> restaurant, HBD first
        try:
            result.restaurant_usd_asset_tx_id = await self.ledger.transfer_stable_usd_asset(
                hub, restaurant, usd_asset_amount, request.order_memo
            )
            logger.info("[PAYMENT] HBD transferred to restaurant: %s", result.restaurant_usd_asset_tx_id)
        except LedgerError as hbd_error:
            logger.warning("[PAYMENT] HBD transfer failed, using EURO token fallback: %s", hbd_error)
            self._record_debt(DebtEntry(
                creditor=restaurant,
                amount_usd_asset=usd_asset_amount,
                eur_usd_rate=eur_usd_rate,
                reason=reason,
                notes=_shortage_note(reason, hbd_error),
                euro_tx_id=result.customer_euro_tx_id or DIRECT_PAYMENT,
            ))
            try:
                result.restaurant_euro_tx_id = await self.ledger.transfer_stable_euro_token(
                    hub, restaurant, amount, request.order_memo
                )
            except LedgerError as euro_error:
                logger.error(
                    "[PAYMENT] Restaurant %s could not be paid in HBD nor EURO: %s",
                    restaurant, euro_error,
                )
                raise SettlementFailed(
                    f"Restaurant {restaurant} could not be paid: "
                    f"HBD failed ({hbd_error}), EURO failed ({euro_error})"
                ) from euro_error
            logger.info("[PAYMENT] EURO tokens transferred to restaurant: %s", result.restaurant_euro_tx_id)

        # Step 5: customer HBD -> hub, bookkeeping only
        if request.transfer_from_customer:
            try:
                result.customer_usd_asset_tx_id = await self.ledger.transfer_stable_usd_asset(
                    customer, hub, usd_asset_amount, CUSTOMER_PAYMENT_MEMO
                )
                logger.info("[PAYMENT] Customer HBD transferred to %s: %s", hub, result.customer_usd_asset_tx_id)
            except LedgerError as e:
                logger.warning("[PAYMENT] Customer HBD collection failed: %s", e)
                self._record_debt(DebtEntry(
                    creditor=hub,
                    debtor=customer,
                    amount_usd_asset=usd_asset_amount,
                    eur_usd_rate=eur_usd_rate,
                    reason=reason,
                    notes=f"Customer HBD collection failed: {e}",
                    euro_tx_id=result.customer_euro_tx_id,
                ))

        logger.info("[PAYMENT] Order payment complete")
        return result

    async def transfer_topup_to_customer(
        self, customer_account: str, amount_euro, memo: str, reason: str = "topup"
    ) -> TopupResult:
        """
        Credit a customer after a top-up: EURO tokens, then the HBD equivalent.

        The EURO leg is mandatory (SettlementFailed if it fails); a failed HBD
        leg becomes a debt from the hub to the customer.
        """
        amount = _positive_amount(amount_euro, "amount_euro")
        if not customer_account:
            raise ValidationError("customer_account is required")
        hub = self.hub_account

        logger.info("[TOPUP] Transferring %s EUR to %s", amount, customer_account)
        try:
            euro_tx_id = await self.ledger.transfer_stable_euro_token(hub, customer_account, amount, memo)
        except LedgerError as e:
            logger.error("[TOPUP] EURO transfer to %s failed: %s", customer_account, e)
            raise SettlementFailed(f"Top-up to {customer_account} failed: {e}") from e
        logger.info("[TOPUP] EURO transferred: %s", euro_tx_id)

        rate = await self.rates.get_eur_usd_rate(datetime.now(timezone.utc).date())
        eur_usd_rate = Decimal(str(rate.eur_per_usd))
        usd_asset_amount = quantize(USD_ASSET, convert_eur_to_usd_asset(amount, eur_usd_rate))

        usd_asset_tx_id = None
        try:
            usd_asset_tx_id = await self.ledger.transfer_stable_usd_asset(
                hub, customer_account, usd_asset_amount, memo
            )
            logger.info("[TOPUP] HBD transferred: %s", usd_asset_tx_id)
        except LedgerError as e:
            logger.warning("[TOPUP] HBD transfer failed, recording debt: %s", e)
            self._record_debt(DebtEntry(
                creditor=customer_account,
                amount_usd_asset=usd_asset_amount,
                eur_usd_rate=eur_usd_rate,
                reason=reason,
                notes=_shortage_note(reason, e),
                euro_tx_id=euro_tx_id,
            ))

        return TopupResult(euro_tx_id, usd_asset_tx_id, eur_usd_rate)
