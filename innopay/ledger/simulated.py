import asyncio
import hashlib
import random
import uuid
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from innopay.errors import LedgerError
from innopay.ledger.base import BaseLedgerClient, EURO_TOKEN, USD_ASSET, quantize


class SimulatedLedgerClient(BaseLedgerClient):
    """
    In-memory token ledger.
    Balances: per (account, asset), quantized to the asset's on-chain precision
    Latency: 10-200ms by default
    Error rate: configurable, 0 by default
    Rejects transfers the sender cannot cover with "insufficient balance".
    """

    def __init__(
        self,
        balances: Optional[Dict[Tuple[str, str], Decimal]] = None,
        latency: Tuple[float, float] = (0.01, 0.2),
        error_rate: float = 0.0,
    ):
        self.balances: Dict[Tuple[str, str], Decimal] = {}
        for (account, asset), amount in (balances or {}).items():
            self.balances[(account, asset)] = quantize(asset, amount)
        self.latency = latency
        self.error_rate = error_rate
        self.history: List[dict] = []

    def balance(self, account: str, asset: str) -> Decimal:
        return self.balances.get((account, asset), Decimal(0))

    def credit(self, account: str, asset: str, amount) -> None:
        self.balances[(account, asset)] = self.balance(account, asset) + quantize(asset, amount)

    async def _transfer(self, asset: str, from_account: str, to_account: str, amount, memo: str) -> str:
        low, high = self.latency
        if high > 0:
            await asyncio.sleep(random.uniform(low, high))

        if self.error_rate and random.random() < self.error_rate:
            raise LedgerError(f"{asset} transfer: node unavailable")

        qty = quantize(asset, amount)
        if qty <= 0:
            raise LedgerError(f"{asset} transfer: amount must be positive, got {qty}")

        available = self.balance(from_account, asset)
        if available < qty:
            raise LedgerError(
                f"insufficient balance: {from_account} has {available} {asset}, needs {qty}"
            )

        self.balances[(from_account, asset)] = available - qty
        self.credit(to_account, asset, qty)

        tx_id = hashlib.sha1(
            f"{asset}:{from_account}:{to_account}:{qty}:{uuid.uuid4().hex}".encode()
        ).hexdigest()
        self.history.append({
            "tx_id": tx_id,
            "asset": asset,
            "from": from_account,
            "to": to_account,
            "amount": qty,
            "memo": memo,
        })
        return tx_id

    async def transfer_stable_euro_token(self, from_account, to_account, amount, memo) -> str:
        return await self._transfer(EURO_TOKEN, from_account, to_account, amount, memo)

    async def transfer_stable_usd_asset(self, from_account, to_account, amount, memo) -> str:
        return await self._transfer(USD_ASSET, from_account, to_account, amount, memo)
