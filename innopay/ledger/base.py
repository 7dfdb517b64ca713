from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP


EURO_TOKEN = "EURO"
USD_ASSET = "HBD"

# On-chain precision per asset
PRECISION = {
    EURO_TOKEN: Decimal("0.01"),
    USD_ASSET: Decimal("0.001"),
}


def quantize(asset: str, amount) -> Decimal:
    return Decimal(str(amount)).quantize(PRECISION[asset], rounding=ROUND_HALF_UP)


class BaseLedgerClient(ABC):
    """Abstract base for token ledger clients."""

    @abstractmethod
    async def transfer_stable_euro_token(
        self, from_account: str, to_account: str, amount: Decimal, memo: str
    ) -> str:
        """
        Move EUR-pegged tokens between two accounts.
        Returns the transaction id, raises LedgerError on any failure.
        """
        pass

    @abstractmethod
    async def transfer_stable_usd_asset(
        self, from_account: str, to_account: str, amount: Decimal, memo: str
    ) -> str:
        """
        Move the USD-pegged chain asset between two accounts.
        Returns the transaction id, raises LedgerError on any failure.
        """
        pass

    async def transfer(
        self, asset: str, from_account: str, to_account: str, amount: Decimal, memo: str
    ) -> str:
        if asset == EURO_TOKEN:
            return await self.transfer_stable_euro_token(from_account, to_account, amount, memo)
        if asset == USD_ASSET:
            return await self.transfer_stable_usd_asset(from_account, to_account, amount, memo)
        raise ValueError(f"Unknown asset: {asset}")
