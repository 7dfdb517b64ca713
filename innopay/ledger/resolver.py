"""
Logical -> physical account mapping applied at the ledger boundary.

Outside production, selected storefront accounts are swapped for their test
counterparts so that staging payments never reach a live restaurant. The
mapping is fixed when the process starts.
"""
from decimal import Decimal
from typing import Dict, Optional

from innopay.config import Settings
from innopay.errors import LedgerError
from innopay.ledger.base import BaseLedgerClient


class AccountResolver:
    def __init__(self, overrides: Optional[Dict[str, str]] = None):
        self._overrides = dict(overrides or {})

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccountResolver":
        if settings.is_production:
            return cls()
        return cls(settings.test_recipient_map)

    def resolve(self, logical_account: str) -> str:
        return self._overrides.get(logical_account, logical_account)


class ResolvingLedgerClient(BaseLedgerClient):
    """
    Wraps a ledger client so callers only ever deal with logical accounts.

    Anything the wrapped client raises that is not already a LedgerError is
    re-raised as one, keeping the settlement code's failure handling to a
    single exception type.
    """

    def __init__(self, inner: BaseLedgerClient, resolver: AccountResolver):
        self.inner = inner
        self.resolver = resolver

    async def transfer_stable_euro_token(self, from_account, to_account, amount: Decimal, memo: str) -> str:
        src, dst = self.resolver.resolve(from_account), self.resolver.resolve(to_account)
        try:
            return await self.inner.transfer_stable_euro_token(src, dst, amount, memo)
        except LedgerError:
            raise
        except Exception as e:
            raise LedgerError(f"EURO transfer {src} -> {dst} failed: {e}", cause=e) from e

    async def transfer_stable_usd_asset(self, from_account, to_account, amount: Decimal, memo: str) -> str:
        src, dst = self.resolver.resolve(from_account), self.resolver.resolve(to_account)
        try:
            return await self.inner.transfer_stable_usd_asset(src, dst, amount, memo)
        except LedgerError:
            raise
        except Exception as e:
            raise LedgerError(f"HBD transfer {src} -> {dst} failed: {e}", cause=e) from e
