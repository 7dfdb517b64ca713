"""
Unit tests for the ledger adapters in innopay/ledger/.

Covers: simulated balances and precision, insufficient-balance rejection,
account resolution per environment, error wrapping.
"""
import dataclasses
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock

from innopay.config import load_settings
from innopay.errors import LedgerError
from innopay.ledger.resolver import AccountResolver, ResolvingLedgerClient
from innopay.ledger.simulated import SimulatedLedgerClient


class TestSimulatedLedger:
    async def test_transfer_moves_balance_and_returns_tx_id(self, sim_ledger):
        sim_ledger.credit("innopay", "HBD", 50)
        tx_id = await sim_ledger.transfer_stable_usd_asset("innopay", "cafe", Decimal("21.6"), "table=4")

        assert len(tx_id) == 40
        assert sim_ledger.balance("innopay", "HBD") == Decimal("28.400")
        assert sim_ledger.balance("cafe", "HBD") == Decimal("21.600")
        assert sim_ledger.history[-1]["memo"] == "table=4"

    async def test_amounts_rounded_to_chain_precision(self, sim_ledger):
        sim_ledger.credit("innopay", "EURO", 10)
        sim_ledger.credit("innopay", "HBD", 10)
        await sim_ledger.transfer_stable_euro_token("innopay", "cafe", Decimal("1.005"), "m")
        await sim_ledger.transfer_stable_usd_asset("innopay", "cafe", Decimal("1.0005"), "m")

        assert sim_ledger.balance("cafe", "EURO") == Decimal("1.01")
        assert sim_ledger.balance("cafe", "HBD") == Decimal("1.001")

    async def test_insufficient_balance_raises_and_changes_nothing(self, sim_ledger):
        sim_ledger.credit("alice", "EURO", 5)
        with pytest.raises(LedgerError, match="insufficient balance"):
            await sim_ledger.transfer_stable_euro_token("alice", "innopay", Decimal("20"), "m")

        assert sim_ledger.balance("alice", "EURO") == Decimal("5")
        assert sim_ledger.history == []

    async def test_non_positive_amount_rejected(self, sim_ledger):
        sim_ledger.credit("alice", "EURO", 5)
        with pytest.raises(LedgerError):
            await sim_ledger.transfer_stable_euro_token("alice", "innopay", Decimal("0.001"), "m")

    async def test_assets_are_separate(self, sim_ledger):
        sim_ledger.credit("innopay", "EURO", 100)
        with pytest.raises(LedgerError):
            await sim_ledger.transfer_stable_usd_asset("innopay", "cafe", Decimal("1"), "m")

    async def test_error_rate_simulates_node_failures(self):
        ledger = SimulatedLedgerClient(balances={("innopay", "EURO"): Decimal("10")},
                                       latency=(0, 0), error_rate=1.0)
        with pytest.raises(LedgerError, match="unavailable"):
            await ledger.transfer_stable_euro_token("innopay", "cafe", Decimal("1"), "m")

    async def test_generic_transfer_dispatches_on_asset(self, sim_ledger):
        sim_ledger.credit("innopay", "EURO", 10)
        await sim_ledger.transfer("EURO", "innopay", "cafe", Decimal("2"), "m")
        assert sim_ledger.balance("cafe", "EURO") == Decimal("2")

        with pytest.raises(ValueError, match="Unknown asset"):
            await sim_ledger.transfer("BTC", "innopay", "cafe", Decimal("2"), "m")


class TestAccountResolver:
    def test_maps_only_listed_accounts(self):
        resolver = AccountResolver({"indies.cafe": "indies.test"})
        assert resolver.resolve("indies.cafe") == "indies.test"
        assert resolver.resolve("alice") == "alice"

    def test_production_disables_remapping(self):
        prod = dataclasses.replace(load_settings(), environment="production",
                                   test_recipient_map={"indies.cafe": "indies.test"})
        assert AccountResolver.from_settings(prod).resolve("indies.cafe") == "indies.cafe"

    def test_development_uses_configured_map(self):
        dev = dataclasses.replace(load_settings(), environment="development",
                                  test_recipient_map={"indies.cafe": "indies.test"})
        assert AccountResolver.from_settings(dev).resolve("indies.cafe") == "indies.test"


class TestResolvingLedgerClient:
    async def test_resolves_both_accounts(self):
        inner = AsyncMock()
        inner.transfer_stable_usd_asset = AsyncMock(return_value="tx1")
        client = ResolvingLedgerClient(inner, AccountResolver({"cafe": "cafe.test", "hub": "hub.test"}))

        assert await client.transfer_stable_usd_asset("hub", "cafe", Decimal("1"), "m") == "tx1"
        inner.transfer_stable_usd_asset.assert_awaited_once_with("hub.test", "cafe.test", Decimal("1"), "m")

    async def test_wraps_foreign_exceptions_in_ledger_error(self):
        inner = AsyncMock()
        inner.transfer_stable_euro_token = AsyncMock(side_effect=TimeoutError("rpc timeout"))
        client = ResolvingLedgerClient(inner, AccountResolver())

        with pytest.raises(LedgerError, match="rpc timeout") as exc:
            await client.transfer_stable_euro_token("innopay", "cafe", Decimal("1"), "m")
        assert isinstance(exc.value.cause, TimeoutError)

    async def test_ledger_errors_pass_through(self):
        inner = AsyncMock()
        original = LedgerError("insufficient balance")
        inner.transfer_stable_usd_asset = AsyncMock(side_effect=original)
        client = ResolvingLedgerClient(inner, AccountResolver())

        with pytest.raises(LedgerError) as exc:
            await client.transfer_stable_usd_asset("innopay", "cafe", Decimal("1"), "m")
        assert exc.value is original
