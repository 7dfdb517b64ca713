"""
FastAPI dependency providers for the external collaborators.

Each provider builds its collaborator once per process; tests swap them out
through app.dependency_overrides.
"""
from functools import lru_cache

from innopay.config import settings
from innopay.database import SessionLocal
from innopay.ledger.resolver import AccountResolver, ResolvingLedgerClient
from innopay.ledger.simulated import SimulatedLedgerClient
from innopay.services.rates import EcbRateProvider


@lru_cache(maxsize=1)
def get_ledger_client():
    inner = SimulatedLedgerClient(balances=settings.ledger_seed_balances)
    return ResolvingLedgerClient(inner, AccountResolver.from_settings(settings))


@lru_cache(maxsize=1)
def get_rate_provider():
    return EcbRateProvider(SessionLocal)
