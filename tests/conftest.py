"""
Shared pytest fixtures for all test modules.

Uses an in-memory SQLite database (StaticPool) so every test
function gets a clean, isolated database without disk I/O.
Ledger and rate collaborators are replaced by in-memory fakes.
"""
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from typing import Optional

from innopay.database import Base, get_db
from innopay.dependencies import get_ledger_client, get_rate_provider
from innopay.errors import LedgerError
from innopay.ledger.simulated import SimulatedLedgerClient
from innopay.services.rates import ExchangeRate
from innopay import models


# ---------------------------------------------------------------------------
# In-memory database engine shared across all fixtures in a test session.
# StaticPool forces all SQLAlchemy connections to reuse the same underlying
# sqlite3 connection, which is required for in-memory SQLite.
# ---------------------------------------------------------------------------
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=TEST_ENGINE)

TODAY = date(2024, 1, 15)


@pytest.fixture(autouse=True)
def reset_db():
    """Drop and recreate all tables before each test for full isolation."""
    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db(reset_db):
    """Yield a SQLAlchemy session backed by the in-memory test database."""
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory(reset_db):
    """Sessionmaker bound to the test database, for code that opens its own sessions."""
    return TestingSession


@pytest.fixture
def sim_ledger():
    """Instant in-memory ledger; tests seed balances with credit()."""
    return SimulatedLedgerClient(latency=(0, 0))


@pytest.fixture
def rates():
    return mock_rates(Decimal("1.08"))


@pytest.fixture
def client(db, sim_ledger, rates):
    """
    FastAPI TestClient with the DB, ledger and rate dependencies overridden.
    The TestClient is NOT used as a context manager so the lifespan hook
    (which creates tables in the on-disk DB) is skipped.
    """
    from innopay.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ledger_client] = lambda: sim_ledger
    app.dependency_overrides[get_rate_provider] = lambda: rates
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers, not fixtures, so any test file can import and call them directly.
# ---------------------------------------------------------------------------
def mock_rates(*values, is_fresh: bool = True):
    """AsyncMock rate provider returning each value in turn (the last one repeats)."""
    rates = [ExchangeRate(TODAY, Decimal(str(v)), is_fresh) for v in values]

    def next_rate(as_of=None):
        return rates.pop(0) if len(rates) > 1 else rates[0]

    m = AsyncMock()
    m.get_eur_usd_rate = AsyncMock(side_effect=next_rate)
    return m


def mock_ledger(fail: Optional[dict] = None):
    """
    AsyncMock ledger whose transfers succeed with a readable tx id
    ("euro:alice->innopay") unless (asset, from, to) is listed in `fail`,
    in which case the mapped exception is raised.
    """
    fail = fail or {}

    def leg(asset):
        def transfer(src, dst, amount, memo):
            error = fail.get((asset, src, dst))
            if error is not None:
                raise error
            return f"{asset}:{src}->{dst}"
        return transfer

    m = AsyncMock()
    m.transfer_stable_euro_token = AsyncMock(side_effect=leg("euro"))
    m.transfer_stable_usd_asset = AsyncMock(side_effect=leg("hbd"))
    return m


def insufficient():
    return LedgerError("insufficient balance")


def make_debt(
    db,
    debt_id: str,
    creditor: str = "cafe",
    debtor: Optional[str] = None,
    amount_euro: float = 0,
    amount_usd_asset: float = 21.6,
    eur_usd_rate: Optional[float] = 1.08,
    reason: str = "order_payment",
    status: str = "unpaid",
    created_at: Optional[datetime] = None,   # defaults to 1 hour ago
) -> models.OutstandingDebt:
    if created_at is None:
        created_at = datetime.utcnow() - timedelta(hours=1)
    debt = models.OutstandingDebt(
        id=debt_id,
        creditor=creditor,
        debtor=debtor,
        amount_euro=Decimal(str(amount_euro)),
        amount_usd_asset=Decimal(str(amount_usd_asset)),
        eur_usd_rate=Decimal(str(eur_usd_rate)) if eur_usd_rate is not None else None,
        reason=reason,
        status=status,
        created_at=created_at,
    )
    db.add(debt)
    db.commit()
    db.refresh(debt)
    return debt
