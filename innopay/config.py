"""
Process-wide settings, read once from the environment (and a local .env).
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Tuple

from dotenv import load_dotenv

load_dotenv()


ECB_DAILY_XML = "https://www.ecb.europa.eu/stats/eurofxref/eurofxref-daily.xml"


def _parse_recipient_map(raw: str) -> Dict[str, str]:
    """`logical=physical,logical2=physical2` -> dict."""
    mapping = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if not pair or "=" not in pair:
            continue
        logical, physical = pair.split("=", 1)
        mapping[logical.strip()] = physical.strip()
    return mapping


def _parse_seed_balances(raw: str) -> Dict[Tuple[str, str], Decimal]:
    """`alice:EURO=100,innopay:HBD=50` -> {(account, asset): amount}."""
    balances = {}
    for item in raw.split(","):
        item = item.strip()
        if not item or "=" not in item or ":" not in item:
            continue
        key, amount = item.split("=", 1)
        account, asset = key.split(":", 1)
        balances[(account.strip(), asset.strip().upper())] = Decimal(amount.strip())
    return balances


@dataclass(frozen=True)
class Settings:
    database_url: str
    environment: str
    hub_account: str
    test_recipient_map: Dict[str, str] = field(default_factory=dict)
    ecb_rates_url: str = ECB_DAILY_XML
    rate_fetch_timeout_seconds: float = 5.0
    debt_api_key: str = ""
    log_level: str = "INFO"
    ledger_seed_balances: Dict[Tuple[str, str], Decimal] = field(default_factory=dict)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./innopay.db"),
        environment=os.getenv("INNOPAY_ENV", "development").strip().lower(),
        hub_account=os.getenv("HUB_ACCOUNT", "innopay").strip(),
        test_recipient_map=_parse_recipient_map(
            os.getenv("TEST_RECIPIENT_MAP", "indies.cafe=indies.test")
        ),
        ecb_rates_url=os.getenv("ECB_RATES_URL", ECB_DAILY_XML),
        rate_fetch_timeout_seconds=float(os.getenv("RATE_FETCH_TIMEOUT_SECONDS", "5")),
        debt_api_key=os.getenv("DEBT_API_KEY", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        ledger_seed_balances=_parse_seed_balances(os.getenv("LEDGER_SEED_BALANCES", "")),
    )


settings = load_settings()
