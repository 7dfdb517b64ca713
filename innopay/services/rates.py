"""
EUR/USD rate provider.

Lookup order:
1. Newest cached row, when it is for the requested date (currency_conversion table)
2. ECB daily reference feed, cached on first sight of each ECB date
3. Latest cached row of any date
4. Parity (1.0)

Only a feed rate dated the requested day is flagged is_fresh. The provider
never raises: a settlement must be able to proceed even when the feed and
the cache are both down.
"""
import logging
import xml.etree.ElementTree as ET
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

import httpx
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from innopay import models
from innopay.config import settings

logger = logging.getLogger(__name__)

ECB_NS = {"ecb": "http://www.ecb.int/vocabulary/2002-08-01/eurofxref"}
PARITY = Decimal("1.0")


class ExchangeRate:
    def __init__(self, as_of_date: date, eur_per_usd: Decimal, is_fresh: bool):
        self.as_of_date = as_of_date
        self.eur_per_usd = eur_per_usd
        self.is_fresh = is_fresh

    def __repr__(self):
        return f"ExchangeRate({self.as_of_date}, {self.eur_per_usd}, fresh={self.is_fresh})"


def convert_eur_to_usd_asset(amount_euro, eur_usd_rate) -> Decimal:
    """10 EUR at 1.10 -> 11.00 HBD."""
    return Decimal(str(amount_euro)) * Decimal(str(eur_usd_rate))


def convert_usd_asset_to_eur(amount_usd_asset, eur_usd_rate) -> Decimal:
    """11 HBD at 1.10 -> 10.00 EUR. A zero rate yields 0."""
    rate = Decimal(str(eur_usd_rate))
    if rate == 0:
        logger.warning("EUR/USD rate is 0, returning 0")
        return Decimal(0)
    return Decimal(str(amount_usd_asset)) / rate


def parse_ecb_usd_rate(xml_text: str) -> Tuple[date, Decimal]:
    """
    Extract (reference date, USD rate) from the ECB eurofxref-daily document.

    Raises ValueError if the document has no dated cube or no USD entry.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ValueError(f"ECB feed is not valid XML: {e}") from e

    day = root.find(".//ecb:Cube[@time]", ECB_NS)
    if day is None:
        raise ValueError("ECB feed has no dated Cube")
    usd = day.find("ecb:Cube[@currency='USD']", ECB_NS)
    if usd is None:
        raise ValueError("ECB feed has no USD rate")

    try:
        ecb_date = datetime.strptime(day.get("time"), "%Y-%m-%d").date()
        rate = Decimal(usd.get("rate"))
    except (TypeError, ValueError, InvalidOperation) as e:
        raise ValueError(f"ECB feed has a malformed USD entry: {e}") from e
    return ecb_date, rate


class EcbRateProvider:
    def __init__(
        self,
        session_factory,
        feed_url: str = settings.ecb_rates_url,
        timeout: float = settings.rate_fetch_timeout_seconds,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.feed_url = feed_url
        self.timeout = timeout
        self.transport = transport

    async def get_eur_usd_rate(self, as_of: Optional[date] = None) -> ExchangeRate:
        as_of = as_of or datetime.now(timezone.utc).date()
        db = self.session_factory()
        try:
            return await self._lookup(db, as_of)
        except Exception:
            logger.exception("[CURRENCY] Unexpected failure resolving rate, using parity")
            return ExchangeRate(as_of, PARITY, False)
        finally:
            db.close()

    async def _lookup(self, db, as_of: date) -> ExchangeRate:
        latest = None
        try:
            latest = db.query(models.CurrencyConversion).order_by(
                models.CurrencyConversion.date.desc()
            ).first()
        except SQLAlchemyError as e:
            logger.warning("[CURRENCY] Failed to read cached rate: %s", e)
            db.rollback()

        if latest is not None and latest.date == as_of:
            return ExchangeRate(latest.date, Decimal(str(latest.conversion_rate)), False)

        try:
            ecb_date, rate = await self._fetch_ecb()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("[CURRENCY] Failed to fetch ECB rate: %s", e)
            if latest is not None:
                return ExchangeRate(latest.date, Decimal(str(latest.conversion_rate)), False)
            logger.warning("[CURRENCY] No cached rate, using default rate of 1.0")
            return ExchangeRate(as_of, PARITY, False)

        try:
            existing = db.get(models.CurrencyConversion, ecb_date)
            if existing is not None:
                return ExchangeRate(existing.date, Decimal(str(existing.conversion_rate)), False)
        except SQLAlchemyError as e:
            logger.warning("[CURRENCY] Failed to check cached ECB date %s: %s", ecb_date, e)
            db.rollback()

        try:
            db.add(models.CurrencyConversion(date=ecb_date, conversion_rate=rate))
            db.commit()
            logger.info("[CURRENCY] Saved new ECB rate %s for %s", rate, ecb_date)
        except IntegrityError:
            db.rollback()
            logger.warning("[CURRENCY] ECB rate for %s already cached (race)", ecb_date)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("[CURRENCY] Failed to cache ECB rate: %s", e)

        return ExchangeRate(ecb_date, rate, ecb_date == as_of)

    async def _fetch_ecb(self) -> Tuple[date, Decimal]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(self.feed_url)
            response.raise_for_status()
        return parse_ecb_usd_rate(response.text)
