import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends

from innopay.dependencies import get_rate_provider
from innopay.schemas.responses import RateResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=RateResponse)
async def eur_usd_rate(today: Optional[str] = None, rates=Depends(get_rate_provider)):
    """
    EUR/USD rate for `today` (YYYY-MM-DD, defaults to the current UTC date).

    Always answers: an unparseable date falls back to today and an
    unreachable feed falls back to the cache or parity, flagged is_fresh=false.
    """
    as_of = datetime.now(timezone.utc).date()
    if today:
        try:
            as_of = date.fromisoformat(today)
        except ValueError:
            logger.warning("Invalid today parameter, using current date: %s", today)

    rate = await rates.get_eur_usd_rate(as_of)
    return RateResponse(
        as_of_date=rate.as_of_date,
        conversion_rate=rate.eur_per_usd,
        is_fresh=rate.is_fresh,
    )
