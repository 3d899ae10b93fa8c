from decimal import Decimal
from typing import Optional

import httpx
from fastapi import HTTPException, status

from tripcrew.core.cache import RedisCache
from tripcrew.core.config import settings
from tripcrew.core.logger import logger

RATE_CACHE_TTL = 3600


async def get_exchange_rate(from_currency: str, to_currency: str, cache: Optional[RedisCache] = None) -> Decimal:
    """Rate that converts one unit of from_currency into to_currency, to six places."""
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()

    if from_currency == to_currency:
        return Decimal("1")

    cache_key = RedisCache.build_key("fx", from_currency)
    rates = await cache.get(cache_key) if cache else None

    if rates is None:
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(f"{settings.EXCHANGE_RATE_API_URL}/{from_currency}")
                resp.raise_for_status()
                rates = resp.json()["rates"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Exchange rate lookup failed for {from_currency}: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Could not fetch exchange rate for {from_currency}; supply fx_rate manually"
            )
        if cache:
            await cache.set(cache_key, rates, expire=RATE_CACHE_TTL)

    rate = rates.get(to_currency)
    if rate is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown currency: {to_currency}")

    return Decimal(str(rate)).quantize(Decimal("0.000001"))
