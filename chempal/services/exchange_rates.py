# chempal/services/exchange_rates.py

"""Mid-market exchange rates for derived product prices."""

import asyncio
import logging
import time
from typing import Any

from curl_cffi import requests as curl_requests

from chempal.config.settings import Settings

logger = logging.getLogger("chempal.rates")


class ExchangeRateService:
    """Fetches and caches currency rates with a fixed TTL.

    One instance is shared by every adapter of a search; concurrent
    lookups of the same pair wait on a single request.  A failed lookup
    returns ``None`` and is not cached.
    """

    def __init__(self, ttl: float | None = None) -> None:
        self.settings = Settings()
        self.ttl = self.settings.EXCHANGE_RATE_TTL if ttl is None else ttl
        self._rates: dict[tuple[str, str], tuple[float, float]] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._session: curl_requests.AsyncSession | None = None

    def _get_session(self) -> curl_requests.AsyncSession:
        if self._session is None:
            self._session = curl_requests.AsyncSession(
                impersonate=self.settings.IMPERSONATE_BROWSER
            )
        return self._session

    def _cached(self, pair: tuple[str, str]) -> float | None:
        hit = self._rates.get(pair)
        if hit is None:
            return None
        rate, stored_at = hit
        if time.time() - stored_at > self.ttl:
            del self._rates[pair]
            return None
        return rate

    async def _fetch_rate(self, source: str, target: str) -> float | None:
        url = self.settings.EXCHANGE_RATE_URL.format(source=source, target=target)
        try:
            resp = await self._get_session().get(
                url, timeout=self.settings.REQUEST_TIMEOUT
            )
            if resp.status_code != 200:
                logger.warning(
                    "Rate lookup %s->%s returned HTTP %d",
                    source,
                    target,
                    resp.status_code,
                )
                return None
            payload: dict[str, Any] = resp.json()
            return float(payload["data"]["mid"])
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Unexpected rate payload for %s->%s: %s", source, target, exc
            )
        except Exception as exc:
            logger.warning(
                "Rate lookup %s->%s failed: %s",
                source,
                target,
                exc,
                exc_info=True,
            )
        return None

    async def get_rate(self, source: str, target: str) -> float | None:
        """Return the multiplier converting *source* into *target*."""
        pair = (source.upper(), target.upper())
        if pair[0] == pair[1]:
            return 1.0
        cached = self._cached(pair)
        if cached is not None:
            return cached
        lock = self._locks.setdefault(pair, asyncio.Lock())
        async with lock:
            cached = self._cached(pair)
            if cached is not None:
                return cached
            rate = await self._fetch_rate(*pair)
            if rate is not None:
                self._rates[pair] = (rate, time.time())
                logger.debug("Rate %s->%s = %s", pair[0], pair[1], rate)
            return rate

    async def convert(
        self, amount: float, source: str, target: str,
    ) -> float | None:
        """Convert *amount* and round to cents, or ``None`` if no rate."""
        rate = await self.get_rate(source, target)
        if rate is None:
            return None
        return round(amount * rate, 2)

    def clear(self) -> None:
        self._rates.clear()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
