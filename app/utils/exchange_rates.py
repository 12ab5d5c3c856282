"""
Exchange rate lookup: an HTTP client for the public rate service and a
time-based cache in front of it.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from app.core.config import settings
from app.core.errors import RateUnavailable
from app.models.analytics import ExchangeRateSnapshot
from app.models.expense import normalize_currency

logger = logging.getLogger(__name__)

RateFetcher = Callable[[str], Awaitable[Dict[str, Any]]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExchangeRateClient:
    """Thin async wrapper over ``GET {base_url}/{base}``."""

    def __init__(self, client: httpx.AsyncClient, base_url: Optional[str] = None) -> None:
        self._client = client
        self._base_url = (base_url or settings.RATES_API_URL).rstrip("/")

    async def fetch_latest(self, base: str) -> Dict[str, Any]:
        url = f"{self._base_url}/{base}"
        try:
            response = await self._client.get(url, timeout=settings.RATES_API_TIMEOUT_SECONDS)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RateUnavailable(f"Rate service unavailable for {base}: {exc}") from exc

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict) or not rates:
            raise RateUnavailable(f"Rate service response for {base} is missing rates")
        bad_codes = [
            code for code, value in rates.items()
            if isinstance(value, bool) or not isinstance(value, (int, float))
        ]
        if bad_codes:
            raise RateUnavailable(f"Rate service response for {base} has non-numeric rates: {bad_codes}")

        return {
            "base": payload.get("base", base),
            "rates": rates,
            "timestamp": payload.get("time_last_updated") or payload.get("date"),
        }


class RateCache:
    """
    Process-wide cache holding one snapshot per base currency.

    A snapshot is served while it is younger than ``ttl``. Concurrent callers
    asking for the same base while a fetch is running share that fetch.
    """

    def __init__(
        self,
        fetcher: RateFetcher,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
        default_base: Optional[str] = None,
    ) -> None:
        self._fetcher = fetcher
        self._ttl = ttl if ttl is not None else timedelta(hours=settings.RATES_CACHE_TTL_HOURS)
        self._clock = clock
        self._default_base = normalize_currency(default_base or settings.BASE_CURRENCY)
        self._snapshots: Dict[str, ExchangeRateSnapshot] = {}
        self._pending: Dict[str, asyncio.Future] = {}

    def peek(self, base: Optional[str] = None) -> Optional[ExchangeRateSnapshot]:
        return self._snapshots.get(normalize_currency(base or self._default_base))

    def is_fresh(self, snapshot: ExchangeRateSnapshot) -> bool:
        return self._clock() - snapshot.fetched_at < self._ttl

    def invalidate(self, base: Optional[str] = None) -> None:
        if base is None:
            self._snapshots.clear()
        else:
            self._snapshots.pop(normalize_currency(base), None)

    async def get_rates(self, base: Optional[str] = None) -> ExchangeRateSnapshot:
        base = normalize_currency(base or self._default_base)
        snapshot = self._snapshots.get(base)
        if snapshot is not None and self.is_fresh(snapshot):
            return snapshot

        pending = self._pending.get(base)
        if pending is None:
            pending = asyncio.ensure_future(self._refresh(base, snapshot))
            self._pending[base] = pending
            pending.add_done_callback(lambda done: self._settle(base, done))
        # One cancelled waiter must not cancel the fetch the others share.
        return await asyncio.shield(pending)

    def _settle(self, base: str, done: asyncio.Future) -> None:
        self._pending.pop(base, None)
        # Retrieve the error even when every waiter was cancelled.
        if not done.cancelled():
            done.exception()

    async def _refresh(self, base: str, previous: Optional[ExchangeRateSnapshot]) -> ExchangeRateSnapshot:
        logger.info(f"Fetching exchange rates for base {base}")
        try:
            payload = await self._fetcher(base)
        except RateUnavailable as e:
            logger.error(f"Exchange rate fetch failed for {base}: {str(e)}")
            raise RateUnavailable(str(e), stale_snapshot=previous) from e
        except Exception as e:
            logger.error(f"Unexpected error fetching rates for {base}: {str(e)}", exc_info=True)
            raise RateUnavailable(f"Rate fetch failed for {base}: {e}", stale_snapshot=previous) from e

        try:
            snapshot = ExchangeRateSnapshot(
                base_currency=base,
                rates=payload["rates"],
                fetched_at=self._clock(),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed exchange rate payload for {base}: {str(e)}")
            raise RateUnavailable(f"Malformed rate payload for {base}: {e}", stale_snapshot=previous) from e
        self._snapshots[base] = snapshot
        logger.info(f"Cached {len(snapshot.rates)} exchange rates for base {base}")
        return snapshot
