"""Commission rate lookup with an explicit, observable fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol

from ...config import settings
from ..clock import Clock, system_clock
from .ledger import driver_earnings

logger = logging.getLogger(__name__)


class RateSource(str, Enum):
    LIVE = "live"
    FALLBACK = "fallback"


@dataclass(slots=True, frozen=True)
class CommissionContext:
    driver_id: str
    business_id: Optional[str] = None
    vehicle_type_id: Optional[str] = None
    at: Optional[datetime] = None


class CommissionRateProvider(Protocol):
    def rate_for(self, context: CommissionContext) -> float: ...


@dataclass(slots=True, frozen=True)
class CommissionQuote:
    rate: float
    source: RateSource

    @property
    def is_fallback(self) -> bool:
        return self.source is RateSource.FALLBACK


@dataclass(slots=True, frozen=True)
class EarningsQuote:
    amount: float
    commission: float
    rate: float
    source: RateSource


class CommissionService:
    """Resolves the commission rate for a delivery.

    The provider is the live policy (per driver, business, vehicle and time).
    When it is unavailable the configured fallback rate is used and the quote
    says so, so callers can show that the figure is an estimate.
    """

    def __init__(
        self,
        provider: CommissionRateProvider | None,
        *,
        fallback_rate: float | None = None,
        cache_seconds: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.provider = provider
        self.fallback_rate = fallback_rate if fallback_rate is not None else settings.fallback_commission_rate
        if not 0.0 <= self.fallback_rate <= 1.0:
            raise ValueError("fallback_rate must be between 0 and 1")
        self.cache_seconds = cache_seconds if cache_seconds is not None else settings.commission_cache_seconds
        self.clock = clock or system_clock
        self._cache: dict[tuple, tuple[datetime, float]] = {}

    def quote(self, context: CommissionContext) -> CommissionQuote:
        key = (context.driver_id, context.business_id, context.vehicle_type_id)
        now = self.clock.now()

        cached = self._cache.get(key)
        if cached is not None and (now - cached[0]).total_seconds() < self.cache_seconds:
            return CommissionQuote(rate=cached[1], source=RateSource.LIVE)

        if self.provider is None:
            logger.warning(f"No commission rate provider, using fallback {self.fallback_rate:.2%}")
            return CommissionQuote(rate=self.fallback_rate, source=RateSource.FALLBACK)

        try:
            rate = float(self.provider.rate_for(context))
        except Exception as exc:
            logger.warning(
                f"Commission rate lookup failed for driver {context.driver_id}: {exc}. "
                f"Using fallback {self.fallback_rate:.2%}"
            )
            return CommissionQuote(rate=self.fallback_rate, source=RateSource.FALLBACK)

        if not 0.0 <= rate <= 1.0:
            logger.warning(
                f"Commission rate {rate} for driver {context.driver_id} is out of range. "
                f"Using fallback {self.fallback_rate:.2%}"
            )
            return CommissionQuote(rate=self.fallback_rate, source=RateSource.FALLBACK)

        self._cache[key] = (now, rate)
        return CommissionQuote(rate=rate, source=RateSource.LIVE)

    def earnings(self, total_price: float, context: CommissionContext, tips: float = 0.0) -> EarningsQuote:
        quote = self.quote(context)
        return EarningsQuote(
            amount=driver_earnings(total_price, quote.rate) + tips,
            commission=total_price * quote.rate,
            rate=quote.rate,
            source=quote.source,
        )

    def invalidate(self, driver_id: str | None = None) -> None:
        if driver_id is None:
            self._cache.clear()
            return
        for key in [key for key in self._cache if key[0] == driver_id]:
            del self._cache[key]
