import pytest

from src.driver_core.services.remittance.commission import (
    CommissionContext,
    CommissionService,
    RateSource,
)


class StaticProvider:
    def __init__(self, rate: float) -> None:
        self.rate = rate
        self.calls = 0

    def rate_for(self, context: CommissionContext) -> float:
        self.calls += 1
        return self.rate


class FailingProvider:
    def rate_for(self, context: CommissionContext) -> float:
        raise ConnectionError("rates table unreachable")


CONTEXT = CommissionContext(driver_id="driver-1", business_id="biz-1")


def test_live_rate_is_used_and_cached(clock):
    provider = StaticProvider(0.12)
    service = CommissionService(provider, fallback_rate=0.16, cache_seconds=60, clock=clock)

    first = service.quote(CONTEXT)
    second = service.quote(CONTEXT)

    assert first.rate == 0.12
    assert first.source is RateSource.LIVE
    assert not second.is_fallback
    assert provider.calls == 1

    clock.advance(seconds=61)
    service.quote(CONTEXT)
    assert provider.calls == 2


def test_cache_is_per_business(clock):
    provider = StaticProvider(0.12)
    service = CommissionService(provider, fallback_rate=0.16, cache_seconds=60, clock=clock)

    service.quote(CONTEXT)
    service.quote(CommissionContext(driver_id="driver-1", business_id="biz-2"))

    assert provider.calls == 2


def test_provider_failure_falls_back_and_says_so(clock, caplog):
    service = CommissionService(FailingProvider(), fallback_rate=0.16, clock=clock)

    quote = service.quote(CONTEXT)

    assert quote.rate == 0.16
    assert quote.is_fallback
    assert "fallback" in caplog.text.lower()


def test_out_of_range_rate_falls_back(clock):
    service = CommissionService(StaticProvider(1.5), fallback_rate=0.16, clock=clock)

    assert service.quote(CONTEXT).source is RateSource.FALLBACK


def test_missing_provider_falls_back(clock):
    quote = CommissionService(None, fallback_rate=0.2, clock=clock).quote(CONTEXT)

    assert quote.rate == 0.2
    assert quote.is_fallback


def test_invalid_fallback_rate_is_rejected():
    with pytest.raises(ValueError):
        CommissionService(None, fallback_rate=1.2)


def test_earnings_include_tips(clock):
    service = CommissionService(StaticProvider(0.16), clock=clock)

    quote = service.earnings(1000.0, CONTEXT, tips=50.0)

    assert quote.amount == pytest.approx(890.0)
    assert quote.commission == pytest.approx(160.0)
    assert quote.source is RateSource.LIVE


def test_invalidate_drops_cached_rates(clock):
    provider = StaticProvider(0.12)
    service = CommissionService(provider, cache_seconds=3600, clock=clock)
    service.quote(CONTEXT)

    service.invalidate("driver-1")
    service.quote(CONTEXT)

    assert provider.calls == 2
