from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from src.driver_core.models.domain import (
    ContactInfo,
    Delivery,
    DeliveryStatus,
    DeliveryStop,
    DeliveryStopStatus,
    GeoPoint,
    PaymentMethod,
    Pricing,
    StopRole,
)

BASE_TIME = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def make_delivery():
    def _make(
        status: DeliveryStatus = DeliveryStatus.DRIVER_ASSIGNED,
        delivery_id: str = "D1",
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> Delivery:
        return Delivery(
            id=delivery_id,
            driver_id="driver-1",
            status=status,
            created_at=BASE_TIME,
            updated_at=BASE_TIME,
            pickup=GeoPoint(14.5995, 120.9842),
            dropoff=GeoPoint(14.5547, 121.0244),
            pricing=Pricing(total_price=1000.0),
            payment_method=payment_method,
        )

    return _make


@pytest.fixture
def make_stop():
    def _make(
        index: int,
        status: DeliveryStopStatus = DeliveryStopStatus.PENDING,
        delivery_id: str = "D1",
    ) -> DeliveryStop:
        return DeliveryStop(
            id=f"S{index}",
            delivery_id=delivery_id,
            stop_index=index,
            role=StopRole.PICKUP if index == 0 else StopRole.DROPOFF,
            status=status,
            location=GeoPoint(14.60 - 0.01 * index, 120.98 + 0.01 * index),
            contact=ContactInfo(name=f"Stop {index}"),
            created_at=BASE_TIME,
            updated_at=BASE_TIME,
        )

    return _make


@pytest.fixture
def make_multi_stop_delivery(make_delivery, make_stop):
    def _make(
        total_stops: int = 3,
        current_stop_index: int = 0,
        status: DeliveryStatus = DeliveryStatus.GOING_TO_DESTINATION,
    ) -> Delivery:
        return replace(
            make_delivery(status),
            is_multi_stop=True,
            total_stops=total_stops,
            current_stop_index=current_stop_index,
            stops=[make_stop(index) for index in range(total_stops)],
        )

    return _make
