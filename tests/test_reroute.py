from datetime import datetime, timedelta, timezone

import pytest

from src.driver_core.models.domain import GeoPoint, PositionFix
from src.driver_core.services.geospatial import distance_meters
from src.driver_core.services.tracking.reroute import RerouteDebouncer

T0 = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def _fix(lon: float, seconds: float) -> PositionFix:
    return PositionFix(latitude=0.0, longitude=lon, timestamp=T0 + timedelta(seconds=seconds))


def test_first_trigger_always_fires():
    debouncer = RerouteDebouncer(min_interval_seconds=5, min_distance_meters=25)

    assert debouncer.should_trigger(_fix(0.0, 0))
    assert debouncer.last_trigger == _fix(0.0, 0)


def test_trigger_needs_both_time_and_distance():
    debouncer = RerouteDebouncer(min_interval_seconds=5, min_distance_meters=25)
    debouncer.should_trigger(_fix(0.0, 0))

    assert not debouncer.should_trigger(_fix(0.01, 2))  # far but too soon
    assert not debouncer.should_trigger(_fix(0.0001, 10))  # late but only ~11 m away
    assert debouncer.should_trigger(_fix(0.001, 10))  # ~111 m and 10 s later


def test_rejected_fixes_do_not_move_the_reference():
    debouncer = RerouteDebouncer(min_interval_seconds=5, min_distance_meters=25)
    debouncer.should_trigger(_fix(0.0, 0))
    debouncer.should_trigger(_fix(0.01, 2))

    assert debouncer.last_trigger.timestamp == T0


def test_reset_allows_immediate_trigger():
    debouncer = RerouteDebouncer(min_interval_seconds=5, min_distance_meters=25)
    debouncer.should_trigger(_fix(0.0, 0))

    debouncer.reset()

    assert debouncer.last_trigger is None
    assert debouncer.should_trigger(_fix(0.0, 1))


def test_haversine_basics():
    same = GeoPoint(14.5995, 120.9842)
    assert distance_meters(same, same) == 0.0
    assert distance_meters(GeoPoint(0.0, 0.0), GeoPoint(1.0, 0.0)) == pytest.approx(111_195, rel=1e-4)
    a, b = GeoPoint(14.5995, 120.9842), GeoPoint(14.5547, 121.0244)
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))
