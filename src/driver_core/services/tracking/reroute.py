"""Debounce reroute triggers while the driver stays off route."""

from __future__ import annotations

from typing import Optional

from ...config import settings
from ...models.domain import PositionFix
from ..geospatial import distance_meters


class RerouteDebouncer:
    """Allow a reroute only after enough time has passed and the driver has moved.

    Intervals are measured on fix timestamps, not wall-clock time, so a burst of
    delayed fixes cannot fire several reroutes at once.
    """

    def __init__(self, min_interval_seconds: float | None = None, min_distance_meters: float | None = None) -> None:
        self.min_interval_seconds = (
            min_interval_seconds if min_interval_seconds is not None else settings.reroute_min_interval_seconds
        )
        self.min_distance_meters = (
            min_distance_meters if min_distance_meters is not None else settings.reroute_min_distance_meters
        )
        self._last_trigger: Optional[PositionFix] = None

    @property
    def last_trigger(self) -> Optional[PositionFix]:
        return self._last_trigger

    def should_trigger(self, fix: PositionFix) -> bool:
        last = self._last_trigger
        if last is not None:
            elapsed = (fix.timestamp - last.timestamp).total_seconds()
            if elapsed < self.min_interval_seconds:
                return False
            if distance_meters(last.point, fix.point) < self.min_distance_meters:
                return False
        self._last_trigger = fix
        return True

    def reset(self) -> None:
        self._last_trigger = None
