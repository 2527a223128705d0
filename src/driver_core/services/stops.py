"""Stop-by-stop progression of multi-stop deliveries."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional, Protocol

from ..errors import StopProgressError
from ..models.domain import Delivery, DeliveryStop, DeliveryStopStatus
from .clock import Clock, system_clock

logger = logging.getLogger(__name__)


class DeliveryStopStore(Protocol):
    def update_stop(self, stop: DeliveryStop) -> None: ...

    def update_current_stop_index(self, delivery_id: str, index: int, at: datetime) -> None: ...


def all_stops_completed(stops: Optional[Iterable[DeliveryStop]]) -> bool:
    """True once every stop is completed. A failed stop, or no stops at all, is not a finished route."""
    stops = list(stops or ())
    return bool(stops) and all(stop.status is DeliveryStopStatus.COMPLETED for stop in stops)


class StopProgressService:
    """Moves the stops of a multi-stop delivery forward and keeps ``current_stop_index`` in step.

    Only stops are written here. When ``all_stops_completed`` holds for the
    returned delivery, the caller finishes the delivery itself through the
    transition coordinator.
    """

    def __init__(self, store: DeliveryStopStore, clock: Clock | None = None) -> None:
        self.store = store
        self.clock = clock or system_clock

    def mark_stop_arrived(self, delivery: Delivery, stop_index: int) -> Delivery:
        return self._advance(delivery, stop_index, DeliveryStopStatus.IN_PROGRESS)

    def complete_stop(
        self,
        delivery: Delivery,
        stop_index: int,
        *,
        proof_photo_url: Optional[str] = None,
        signature_url: Optional[str] = None,
        completion_notes: Optional[str] = None,
    ) -> Delivery:
        """Complete the current stop and move the delivery on to the next one."""

        if stop_index != delivery.current_stop_index:
            raise StopProgressError(
                delivery.id, stop_index, f"only the current stop ({delivery.current_stop_index}) can be completed"
            )
        updated = self._advance(
            delivery,
            stop_index,
            DeliveryStopStatus.COMPLETED,
            proof_photo_url=proof_photo_url,
            signature_url=signature_url,
            completion_notes=completion_notes,
        )

        next_index = stop_index + 1
        if next_index >= updated.total_stops:
            logger.info(f"Delivery {delivery.id}: last stop completed")
            return updated
        self.store.update_current_stop_index(delivery.id, next_index, updated.updated_at)
        return replace(updated, current_stop_index=next_index)

    def mark_stop_failed(self, delivery: Delivery, stop_index: int, reason: str) -> Delivery:
        return self._advance(delivery, stop_index, DeliveryStopStatus.FAILED, completion_notes=reason)

    def _advance(self, delivery: Delivery, stop_index: int, target: DeliveryStopStatus, **details) -> Delivery:
        stop = _find_stop(delivery, stop_index)
        at = self.clock.now()
        try:
            moved = stop.advance(target, at)
        except ValueError as exc:
            raise StopProgressError(delivery.id, stop_index, str(exc)) from exc
        details = {key: value for key, value in details.items() if value is not None}
        if details:
            moved = replace(moved, **details)

        self.store.update_stop(moved)
        logger.info(f"Delivery {delivery.id}: stop {stop_index} is now {target.value}")
        stops = [moved if item.stop_index == stop_index else item for item in delivery.stops]
        return replace(delivery, stops=stops, updated_at=at)


def _find_stop(delivery: Delivery, stop_index: int) -> DeliveryStop:
    if not delivery.is_multi_stop or not delivery.stops:
        raise StopProgressError(delivery.id, stop_index, "delivery has no stops loaded")
    for stop in delivery.stops:
        if stop.stop_index == stop_index:
            return stop
    raise StopProgressError(delivery.id, stop_index, "no such stop")
