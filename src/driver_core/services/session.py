"""One driver's active delivery: status changes plus live tracking."""

from __future__ import annotations

import logging
from typing import Optional

from ..models.domain import Delivery, DeliveryStatus, GeoPoint, PositionFix
from .status.normalizer import DeliveryStage, should_broadcast_location, stage_for
from .status.transitions import TransitionCoordinator
from .tracking.route_tracker import GeometryLike, RouteTracker, TrackingUpdate

logger = logging.getLogger(__name__)


class DriverSession:
    """Holds the single current delivery of a logged-in driver.

    Once the delivery reaches a terminal state, or the driver logs out, pending
    transition retries and reroute state are dropped so nothing keeps running
    against that delivery id.
    """

    def __init__(self, coordinator: TransitionCoordinator, tracker: RouteTracker | None = None) -> None:
        self.coordinator = coordinator
        self.tracker = tracker or RouteTracker()
        self.delivery: Optional[Delivery] = None

    def start(self, delivery: Delivery, geometry: GeometryLike | None = None) -> None:
        if self.delivery is not None and self.delivery.id != delivery.id:
            self._release(self.delivery.id)
        self.delivery = delivery
        self.tracker.reset()
        self.tracker.set_geometry(geometry or (), self.target_for(delivery))
        self.coordinator.sync(delivery)

    def target_for(self, delivery: Delivery) -> GeoPoint:
        """Pickup while heading to pickup, drop-off (or the current stop) afterwards."""
        stop = delivery.current_stop
        if stop is not None:
            return stop.location
        if stage_for(delivery.status) is DeliveryStage.HEADING_TO_PICKUP:
            return delivery.pickup
        return delivery.dropoff

    def advance(self, target: DeliveryStatus) -> Delivery:
        if self.delivery is None:
            raise RuntimeError("No active delivery in this session.")
        updated = self.coordinator.request_transition(self.delivery, target)
        if self.delivery is None or self.delivery.id != updated.id:
            logger.info(f"Discarding transition result for released delivery {updated.id}")
            return updated
        self.delivery = updated
        if updated.is_terminal:
            self._release(updated.id)
        else:
            self.tracker.set_geometry(self.tracker.geometry, self.target_for(updated))
        return updated

    def apply_server_update(self, delivery: Delivery) -> None:
        if self.delivery is None or delivery.id != self.delivery.id:
            return
        self.coordinator.sync(delivery)
        self.delivery = delivery
        if delivery.is_terminal:
            self._release(delivery.id)
        else:
            self.tracker.set_geometry(self.tracker.geometry, self.target_for(delivery))

    def reroute(self, geometry: GeometryLike) -> None:
        self.tracker.set_geometry(geometry)

    def on_fix(self, fix: PositionFix) -> Optional[TrackingUpdate]:
        if self.delivery is None or self.delivery.is_terminal:
            return None
        return self.tracker.process_fix(fix)

    @property
    def should_broadcast(self) -> bool:
        return self.delivery is not None and should_broadcast_location(self.delivery.status)

    def logout(self) -> None:
        self.coordinator.cancel_all()
        self.tracker.reset()
        self.delivery = None
        logger.info("Driver session closed")

    def _release(self, delivery_id: str) -> None:
        self.coordinator.cancel(delivery_id)
        self.tracker.reset()
