"""Canonical delivery status handling.

The deliveries table is written by both the driver app and the customer app,
and its status vocabulary has changed over time. Every token either side has
ever written is listed in ``STATUS_ALIASES``; adding a new one is a single
table entry plus a test.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from ...errors import InvalidTransitionError
from ...models.domain import DeliveryStatus

logger = logging.getLogger(__name__)


class DiagnosticKind(str, Enum):
    UNKNOWN_STATUS = "UnknownStatus"


@dataclass(slots=True, frozen=True)
class Diagnostic:
    """Non-fatal observation made while reading a store value."""

    kind: DiagnosticKind
    raw: str


class DeliveryStage(str, Enum):
    """Coarse grouping of statuses used to decide which leg the driver is on."""

    HEADING_TO_PICKUP = "headingToPickup"
    HEADING_TO_DELIVERY = "headingToDelivery"
    DELIVERY_COMPLETE = "deliveryComplete"


# Current values agreed with the customer app, followed by legacy spellings
# still present in older rows.
STATUS_ALIASES: Mapping[str, DeliveryStatus] = {
    "pending": DeliveryStatus.PENDING,
    "driver_offered": DeliveryStatus.DRIVER_OFFERED,
    "driverOffered": DeliveryStatus.DRIVER_OFFERED,
    "driver_assigned": DeliveryStatus.DRIVER_ASSIGNED,
    "driverAssigned": DeliveryStatus.DRIVER_ASSIGNED,
    "going_to_pickup": DeliveryStatus.GOING_TO_PICKUP,
    "goingToPickup": DeliveryStatus.GOING_TO_PICKUP,
    "at_pickup": DeliveryStatus.PICKUP_ARRIVED,
    "atPickup": DeliveryStatus.PICKUP_ARRIVED,
    "pickup_arrived": DeliveryStatus.PICKUP_ARRIVED,
    "pickupArrived": DeliveryStatus.PICKUP_ARRIVED,
    "package_collected": DeliveryStatus.PACKAGE_COLLECTED,
    "packageCollected": DeliveryStatus.PACKAGE_COLLECTED,
    "picked_up": DeliveryStatus.PACKAGE_COLLECTED,
    "pickedUp": DeliveryStatus.PACKAGE_COLLECTED,
    "in_transit": DeliveryStatus.GOING_TO_DESTINATION,
    "inTransit": DeliveryStatus.GOING_TO_DESTINATION,
    "going_to_destination": DeliveryStatus.GOING_TO_DESTINATION,
    "goingToDestination": DeliveryStatus.GOING_TO_DESTINATION,
    "at_destination": DeliveryStatus.AT_DESTINATION,
    "atDestination": DeliveryStatus.AT_DESTINATION,
    "delivered": DeliveryStatus.DELIVERED,
    "cancelled": DeliveryStatus.CANCELLED,
    "failed": DeliveryStatus.FAILED,
}

# What the driver app writes back. Never a legacy alias.
WIRE_VALUES: Mapping[DeliveryStatus, str] = {
    DeliveryStatus.PENDING: "pending",
    DeliveryStatus.DRIVER_OFFERED: "driver_offered",
    DeliveryStatus.DRIVER_ASSIGNED: "driver_assigned",
    DeliveryStatus.GOING_TO_PICKUP: "going_to_pickup",
    DeliveryStatus.PICKUP_ARRIVED: "at_pickup",
    DeliveryStatus.PACKAGE_COLLECTED: "package_collected",
    DeliveryStatus.GOING_TO_DESTINATION: "in_transit",
    DeliveryStatus.AT_DESTINATION: "at_destination",
    DeliveryStatus.DELIVERED: "delivered",
    DeliveryStatus.CANCELLED: "cancelled",
    DeliveryStatus.FAILED: "failed",
}

# Forward successors only; cancelled/failed are added for every non-terminal state.
_SUCCESSORS: Mapping[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.DRIVER_OFFERED, DeliveryStatus.DRIVER_ASSIGNED}),
    DeliveryStatus.DRIVER_OFFERED: frozenset({DeliveryStatus.DRIVER_ASSIGNED}),
    DeliveryStatus.DRIVER_ASSIGNED: frozenset({DeliveryStatus.GOING_TO_PICKUP}),
    DeliveryStatus.GOING_TO_PICKUP: frozenset({DeliveryStatus.PICKUP_ARRIVED}),
    DeliveryStatus.PICKUP_ARRIVED: frozenset({DeliveryStatus.PACKAGE_COLLECTED}),
    DeliveryStatus.PACKAGE_COLLECTED: frozenset({DeliveryStatus.GOING_TO_DESTINATION}),
    DeliveryStatus.GOING_TO_DESTINATION: frozenset({DeliveryStatus.AT_DESTINATION}),
    DeliveryStatus.AT_DESTINATION: frozenset({DeliveryStatus.DELIVERED}),
}

_ABORT_STATES = frozenset({DeliveryStatus.CANCELLED, DeliveryStatus.FAILED})

ACTION_LABELS: Mapping[DeliveryStatus, str] = {
    DeliveryStatus.DRIVER_OFFERED: "Accept Delivery",
    DeliveryStatus.DRIVER_ASSIGNED: "Navigate to Pickup",
    DeliveryStatus.GOING_TO_PICKUP: "Arrived at Pickup",
    DeliveryStatus.PICKUP_ARRIVED: "Confirm Pickup",
    DeliveryStatus.PACKAGE_COLLECTED: "Navigate to Destination",
    DeliveryStatus.GOING_TO_DESTINATION: "Arrived at Destination",
    DeliveryStatus.AT_DESTINATION: "Confirm Delivery",
}

_STAGES: Mapping[DeliveryStatus, DeliveryStage] = {
    DeliveryStatus.PACKAGE_COLLECTED: DeliveryStage.HEADING_TO_DELIVERY,
    DeliveryStatus.GOING_TO_DESTINATION: DeliveryStage.HEADING_TO_DELIVERY,
    DeliveryStatus.AT_DESTINATION: DeliveryStage.HEADING_TO_DELIVERY,
    DeliveryStatus.DELIVERED: DeliveryStage.DELIVERY_COMPLETE,
}


def normalize(raw: Optional[str]) -> tuple[DeliveryStatus, Optional[Diagnostic]]:
    """Map a raw store token to its canonical status.

    ``None`` means the status was never set and maps to ``pending`` silently.
    Anything unrecognised also maps to ``pending`` but comes back with a
    diagnostic so the caller can report it.
    """

    if raw is None:
        return DeliveryStatus.PENDING, None

    status = STATUS_ALIASES.get(raw)
    if status is not None:
        return status, None

    for candidate in DeliveryStatus:
        if candidate.value == raw:
            return candidate, None

    logger.warning(f"Unknown delivery status '{raw}', defaulting to pending")
    return DeliveryStatus.PENDING, Diagnostic(kind=DiagnosticKind.UNKNOWN_STATUS, raw=raw)


def to_wire_value(status: DeliveryStatus) -> str:
    return WIRE_VALUES[status]


def allowed_next_states(current: DeliveryStatus) -> frozenset[DeliveryStatus]:
    if current.is_terminal:
        return frozenset()
    if current is DeliveryStatus.PENDING:
        # Unassigned: no delivery attempt exists yet that could fail.
        return _SUCCESSORS[current] | {DeliveryStatus.CANCELLED}
    return _SUCCESSORS.get(current, frozenset()) | _ABORT_STATES


def validate_transition(current: DeliveryStatus, requested: DeliveryStatus) -> None:
    """Raise ``InvalidTransitionError`` unless ``requested`` is reachable from ``current``."""

    if requested not in allowed_next_states(current):
        raise InvalidTransitionError(current, requested)


def is_valid_transition(current: DeliveryStatus, requested: DeliveryStatus) -> bool:
    return requested in allowed_next_states(current)


def action_label(status: DeliveryStatus) -> str:
    """Label of the driver action that moves a delivery out of ``status`` ("" if none)."""

    return ACTION_LABELS.get(status, "")


def stage_for(status: DeliveryStatus) -> DeliveryStage:
    return _STAGES.get(status, DeliveryStage.HEADING_TO_PICKUP)


def should_broadcast_location(status: DeliveryStatus) -> bool:
    """Live position is only shared with the customer while the driver is moving."""

    return status in (DeliveryStatus.GOING_TO_PICKUP, DeliveryStatus.GOING_TO_DESTINATION)
