"""Route tracking services."""

from .reroute import RerouteDebouncer
from .route_tracker import (
    RouteGeometry,
    RouteTracker,
    TrackingUpdate,
    has_arrived,
    is_off_route,
    remaining_distance_meters,
    route_progress,
    snap_to_route,
)

__all__ = [
    "RerouteDebouncer",
    "RouteGeometry",
    "RouteTracker",
    "TrackingUpdate",
    "snap_to_route",
    "is_off_route",
    "has_arrived",
    "route_progress",
    "remaining_distance_meters",
]
