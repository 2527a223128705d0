"""Route tracking endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from ...config import settings
from ...models.domain import GeoPoint
from ...schemas.tracking import PointModel, SnapRequest, SnapResponse
from ...services.geospatial import distance_meters
from ...services.tracking.route_tracker import (
    RouteGeometry,
    has_arrived,
    remaining_distance_meters,
    route_progress,
    snap_to_route,
)

router = APIRouter(prefix="/tracking", tags=["tracking"])


@router.post("/snap", response_model=SnapResponse)
def snap_fix(payload: SnapRequest) -> SnapResponse:
    raw = GeoPoint(latitude=payload.fix.latitude, longitude=payload.fix.longitude)
    geometry = RouteGeometry.from_coordinates(payload.geometry)
    threshold = payload.threshold_meters or settings.off_route_threshold_meters

    snapped = snap_to_route(raw, geometry)
    distance = distance_meters(raw, snapped)

    arrived = None
    if payload.destination is not None:
        destination = GeoPoint(latitude=payload.destination.latitude, longitude=payload.destination.longitude)
        arrived = has_arrived(snapped, destination)

    return SnapResponse(
        snapped=PointModel(latitude=snapped.latitude, longitude=snapped.longitude),
        distance_meters=distance,
        off_route=distance > threshold,
        threshold_meters=threshold,
        progress=route_progress(raw, geometry),
        remaining_distance_meters=remaining_distance_meters(raw, geometry),
        arrived=arrived,
    )
