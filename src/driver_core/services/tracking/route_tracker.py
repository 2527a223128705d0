"""Snap live positions onto the planned route and classify adherence."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from shapely.geometry import LineString, Point

from ...config import settings
from ...models.domain import GeoPoint, PositionFix
from ..geospatial import distance_meters
from .reroute import RerouteDebouncer

logger = logging.getLogger(__name__)

Vertex = tuple[float, float]


@dataclass(slots=True, frozen=True)
class RouteGeometry:
    """Ordered ``(lon, lat)`` vertices for one leg. Replaced wholesale on reroute."""

    vertices: tuple[Vertex, ...] = ()

    @classmethod
    def from_coordinates(cls, coordinates: Optional[Iterable[Sequence[float]]]) -> "RouteGeometry":
        if not coordinates:
            return cls()
        return cls(tuple((float(vertex[0]), float(vertex[1])) for vertex in coordinates))

    def __len__(self) -> int:
        return len(self.vertices)

    @property
    def is_empty(self) -> bool:
        return not self.vertices

    def to_linestring(self) -> LineString:
        if len(self.vertices) < 2:
            raise ValueError("A route line needs at least two vertices.")
        return LineString(self.vertices)

    def to_coordinates(self) -> list[list[float]]:
        return [[lon, lat] for lon, lat in self.vertices]


GeometryLike = Union[RouteGeometry, Sequence[Sequence[float]]]


@dataclass(slots=True, frozen=True)
class TrackingUpdate:
    raw: GeoPoint
    snapped: GeoPoint
    off_route_distance_meters: float
    off_route: bool
    arrived: bool
    progress: float
    stale: bool
    should_reroute: bool


def snap_to_route(point: GeoPoint, geometry: GeometryLike) -> GeoPoint:
    """Nearest point of the route polyline to ``point``.

    Segments are ranked with planar distance in degree space, which is fine for
    picking the closest segment over short distances but must not be used for
    thresholds. An empty route returns ``point`` unchanged; a single vertex
    snaps everything onto it.
    """

    vertices = _vertices(geometry)
    if not vertices:
        return point
    if len(vertices) == 1:
        return GeoPoint.from_lon_lat(vertices[0])
    _, snapped = _nearest_on_route(point, vertices)
    return snapped


def is_off_route(raw_fix: GeoPoint, geometry: GeometryLike, threshold_meters: float) -> bool:
    return distance_meters(raw_fix, snap_to_route(raw_fix, geometry)) > threshold_meters


def has_arrived(point: GeoPoint, destination: GeoPoint, radius_meters: float | None = None) -> bool:
    radius = radius_meters if radius_meters is not None else settings.arrival_radius_meters
    return distance_meters(point, destination) <= radius


def route_progress(point: GeoPoint, geometry: GeometryLike) -> float:
    """Fraction of the route already covered, measured at the snapped position."""

    route = _as_geometry(geometry)
    if len(route) < 2:
        return 0.0
    line = route.to_linestring()
    if line.length == 0:
        return 0.0
    fraction = line.project(Point(point.longitude, point.latitude), normalized=True)
    return min(max(float(fraction), 0.0), 1.0)


def remaining_distance_meters(point: GeoPoint, geometry: GeometryLike) -> float:
    """Haversine length from the snapped position to the end of the route."""

    vertices = _vertices(geometry)
    if not vertices:
        return 0.0
    if len(vertices) == 1:
        return distance_meters(point, GeoPoint.from_lon_lat(vertices[0]))

    index, snapped = _nearest_on_route(point, vertices)
    remaining = distance_meters(snapped, GeoPoint.from_lon_lat(vertices[index + 1]))
    for start, end in zip(vertices[index + 1 :], vertices[index + 2 :]):
        remaining += distance_meters(GeoPoint.from_lon_lat(start), GeoPoint.from_lon_lat(end))
    return remaining


class RouteTracker:
    """Per-leg tracker fed with every position fix.

    Fixes can arrive late or twice. A fix older than (or identical to) the last
    accepted one is reported as stale and never triggers a reroute or an
    arrival.
    """

    def __init__(
        self,
        geometry: GeometryLike | None = None,
        destination: GeoPoint | None = None,
        *,
        threshold_meters: float | None = None,
        arrival_radius_meters: float | None = None,
        debouncer: RerouteDebouncer | None = None,
    ) -> None:
        self.geometry = _as_geometry(geometry)
        self.destination = destination
        self.threshold_meters = threshold_meters if threshold_meters is not None else settings.off_route_threshold_meters
        self.arrival_radius_meters = (
            arrival_radius_meters if arrival_radius_meters is not None else settings.arrival_radius_meters
        )
        self.debouncer = debouncer or RerouteDebouncer()
        self._last_fix: Optional[PositionFix] = None

    def set_geometry(self, geometry: GeometryLike, destination: GeoPoint | None = None) -> None:
        self.geometry = _as_geometry(geometry)
        if destination is not None:
            self.destination = destination

    def reset(self) -> None:
        """Forget fix history and pending reroute state (logout or terminal delivery)."""

        self._last_fix = None
        self.debouncer.reset()

    @property
    def last_fix(self) -> Optional[PositionFix]:
        return self._last_fix

    def process_fix(self, fix: PositionFix) -> TrackingUpdate:
        raw = fix.point
        snapped = snap_to_route(raw, self.geometry)
        off_distance = distance_meters(raw, snapped)
        off_route = off_distance > self.threshold_meters
        progress = route_progress(raw, self.geometry)

        stale = self._is_stale(fix)
        if stale:
            logger.debug(f"Ignoring stale fix at {fix.timestamp.isoformat()}")
            return TrackingUpdate(
                raw=raw,
                snapped=snapped,
                off_route_distance_meters=off_distance,
                off_route=off_route,
                arrived=False,
                progress=progress,
                stale=True,
                should_reroute=False,
            )

        self._last_fix = fix
        arrived = self.destination is not None and has_arrived(snapped, self.destination, self.arrival_radius_meters)
        should_reroute = False
        if off_route and not self.geometry.is_empty:
            should_reroute = self.debouncer.should_trigger(fix)
            if should_reroute:
                logger.info(f"Off route by {off_distance:.1f}m, reroute requested")

        return TrackingUpdate(
            raw=raw,
            snapped=snapped,
            off_route_distance_meters=off_distance,
            off_route=off_route,
            arrived=arrived,
            progress=progress,
            stale=False,
            should_reroute=should_reroute,
        )

    def _is_stale(self, fix: PositionFix) -> bool:
        last = self._last_fix
        if last is None:
            return False
        if fix.timestamp < last.timestamp:
            return True
        return fix == last


def _as_geometry(geometry: GeometryLike | None) -> RouteGeometry:
    if isinstance(geometry, RouteGeometry):
        return geometry
    return RouteGeometry.from_coordinates(geometry)


def _vertices(geometry: GeometryLike) -> Sequence[Sequence[float]]:
    if isinstance(geometry, RouteGeometry):
        return geometry.vertices
    return geometry or ()


def _nearest_on_route(point: GeoPoint, vertices: Sequence[Sequence[float]]) -> tuple[int, GeoPoint]:
    """Closest point over all segments; ties go to the lowest segment index."""

    px, py = point.longitude, point.latitude
    best_index = 0
    best: Vertex = (float(vertices[0][0]), float(vertices[0][1]))
    best_distance = float("inf")

    for index in range(len(vertices) - 1):
        ax, ay = float(vertices[index][0]), float(vertices[index][1])
        bx, by = float(vertices[index + 1][0]), float(vertices[index + 1][1])
        dx, dy = bx - ax, by - ay
        length_sq = dx * dx + dy * dy
        if length_sq == 0:
            cx, cy = ax, ay
        else:
            t = ((px - ax) * dx + (py - ay) * dy) / length_sq
            t = min(max(t, 0.0), 1.0)
            cx, cy = ax + t * dx, ay + t * dy

        planar = ((px - cx) ** 2 + (py - cy) ** 2) ** 0.5
        if planar < best_distance:
            best_distance = planar
            best_index = index
            best = (cx, cy)

    return best_index, GeoPoint(latitude=best[1], longitude=best[0])
