"""Geospatial helper functions."""

from __future__ import annotations

import math

from ..models.domain import GeoPoint

EARTH_RADIUS_M = 6_371_000.0


def distance_meters(p1: GeoPoint, p2: GeoPoint) -> float:
    """Great-circle (haversine) distance in metres. Use this for every threshold decision."""

    phi1, phi2 = math.radians(p1.latitude), math.radians(p2.latitude)
    d_phi = math.radians(p2.latitude - p1.latitude)
    d_lambda = math.radians(p2.longitude - p1.longitude)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a)) * EARTH_RADIUS_M
