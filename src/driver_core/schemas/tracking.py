"""Tracking request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class PointModel(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class SnapRequest(BaseModel):
    fix: PointModel
    geometry: List[List[float]] = Field(default_factory=list, description="Route vertices as [lon, lat] pairs.")
    threshold_meters: Optional[float] = Field(default=None, gt=0)
    destination: Optional[PointModel] = None

    @field_validator("geometry")
    @classmethod
    def _check_vertices(cls, value: List[List[float]]) -> List[List[float]]:
        for vertex in value:
            if len(vertex) != 2:
                raise ValueError("Each route vertex must be a [lon, lat] pair.")
            lon, lat = vertex
            if not (-180 <= lon <= 180 and -90 <= lat <= 90):
                raise ValueError(f"Route vertex {vertex} is outside longitude / latitude bounds.")
        return value


class SnapResponse(BaseModel):
    snapped: PointModel
    distance_meters: float
    off_route: bool
    threshold_meters: float
    progress: float
    remaining_distance_meters: float
    arrived: Optional[bool] = None
