"""HTTP client for the route-geometry (directions) collaborator."""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

import httpx

from ...config import settings
from ...errors import RoutingRequestError, TransientSyncError
from ...models.domain import GeoPoint
from .route_tracker import RouteGeometry

logger = logging.getLogger(__name__)


class RouteGeometryClient:
    """Fetches a full leg geometry from an OSRM-compatible ``/route`` endpoint.

    There is no incremental update: every call (initial route or reroute)
    returns a complete replacement geometry.
    """

    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url or settings.routing_base_url
        if not self.base_url:
            raise ValueError("Routing base URL is not configured.")
        self.base_url = self.base_url.rstrip("/")
        self.profile = profile or settings.routing_profile
        self.timeout = timeout if timeout is not None else settings.routing_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.routing_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.routing_backoff_seconds
        self._transport = transport
        self._sleep = sleep

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    def route(self, waypoints: Sequence[GeoPoint]) -> RouteGeometry:
        """Return the route through ``waypoints`` as ``(lon, lat)`` vertices.

        An empty geometry is returned when the service finds no route.
        Timeouts, network errors and 5xx responses are retried and raise
        ``TransientSyncError`` once retries are exhausted. A request the service
        rejects (4xx or an invalid-request code) raises ``RoutingRequestError``
        straight away.
        """
        if len(waypoints) < 2:
            raise ValueError("At least two waypoints are required for a route.")

        coordinate_str = ";".join(f"{point.longitude},{point.latitude}" for point in waypoints)
        params = {
            "overview": "full",
            "geometries": "geojson",
            "steps": "false",
        }
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    if response.is_client_error:
                        raise RoutingRequestError(_error_message(response), status_code=response.status_code)
                    response.raise_for_status()
                    data = response.json()
                except (httpx.TimeoutException, httpx.NetworkError, httpx.HTTPStatusError, ValueError) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Route request failed after {attempt} attempts: {exc}")
                        raise TransientSyncError("route geometry", attempts=attempt, reason=str(exc)) from exc
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Route request error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {exc}")
                    self._sleep(wait_time)
                    continue
                return _parse_route(data)
        finally:
            client.close()


def _parse_route(data: dict) -> RouteGeometry:
    code = data.get("code")
    if code in ("NoRoute", "NoSegment"):
        logger.warning(f"Routing service found no route: {data.get('message', code)}")
        return RouteGeometry()
    if code != "Ok":
        raise RoutingRequestError(f"{code}: {data.get('message', 'Unknown routing error')}")
    routes = data.get("routes") or []
    if not routes:
        return RouteGeometry()
    return RouteGeometry.from_coordinates(routes[0].get("geometry", {}).get("coordinates"))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        code = body.get("code")
        message = body.get("message")
        if code and message:
            return f"{code}: {message}"
        return str(message or code or response.reason_phrase)
    return response.reason_phrase


def check_health(base_url: str | None = None, transport: httpx.BaseTransport | None = None) -> bool:
    """Check the routing service with a minimal two-point route request."""
    base = base_url or settings.routing_base_url
    if not base:
        return False
    try:
        client = RouteGeometryClient(base_url=base, max_retries=0, timeout=5.0, transport=transport)
        geometry = client.route([GeoPoint(52.517037, 13.388860), GeoPoint(52.496891, 13.385983)])
        return not geometry.is_empty
    except (TransientSyncError, RoutingRequestError):
        return False
