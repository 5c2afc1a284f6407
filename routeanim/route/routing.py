"""
Routing oracle client.

Looks up realistic road geometry for ground segments from an OSRM
server and synthesizes flight arcs for planes. A lookup never raises:
network errors, empty answers and an open circuit breaker all degrade
to a straight two-point line.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import requests

from routeanim.config import settings
from routeanim.geometry import Coordinates, arc_path, path_length
from routeanim.resilience import CircuitBreaker, CircuitOpenError, routing_breaker, with_retry
from routeanim.route.model import EditResult, EditStatus, RouteModel
from routeanim.route.models import as_coordinates, as_path
from routeanim.route.transport import TransportMode

logger = logging.getLogger(__name__)

# OSRM has no rail or motorcycle profile; road driving is the closest match
OSRM_PROFILES = {
    TransportMode.CAR: "driving",
    TransportMode.MOTORCYCLE: "driving",
    TransportMode.TRAIN: "driving",
}


class RouteSource(str, Enum):
    ORACLE = "oracle"
    ARC = "arc"
    FALLBACK = "fallback"


class RoutingError(Exception):
    """The routing service answered with something unusable."""
    pass


@dataclass(frozen=True)
class RouteLookup:
    """Geometry for one segment plus where it came from."""
    path: Tuple[Coordinates, ...]
    source: RouteSource
    distance_m: Optional[float] = None
    duration_s: Optional[float] = None
    error: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source is RouteSource.FALLBACK


class RoutingClient:
    """
    OSRM route lookups with retry, circuit breaking and a straight-line fallback.

    Args:
        base_url: OSRM server root (defaults to ROUTEANIM_OSRM_URL)
        timeout: Per-request timeout in seconds
        enabled: When False every ground lookup falls back immediately
        session: requests session to use (mainly for tests)
        breaker: Circuit breaker guarding the service
        max_attempts: Attempts per lookup before giving up
        retry_wait: Minimum backoff between attempts, in seconds
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        enabled: Optional[bool] = None,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
        max_attempts: int = 3,
        retry_wait: float = 0.5,
    ):
        self.base_url = (base_url or settings.osrm_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.routing_timeout_s
        self.enabled = settings.routing_enabled if enabled is None else enabled
        self.session = session or requests.Session()
        self.breaker = breaker or routing_breaker

        fetch = with_retry(
            max_attempts=max_attempts,
            min_wait=retry_wait,
            max_wait=5.0,
            exceptions=(requests.RequestException,),
            clock=self.breaker.clock,
        )(self._request)
        self._fetch = self.breaker(fetch)

    def _request(self, start: Coordinates, end: Coordinates, profile: str) -> Optional[RouteLookup]:
        coords = f"{start[0]},{start[1]};{end[0]},{end[1]}"
        url = f"{self.base_url}/route/v1/{profile}/{coords}"

        response = self.session.get(
            url,
            params={"overview": "full", "geometries": "geojson"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        code = data.get("code")
        if code == "NoRoute" or not data.get("routes"):
            return None
        if code != "Ok":
            raise RoutingError(f"OSRM answered {code}: {data.get('message', '')}")

        route = data["routes"][0]
        path = as_path(route["geometry"]["coordinates"])
        if len(path) < 2:
            raise RoutingError(f"OSRM returned a {len(path)}-point geometry")

        return RouteLookup(
            path=path,
            source=RouteSource.ORACLE,
            distance_m=route.get("distance"),
            duration_s=route.get("duration"),
        )

    @staticmethod
    def _fallback(start: Coordinates, end: Coordinates, error: str) -> RouteLookup:
        return RouteLookup(path=(start, end), source=RouteSource.FALLBACK, error=error)

    def lookup(self, start, end, mode=TransportMode.CAR) -> RouteLookup:
        """
        Geometry for a segment from ``start`` to ``end``.

        Args:
            start: Start (lon, lat)
            end: End (lon, lat)
            mode: Transport mode; planes get a synthetic arc

        Returns:
            RouteLookup; ``source`` tells whether the path came from the
            oracle, the arc generator or the straight-line fallback
        """
        start = as_coordinates(start)
        end = as_coordinates(end)
        mode = TransportMode(mode)

        if mode.is_flight:
            path = tuple(arc_path(start, end))
            return RouteLookup(
                path=path,
                source=RouteSource.ARC,
                distance_m=path_length(path) * 1000.0,
            )

        if not self.enabled:
            return self._fallback(start, end, "routing disabled")

        try:
            result = self._fetch(start, end, OSRM_PROFILES[mode])
        except CircuitOpenError as e:
            logger.warning(f"Routing skipped: {e}")
            return self._fallback(start, end, str(e))
        except Exception as e:
            logger.warning(f"Routing lookup {start} -> {end} failed, using straight line: {e}")
            return self._fallback(start, end, str(e))

        if result is None:
            logger.info(f"No {mode.value} route found between {start} and {end}")
            return self._fallback(start, end, "no route found")

        logger.debug(f"Routed {start} -> {end}: {len(result.path)} points, {result.distance_m} m")
        return result


def refresh_segments(
    model: RouteModel,
    client: RoutingClient,
    segment_ids: Optional[Iterable[str]] = None,
) -> List[EditResult]:
    """
    Look up fresh geometry for segments and apply it to the model.

    Lookups run without holding the model lock; a segment removed in the
    meantime reports ``not_found``.

    Args:
        model: Route Model to update
        client: Routing client
        segment_ids: Segments to refresh (all segments when omitted)

    Returns:
        One EditResult per requested segment
    """
    route = model.route
    if route is None:
        return [EditResult(EditStatus.NO_ROUTE)]

    wanted = list(segment_ids) if segment_ids is not None else [seg.id for seg in route.segments]
    results = []
    for segment_id in wanted:
        segment = route.get_segment(segment_id)
        if segment is None:
            results.append(EditResult(EditStatus.NOT_FOUND, segment_id))
            continue

        start = route.get_waypoint(segment.start_waypoint_id).coordinates
        end = route.get_waypoint(segment.end_waypoint_id).coordinates
        lookup = client.lookup(start, end, segment.transport_mode)
        results.append(
            model.set_segment_path(segment_id, lookup.path, lookup.distance_m, lookup.duration_s)
        )

    return results
