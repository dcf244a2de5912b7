"""
Geofencing Module
Point-in-zone tests against authority-defined airspace zones
Uses ray-casting algorithm for point-in-polygon tests
"""

from typing import Iterable, List, Sequence, Tuple
from models import Position, Zone

EPSILON = 1e-12


def closed_ring(vertices: Sequence[Tuple[float, float]]) -> Tuple[Tuple[float, float], ...]:
    """Return the vertices as a closed ring without modifying the input"""
    ring = tuple(vertices)
    if ring and ring[0] != ring[-1]:
        ring = ring + (ring[0],)
    return ring


def point_on_segment(point: Tuple[float, float],
                     start: Tuple[float, float],
                     end: Tuple[float, float]) -> bool:
    x, y = point
    x1, y1 = start
    x2, y2 = end

    cross = (x - x1) * (y2 - y1) - (y - y1) * (x2 - x1)
    if abs(cross) > EPSILON:
        return False

    return (min(x1, x2) - EPSILON <= x <= max(x1, x2) + EPSILON and
            min(y1, y2) - EPSILON <= y <= max(y1, y2) + EPSILON)


def point_in_polygon(point: Tuple[float, float], polygon: Sequence[Tuple[float, float]]) -> bool:
    """
    Ray-casting algorithm to determine if a point is inside a polygon

    Points lying on an edge or a vertex count as inside.

    Args:
        point: (longitude, latitude)
        polygon: (longitude, latitude) vertices, closed or not

    Returns:
        True if point is inside or on the boundary, False otherwise
    """
    ring = closed_ring(polygon)
    if len(ring) < 4:
        return False

    x, y = point
    inside = False

    for (x1, y1), (x2, y2) in zip(ring, ring[1:]):
        if point_on_segment(point, (x1, y1), (x2, y2)):
            return True

        if (y1 > y) != (y2 > y):
            x_intersect = (x2 - x1) * (y - y1) / (y2 - y1) + x1
            if x < x_intersect:
                inside = not inside

    return inside


def is_within_altitude_band(zone: Zone, altitude: float) -> bool:
    return zone.min_altitude <= altitude <= zone.max_altitude


def zone_contains(zone: Zone, position: Position) -> bool:
    """
    Check whether a position lies inside a zone

    Inactive zones never contain anything. The altitude band is inclusive.
    """
    if not zone.active:
        return False

    if not is_within_altitude_band(zone, position.altitude):
        return False

    return point_in_polygon((position.longitude, position.latitude), zone.polygon)


def zones_containing(zones: Iterable[Zone], position: Position) -> List[Zone]:
    """All zones that contain the position"""
    return [zone for zone in zones if zone_contains(zone, position)]
