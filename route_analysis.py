"""
Route characterization
Reduces a flight path to its altitude ceiling and the zone classifications it crosses
"""

import logging
import math
from typing import Optional, Sequence, Set

import geofencing
from models import Position, RouteCharacteristics, Zone, ZoneType

logger = logging.getLogger(__name__)


def altitude_ceiling(route: Sequence[Position]) -> int:
    """Highest altitude along the route, floored; 0 for an empty route"""
    if not route:
        return 0
    return math.floor(max(point.altitude for point in route))


def characterize_route(drone_id: Optional[str],
                       route: Sequence[Position],
                       zones: Sequence[Zone]) -> RouteCharacteristics:
    """
    Compute the route characteristics against a zone set

    Args:
        drone_id: Drone the route belongs to
        route: Ordered route points
        zones: Zones as served by the authority

    Returns:
        RouteCharacteristics with the raw (possibly empty) zone set
    """
    found: Set[ZoneType] = set()

    for index, point in enumerate(route):
        logger.debug(
            f"Checking zones for route point {index + 1}/{len(route)}: "
            f"lat={point.latitude}, lon={point.longitude}, alt={point.altitude}"
        )
        # Zones of an already known classification are not tested again
        pending = [zone for zone in zones if zone.zone_type not in found]
        for zone in geofencing.zones_containing(pending, point):
            logger.debug(f"Route passes through zone: {zone.name} ({zone.zone_type.name})")
            found.add(zone.zone_type)

    characteristics = RouteCharacteristics(
        drone_id=drone_id,
        zones=frozenset(found),
        altitude_limit=altitude_ceiling(route),
    )
    logger.info(
        f"Route analysis complete. Zones: [{', '.join(z.name for z in sorted(found))}], "
        f"Altitude limit: {characteristics.altitude_limit}"
    )
    return characteristics


class RouteAnalyzer:
    """Characterizes routes against the zones currently published by the authority"""

    def __init__(self, client):
        self.client = client

    async def get_route_characteristics(self, drone_id: Optional[str],
                                        route: Sequence[Position]) -> RouteCharacteristics:
        # UpstreamError propagates: no zones means no characterization
        zones = await self.client.get_zones()
        return characterize_route(drone_id, route, zones)
