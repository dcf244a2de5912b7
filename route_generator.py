"""
Mock route generator
Synthesizes compliant or deliberately non-compliant routes for the simulator
"""

import logging
import random
from typing import Iterable, List, Optional, Sequence

import config
import geofencing
from geodesy import destination_point, route_length
from models import Position, Zone, ZoneType

logger = logging.getLogger(__name__)


class MockRouteGenerator:
    """
    Random walk route generator

    Valid routes start inside a zone the drone may enter. Invalid routes start
    inside a restricted zone and take one altitude jump above every known
    zone ceiling somewhere in the middle third of the route.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def generate(self, zones: Sequence[Zone], permitted_zones: Iterable[ZoneType],
                 valid: bool) -> List[Position]:
        """
        Generate a route of ROUTE_MIN_POINTS..ROUTE_MAX_POINTS points

        Args:
            zones: Zones currently published by the authority
            permitted_zones: Classifications the drone is allowed to enter
            valid: Whether the route should stay compliant

        Returns:
            Ordered list of positions
        """
        permitted = set(permitted_zones)
        num_points = self.rng.randint(config.ROUTE_MIN_POINTS, config.ROUTE_MAX_POINTS)
        jump_index = None if valid else self.rng.randrange(num_points // 3, (2 * num_points) // 3)
        ceiling = max((zone.max_altitude for zone in zones), default=0.0)

        route = [self.first_point(zones, permitted, valid)]

        for i in range(1, num_points):
            previous = route[-1]
            distance = self.rng.uniform(0, config.ROUTE_STEP_MAX_KM * 1000)
            bearing = self.rng.uniform(0, 360)
            lat, lon = destination_point(previous.latitude, previous.longitude, distance, bearing)

            if i == jump_index:
                altitude = max(previous.altitude, ceiling) + config.INVALID_ALTITUDE_JUMP
                logger.debug(f"Injecting altitude jump at point {i}: {altitude:.1f}m")
            else:
                drift = config.ROUTE_ALTITUDE_DRIFT
                altitude = previous.altitude + self.rng.uniform(-drift, drift)

            route.append(Position(latitude=lat, longitude=lon, altitude=altitude))

        logger.debug(
            f"Generated {'valid' if valid else 'invalid'} route with {len(route)} points, "
            f"{route_length(route) / 1000:.2f} km"
        )
        return route

    def first_point(self, zones: Sequence[Zone], permitted: set, valid: bool) -> Position:
        if valid:
            candidates = [z for z in zones if z.active and z.zone_type in permitted]
        else:
            candidates = [z for z in zones if z.active and z.zone_type == ZoneType.RESTRICTED]

        if candidates:
            target = self.rng.choice(candidates)
            logger.debug(f"Generating first point in zone: {target.name} ({target.zone_type.name})")
            point = self.random_point_in_zone(target)
            if point is not None:
                return point
            logger.warning(f"Could not sample a point inside zone {target.name}. Generating a random point.")
        else:
            logger.warning(
                f"No active zone found for types: {sorted(z.name for z in permitted)}. Generating a random point."
            )

        return self.fallback_point()

    def random_point_in_zone(self, zone: Zone) -> Optional[Position]:
        """Uniform point inside the zone polygon and altitude band, by rejection sampling"""
        min_lon, min_lat, max_lon, max_lat = zone.bounding_box()

        for _ in range(config.POINT_SAMPLING_ATTEMPTS):
            lon = self.rng.uniform(min_lon, max_lon)
            lat = self.rng.uniform(min_lat, max_lat)
            if geofencing.point_in_polygon((lon, lat), zone.polygon):
                altitude = self.rng.uniform(zone.min_altitude, zone.max_altitude)
                return Position(latitude=lat, longitude=lon, altitude=altitude)

        return None

    def fallback_point(self) -> Position:
        region = config.FALLBACK_REGION
        return Position(
            latitude=self.rng.uniform(region['min_lat'], region['max_lat']),
            longitude=self.rng.uniform(region['min_lon'], region['max_lon']),
            altitude=self.rng.uniform(region['min_alt'], region['max_alt']),
        )
