"""
Shared fixtures: zone factories and an in-memory stand-in for the UTM authority
"""

import random

import pytest

from drone_simulator import SimulationScheduler
from fleet import FleetService
from models import Zone, ZoneType
from preauthorization import PreAuthorizationService
from route_generator import MockRouteGenerator
from store import SimulationStore


def make_zone(zone_id, zone_type, min_lat, min_lon, max_lat, max_lon,
              min_altitude=0.0, max_altitude=120.0, active=True, name=None):
    """Rectangular zone in the authority's wire format"""
    return Zone.model_validate({
        "_id": zone_id,
        "name": name or f"{zone_type.name.title()} Zone {zone_id}",
        "zoneType": int(zone_type),
        "boundaries": [
            {"latitude": min_lat, "longitude": min_lon},
            {"latitude": min_lat, "longitude": max_lon},
            {"latitude": max_lat, "longitude": max_lon},
            {"latitude": max_lat, "longitude": min_lon},
        ],
        "minAltitude": min_altitude,
        "maxAltitude": max_altitude,
        "isActive": active,
    })


class FakeUTMClient:
    """Records every call; `errors` maps a method name to the exception it raises"""

    def __init__(self, zones=None):
        self.zones = list(zones or [])
        self.decision = {"preauthorizationStatus": "APPROVED", "reason": ""}
        self.operator_info = {}
        self.errors = {}
        self.calls = []
        self._next_token = 0

    def _record(self, name, payload=None):
        self.calls.append((name, payload))
        error = self.errors.get(name)
        if error is not None:
            raise error

    def calls_to(self, name):
        return [payload for called, payload in self.calls if called == name]

    async def get_zones(self):
        self._record("get_zones")
        return list(self.zones)

    async def check_route_permission(self, characteristics):
        self._record("check_route_permission", characteristics)
        return dict(self.decision, droneId=characteristics.drone_id)

    async def mint_drone(self, payload):
        self._record("mint_drone", payload)
        self._next_token += 1
        return {
            "_id": f"db-{self._next_token}",
            "tokenId": str(self._next_token),
            "maintenanceHash": payload.get("maintenanceHash"),
        }

    async def get_operator_info(self, address):
        self._record("get_operator_info", address)
        return dict(self.operator_info)

    async def get_operator_reputation(self, address):
        self._record("get_operator_reputation", address)
        return {"address": address, "score": 100}

    async def register_operator(self, operator):
        self._record("register_operator", operator)
        return {"operator": operator}

    async def send_location_update(self, location):
        self._record("send_location_update", location)

    async def report_violation(self, drone_id, position):
        self._record("report_violation", (drone_id, position))

    async def log_route(self, payload):
        self._record("log_route", payload)

    async def close(self):
        pass


@pytest.fixture
def urban_zone():
    return make_zone("z-urban", ZoneType.URBAN, 40.70, -74.02, 40.72, -74.00, 0, 120)


@pytest.fixture
def rural_zone():
    return make_zone("z-rural", ZoneType.RURAL, 40.75, -73.98, 40.77, -73.96, 0, 150)


@pytest.fixture
def restricted_zone():
    return make_zone("z-restricted", ZoneType.RESTRICTED, 40.80, -74.02, 40.82, -74.00, 0, 400)


@pytest.fixture
def zones(urban_zone, rural_zone, restricted_zone):
    return [urban_zone, rural_zone, restricted_zone]


@pytest.fixture
def client(zones):
    return FakeUTMClient(zones)


@pytest.fixture
def store():
    return SimulationStore()


@pytest.fixture
def fleet(store, client):
    return FleetService(store, client, operator="op", operator_address="0xop", admin_address="0xadmin")


@pytest.fixture
def preauthorizer(client):
    return PreAuthorizationService(client)


@pytest.fixture
def scheduler(store, client, fleet, preauthorizer):
    rng = random.Random(1234)
    return SimulationScheduler(
        store, client, fleet, preauthorizer,
        generator=MockRouteGenerator(rng),
        rng=rng,
        step_delay=0,
    )
