"""
Data Models for the UTM Simulator
Uses Pydantic for validation and serialization
"""

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_serializer, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, FrozenSet, List, Optional, Tuple
from datetime import datetime
from enum import Enum


class ZoneType(int, Enum):
    """Airspace zone classification (wire value is the integer)"""
    RURAL = 0
    URBAN = 1
    HOSPITALS = 2
    MILITARY = 3
    RESTRICTED = 4

    @classmethod
    def parse(cls, value: Any) -> "ZoneType":
        """Accept the integer wire value or the classification name"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and not value.isdigit():
            return cls[value.strip().upper()]
        return cls(int(value))


class DroneType(int, Enum):
    MEDICAL = 0
    CARGO = 1
    SURVEILLANCE = 2
    AGRICULTURAL = 3
    RECREATIONAL = 4
    MAPPING = 5
    MILITARY = 6


class DroneStatus(int, Enum):
    ACTIVE = 0
    MAINTENANCE = 1
    INACTIVE = 2


class PreAuthorizationStatus(str, Enum):
    """Outcome of a pre-authorization request"""
    APPROVED = "APPROVED"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: Any) -> "PreAuthorizationStatus":
        # The authority encodes the status either by name or by ordinal
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return list(cls)[value]
        if isinstance(value, str) and value.isdigit():
            return list(cls)[int(value)]
        return cls(str(value).upper())


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class Zone(BaseModel):
    """
    Geofenced airspace zone as served by the authority

    The closed polygon is computed once at construction; containment checks
    read it and never touch `boundaries`.
    """
    model_config = ConfigDict(populate_by_name=True)

    zone_id: str = Field(alias="_id")
    name: str
    zone_type: ZoneType = Field(alias="zoneType")
    boundaries: List[Coordinates]
    min_altitude: float = Field(alias="minAltitude")
    max_altitude: float = Field(alias="maxAltitude")
    active: bool = Field(True, alias="isActive")
    description: str = ""

    _polygon: Tuple[Tuple[float, float], ...] = PrivateAttr(default=())

    @field_validator("zone_type", mode="before")
    @classmethod
    def _parse_zone_type(cls, value):
        return ZoneType.parse(value)

    @field_validator("boundaries")
    @classmethod
    def _require_polygon(cls, value: List[Coordinates]):
        distinct = {(c.latitude, c.longitude) for c in value}
        if len(distinct) < 3:
            raise ValueError("zone boundary needs at least 3 distinct points")
        return value

    def model_post_init(self, __context: Any) -> None:
        ring = [(c.longitude, c.latitude) for c in self.boundaries]
        if ring[0] != ring[-1]:
            ring.append(ring[0])
        self._polygon = tuple(ring)

    @property
    def polygon(self) -> Tuple[Tuple[float, float], ...]:
        """Closed ring of (lon, lat) vertices"""
        return self._polygon

    def bounding_box(self) -> Tuple[float, float, float, float]:
        """(min_lon, min_lat, max_lon, max_lat)"""
        lons = [p[0] for p in self._polygon]
        lats = [p[1] for p in self._polygon]
        return min(lons), min(lats), max(lons), max(lats)


class Position(BaseModel):
    """3D Position (Lat, Lon, Alt)"""
    latitude: float
    longitude: float
    altitude: float  # meters


class Waypoint(Position):
    """Route point of an authorized flight plan"""
    reached: bool = False


class RequestModel(BaseModel):
    """Inbound body; accepts camelCase keys as sent by clients"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FlightPlanRequest(RequestModel):
    """Candidate route submitted for pre-authorization"""
    route: List[Position] = []
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class PreAuthorizationRequest(RequestModel):
    drone_id: Optional[str] = None
    flight_plan: Optional[FlightPlanRequest] = None


class RouteCharacteristics(BaseModel):
    """Altitude ceiling and intersected zone classifications of a route"""
    drone_id: Optional[str] = None
    zones: FrozenSet[ZoneType] = frozenset()
    altitude_limit: int = 0

    @field_serializer("zones")
    def _serialize_zones(self, zones: FrozenSet[ZoneType]) -> List[int]:
        return sorted(int(z) for z in zones)

    def effective_zones(self) -> FrozenSet[ZoneType]:
        """Zones to authorize against; an uncategorized route is treated as restricted"""
        return self.zones or frozenset({ZoneType.RESTRICTED})

    def for_submission(self) -> "RouteCharacteristics":
        return self.model_copy(update={"zones": self.effective_zones()})

    def to_payload(self) -> dict:
        return {
            "droneId": self.drone_id,
            "zones": self._serialize_zones(self.zones),
            "altitudeLimit": self.altitude_limit,
        }


class Decision(BaseModel):
    """Normalized pre-authorization decision"""
    drone_id: Optional[str] = None
    status: PreAuthorizationStatus
    reason: str = ""

    @property
    def approved(self) -> bool:
        return self.status == PreAuthorizationStatus.APPROVED

    @classmethod
    def failed(cls, drone_id: Optional[str], reason: str) -> "Decision":
        return cls(drone_id=drone_id, status=PreAuthorizationStatus.FAILED, reason=reason)


class FlightPlan(BaseModel):
    """Authorized flight plan with per-waypoint progress"""
    plan_id: str
    drone_id: str
    path: List[Waypoint]
    start_time: datetime
    end_time: datetime
    zones: List[ZoneType]
    finished: bool = False

    def next_waypoint_index(self) -> Optional[int]:
        """Index of the first unreached waypoint, None when all are reached"""
        for index, waypoint in enumerate(self.path):
            if not waypoint.reached:
                return index
        return None


class DroneInput(RequestModel):
    """Drone registration data"""
    serial_number: Optional[str] = None
    model: Optional[str] = None
    drone_type: Optional[DroneType] = None
    cert_hashes: Optional[List[str]] = None
    permitted_zones: Optional[List[ZoneType]] = None
    operator_id: Optional[str] = None
    maintenance_hash: Optional[str] = None
    status: DroneStatus = DroneStatus.ACTIVE

    @field_validator("permitted_zones", mode="before")
    @classmethod
    def _parse_zones(cls, value):
        if value is None:
            return value
        return [ZoneType.parse(z) for z in value]


class Drone(BaseModel):
    """Registered drone"""
    drone_id: str
    serial_number: Optional[str] = None
    model: str
    drone_type: DroneType
    cert_hashes: List[str]
    permitted_zones: List[ZoneType]
    owner_history: List[str]
    maintenance_hash: Optional[str] = None
    status: DroneStatus = DroneStatus.ACTIVE


class TaxId(BaseModel):
    type: str
    value: str


class OperatorInput(RequestModel):
    name: str
    contact_email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None
    tax_ids: List[TaxId] = []


class Operator(BaseModel):
    """Registered operator, identified by its on-chain address"""
    address: str
    name: Optional[str] = None
    contact_email: Optional[str] = None
    country: Optional[str] = None
    tax_ids: List[TaxId] = []


class LocationUpdateRequest(RequestModel):
    drone_id: Optional[str] = None
    position: Optional[Position] = None
    timestamp: Optional[datetime] = None


class Location(BaseModel):
    """Stored telemetry sample"""
    drone_id: str
    timestamp: datetime
    position: Position
