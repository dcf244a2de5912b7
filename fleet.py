"""
Fleet operations
Drone and operator registration plus telemetry emission towards the authority
"""

import logging
from typing import List, Optional

import config
from exceptions import (
    DroneRegistrationError, InvalidRequestError, OperatorRegistrationError,
    TelemetryError, UpstreamError,
)
from models import (
    Drone, DroneInput, FlightPlan, Location, LocationUpdateRequest,
    Operator, OperatorInput, Position,
)
from store import SimulationStore

logger = logging.getLogger(__name__)


class FleetService:
    """Registers drones/operators and forwards telemetry; failures are raised"""

    def __init__(self, store: SimulationStore, client,
                 operator: str = config.OPERATOR,
                 operator_address: str = config.OPERATOR_ADDRESS,
                 admin_address: str = config.ADMIN_ADDRESS):
        self.store = store
        self.client = client
        self.operator = operator
        self.operator_address = operator_address
        self.admin_address = admin_address

    # ------------------------------------------------------------------
    # Drones
    # ------------------------------------------------------------------

    async def add_mock_drone(self, drone: DroneInput) -> dict:
        """
        Mint a drone on the backend and keep it in the store

        Raises:
            InvalidRequestError: missing fields or empty certificate hashes
            DroneRegistrationError: minting failed; nothing is stored
        """
        logger.info(f"Adding mock drone: {drone.model} for operator: {drone.operator_id}")

        if not drone.model or drone.drone_type is None or not drone.permitted_zones or not drone.operator_id:
            logger.error("Invalid drone data: missing required fields")
            raise InvalidRequestError("Invalid drone data")

        if not drone.cert_hashes or not all(isinstance(h, str) for h in drone.cert_hashes):
            logger.error(f"Invalid certHashes: must be a non-empty array of strings. Got: {drone.cert_hashes}")
            raise InvalidRequestError("certHashes must be a non-empty array of strings")

        payload = {
            "model": drone.model,
            "droneType": int(drone.drone_type),
            "permittedZones": [int(z) for z in drone.permitted_zones],
            "ownerHistory": [drone.operator_id],
            "serialNumber": drone.serial_number,
            "certHashes": drone.cert_hashes,
            "maintenanceHash": drone.maintenance_hash,
            "status": int(drone.status),
        }

        try:
            minted = await self.client.mint_drone(payload)
            token_id = minted.get("tokenId")
            if token_id is None:
                raise UpstreamError("Mint response carries no tokenId")
        except UpstreamError as e:
            logger.error(f"Error adding drone to blockchain: {e}")
            raise DroneRegistrationError("Failed to add drone to blockchain") from e

        stored = self.store.add_drone(Drone(
            drone_id=str(token_id),
            serial_number=drone.serial_number,
            model=drone.model,
            drone_type=drone.drone_type,
            cert_hashes=list(drone.cert_hashes),
            permitted_zones=list(drone.permitted_zones),
            owner_history=[drone.operator_id],
            maintenance_hash=minted.get("maintenanceHash", drone.maintenance_hash),
            status=drone.status,
        ))

        result = {
            "status": "success",
            "message": "Drone added successfully",
            "droneId": stored.drone_id,
        }
        logger.info(f"Mock drone creation completed successfully: {result}")
        return result

    def get_mock_drones(self) -> List[Drone]:
        logger.debug(f"Retrieving {len(self.store.drones)} mock drones from database")
        return self.store.drones

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def _operator_record(self, operator: Optional[OperatorInput]) -> Operator:
        if operator is None:
            return Operator(address=self.operator_address)
        return Operator(
            address=self.operator_address,
            name=operator.name,
            contact_email=operator.contact_email,
            country=operator.country,
            tax_ids=operator.tax_ids,
        )

    async def add_mock_operator(self, operator: Optional[OperatorInput] = None) -> dict:
        """
        Register the configured operator unless the backend already knows it

        A failing "already registered" lookup is logged and registration proceeds.

        Raises:
            OperatorRegistrationError: reputation lookup or registration failed
        """
        address = self.operator_address

        try:
            existing = await self.client.get_operator_info(address)
        except UpstreamError as e:
            logger.error(f"Error checking existing operator: {e}")
            existing = {}

        if existing.get("registered"):
            if not self.store.operators:
                self.store.add_operator(self._operator_record(operator))
            logger.warning(f"Operator already exists: {self.operator}, existing operator: {existing}")

            try:
                reputation = await self.client.get_operator_reputation(address)
            except UpstreamError as e:
                logger.error(f"Error checking operator reputation: {e}")
                raise OperatorRegistrationError("Failed to check operator reputation") from e
            logger.info(f"Operator reputation retrieved successfully: {reputation}")

            return {
                "status": "warning",
                "message": "Operator already exists",
                "operator": existing,
            }

        try:
            await self.client.register_operator(self.operator)
        except UpstreamError as e:
            logger.error(f"Error adding operator to blockchain: {e}")
            raise OperatorRegistrationError("Failed to add operator to blockchain") from e

        self.store.add_operator(self._operator_record(operator))
        result = {
            "status": "success",
            "message": "Operator added successfully",
            "operator": self.operator,
        }
        logger.info(f"Mock operator creation completed successfully: {result}")
        return result

    def get_mock_operators(self) -> List[Operator]:
        logger.debug(f"Retrieving {len(self.store.operators)} mock operators from database")
        return self.store.operators

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    async def location_update(self, request: LocationUpdateRequest) -> Location:
        """
        Store a telemetry sample, then forward it

        The local record is kept even when forwarding fails.

        Raises:
            InvalidRequestError: missing droneId, position or timestamp
            TelemetryError: forwarding failed
        """
        if not request.drone_id or request.position is None or request.timestamp is None:
            logger.error("Invalid location update request: missing required fields")
            raise InvalidRequestError("droneId, position, and timestamp are required")

        location = self.store.add_location(Location(
            drone_id=request.drone_id,
            timestamp=request.timestamp,
            position=request.position,
        ))
        logger.debug(
            f"Location stored for drone {request.drone_id}: lat={location.position.latitude}, "
            f"lon={location.position.longitude}, alt={location.position.altitude}"
        )

        try:
            await self.client.send_location_update(location)
        except UpstreamError as e:
            logger.error(f"Error sending location update for drone {request.drone_id}: {e}")
            raise TelemetryError(f"Failed to send location update to backend: {e}") from e

        return location

    async def send_violation(self, drone_id: str, position: Position):
        try:
            await self.client.report_violation(drone_id, position)
        except UpstreamError as e:
            logger.error(f"Error sending violation to backend: {e}")
            raise TelemetryError("Failed to send violation to backend") from e
        logger.info(f"Violation sent for drone {drone_id}")

    async def complete_flight_plan(self, plan: FlightPlan):
        """Send the route log of a finished flight plan"""
        if not plan.path:
            raise TelemetryError(f"Flight plan {plan.plan_id} has no path")

        start, end = plan.path[0], plan.path[-1]
        drone_id = int(plan.drone_id) if plan.drone_id.isdigit() else plan.drone_id
        payload = {
            "droneId": drone_id,
            "utmAuthorizer": self.admin_address,
            "zones": [int(z) for z in plan.zones],
            "startPoint": {"latitude": start.latitude, "longitude": start.longitude},
            "endPoint": {"latitude": end.latitude, "longitude": end.longitude},
            "route": [{"latitude": p.latitude, "longitude": p.longitude} for p in plan.path],
            "startTime": int(plan.start_time.timestamp()),
            "endTime": int(plan.end_time.timestamp()),
            "status": 0,  # completed
        }

        try:
            await self.client.log_route(payload)
        except UpstreamError as e:
            logger.error(f"Error completing flight plan on backend: {e}")
            raise TelemetryError("Failed to complete flight plan on backend") from e
        logger.info(f"Flight plan {plan.plan_id} completed successfully")
