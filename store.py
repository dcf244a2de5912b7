"""
In-memory simulation store
Drones, operators, flight plans and telemetry samples for one simulation run
"""

import asyncio
import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Deque, Dict, Iterable, List, Optional, Sequence

import config
from exceptions import FlightPlanStoreError
from models import Drone, FlightPlan, Location, Operator, Position, Waypoint, ZoneType

logger = logging.getLogger(__name__)


class SimulationStore:
    """
    Volatile store shared by the API and the scheduler

    Registration appends are serialized by `registry_lock`; each flight plan
    has its own lock so only one writer advances it at a time.
    """

    def __init__(self):
        self.drones: List[Drone] = []
        self.operators: List[Operator] = []
        self.flight_plans: List[FlightPlan] = []
        self.locations: Deque[Location] = deque(maxlen=config.LOCATION_HISTORY_LIMIT)
        self.registry_lock = asyncio.Lock()
        self._plan_locks: Dict[str, asyncio.Lock] = {}

    def reset(self):
        self.drones = []
        self.operators = []
        self.flight_plans = []
        self.locations = deque(maxlen=config.LOCATION_HISTORY_LIMIT)
        self._plan_locks = {}

    # ------------------------------------------------------------------
    # Drones and operators
    # ------------------------------------------------------------------

    def add_drone(self, drone: Drone) -> Drone:
        self.drones.append(drone)
        return drone

    def add_operator(self, operator: Operator) -> Operator:
        self.operators.append(operator)
        return operator

    def get_drone(self, drone_id: str) -> Optional[Drone]:
        for drone in self.drones:
            if drone.drone_id == drone_id:
                return drone
        return None

    def latest_operator(self) -> Optional[Operator]:
        return self.operators[-1] if self.operators else None

    # ------------------------------------------------------------------
    # Flight plans
    # ------------------------------------------------------------------

    def authorize_flight_plan(self, drone_id: str, route: Sequence[Position],
                              start_time: datetime, end_time: datetime,
                              zones: Iterable[ZoneType]) -> FlightPlan:
        """
        Store a newly authorized flight plan

        The record is fully built before it is appended, so a failure never
        leaves a partial plan visible. The stored object itself is returned.

        Raises:
            FlightPlanStoreError: if the plan cannot be built or appended
        """
        try:
            plan = FlightPlan(
                plan_id=uuid.uuid4().hex,
                drone_id=drone_id,
                path=[
                    Waypoint(latitude=p.latitude, longitude=p.longitude, altitude=p.altitude)
                    for p in route
                ],
                start_time=start_time,
                end_time=end_time,
                zones=sorted(set(zones)),
            )
            self.flight_plans.append(plan)
        except Exception as e:
            logger.error(f"Error authorizing flight plan for drone {drone_id}: {e}")
            raise FlightPlanStoreError("Flight plan authorization failed") from e

        self._plan_locks[plan.plan_id] = asyncio.Lock()
        logger.info(f"Flight plan {plan.plan_id} authorized for drone {drone_id} ({len(plan.path)} waypoints)")
        return plan

    def unfinished_flight_plans(self) -> List[FlightPlan]:
        return [plan for plan in self.flight_plans if not plan.finished]

    def plan_lock(self, plan_id: str) -> asyncio.Lock:
        return self._plan_locks.setdefault(plan_id, asyncio.Lock())

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def add_location(self, location: Location) -> Location:
        self.locations.append(location)
        return location
