"""
Flight Simulation Scheduler
Two periodic loops: one registers the mock fleet and pushes routes through
pre-authorization, the other plays back telemetry along authorized flight plans
"""

import asyncio
import logging
import random
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

import config
from exceptions import UTMError
from fleet import FleetService
from models import (
    DroneInput, DroneType, FlightPlan, FlightPlanRequest, LocationUpdateRequest,
    OperatorInput, Position, PreAuthorizationRequest, ZoneType,
)
from preauthorization import PreAuthorizationService
from route_analysis import characterize_route
from route_generator import MockRouteGenerator
from store import SimulationStore

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a coroutine every `interval` seconds; a tick never overlaps the previous one"""

    def __init__(self, name: str, interval: float, tick: Callable[[], Awaitable]):
        self.name = name
        self.interval = interval
        self.tick = tick
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> bool:
        """Run one tick unless one is already running; returns whether it ran"""
        if self.busy:
            logger.warning(f"{self.name} tick still running, skipping")
            return False
        async with self._lock:
            try:
                await self.tick()
            except Exception:
                # A failed tick must not end the loop
                logger.exception(f"{self.name} tick failed")
        return True

    async def run(self, stop_event: asyncio.Event):
        logger.info(f"Starting {self.name} loop (every {self.interval}s)")
        while not stop_event.is_set():
            loop_start = time.monotonic()
            await self.run_once()

            # Maintain the tick period, waking early on shutdown
            sleep_time = max(0.0, self.interval - (time.monotonic() - loop_start))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=sleep_time)
            except asyncio.TimeoutError:
                pass
        logger.info(f"{self.name} loop stopped")


class SimulationScheduler:
    """Drives the mock fleet through authorization and telemetry playback"""

    def __init__(self, store: SimulationStore, client, fleet: FleetService,
                 preauthorizer: PreAuthorizationService,
                 generator: Optional[MockRouteGenerator] = None,
                 rng: Optional[random.Random] = None,
                 step_delay: float = config.TELEMETRY_STEP_DELAY,
                 steps_per_tick: int = config.TELEMETRY_STEPS_PER_TICK,
                 authorization_interval: float = config.AUTHORIZATION_INTERVAL,
                 telemetry_interval: float = config.TELEMETRY_INTERVAL):
        self.store = store
        self.client = client
        self.fleet = fleet
        self.preauthorizer = preauthorizer
        self.rng = rng or random.Random()
        self.generator = generator or MockRouteGenerator(self.rng)
        self.step_delay = step_delay
        self.steps_per_tick = steps_per_tick

        self.authorization_task = PeriodicTask("authorization", authorization_interval, self.authorization_tick)
        self.telemetry_task = PeriodicTask("telemetry", telemetry_interval, self.telemetry_tick)

        self._stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stop_event.is_set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self.authorization_task.run(self._stop_event)),
            asyncio.create_task(self.telemetry_task.run(self._stop_event)),
        ]
        logger.info("Simulation scheduler started")

    async def stop(self):
        """Stop both loops; a running tick finishes its current step first"""
        logger.info("Stopping simulation scheduler...")
        self._stop_event.set()
        tasks, self._tasks = self._tasks, []
        if tasks:
            await asyncio.gather(*tasks)

    # ------------------------------------------------------------------
    # Authorization loop
    # ------------------------------------------------------------------

    async def ensure_fleet(self):
        """Register the mock operator and drones once; later calls do nothing"""
        async with self.store.registry_lock:
            if not self.store.operators:
                await self.fleet.add_mock_operator(OperatorInput(**config.MOCK_OPERATOR))

            operator = self.store.latest_operator()
            if operator is None:
                raise UTMError("No operator available for drone registration")

            while len(self.store.drones) < len(config.MOCK_DRONES):
                template = config.MOCK_DRONES[len(self.store.drones)]
                await self.fleet.add_mock_drone(DroneInput(
                    serial_number=f"{template['serial_prefix']}-{int(time.time() * 1000)}",
                    model=template['model'],
                    drone_type=DroneType[template['drone_type']],
                    cert_hashes=template['cert_hashes'],
                    permitted_zones=[ZoneType[z] for z in template['permitted_zones']],
                    operator_id=operator.address,
                    maintenance_hash=template['maintenance_hash'],
                ))

    async def authorization_tick(self) -> List[FlightPlan]:
        """
        Simulate a round of pre-authorization requests

        The first VALID_ATTEMPTS_PER_TICK attempts use compliant routes, the rest
        cross a restricted zone. Approved routes become flight plans; failed
        decisions are logged and dropped.

        Returns:
            Flight plans authorized during this tick
        """
        logger.debug("Simulating flight plans...")

        try:
            await self.ensure_fleet()
        except UTMError as e:
            logger.error(f"Mock fleet setup failed: {e}")
            return []

        authorized = []
        for attempt in range(config.AUTHORIZATION_ATTEMPTS_PER_TICK):
            valid = attempt < config.VALID_ATTEMPTS_PER_TICK
            try:
                plan = await self.simulate_authorization(attempt, valid)
            except UTMError as e:
                logger.error(f"Flight plan {attempt + 1} could not be processed: {e}")
                continue
            if plan is not None:
                authorized.append(plan)

        logger.debug(f"Flight plan simulation completed. Total flight plans: {len(self.store.flight_plans)}")
        return authorized

    async def simulate_authorization(self, attempt: int, valid: bool) -> Optional[FlightPlan]:
        drone = self.rng.choice(self.store.drones)
        logger.debug(
            f"Generating mock flight plan for drone: {drone.drone_id}, valid: {valid}, "
            f"permitted zones: {[z.name for z in drone.permitted_zones]}"
        )

        zones = await self.client.get_zones()
        route = self.generator.generate(zones, drone.permitted_zones, valid)
        characteristics = characterize_route(drone.drone_id, route, zones)

        start_time = datetime.now(timezone.utc)
        end_time = start_time + timedelta(seconds=config.FLIGHT_PLAN_DURATION)

        decision = await self.preauthorizer.pre_authorize(PreAuthorizationRequest(
            drone_id=drone.drone_id,
            flight_plan=FlightPlanRequest(route=route, start_time=start_time, end_time=end_time),
        ))

        if not decision.approved:
            logger.warning(f"Flight plan {attempt + 1} pre-authorization failed: {decision.reason}")
            return None

        logger.info(f"Flight plan {attempt + 1} pre-authorized successfully for drone {drone.drone_id}")
        return self.store.authorize_flight_plan(
            drone.drone_id, route, start_time, end_time, characteristics.effective_zones()
        )

    # ------------------------------------------------------------------
    # Telemetry loop
    # ------------------------------------------------------------------

    async def telemetry_tick(self):
        """Advance every unfinished flight plan by up to `steps_per_tick` waypoints"""
        logger.debug("Simulating drone telemetry data...")

        plans = self.store.unfinished_flight_plans()
        if not plans:
            logger.warning("No flight plans available for telemetry simulation")
            return

        for plan in plans:
            if self._stop_event.is_set():
                break
            async with self.store.plan_lock(plan.plan_id):
                await self.advance_flight_plan(plan)

        logger.debug("Drone telemetry simulation completed.")

    async def advance_flight_plan(self, plan: FlightPlan):
        drone = self.store.get_drone(plan.drone_id)
        if drone is None:
            logger.warning(f"Drone {plan.drone_id} of flight plan {plan.plan_id} not found, skipping")
            return
        if not plan.path:
            logger.warning(f"Flight plan {plan.plan_id} has no valid path")
            return

        for step in range(self.steps_per_tick):
            if step > 0:
                await asyncio.sleep(self.step_delay)
            if self._stop_event.is_set():
                return

            index = plan.next_waypoint_index()
            if index is None:
                await self.finish_flight_plan(plan)
                return

            waypoint = plan.path[index]
            if step % config.VIOLATION_EVERY_N_STEPS == 0:
                await self.inject_violation(drone.drone_id, waypoint)

            waypoint.reached = True
            logger.debug(f"Route point {index} marked as reached for flight plan {plan.plan_id}")

            try:
                await self.fleet.location_update(LocationUpdateRequest(
                    drone_id=drone.drone_id,
                    position=Position(
                        latitude=waypoint.latitude,
                        longitude=waypoint.longitude,
                        altitude=waypoint.altitude,
                    ),
                    timestamp=datetime.now(timezone.utc),
                ))
            except UTMError as e:
                logger.error(f"Location update for drone {drone.drone_id} failed: {e}")

    async def inject_violation(self, drone_id: str, waypoint: Position):
        offset = config.VIOLATION_OFFSET
        violation_point = Position(
            latitude=waypoint.latitude + offset['latitude'],
            longitude=waypoint.longitude + offset['longitude'],
            altitude=waypoint.altitude + offset['altitude'],
        )
        logger.warning(f"Sending violation location update for drone {drone_id}: {violation_point.model_dump()}")
        try:
            await self.fleet.send_violation(drone_id, violation_point)
        except UTMError as e:
            logger.error(f"Violation report for drone {drone_id} failed: {e}")

    async def finish_flight_plan(self, plan: FlightPlan):
        logger.debug(f"All route points of flight plan {plan.plan_id} have been reached")
        plan.finished = True
        try:
            await self.fleet.complete_flight_plan(plan)
        except UTMError as e:
            logger.error(f"Route log for flight plan {plan.plan_id} failed: {e}")
