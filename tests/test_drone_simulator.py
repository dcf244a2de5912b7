import asyncio
from datetime import datetime, timedelta, timezone

import pytest

import config
from drone_simulator import PeriodicTask
from exceptions import UpstreamError
from models import Position, ZoneType

START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class RecordingGenerator:
    """Wraps a generator and records the `valid` flag of each call"""

    def __init__(self, generator):
        self.generator = generator
        self.valid_flags = []

    def generate(self, zones, permitted_zones, valid):
        self.valid_flags.append(valid)
        return self.generator.generate(zones, permitted_zones, valid)


def add_plan(store, drone_id, points):
    route = [Position(latitude=40.71 + i * 1e-4, longitude=-74.01, altitude=50) for i in range(points)]
    return store.authorize_flight_plan(drone_id, route, START, START + timedelta(minutes=30), [ZoneType.URBAN])


@pytest.fixture
async def fleet_ready(scheduler):
    await scheduler.ensure_fleet()
    return scheduler


# ----------------------------------------------------------------------
# Authorization loop
# ----------------------------------------------------------------------

async def test_fleet_is_created_once(scheduler, store, client):
    await scheduler.authorization_tick()
    await scheduler.authorization_tick()

    assert len(store.operators) == 1
    assert len(store.drones) == len(config.MOCK_DRONES) == 3
    assert len(client.calls_to("mint_drone")) == 3
    assert {d.drone_id for d in store.drones} == {"1", "2", "3"}


async def test_first_attempts_are_valid_and_rest_invalid(scheduler):
    recorder = RecordingGenerator(scheduler.generator)
    scheduler.generator = recorder

    await scheduler.authorization_tick()

    assert recorder.valid_flags == [True, True, False]


async def test_approved_routes_become_flight_plans(scheduler, store, client):
    authorized = await scheduler.authorization_tick()

    assert len(authorized) == config.AUTHORIZATION_ATTEMPTS_PER_TICK
    assert store.flight_plans == authorized
    for plan in authorized:
        assert plan.zones
        assert store.get_drone(plan.drone_id) is not None
        assert config.ROUTE_MIN_POINTS <= len(plan.path) <= config.ROUTE_MAX_POINTS


async def test_flight_plan_zones_default_to_restricted(scheduler, store, client):
    client.zones = []

    authorized = await scheduler.authorization_tick()

    assert authorized
    assert all(plan.zones == [ZoneType.RESTRICTED] for plan in authorized)


async def test_failed_decisions_are_dropped(scheduler, store, client):
    client.decision = {"preauthorizationStatus": "FAILED", "reason": "zone not permitted"}

    authorized = await scheduler.authorization_tick()

    assert authorized == []
    assert store.flight_plans == []
    assert len(client.calls_to("check_route_permission")) == config.AUTHORIZATION_ATTEMPTS_PER_TICK


async def test_zone_outage_does_not_halt_the_tick(scheduler, store, client):
    client.errors["get_zones"] = UpstreamError("Failed to retrieve zone limits", status=500)

    authorized = await scheduler.authorization_tick()

    assert authorized == []
    assert len(client.calls_to("get_zones")) == config.AUTHORIZATION_ATTEMPTS_PER_TICK


async def test_registration_failure_skips_the_tick(scheduler, store, client):
    client.errors["mint_drone"] = UpstreamError("Blockchain error")

    authorized = await scheduler.authorization_tick()

    assert authorized == []
    assert store.drones == []
    assert client.calls_to("check_route_permission") == []


# ----------------------------------------------------------------------
# Telemetry loop
# ----------------------------------------------------------------------

async def test_plan_completes_once(fleet_ready, store, client):
    plan = add_plan(store, "1", 5)

    await fleet_ready.telemetry_tick()
    await fleet_ready.telemetry_tick()

    assert plan.finished
    assert all(w.reached for w in plan.path)
    assert len(client.calls_to("log_route")) == 1
    assert store.unfinished_flight_plans() == []


async def test_waypoints_are_reached_in_order(fleet_ready, store, client):
    plan = add_plan(store, "1", 10)
    snapshots = []

    original = client.send_location_update

    async def record(location):
        snapshots.append([w.reached for w in plan.path])
        await original(location)

    client.send_location_update = record

    await fleet_ready.telemetry_tick()

    assert len(snapshots) == 10
    for step, reached in enumerate(snapshots):
        assert reached == [True] * (step + 1) + [False] * (10 - step - 1)

    forwarded = client.calls_to("send_location_update")
    assert [loc.position.latitude for loc in forwarded] == [w.latitude for w in plan.path]


async def test_steps_per_tick_bounds_progress(fleet_ready, store, client):
    plan = add_plan(store, "1", 50)

    await fleet_ready.telemetry_tick()

    assert plan.next_waypoint_index() == config.TELEMETRY_STEPS_PER_TICK
    assert not plan.finished

    await fleet_ready.telemetry_tick()

    assert plan.finished
    assert len(client.calls_to("log_route")) == 1


async def test_violations_are_offset_from_the_route(fleet_ready, store, client):
    plan = add_plan(store, "1", 35)

    await fleet_ready.telemetry_tick()

    violations = client.calls_to("report_violation")
    assert len(violations) == 2  # steps 0 and 30
    for (drone_id, position), index in zip(violations, (0, 30)):
        waypoint = plan.path[index]
        assert drone_id == "1"
        assert position.latitude == pytest.approx(waypoint.latitude + 0.1)
        assert position.longitude == pytest.approx(waypoint.longitude + 0.1)
        assert position.altitude == pytest.approx(waypoint.altitude + 100)


async def test_emission_failures_do_not_roll_back_progress(fleet_ready, store, client):
    plan = add_plan(store, "1", 5)
    client.errors["send_location_update"] = UpstreamError("connection refused")
    client.errors["report_violation"] = UpstreamError("connection refused")
    client.errors["log_route"] = UpstreamError("connection refused")

    await fleet_ready.telemetry_tick()

    assert all(w.reached for w in plan.path)
    assert plan.finished
    assert len(store.locations) == 5


async def test_plan_of_unknown_drone_is_skipped(fleet_ready, store, client):
    orphan = add_plan(store, "unknown", 3)
    other = add_plan(store, "2", 3)

    await fleet_ready.telemetry_tick()

    assert not any(w.reached for w in orphan.path)
    assert other.finished


async def test_telemetry_without_plans_is_a_no_op(scheduler, client):
    await scheduler.telemetry_tick()

    assert client.calls == []


# ----------------------------------------------------------------------
# Scheduling
# ----------------------------------------------------------------------

async def test_periodic_task_skips_overlapping_ticks():
    release = asyncio.Event()
    runs = []

    async def slow_tick():
        runs.append(1)
        await release.wait()

    task = PeriodicTask("slow", 60, slow_tick)
    first = asyncio.create_task(task.run_once())
    await asyncio.sleep(0)

    assert task.busy
    assert await task.run_once() is False

    release.set()
    assert await first is True
    assert runs == [1]


async def test_periodic_task_keeps_ticking_after_a_failed_tick():
    stop = asyncio.Event()
    runs = []

    async def flaky_tick():
        runs.append(1)
        if len(runs) == 1:
            raise ValueError("malformed reply")
        if len(runs) == 3:
            stop.set()

    task = PeriodicTask("flaky", 0.01, flaky_tick)
    await asyncio.wait_for(task.run(stop), timeout=5)

    assert len(runs) == 3
    assert not task.busy


async def test_unexpected_error_in_authorization_tick_is_contained(scheduler, client):
    client.errors["register_operator"] = RuntimeError("unexpected")

    assert await scheduler.authorization_task.run_once() is True

    del client.errors["register_operator"]
    assert await scheduler.authorization_task.run_once() is True
    assert len(client.calls_to("register_operator")) == 2


async def test_scheduler_starts_and_stops(scheduler, store):
    scheduler.start()
    assert scheduler.running

    for _ in range(50):
        if store.flight_plans:
            break
        await asyncio.sleep(0.01)

    await asyncio.wait_for(scheduler.stop(), timeout=5)

    assert not scheduler.running
    assert len(store.drones) == 3
