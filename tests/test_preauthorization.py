import aiohttp
import pytest

from exceptions import UpstreamError
from models import (
    Decision, FlightPlanRequest, Position, PreAuthorizationRequest,
    PreAuthorizationStatus, ZoneType,
)

REQUIRED = "droneId and flightPlan are required"


def request_for(drone_id, *points):
    route = [Position(latitude=lat, longitude=lon, altitude=alt) for lat, lon, alt in points]
    return PreAuthorizationRequest(drone_id=drone_id, flight_plan=FlightPlanRequest(route=route))


async def test_missing_drone_id_fails(preauthorizer, client):
    decision = await preauthorizer.pre_authorize(request_for(None, (40.75, -74.05, 160)))

    assert decision == Decision(drone_id=None, status=PreAuthorizationStatus.FAILED, reason=REQUIRED)
    assert client.calls == []


async def test_missing_flight_plan_fails(preauthorizer, client):
    decision = await preauthorizer.pre_authorize(PreAuthorizationRequest(drone_id="d1"))

    assert decision == Decision(drone_id="d1", status=PreAuthorizationStatus.FAILED, reason=REQUIRED)
    assert client.calls == []


async def test_empty_route_fails(preauthorizer):
    decision = await preauthorizer.pre_authorize(
        PreAuthorizationRequest(drone_id="d1", flight_plan=FlightPlanRequest(route=[]))
    )

    assert decision.status == PreAuthorizationStatus.FAILED
    assert decision.reason == REQUIRED


async def test_approved_decision_is_returned(preauthorizer, client):
    decision = await preauthorizer.pre_authorize(request_for("d1", (40.71, -74.01, 50)))

    assert decision.approved
    assert decision.drone_id == "d1"

    submitted = client.calls_to("check_route_permission")
    assert len(submitted) == 1
    assert submitted[0].zones == {ZoneType.URBAN}
    assert submitted[0].altitude_limit == 50


async def test_uncategorized_route_is_submitted_as_restricted(preauthorizer, client):
    await preauthorizer.pre_authorize(request_for("d1", (10.0, 10.0, 50)))

    submitted = client.calls_to("check_route_permission")[0]
    assert submitted.zones == {ZoneType.RESTRICTED}


@pytest.mark.parametrize("error", [
    UpstreamError("Network error"),
    aiohttp.ClientConnectionError("Network error"),
    RuntimeError("Network error"),
])
async def test_permission_check_failure_becomes_failed_decision(preauthorizer, client, error):
    client.errors["check_route_permission"] = error

    decision = await preauthorizer.pre_authorize(request_for("d1", (40.71, -74.01, 50)))

    assert decision == Decision(drone_id="d1", status=PreAuthorizationStatus.FAILED, reason="Network error")


async def test_zone_fetch_failure_becomes_failed_decision(preauthorizer, client):
    client.errors["get_zones"] = UpstreamError("Failed to retrieve zone limits", status=503)

    decision = await preauthorizer.pre_authorize(request_for("d1", (40.71, -74.01, 50)))

    assert decision.status == PreAuthorizationStatus.FAILED
    assert decision.reason == "Failed to retrieve zone limits"
    assert client.calls_to("check_route_permission") == []


@pytest.mark.parametrize("raw, expected", [
    (0, PreAuthorizationStatus.APPROVED),
    (1, PreAuthorizationStatus.FAILED),
    ("APPROVED", PreAuthorizationStatus.APPROVED),
    ("failed", PreAuthorizationStatus.FAILED),
])
async def test_authority_status_is_normalized(preauthorizer, client, raw, expected):
    client.decision = {"preauthorizationStatus": raw, "reason": "policy"}

    decision = await preauthorizer.pre_authorize(request_for("d1", (40.71, -74.01, 50)))

    assert decision.status == expected
    assert decision.reason == "policy"


async def test_decision_without_status_fails(preauthorizer, client):
    client.decision = {"reason": "nothing to see"}

    decision = await preauthorizer.pre_authorize(request_for("d1", (40.71, -74.01, 50)))

    assert decision.status == PreAuthorizationStatus.FAILED
    assert "no status" in decision.reason
