"""
UTM Simulator - FastAPI Backend
Pre-authorization, telemetry intake and mock fleet endpoints; runs the flight simulation scheduler
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from drone_simulator import SimulationScheduler
from exceptions import InvalidRequestError, UTMError
from fleet import FleetService
from models import (
    Decision, Drone, DroneInput, FlightPlan, LocationUpdateRequest, Operator,
    OperatorInput, PreAuthorizationRequest, RouteCharacteristics,
)
from preauthorization import PreAuthorizationService
from route_analysis import RouteAnalyzer
from store import SimulationStore
from utm_client import UTMClient

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)


def create_app(client=None, store: Optional[SimulationStore] = None,
               simulation_enabled: bool = config.SIMULATION_ENABLED) -> FastAPI:
    """
    Build the API application

    Args:
        client: External authority client; a UTMClient on ENDPOINT_URL by default
        store: Simulation store; a fresh one by default
        simulation_enabled: Start the periodic simulation loops with the app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 50)
        logger.info("UTM Simulator - Starting")
        logger.info("=" * 50)

        owns_client = client is None
        utm_client = client or UTMClient(config.ENDPOINT_URL, config.HTTP_TIMEOUT)
        sim_store = store or SimulationStore()
        analyzer = RouteAnalyzer(utm_client)
        fleet = FleetService(sim_store, utm_client)
        preauthorizer = PreAuthorizationService(utm_client, analyzer)
        scheduler = SimulationScheduler(sim_store, utm_client, fleet, preauthorizer)

        app.state.client = utm_client
        app.state.store = sim_store
        app.state.analyzer = analyzer
        app.state.fleet = fleet
        app.state.preauthorizer = preauthorizer
        app.state.scheduler = scheduler

        logger.info(f"External endpoint: {config.ENDPOINT_URL}")
        if simulation_enabled:
            scheduler.start()
        else:
            logger.info("Simulation disabled")

        yield

        logger.info("UTM Simulator Shutting Down...")
        await scheduler.stop()
        if owns_client:
            await utm_client.close()

    app = FastAPI(
        title="UTM Simulator API",
        description="Flight plan pre-authorization and telemetry simulation for drone operations",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(request: Request, exc: InvalidRequestError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(UTMError)
    async def utm_error_handler(request: Request, exc: UTMError):
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    # ========================================================================
    # API ENDPOINTS
    # ========================================================================

    @app.get("/api/health")
    async def health_check(request: Request):
        """System health check"""
        sim_store: SimulationStore = request.app.state.store
        return {
            "status": "operational",
            "timestamp": time.time(),
            "drones": len(sim_store.drones),
            "operators": len(sim_store.operators),
            "flight_plans": len(sim_store.flight_plans),
            "active_flight_plans": len(sim_store.unfinished_flight_plans()),
        }

    @app.post("/preauthorization", response_model=Decision)
    async def pre_authorization(body: PreAuthorizationRequest, request: Request):
        return await request.app.state.preauthorizer.pre_authorize(body)

    @app.post("/get_route_characteristics", response_model=RouteCharacteristics)
    async def get_route_characteristics(body: PreAuthorizationRequest, request: Request):
        if body.flight_plan is None:
            raise InvalidRequestError("flightPlan is required")
        return await request.app.state.analyzer.get_route_characteristics(
            body.drone_id, body.flight_plan.route
        )

    @app.post("/location_update")
    async def location_update(body: LocationUpdateRequest, request: Request):
        await request.app.state.fleet.location_update(body)
        return {"status": "ok"}

    @app.post("/addMockDrone")
    async def add_mock_drone(body: DroneInput, request: Request):
        async with request.app.state.store.registry_lock:
            return await request.app.state.fleet.add_mock_drone(body)

    @app.post("/addMockOperator")
    async def add_mock_operator(request: Request, body: Optional[OperatorInput] = None):
        async with request.app.state.store.registry_lock:
            return await request.app.state.fleet.add_mock_operator(body)

    @app.get("/mock_drones", response_model=List[Drone])
    async def get_mock_drones(request: Request):
        return request.app.state.fleet.get_mock_drones()

    @app.get("/mock_operators", response_model=List[Operator])
    async def get_mock_operators(request: Request):
        return request.app.state.fleet.get_mock_operators()

    @app.get("/flight_plans", response_model=List[FlightPlan])
    async def get_flight_plans(request: Request):
        return request.app.state.store.flight_plans

    return app


app = create_app()

# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
