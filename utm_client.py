"""
Client for the external UTM authority / blockchain backend
Every call is bounded by a total timeout; transport and HTTP failures surface as UpstreamError
"""

import asyncio
import logging
from typing import Any, List, Optional

import aiohttp
from pydantic import ValidationError

import config
from exceptions import UpstreamError
from models import Location, Position, RouteCharacteristics, Zone

logger = logging.getLogger(__name__)


class UTMClient:
    """Async HTTP client for the route-permission authority"""

    def __init__(self, base_url: str = config.ENDPOINT_URL, timeout: float = config.HTTP_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, path: str, failure_message: str,
                       payload: Optional[dict] = None) -> Any:
        """
        Perform a request and unwrap the `data` envelope

        Raises:
            UpstreamError: on timeout, transport error, non-success status or a malformed JSON body
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")

        try:
            async with self._get_session().request(method, url, json=payload) as response:
                if response.status >= 400:
                    logger.error(f"{failure_message}: {response.status} {response.reason}")
                    raise UpstreamError(failure_message, status=response.status)

                if response.content_type != 'application/json':
                    return None
                try:
                    body = await response.json()
                except ValueError as e:
                    logger.error(f"Malformed JSON from {url}: {e}")
                    raise UpstreamError(failure_message) from e

        except asyncio.TimeoutError as e:
            logger.error(f"Timeout calling {url}")
            raise UpstreamError(f"{failure_message}: request timed out") from e
        except aiohttp.ClientError as e:
            logger.error(f"Error calling {url}: {e}")
            raise UpstreamError(str(e) or failure_message) from e

        if isinstance(body, dict) and 'data' in body:
            return body['data']
        return body

    # ------------------------------------------------------------------
    # Zones and route permissions
    # ------------------------------------------------------------------

    async def get_zones(self) -> List[Zone]:
        message = "Failed to retrieve zone limits"
        data = await self._request("GET", "/api/zones", message)

        if not isinstance(data, list):
            logger.error(f"Zone payload is not a list: {data!r}")
            raise UpstreamError(message)

        try:
            zones = [Zone.model_validate(item) for item in data]
        except (ValidationError, TypeError) as e:
            logger.error(f"Malformed zone payload: {e}")
            raise UpstreamError(message) from e

        logger.info(f"Zone limits retrieved successfully: {len(zones)} zones")
        return zones

    async def check_route_permission(self, characteristics: RouteCharacteristics) -> dict:
        """Submit route characteristics; returns the raw decision payload"""
        try:
            data = await self._request(
                "POST", "/api/route-permissions/check",
                "Route permission check failed",
                characteristics.to_payload(),
            )
        except UpstreamError as e:
            if e.status is None:
                raise
            raise UpstreamError(f"Route permission check failed ({e.status})", status=e.status) from e
        if not isinstance(data, dict):
            raise UpstreamError("Route permission check returned no decision")
        return data

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def mint_drone(self, payload: dict) -> dict:
        data = await self._request("POST", "/api/drones/mint", "Failed to add drone to blockchain", payload)
        if not isinstance(data, dict):
            raise UpstreamError("Failed to add drone to blockchain")
        return data

    async def get_operator_info(self, address: str) -> dict:
        data = await self._request("GET", f"/api/operators/info/{address}", "Failed to check existing operator")
        return data if isinstance(data, dict) else {}

    async def get_operator_reputation(self, address: str) -> dict:
        data = await self._request(
            "GET", f"/api/operators/reputation/{address}", "Failed to check operator reputation"
        )
        return data if isinstance(data, dict) else {}

    async def register_operator(self, operator: str) -> Any:
        return await self._request(
            "POST", "/api/operators/register",
            "Failed to register operator on blockchain",
            {"operator": operator},
        )

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    async def send_location_update(self, location: Location):
        await self._request("POST", "/location_update", "Failed to send location update", {
            "droneId": location.drone_id,
            "timestamp": location.timestamp.isoformat(),
            "position": {
                "lat": location.position.latitude,
                "lon": location.position.longitude,
                "alt": location.position.altitude,
            },
        })

    async def report_violation(self, drone_id: str, position: Position):
        await self._request("POST", "/api/violations/report", "Failed to send violation to backend", {
            "droneID": str(drone_id),
            "position": f"lat:{position.latitude},lng:{position.longitude}",
        })

    async def log_route(self, payload: dict):
        await self._request("POST", "/api/route-logs/log", "Failed to complete flight plan on backend", payload)
