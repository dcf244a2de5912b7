"""
Pre-authorization workflow
Validates a flight request, characterizes its route and asks the authority for a decision
"""

import logging

from exceptions import InvalidRequestError, UpstreamError
from models import Decision, PreAuthorizationRequest, PreAuthorizationStatus
from route_analysis import RouteAnalyzer

logger = logging.getLogger(__name__)


class PreAuthorizationService:
    """Turns a pre-authorization request into an APPROVED or FAILED decision"""

    def __init__(self, client, analyzer: RouteAnalyzer = None):
        self.client = client
        self.analyzer = analyzer or RouteAnalyzer(client)

    async def pre_authorize(self, request: PreAuthorizationRequest) -> Decision:
        """
        Run the pre-authorization for a drone flight request

        Never raises: any failure becomes a FAILED decision carrying the error message.
        """
        drone_id = request.drone_id
        logger.info(f"Starting pre-authorization for drone: {drone_id}")

        try:
            if not drone_id or request.flight_plan is None or not request.flight_plan.route:
                logger.error("Invalid pre-authorization request: missing droneId or flightPlan")
                raise InvalidRequestError("droneId and flightPlan are required")

            characteristics = await self.analyzer.get_route_characteristics(
                drone_id, request.flight_plan.route
            )
            submission = characteristics.for_submission()
            logger.debug(f"Route characteristics submitted: {submission.to_payload()}")

            data = await self.client.check_route_permission(submission)
            decision = self._normalize(drone_id, data)

        except Exception as e:
            logger.error(f"Error in pre-authorization for drone {drone_id}: {e}")
            return Decision.failed(drone_id, str(e) or "Unknown error")

        logger.info(f"Pre-authorization for drone {drone_id} finished: {decision.status.value}")
        return decision

    @staticmethod
    def _normalize(drone_id: str, data: dict) -> Decision:
        raw_status = data.get("preauthorizationStatus", data.get("status"))
        if raw_status is None:
            raise UpstreamError("Route permission check returned no status")

        try:
            status = PreAuthorizationStatus.parse(raw_status)
        except (ValueError, KeyError, IndexError) as e:
            raise UpstreamError(f"Unknown pre-authorization status: {raw_status}") from e

        return Decision(
            drone_id=str(data.get("droneId") or drone_id),
            status=status,
            reason=data.get("reason") or "",
        )
