"""
Error taxonomy for the UTM simulator
"""

from typing import Optional


class UTMError(Exception):
    """Base class for all simulator errors"""


class InvalidRequestError(UTMError):
    """Missing or empty required fields; never reaches the external collaborator"""


class UpstreamError(UTMError):
    """External collaborator unreachable, timed out or answered with a non-success status"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DroneRegistrationError(UTMError):
    pass


class OperatorRegistrationError(UTMError):
    pass


class FlightPlanStoreError(UTMError):
    pass


class TelemetryError(UTMError):
    """Location update, violation or route log could not be emitted"""
