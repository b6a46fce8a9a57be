"""
Fleet error taxonomy and the FastAPI handler that turns it into JSON responses.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict


class FleetError(Exception):
    """Base fleet exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class TruckNotFoundError(FleetError):
    def __init__(self, truck_id: str):
        super().__init__(
            message=f"Truck {truck_id} not found",
            error_code="ERR_TRUCK_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"truck_id": truck_id},
        )


class AlertNotFoundError(FleetError):
    def __init__(self, alert_id: str):
        super().__init__(
            message=f"Alert {alert_id} not found",
            error_code="ERR_ALERT_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"alert_id": alert_id},
        )


class InvalidTransitionError(FleetError):
    """Raised when a command does not fit the truck's current status."""

    def __init__(self, truck_id: str, status_name: str, action: str = "assign trip"):
        super().__init__(
            message=f"Cannot {action}: truck {truck_id} is {status_name}, expected idle",
            error_code="ERR_INVALID_TRANSITION",
            status_code=status.HTTP_409_CONFLICT,
            details={"truck_id": truck_id, "status": status_name},
        )


async def fleet_exception_handler(request: Request, exc: FleetError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
