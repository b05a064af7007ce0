# backend/cafeslot/schemas/__init__.py
from .reservation import (
    AssignStationsRequest,
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    CancelRequest,
    ConfirmPaymentRequest,
    ExtendRequest,
    MaintenanceRequest,
    ReservationCreate,
    ReservationResponse,
    StationAssignmentIn,
    SystemBookedIn,
)

__all__ = [
    "AssignStationsRequest",
    "AvailabilityCheckRequest",
    "AvailabilityCheckResponse",
    "CancelRequest",
    "ConfirmPaymentRequest",
    "ExtendRequest",
    "MaintenanceRequest",
    "ReservationCreate",
    "ReservationResponse",
    "StationAssignmentIn",
    "SystemBookedIn",
]
