# backend/cafeslot/schemas/reservation.py
"""
Reservation request/response schemas.

Clients still send two booking shapes:

* legacy: one ``room_type`` / ``system_type`` / ``number_of_systems`` triple
  at the top level
* current: a ``systems_booked`` list of such triples

Both are folded into ``line_items`` here. Nothing behind the router ever
sees which shape the client used.
"""

from datetime import date
from decimal import Decimal
import re
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from ..models.reservation import Reservation
from ..services.availability_service import LineItemRequest
from ..services.reservation_service import StationAssignment
from ._strict_base import StrictModel, StrictRequestModel

DATE_ONLY_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _ensure_date_only(value: object, field_name: str) -> object:
    if isinstance(value, str):
        candidate = value.strip()
        if not DATE_ONLY_REGEX.fullmatch(candidate):
            raise ValueError(f"{field_name} must be a YYYY-MM-DD date-only string")
        return candidate
    return value


class SystemBookedIn(StrictRequestModel):
    """One entry of ``systems_booked``."""

    room_type: str = Field(..., min_length=1, description="Room name at the venue")
    system_type: str = Field(..., min_length=1, description="Station type, e.g. PC or PS5")
    number_of_systems: int = Field(1, description="Stations of this type requested")

    def to_line_item(self) -> LineItemRequest:
        return LineItemRequest(
            room_name=self.room_type,
            station_type=self.system_type,
            quantity=self.number_of_systems,
        )


class ReservationCreate(StrictRequestModel):
    """
    Create a remote booking (customer) or a walk-in (venue owner).

    Send either ``systems_booked`` or the legacy top-level triple, not both.
    """

    venue_id: str = Field(..., description="Venue to book at")
    booking_date: date = Field(..., description="Date in the venue's timezone")
    start_time: str = Field(..., description='Start label, e.g. "02:00 PM"')
    duration: Decimal = Field(..., description="Hours, a multiple of 0.5")

    systems_booked: Optional[List[SystemBookedIn]] = None

    # Legacy single-item shape
    room_type: Optional[str] = None
    system_type: Optional[str] = None
    number_of_systems: Optional[int] = None

    walk_in_name: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=20)
    friend_count: int = Field(1, description="Party size")

    @field_validator("booking_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "booking_date")

    @model_validator(mode="after")
    def _check_shape(self) -> "ReservationCreate":
        legacy = any(
            v is not None for v in (self.room_type, self.system_type, self.number_of_systems)
        )
        if self.systems_booked and legacy:
            raise ValueError("Send either systems_booked or room_type/system_type, not both")
        if legacy and not (self.room_type and self.system_type):
            raise ValueError("room_type and system_type are both required")
        return self

    @property
    def line_items(self) -> List[LineItemRequest]:
        if self.systems_booked:
            return [entry.to_line_item() for entry in self.systems_booked]
        if self.room_type and self.system_type:
            quantity = self.number_of_systems if self.number_of_systems is not None else 1
            return [LineItemRequest(self.room_type, self.system_type, quantity)]
        return []


class AvailabilityCheckRequest(StrictRequestModel):
    room_type: str = Field(..., min_length=1)
    system_type: str = Field(..., min_length=1)
    booking_date: date
    start_time: str
    duration: Decimal
    number_of_systems: int = Field(1, ge=1)

    @field_validator("booking_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "booking_date")


class AvailabilityCheckResponse(StrictModel):
    available: bool
    free_count: int


class StationAssignmentIn(StrictRequestModel):
    room_name: str = Field(..., min_length=1)
    station_codes: List[str] = Field(default_factory=list)
    station_type: Optional[str] = None

    def to_assignment(self) -> StationAssignment:
        return StationAssignment(
            room_name=self.room_name,
            station_codes=list(self.station_codes),
            station_type=self.station_type,
        )


class AssignStationsRequest(StrictRequestModel):
    assignments: List[StationAssignmentIn] = Field(..., min_length=1)
    verification_code: Optional[str] = Field(None, max_length=10)


class ExtendRequest(StrictRequestModel):
    hours_to_add: Decimal = Field(..., description="Hours, a multiple of 0.5")


class CancelRequest(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=500)


class ConfirmPaymentRequest(StrictRequestModel):
    payment_method: str = Field(..., description="wallet, card, upi, netbanking or cash")


class MaintenanceRequest(StrictRequestModel):
    under_maintenance: bool


class LineItemOut(StrictModel):
    room_id: str
    room_name: str
    station_type: str
    quantity: int
    price_per_hour: str


class ReservationResponse(StrictModel):
    """Reservation as returned to clients."""

    id: str
    venue_id: str
    owner_id: str
    customer_id: Optional[str] = None
    walk_in_name: Optional[str] = None
    phone_number: Optional[str] = None
    friend_count: int
    booking_date: Optional[str] = None
    start_time: str
    duration_hours: str
    extended_hours: str
    total_price: str
    status: str
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    is_paid: bool
    permanently_cancelled: bool
    line_items: List[LineItemOut]
    stations: List[str]
    session_start_time: Optional[str] = None
    calculated_end_time: Optional[str] = None
    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[str] = None
    verification_code: Optional[str] = Field(
        None, description="Only returned to the customer who booked"
    )

    @classmethod
    def from_reservation(
        cls, reservation: Reservation, *, viewer_id: Optional[str] = None
    ) -> "ReservationResponse":
        data: Dict[str, Any] = reservation.to_dict()
        if viewer_id is not None and viewer_id == reservation.customer_id:
            data["verification_code"] = reservation.verification_code
        return cls(**data)
