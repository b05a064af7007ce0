# backend/cafeslot/routes/v1/venues.py
"""
Venue routes - API v1

Availability and floor views under /api/v1/venues.

Endpoints:
    GET /{venue_id}/slots - Free stations per hour for a date
    POST /{venue_id}/check-availability - Can N stations be booked for a window
    GET /{venue_id}/stations/available - Stations staff can assign now (owner)
    GET /{venue_id}/floor - Live station status (owner)
    GET /{venue_id}/reservations - Reservations at the venue (owner)
"""

from datetime import date
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query

from ...api.dependencies import (
    get_availability_service,
    get_current_principal,
    get_reservation_service,
    get_station_ledger_service,
)
from ...core.exceptions import DomainException
from ...principal import Principal
from ...schemas.reservation import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    ReservationResponse,
)
from ...services.availability_service import AvailabilityService
from ...services.reservation_service import ReservationService
from ...services.station_ledger_service import StationLedgerService
from ._common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["venues-v1"])


@router.get("/{venue_id}/slots")
def get_slot_availability(
    venue_id: str = Path(..., description="Venue ULID", pattern=ULID_PATH_PATTERN),
    booking_date: date = Query(..., description="Date in the venue's timezone"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> Dict[str, Dict[str, Dict[str, int]]]:
    """Free station counts keyed by room, station type and hour label."""
    try:
        return availability_service.get_slot_availability(venue_id, booking_date)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{venue_id}/check-availability", response_model=AvailabilityCheckResponse)
def check_availability(
    venue_id: str = Path(..., description="Venue ULID", pattern=ULID_PATH_PATTERN),
    payload: AvailabilityCheckRequest = Body(...),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityCheckResponse:
    try:
        result = availability_service.check_availability(
            venue_id,
            payload.room_type,
            payload.system_type,
            payload.booking_date,
            payload.start_time,
            payload.duration,
            quantity=payload.number_of_systems,
        )
        return AvailabilityCheckResponse(**result)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{venue_id}/stations/available")
def get_available_stations(
    venue_id: str = Path(..., description="Venue ULID", pattern=ULID_PATH_PATTERN),
    room_name: Optional[str] = Query(None),
    station_type: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> Dict[str, Dict[str, List[str]]]:
    try:
        return reservation_service.get_available_stations(
            principal, venue_id, room_name=room_name, station_type=station_type
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{venue_id}/floor")
def get_floor_status(
    venue_id: str = Path(..., description="Venue ULID", pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    ledger_service: StationLedgerService = Depends(get_station_ledger_service),
) -> Dict[str, Any]:
    try:
        return ledger_service.get_floor_status(principal, venue_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{venue_id}/reservations", response_model=List[ReservationResponse])
def list_venue_reservations(
    venue_id: str = Path(..., description="Venue ULID", pattern=ULID_PATH_PATTERN),
    booking_date: Optional[date] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> List[ReservationResponse]:
    try:
        reservations = reservation_service.list_for_venue(
            principal, venue_id, booking_date=booking_date, status=status_filter
        )
        return [ReservationResponse.from_reservation(r) for r in reservations]
    except DomainException as e:
        handle_domain_exception(e)
