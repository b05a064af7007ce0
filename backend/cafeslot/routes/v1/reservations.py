# backend/cafeslot/routes/v1/reservations.py
"""
Reservation routes - API v1

Versioned reservation endpoints under /api/v1/reservations.
All business logic delegated to ReservationService.

Endpoints:
    POST / - Create a remote booking or a walk-in
    GET /mine - Reservations of the calling customer
    GET /{reservation_id} - Reservation details
    POST /{reservation_id}/confirm-payment - Payment callback (pending_payment -> booked)
    POST /{reservation_id}/cancel - Cancel a booked reservation
    POST /{reservation_id}/assign - Bind stations and start the session
    POST /{reservation_id}/extend - Extend an active session
    POST /{reservation_id}/complete - End a session early
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from ...api.dependencies import get_current_principal, get_reservation_service
from ...core.exceptions import DomainException
from ...principal import Principal
from ...schemas.reservation import (
    AssignStationsRequest,
    CancelRequest,
    ConfirmPaymentRequest,
    ExtendRequest,
    ReservationCreate,
    ReservationResponse,
)
from ...services.reservation_service import ReservationService
from ._common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["reservations-v1"])


@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
    payload: ReservationCreate = Body(...),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """Create a booking. Customers book remotely; venue owners record walk-ins."""
    try:
        reservation = reservation_service.create_reservation(
            principal,
            venue_id=payload.venue_id,
            booking_date=payload.booking_date,
            start_time=payload.start_time,
            duration=payload.duration,
            line_items=payload.line_items,
            walk_in_name=payload.walk_in_name,
            phone_number=payload.phone_number,
            friend_count=payload.friend_count,
        )
        return ReservationResponse.from_reservation(reservation, viewer_id=principal.id)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/mine", response_model=List[ReservationResponse])
def list_my_reservations(
    status_filter: Optional[str] = Query(None, alias="status"),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> List[ReservationResponse]:
    try:
        reservations = reservation_service.list_for_customer(principal, status=status_filter)
        return [
            ReservationResponse.from_reservation(r, viewer_id=principal.id) for r in reservations
        ]
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: str = Path(..., description="Reservation ULID", pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = reservation_service.get_reservation(principal, reservation_id)
        return ReservationResponse.from_reservation(reservation, viewer_id=principal.id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{reservation_id}/confirm-payment", response_model=ReservationResponse)
def confirm_payment(
    reservation_id: str = Path(..., description="Reservation ULID", pattern=ULID_PATH_PATTERN),
    payload: ConfirmPaymentRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """Mark a pending reservation as paid. Capacity is re-checked first."""
    try:
        reservation = reservation_service.confirm_payment(
            reservation_id, payload.payment_method, principal=principal
        )
        return ReservationResponse.from_reservation(reservation, viewer_id=principal.id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: str = Path(..., description="Reservation ULID", pattern=ULID_PATH_PATTERN),
    payload: Optional[CancelRequest] = Body(None),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """Cancel a reservation within the cancellation window."""
    try:
        reservation = reservation_service.cancel_reservation(
            principal, reservation_id, reason=payload.reason if payload else None
        )
        return ReservationResponse.from_reservation(reservation, viewer_id=principal.id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{reservation_id}/assign", response_model=ReservationResponse)
def assign_stations(
    reservation_id: str = Path(..., description="Reservation ULID", pattern=ULID_PATH_PATTERN),
    payload: AssignStationsRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """Bind stations to a booked reservation (venue owner only)."""
    try:
        reservation = reservation_service.assign_stations(
            principal,
            reservation_id,
            [entry.to_assignment() for entry in payload.assignments],
            verification_code=payload.verification_code,
        )
        return ReservationResponse.from_reservation(reservation)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{reservation_id}/extend", response_model=ReservationResponse)
def extend_reservation(
    reservation_id: str = Path(..., description="Reservation ULID", pattern=ULID_PATH_PATTERN),
    payload: ExtendRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = reservation_service.extend_reservation(
            principal, reservation_id, payload.hours_to_add
        )
        return ReservationResponse.from_reservation(reservation)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{reservation_id}/complete", response_model=ReservationResponse)
def complete_session(
    reservation_id: str = Path(..., description="Reservation ULID", pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = reservation_service.complete_session(principal, reservation_id)
        return ReservationResponse.from_reservation(reservation)
    except DomainException as e:
        handle_domain_exception(e)
