# backend/cafeslot/services/reservation_service.py
"""
Reservation Service for cafeslot.

Owns the reservation lifecycle:

    pending_payment -> booked -> active -> completed
                       booked -> cancelled

Writes that consume capacity (create, confirm payment, extend) hold the
slot mutex of every (venue, room, type, date) they touch while they check
and insert, and re-check after the flush before committing. Station
binding uses per-station compare-and-swap inside one transaction, so a
lost race on any station rolls every flip back.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
import logging
import secrets
import string
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import PaymentMethod, PaymentStatus, ReservationStatus, StationStatus
from ..core.exceptions import (
    AssignmentMismatchException,
    BusinessRuleException,
    CancellationWindowClosedException,
    ConflictException,
    InvalidCodeException,
    InvalidReservationStateException,
    NotAuthorizedException,
    NotFoundException,
    PriceResolutionFailedException,
    StationUnavailableException,
    ValidationException,
)
from ..core.slot_lock import slot_lock_key, slot_locks
from ..core.time_window import DurationLike, TimeWindow, format_minutes_label, validate_duration
from ..core.timezone_utils import ensure_utc, local_datetime, venue_now, venue_today
from ..events import (
    EventPublisher,
    PaymentConfirmed,
    RefundInstruction,
    ReservationCancelled,
    ReservationCreated,
    SessionCompleted,
    SessionExtended,
    SessionStarted,
)
from ..models.reservation import Reservation, ReservationLineItem
from ..models.venue import Room, Station, Venue
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .availability_service import AvailabilityService, LineItemRequest, ResolvedLineItem
from .base import BaseService, Clock

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class StationAssignment:
    """Station codes staff picked for one room (optionally one type within it)."""

    room_name: str
    station_codes: List[str] = field(default_factory=list)
    station_type: Optional[str] = None


class ReservationService(BaseService):
    """Service layer for the reservation lifecycle."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        event_publisher: Optional[EventPublisher] = None,
        availability_service: Optional[AvailabilityService] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_reservation_repository(db)
        self.station_repository = RepositoryFactory.create_station_repository(db)
        self.venue_repository = RepositoryFactory.create_venue_repository(db)
        self.availability = availability_service or AvailabilityService(db, clock)
        self.event_publisher = event_publisher or EventPublisher()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_reservation")
    def create_reservation(
        self,
        principal: Principal,
        *,
        venue_id: str,
        booking_date: date,
        start_time: str,
        duration: DurationLike,
        line_items: Sequence[LineItemRequest],
        walk_in_name: Optional[str] = None,
        phone_number: Optional[str] = None,
        friend_count: int = 1,
    ) -> Reservation:
        """
        Create a remote reservation (customer) or a walk-in (venue owner).

        Remote reservations start as pending_payment with a verification code
        and do not hold capacity until payment is confirmed. Walk-ins are
        booked immediately and paid in cash at the counter.

        Args:
            principal: Customer booking remotely, or the venue owner booking a walk-in
            venue_id: Venue to book at
            booking_date: Calendar date in the venue's timezone
            start_time: Start label such as "02:00 PM"
            duration: Hours, a positive multiple of 0.5
            line_items: One or more (room name, station type, quantity) claims
            walk_in_name: Required when the owner books a walk-in
            phone_number: Contact number
            friend_count: Party size

        Returns:
            The committed reservation

        Raises:
            InvalidDurationException: Bad duration
            NotFoundException: Unknown venue, room or station type
            CapacityExceededException: Some hour of some line item is full
            PriceResolutionFailedException: A line item has no price
            NotAuthorizedException: Owner booking at a venue they don't own
        """
        window = TimeWindow.from_label(start_time, duration)
        if not line_items:
            raise ValidationException(
                "At least one line item is required", code="LINE_ITEMS_REQUIRED"
            )
        if friend_count < 1:
            raise ValidationException("friend_count must be at least 1", code="INVALID_PARTY_SIZE")

        venue = self.availability.load_venue(venue_id)
        if not venue.is_active:
            raise BusinessRuleException(
                f"Venue {venue.name} is not accepting reservations",
                code="VENUE_INACTIVE",
                details={"venue_id": venue.id},
            )

        customer_id: Optional[str] = None
        if principal.is_venue_owner:
            self._require_venue_owner(venue, principal)
            if not walk_in_name or not walk_in_name.strip():
                raise ValidationException(
                    "Walk-in reservations need a customer name", code="WALK_IN_NAME_REQUIRED"
                )
            walk_in_name = walk_in_name.strip()
        else:
            customer_id = principal.id
            walk_in_name = None

        self._validate_booking_window(venue, booking_date, window)

        resolved = self._resolve_items(venue, line_items)
        prices = {key: self._price_for(item.room, item.station_type) for key, item in resolved.items()}
        total_price = sum(
            (window.duration_hours * prices[key] * item.quantity for key, item in resolved.items()),
            Decimal("0"),
        ).quantize(CENT)

        is_walk_in = customer_id is None
        lock_keys = [
            slot_lock_key(str(venue.id), item.room_id, item.station_type, booking_date)
            for item in resolved.values()
        ]

        with slot_locks(lock_keys):
            with self.transaction():
                for item in resolved.values():
                    self.availability.ensure_capacity_for(venue, item, booking_date, window)

                reservation = Reservation(
                    venue_id=venue.id,
                    owner_id=venue.owner_id,
                    customer_id=customer_id,
                    walk_in_name=walk_in_name,
                    phone_number=phone_number,
                    friend_count=friend_count,
                    booking_date=booking_date,
                    start_time=format_minutes_label(window.start_minutes),
                    start_minutes=window.start_minutes,
                    duration_hours=window.duration_hours,
                    extended_hours=Decimal("0"),
                    total_price=total_price,
                    status=(
                        ReservationStatus.BOOKED.value
                        if is_walk_in
                        else ReservationStatus.PENDING_PAYMENT.value
                    ),
                    payment_method=PaymentMethod.CASH.value if is_walk_in else None,
                    payment_status=PaymentStatus.PENDING.value,
                    is_paid=False,
                    verification_code=None if is_walk_in else self._generate_code(),
                )
                for position, (key, item) in enumerate(resolved.items()):
                    reservation.line_items.append(
                        ReservationLineItem(
                            position=position,
                            room_id=item.room_id,
                            room_name=item.room_name,
                            station_type=item.station_type,
                            quantity=item.quantity,
                            price_per_hour=prices[key],
                        )
                    )
                self.db.add(reservation)
                self.db.flush()

                # Re-read committed claims with our row flushed
                for item in resolved.values():
                    self.availability.ensure_capacity_for(
                        venue, item, booking_date, window, exclude_reservation_id=reservation.id
                    )

        prometheus_metrics.record_transition(f"new->{reservation.status}")
        self.log_operation(
            "create_reservation",
            reservation_id=reservation.id,
            venue_id=venue.id,
            walk_in=is_walk_in,
            total_price=str(total_price),
        )
        self.event_publisher.publish(
            ReservationCreated(
                reservation_id=reservation.id,
                venue_id=venue.id,
                customer_id=customer_id,
                status=reservation.status,
                total_price=total_price,
                created_at=self.now(),
            )
        )
        return self._reload(reservation.id)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    @BaseService.measure_operation("confirm_payment")
    def confirm_payment(
        self,
        reservation_id: str,
        payment_method: str,
        principal: Optional[Principal] = None,
    ) -> Reservation:
        """
        Payment collaborator callback: pending_payment -> booked.

        Capacity is re-checked under the slot locks because pending
        reservations do not hold capacity. Confirming an already-paid
        booked reservation is a no-op.
        """
        try:
            method = PaymentMethod(payment_method)
        except ValueError as exc:
            raise ValidationException(
                f"Unsupported payment method '{payment_method}'",
                code="INVALID_PAYMENT_METHOD",
                details={"payment_method": payment_method},
            ) from exc

        reservation = self._get_or_404(reservation_id)
        if principal is not None and principal.id != reservation.customer_id:
            raise NotAuthorizedException("Only the booking customer can pay for this reservation")

        if reservation.status == ReservationStatus.BOOKED.value and reservation.is_paid:
            return reservation
        if reservation.status != ReservationStatus.PENDING_PAYMENT.value:
            raise InvalidReservationStateException(
                "confirmed", reservation.status, expected=ReservationStatus.PENDING_PAYMENT.value
            )

        venue = self.availability.load_venue(reservation.venue_id)
        resolved = self._resolved_from_reservation(venue, reservation)
        window = reservation.window
        lock_keys = [
            slot_lock_key(str(venue.id), item.room_id, item.station_type, reservation.booking_date)
            for item in resolved
        ]

        with slot_locks(lock_keys):
            with self.transaction():
                for item in resolved:
                    self.availability.ensure_capacity_for(
                        venue, item, reservation.booking_date, window,
                        exclude_reservation_id=reservation.id,
                    )
                changed = self.repository.transition(
                    reservation.id,
                    ReservationStatus.PENDING_PAYMENT.value,
                    status=ReservationStatus.BOOKED.value,
                    is_paid=True,
                    payment_status=PaymentStatus.COMPLETED.value,
                    payment_method=method.value,
                )
                if not changed:
                    current = self._reload(reservation.id)
                    if current.status == ReservationStatus.BOOKED.value and current.is_paid:
                        return current
                    raise InvalidReservationStateException(
                        "confirmed", current.status, expected=ReservationStatus.PENDING_PAYMENT.value
                    )
                self.db.flush()
                for item in resolved:
                    self.availability.ensure_capacity_for(
                        venue, item, reservation.booking_date, window,
                        exclude_reservation_id=reservation.id,
                    )

        prometheus_metrics.record_transition("pending_payment->booked")
        self.log_operation("confirm_payment", reservation_id=reservation.id, method=method.value)
        self.event_publisher.publish(
            PaymentConfirmed(
                reservation_id=reservation.id,
                payment_method=method.value,
                confirmed_at=self.now(),
            )
        )
        return self._reload(reservation.id)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    @BaseService.measure_operation("cancel_reservation")
    def cancel_reservation(
        self, principal: Principal, reservation_id: str, reason: Optional[str] = None
    ) -> Reservation:
        """
        Cancel a booked reservation.

        Same-day reservations may be cancelled until the grace period after
        their start (venue local time); future dates always; past dates
        never. Wallet-paid reservations get a full RefundInstruction.

        Raises:
            NotFoundException: Unknown reservation
            NotAuthorizedException: Principal is neither owner nor customer
            InvalidReservationStateException: Not in booked status
            CancellationWindowClosedException: Policy no longer allows it
        """
        reservation = self._get_or_404(reservation_id)
        if not reservation.can_be_viewed_by(principal.id):
            raise NotAuthorizedException("Not authorized to cancel this reservation")
        if reservation.status != ReservationStatus.BOOKED.value:
            raise InvalidReservationStateException(
                "cancelled", reservation.status, expected=ReservationStatus.BOOKED.value
            )

        venue = self.availability.load_venue(reservation.venue_id)
        now = self.now()
        self._check_cancellation_window(venue, reservation, now)

        refund: Optional[RefundInstruction] = None
        if (
            reservation.payment_method == PaymentMethod.WALLET.value
            and reservation.is_paid
            and reservation.customer_id
        ):
            refund = RefundInstruction(
                reservation_id=reservation.id,
                amount=Decimal(reservation.total_price),
                destination=reservation.customer_id,
                reason=reason or "reservation_cancelled",
            )

        values = {
            "status": ReservationStatus.CANCELLED.value,
            "cancelled_at": now,
            "cancelled_by_id": principal.id,
            "cancellation_reason": reason,
        }
        if refund is not None:
            values["payment_status"] = PaymentStatus.REFUNDED.value

        with self.transaction():
            if not self.repository.transition(
                reservation.id, ReservationStatus.BOOKED.value, **values
            ):
                current = self._reload(reservation.id)
                raise InvalidReservationStateException(
                    "cancelled", current.status, expected=ReservationStatus.BOOKED.value
                )

        prometheus_metrics.record_transition("booked->cancelled")
        self.log_operation(
            "cancel_reservation",
            reservation_id=reservation.id,
            cancelled_by=principal.id,
            refund=str(refund.amount) if refund else None,
        )
        self.event_publisher.publish(
            ReservationCancelled(
                reservation_id=reservation.id,
                cancelled_by=principal.id,
                cancelled_at=now,
                refund_amount=refund.amount if refund else None,
            )
        )
        if refund is not None:
            self.event_publisher.publish(refund)
        return self._reload(reservation.id)

    def _check_cancellation_window(
        self, venue: Venue, reservation: Reservation, now: datetime
    ) -> None:
        today = venue_today(venue.timezone, now)
        booking_date = reservation.booking_date
        if booking_date > today:
            return
        details = {
            "reservation_id": reservation.id,
            "booking_date": booking_date.isoformat(),
            "start_time": reservation.start_time,
        }
        if booking_date < today:
            raise CancellationWindowClosedException(
                "Reservations for past dates cannot be cancelled", details=details
            )
        grace = settings.cancellation_grace_minutes
        deadline = local_datetime(
            venue.timezone, booking_date, int(reservation.start_minutes) + grace
        )
        if now > deadline:
            details["deadline"] = deadline.isoformat()
            raise CancellationWindowClosedException(
                f"Same-day reservations can only be cancelled up to {grace} minutes after the start",
                details=details,
            )

    # ------------------------------------------------------------------
    # Assign & activate
    # ------------------------------------------------------------------

    @BaseService.measure_operation("assign_stations")
    def assign_stations(
        self,
        principal: Principal,
        reservation_id: str,
        assignments: Sequence[StationAssignment],
        verification_code: Optional[str] = None,
    ) -> Reservation:
        """
        Bind a booked reservation to concrete stations and start the session.

        Args:
            principal: Venue owner
            reservation_id: Reservation to activate
            assignments: Station codes per room; counts must match the line items
            verification_code: Code the customer shows at the counter (remote bookings)

        Returns:
            The active reservation with ``calculated_end_time = now + duration``

        Raises:
            InvalidCodeException: Stored code doesn't match
            AssignmentMismatchException: Counts don't match the line items
            NotFoundException: Unknown room or station code
            StationUnavailableException: Station in wrong room/type, or not Available
        """
        reservation = self._get_or_404(reservation_id)
        self._require_reservation_owner(reservation, principal)
        if reservation.status != ReservationStatus.BOOKED.value:
            raise InvalidReservationStateException(
                "started", reservation.status, expected=ReservationStatus.BOOKED.value
            )
        if reservation.verification_code and (
            (verification_code or "").strip() != reservation.verification_code
        ):
            raise InvalidCodeException(reservation.id)

        venue = self.availability.load_venue(reservation.venue_id)
        stations = self._match_assignments(venue, reservation, assignments)

        now = self.now()
        end_time = now + timedelta(hours=float(reservation.duration_hours))
        with self.transaction():
            for station in stations:
                if not self.station_repository.claim(station.id, reservation.id):
                    self.db.rollback()
                    current = self.station_repository.get_by_id(station.id, load_relationships=False)
                    raise StationUnavailableException(
                        station.code,
                        "already in use or under maintenance",
                        current_status=current.status if current else None,
                    )
            if not self.repository.transition(
                reservation.id,
                ReservationStatus.BOOKED.value,
                status=ReservationStatus.ACTIVE.value,
                session_start_time=now,
                calculated_end_time=end_time,
            ):
                self.db.rollback()
                current = self._reload(reservation.id)
                raise InvalidReservationStateException(
                    "started", current.status, expected=ReservationStatus.BOOKED.value
                )
            for station in stations:
                self.station_repository.add_binding(
                    reservation_id=reservation.id, station=station, bound_at=now
                )

        codes = [s.code for s in stations]
        prometheus_metrics.record_transition("booked->active")
        self.log_operation(
            "assign_stations", reservation_id=reservation.id, stations=codes
        )
        self.event_publisher.publish(
            SessionStarted(
                reservation_id=reservation.id,
                station_codes=codes,
                session_start_time=now,
                calculated_end_time=end_time,
            )
        )
        return self._reload(reservation.id)

    def _match_assignments(
        self,
        venue: Venue,
        reservation: Reservation,
        assignments: Sequence[StationAssignment],
    ) -> List[Station]:
        requested_total = reservation.total_quantity
        all_codes = [code for a in assignments for code in a.station_codes]
        if len(all_codes) != requested_total:
            raise AssignmentMismatchException(
                f"Reservation requires {requested_total} stations, but {len(all_codes)} were provided",
                details={"required": requested_total, "provided": len(all_codes)},
            )
        duplicates = sorted({code for code in all_codes if all_codes.count(code) > 1})
        if duplicates:
            raise AssignmentMismatchException(
                "Each station can only be assigned once",
                details={"duplicates": duplicates},
            )

        needed: Dict[Tuple[str, str], int] = {}
        for item in reservation.line_items:
            key = (item.room_id, item.station_type)
            needed[key] = needed.get(key, 0) + int(item.quantity)

        picked: Dict[Tuple[str, str], List[Station]] = {key: [] for key in needed}
        for assignment in assignments:
            room = venue.room_by_name(assignment.room_name)
            if room is None:
                raise NotFoundException(
                    f"Room '{assignment.room_name}' not found",
                    details={"room": assignment.room_name},
                )
            for code in assignment.station_codes:
                station = self.station_repository.get_by_code(venue.id, code)
                if station is None:
                    raise NotFoundException(
                        f"Station {code} not found", details={"station": code}
                    )
                if station.room_id != room.id:
                    raise StationUnavailableException(
                        code, f"belongs to a different room than '{room.name}'"
                    )
                if assignment.station_type and station.station_type != assignment.station_type:
                    raise StationUnavailableException(
                        code, f"is a {station.station_type}, not a {assignment.station_type}"
                    )
                key = (station.room_id, station.station_type)
                if key not in picked:
                    raise StationUnavailableException(
                        code,
                        f"{station.station_type} in '{room.name}' is not part of this reservation",
                    )
                if station.status != StationStatus.AVAILABLE.value:
                    raise StationUnavailableException(
                        code, "already in use or under maintenance", current_status=station.status
                    )
                picked[key].append(station)

        for key, quantity in needed.items():
            if len(picked[key]) != quantity:
                room = venue.room_by_id(key[0])
                raise AssignmentMismatchException(
                    f"{key[1]} in '{room.name if room else key[0]}' needs {quantity} stations, "
                    f"got {len(picked[key])}",
                    details={
                        "room": room.name if room else key[0],
                        "station_type": key[1],
                        "required": quantity,
                        "provided": len(picked[key]),
                    },
                )
        return [station for stations in picked.values() for station in stations]

    # ------------------------------------------------------------------
    # Extend
    # ------------------------------------------------------------------

    @BaseService.measure_operation("extend_reservation")
    def extend_reservation(
        self, principal: Principal, reservation_id: str, hours_to_add: DurationLike
    ) -> Reservation:
        """
        Extend an active session.

        The end time is recomputed from the session start and the new total
        duration, never from the previous end time. Capacity for the grown
        window is re-checked and the price delta uses current inventory
        prices; if any line item can't be priced nothing changes.

        Raises:
            InvalidDurationException: hours_to_add not a positive multiple of 0.5
            PriceResolutionFailedException: A line item no longer resolves to a price
            CapacityExceededException: The extension would overbook some hour
        """
        hours = validate_duration(hours_to_add)
        reservation = self._get_or_404(reservation_id)
        self._require_reservation_owner(reservation, principal)
        if reservation.status != ReservationStatus.ACTIVE.value:
            raise InvalidReservationStateException(
                "extended", reservation.status, expected=ReservationStatus.ACTIVE.value
            )

        venue = self.availability.load_venue(reservation.venue_id)
        price_delta = Decimal("0")
        for line in reservation.line_items:
            room = venue.room_by_id(line.room_id)
            price = room.price_per_hour(line.station_type) if room is not None else None
            if price is None:
                raise PriceResolutionFailedException(line.room_name, line.station_type)
            price_delta += hours * price * int(line.quantity)
        price_delta = price_delta.quantize(CENT)

        observed_duration = Decimal(reservation.duration_hours)
        new_duration = observed_duration + hours
        window = reservation.window.extended(hours)
        window.ensure_within_day()
        resolved = self._resolved_from_reservation(venue, reservation)

        session_start = reservation.session_start_time
        if session_start is None:
            raise InvalidReservationStateException("extended", "active without a session start")
        start_utc = ensure_utc(session_start)
        assert start_utc is not None
        new_end = start_utc + timedelta(hours=float(new_duration))

        lock_keys = [
            slot_lock_key(str(venue.id), item.room_id, item.station_type, reservation.booking_date)
            for item in resolved
        ]
        with slot_locks(lock_keys):
            with self.transaction():
                for item in resolved:
                    self.availability.ensure_capacity_for(
                        venue, item, reservation.booking_date, window,
                        exclude_reservation_id=reservation.id,
                    )
                changed = self.repository.extend_if_unchanged(
                    reservation.id,
                    observed_duration,
                    duration_hours=new_duration,
                    extended_hours=Decimal(reservation.extended_hours or 0) + hours,
                    total_price=(Decimal(reservation.total_price) + price_delta).quantize(CENT),
                    calculated_end_time=new_end,
                )
                if not changed:
                    current = self._reload(reservation.id)
                    if current.status != ReservationStatus.ACTIVE.value:
                        raise InvalidReservationStateException(
                            "extended", current.status, expected=ReservationStatus.ACTIVE.value
                        )
                    raise ConflictException(
                        "Reservation was modified concurrently; retry the extension",
                        code="CONCURRENT_MODIFICATION",
                        details={"reservation_id": reservation.id},
                    )

        prometheus_metrics.record_transition("active->extended")
        self.log_operation(
            "extend_reservation",
            reservation_id=reservation.id,
            hours_added=str(hours),
            price_delta=str(price_delta),
        )
        self.event_publisher.publish(
            SessionExtended(
                reservation_id=reservation.id,
                hours_added=hours,
                price_delta=price_delta,
                calculated_end_time=new_end,
            )
        )
        return self._reload(reservation.id)

    # ------------------------------------------------------------------
    # Complete
    # ------------------------------------------------------------------

    @BaseService.measure_operation("complete_session")
    def complete_session(self, principal: Principal, reservation_id: str) -> Reservation:
        """
        End a session early: release every bound station and complete.

        A reservation that reconciliation already completed is returned
        unchanged.
        """
        reservation = self._get_or_404(reservation_id)
        self._require_reservation_owner(reservation, principal)
        if reservation.status == ReservationStatus.COMPLETED.value:
            return reservation
        if reservation.status != ReservationStatus.ACTIVE.value:
            raise InvalidReservationStateException(
                "completed", reservation.status, expected=ReservationStatus.ACTIVE.value
            )

        now = self.now()
        with self.transaction():
            released = self.station_repository.release_all_for(reservation.id, now)
            if not self.repository.transition(
                reservation.id,
                ReservationStatus.ACTIVE.value,
                status=ReservationStatus.COMPLETED.value,
                completed_at=now,
            ):
                current = self._reload(reservation.id)
                if current.status == ReservationStatus.COMPLETED.value:
                    return current
                raise InvalidReservationStateException(
                    "completed", current.status, expected=ReservationStatus.ACTIVE.value
                )

        prometheus_metrics.record_transition("active->completed")
        self.log_operation(
            "complete_session", reservation_id=reservation.id, released=released
        )
        self.event_publisher.publish(
            SessionCompleted(reservation_id=reservation.id, completed_at=now, source="manual")
        )
        return self._reload(reservation.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @BaseService.measure_operation("get_available_stations")
    def get_available_stations(
        self,
        principal: Principal,
        venue_id: str,
        room_name: Optional[str] = None,
        station_type: Optional[str] = None,
    ) -> Dict[str, Dict[str, List[str]]]:
        """
        Available stations staff can assign right now.

        Returns:
            {room_name: {station_type: [station codes]}}
        """
        venue = self.availability.load_venue(venue_id)
        self._require_venue_owner(venue, principal)
        room_id: Optional[str] = None
        if room_name is not None:
            room_id = self.availability.resolve_room(venue, room_name).id

        stations = self.station_repository.list_for_venue(
            venue.id,
            status=StationStatus.AVAILABLE.value,
            room_id=room_id,
            station_type=station_type,
        )
        rooms = {room.id: room.name for room in venue.rooms}
        result: Dict[str, Dict[str, List[str]]] = {}
        for station in stations:
            name = rooms.get(station.room_id, station.room_id)
            result.setdefault(name, {}).setdefault(station.station_type, []).append(station.code)
        return result

    @BaseService.measure_operation("get_reservation")
    def get_reservation(self, principal: Principal, reservation_id: str) -> Reservation:
        reservation = self._get_or_404(reservation_id)
        if not reservation.can_be_viewed_by(principal.id):
            raise NotAuthorizedException("Not authorized to view this reservation")
        return reservation

    @BaseService.measure_operation("list_for_customer")
    def list_for_customer(
        self, principal: Principal, status: Optional[str] = None
    ) -> List[Reservation]:
        return self.repository.list_for_customer(principal.id, status=status)

    @BaseService.measure_operation("list_for_venue")
    def list_for_venue(
        self,
        principal: Principal,
        venue_id: str,
        booking_date: Optional[date] = None,
        status: Optional[str] = None,
    ) -> List[Reservation]:
        venue = self.availability.load_venue(venue_id)
        self._require_venue_owner(venue, principal)
        return self.repository.list_for_venue(venue.id, booking_date=booking_date, status=status)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_or_404(self, reservation_id: str) -> Reservation:
        reservation = self.repository.get_with_details(reservation_id)
        if reservation is None:
            raise NotFoundException(
                f"Reservation {reservation_id} not found",
                details={"reservation_id": reservation_id},
            )
        return reservation

    def _reload(self, reservation_id: str) -> Reservation:
        self.db.expire_all()
        return self._get_or_404(reservation_id)

    def _require_venue_owner(self, venue: Venue, principal: Principal) -> None:
        if not principal.is_venue_owner or venue.owner_id != principal.id:
            raise NotAuthorizedException("Only the venue owner can perform this action")

    def _require_reservation_owner(self, reservation: Reservation, principal: Principal) -> None:
        if not principal.is_venue_owner or reservation.owner_id != principal.id:
            raise NotAuthorizedException("Only the venue owner can manage this session")

    def _validate_booking_window(self, venue: Venue, booking_date: date, window: TimeWindow) -> None:
        local_now = venue_now(venue.timezone, self.now())
        today = local_now.date()
        if booking_date < today:
            raise ValidationException(
                "Cannot book a date in the past",
                code="BOOKING_DATE_IN_PAST",
                details={"booking_date": booking_date.isoformat(), "today": today.isoformat()},
            )
        # Same day: the hour slot already under way is still bookable (walk-ins)
        current_slot_start = local_now.hour * 60
        if booking_date == today and window.start_minutes < current_slot_start:
            raise ValidationException(
                "Cannot book a start time that has already passed",
                code="START_TIME_IN_PAST",
                details={
                    "start_time": format_minutes_label(window.start_minutes),
                    "current_slot": format_minutes_label(current_slot_start),
                },
            )
        opens, closes = int(venue.opening_hour) * 60, int(venue.closing_hour) * 60
        if window.start_minutes < opens or window.end_minutes > closes:
            raise ValidationException(
                "Reservation window is outside the venue's opening hours",
                code="OUTSIDE_OPENING_HOURS",
                details={
                    "start_time": format_minutes_label(window.start_minutes),
                    "opening_hour": venue.opening_hour,
                    "closing_hour": venue.closing_hour,
                },
            )

    def _resolve_items(
        self, venue: Venue, line_items: Sequence[LineItemRequest]
    ) -> Dict[Tuple[str, str], ResolvedLineItem]:
        """Resolve and merge line items so each (room, type) is checked once with its full quantity."""
        merged: Dict[Tuple[str, str], ResolvedLineItem] = {}
        for request in line_items:
            item = self.availability.resolve_line_item(venue, request)
            key = (item.room_id, item.station_type)
            existing = merged.get(key)
            if existing is not None:
                item = ResolvedLineItem(
                    room=item.room,
                    station_type=item.station_type,
                    quantity=existing.quantity + item.quantity,
                    total_count=item.total_count,
                )
            merged[key] = item
        return merged

    def _resolved_from_reservation(
        self, venue: Venue, reservation: Reservation
    ) -> List[ResolvedLineItem]:
        resolved: List[ResolvedLineItem] = []
        for line in reservation.line_items:
            room = venue.room_by_id(line.room_id)
            if room is None:
                raise NotFoundException(
                    f"Room '{line.room_name}' no longer exists",
                    details={"room": line.room_name},
                )
            resolved.append(
                ResolvedLineItem(
                    room=room,
                    station_type=line.station_type,
                    quantity=int(line.quantity),
                    total_count=self.availability.resolve_total(room, line.station_type),
                )
            )
        return resolved

    def _price_for(self, room: Room, station_type: str) -> Decimal:
        price = room.price_per_hour(station_type)
        if price is None:
            raise PriceResolutionFailedException(room.name, station_type)
        return price

    @staticmethod
    def _generate_code() -> str:
        return "".join(
            secrets.choice(string.digits) for _ in range(settings.verification_code_length)
        )
