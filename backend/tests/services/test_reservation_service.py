# backend/tests/services/test_reservation_service.py
"""
Reservation lifecycle tests: create, confirm payment, cancel, assign,
extend and complete.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from cafeslot.core.enums import PaymentStatus, ReservationStatus, StationStatus
from cafeslot.core.exceptions import (
    AssignmentMismatchException,
    BusinessRuleException,
    CancellationWindowClosedException,
    CapacityExceededException,
    InvalidCodeException,
    InvalidDurationException,
    InvalidReservationStateException,
    NotAuthorizedException,
    NotFoundException,
    PriceResolutionFailedException,
    StationUnavailableException,
    ValidationException,
)
from cafeslot.events import (
    RefundInstruction,
    ReservationCancelled,
    ReservationCreated,
    SessionCompleted,
    SessionExtended,
    SessionStarted,
)
from cafeslot.models.venue import Station
from cafeslot.repositories.station_repository import StationRepository
from cafeslot.services.availability_service import LineItemRequest
from cafeslot.services.reservation_service import StationAssignment

from tests.conftest import CUSTOMER_ID, START_OF_TEST, TODAY


def station_status(db, venue, code):
    db.expire_all()
    return StationRepository(db).get_by_code(venue.id, code).status


def book_remote(service, customer, venue, items=(("A", "PC", 1),), start_time="02:00 PM", duration=2, booking_date=TODAY):
    return service.create_reservation(
        customer,
        venue_id=venue.id,
        booking_date=booking_date,
        start_time=start_time,
        duration=duration,
        line_items=[LineItemRequest(*item) for item in items],
        phone_number="9999999999",
    )


def pcs(*numbers):
    return [StationAssignment(room_name="A", station_codes=[f"PC-{n}" for n in numbers])]


class TestCreateReservation:
    def test_remote_booking_waits_for_payment(self, reservation_service, customer, venue, publisher):
        reservation = book_remote(reservation_service, customer, venue)

        assert reservation.status == ReservationStatus.PENDING_PAYMENT.value
        assert reservation.customer_id == CUSTOMER_ID
        assert reservation.owner_id == venue.owner_id
        assert reservation.is_paid is False
        assert reservation.payment_status == PaymentStatus.PENDING.value
        assert reservation.verification_code is not None
        assert len(reservation.verification_code) == 6
        assert reservation.verification_code.isdigit()
        assert reservation.total_price == Decimal("200.00")

        created = publisher.of_type(ReservationCreated)
        assert [e.reservation_id for e in created] == [reservation.id]

    def test_walk_in_is_booked_immediately(self, make_walk_in):
        reservation = make_walk_in(name="  Ravi  ")

        assert reservation.status == ReservationStatus.BOOKED.value
        assert reservation.walk_in_name == "Ravi"
        assert reservation.customer_id is None
        assert reservation.payment_method == "cash"
        assert reservation.verification_code is None
        assert reservation.is_paid is False

    def test_walk_in_needs_a_name(self, reservation_service, owner, venue):
        with pytest.raises(ValidationException) as exc_info:
            reservation_service.create_reservation(
                owner,
                venue_id=venue.id,
                booking_date=TODAY,
                start_time="02:00 PM",
                duration=1,
                line_items=[LineItemRequest("A", "PC", 1)],
                walk_in_name=" ",
            )
        assert exc_info.value.code == "WALK_IN_NAME_REQUIRED"

    def test_other_owner_cannot_book_walk_in(self, reservation_service, other_owner, venue):
        with pytest.raises(NotAuthorizedException):
            reservation_service.create_reservation(
                other_owner,
                venue_id=venue.id,
                booking_date=TODAY,
                start_time="02:00 PM",
                duration=1,
                line_items=[LineItemRequest("A", "PC", 1)],
                walk_in_name="Someone",
            )

    def test_duration_validity(self, make_walk_in):
        with pytest.raises(InvalidDurationException):
            make_walk_in(duration=1.3)
        reservation = make_walk_in(duration=1.5)
        assert reservation.duration_hours == Decimal("1.5")
        assert reservation.total_price == Decimal("150.00")

    def test_multi_item_price(self, make_walk_in):
        reservation = make_walk_in(items=[("A", "PC", 2), ("A", "PS5", 1), ("B", "VR", 1)])
        # (2 x 100 + 150 + 200) x 2h
        assert reservation.total_price == Decimal("1100.00")
        assert [(i.room_name, i.station_type, i.quantity) for i in reservation.line_items] == [
            ("A", "PC", 2),
            ("A", "PS5", 1),
            ("B", "VR", 1),
        ]

    def test_duplicate_line_items_are_merged(self, make_walk_in):
        with pytest.raises(CapacityExceededException):
            make_walk_in(items=[("A", "PC", 3), ("A", "PC", 3)])
        reservation = make_walk_in(items=[("A", "PC", 2), ("A", "PC", 1)])
        assert reservation.total_quantity == 3

    def test_past_date_rejected(self, make_walk_in):
        with pytest.raises(ValidationException) as exc_info:
            make_walk_in(booking_date=TODAY - timedelta(days=1))
        assert exc_info.value.code == "BOOKING_DATE_IN_PAST"

    def test_same_day_start_already_passed_rejected(self, make_walk_in, clock):
        clock.set(START_OF_TEST.replace(minute=40))
        with pytest.raises(ValidationException) as exc_info:
            make_walk_in(start_time="08:00 AM", duration=1)
        assert exc_info.value.code == "START_TIME_IN_PAST"

        # The hour already under way still takes walk-ins
        reservation = make_walk_in(start_time="09:00 AM", duration=1)
        assert reservation.status == "booked"
        assert make_walk_in(start_time="08:00 AM", booking_date=TODAY + timedelta(days=1))

    def test_requires_line_items(self, make_walk_in):
        with pytest.raises(ValidationException) as exc_info:
            make_walk_in(items=[])
        assert exc_info.value.code == "LINE_ITEMS_REQUIRED"

    def test_zero_quantity_rejected(self, make_walk_in):
        with pytest.raises(ValidationException) as exc_info:
            make_walk_in(items=[("A", "PC", 0)])
        assert exc_info.value.code == "INVALID_QUANTITY"

    def test_unknown_room(self, make_walk_in):
        with pytest.raises(NotFoundException):
            make_walk_in(items=[("Basement", "PC", 1)])

    def test_outside_opening_hours(self, db, reservation_service, owner, venue):
        venue.opening_hour = 10
        venue.closing_hour = 22
        db.commit()
        with pytest.raises(ValidationException) as exc_info:
            reservation_service.create_reservation(
                owner,
                venue_id=venue.id,
                booking_date=TODAY,
                start_time="09:00 PM",
                duration=2,
                line_items=[LineItemRequest("A", "PC", 1)],
                walk_in_name="Late",
            )
        assert exc_info.value.code == "OUTSIDE_OPENING_HOURS"

    def test_inactive_venue(self, db, make_walk_in, venue):
        venue.is_active = False
        db.commit()
        with pytest.raises(BusinessRuleException) as exc_info:
            make_walk_in()
        assert exc_info.value.code == "VENUE_INACTIVE"


class TestConfirmPayment:
    def test_pending_becomes_booked(self, reservation_service, customer, venue):
        pending = book_remote(reservation_service, customer, venue)
        booked = reservation_service.confirm_payment(pending.id, "upi", principal=customer)

        assert booked.status == ReservationStatus.BOOKED.value
        assert booked.is_paid is True
        assert booked.payment_status == PaymentStatus.COMPLETED.value
        assert booked.payment_method == "upi"

    def test_confirm_twice_is_noop(self, reservation_service, customer, venue):
        pending = book_remote(reservation_service, customer, venue)
        reservation_service.confirm_payment(pending.id, "card", principal=customer)
        again = reservation_service.confirm_payment(pending.id, "card", principal=customer)
        assert again.status == ReservationStatus.BOOKED.value

    def test_capacity_rechecked_at_confirmation(self, reservation_service, customer, venue, make_walk_in):
        pending = book_remote(reservation_service, customer, venue, items=[("A", "PC", 3)])
        make_walk_in(items=[("A", "PC", 3)])
        with pytest.raises(CapacityExceededException):
            reservation_service.confirm_payment(pending.id, "wallet", principal=customer)
        still_pending = reservation_service.get_reservation(customer, pending.id)
        assert still_pending.status == ReservationStatus.PENDING_PAYMENT.value

    def test_unknown_method(self, reservation_service, customer, venue):
        pending = book_remote(reservation_service, customer, venue)
        with pytest.raises(ValidationException) as exc_info:
            reservation_service.confirm_payment(pending.id, "bitcoin")
        assert exc_info.value.code == "INVALID_PAYMENT_METHOD"

    def test_other_customer_cannot_pay(self, reservation_service, customer, other_customer, venue):
        pending = book_remote(reservation_service, customer, venue)
        with pytest.raises(NotAuthorizedException):
            reservation_service.confirm_payment(pending.id, "upi", principal=other_customer)


class TestCancelReservation:
    def test_three_days_out_succeeds_any_time(self, reservation_service, customer, venue, clock):
        pending = book_remote(
            reservation_service, customer, venue, booking_date=TODAY + timedelta(days=3)
        )
        reservation_service.confirm_payment(pending.id, "upi", principal=customer)
        clock.set(START_OF_TEST.replace(hour=23, minute=50))

        cancelled = reservation_service.cancel_reservation(customer, pending.id, reason="plans changed")

        assert cancelled.status == ReservationStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "plans changed"
        assert cancelled.cancelled_by_id == customer.id

    def test_today_twenty_minutes_after_start_fails(self, make_walk_in, reservation_service, owner, clock):
        reservation = make_walk_in(start_time="02:00 PM")
        clock.set(START_OF_TEST.replace(hour=14, minute=20))

        with pytest.raises(CancellationWindowClosedException) as exc_info:
            reservation_service.cancel_reservation(owner, reservation.id)
        assert exc_info.value.code == "CANCELLATION_WINDOW_CLOSED"

    def test_today_within_grace_succeeds(self, make_walk_in, reservation_service, owner, clock):
        reservation = make_walk_in(start_time="02:00 PM")
        clock.set(START_OF_TEST.replace(hour=14, minute=10))
        assert reservation_service.cancel_reservation(owner, reservation.id).status == "cancelled"

    def test_past_date_fails(self, make_walk_in, reservation_service, owner, clock):
        reservation = make_walk_in(start_time="02:00 PM")
        clock.advance(days=1)
        with pytest.raises(CancellationWindowClosedException):
            reservation_service.cancel_reservation(owner, reservation.id)

    def test_wallet_paid_cancellation_emits_full_refund(
        self, reservation_service, customer, venue, publisher
    ):
        pending = book_remote(reservation_service, customer, venue, items=[("A", "PC", 3)])
        reservation_service.confirm_payment(pending.id, "wallet", principal=customer)

        cancelled = reservation_service.cancel_reservation(customer, pending.id)

        assert cancelled.payment_status == PaymentStatus.REFUNDED.value
        refunds = publisher.of_type(RefundInstruction)
        assert len(refunds) == 1
        assert refunds[0].amount == Decimal("600.00")
        assert refunds[0].destination == CUSTOMER_ID
        assert len(refunds[0].instruction_id) == 26
        assert publisher.of_type(ReservationCancelled)[0].refund_amount == Decimal("600.00")

    def test_non_wallet_cancellation_has_no_refund(self, reservation_service, customer, venue, publisher):
        pending = book_remote(reservation_service, customer, venue)
        reservation_service.confirm_payment(pending.id, "card", principal=customer)
        reservation_service.cancel_reservation(customer, pending.id)
        assert publisher.of_type(RefundInstruction) == []

    def test_only_booked_can_be_cancelled(self, reservation_service, customer, venue):
        pending = book_remote(reservation_service, customer, venue)
        with pytest.raises(InvalidReservationStateException):
            reservation_service.cancel_reservation(customer, pending.id)

    def test_stranger_cannot_cancel(self, make_walk_in, reservation_service, other_customer):
        reservation = make_walk_in()
        with pytest.raises(NotAuthorizedException):
            reservation_service.cancel_reservation(other_customer, reservation.id)


class TestAssignStations:
    def test_assign_starts_session(self, db, make_walk_in, reservation_service, owner, venue, clock, publisher):
        reservation = make_walk_in(items=[("A", "PC", 3)], duration=2)

        active = reservation_service.assign_stations(owner, reservation.id, pcs(1, 2, 3))

        assert active.status == ReservationStatus.ACTIVE.value
        assert active.effective_end_time() == clock() + timedelta(hours=2)
        assert sorted(b.station_code for b in active.active_bindings()) == ["PC-1", "PC-2", "PC-3"]
        for code in ("PC-1", "PC-2", "PC-3"):
            assert station_status(db, venue, code) == StationStatus.ACTIVE.value
        assert station_status(db, venue, "PC-4") == StationStatus.AVAILABLE.value
        started = publisher.of_type(SessionStarted)
        assert started[0].station_codes == ["PC-1", "PC-2", "PC-3"]

    def test_remote_booking_needs_matching_code(self, reservation_service, customer, owner, venue):
        pending = book_remote(reservation_service, customer, venue)
        booked = reservation_service.confirm_payment(pending.id, "upi", principal=customer)

        with pytest.raises(InvalidCodeException):
            reservation_service.assign_stations(owner, booked.id, pcs(1), verification_code="000000x")

        active = reservation_service.assign_stations(
            owner, booked.id, pcs(1), verification_code=booked.verification_code
        )
        assert active.status == ReservationStatus.ACTIVE.value

    def test_count_mismatch(self, make_walk_in, reservation_service, owner):
        reservation = make_walk_in(items=[("A", "PC", 2)])
        with pytest.raises(AssignmentMismatchException):
            reservation_service.assign_stations(owner, reservation.id, pcs(1))

    def test_duplicate_codes(self, make_walk_in, reservation_service, owner):
        reservation = make_walk_in(items=[("A", "PC", 2)])
        with pytest.raises(AssignmentMismatchException):
            reservation_service.assign_stations(owner, reservation.id, pcs(1, 1))

    def test_wrong_type_for_line_items(self, make_walk_in, reservation_service, owner):
        reservation = make_walk_in(items=[("A", "PC", 1)])
        with pytest.raises(StationUnavailableException):
            reservation_service.assign_stations(
                owner, reservation.id, [StationAssignment("A", ["PS-1"])]
            )

    def test_station_under_maintenance(self, make_walk_in, reservation_service, ledger_service, owner, venue):
        reservation = make_walk_in(items=[("A", "PC", 1)])
        ledger_service.set_station_maintenance(owner, venue.id, "PC-1", True)
        with pytest.raises(StationUnavailableException):
            reservation_service.assign_stations(owner, reservation.id, pcs(1))

    def test_station_held_by_another_session(self, db, make_walk_in, reservation_service, owner, venue):
        first = make_walk_in(items=[("A", "PC", 1)], name="First")
        second = make_walk_in(items=[("A", "PC", 1)], name="Second")
        reservation_service.assign_stations(owner, first.id, pcs(1))

        with pytest.raises(StationUnavailableException):
            reservation_service.assign_stations(owner, second.id, pcs(1))
        assert reservation_service.get_reservation(owner, second.id).status == "booked"

    def test_lost_claim_mid_batch_rolls_back_earlier_claims(
        self, db, make_walk_in, reservation_service, owner, venue, monkeypatch
    ):
        reservation = make_walk_in(items=[("A", "PC", 2)])
        original = reservation_service.station_repository.claim
        claimed = []

        def second_claim_loses(station_id, reservation_id):
            claimed.append(station_id)
            if len(claimed) == 2:
                return False
            return original(station_id, reservation_id)

        monkeypatch.setattr(reservation_service.station_repository, "claim", second_claim_loses)

        with pytest.raises(StationUnavailableException):
            reservation_service.assign_stations(owner, reservation.id, pcs(1, 2))

        assert len(claimed) == 2
        assert station_status(db, venue, "PC-1") == StationStatus.AVAILABLE.value
        assert station_status(db, venue, "PC-2") == StationStatus.AVAILABLE.value
        assert reservation_service.get_reservation(owner, reservation.id).status == "booked"
        assert StationRepository(db).find_held_by(reservation.id) == []
        assert StationRepository(db).open_bindings(reservation.id) == []

    def test_customer_cannot_assign(self, make_walk_in, reservation_service, customer):
        reservation = make_walk_in()
        with pytest.raises(NotAuthorizedException):
            reservation_service.assign_stations(customer, reservation.id, pcs(1))

    def test_pending_reservation_cannot_start(self, reservation_service, customer, owner, venue):
        pending = book_remote(reservation_service, customer, venue)
        with pytest.raises(InvalidReservationStateException):
            reservation_service.assign_stations(
                owner, pending.id, pcs(1), verification_code=pending.verification_code
            )


class TestExtendReservation:
    def test_repeated_extensions_do_not_drift(self, make_walk_in, reservation_service, owner, clock, publisher):
        reservation = make_walk_in(items=[("A", "PC", 3)], duration=2)
        started = reservation_service.assign_stations(owner, reservation.id, pcs(1, 2, 3))
        session_start = clock()

        clock.advance(minutes=50)
        reservation_service.extend_reservation(owner, started.id, 1)
        clock.advance(minutes=47, seconds=13)
        extended = reservation_service.extend_reservation(owner, started.id, Decimal("1"))

        assert extended.effective_end_time() == session_start + timedelta(hours=4)
        assert extended.duration_hours == Decimal("4")
        assert extended.extended_hours == Decimal("2")
        assert extended.total_price == Decimal("1200.00")
        assert len(publisher.of_type(SessionExtended)) == 2

    def test_invalid_hours(self, make_walk_in, reservation_service, owner):
        reservation = make_walk_in()
        reservation_service.assign_stations(owner, reservation.id, pcs(1))
        with pytest.raises(InvalidDurationException):
            reservation_service.extend_reservation(owner, reservation.id, 1.3)

    def test_price_resolution_failure_changes_nothing(self, db, make_walk_in, reservation_service, owner, venue):
        reservation = make_walk_in(items=[("A", "PC", 1)])
        reservation_service.assign_stations(owner, reservation.id, pcs(1))
        db.query(Station).filter(Station.venue_id == venue.id, Station.station_type == "PC").update(
            {Station.price_per_hour: None}
        )
        db.commit()

        with pytest.raises(PriceResolutionFailedException):
            reservation_service.extend_reservation(owner, reservation.id, 1)

        unchanged = reservation_service.get_reservation(owner, reservation.id)
        assert unchanged.duration_hours == Decimal("2")
        assert unchanged.total_price == Decimal("200.00")
        assert unchanged.extended_hours == Decimal("0")

    def test_extension_respects_capacity(self, make_walk_in, reservation_service, owner):
        reservation = make_walk_in(items=[("A", "PC", 3)], start_time="02:00 PM", duration=2)
        reservation_service.assign_stations(owner, reservation.id, pcs(1, 2, 3))
        make_walk_in(items=[("A", "PC", 3)], start_time="04:00 PM", duration=1, name="Next")

        with pytest.raises(CapacityExceededException) as exc_info:
            reservation_service.extend_reservation(owner, reservation.id, 1)
        assert exc_info.value.details["hour"] == 16

    def test_only_active_can_extend(self, make_walk_in, reservation_service, owner):
        reservation = make_walk_in()
        with pytest.raises(InvalidReservationStateException):
            reservation_service.extend_reservation(owner, reservation.id, 1)


class TestCompleteSession:
    def test_complete_releases_stations(self, db, make_walk_in, reservation_service, owner, venue, publisher):
        reservation = make_walk_in(items=[("A", "PC", 2)])
        reservation_service.assign_stations(owner, reservation.id, pcs(1, 2))

        completed = reservation_service.complete_session(owner, reservation.id)

        assert completed.status == ReservationStatus.COMPLETED.value
        assert completed.completed_at is not None
        assert completed.active_bindings() == []
        assert all(b.released_at is not None for b in completed.bindings)
        assert station_status(db, venue, "PC-1") == StationStatus.AVAILABLE.value
        assert station_status(db, venue, "PC-2") == StationStatus.AVAILABLE.value
        assert publisher.of_type(SessionCompleted)[0].source == "manual"

    def test_complete_twice_is_noop(self, make_walk_in, reservation_service, owner, publisher):
        reservation = make_walk_in()
        reservation_service.assign_stations(owner, reservation.id, pcs(1))
        reservation_service.complete_session(owner, reservation.id)
        again = reservation_service.complete_session(owner, reservation.id)
        assert again.status == ReservationStatus.COMPLETED.value
        assert len(publisher.of_type(SessionCompleted)) == 1

    def test_booked_cannot_complete(self, make_walk_in, reservation_service, owner):
        reservation = make_walk_in()
        with pytest.raises(InvalidReservationStateException):
            reservation_service.complete_session(owner, reservation.id)


class TestQueries:
    def test_customer_sees_only_own(self, reservation_service, customer, other_customer, venue):
        mine = book_remote(reservation_service, customer, venue)
        with pytest.raises(NotAuthorizedException):
            reservation_service.get_reservation(other_customer, mine.id)
        assert [r.id for r in reservation_service.list_for_customer(customer)] == [mine.id]
        assert reservation_service.list_for_customer(other_customer) == []

    def test_venue_listing_is_owner_only(self, make_walk_in, reservation_service, owner, other_owner, venue):
        reservation = make_walk_in()
        listed = reservation_service.list_for_venue(owner, venue.id, booking_date=TODAY)
        assert [r.id for r in listed] == [reservation.id]
        with pytest.raises(NotAuthorizedException):
            reservation_service.list_for_venue(other_owner, venue.id)

    def test_available_stations(self, make_walk_in, reservation_service, owner, venue):
        reservation = make_walk_in(items=[("A", "PC", 2)])
        reservation_service.assign_stations(owner, reservation.id, pcs(1, 2))

        available = reservation_service.get_available_stations(owner, venue.id)
        assert available == {"A": {"PC": ["PC-3", "PC-4", "PC-5"], "PS5": ["PS-1", "PS-2"]}}
        assert reservation_service.get_available_stations(owner, venue.id, station_type="PS5") == {
            "A": {"PS5": ["PS-1", "PS-2"]}
        }

    def test_unknown_reservation(self, reservation_service, owner):
        with pytest.raises(NotFoundException):
            reservation_service.get_reservation(owner, "01HZZZZZZZZZZZZZZZZZZZZZZZ")
