# backend/tests/services/test_availability_service.py
"""
Availability calculator tests.

Room "A" holds 5 PCs at 100/h. Capacity is claimed only by booked and
active reservations, checked per hour slot.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from cafeslot.core.exceptions import CapacityExceededException, NotFoundException
from cafeslot.services.availability_service import AvailabilityService, LineItemRequest

from tests.conftest import TODAY


@pytest.fixture
def availability(db, clock):
    return AvailabilityService(db, clock=clock)


class TestRoomScenario:
    def test_second_booking_limited_to_remaining_pcs(self, availability, venue, make_walk_in):
        x = make_walk_in(items=[("A", "PC", 3)], start_time="02:00 PM", duration=2)
        assert x.total_price == Decimal("600.00")

        result = availability.check_availability(
            venue.id, "A", "PC", TODAY, "02:00 PM", 2, quantity=3
        )
        assert result == {"available": False, "free_count": 2}

        with pytest.raises(CapacityExceededException) as exc_info:
            make_walk_in(items=[("A", "PC", 3)], start_time="02:00 PM", duration=2, name="Y")
        details = exc_info.value.details
        assert details["hour"] == 14
        assert details["hour_label"] == "02:00 PM"
        assert details["free_count"] == 2
        assert details["requested"] == 3

        y = make_walk_in(items=[("A", "PC", 2)], start_time="02:00 PM", duration=2, name="Y")
        assert y.status == "booked"
        assert availability.free_count(venue.id, "A", "PC", TODAY, "02:00 PM", 2) == 0


class TestOverlap:
    def test_adjacent_window_is_free(self, availability, venue, make_walk_in):
        make_walk_in(items=[("A", "PC", 5)], start_time="02:00 PM", duration=2)
        assert availability.free_count(venue.id, "A", "PC", TODAY, "04:00 PM", 1) == 5

    def test_half_hour_tail_blocks_next_slot(self, availability, venue, make_walk_in):
        make_walk_in(items=[("A", "PC", 5)], start_time="02:00 PM", duration=1.5)
        assert availability.free_count(venue.id, "A", "PC", TODAY, "03:00 PM", 1) == 0

    def test_worst_hour_binds(self, availability, venue, make_walk_in):
        make_walk_in(items=[("A", "PC", 1)], start_time="02:00 PM", duration=1)
        make_walk_in(items=[("A", "PC", 3)], start_time="03:00 PM", duration=1)
        assert availability.free_count(venue.id, "A", "PC", TODAY, "02:00 PM", 2) == 2

    def test_first_offending_hour_is_reported(self, availability, venue, make_walk_in):
        make_walk_in(items=[("A", "PC", 5)], start_time="04:00 PM", duration=1)
        with pytest.raises(CapacityExceededException) as exc_info:
            availability.ensure_capacity(venue.id, "A", "PC", TODAY, "02:00 PM", 3, quantity=1)
        assert exc_info.value.details["hour"] == 16

    def test_other_types_and_dates_are_independent(self, availability, venue, make_walk_in):
        make_walk_in(items=[("A", "PC", 5)], start_time="02:00 PM", duration=2)
        assert availability.free_count(venue.id, "A", "PS5", TODAY, "02:00 PM", 2) == 2
        tomorrow = TODAY + timedelta(days=1)
        assert availability.free_count(venue.id, "A", "PC", tomorrow, "02:00 PM", 2) == 5


class TestCapacityHoldingStatuses:
    def test_pending_payment_does_not_hold_capacity(
        self, availability, venue, reservation_service, customer
    ):
        reservation_service.create_reservation(
            customer,
            venue_id=venue.id,
            booking_date=TODAY,
            start_time="02:00 PM",
            duration=2,
            line_items=[LineItemRequest("A", "PC", 5)],
        )
        assert availability.free_count(venue.id, "A", "PC", TODAY, "02:00 PM", 2) == 5

    def test_cancelled_releases_capacity(
        self, availability, venue, make_walk_in, reservation_service, owner
    ):
        booked = make_walk_in(items=[("A", "PC", 4)])
        reservation_service.cancel_reservation(owner, booked.id)
        assert availability.free_count(venue.id, "A", "PC", TODAY, "02:00 PM", 2) == 5

    def test_exclude_reservation(self, availability, venue, make_walk_in):
        booked = make_walk_in(items=[("A", "PC", 4)])
        free = availability.free_count(
            venue.id, "A", "PC", TODAY, "02:00 PM", 2, exclude_reservation_id=booked.id
        )
        assert free == 5


class TestInventoryResolution:
    def test_legacy_group_counts(self, availability, venue, make_walk_in):
        make_walk_in(items=[("B", "VR", 2)])
        assert availability.free_count(venue.id, "B", "VR", TODAY, "02:00 PM", 2) == 1

    def test_unknown_room(self, availability, venue):
        with pytest.raises(NotFoundException):
            availability.free_count(venue.id, "Z", "PC", TODAY, "02:00 PM", 1)

    def test_unknown_station_type(self, availability, venue):
        with pytest.raises(NotFoundException):
            availability.free_count(venue.id, "A", "Xbox", TODAY, "02:00 PM", 1)

    def test_unknown_venue(self, availability):
        with pytest.raises(NotFoundException):
            availability.free_count("01HZZZZZZZZZZZZZZZZZZZZZZZ", "A", "PC", TODAY, "02:00 PM", 1)


class TestSlotAvailability:
    def test_hourly_grid(self, availability, venue, make_walk_in):
        make_walk_in(items=[("A", "PC", 3)], start_time="02:00 PM", duration=2)
        grid = availability.get_slot_availability(venue.id, TODAY)

        assert set(grid) == {"A", "B"}
        assert grid["A"]["PC"]["01:00 PM"] == 5
        assert grid["A"]["PC"]["02:00 PM"] == 2
        assert grid["A"]["PC"]["03:00 PM"] == 2
        assert grid["A"]["PC"]["04:00 PM"] == 5
        assert grid["A"]["PS5"]["02:00 PM"] == 2
        assert grid["B"]["VR"]["02:00 PM"] == 3
        assert len(grid["A"]["PC"]) == 24
