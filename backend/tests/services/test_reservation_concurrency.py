# backend/tests/services/test_reservation_concurrency.py
"""
Concurrency properties: no overbooking under parallel creates, and a
station is never bound to two sessions under parallel assigns.

Each worker uses its own session; SQLite's BEGIN IMMEDIATE serializes
writers across them.
"""

from concurrent.futures import ThreadPoolExecutor
import threading

from cafeslot.core.enums import ReservationStatus, StationStatus
from cafeslot.core.exceptions import CapacityExceededException, DomainException
from cafeslot.models.reservation import Reservation
from cafeslot.repositories.station_repository import StationRepository
from cafeslot.services.availability_service import LineItemRequest
from cafeslot.services.reservation_service import ReservationService, StationAssignment

from tests.conftest import TODAY

WORKERS = 6


def _run_parallel(session_factory, clock, owner, action):
    barrier = threading.Barrier(WORKERS)

    def worker(index):
        session = session_factory()
        try:
            service = ReservationService(session, clock=clock)
            barrier.wait()
            try:
                return ("ok", action(service, index))
            except DomainException as exc:
                return ("error", exc)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        return list(pool.map(worker, range(WORKERS)))


class TestParallelCreates:
    def test_no_overbooking(self, db, session_factory, clock, owner, venue):
        venue_id = venue.id
        db.commit()

        def create(service, index):
            reservation = service.create_reservation(
                owner,
                venue_id=venue_id,
                booking_date=TODAY,
                start_time="02:00 PM",
                duration=2,
                line_items=[LineItemRequest("A", "PC", 2)],
                walk_in_name=f"Party {index}",
            )
            return reservation.id

        results = _run_parallel(session_factory, clock, owner, create)

        accepted = [value for outcome, value in results if outcome == "ok"]
        rejected = [value for outcome, value in results if outcome == "error"]
        assert len(accepted) == 2
        assert len(rejected) == WORKERS - 2
        assert all(isinstance(exc, CapacityExceededException) for exc in rejected)

        db.expire_all()
        booked = (
            db.query(Reservation)
            .filter(Reservation.status == ReservationStatus.BOOKED.value)
            .all()
        )
        assert sum(r.total_quantity for r in booked) == 4


class TestParallelAssigns:
    def test_station_bound_once(self, db, session_factory, clock, owner, venue, make_walk_in):
        # One-hour bookings at distinct hours so every guest fits
        reservation_ids = [
            make_walk_in(name=f"Guest {i}", start_time=f"{i + 1:02d}:00 PM", duration=1).id
            for i in range(WORKERS)
        ]
        venue_id = venue.id
        db.commit()

        def assign(service, index):
            reservation = service.assign_stations(
                owner, reservation_ids[index], [StationAssignment("A", ["PC-1"])]
            )
            return reservation.id

        results = _run_parallel(session_factory, clock, owner, assign)

        winners = [value for outcome, value in results if outcome == "ok"]
        assert len(winners) == 1

        db.expire_all()
        station = StationRepository(db).get_by_code(venue_id, "PC-1")
        assert station.status == StationStatus.ACTIVE.value
        assert station.active_reservation_id == winners[0]
        active = (
            db.query(Reservation)
            .filter(Reservation.status == ReservationStatus.ACTIVE.value)
            .all()
        )
        assert [r.id for r in active] == winners
