# backend/tests/repositories/test_station_repository.py
"""Compare-and-swap station transitions and binding rows."""

from datetime import datetime, timezone

import pytest

from cafeslot.core.enums import StationStatus
from cafeslot.repositories.station_repository import StationRepository

AT = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo(db):
    return StationRepository(db)


@pytest.fixture
def pc1(repo, venue):
    return repo.get_by_code(venue.id, "PC-1")


class TestClaimRelease:
    def test_claim_only_from_available(self, repo, db, pc1, make_walk_in):
        first = make_walk_in(name="First")
        second = make_walk_in(name="Second", start_time="06:00 PM")

        assert repo.claim(pc1.id, first.id) is True
        assert repo.claim(pc1.id, second.id) is False

        db.refresh(pc1)
        assert pc1.status == StationStatus.ACTIVE.value
        assert pc1.active_reservation_id == first.id

    def test_release_checks_holder(self, repo, db, pc1, make_walk_in):
        holder = make_walk_in(name="Holder")
        other = make_walk_in(name="Other", start_time="06:00 PM")
        repo.claim(pc1.id, holder.id)

        assert repo.release(pc1.id, other.id) is False
        assert repo.release(pc1.id, holder.id) is True
        assert repo.release(pc1.id, holder.id) is False

        db.refresh(pc1)
        assert pc1.status == StationStatus.AVAILABLE.value
        assert pc1.active_reservation_id is None

    def test_maintenance_transition_refuses_held_station(self, repo, pc1, make_walk_in):
        holder = make_walk_in()
        repo.claim(pc1.id, holder.id)

        assert (
            repo.transition_status(
                pc1.id, StationStatus.ACTIVE.value, StationStatus.UNDER_MAINTENANCE.value
            )
            is False
        )

    def test_clear_stale_reference(self, repo, db, pc1, make_walk_in):
        holder = make_walk_in()
        pc1.active_reservation_id = holder.id
        db.flush()

        assert repo.clear_stale_reference(pc1.id, holder.id) is True

        db.refresh(pc1)
        assert pc1.active_reservation_id is None


class TestReleaseAllFor:
    def test_releases_bound_and_back_referenced_stations(self, repo, db, venue, make_walk_in):
        reservation = make_walk_in(items=(("A", "PC", 2),))
        pc1 = repo.get_by_code(venue.id, "PC-1")
        pc2 = repo.get_by_code(venue.id, "PC-2")
        repo.claim(pc1.id, reservation.id)
        repo.add_binding(reservation_id=reservation.id, station=pc1, bound_at=AT)
        # PC-2 only carries the back-reference, no binding row
        repo.claim(pc2.id, reservation.id)

        released = repo.release_all_for(reservation.id, AT)

        assert released == 2
        assert repo.find_held_by(reservation.id) == []
        assert repo.open_bindings(reservation.id) == []

    def test_second_call_releases_nothing(self, repo, venue, make_walk_in):
        reservation = make_walk_in()
        pc1 = repo.get_by_code(venue.id, "PC-1")
        repo.claim(pc1.id, reservation.id)
        repo.add_binding(reservation_id=reservation.id, station=pc1, bound_at=AT)

        assert repo.release_all_for(reservation.id, AT) == 1
        assert repo.release_all_for(reservation.id, AT) == 0

    def test_find_active_includes_stale_references(self, repo, db, venue, make_walk_in):
        reservation = make_walk_in()
        pc3 = repo.get_by_code(venue.id, "PC-3")
        pc3.active_reservation_id = reservation.id
        db.flush()

        assert [s.code for s in repo.find_active(venue.id)] == ["PC-3"]
