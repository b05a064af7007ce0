# backend/tests/conftest.py
"""
Pytest configuration for cafeslot.

Every test gets its own SQLite file so thread-based concurrency tests see
real transactions, a controllable clock, and a seeded venue:

    Venue "Pixel Arena" (timezone UTC, open 00-24)
      Room "A": 5 PCs (PC-1..PC-5, 100/h), 2 PS5 (PS-1, PS-2, 150/h)
      Room "B": legacy group of 3 VR rigs at 200/h, no station rows
"""

import os

# CRITICAL: Set testing mode BEFORE any cafeslot imports!
os.environ["is_testing"] = "true"
os.environ["slot_lock_enabled"] = "false"

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Sequence, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from cafeslot.core.config import settings

settings.is_testing = True
settings.slot_lock_enabled = False

from cafeslot.api.dependencies import get_db as api_get_db
from cafeslot.api.dependencies.auth import create_access_token
from cafeslot.core.enums import PrincipalRole
from cafeslot.database import Base, create_engine_for
from cafeslot.events import EventPublisher
from cafeslot.models.venue import Venue
from cafeslot.principal import Principal
from cafeslot.repositories.venue_repository import VenueRepository
from cafeslot.services.availability_service import LineItemRequest
from cafeslot.services.reconciliation_service import ReconciliationService
from cafeslot.services.reservation_service import ReservationService
from cafeslot.services.station_ledger_service import StationLedgerService

OWNER_ID = "01HZXK0000000000000000000A"
OTHER_OWNER_ID = "01HZXK0000000000000000000B"
CUSTOMER_ID = "01HZXC0000000000000000000A"
OTHER_CUSTOMER_ID = "01HZXC0000000000000000000B"

# 09:00 UTC on a fixed weekday; bookings default to the same day
START_OF_TEST = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 10)


class FakeClock:
    """Callable clock the tests can move."""

    def __init__(self, start: datetime = START_OF_TEST):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


class RecordingPublisher(EventPublisher):
    """Event publisher that keeps what it published."""

    def __init__(self) -> None:
        self.events: List[Any] = []

    def publish(self, event: Any) -> None:
        self.events.append(event)
        super().publish(event)

    def of_type(self, cls: type) -> List[Any]:
        return [e for e in self.events if isinstance(e, cls)]


@pytest.fixture(scope="function")
def session_factory(tmp_path) -> Iterator[sessionmaker]:
    engine = create_engine_for(f"sqlite:///{tmp_path / 'cafeslot_test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture(scope="function")
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def owner() -> Principal:
    return Principal(id=OWNER_ID, role=PrincipalRole.VENUE_OWNER, display_name="Owner")


@pytest.fixture
def other_owner() -> Principal:
    return Principal(id=OTHER_OWNER_ID, role=PrincipalRole.VENUE_OWNER)


@pytest.fixture
def customer() -> Principal:
    return Principal(id=CUSTOMER_ID, role=PrincipalRole.CUSTOMER, display_name="Asha")


@pytest.fixture
def other_customer() -> Principal:
    return Principal(id=OTHER_CUSTOMER_ID, role=PrincipalRole.CUSTOMER)


def seed_venue(db: Session, owner_id: str = OWNER_ID, name: str = "Pixel Arena") -> Venue:
    venue = VenueRepository(db).create_venue_with_inventory(
        owner_id=owner_id,
        name=name,
        timezone="UTC",
        rooms=[
            {
                "name": "A",
                "stations": [
                    *({"code": f"PC-{i}", "station_type": "PC", "price_per_hour": 100} for i in range(1, 6)),
                    {"code": "PS-1", "station_type": "PS5", "price_per_hour": 150},
                    {"code": "PS-2", "station_type": "PS5", "price_per_hour": 150},
                ],
            },
            {
                "name": "B",
                "groups": [{"station_type": "VR", "total_count": 3, "price_per_hour": 200}],
            },
        ],
    )
    db.commit()
    return venue


@pytest.fixture
def venue(db: Session) -> Venue:
    return seed_venue(db)


@pytest.fixture
def reservation_service(db: Session, clock: FakeClock, publisher: RecordingPublisher) -> ReservationService:
    return ReservationService(db, clock=clock, event_publisher=publisher)


@pytest.fixture
def ledger_service(db: Session, clock: FakeClock) -> StationLedgerService:
    return StationLedgerService(db, clock=clock)


@pytest.fixture
def reconciliation_service(
    db: Session, clock: FakeClock, publisher: RecordingPublisher
) -> ReconciliationService:
    return ReconciliationService(db, clock=clock, event_publisher=publisher)


@pytest.fixture
def make_walk_in(reservation_service: ReservationService, owner: Principal, venue: Venue) -> Callable[..., Any]:
    """Book a walk-in (booked immediately, holds capacity)."""

    def _make(
        items: Sequence[Tuple[str, str, int]] = (("A", "PC", 1),),
        start_time: str = "02:00 PM",
        duration: Any = 2,
        booking_date: date = TODAY,
        name: str = "Walk-in",
    ):
        return reservation_service.create_reservation(
            owner,
            venue_id=venue.id,
            booking_date=booking_date,
            start_time=start_time,
            duration=duration,
            line_items=[LineItemRequest(room, station_type, qty) for room, station_type, qty in items],
            walk_in_name=name,
        )

    return _make


def auth_headers(principal: Principal) -> Dict[str, str]:
    token = create_access_token(principal.id, principal.role, name=principal.display_name)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db: Session, clock: FakeClock):
    """Test client sharing the test session; services use the fake clock."""
    from cafeslot.api.dependencies import services as service_deps
    from cafeslot.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[api_get_db] = override_get_db
    app.dependency_overrides[service_deps.get_reservation_service] = lambda: ReservationService(
        db, clock=clock
    )
    app.dependency_overrides[service_deps.get_station_ledger_service] = lambda: StationLedgerService(
        db, clock=clock
    )
    app.dependency_overrides[service_deps.get_reconciliation_service] = lambda: ReconciliationService(
        db, clock=clock
    )

    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()
    test_client.close()
