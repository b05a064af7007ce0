# backend/cafeslot/services/station_ledger_service.py
"""
Station Ledger Service for cafeslot.

Staff-facing view of the physical floor: which station is free, which is
in a session and until when, and the maintenance toggle. Session binding
and release live in ReservationService and ReconciliationService; this
service only flips available <-> under_maintenance.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import ReservationStatus, StationStatus
from ..core.exceptions import (
    NotAuthorizedException,
    NotFoundException,
    StationBusyException,
    StationUnavailableException,
)
from ..models.venue import Station, Venue
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .base import BaseService, Clock

logger = logging.getLogger(__name__)


class StationLedgerService(BaseService):
    """Maintenance toggle and live floor status."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.station_repository = RepositoryFactory.create_station_repository(db)
        self.venue_repository = RepositoryFactory.create_venue_repository(db)
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)

    def _owned_venue(self, principal: Principal, venue_id: str) -> Venue:
        venue = self.venue_repository.get_with_inventory(venue_id)
        if venue is None:
            raise NotFoundException(f"Venue {venue_id} not found", details={"venue_id": venue_id})
        if not principal.is_venue_owner or venue.owner_id != principal.id:
            raise NotAuthorizedException("Only the venue owner can manage stations")
        return venue

    @BaseService.measure_operation("set_station_maintenance")
    def set_station_maintenance(
        self,
        principal: Principal,
        venue_id: str,
        station_code: str,
        under_maintenance: bool,
    ) -> Station:
        """
        Toggle a station between available and under_maintenance.

        Setting the status it already has is a no-op.

        Raises:
            NotFoundException: Unknown venue or station
            NotAuthorizedException: Caller doesn't own the venue
            StationBusyException: The station is in an active session
        """
        venue = self._owned_venue(principal, venue_id)
        station = self.station_repository.get_by_code(venue.id, station_code)
        if station is None:
            raise NotFoundException(
                f"Station {station_code} not found", details={"station": station_code}
            )

        target = (
            StationStatus.UNDER_MAINTENANCE.value
            if under_maintenance
            else StationStatus.AVAILABLE.value
        )
        if station.status == StationStatus.ACTIVE.value:
            raise StationBusyException(station.code)
        if station.status == target:
            return station

        with self.transaction():
            if not self.station_repository.transition_status(station.id, station.status, target):
                current = self.station_repository.get_by_id(station.id, load_relationships=False)
                if current is not None and current.status == StationStatus.ACTIVE.value:
                    raise StationBusyException(station.code)
                raise StationUnavailableException(
                    station.code,
                    "status changed concurrently",
                    current_status=current.status if current else None,
                )

        self.log_operation(
            "set_station_maintenance",
            venue_id=venue.id,
            station=station.code,
            status=target,
        )
        self.db.refresh(station)
        return station

    @BaseService.measure_operation("get_floor_status")
    def get_floor_status(self, principal: Principal, venue_id: str) -> Dict[str, Any]:
        """
        Live status of every station at a venue.

        Returns:
            {"rooms": [{"room", "stations": [...]}], "active_sessions": [...]}
            where each active station carries the reservation id, customer
            display name, end time and remaining seconds.
        """
        venue = self._owned_venue(principal, venue_id)
        now = self.now()

        held_ids = [
            station.active_reservation_id
            for room in venue.rooms
            for station in room.stations
            if station.active_reservation_id
        ]
        reservations = {
            r.id: r
            for r in self.reservation_repository.list_for_venue(
                venue.id, status=ReservationStatus.ACTIVE.value
            )
            if r.id in set(held_ids)
        }

        rooms: List[Dict[str, Any]] = []
        active_sessions: List[Dict[str, Any]] = []
        for room in venue.rooms:
            entries: List[Dict[str, Any]] = []
            for station in room.stations:
                entry: Dict[str, Any] = {
                    "code": station.code,
                    "station_type": station.station_type,
                    "status": station.status,
                    "active_reservation_id": None,
                    "customer_name": None,
                    "end_time": None,
                    "remaining_seconds": None,
                }
                reservation = reservations.get(station.active_reservation_id or "")
                if station.status == StationStatus.ACTIVE.value and reservation is not None:
                    end_time = reservation.effective_end_time()
                    entry["active_reservation_id"] = reservation.id
                    entry["customer_name"] = reservation.walk_in_name or "Customer"
                    if end_time is not None:
                        entry["end_time"] = end_time.isoformat()
                        entry["remaining_seconds"] = max(int((end_time - now).total_seconds()), 0)
                    active_sessions.append({"room": room.name, **entry})
                entries.append(entry)
            rooms.append({"room": room.name, "stations": entries})

        return {"venue_id": venue.id, "rooms": rooms, "active_sessions": active_sessions}
