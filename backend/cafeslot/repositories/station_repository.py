# backend/cafeslot/repositories/station_repository.py
"""
Station Repository for cafeslot.

Every status change on a station goes through a conditional UPDATE whose
WHERE clause names the status it expects. A zero rowcount means another
writer got there first; callers decide whether that is an error.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import StationStatus
from ..core.exceptions import RepositoryException
from ..models.reservation import ReservationStationBinding
from ..models.venue import Station
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class StationRepository(BaseRepository[Station]):
    """Repository for stations and the reservation bindings that hold them."""

    def __init__(self, db: Session):
        super().__init__(db, Station)

    # Queries

    def get_by_code(self, venue_id: str, code: str) -> Optional[Station]:
        return self.find_one_by(venue_id=venue_id, code=code)

    def list_for_venue(
        self,
        venue_id: str,
        *,
        status: Optional[str] = None,
        room_id: Optional[str] = None,
        station_type: Optional[str] = None,
    ) -> List[Station]:
        try:
            query = self.db.query(Station).filter(Station.venue_id == venue_id)
            if status is not None:
                query = query.filter(Station.status == status)
            if room_id is not None:
                query = query.filter(Station.room_id == room_id)
            if station_type is not None:
                query = query.filter(Station.station_type == station_type)
            return query.order_by(Station.code).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing stations for venue {venue_id}: {str(e)}")
            raise RepositoryException(f"Failed to list stations: {str(e)}")

    def find_held_by(self, reservation_id: str) -> List[Station]:
        """Stations whose back-reference points at ``reservation_id``."""
        try:
            return (
                self.db.query(Station)
                .filter(Station.active_reservation_id == reservation_id)
                .order_by(Station.code)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding stations held by {reservation_id}: {str(e)}")
            raise RepositoryException(f"Failed to find held stations: {str(e)}")

    def find_active(self, venue_id: Optional[str] = None) -> List[Station]:
        """Stations in status active, or carrying a stale back-reference."""
        try:
            query = self.db.query(Station).filter(
                or_(
                    Station.status == StationStatus.ACTIVE.value,
                    Station.active_reservation_id.isnot(None),
                )
            )
            if venue_id is not None:
                query = query.filter(Station.venue_id == venue_id)
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing active stations: {str(e)}")
            raise RepositoryException(f"Failed to list active stations: {str(e)}")

    # Compare-and-swap transitions

    def claim(self, station_id: str, reservation_id: str) -> bool:
        """available -> active, bound to ``reservation_id``. False if the station wasn't available."""
        stmt = (
            update(Station)
            .where(
                and_(
                    Station.id == station_id,
                    Station.status == StationStatus.AVAILABLE.value,
                )
            )
            .values(status=StationStatus.ACTIVE.value, active_reservation_id=reservation_id)
            .execution_options(synchronize_session="fetch")
        )
        return self._execute_cas(stmt, "claim", station_id)

    def release(self, station_id: str, reservation_id: Optional[str] = None) -> bool:
        """
        active -> available, clearing the back-reference.

        Applies only while the station is still held by ``reservation_id``;
        with ``None`` only while it is still unbound.
        """
        conditions = [Station.id == station_id, Station.status == StationStatus.ACTIVE.value]
        if reservation_id is None:
            conditions.append(Station.active_reservation_id.is_(None))
        else:
            conditions.append(Station.active_reservation_id == reservation_id)
        stmt = (
            update(Station)
            .where(and_(*conditions))
            .values(status=StationStatus.AVAILABLE.value, active_reservation_id=None)
            .execution_options(synchronize_session="fetch")
        )
        return self._execute_cas(stmt, "release", station_id)

    def clear_stale_reference(self, station_id: str, reservation_id: str) -> bool:
        """Drop a back-reference left on a station that is not active."""
        stmt = (
            update(Station)
            .where(
                and_(
                    Station.id == station_id,
                    Station.status != StationStatus.ACTIVE.value,
                    Station.active_reservation_id == reservation_id,
                )
            )
            .values(active_reservation_id=None)
            .execution_options(synchronize_session="fetch")
        )
        return self._execute_cas(stmt, "clear_reference", station_id)

    def transition_status(self, station_id: str, from_status: str, to_status: str) -> bool:
        """Maintenance toggle: ``from_status -> to_status`` when no session holds the station."""
        stmt = (
            update(Station)
            .where(
                and_(
                    Station.id == station_id,
                    Station.status == from_status,
                    Station.active_reservation_id.is_(None),
                )
            )
            .values(status=to_status)
            .execution_options(synchronize_session="fetch")
        )
        return self._execute_cas(stmt, f"{from_status}->{to_status}", station_id)

    def _execute_cas(self, stmt, action: str, station_id: str) -> bool:
        try:
            result = self.db.execute(stmt)
            return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            self.logger.error(f"Error on station {action} for {station_id}: {str(e)}")
            raise RepositoryException(f"Failed to {action} station: {str(e)}")

    # Binding ledger rows

    def add_binding(
        self, *, reservation_id: str, station: Station, bound_at: datetime
    ) -> ReservationStationBinding:
        try:
            binding = ReservationStationBinding(
                reservation_id=reservation_id,
                station_id=station.id,
                station_code=station.code,
                room_id=station.room_id,
                station_type=station.station_type,
                bound_at=bound_at,
            )
            self.db.add(binding)
            self.db.flush()
            return binding
        except SQLAlchemyError as e:
            self.logger.error(f"Error binding {station.code} to {reservation_id}: {str(e)}")
            raise RepositoryException(f"Failed to bind station: {str(e)}")

    def open_bindings(self, reservation_id: str) -> List[ReservationStationBinding]:
        try:
            return (
                self.db.query(ReservationStationBinding)
                .filter(
                    ReservationStationBinding.reservation_id == reservation_id,
                    ReservationStationBinding.released_at.is_(None),
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading bindings for {reservation_id}: {str(e)}")
            raise RepositoryException(f"Failed to load bindings: {str(e)}")

    def close_bindings(self, bindings: Iterable[ReservationStationBinding], at: datetime) -> int:
        closed = 0
        for binding in bindings:
            if binding.released_at is None:
                binding.released_at = at
                closed += 1
        if closed:
            self.db.flush()
        return closed

    def release_all_for(self, reservation_id: str, at: datetime) -> int:
        """
        Release every station held by a reservation and close its bindings.

        Stations are found through open bindings and through the reverse
        back-reference scan. Each release only applies while the station
        still points at this reservation. Does not commit.

        Returns:
            Number of stations flipped back to available
        """
        bindings = self.open_bindings(reservation_id)
        station_ids = {b.station_id for b in bindings}
        station_ids.update(s.id for s in self.find_held_by(reservation_id))
        released = 0
        for station_id in sorted(station_ids):
            if self.release(station_id, reservation_id):
                released += 1
            else:
                self.clear_stale_reference(station_id, reservation_id)
        self.close_bindings(bindings, at)
        return released
