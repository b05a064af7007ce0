# backend/cafeslot/repositories/reservation_repository.py
"""
Reservation Repository for cafeslot.

Implements all data access for reservations:
- Loading reservations with their line items and bindings
- The claimed-capacity scan behind the availability calculator
- Conditional status transitions (compare-and-swap on status)
- Queries used by the reconciliation loop
"""

from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Any, List, NamedTuple, Optional, Sequence

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, selectinload

from ..core.enums import ReservationStatus
from ..core.exceptions import RepositoryException
from ..models.reservation import Reservation, ReservationLineItem
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ClaimedItem(NamedTuple):
    """One capacity claim on a room/type: the window it covers and how many stations."""

    reservation_id: str
    start_minutes: int
    duration_hours: Decimal
    quantity: int


class ReservationRepository(BaseRepository[Reservation]):
    """Repository for reservation data access."""

    def __init__(self, db: Session):
        super().__init__(db, Reservation)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            selectinload(Reservation.line_items),
            selectinload(Reservation.bindings),
        )

    def get_with_details(self, reservation_id: str) -> Optional[Reservation]:
        return self.get_by_id(reservation_id, load_relationships=True)

    # Availability

    def get_claimed_items(
        self,
        *,
        venue_id: str,
        room_id: str,
        station_type: str,
        booking_date: date,
        exclude_reservation_id: Optional[str] = None,
    ) -> List[ClaimedItem]:
        """
        Line items of capacity-holding reservations for one room/type/date.

        Only Booked and Active reservations hold capacity.
        """
        try:
            query = (
                self.db.query(
                    Reservation.id,
                    Reservation.start_minutes,
                    Reservation.duration_hours,
                    ReservationLineItem.quantity,
                )
                .join(ReservationLineItem, ReservationLineItem.reservation_id == Reservation.id)
                .filter(
                    Reservation.venue_id == venue_id,
                    Reservation.booking_date == booking_date,
                    Reservation.status.in_([s.value for s in ReservationStatus.capacity_holding()]),
                    ReservationLineItem.room_id == room_id,
                    ReservationLineItem.station_type == station_type,
                )
            )
            if exclude_reservation_id:
                query = query.filter(Reservation.id != exclude_reservation_id)
            return [
                ClaimedItem(
                    reservation_id=row[0],
                    start_minutes=int(row[1]),
                    duration_hours=Decimal(str(row[2])),
                    quantity=int(row[3]),
                )
                for row in query.all()
            ]
        except SQLAlchemyError as e:
            self.logger.error(f"Error scanning claims for room {room_id}/{station_type}: {str(e)}")
            raise RepositoryException(f"Failed to scan reservations: {str(e)}")

    def get_claimed_items_for_date(self, venue_id: str, booking_date: date) -> List[Any]:
        """All capacity claims at a venue on a date, with their room/type keys."""
        try:
            return (
                self.db.query(
                    ReservationLineItem.room_id,
                    ReservationLineItem.station_type,
                    Reservation.start_minutes,
                    Reservation.duration_hours,
                    ReservationLineItem.quantity,
                )
                .join(Reservation, ReservationLineItem.reservation_id == Reservation.id)
                .filter(
                    Reservation.venue_id == venue_id,
                    Reservation.booking_date == booking_date,
                    Reservation.status.in_([s.value for s in ReservationStatus.capacity_holding()]),
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error scanning claims for venue {venue_id}: {str(e)}")
            raise RepositoryException(f"Failed to scan reservations: {str(e)}")

    # Listing

    def list_for_customer(
        self, customer_id: str, status: Optional[str] = None, limit: int = 100
    ) -> List[Reservation]:
        try:
            query = self._apply_eager_loading(
                self.db.query(Reservation).filter(Reservation.customer_id == customer_id)
            )
            if status:
                query = query.filter(Reservation.status == status)
            return (
                query.order_by(Reservation.booking_date.desc(), Reservation.start_minutes.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing reservations for customer {customer_id}: {str(e)}")
            raise RepositoryException(f"Failed to list reservations: {str(e)}")

    def list_for_venue(
        self,
        venue_id: str,
        *,
        booking_date: Optional[date] = None,
        status: Optional[str] = None,
        limit: int = 200,
    ) -> List[Reservation]:
        try:
            query = self._apply_eager_loading(
                self.db.query(Reservation).filter(Reservation.venue_id == venue_id)
            )
            if booking_date is not None:
                query = query.filter(Reservation.booking_date == booking_date)
            if status:
                query = query.filter(Reservation.status == status)
            return (
                query.order_by(Reservation.booking_date, Reservation.start_minutes)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing reservations for venue {venue_id}: {str(e)}")
            raise RepositoryException(f"Failed to list reservations: {str(e)}")

    def find_active(self, venue_id: Optional[str] = None) -> List[Reservation]:
        try:
            query = self._apply_eager_loading(
                self.db.query(Reservation).filter(
                    Reservation.status == ReservationStatus.ACTIVE.value
                )
            )
            if venue_id is not None:
                query = query.filter(Reservation.venue_id == venue_id)
            return query.order_by(Reservation.calculated_end_time).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing active reservations: {str(e)}")
            raise RepositoryException(f"Failed to list active reservations: {str(e)}")

    def get_statuses(self, reservation_ids: Sequence[str]) -> dict[str, str]:
        if not reservation_ids:
            return {}
        try:
            rows = (
                self.db.query(Reservation.id, Reservation.status)
                .filter(Reservation.id.in_(list(reservation_ids)))
                .all()
            )
            return {row[0]: row[1] for row in rows}
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading reservation statuses: {str(e)}")
            raise RepositoryException(f"Failed to load statuses: {str(e)}")

    # Conditional transitions

    def transition(self, reservation_id: str, from_status: str, **values: Any) -> bool:
        """
        Apply ``values`` only while the reservation is still in ``from_status``.

        Returns:
            True if the row changed, False if another writer moved it first
        """
        stmt = (
            update(Reservation)
            .where(and_(Reservation.id == reservation_id, Reservation.status == from_status))
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return self._execute_conditional(stmt, "transition", reservation_id)

    def extend_if_unchanged(
        self, reservation_id: str, observed_duration: Decimal, **values: Any
    ) -> bool:
        """Grow an Active reservation only if nobody changed its duration since it was read."""
        stmt = (
            update(Reservation)
            .where(
                and_(
                    Reservation.id == reservation_id,
                    Reservation.status == ReservationStatus.ACTIVE.value,
                    Reservation.duration_hours == observed_duration,
                )
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return self._execute_conditional(stmt, "extend", reservation_id)

    def complete_if_expired(
        self,
        reservation_id: str,
        *,
        observed_duration: Decimal,
        now: datetime,
        completed_at: datetime,
    ) -> bool:
        """
        Active -> completed, re-checking the expiry facts inside the UPDATE.

        The row must still be Active, still have the duration that was used to
        compute its end, and its stored end time (if any) must not be in the
        future. An extension that landed after the read makes this a no-op.
        """
        stmt = (
            update(Reservation)
            .where(
                and_(
                    Reservation.id == reservation_id,
                    Reservation.status == ReservationStatus.ACTIVE.value,
                    Reservation.duration_hours == observed_duration,
                    or_(
                        Reservation.calculated_end_time.is_(None),
                        Reservation.calculated_end_time <= now,
                    ),
                )
            )
            .values(status=ReservationStatus.COMPLETED.value, completed_at=completed_at)
            .execution_options(synchronize_session="fetch")
        )
        return self._execute_conditional(stmt, "complete", reservation_id)

    def mark_permanently_cancelled(self, cutoff: datetime) -> int:
        """Flag reservations cancelled at or before ``cutoff``; returns how many changed."""
        stmt = (
            update(Reservation)
            .where(
                and_(
                    Reservation.status == ReservationStatus.CANCELLED.value,
                    Reservation.permanently_cancelled.is_(False),
                    Reservation.cancelled_at.isnot(None),
                    Reservation.cancelled_at <= cutoff,
                )
            )
            .values(permanently_cancelled=True)
            .execution_options(synchronize_session="fetch")
        )
        try:
            result = self.db.execute(stmt)
            return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error sweeping cancelled reservations: {str(e)}")
            raise RepositoryException(f"Failed to sweep cancelled reservations: {str(e)}")

    def _execute_conditional(self, stmt, action: str, reservation_id: str) -> bool:
        try:
            result = self.db.execute(stmt)
            return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            self.logger.error(f"Error on reservation {action} for {reservation_id}: {str(e)}")
            raise RepositoryException(f"Failed to {action} reservation: {str(e)}")
