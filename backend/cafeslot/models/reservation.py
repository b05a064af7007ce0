# backend/cafeslot/models/reservation.py
"""
Reservation model for cafeslot.

A reservation claims a quantity of one or more station types in one or
more rooms for a window on a booking date. It is an abstract claim until
staff bind it to concrete stations, at which point the session starts and
its end time is fixed by ``session_start_time + duration_hours``.

Line items snapshot the room name and hourly price at booking time so the
reservation stays readable after inventory changes.
"""

from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import PaymentStatus, ReservationStatus
from ..core.time_window import TimeWindow
from ..core.timezone_utils import ensure_utc
from ..database import Base

logger = logging.getLogger(__name__)


class Reservation(Base):
    """Remote or walk-in reservation for station capacity."""

    __tablename__ = "reservations"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Parties; customer_id is empty for walk-ins
    venue_id = Column(String(26), ForeignKey("venues.id"), nullable=False, index=True)
    owner_id = Column(String(26), nullable=False, index=True)
    customer_id = Column(String(26), nullable=True, index=True)
    walk_in_name = Column(String(200), nullable=True)
    phone_number = Column(String(32), nullable=True)
    friend_count = Column(Integer, nullable=False, default=1)

    # Window
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(String(8), nullable=False)
    start_minutes = Column(Integer, nullable=False)
    duration_hours = Column(Numeric(5, 1), nullable=False)
    extended_hours = Column(Numeric(5, 1), nullable=False, default=Decimal("0"))

    # Money
    total_price = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(20), nullable=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    is_paid = Column(Boolean, nullable=False, default=False)

    # Lifecycle
    status = Column(String(20), nullable=False, index=True)
    verification_code = Column(String(10), nullable=True)
    session_start_time = Column(DateTime(timezone=True), nullable=True)
    calculated_end_time = Column(DateTime(timezone=True), nullable=True, index=True)
    permanently_cancelled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(26), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    line_items = relationship(
        "ReservationLineItem",
        back_populates="reservation",
        order_by="ReservationLineItem.position",
        cascade="all, delete-orphan",
    )
    bindings = relationship(
        "ReservationStationBinding",
        back_populates="reservation",
        order_by="ReservationStationBinding.station_code",
        cascade="all, delete-orphan",
    )
    venue = relationship("Venue")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending_payment', 'booked', 'active', 'completed', 'cancelled')",
            name="ck_reservations_status",
        ),
        CheckConstraint("duration_hours > 0", name="ck_reservations_duration_positive"),
        CheckConstraint("total_price >= 0", name="ck_reservations_price_non_negative"),
        CheckConstraint("friend_count >= 1", name="ck_reservations_friend_count"),
        CheckConstraint(
            "customer_id IS NOT NULL OR walk_in_name IS NOT NULL",
            name="ck_reservations_party",
        ),
        Index("ix_reservations_venue_date_status", "venue_id", "booking_date", "status"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = ReservationStatus.PENDING_PAYMENT.value
        logger.info(
            f"Creating reservation at venue {self.venue_id} for "
            f"{self.customer_id or 'walk-in ' + str(self.walk_in_name)} on {self.booking_date}"
        )

    def __repr__(self) -> str:
        return (
            f"<Reservation {self.id}: venue={self.venue_id}, date={self.booking_date}, "
            f"start={self.start_time}, duration={self.duration_hours}, status={self.status}>"
        )

    @property
    def is_walk_in(self) -> bool:
        return self.customer_id is None

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(int(self.start_minutes), Decimal(self.duration_hours))

    @property
    def total_quantity(self) -> int:
        return sum(int(item.quantity) for item in self.line_items)

    def effective_end_time(self) -> Optional[datetime]:
        """
        End of the running session in UTC.

        Prefers the stored end time; falls back to start + duration for rows
        written without one. None when the session never started.
        """
        if self.calculated_end_time is not None:
            return ensure_utc(self.calculated_end_time)
        if self.session_start_time is not None and self.duration_hours is not None:
            start = ensure_utc(self.session_start_time)
            assert start is not None
            return start + timedelta(hours=float(self.duration_hours))
        return None

    def active_bindings(self) -> List["ReservationStationBinding"]:
        return [b for b in self.bindings if b.released_at is None]

    def can_be_viewed_by(self, principal_id: str) -> bool:
        return principal_id in (self.owner_id, self.customer_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        end_time = self.effective_end_time()
        return {
            "id": self.id,
            "venue_id": self.venue_id,
            "owner_id": self.owner_id,
            "customer_id": self.customer_id,
            "walk_in_name": self.walk_in_name,
            "phone_number": self.phone_number,
            "friend_count": self.friend_count,
            "booking_date": self.booking_date.isoformat() if self.booking_date else None,
            "start_time": self.start_time,
            "duration_hours": str(self.duration_hours),
            "extended_hours": str(self.extended_hours or 0),
            "total_price": str(self.total_price),
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "is_paid": bool(self.is_paid),
            "permanently_cancelled": bool(self.permanently_cancelled),
            "line_items": [item.to_dict() for item in self.line_items],
            "stations": [b.station_code for b in self.active_bindings()],
            "session_start_time": (
                ensure_utc(self.session_start_time).isoformat()  # type: ignore[union-attr]
                if self.session_start_time
                else None
            ),
            "calculated_end_time": end_time.isoformat() if end_time else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class ReservationLineItem(Base):
    """One (room, station type, quantity) claim inside a reservation."""

    __tablename__ = "reservation_line_items"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    reservation_id = Column(
        String(26), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    room_id = Column(String(26), ForeignKey("rooms.id"), nullable=False)
    room_name = Column(String(100), nullable=False)
    station_type = Column(String(50), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_per_hour = Column(Numeric(10, 2), nullable=False)

    reservation = relationship("Reservation", back_populates="line_items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_line_items_quantity_positive"),
        Index("ix_line_items_room_type", "room_id", "station_type"),
    )

    def __repr__(self) -> str:
        return f"<LineItem {self.room_name}/{self.station_type} x{self.quantity}>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "room_name": self.room_name,
            "station_type": self.station_type,
            "quantity": self.quantity,
            "price_per_hour": str(self.price_per_hour),
        }


class ReservationStationBinding(Base):
    """
    Ledger row tying a reservation to a physical station.

    Rows are kept after the session ends; ``released_at`` marks when the
    station was handed back.
    """

    __tablename__ = "reservation_station_bindings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    reservation_id = Column(
        String(26), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    station_id = Column(String(26), ForeignKey("stations.id"), nullable=False, index=True)
    station_code = Column(String(20), nullable=False)
    room_id = Column(String(26), nullable=False)
    station_type = Column(String(50), nullable=False)
    bound_at = Column(DateTime(timezone=True), nullable=False)
    released_at = Column(DateTime(timezone=True), nullable=True)

    reservation = relationship("Reservation", back_populates="bindings")
    station = relationship("Station")

    def __repr__(self) -> str:
        return (
            f"<Binding reservation={self.reservation_id} station={self.station_code} "
            f"released={self.released_at is not None}>"
        )


__all__ = [
    "Reservation",
    "ReservationLineItem",
    "ReservationStationBinding",
]
