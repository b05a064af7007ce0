# backend/cafeslot/models/venue.py
"""
Inventory models for cafeslot.

A Venue owns ordered Rooms. Each Room carries its capacity either as
legacy StationGroup rows (type + count + price) or as individual Station
rows (preferred). Stations are the physical units a reservation is bound
to once staff start the session.
"""

from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import StationStatus
from ..database import Base

logger = logging.getLogger(__name__)


class Venue(Base):
    """A gaming cafe with its opening hours and rooms."""

    __tablename__ = "venues"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    owner_id = Column(String(26), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    opening_hour = Column(Integer, nullable=False, default=0)
    closing_hour = Column(Integer, nullable=False, default=24)
    timezone = Column(String(64), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    rooms = relationship(
        "Room",
        back_populates="venue",
        order_by="Room.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("opening_hour >= 0 AND opening_hour <= 24", name="ck_venues_opening_hour"),
        CheckConstraint("closing_hour >= 0 AND closing_hour <= 24", name="ck_venues_closing_hour"),
        CheckConstraint("opening_hour < closing_hour", name="ck_venues_hours_order"),
    )

    def __repr__(self) -> str:
        return f"<Venue {self.id}: {self.name} owner={self.owner_id}>"

    def room_by_name(self, room_name: str) -> Optional["Room"]:
        for room in self.rooms:
            if room.name == room_name:
                return room
        return None

    def room_by_id(self, room_id: str) -> Optional["Room"]:
        for room in self.rooms:
            if room.id == room_id:
                return room
        return None

    def operating_hours(self) -> List[int]:
        """Hour slots the venue is open for (opening_hour inclusive)."""
        return list(range(int(self.opening_hour), int(self.closing_hour)))


class Room(Base):
    """
    A named area of a venue holding stations.

    The room id is the internal key for every reservation line item; the
    name is what customers and staff see and type.
    """

    __tablename__ = "rooms"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    venue_id = Column(String(26), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    venue = relationship("Venue", back_populates="rooms")
    station_groups = relationship(
        "StationGroup", back_populates="room", cascade="all, delete-orphan"
    )
    stations = relationship(
        "Station", back_populates="room", order_by="Station.code", cascade="all, delete-orphan"
    )

    __table_args__ = (UniqueConstraint("venue_id", "name", name="uq_rooms_venue_name"),)

    def __repr__(self) -> str:
        return f"<Room {self.id}: {self.name} venue={self.venue_id}>"

    def group_for(self, station_type: str) -> Optional["StationGroup"]:
        for group in self.station_groups:
            if group.station_type == station_type:
                return group
        return None

    def stations_of_type(self, station_type: str) -> List["Station"]:
        return [s for s in self.stations if s.station_type == station_type]

    def station_types(self) -> List[str]:
        """All station types offered in this room, groups first, in stable order."""
        seen: Dict[str, None] = {}
        for group in self.station_groups:
            seen.setdefault(group.station_type, None)
        for station in self.stations:
            seen.setdefault(station.station_type, None)
        return list(seen)

    def total_count(self, station_type: str) -> Optional[int]:
        """
        Capacity of ``station_type`` in this room.

        Individual stations win over the legacy group count. Returns None
        when the room offers no such type at all.
        """
        stations = self.stations_of_type(station_type)
        if stations:
            return len(stations)
        group = self.group_for(station_type)
        if group is not None:
            return int(group.total_count)
        return None

    def price_per_hour(self, station_type: str) -> Optional[Decimal]:
        """Group price if a group exists, else the price on the matching stations."""
        group = self.group_for(station_type)
        if group is not None and group.price_per_hour is not None:
            return Decimal(group.price_per_hour)
        for station in self.stations_of_type(station_type):
            if station.price_per_hour is not None:
                return Decimal(station.price_per_hour)
        return None


class StationGroup(Base):
    """Legacy capacity row: a count of identical stations in a room."""

    __tablename__ = "station_groups"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    room_id = Column(String(26), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    station_type = Column(String(50), nullable=False)
    total_count = Column(Integer, nullable=False)
    price_per_hour = Column(Numeric(10, 2), nullable=True)
    specs = Column(Text, nullable=True)

    room = relationship("Room", back_populates="station_groups")

    __table_args__ = (
        UniqueConstraint("room_id", "station_type", name="uq_station_groups_room_type"),
        CheckConstraint("total_count >= 0", name="ck_station_groups_count_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<StationGroup {self.station_type} x{self.total_count} room={self.room_id}>"


class Station(Base):
    """
    One physical station.

    ``status == 'active'`` iff exactly one Active reservation holds it, and
    then ``active_reservation_id`` names that reservation. The column has
    no foreign key; reconciliation clears references that dangle.
    """

    __tablename__ = "stations"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    venue_id = Column(String(26), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    room_id = Column(String(26), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    code = Column(String(20), nullable=False)
    station_type = Column(String(50), nullable=False)
    price_per_hour = Column(Numeric(10, 2), nullable=True)
    status = Column(String(20), nullable=False, default=StationStatus.AVAILABLE.value, index=True)
    active_reservation_id = Column(String(26), nullable=True, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    room = relationship("Room", back_populates="stations")

    __table_args__ = (
        UniqueConstraint("venue_id", "code", name="uq_stations_venue_code"),
        CheckConstraint(
            "status IN ('available', 'active', 'under_maintenance')",
            name="ck_stations_status",
        ),
        Index("ix_stations_room_type_status", "room_id", "station_type", "status"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = StationStatus.AVAILABLE.value

    def __repr__(self) -> str:
        return (
            f"<Station {self.code}: type={self.station_type} status={self.status} "
            f"reservation={self.active_reservation_id}>"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "room_id": self.room_id,
            "station_type": self.station_type,
            "status": self.status,
            "active_reservation_id": self.active_reservation_id,
            "price_per_hour": str(self.price_per_hour) if self.price_per_hour is not None else None,
        }
