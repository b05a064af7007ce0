# backend/cafeslot/services/availability_service.py
"""
Availability Service for cafeslot.

Answers "how many stations of this type are free in this room for this
window" by scanning the capacity-holding reservations on the booking date.
Nothing is cached: every answer is recomputed inside the caller's
transaction, so a check made under the slot lock sees every committed
claim.

Two windows compete for capacity iff they occupy a common hour slot.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import CapacityExceededException, NotFoundException, ValidationException
from ..core.time_window import DurationLike, TimeWindow, format_hour_label
from ..models.venue import Room, Venue
from ..repositories.factory import RepositoryFactory
from .base import BaseService, Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineItemRequest:
    """A requested quantity of one station type in one room, by room name."""

    room_name: str
    station_type: str
    quantity: int


@dataclass(frozen=True)
class ResolvedLineItem:
    """A line item resolved against inventory."""

    room: Room
    station_type: str
    quantity: int
    total_count: int

    @property
    def room_id(self) -> str:
        return str(self.room.id)

    @property
    def room_name(self) -> str:
        return str(self.room.name)


class AvailabilityService(BaseService):
    """Free-count computation and overbooking checks."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.venue_repository = RepositoryFactory.create_venue_repository(db)
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)

    # Inventory resolution

    def load_venue(self, venue_id: str) -> Venue:
        venue = self.venue_repository.get_with_inventory(venue_id)
        if venue is None:
            raise NotFoundException(f"Venue {venue_id} not found", details={"venue_id": venue_id})
        return venue

    def resolve_room(self, venue: Venue, room_name: str) -> Room:
        room = venue.room_by_name(room_name)
        if room is None:
            raise NotFoundException(
                f"Room '{room_name}' not found at venue {venue.name}",
                details={"venue_id": venue.id, "room": room_name},
            )
        return room

    def resolve_total(self, room: Room, station_type: str) -> int:
        total = room.total_count(station_type)
        if total is None:
            raise NotFoundException(
                f"Room '{room.name}' has no {station_type} stations",
                details={"room": room.name, "station_type": station_type},
            )
        return total

    def resolve_line_item(self, venue: Venue, item: LineItemRequest) -> ResolvedLineItem:
        if item.quantity < 1:
            raise ValidationException(
                "Quantity must be at least 1",
                code="INVALID_QUANTITY",
                details={"room": item.room_name, "station_type": item.station_type},
            )
        room = self.resolve_room(venue, item.room_name)
        total = self.resolve_total(room, item.station_type)
        return ResolvedLineItem(
            room=room, station_type=item.station_type, quantity=item.quantity, total_count=total
        )

    # Claims

    def claimed_by_hour(
        self,
        venue_id: str,
        room_id: str,
        station_type: str,
        booking_date: date,
        exclude_reservation_id: Optional[str] = None,
    ) -> Dict[int, int]:
        """Stations of a room/type claimed in each hour slot of ``booking_date``."""
        claimed: Dict[int, int] = defaultdict(int)
        items = self.reservation_repository.get_claimed_items(
            venue_id=venue_id,
            room_id=room_id,
            station_type=station_type,
            booking_date=booking_date,
            exclude_reservation_id=exclude_reservation_id,
        )
        for item in items:
            for hour in TimeWindow(item.start_minutes, item.duration_hours).hours():
                claimed[hour] += item.quantity
        return claimed

    def free_count_for(
        self,
        venue: Venue,
        item: ResolvedLineItem,
        booking_date: date,
        window: TimeWindow,
        exclude_reservation_id: Optional[str] = None,
    ) -> int:
        claimed = self.claimed_by_hour(
            str(venue.id), item.room_id, item.station_type, booking_date, exclude_reservation_id
        )
        peak = max((claimed.get(hour, 0) for hour in window.hours()), default=0)
        return max(item.total_count - peak, 0)

    def ensure_capacity_for(
        self,
        venue: Venue,
        item: ResolvedLineItem,
        booking_date: date,
        window: TimeWindow,
        exclude_reservation_id: Optional[str] = None,
    ) -> None:
        """
        Reject the request if any hour of ``window`` would be overbooked.

        Raises:
            CapacityExceededException: Naming the first offending hour
        """
        claimed = self.claimed_by_hour(
            str(venue.id), item.room_id, item.station_type, booking_date, exclude_reservation_id
        )
        for hour in window.hours():
            already = claimed.get(hour, 0)
            if already + item.quantity > item.total_count:
                free = max(item.total_count - already, 0)
                self.logger.info(
                    "capacity_exceeded",
                    extra={
                        "venue_id": venue.id,
                        "room": item.room_name,
                        "station_type": item.station_type,
                        "hour": hour,
                        "free": free,
                        "requested": item.quantity,
                    },
                )
                raise CapacityExceededException(
                    room_name=item.room_name,
                    station_type=item.station_type,
                    hour=hour,
                    hour_label=format_hour_label(hour),
                    free_count=free,
                    requested=item.quantity,
                )

    # Public operations

    @BaseService.measure_operation("free_count")
    def free_count(
        self,
        venue_id: str,
        room_name: str,
        station_type: str,
        booking_date: date,
        start_time: str,
        duration: DurationLike,
        exclude_reservation_id: Optional[str] = None,
    ) -> int:
        """
        Stations of ``station_type`` in ``room_name`` free for the whole window.

        Raises:
            NotFoundException: Unknown venue, room or station type
            InvalidDurationException: Duration not a positive multiple of 0.5
        """
        window = TimeWindow.from_label(start_time, duration)
        venue = self.load_venue(venue_id)
        item = self.resolve_line_item(venue, LineItemRequest(room_name, station_type, 1))
        return self.free_count_for(venue, item, booking_date, window, exclude_reservation_id)

    @BaseService.measure_operation("ensure_capacity")
    def ensure_capacity(
        self,
        venue_id: str,
        room_name: str,
        station_type: str,
        booking_date: date,
        start_time: str,
        duration: DurationLike,
        quantity: int,
        exclude_reservation_id: Optional[str] = None,
    ) -> None:
        window = TimeWindow.from_label(start_time, duration)
        venue = self.load_venue(venue_id)
        item = self.resolve_line_item(venue, LineItemRequest(room_name, station_type, quantity))
        self.ensure_capacity_for(venue, item, booking_date, window, exclude_reservation_id)

    @BaseService.measure_operation("check_availability")
    def check_availability(
        self,
        venue_id: str,
        room_name: str,
        station_type: str,
        booking_date: date,
        start_time: str,
        duration: DurationLike,
        quantity: int = 1,
    ) -> Dict[str, object]:
        """
        Check whether ``quantity`` stations are free for a window.

        Returns:
            {"available": bool, "free_count": int}
        """
        window = TimeWindow.from_label(start_time, duration)
        venue = self.load_venue(venue_id)
        item = self.resolve_line_item(venue, LineItemRequest(room_name, station_type, quantity))
        free = self.free_count_for(venue, item, booking_date, window)
        return {"available": free >= quantity, "free_count": free}

    @BaseService.measure_operation("get_slot_availability")
    def get_slot_availability(
        self, venue_id: str, booking_date: date
    ) -> Dict[str, Dict[str, Dict[str, int]]]:
        """
        Free stations per hour over the venue's opening hours.

        Returns:
            {room_name: {station_type: {"02:00 PM": free, ...}}}
        """
        venue = self.load_venue(venue_id)
        claims: Dict[tuple, Dict[int, int]] = defaultdict(lambda: defaultdict(int))
        for room_id, station_type, start_minutes, duration, quantity in (
            self.reservation_repository.get_claimed_items_for_date(str(venue.id), booking_date)
        ):
            for hour in TimeWindow(int(start_minutes), duration).hours():
                claims[(room_id, station_type)][hour] += int(quantity)

        hours: List[int] = venue.operating_hours()
        result: Dict[str, Dict[str, Dict[str, int]]] = {}
        for room in venue.rooms:
            per_type: Dict[str, Dict[str, int]] = {}
            for station_type in room.station_types():
                total = room.total_count(station_type) or 0
                claimed = claims.get((room.id, station_type), {})
                per_type[station_type] = {
                    format_hour_label(hour): max(total - claimed.get(hour, 0), 0)
                    for hour in hours
                }
            result[str(room.name)] = per_type
        return result
