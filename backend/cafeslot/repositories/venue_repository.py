# backend/cafeslot/repositories/venue_repository.py
"""
Venue Repository for cafeslot.

Read access to venue inventory (rooms, station groups, stations) plus the
seeding helper used by venue management and fixtures.
"""

from decimal import Decimal
import logging
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, selectinload

from ..core.exceptions import RepositoryException
from ..models.venue import Room, Station, StationGroup, Venue
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class VenueRepository(BaseRepository[Venue]):
    """Repository for venues and their inventory."""

    def __init__(self, db: Session):
        super().__init__(db, Venue)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            selectinload(Venue.rooms).selectinload(Room.station_groups),
            selectinload(Venue.rooms).selectinload(Room.stations),
        )

    def get_with_inventory(self, venue_id: str) -> Optional[Venue]:
        """Venue with rooms, groups and stations loaded in a fixed number of queries."""
        return self.get_by_id(venue_id, load_relationships=True)

    def create_venue_with_inventory(
        self,
        *,
        owner_id: str,
        name: str,
        rooms: Iterable[Dict[str, Any]],
        opening_hour: int = 0,
        closing_hour: int = 24,
        timezone: Optional[str] = None,
    ) -> Venue:
        """
        Create a venue together with its rooms and stations.

        Args:
            owner_id: Principal id of the venue owner
            name: Display name
            rooms: Dicts of ``{"name", "groups": [...], "stations": [...]}`` where
                a group is ``{"station_type", "total_count", "price_per_hour"}``
                and a station is ``{"code", "station_type", "price_per_hour"}``
            opening_hour: First bookable hour (0-23)
            closing_hour: Hour the venue closes (1-24)
            timezone: IANA timezone name; None uses the configured default

        Returns:
            The flushed Venue

        Raises:
            RepositoryException: On constraint violations (duplicate room names
                or station codes)
        """
        try:
            venue = Venue(
                owner_id=owner_id,
                name=name,
                opening_hour=opening_hour,
                closing_hour=closing_hour,
                timezone=timezone,
            )
            self.db.add(venue)
            self.db.flush()

            for position, room_data in enumerate(rooms):
                room = Room(venue_id=venue.id, name=room_data["name"], position=position)
                self.db.add(room)
                self.db.flush()

                for group in room_data.get("groups", []):
                    self.db.add(
                        StationGroup(
                            room_id=room.id,
                            station_type=group["station_type"],
                            total_count=int(group["total_count"]),
                            price_per_hour=_money(group.get("price_per_hour")),
                            specs=group.get("specs"),
                        )
                    )
                for station in room_data.get("stations", []):
                    self.db.add(
                        Station(
                            venue_id=venue.id,
                            room_id=room.id,
                            code=station["code"],
                            station_type=station["station_type"],
                            price_per_hour=_money(station.get("price_per_hour")),
                        )
                    )
            self.db.flush()
            self.db.refresh(venue)
            logger.info(f"Created venue {venue.id} ({name}) with {len(venue.rooms)} rooms")
            return venue
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating venue {name}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create venue: {str(e)}") from e


def _money(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))
