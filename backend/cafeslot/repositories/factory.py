# backend/cafeslot/repositories/factory.py
"""
Repository Factory for cafeslot.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .reservation_repository import ReservationRepository
    from .station_repository import StationRepository
    from .venue_repository import VenueRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_venue_repository(db: Session) -> "VenueRepository":
        """Create repository for venue inventory."""
        from .venue_repository import VenueRepository

        return VenueRepository(db)

    @staticmethod
    def create_station_repository(db: Session) -> "StationRepository":
        """Create repository for station status and bindings."""
        from .station_repository import StationRepository

        return StationRepository(db)

    @staticmethod
    def create_reservation_repository(db: Session) -> "ReservationRepository":
        """Create repository for reservations."""
        from .reservation_repository import ReservationRepository

        return ReservationRepository(db)
