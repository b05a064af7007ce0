"""
Repository layer for cafeslot.

Repositories encapsulate all SQLAlchemy access; services compose them
inside their own transactions.
"""

from .base_repository import BaseRepository
from .factory import RepositoryFactory
from .reservation_repository import ClaimedItem, ReservationRepository
from .station_repository import StationRepository
from .venue_repository import VenueRepository

__all__ = [
    "BaseRepository",
    "ClaimedItem",
    "RepositoryFactory",
    "ReservationRepository",
    "StationRepository",
    "VenueRepository",
]
