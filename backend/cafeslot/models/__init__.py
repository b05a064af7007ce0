"""
Database models for cafeslot.

- Inventory: Venue, Room, StationGroup, Station
- Reservations: Reservation, its line items and station bindings
"""

from .reservation import Reservation, ReservationLineItem, ReservationStationBinding
from .venue import Room, Station, StationGroup, Venue

__all__ = [
    "Reservation",
    "ReservationLineItem",
    "ReservationStationBinding",
    "Room",
    "Station",
    "StationGroup",
    "Venue",
]
