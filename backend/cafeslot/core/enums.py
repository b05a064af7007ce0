# backend/cafeslot/core/enums.py
"""
Core enums for the cafeslot scheduling engine.

All enums stored in the database inherit from (str, Enum) and persist
their lowercase values.
"""

from enum import Enum


class PrincipalRole(str, Enum):
    """Roles carried by authenticated principals."""

    CUSTOMER = "customer"
    VENUE_OWNER = "venue_owner"


class ReservationStatus(str, Enum):
    """Reservation lifecycle statuses."""

    PENDING_PAYMENT = "pending_payment"  # Remote booking awaiting payment capture
    BOOKED = "booked"  # Holds capacity, waiting for station assignment
    ACTIVE = "active"  # Stations bound, session running
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def capacity_holding(cls) -> tuple["ReservationStatus", ...]:
        """Statuses that claim station capacity in the availability calculation."""
        return (cls.BOOKED, cls.ACTIVE)


class StationStatus(str, Enum):
    """Live status of one physical station."""

    AVAILABLE = "available"
    ACTIVE = "active"
    UNDER_MAINTENANCE = "under_maintenance"


class PaymentMethod(str, Enum):
    WALLET = "wallet"
    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"
    CASH = "cash"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
