# backend/cafeslot/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import get_current_principal, require_venue_owner
from .database import get_db
from .services import (
    get_availability_service,
    get_reconciliation_service,
    get_reservation_service,
    get_station_ledger_service,
)

__all__ = [
    "get_availability_service",
    "get_current_principal",
    "get_db",
    "get_reconciliation_service",
    "get_reservation_service",
    "get_station_ledger_service",
    "require_venue_owner",
]
