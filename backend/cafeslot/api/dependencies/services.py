# backend/cafeslot/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets services bound to its own database session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.availability_service import AvailabilityService
from ...services.reconciliation_service import ReconciliationService
from ...services.reservation_service import ReservationService
from ...services.station_ledger_service import StationLedgerService
from .database import get_db


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_reservation_service(db: Session = Depends(get_db)) -> ReservationService:
    return ReservationService(db)


def get_station_ledger_service(db: Session = Depends(get_db)) -> StationLedgerService:
    return StationLedgerService(db)


def get_reconciliation_service(db: Session = Depends(get_db)) -> ReconciliationService:
    return ReconciliationService(db)
