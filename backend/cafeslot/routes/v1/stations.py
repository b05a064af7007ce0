# backend/cafeslot/routes/v1/stations.py
"""
Station routes - API v1

Endpoints:
    PUT /{venue_id}/{station_code}/maintenance - Toggle maintenance (owner)
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Path

from ...api.dependencies import get_current_principal, get_station_ledger_service
from ...core.exceptions import DomainException
from ...principal import Principal
from ...schemas.reservation import MaintenanceRequest
from ...services.station_ledger_service import StationLedgerService
from ._common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stations-v1"])


@router.put("/{venue_id}/{station_code}/maintenance")
def set_station_maintenance(
    venue_id: str = Path(..., description="Venue ULID", pattern=ULID_PATH_PATTERN),
    station_code: str = Path(..., min_length=1, max_length=20),
    payload: MaintenanceRequest = Body(...),
    principal: Principal = Depends(get_current_principal),
    ledger_service: StationLedgerService = Depends(get_station_ledger_service),
) -> Dict[str, Any]:
    """Move a station between available and under_maintenance."""
    try:
        station = ledger_service.set_station_maintenance(
            principal, venue_id, station_code, payload.under_maintenance
        )
        return station.to_dict()
    except DomainException as e:
        handle_domain_exception(e)
