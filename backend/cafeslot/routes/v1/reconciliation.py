# backend/cafeslot/routes/v1/reconciliation.py
"""
Reconciliation routes - API v1

Manual triggers for the same passes the Celery beat schedule runs.

Endpoints:
    POST /run - Expire elapsed sessions and release orphaned stations
    POST /sweep-cancelled - Flag old cancellations as permanent
    POST /reservations/{reservation_id}/repair - Repair one reservation
    GET /status - Last run summary
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query

from ...api.dependencies import get_reconciliation_service, require_venue_owner
from ...core.exceptions import DomainException
from ...principal import Principal
from ...services.reconciliation_service import ReconciliationService
from ._common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reconciliation-v1"])


@router.post("/run")
def run_reconciliation(
    venue_id: Optional[str] = Query(None, pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_venue_owner),
    reconciliation_service: ReconciliationService = Depends(get_reconciliation_service),
) -> Dict[str, Any]:
    try:
        report = reconciliation_service.reconcile_now(venue_id)
        logger.info(f"Manual reconciliation by {principal.id}: {report.completed} completed")
        return report.to_dict()
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/sweep-cancelled")
def sweep_cancelled(
    principal: Principal = Depends(require_venue_owner),
    reconciliation_service: ReconciliationService = Depends(get_reconciliation_service),
) -> Dict[str, int]:
    try:
        return {"permanently_cancelled": reconciliation_service.sweep_cancelled()}
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/reservations/{reservation_id}/repair")
def repair_reservation(
    reservation_id: str = Path(..., description="Reservation ULID", pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_venue_owner),
    reconciliation_service: ReconciliationService = Depends(get_reconciliation_service),
) -> Dict[str, Any]:
    try:
        return reconciliation_service.repair_reservation(reservation_id, principal)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/status")
def reconciliation_status(
    principal: Principal = Depends(require_venue_owner),
    reconciliation_service: ReconciliationService = Depends(get_reconciliation_service),
) -> Dict[str, Any]:
    return reconciliation_service.get_status()
