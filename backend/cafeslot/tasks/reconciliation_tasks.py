# backend/cafeslot/tasks/reconciliation_tasks.py
"""
Periodic reconciliation tasks.

Thin wrappers: each opens its own session and calls the same service
methods the manual HTTP triggers use.
"""

import logging
from typing import Any, Callable, Dict, Optional, TypeVar, cast

from celery import shared_task

from ..database import get_db_session
from ..services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

_TaskFunc = TypeVar("_TaskFunc", bound=Callable[..., Any])


def _typed_shared_task(*args: Any, **kwargs: Any) -> Callable[[_TaskFunc], _TaskFunc]:
    """Typed wrapper for Celery's shared_task decorator."""
    return cast(Callable[[_TaskFunc], _TaskFunc], shared_task(*args, **kwargs))


@_typed_shared_task(name="reconciliation.reconcile_sessions")
def reconcile_sessions(venue_id: Optional[str] = None) -> Dict[str, Any]:
    """Expire elapsed sessions and release orphaned stations."""
    with get_db_session() as db:
        report = ReconciliationService(db).reconcile_now(venue_id)
    if report.errors:
        logger.warning(
            "[RECONCILE] Pass finished with %d errors (%d completed)",
            report.errors,
            report.completed,
        )
    return report.to_dict()


@_typed_shared_task(name="reconciliation.sweep_cancelled_reservations")
def sweep_cancelled_reservations() -> Dict[str, int]:
    """Flag reservations cancelled past the cool-off as permanently cancelled."""
    with get_db_session() as db:
        count = ReconciliationService(db).sweep_cancelled()
    if count:
        logger.info("[RECONCILE] Permanently cancelled %d reservations", count)
    return {"permanently_cancelled": count}
