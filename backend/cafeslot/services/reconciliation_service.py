# backend/cafeslot/services/reconciliation_service.py
"""
Reconciliation Service for cafeslot.

Periodically brings the ledger back in line with the clock:

1. Active reservations whose end time has passed release their stations
   and complete. Completion re-checks status, duration and end time in
   the UPDATE itself, so an extension racing the sweep wins.
2. Stations marked active whose back-reference points at a reservation
   that is not Active (or at nothing) are released.
3. Cancelled reservations past the cool-off are flagged permanent.

Every pass is idempotent. Failures are isolated per record: one broken
row is logged and counted, and the rest of the pass continues.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
import logging
import threading
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import ReservationStatus
from ..core.exceptions import (
    BusinessRuleException,
    NotAuthorizedException,
    NotFoundException,
    StationUnavailableException,
)
from ..events import EventPublisher, SessionCompleted
from ..models.reservation import Reservation
from ..models.venue import Station
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import Principal
from ..repositories.factory import RepositoryFactory
from .base import BaseService, Clock

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    """Outcome counters for one reconciliation pass."""

    started_at: Optional[datetime] = None
    checked: int = 0
    completed: int = 0
    stations_released: int = 0
    orphan_stations_released: int = 0
    skipped: int = 0
    deferred: int = 0
    errors: int = 0
    completed_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        return data


class ReconciliationService(BaseService):
    """Expires elapsed sessions, frees their stations and repairs drift."""

    _status_lock = threading.Lock()
    _last_report: Optional[ReconciliationReport] = None
    _last_sweep_at: Optional[datetime] = None

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        event_publisher: Optional[EventPublisher] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_reservation_repository(db)
        self.station_repository = RepositoryFactory.create_station_repository(db)
        self.event_publisher = event_publisher or EventPublisher()

    @BaseService.measure_operation("reconcile_now")
    def reconcile_now(self, venue_id: Optional[str] = None) -> ReconciliationReport:
        """
        Run one reconciliation pass.

        The Celery beat task and the manual trigger both call this.

        Args:
            venue_id: Limit the pass to one venue (None = all venues)

        Returns:
            ReconciliationReport with per-outcome counts
        """
        now = self.now()
        report = ReconciliationReport(started_at=now)
        self.db.expire_all()

        for reservation in self.repository.find_active(venue_id):
            report.checked += 1
            try:
                self._expire_if_elapsed(reservation, now, report)
            except Exception as exc:
                self.db.rollback()
                report.errors += 1
                self.logger.error(
                    f"Reconciliation failed for reservation {reservation.id}: {str(exc)}",
                    exc_info=True,
                )

        self.db.expire_all()
        self._release_orphans(venue_id, now, report)

        prometheus_metrics.record_reconciliation("completed", report.completed)
        prometheus_metrics.record_reconciliation("skipped", report.skipped)
        prometheus_metrics.record_reconciliation("deferred", report.deferred)
        prometheus_metrics.record_reconciliation("orphan_released", report.orphan_stations_released)
        prometheus_metrics.record_reconciliation("error", report.errors)
        prometheus_metrics.mark_reconciliation_run(now.timestamp())
        with ReconciliationService._status_lock:
            ReconciliationService._last_report = report

        if report.completed or report.orphan_stations_released or report.errors:
            self.log_operation("reconcile_now", **report.to_dict())
        else:
            self.logger.debug("Reconciliation pass found nothing to do")

        for reservation_id in report.completed_ids:
            self.event_publisher.publish(
                SessionCompleted(
                    reservation_id=reservation_id, completed_at=now, source="reconciliation"
                )
            )
        return report

    def _expire_if_elapsed(
        self, reservation: Reservation, now: datetime, report: ReconciliationReport
    ) -> None:
        end_time = reservation.effective_end_time()
        if end_time is None:
            report.skipped += 1
            self.logger.warning(
                f"Active reservation {reservation.id} has no session start; skipping"
            )
            return
        if end_time > now:
            return

        with self.transaction():
            report.stations_released += self.station_repository.release_all_for(
                reservation.id, now
            )
            completed = self.repository.complete_if_expired(
                reservation.id,
                observed_duration=Decimal(reservation.duration_hours),
                now=now,
                completed_at=now,
            )

        if completed:
            report.completed += 1
            report.completed_ids.append(reservation.id)
            prometheus_metrics.record_transition("active->completed")
        else:
            report.deferred += 1
            self.logger.info(
                f"Reservation {reservation.id} changed during reconciliation; "
                "completion deferred to the next pass"
            )

    def _release_orphans(
        self, venue_id: Optional[str], now: datetime, report: ReconciliationReport
    ) -> None:
        stations = self.station_repository.find_active(venue_id)
        statuses = self.repository.get_statuses(
            [s.active_reservation_id for s in stations if s.active_reservation_id]
        )
        for station in stations:
            holder = station.active_reservation_id
            if holder and statuses.get(holder) == ReservationStatus.ACTIVE.value:
                continue
            try:
                # The snapshot may be stale; both updates re-check the row
                with self.transaction():
                    released = self.station_repository.release(station.id, holder)
                    if not released and holder:
                        released = self.station_repository.clear_stale_reference(station.id, holder)
                if released:
                    report.orphan_stations_released += 1
                    self.logger.warning(
                        f"Released orphaned station {station.code} "
                        f"(reservation {holder or 'none'} is not active)"
                    )
            except Exception as exc:
                self.db.rollback()
                report.errors += 1
                self.logger.error(
                    f"Failed to release orphaned station {station.code}: {str(exc)}",
                    exc_info=True,
                )

    @BaseService.measure_operation("sweep_cancelled")
    def sweep_cancelled(self) -> int:
        """Flag reservations cancelled longer than the cool-off as permanently cancelled."""
        now = self.now()
        cutoff = now - timedelta(minutes=settings.permanent_cancel_after_minutes)
        with self.transaction():
            count = self.repository.mark_permanently_cancelled(cutoff)
        with ReconciliationService._status_lock:
            ReconciliationService._last_sweep_at = now
        if count:
            self.log_operation("sweep_cancelled", count=count, cutoff=cutoff.isoformat())
        return count

    @BaseService.measure_operation("repair_reservation")
    def repair_reservation(
        self, reservation_id: str, principal: Optional[Principal] = None
    ) -> Dict[str, Any]:
        """
        Explicit repair path for one reservation.

        - Completed while its window has not elapsed: revert to active and
          re-claim its stations by compare-and-swap (all or nothing).
        - Active past its end: release and complete, as reconciliation would.
        - Anything else: no-op.

        Calling it twice is safe; the second call is a no-op.

        Returns:
            {"reservation_id", "action", "status"}

        Raises:
            NotFoundException: Unknown reservation
            NotAuthorizedException: Principal doesn't own the venue
            StationUnavailableException: A station it held is now taken
        """
        reservation = self.repository.get_with_details(reservation_id)
        if reservation is None:
            raise NotFoundException(
                f"Reservation {reservation_id} not found",
                details={"reservation_id": reservation_id},
            )
        if principal is not None and (
            not principal.is_venue_owner or reservation.owner_id != principal.id
        ):
            raise NotAuthorizedException("Only the venue owner can repair this reservation")

        now = self.now()
        end_time = reservation.effective_end_time()
        action = "noop"

        if (
            reservation.status == ReservationStatus.COMPLETED.value
            and end_time is not None
            and end_time > now
        ):
            self._revert_completion(reservation, now)
            action = "reverted"
        elif (
            reservation.status == ReservationStatus.ACTIVE.value
            and end_time is not None
            and end_time <= now
        ):
            report = ReconciliationReport(started_at=now)
            self._expire_if_elapsed(reservation, now, report)
            action = "completed" if report.completed else "deferred"

        self.db.expire_all()
        current = self.repository.get_with_details(reservation_id)
        status = current.status if current else reservation.status
        self.log_operation(
            "repair_reservation", reservation_id=reservation_id, action=action, status=status
        )
        return {"reservation_id": reservation_id, "action": action, "status": status}

    def _revert_completion(self, reservation: Reservation, now: datetime) -> None:
        seen: Dict[str, str] = {}
        for binding in reservation.bindings:
            seen.setdefault(binding.station_id, binding.station_code)
        if not seen:
            raise BusinessRuleException(
                "Reservation has no station bindings to restore",
                code="NOTHING_TO_RESTORE",
                details={"reservation_id": reservation.id},
            )

        with self.transaction():
            if not self.repository.transition(
                reservation.id,
                ReservationStatus.COMPLETED.value,
                status=ReservationStatus.ACTIVE.value,
                completed_at=None,
            ):
                return
            for station_id, code in sorted(seen.items(), key=lambda kv: kv[1]):
                if not self.station_repository.claim(station_id, reservation.id):
                    raise StationUnavailableException(
                        code, "taken by another session since this reservation completed"
                    )
                station = self.station_repository.get_by_id(station_id, load_relationships=False)
                assert isinstance(station, Station)
                self.station_repository.add_binding(
                    reservation_id=reservation.id, station=station, bound_at=now
                )
        prometheus_metrics.record_transition("completed->active")

    def get_status(self) -> Dict[str, Any]:
        """Schedule and last-run summary for operators."""
        with ReconciliationService._status_lock:
            report = ReconciliationService._last_report
            sweep_at = ReconciliationService._last_sweep_at
        return {
            "interval_seconds": settings.reconciliation_interval_seconds,
            "permanent_cancel_after_minutes": settings.permanent_cancel_after_minutes,
            "last_run": report.to_dict() if report else None,
            "last_cancel_sweep_at": sweep_at.isoformat() if sweep_at else None,
        }
