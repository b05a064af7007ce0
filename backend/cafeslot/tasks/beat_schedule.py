# backend/cafeslot/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for cafeslot.

Reconciliation runs on a fixed interval rather than a crontab so the
maximum lag between a session's end and its stations being freed is
bounded by ``reconciliation_interval_seconds``.
"""

from datetime import timedelta
from typing import Any, Dict

from ..core.config import settings

CANCELLED_SWEEP_INTERVAL = timedelta(minutes=1)


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    """Build the beat schedule from current settings."""
    interval = timedelta(seconds=settings.reconciliation_interval_seconds)
    return {
        "reconcile-sessions": {
            "task": "reconciliation.reconcile_sessions",
            "schedule": interval,
            # A pass that is still queued after one interval is superseded by the next
            "options": {"expires": interval.total_seconds()},
        },
        "sweep-cancelled-reservations": {
            "task": "reconciliation.sweep_cancelled_reservations",
            "schedule": CANCELLED_SWEEP_INTERVAL,
            "options": {"expires": CANCELLED_SWEEP_INTERVAL.total_seconds()},
        },
    }
