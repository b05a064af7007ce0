# backend/cafeslot/tasks/__init__.py
"""
Celery tasks package for cafeslot.

Import order matters: the app is created before task modules so
``shared_task`` binds to it.
"""

from .celery_app import BaseTask, celery_app
from .reconciliation_tasks import reconcile_sessions, sweep_cancelled_reservations

__all__ = [
    "BaseTask",
    "celery_app",
    "reconcile_sessions",
    "sweep_cancelled_reservations",
]
