# backend/cafeslot/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import reconciliation, reservations, stations, venues

__all__ = [
    "reconciliation",
    "reservations",
    "stations",
    "venues",
]
