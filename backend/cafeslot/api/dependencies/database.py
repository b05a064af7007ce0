# backend/cafeslot/api/dependencies/database.py
"""
Session dependency for route handlers.
"""

from typing import Generator

from sqlalchemy.orm import Session

from ...database import get_db as _session_scope


def get_db() -> Generator[Session, None, None]:
    """
    Yield a request-scoped session.

    Tests override this dependency to share one session with their fixtures.
    """
    yield from _session_scope()
