"""Principal abstraction for authenticated callers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .core.enums import PrincipalRole


@dataclass(frozen=True)
class Principal:
    """
    The authenticated entity making a request.

    Issued by the identity service; cafeslot only reads the id, role and
    an optional display name.
    """

    id: str
    role: PrincipalRole
    display_name: Optional[str] = None

    @property
    def is_customer(self) -> bool:
        return self.role == PrincipalRole.CUSTOMER

    @property
    def is_venue_owner(self) -> bool:
        return self.role == PrincipalRole.VENUE_OWNER
