# backend/cafeslot/events/reservation_events.py
"""Reservation domain events."""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..core.ulid_helper import generate_ulid


@dataclass
class ReservationCreated:
    """Fired after a reservation is committed."""

    reservation_id: str
    venue_id: str
    customer_id: Optional[str]
    status: str
    total_price: Decimal
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PaymentConfirmed:
    """Fired when the payment collaborator confirms a pending reservation."""

    reservation_id: str
    payment_method: str
    confirmed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReservationCancelled:
    """Fired after a reservation is cancelled."""

    reservation_id: str
    cancelled_by: str  # principal id
    cancelled_at: datetime
    refund_amount: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RefundInstruction:
    """
    Full refund owed to a wallet-paid customer.

    Consumed by the wallet collaborator; cafeslot never moves money itself.
    """

    reservation_id: str
    amount: Decimal
    destination: str  # customer id whose wallet receives the credit
    reason: str
    # Wallet side dedupes on this id
    instruction_id: str = field(default_factory=generate_ulid)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionStarted:
    """Fired when stations are bound and the session starts."""

    reservation_id: str
    station_codes: List[str]
    session_start_time: datetime
    calculated_end_time: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionExtended:
    reservation_id: str
    hours_added: Decimal
    price_delta: Decimal
    calculated_end_time: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionCompleted:
    """Fired after a session completes, manually or via reconciliation."""

    reservation_id: str
    completed_at: datetime
    source: str  # 'manual' or 'reconciliation'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
