"""Domain events published by the scheduling services."""

from .publisher import EventPublisher, register_listener, unregister_listener
from .reservation_events import (
    PaymentConfirmed,
    RefundInstruction,
    ReservationCancelled,
    ReservationCreated,
    SessionCompleted,
    SessionExtended,
    SessionStarted,
)

__all__ = [
    "EventPublisher",
    "PaymentConfirmed",
    "RefundInstruction",
    "ReservationCancelled",
    "ReservationCreated",
    "SessionCompleted",
    "SessionExtended",
    "SessionStarted",
    "register_listener",
    "unregister_listener",
]
