"""Event publisher - fans domain events out to in-process listeners."""
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, List, Protocol, Sequence

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


EventListener = Callable[[str, Dict[str, Any]], None]


class EventPublisher:
    """
    Publishes domain events to registered listeners.

    Listeners receive ``(event_type, payload)`` with datetimes and decimals
    already rendered as strings. Services publish only after their
    transaction commits, so a failing listener never undoes a state change.
    """

    _listeners: List[EventListener] = []

    @classmethod
    def register(cls, listener: EventListener) -> None:
        cls._listeners.append(listener)

    @classmethod
    def unregister(cls, listener: EventListener) -> None:
        cls._listeners = [existing for existing in cls._listeners if existing is not listener]

    @classmethod
    def listeners(cls) -> Sequence[EventListener]:
        return tuple(cls._listeners)

    def publish(self, event: Event) -> None:
        event_type = type(event).__name__
        payload = _serialize(event.to_dict())
        logger.info("event_published", extra={"event_type": event_type, **_log_safe(payload)})
        for listener in list(self._listeners):
            try:
                listener(event_type, payload)
            except Exception:
                logger.exception("Event listener error for %s: %s", event_type, listener)


def _serialize(payload: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
        elif isinstance(value, Decimal):
            out[key] = str(value)
        else:
            out[key] = value
    return out


def _log_safe(payload: Dict[str, Any]) -> Dict[str, Any]:
    # LogRecord reserves some attribute names
    return {f"event_{key}": value for key, value in payload.items()}


def register_listener(listener: EventListener) -> None:
    """Register an in-process listener for reservation events."""
    EventPublisher.register(listener)


def unregister_listener(listener: EventListener) -> None:
    """Remove a previously registered listener."""
    EventPublisher.unregister(listener)
