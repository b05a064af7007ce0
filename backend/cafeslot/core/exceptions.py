# backend/cafeslot/core/exceptions.py
"""
Domain-specific exceptions for the cafeslot scheduling engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Every exception carries a stable ``code`` plus a ``details`` dict with
enough context for clients to render a precise message.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def _detail(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        """Default conversion to HTTPException (override in subclasses)."""
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=self._detail(),
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=self._detail())


class NotFoundException(DomainException):
    """Raised when a venue, room, station type, reservation or station is absent."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "NOT_FOUND", details=details)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=self._detail())


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=self._detail())


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=self._detail())


class UnauthorizedException(DomainException):
    """Raised when the caller is not authenticated."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=self._detail(),
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=self._detail())


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific scheduling exceptions


class InvalidDurationException(ValidationException):
    """Raised when a duration is not positive or not a multiple of half an hour."""

    def __init__(self, duration: Any):
        super().__init__(
            message=f"Duration must be a positive multiple of 0.5 hours (got {duration})",
            code="INVALID_DURATION",
            details={"duration": str(duration)},
        )


class CapacityExceededException(ConflictException):
    """Raised when a request would overbook a room/type for some hour."""

    def __init__(
        self,
        *,
        room_name: str,
        station_type: str,
        hour: int,
        hour_label: str,
        free_count: int,
        requested: int,
    ):
        noun = "station" if free_count == 1 else "stations"
        super().__init__(
            message=(
                f"Only {free_count} {station_type} {noun} free in '{room_name}' at "
                f"{hour_label}; {requested} requested"
            ),
            code="CAPACITY_EXCEEDED",
            details={
                "room": room_name,
                "station_type": station_type,
                "hour": hour,
                "hour_label": hour_label,
                "free_count": free_count,
                "requested": requested,
            },
        )


class CancellationWindowClosedException(BusinessRuleException):
    """Raised when the cancellation policy no longer allows cancelling."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="CANCELLATION_WINDOW_CLOSED", details=details)


class AssignmentMismatchException(ValidationException):
    """Raised when assigned station counts don't match the requested quantities."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="ASSIGNMENT_MISMATCH", details=details)


class StationUnavailableException(ConflictException):
    """Raised when a station cannot be taken (not Available, or wrong room/type)."""

    def __init__(self, station_code: str, reason: str, *, current_status: Optional[str] = None):
        details: Dict[str, Any] = {"station": station_code, "reason": reason}
        if current_status is not None:
            details["status"] = current_status
        super().__init__(
            message=f"Station {station_code} is not available: {reason}",
            code="STATION_UNAVAILABLE",
            details=details,
        )


class StationBusyException(ConflictException):
    """Raised when a maintenance toggle targets a station in an active session."""

    def __init__(self, station_code: str):
        super().__init__(
            message=f"Cannot change maintenance status of {station_code} while a session is active",
            code="STATION_BUSY",
            details={"station": station_code},
        )


class InvalidCodeException(ValidationException):
    """Raised when the staff-supplied verification code doesn't match."""

    def __init__(self, reservation_id: str):
        super().__init__(
            message="Verification code does not match this reservation",
            code="INVALID_CODE",
            details={"reservation_id": reservation_id},
        )


class PriceResolutionFailedException(BusinessRuleException):
    """Raised when a line item can no longer be priced against current inventory."""

    def __init__(self, room_name: str, station_type: str):
        super().__init__(
            message=f"Could not resolve a price for {station_type} in '{room_name}'",
            code="PRICE_RESOLUTION_FAILED",
            details={"room": room_name, "station_type": station_type},
        )


class NotAuthorizedException(ForbiddenException):
    """Raised when the principal may not act on a reservation, venue or station."""

    def __init__(self, message: str = "Not authorized to perform this action"):
        super().__init__(message=message, code="UNAUTHORIZED")


class InvalidReservationStateException(BusinessRuleException):
    """Raised when a lifecycle transition is not allowed from the current status."""

    def __init__(self, action: str, current_status: str, *, expected: Optional[str] = None):
        message = f"Reservation cannot be {action} - current status: {current_status}"
        details: Dict[str, Any] = {"action": action, "status": current_status}
        if expected:
            details["expected_status"] = expected
        super().__init__(message=message, code="INVALID_STATE", details=details)


class SlotBusyException(ConflictException):
    """Raised when a slot lock could not be obtained in time."""

    def __init__(self, lock_key: str):
        super().__init__(
            message="Another reservation for this slot is in progress. Please retry.",
            code="SLOT_BUSY",
            details={"lock": lock_key},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
