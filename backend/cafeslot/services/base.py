# backend/cafeslot/services/base.py
"""
Base Service Pattern for cafeslot.

Every service gets:
- ``transaction()``: commit on success, rollback on any error
- ``measure_operation``: Prometheus timing per public operation
- ``log_operation``: one structured INFO line per state change
- ``now()``: an injectable clock so cancellation and expiry rules are testable
"""

from contextlib import contextmanager
from datetime import datetime
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ServiceException
from ..core.timezone_utils import ensure_utc, utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """
    Base class for the availability, reservation, ledger and reconciliation services.

    Services own transaction boundaries; repositories only flush.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        """
        Args:
            db: Database session
            clock: Callable returning the current UTC time (defaults to utc_now)
        """
        self.db = db
        self._clock: Clock = clock or utc_now
        self.logger = logging.getLogger(self.__class__.__name__)

    def now(self) -> datetime:
        """Current time from the service clock, as aware UTC."""
        current = ensure_utc(self._clock())
        assert current is not None
        return current

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Unit of work around ``self.db``.

        Domain exceptions raised inside roll back and propagate unchanged;
        driver errors roll back and surface as ServiceException.
        """
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {str(e)}")
        except Exception as e:
            self.logger.debug(f"Rolling back transaction: {type(e).__name__}: {str(e)}")
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """Record duration and outcome of a service call under ``operation_name``."""

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                error_type: Optional[str] = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - started
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )
                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="error" if error_type else "success",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
