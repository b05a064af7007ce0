# backend/cafeslot/monitoring/prometheus_metrics.py
"""
Prometheus metrics module for cafeslot.

Service timings come from the @measure_operation decorator; domain helpers
cover slot locks, reservation transitions and the reconciliation sweep.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "cafeslot_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

service_operations_total = Counter(
    "cafeslot_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "cafeslot_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

slot_lock_events_total = Counter(
    "cafeslot_slot_lock_events_total",
    "Slot lock acquire/release outcomes",
    ["action", "outcome"],
    registry=REGISTRY,
)

reservation_transitions_total = Counter(
    "cafeslot_reservation_transitions_total",
    "Reservation lifecycle transitions",
    ["transition"],
    registry=REGISTRY,
)

reconciliation_outcomes_total = Counter(
    "cafeslot_reconciliation_outcomes_total",
    "Per-reservation outcomes of the reconciliation sweep",
    ["outcome"],
    registry=REGISTRY,
)

reconciliation_last_run_timestamp = Gauge(
    "cafeslot_reconciliation_last_run_timestamp_seconds",
    "Unix timestamp of the last completed reconciliation sweep",
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Facade the services, slot locks and reconciliation report through."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """Timing, outcome and error type of one @measure_operation call."""
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_slot_lock(action: str, outcome: str) -> None:
        slot_lock_events_total.labels(action=action, outcome=outcome).inc()

    @staticmethod
    def record_transition(transition: str) -> None:
        """Count a reservation transition such as 'booked->active'."""
        reservation_transitions_total.labels(transition=transition).inc()

    @staticmethod
    def record_reconciliation(outcome: str, count: int = 1) -> None:
        if count <= 0:
            return
        reconciliation_outcomes_total.labels(outcome=outcome).inc(count)

    @staticmethod
    def mark_reconciliation_run(timestamp: float) -> None:
        reconciliation_last_run_timestamp.set(timestamp)

    @staticmethod
    def get_metrics() -> bytes:
        """Exposition-format payload for the /metrics endpoint."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
