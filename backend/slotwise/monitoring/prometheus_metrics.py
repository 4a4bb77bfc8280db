"""
Prometheus metrics for the Slotwise booking core.

Service timings are fed by ``BaseService.measure_operation``; the
scheduling-specific series count lock outcomes, conflicts and saga
outcomes.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

# Custom registry to avoid conflicts with default process metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "slotwise_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "slotwise_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "slotwise_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

calendar_lock_total = Counter(
    "slotwise_calendar_lock_total",
    "Worker calendar lock acquisitions",
    ["strategy", "outcome"],
    registry=REGISTRY,
)

booking_conflicts_total = Counter(
    "slotwise_booking_conflicts_total",
    "Booking requests rejected because the slot was taken",
    ["stage"],
    registry=REGISTRY,
)

payment_saga_outcomes_total = Counter(
    "slotwise_payment_saga_outcomes_total",
    "Payment-gated booking saga outcomes",
    ["outcome"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Records Slotwise metrics."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'create_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_calendar_lock(strategy: str, outcome: str) -> None:
        calendar_lock_total.labels(strategy=strategy, outcome=outcome).inc()

    @staticmethod
    def record_booking_conflict(stage: str) -> None:
        """stage: 'check' (pre-payment/pre-insert) or 'commit' (inside the locked transaction)."""
        booking_conflicts_total.labels(stage=stage).inc()

    @staticmethod
    def record_saga_outcome(outcome: str) -> None:
        payment_saga_outcomes_total.labels(outcome=outcome).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return generate_latest(REGISTRY)


# Singleton instance
prometheus_metrics = PrometheusMetrics()
