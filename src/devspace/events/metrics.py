"""Prometheus metrics for workspace orchestration.

Metrics Defined:
- devspace_operations_total: Counter of operation phases by operation id
- devspace_operation_duration_seconds: Histogram of action wall-clock time

The MetricsEventEmitter consumes the same event channel as the other
emitters and updates these metrics from COMPLETED, FAILED, SKIPPED and
TIMEOUT events.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.devspace.events.emitter import EventEmitter
from src.devspace.events.models import OperationPhase, WorkspaceEvent


logger = logging.getLogger(__name__)


# Git and subprocess operations finish in well under a few minutes
DEFAULT_DURATION_BUCKETS = (
    0.05,
    0.1,
    0.5,
    1.0,
    5.0,
    15.0,
    30.0,
    60.0,
    180.0,
)


class WorkspaceMetrics:
    """Container for the orchestrator's Prometheus metrics.

    Attributes:
        registry: The Prometheus registry for these metrics.
        operations_total: Counter labelled by operation and phase.
        operation_duration_seconds: Histogram labelled by operation.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize workspace metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.operations_total = Counter(
            "devspace_operations_total",
            "Number of orchestrated operations by terminal phase",
            labelnames=["operation", "phase"],
            registry=self.registry,
        )

        self.operation_duration_seconds = Histogram(
            "devspace_operation_duration_seconds",
            "Wall-clock time spent in operation actions in seconds",
            labelnames=["operation"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_phase(self, operation: str, phase: str) -> None:
        """Increment the counter for an operation's terminal phase."""
        self.operations_total.labels(operation=operation, phase=phase).inc()

    def record_duration(self, operation: str, duration_seconds: float) -> None:
        """Observe the duration of an operation's action."""
        self.operation_duration_seconds.labels(operation=operation).observe(
            duration_seconds
        )


_default_metrics: Optional[WorkspaceMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> WorkspaceMetrics:
    """Get or create the workspace metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.

    Returns:
        WorkspaceMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        return WorkspaceMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = WorkspaceMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text-format output for the given registry."""
    target_registry = registry or REGISTRY
    return generate_latest(target_registry)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    STARTED events are ignored; every other phase increments
    devspace_operations_total, and events carrying duration_seconds
    are observed in the duration histogram.
    """

    def __init__(
        self,
        metrics: Optional[WorkspaceMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> WorkspaceMetrics:
        return self._metrics

    async def emit(self, event: WorkspaceEvent) -> None:
        """Update metrics based on the progress event.

        Args:
            event: The progress event to process.
        """
        if event.phase == OperationPhase.STARTED:
            return
        try:
            self._metrics.record_phase(event.operation_id, event.phase.value)
            duration = event.details.get("duration_seconds")
            if duration is not None:
                self._metrics.record_duration(event.operation_id, float(duration))
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.phase.value,
                str(e),
                extra={
                    "operation_id": event.operation_id,
                    "error": str(e),
                },
            )
