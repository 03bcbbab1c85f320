"""Workspace progress events and metrics.

Event Emitters:
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
- QueueEventEmitter: Publishes events to an asyncio queue
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- MetricsEventEmitter: Emits events as Prometheus metrics
- NullEventEmitter: Discards events (for testing)

Factory:
- create_event_emitter: Creates emitters based on configuration
- EventSinkType: Enum of supported event sink types
"""

from src.devspace.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    QueueEventEmitter,
    create_event_emitter,
)
from src.devspace.events.metrics import (
    MetricsEventEmitter,
    WorkspaceMetrics,
    generate_metrics_output,
    get_metrics,
)
from src.devspace.events.models import OperationPhase, WorkspaceEvent

__all__ = [
    # Event models
    "OperationPhase",
    "WorkspaceEvent",
    # Event emitters
    "EventEmitter",
    "LoggingEventEmitter",
    "QueueEventEmitter",
    "CompositeEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    # Metrics
    "WorkspaceMetrics",
    "get_metrics",
    "generate_metrics_output",
    # Factory and configuration
    "EventSinkType",
    "create_event_emitter",
]
