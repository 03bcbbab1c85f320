"""Event emitter implementations for workspace progress.

This module provides the event channel between orchestration logic and
presentation. It defines an abstract EventEmitter interface and concrete
implementations for different sinks:

- LoggingEventEmitter: Emits events as structured log entries
- QueueEventEmitter: Publishes events to an asyncio queue for a renderer
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

Source:
- src/devspace/events/models.py (WorkspaceEvent, OperationPhase)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from src.devspace.events.models import OperationPhase, WorkspaceEvent


logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Types of event sinks supported by the orchestrator.

    Attributes:
        LOGGING: Emit events as structured log entries.
        METRICS: Emit events as Prometheus metrics.
        QUEUE: Publish events to an in-process queue for a progress renderer.
    """

    LOGGING = "logging"
    METRICS = "metrics"
    QUEUE = "queue"


class EventEmitter(ABC):
    """Abstract base class for progress event emitters.

    Implementations should be:
    - Async-safe: emit() is called from concurrently running operations
    - Non-blocking: emit() should not hold up orchestration
    - Fault-tolerant: emit() failures should not abort a workspace run
    """

    @abstractmethod
    async def emit(self, event: WorkspaceEvent) -> None:
        """Emit a progress event.

        Args:
            event: The event to publish.
        """
        pass

    async def close(self) -> None:
        """Close the emitter and release resources.

        The default implementation does nothing.
        """
        pass


class LoggingEventEmitter(EventEmitter):
    """Event emitter that logs events using structured logging.

    Events are logged at different levels based on phase:

    - STARTED, COMPLETED, SKIPPED: DEBUG level (visible in verbose mode)
    - TIMEOUT: WARNING level
    - FAILED: WARNING level
    """

    def __init__(self, logger_name: Optional[str] = None):
        """Initialize the logging event emitter.

        Args:
            logger_name: Optional logger name. If not provided, uses
                         the module logger.
        """
        self._logger = (
            logging.getLogger(logger_name)
            if logger_name
            else logger
        )
        self._log_level_map = {
            OperationPhase.STARTED: logging.DEBUG,
            OperationPhase.COMPLETED: logging.DEBUG,
            OperationPhase.SKIPPED: logging.DEBUG,
            OperationPhase.TIMEOUT: logging.WARNING,
            OperationPhase.FAILED: logging.WARNING,
        }

    async def emit(self, event: WorkspaceEvent) -> None:
        """Emit event as a structured log entry.

        Args:
            event: The progress event to log.
        """
        log_level = self._log_level_map.get(event.phase, logging.INFO)
        self._logger.log(
            log_level,
            "Operation %s %s",
            event.operation_id,
            event.phase.value,
            extra=event.to_log_dict(),
        )


class QueueEventEmitter(EventEmitter):
    """Event emitter that publishes events to an asyncio queue.

    A presentation layer consumes the queue (see stream()) and renders
    progress; orchestration code never touches the terminal. close()
    enqueues a None sentinel that ends the stream.

    Attributes:
        queue: The queue events are published to.
    """

    def __init__(self, maxsize: int = 0):
        self.queue: "asyncio.Queue[Optional[WorkspaceEvent]]" = asyncio.Queue(
            maxsize=maxsize
        )
        self._closed = False

    async def emit(self, event: WorkspaceEvent) -> None:
        """Publish the event unless the channel has been closed.

        Args:
            event: The progress event to publish.
        """
        if self._closed:
            return
        await self.queue.put(event)

    async def close(self) -> None:
        """Close the channel and wake any consumer."""
        if not self._closed:
            self._closed = True
            await self.queue.put(None)

    async def stream(self):
        """Yield events until the channel is closed.

        Yields:
            WorkspaceEvent instances in emission order.
        """
        while True:
            event = await self.queue.get()
            if event is None:
                break
            yield event


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Failures in one emitter do not affect others; each emitter is called
    independently and errors are logged but not propagated.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    def add_emitter(self, emitter: EventEmitter) -> None:
        """Add a child emitter to the composite."""
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        """Get a copy of the list of child emitters."""
        return list(self._emitters)

    async def emit(self, event: WorkspaceEvent) -> None:
        """Emit event to all child emitters.

        Args:
            event: The progress event to emit.
        """
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "operation_id": event.operation_id,
                    },
                )

    async def close(self) -> None:
        """Close all child emitters, logging individual failures."""
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    async def emit(self, event: WorkspaceEvent) -> None:
        pass


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Factory function to create event emitters based on configuration.

    Args:
        sink_types: Event sink types to enable. If None or empty,
                    returns a LoggingEventEmitter as the default.
        logger_name: Optional logger name for the LoggingEventEmitter.

    Returns:
        A single emitter, or a CompositeEventEmitter when several sinks
        are requested.

    Example:
        >>> emitter = create_event_emitter([EventSinkType.LOGGING])
        >>> isinstance(emitter, LoggingEventEmitter)
        True
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []

    for sink_type in sink_types:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            # metrics.py imports EventEmitter from this module
            from src.devspace.events.metrics import MetricsEventEmitter
            emitters.append(MetricsEventEmitter())
        elif sink_type == EventSinkType.QUEUE:
            emitters.append(QueueEventEmitter())
        else:
            logger.warning(
                "Unknown event sink type: %s, skipping",
                sink_type,
            )

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)

    if len(emitters) == 1:
        return emitters[0]

    return CompositeEventEmitter(emitters)
