"""Event emitter implementations.

- EventEmitter: abstract sink interface
- LoggingEventEmitter: writes events as structured log records
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from src.factory.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


class EventEmitter(ABC):
    """Abstract base class for pipeline event emitters.

    Implementations should not let sink failures escape; the orchestrator
    also guards every emit so a broken sink never disrupts a run.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        """Publish the event to the sink."""


class LoggingEventEmitter(EventEmitter):
    """Event emitter that writes events as structured log entries.

    Failures and aborts log at ERROR, interrupts at WARNING, and
    everything else at INFO.
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger
        self._log_level_map = {
            EventType.STAGE_FAILED: logging.ERROR,
            EventType.RUN_ABORTED: logging.ERROR,
            EventType.RUN_INTERRUPTED: logging.WARNING,
        }

    async def emit(self, event: PipelineEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Pipeline event: %s%s",
            event.event_type.value,
            f" ({event.stage.value})" if event.stage else "",
            extra=event.to_log_dict(),
        )
