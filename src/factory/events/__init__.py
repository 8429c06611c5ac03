"""Pipeline event emission.

Event Emitters:
- EventEmitter: Abstract base class for event emission
- LoggingEventEmitter: Emits events as structured log entries
"""

from src.factory.events.emitter import EventEmitter, LoggingEventEmitter
from src.factory.events.models import EventType, PipelineEvent

__all__ = [
    "EventEmitter",
    "EventType",
    "LoggingEventEmitter",
    "PipelineEvent",
]
