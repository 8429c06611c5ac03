"""Pipeline event models.

Events are emitted at every stage boundary and when a run ends, so a run
can be followed in the log file (or any other sink) without scraping the
operator-facing console output.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from src.factory.state.models import PipelineStage


class EventType(str, Enum):
    """Types of events emitted during a run.

    Attributes:
        STAGE_STARTED: A stage (or review iteration) began executing.
        STAGE_SKIPPED: A stage was bypassed by its skip predicate.
        STAGE_COMPLETED: A stage finished successfully.
        STAGE_FAILED: A stage reported failure.
        RUN_COMPLETED: Every stage completed or was skipped.
        RUN_ABORTED: The run stopped on a failure or operator quit.
        RUN_INTERRUPTED: The operator interrupted the run.
    """

    STAGE_STARTED = "stage_started"
    STAGE_SKIPPED = "stage_skipped"
    STAGE_COMPLETED = "stage_completed"
    STAGE_FAILED = "stage_failed"
    RUN_COMPLETED = "run_completed"
    RUN_ABORTED = "run_aborted"
    RUN_INTERRUPTED = "run_interrupted"


class PipelineEvent(BaseModel):
    """Structured event emitted by the orchestrator.

    Attributes:
        event_type: The category of event.
        stage: The stage the event concerns, if any.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context (iteration, skip reason, error).

    Example:
        >>> event = PipelineEvent(
        ...     event_type=EventType.STAGE_SKIPPED,
        ...     stage=PipelineStage.TEST,
        ...     details={"reason": "--skip-tests"},
        ... )
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    stage: Optional[PipelineStage] = Field(
        default=None,
        description="The stage this event concerns",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event for structured logging."""
        return {
            "event_type": self.event_type.value,
            "stage": self.stage.value if self.stage else None,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
