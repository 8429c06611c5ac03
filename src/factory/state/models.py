"""Run state machine models.

This module defines the data models for tracking one pipeline run:
- PipelineStage: Enum of all pipeline stages, plus the start and end states
- StageStatus: What happened to the current stage
- StateTransition: Record of a transition with timestamp and details
- RunState: Complete state of a run
- STAGE_ORDER: The fixed order stages execute in

Runs move strictly forward through STAGE_ORDER. The review stage is the
only stage that can be started more than once, and only while the run has
not yet moved past it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PipelineStage(str, Enum):
    """Stages a run progresses through.

    Stage Flow:
        not_started → branch_management → understand → implement → simplify
        → review (1..N) → solid → test → commit → changelog → completed

    Any non-terminal state can move to 'aborted'.
    """

    NOT_STARTED = "not_started"
    BRANCH_MANAGEMENT = "branch_management"
    UNDERSTAND = "understand"
    IMPLEMENT = "implement"
    SIMPLIFY = "simplify"
    REVIEW = "review"
    SOLID = "solid"
    TEST = "test"
    COMMIT = "commit"
    CHANGELOG = "changelog"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StageStatus(str, Enum):
    """Outcome of the current stage.

    Attributes:
        RUNNING: The stage is executing.
        SKIPPED: The stage was bypassed by a skip predicate.
        SUCCEEDED: The stage finished successfully.
        FAILED: The stage reported failure; the run aborts next.
    """

    RUNNING = "running"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


STAGE_ORDER: List[PipelineStage] = [
    PipelineStage.BRANCH_MANAGEMENT,
    PipelineStage.UNDERSTAND,
    PipelineStage.IMPLEMENT,
    PipelineStage.SIMPLIFY,
    PipelineStage.REVIEW,
    PipelineStage.SOLID,
    PipelineStage.TEST,
    PipelineStage.COMMIT,
    PipelineStage.CHANGELOG,
]

TERMINAL_STAGES = frozenset({PipelineStage.COMPLETED, PipelineStage.ABORTED})

REPEATABLE_STAGES = frozenset({PipelineStage.REVIEW})


class StateTransition(BaseModel):
    """Record of a state transition in a run.

    Attributes:
        from_stage: The stage before the transition.
        to_stage: The stage after the transition.
        status: Status of to_stage after the transition.
        timestamp: When the transition occurred (UTC).
        details: Optional metadata (iteration number, skip reason, error).
    """

    from_stage: PipelineStage = Field(
        ...,
        description="The pipeline stage before this transition",
    )

    to_stage: PipelineStage = Field(
        ...,
        description="The pipeline stage after this transition",
    )

    status: Optional[StageStatus] = Field(
        default=None,
        description="Status of the target stage after this transition",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the transition occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Optional metadata about the transition",
    )


class RunState(BaseModel):
    """Complete state of one pipeline run.

    Attributes:
        requirement: The requirement being implemented.
        current_stage: The current pipeline stage.
        current_status: Status of the current stage, None outside stages.
        history: Ordered list of all transitions.
        review_iterations: Review iterations started so far.
        error: Reason the run aborted, if it did.
        started_at: When the run started (UTC).
        updated_at: When the state last changed (UTC).
    """

    requirement: str = Field(..., min_length=1)

    current_stage: PipelineStage = Field(
        default=PipelineStage.NOT_STARTED,
        description="The current stage of the run",
    )

    current_status: Optional[StageStatus] = None

    history: List[StateTransition] = Field(default_factory=list)

    review_iterations: int = Field(default=0, ge=0)

    error: Optional[str] = None

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.current_stage in TERMINAL_STAGES

    def stages_with_status(self, status: StageStatus) -> List[PipelineStage]:
        """Stages that reached the given status, in order, without repeats."""
        seen: List[PipelineStage] = []
        for transition in self.history:
            if transition.status == status and transition.to_stage not in seen:
                seen.append(transition.to_stage)
        return seen


def stage_index(stage: PipelineStage) -> int:
    """Position of a work stage in STAGE_ORDER; -1 for NOT_STARTED."""
    if stage == PipelineStage.NOT_STARTED:
        return -1
    return STAGE_ORDER.index(stage)


def is_valid_transition(from_stage: PipelineStage, to_stage: PipelineStage) -> bool:
    """Check if entering to_stage from from_stage moves the run forward.

    Example:
        >>> is_valid_transition(PipelineStage.IMPLEMENT, PipelineStage.REVIEW)
        True
        >>> is_valid_transition(PipelineStage.SOLID, PipelineStage.REVIEW)
        False
    """
    if from_stage in TERMINAL_STAGES:
        return False
    if to_stage == PipelineStage.ABORTED:
        return True
    if to_stage == PipelineStage.COMPLETED:
        return from_stage != PipelineStage.NOT_STARTED
    if to_stage == PipelineStage.NOT_STARTED:
        return False
    if from_stage == to_stage:
        return to_stage in REPEATABLE_STAGES
    return stage_index(to_stage) > stage_index(from_stage)
