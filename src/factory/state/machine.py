"""Run state machine implementation.

RunStateMachine tracks one run in memory: every stage start, skip,
success and failure is validated against the forward-only ordering and
recorded with a UTC timestamp.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.factory.state.models import (
    PipelineStage,
    RunState,
    StageStatus,
    StateTransition,
    is_valid_transition,
)


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when a transition would move a run backwards or out of a terminal state.

    Attributes:
        from_stage: The current stage.
        to_stage: The attempted target stage.
        message: Human-readable error message.
    """

    def __init__(
        self,
        from_stage: PipelineStage,
        to_stage: PipelineStage,
        message: Optional[str] = None,
    ):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.message = message or (
            f"Invalid transition from {from_stage.value} to {to_stage.value}"
        )
        super().__init__(self.message)


class RunStateMachine:
    """State machine for one pipeline run.

    Invariants:
    - Stages are entered in STAGE_ORDER; none is re-entered once left
    - The review stage may be started repeatedly while it is current
    - A stage's outcome (succeeded/failed) is recorded only while it runs
    - COMPLETED and ABORTED accept no further transitions

    Attributes:
        state: The current RunState.

    Example:
        >>> machine = RunStateMachine("add user authentication")
        >>> machine.start(PipelineStage.IMPLEMENT)
        >>> machine.succeed()
        >>> machine.skip(PipelineStage.SIMPLIFY, "adaptive")
    """

    def __init__(self, requirement: str):
        self.state = RunState(requirement=requirement)

    @property
    def current_stage(self) -> PipelineStage:
        return self.state.current_stage

    def start(self, stage: PipelineStage, details: Optional[Dict[str, Any]] = None) -> None:
        """Enter a stage as running.

        Raises:
            InvalidTransitionError: If the stage is behind the current one,
                or the current stage is still running.
        """
        self._require_not_running(stage)
        self._move(stage, StageStatus.RUNNING, details or {})
        if stage == PipelineStage.REVIEW:
            self.state.review_iterations += 1

    def skip(self, stage: PipelineStage, reason: str) -> None:
        """Record that a stage was bypassed.

        Raises:
            InvalidTransitionError: If the stage is behind the current one.
        """
        self._require_not_running(stage)
        self._move(stage, StageStatus.SKIPPED, {"reason": reason})

    def succeed(self, details: Optional[Dict[str, Any]] = None) -> None:
        """Mark the running stage as succeeded."""
        self._finish(StageStatus.SUCCEEDED, details or {})

    def fail(self, error: str) -> None:
        """Mark the running stage as failed and record the error."""
        self._finish(StageStatus.FAILED, {"error": error})
        self.state.error = error

    def complete(self) -> None:
        """Move the run to COMPLETED.

        Raises:
            InvalidTransitionError: If a stage is still running or the run
                never started.
        """
        self._require_not_running(PipelineStage.COMPLETED)
        self._move(PipelineStage.COMPLETED, None, {})

    def abort(self, reason: str) -> None:
        """Move the run to ABORTED from any non-terminal state."""
        self._move(PipelineStage.ABORTED, None, {"reason": reason})
        if self.state.error is None:
            self.state.error = reason

    def _require_not_running(self, to_stage: PipelineStage) -> None:
        if self.state.current_status == StageStatus.RUNNING:
            raise InvalidTransitionError(
                self.state.current_stage,
                to_stage,
                f"Stage {self.state.current_stage.value} is still running",
            )

    def _finish(self, status: StageStatus, details: Dict[str, Any]) -> None:
        stage = self.state.current_stage
        if self.state.current_status != StageStatus.RUNNING:
            raise InvalidTransitionError(
                stage,
                stage,
                f"Stage {stage.value} is not running",
            )
        self._record(stage, stage, status, details)

    def _move(
        self,
        to_stage: PipelineStage,
        status: Optional[StageStatus],
        details: Dict[str, Any],
    ) -> None:
        from_stage = self.state.current_stage

        if not is_valid_transition(from_stage, to_stage):
            logger.warning(
                "Invalid state transition attempted",
                extra={
                    "from_stage": from_stage.value,
                    "to_stage": to_stage.value,
                },
            )
            raise InvalidTransitionError(from_stage, to_stage)

        self._record(from_stage, to_stage, status, details)

    def _record(
        self,
        from_stage: PipelineStage,
        to_stage: PipelineStage,
        status: Optional[StageStatus],
        details: Dict[str, Any],
    ) -> None:
        now = datetime.now(timezone.utc)
        self.state.history.append(
            StateTransition(
                from_stage=from_stage,
                to_stage=to_stage,
                status=status,
                timestamp=now,
                details=details,
            )
        )
        self.state.current_stage = to_stage
        self.state.current_status = status
        self.state.updated_at = now

        logger.debug(
            "Run state transition",
            extra={
                "from_stage": from_stage.value,
                "to_stage": to_stage.value,
                "status": status.value if status else None,
            },
        )
