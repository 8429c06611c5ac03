"""Run state tracking.

This module tracks a pipeline run through its stages:
- Forward-only stage progression with a repeatable review stage
- Timestamped transition history
- Terminal completed/aborted states
"""

from src.factory.state.machine import InvalidTransitionError, RunStateMachine
from src.factory.state.models import (
    STAGE_ORDER,
    PipelineStage,
    RunState,
    StageStatus,
    StateTransition,
    is_valid_transition,
)

__all__ = [
    "InvalidTransitionError",
    "PipelineStage",
    "RunState",
    "RunStateMachine",
    "STAGE_ORDER",
    "StageStatus",
    "StateTransition",
    "is_valid_transition",
]
