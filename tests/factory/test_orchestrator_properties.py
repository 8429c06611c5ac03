"""Property-based tests for the orchestrator's review loop and skip rules.

Feature: pipeline-orchestration
Properties:
- The review loop runs exactly N iterations when every review finds
  issues, and stops right after the first clean verdict otherwise
- Implementation-only mode never runs branch, simplify, test, commit or
  changelog, whatever the other flags say
"""

import asyncio
from io import StringIO
from unittest.mock import AsyncMock, MagicMock

from hypothesis import given, settings
from hypothesis import strategies as st
from rich.console import Console

from src.factory.config import RunConfiguration
from src.factory.console import Reporter
from src.factory.interrupts import InterruptController
from src.factory.orchestrator import (
    IMPLEMENTATION_ONLY_SKIPS,
    ExitStatus,
    PipelineOrchestrator,
    decide_skip,
)
from src.factory.stages.models import BranchResult, ReviewResult, StageResult
from src.factory.state import STAGE_ORDER


def _run(config, review_results):
    stages = MagicMock()
    for name in ("understand", "implement", "simplify", "solid", "test", "commit", "changelog"):
        setattr(stages, name, AsyncMock(return_value=StageResult(success=True)))
    stages.review = AsyncMock(side_effect=review_results)

    branch_stage = MagicMock()
    branch_stage.run = AsyncMock(return_value=BranchResult(success=True))
    branch_stage.recommend = AsyncMock(return_value=None)

    orchestrator = PipelineOrchestrator(
        MagicMock(),
        reporter=Reporter(Console(file=StringIO())),
        event_emitter=AsyncMock(),
        interrupts=InterruptController(),
        stages=stages,
        branch_stage=branch_stage,
    )
    status = asyncio.run(orchestrator.run(config))
    return status, stages


@settings(max_examples=30, deadline=None)
@given(iterations=st.integers(min_value=1, max_value=3))
def test_dirty_reviews_run_every_iteration(iterations):
    config = RunConfiguration(requirement="x", review_iterations=iterations)
    results = [ReviewResult(success=True, no_issues_found=False)] * iterations

    status, stages = _run(config, results)

    assert status == ExitStatus.SUCCESS
    assert stages.review.await_count == iterations


@settings(max_examples=30, deadline=None)
@given(data=st.data())
def test_first_clean_verdict_stops_loop(data):
    iterations = data.draw(st.integers(min_value=1, max_value=3))
    clean_at = data.draw(st.integers(min_value=1, max_value=iterations))
    results = [
        ReviewResult(success=True, no_issues_found=(i == clean_at))
        for i in range(1, iterations + 1)
    ]
    config = RunConfiguration(requirement="x", review_iterations=iterations)

    status, stages = _run(config, results)

    assert status == ExitStatus.SUCCESS
    assert stages.review.await_count == clean_at
    stages.solid.assert_awaited_once()


@settings(max_examples=100)
@given(
    skip_tests=st.booleans(),
    skip_branch=st.booleans(),
    adaptive=st.booleans(),
    stage=st.sampled_from(STAGE_ORDER),
)
def test_implementation_only_always_skips_its_stages(skip_tests, skip_branch, adaptive, stage):
    config = RunConfiguration(
        requirement="x",
        implementation_only=True,
        skip_tests=skip_tests,
        skip_branch_management=skip_branch,
        adaptive_execution=adaptive,
    )

    reason = decide_skip(stage, config, None)

    if stage in IMPLEMENTATION_ONLY_SKIPS:
        assert reason == "implementation-only mode"
    else:
        assert reason is None
