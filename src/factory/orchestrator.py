"""Pipeline orchestrator driving one requirement through every stage.

Stages run strictly in order: branch management, (codebase
understanding), implement, simplify, review loop, solid-check, test,
commit, changelog. Before each optional stage a skip predicate is
evaluated; the first matching rule wins:

1. implementation-only mode forces the skip
2. an explicit skip flag (CLI or environment)
3. the adaptive step recommendation
4. otherwise the stage runs

Any stage reporting failure aborts the run with a non-zero status. An
operator interrupt aborts the whole run with a distinct status, whichever
stage was executing.
"""

import logging
from enum import Enum, IntEnum
from typing import Callable, List, Optional

from src.factory.analysis.branch import BranchClassifier
from src.factory.analysis.models import ReviewDepth, StepRecommendation
from src.factory.analysis.steps import StepAnalyzer
from src.factory.config import RunConfiguration
from src.factory.console import Reporter
from src.factory.events.emitter import EventEmitter, LoggingEventEmitter
from src.factory.events.models import EventType, PipelineEvent
from src.factory.git.client import GitClient
from src.factory.interrupts import InterruptController, get_controller, install_signal_handlers
from src.factory.runner.agent import AgentInterruptedError, AgentRunner
from src.factory.stages.branch import BranchManagementStage
from src.factory.stages.models import StageResult
from src.factory.stages.work import AgentStages
from src.factory.state.machine import RunStateMachine
from src.factory.state.models import STAGE_ORDER, PipelineStage, RunState


logger = logging.getLogger(__name__)


class ExitStatus(IntEnum):
    """Process exit status of a run."""

    SUCCESS = 0
    FAILURE = 1
    INTERRUPTED = 130


class ConfirmChoice(str, Enum):
    """Operator answer to an interactive confirmation."""

    CONTINUE = "continue"
    SKIP = "skip"
    QUIT = "quit"


ConfirmFn = Callable[[str], ConfirmChoice]

STAGE_TITLES = {
    PipelineStage.BRANCH_MANAGEMENT: "SMART BRANCH MANAGEMENT",
    PipelineStage.UNDERSTAND: "UNDERSTAND CODEBASE",
    PipelineStage.IMPLEMENT: "IMPLEMENT REQUIREMENT",
    PipelineStage.SIMPLIFY: "CODE SIMPLIFICATION",
    PipelineStage.REVIEW: "CODE REVIEW",
    PipelineStage.SOLID: "SOLID PRINCIPLES & CLEAN CODE",
    PipelineStage.TEST: "TESTING",
    PipelineStage.COMMIT: "COMMIT CHANGES",
    PipelineStage.CHANGELOG: "UPDATE CHANGELOG",
}

IMPLEMENTATION_ONLY_SKIPS = frozenset(
    {
        PipelineStage.BRANCH_MANAGEMENT,
        PipelineStage.SIMPLIFY,
        PipelineStage.TEST,
        PipelineStage.COMMIT,
        PipelineStage.CHANGELOG,
    }
)


class StageFailedError(Exception):
    """Raised inside a run when a stage reports failure."""

    def __init__(self, stage: PipelineStage):
        self.stage = stage
        super().__init__(f"{STAGE_TITLES[stage].title()} step failed")


class RunCancelledError(Exception):
    """Raised inside a run when the operator chooses quit."""


def stage_plan(config: RunConfiguration) -> List[PipelineStage]:
    """Stages of this run, in execution order.

    Codebase understanding is part of the plan only when requested.
    """
    return [
        stage
        for stage in STAGE_ORDER
        if stage != PipelineStage.UNDERSTAND or config.understand_codebase
    ]


def decide_skip(
    stage: PipelineStage,
    config: RunConfiguration,
    recommendation: Optional[StepRecommendation],
) -> Optional[str]:
    """Evaluate the skip predicate for a stage.

    Returns:
        The reason the stage is skipped, or None when it should run.
    """
    if config.implementation_only and stage in IMPLEMENTATION_ONLY_SKIPS:
        return "implementation-only mode"

    if stage == PipelineStage.BRANCH_MANAGEMENT and config.skip_branch_management:
        return "--skip-branch-management"
    if stage == PipelineStage.TEST and config.skip_tests:
        return "--skip-tests"

    if config.adaptive_execution and recommendation is not None:
        adaptive_skips = {
            PipelineStage.SIMPLIFY: recommendation.skip_simplify,
            PipelineStage.REVIEW: recommendation.skip_review,
            PipelineStage.SOLID: recommendation.skip_solid,
            PipelineStage.TEST: recommendation.skip_tests,
            PipelineStage.CHANGELOG: recommendation.skip_changelog,
        }
        if adaptive_skips.get(stage, False):
            return f"adaptive: {recommendation.reasoning}"

    return None


def resolve_review_iterations(
    config: RunConfiguration,
    recommendation: Optional[StepRecommendation],
) -> int:
    """Review loop bound: the adaptive count when active, else the configured one."""
    if config.adaptive_execution and recommendation is not None:
        return recommendation.review_iterations
    return config.review_iterations


def resolve_review_depth(recommendation: Optional[StepRecommendation]) -> ReviewDepth:
    if recommendation is None:
        return ReviewDepth.STANDARD
    return recommendation.review_depth


def auto_confirm(message: str) -> ConfirmChoice:
    return ConfirmChoice.CONTINUE


class PipelineOrchestrator:
    """Runs the staged pipeline for one requirement at a time.

    Accepts its collaborators via constructor injection; anything not
    supplied is built from the agent runner.

    Attributes:
        runner: Agent runner shared by every stage.
        reporter: Operator output.
        stages: Agent-driven stages.
        branch_stage: Branch management stage.
        event_emitter: Event sink.
        interrupts: Process-wide interrupt controller.
        confirm: Interactive confirmation callback.
        last_state: RunState of the most recent run.
    """

    def __init__(
        self,
        runner: AgentRunner,
        reporter: Optional[Reporter] = None,
        git: Optional[GitClient] = None,
        event_emitter: Optional[EventEmitter] = None,
        interrupts: Optional[InterruptController] = None,
        confirm: Optional[ConfirmFn] = None,
        stages: Optional[AgentStages] = None,
        branch_stage: Optional[BranchManagementStage] = None,
    ):
        self.runner = runner
        self.reporter = reporter or runner.reporter
        self.stages = stages or AgentStages(runner)
        self.branch_stage = branch_stage or BranchManagementStage(
            git or GitClient(),
            BranchClassifier(runner),
            StepAnalyzer(runner),
            self.reporter,
        )
        self.event_emitter = event_emitter or LoggingEventEmitter()
        self.interrupts = interrupts or get_controller()
        self.confirm = confirm or auto_confirm
        self.last_state: Optional[RunState] = None

    async def run(self, config: RunConfiguration) -> ExitStatus:
        """Execute the pipeline.

        Args:
            config: Frozen configuration for this run.

        Returns:
            ExitStatus.SUCCESS when every stage completed or was skipped
            (or the operator quit), FAILURE when a stage failed, and
            INTERRUPTED when the operator interrupted the run.
        """
        install_signal_handlers()
        self.interrupts.reset()

        machine = RunStateMachine(config.requirement)
        self.last_state = machine.state

        self.reporter.header(config)
        logger.info("Starting pipeline", extra={"requirement": config.requirement})

        try:
            await self._execute(config, machine)
        except AgentInterruptedError:
            self._abort(machine, "interrupted")
            self.reporter.error("Pipeline interrupted")
            await self._safe_emit(EventType.RUN_INTERRUPTED, machine.current_stage)
            return ExitStatus.INTERRUPTED
        except RunCancelledError:
            self._abort(machine, "cancelled by user")
            self.reporter.warning("Pipeline cancelled by user")
            await self._safe_emit(EventType.RUN_ABORTED, None, reason="cancelled by user")
            return ExitStatus.SUCCESS
        except StageFailedError as exc:
            self._abort(machine, str(exc))
            self.reporter.error(f"{exc}. Exiting.")
            await self._safe_emit(EventType.RUN_ABORTED, exc.stage, reason=str(exc))
            return ExitStatus.FAILURE

        machine.complete()
        self._report_completion(config)
        await self._safe_emit(EventType.RUN_COMPLETED, None)
        return ExitStatus.SUCCESS

    async def _execute(self, config: RunConfiguration, machine: RunStateMachine) -> None:
        plan = stage_plan(config)
        total = len(plan)
        recommendation: Optional[StepRecommendation] = None
        understood = False

        for position, stage in enumerate(plan, start=1):
            self._check_interrupted()
            skip_reason = decide_skip(stage, config, recommendation)

            if skip_reason:
                await self._skip(machine, position, total, stage, skip_reason)
                if stage == PipelineStage.BRANCH_MANAGEMENT:
                    # still the only producer of the recommendation
                    adaptive = await self.branch_stage.recommend(config)
                    recommendation = adaptive.recommendation if adaptive else None
                continue

            if stage == PipelineStage.REVIEW:
                await self._review_loop(config, machine, position, total, recommendation)
                continue

            self.reporter.step(position, total, STAGE_TITLES[stage])
            await self._start(machine, stage)

            if stage == PipelineStage.BRANCH_MANAGEMENT:
                branch_result = await self.branch_stage.run(config)
                if branch_result.adaptive is not None:
                    recommendation = branch_result.adaptive.recommendation
                result: StageResult = branch_result
            elif stage == PipelineStage.UNDERSTAND:
                result = await self.stages.understand(config)
                understood = result.success
            elif stage == PipelineStage.IMPLEMENT:
                result = await self.stages.implement(config, continuation=understood)
            elif stage == PipelineStage.SIMPLIFY:
                result = await self.stages.simplify(config)
            elif stage == PipelineStage.SOLID:
                result = await self.stages.solid(config)
            elif stage == PipelineStage.TEST:
                result = await self.stages.test(config)
            elif stage == PipelineStage.COMMIT:
                result = await self.stages.commit(config)
            else:
                result = await self.stages.changelog(config)

            await self._finish(machine, stage, result)

            if stage in (
                PipelineStage.IMPLEMENT,
                PipelineStage.SOLID,
                PipelineStage.TEST,
                PipelineStage.COMMIT,
            ):
                self._ask(config)

    async def _review_loop(
        self,
        config: RunConfiguration,
        machine: RunStateMachine,
        position: int,
        total: int,
        recommendation: Optional[StepRecommendation],
    ) -> None:
        """Run 1..N review iterations, stopping early on a clean verdict."""
        iterations = resolve_review_iterations(config, recommendation)
        depth = resolve_review_depth(recommendation)

        for iteration in range(1, iterations + 1):
            self._check_interrupted()
            self.reporter.step(
                position, total, f"{STAGE_TITLES[PipelineStage.REVIEW]} (Round {iteration}/{iterations})"
            )
            await self._start(machine, PipelineStage.REVIEW, iteration=iteration)

            result = await self.stages.review(depth, config)
            await self._finish(
                machine,
                PipelineStage.REVIEW,
                result,
                iteration=iteration,
                no_issues_found=result.no_issues_found,
            )

            if result.no_issues_found:
                self.reporter.success(
                    "Code review passed - no issues found, skipping remaining reviews"
                )
                return

            if self._ask(config) == ConfirmChoice.SKIP:
                self.reporter.info("Skipping remaining reviews")
                return

    async def _skip(
        self,
        machine: RunStateMachine,
        position: int,
        total: int,
        stage: PipelineStage,
        reason: str,
    ) -> None:
        self.reporter.step(position, total, STAGE_TITLES[stage])
        self.reporter.skipped(f"{STAGE_TITLES[stage].title()} ({reason})")
        machine.skip(stage, reason)
        await self._safe_emit(EventType.STAGE_SKIPPED, stage, reason=reason)

    async def _start(self, machine: RunStateMachine, stage: PipelineStage, **details) -> None:
        machine.start(stage, details)
        await self._safe_emit(EventType.STAGE_STARTED, stage, **details)

    async def _finish(
        self,
        machine: RunStateMachine,
        stage: PipelineStage,
        result: StageResult,
        **details,
    ) -> None:
        if not result.success:
            error = f"{STAGE_TITLES[stage].title()} step failed"
            machine.fail(error)
            await self._safe_emit(
                EventType.STAGE_FAILED, stage, exit_code=result.exit_code, **details
            )
            raise StageFailedError(stage)

        machine.succeed(details)
        await self._safe_emit(EventType.STAGE_COMPLETED, stage, **details)

    def _ask(self, config: RunConfiguration) -> ConfirmChoice:
        """Ask the operator how to proceed; always continue when not interactive."""
        if not config.interactive:
            return ConfirmChoice.CONTINUE
        choice = self.confirm("Continue?")
        if choice == ConfirmChoice.QUIT:
            raise RunCancelledError()
        return choice

    def _check_interrupted(self) -> None:
        if self.interrupts.interrupted:
            raise AgentInterruptedError()

    def _abort(self, machine: RunStateMachine, reason: str) -> None:
        if not machine.state.is_terminal:
            machine.abort(reason)

    def _report_completion(self, config: RunConfiguration) -> None:
        self.reporter.console.print()
        if config.implementation_only:
            self.reporter.success("Implementation complete")
            self.reporter.warning(
                "Implementation-only mode: changes are not committed. "
                "Review and commit them yourself."
            )
        else:
            self.reporter.success("Pipeline completed successfully")
        if config.dry_run:
            self.reporter.info("Dry run - no agent process was started")

    async def _safe_emit(
        self,
        event_type: EventType,
        stage: Optional[PipelineStage],
        **details,
    ) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the pipeline."""
        event = PipelineEvent(event_type=event_type, stage=stage, details=details)
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={"event_type": event_type.value},
            )
