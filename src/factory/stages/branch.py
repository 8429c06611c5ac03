"""Branch management stage.

Decides where the run's commits will land:

| On protected branch | Trivial change | Action                                    |
|---------------------|----------------|-------------------------------------------|
| yes                 | yes            | stay, no branch created                   |
| yes                 | no             | create a uniquely named branch            |
| no                  | any            | stay; warn if the branch looks unrelated  |

In adaptive mode this stage also produces the run's step recommendation;
the branch naming decision is then derived from that same analysis.
Git failures never abort the run; the pipeline continues on the current
branch.
"""

import logging
from typing import Optional

from src.factory.analysis.branch import BranchClassifier, branch_matches, unique_branch_name
from src.factory.analysis.models import AdaptiveAnalysis, BranchAnalysis
from src.factory.analysis.steps import StepAnalyzer
from src.factory.config import RunConfiguration
from src.factory.console import Reporter
from src.factory.git.client import (
    GitClient,
    GitCommandError,
    InvalidBranchNameError,
    find_similar_branches,
)
from src.factory.stages.models import BranchResult


logger = logging.getLogger(__name__)


class BranchManagementStage:
    """Places the run on an appropriate branch.

    Attributes:
        git: Git facade.
        classifier: Branch classifier for non-adaptive runs.
        analyzer: Step analyzer for adaptive runs.
        reporter: Operator output.
    """

    def __init__(
        self,
        git: GitClient,
        classifier: BranchClassifier,
        analyzer: StepAnalyzer,
        reporter: Reporter,
    ):
        self.git = git
        self.classifier = classifier
        self.analyzer = analyzer
        self.reporter = reporter

    async def recommend(self, config: RunConfiguration) -> Optional[AdaptiveAnalysis]:
        """Produce the adaptive analysis without touching branches.

        Used when the stage itself is bypassed. Returns None when adaptive
        execution is off.
        """
        if not config.adaptive_execution:
            return None
        adaptive = await self.analyzer.assess(config.requirement, config)
        self._report_adaptive(adaptive)
        return adaptive

    async def run(self, config: RunConfiguration) -> BranchResult:
        """Classify the requirement and place the run on a branch.

        Raises:
            AgentInterruptedError: If the operator interrupted a
                classification request.
        """
        state = await self.git.get_state()
        self.reporter.info(f"Current branch: {state.current_branch or '(unknown)'}")

        if state.has_uncommitted_changes:
            self.reporter.warning(
                "Working tree has uncommitted changes; they will carry over to any new branch"
            )

        adaptive = await self.recommend(config)
        analysis = await self._analyze(config, adaptive)

        self.reporter.info(f"Change type: {analysis.change_type.value}")
        self.reporter.info(f"Suggested branch: {analysis.suggested_branch_name}")

        if not state.is_protected:
            self._check_current_branch(state.current_branch, analysis)
            return self._result(state.current_branch, analysis, adaptive)

        if analysis.is_trivial:
            self.reporter.info("Trivial change detected - staying on current branch")
            return self._result(state.current_branch, analysis, adaptive)

        self._warn_conflicts(analysis, state.remote_branches)

        existing = await self.git.list_branches()
        branch_name = unique_branch_name(analysis, existing)

        if config.dry_run:
            self.reporter.dry_run(f"git checkout -b {branch_name}")
            return self._result(branch_name, analysis, adaptive)

        self.reporter.info(f"Creating branch: {branch_name}")
        try:
            await self.git.create_branch(branch_name)
        except (InvalidBranchNameError, GitCommandError) as exc:
            logger.warning("Branch creation failed", extra={"error": str(exc)})
            self.reporter.warning(
                f"Failed to create branch '{branch_name}' - continuing on current branch"
            )
            return self._result(state.current_branch, analysis, adaptive)

        self.reporter.success(f"Switched to new branch '{branch_name}'")
        return self._result(branch_name, analysis, adaptive, created=True)

    async def _analyze(
        self,
        config: RunConfiguration,
        adaptive: Optional[AdaptiveAnalysis],
    ) -> BranchAnalysis:
        if config.dry_run:
            return BranchAnalysis.for_dry_run()
        if adaptive is not None:
            return adaptive.to_branch_analysis(config.requirement)
        return await self.classifier.classify(config.requirement, config)

    def _check_current_branch(self, current_branch: str, analysis: BranchAnalysis) -> None:
        if branch_matches(current_branch, analysis):
            self.reporter.info(f"Already on branch '{current_branch}' - continuing")
            return
        self.reporter.warning(
            f"Current branch '{current_branch}' may not match this change "
            f"(suggested: {analysis.suggested_branch_name}) - continuing anyway"
        )

    def _warn_conflicts(self, analysis: BranchAnalysis, remote_branches) -> None:
        conflicts = find_similar_branches(analysis.short_description, remote_branches)
        if not conflicts:
            return
        self.reporter.warning("Potential conflicting branches detected:")
        for conflict in conflicts:
            self.reporter.warning(f"  - {conflict.branch_name} ({conflict.similarity})")
        self.reporter.warning("Consider checking these branches before proceeding")

    def _report_adaptive(self, adaptive: AdaptiveAnalysis) -> None:
        recommendation = adaptive.recommendation
        self.reporter.info(
            f"Adaptive analysis: {adaptive.change_type.value}, "
            f"complexity {adaptive.complexity.value}, risk {adaptive.risk_level.value}"
        )
        self.reporter.info(
            f"Review depth: {recommendation.review_depth.value}, "
            f"iterations: {recommendation.review_iterations}"
        )
        skipped = [
            name
            for name, skip in (
                ("simplify", recommendation.skip_simplify),
                ("review", recommendation.skip_review),
                ("solid", recommendation.skip_solid),
                ("tests", recommendation.skip_tests),
                ("changelog", recommendation.skip_changelog),
            )
            if skip
        ]
        if skipped:
            self.reporter.info(f"Recommended skips: {', '.join(skipped)}")
        self.reporter.info(f"Reasoning: {recommendation.reasoning}")

    def _result(
        self,
        branch_name: str,
        analysis: BranchAnalysis,
        adaptive: Optional[AdaptiveAnalysis],
        created: bool = False,
    ) -> BranchResult:
        return BranchResult(
            success=True,
            branch_name=branch_name,
            branch_created=created,
            analysis=analysis,
            adaptive=adaptive,
        )
