"""Agent-driven pipeline stages.

Each stage sends one instruction to the agent and reports whether the
agent succeeded. Everything after implement continues the same agent
conversation so the agent keeps its context of the change.
"""

import logging

from src.factory.analysis.models import ReviewDepth
from src.factory.config import RunConfiguration
from src.factory.runner.agent import AgentRunner
from src.factory.stages import prompts
from src.factory.stages.models import ReviewResult, StageResult
from src.factory.stages.review import detect_no_issues


logger = logging.getLogger(__name__)


class AgentStages:
    """The stages whose real work is done by the agent.

    Attributes:
        runner: Agent runner used for every stage.
    """

    def __init__(self, runner: AgentRunner):
        self.runner = runner

    async def _invoke(
        self,
        name: str,
        prompt: str,
        continuation: bool,
        config: RunConfiguration,
    ) -> StageResult:
        result = await self.runner.invoke(prompt, continuation, config)
        logger.info(
            "Stage finished",
            extra={
                "stage": name,
                "success": result.success,
                "exit_code": result.exit_code,
            },
        )
        return StageResult(
            success=result.success,
            output=result.output,
            exit_code=result.exit_code,
        )

    async def understand(self, config: RunConfiguration) -> StageResult:
        """Map the codebase without changing it; starts a fresh conversation."""
        return await self._invoke(
            "understand", prompts.understand_prompt(config.requirement), False, config
        )

    async def implement(self, config: RunConfiguration, continuation: bool) -> StageResult:
        """Implement the requirement.

        Args:
            config: Run configuration.
            continuation: True when the codebase-understanding stage ran
                and its conversation should be resumed.
        """
        return await self._invoke(
            "implement", prompts.implement_prompt(config.requirement), continuation, config
        )

    async def simplify(self, config: RunConfiguration) -> StageResult:
        return await self._invoke("simplify", prompts.SIMPLIFY_PROMPT, True, config)

    async def review(self, depth: ReviewDepth, config: RunConfiguration) -> ReviewResult:
        """Run one review iteration and detect a clean verdict."""
        result = await self._invoke("review", prompts.review_prompt(depth), True, config)
        return ReviewResult(
            success=result.success,
            output=result.output,
            exit_code=result.exit_code,
            no_issues_found=result.success and detect_no_issues(result.output),
        )

    async def solid(self, config: RunConfiguration) -> StageResult:
        return await self._invoke("solid", prompts.SOLID_PROMPT, True, config)

    async def test(self, config: RunConfiguration) -> StageResult:
        return await self._invoke("test", prompts.TEST_PROMPT, True, config)

    async def commit(self, config: RunConfiguration) -> StageResult:
        return await self._invoke(
            "commit", prompts.commit_prompt(config.skip_push), True, config
        )

    async def changelog(self, config: RunConfiguration) -> StageResult:
        return await self._invoke("changelog", prompts.CHANGELOG_PROMPT, True, config)
