"""Adaptive step analyzer.

Asks the agent for a rigid-format classification of the requirement and
decodes the reply into an AdaptiveAnalysis. The analyzer never fails: a
dry run, a failed agent call or an empty reply all produce the default
recommendation with a rationale saying why.
"""

import logging

from src.factory.analysis.models import (
    DEFAULT_REASONING,
    DRY_RUN_REASONING,
    AdaptiveAnalysis,
    ChangeType,
    Complexity,
    ReviewDepth,
    RiskLevel,
    StepRecommendation,
    sanitize_description,
)
from src.factory.analysis.parsing import (
    clamp,
    extract_bool,
    extract_enum,
    extract_int,
    extract_line,
    extract_list,
)
from src.factory.config import (
    DEFAULT_REVIEW_ITERATIONS,
    MAX_REVIEW_ITERATIONS,
    MIN_REVIEW_ITERATIONS,
    RunConfiguration,
)
from src.factory.runner.agent import AgentRunner


logger = logging.getLogger(__name__)

FALLBACK_REASONING = "Adaptive analysis unavailable - using default configuration"

ADAPTIVE_ANALYSIS_PROMPT = """Analyze the following requirement and determine which pipeline steps should be executed.

Requirement: "{requirement}"

Respond in EXACTLY this format (no markdown, no extra text):
CHANGE_TYPE: <one of: feature, fix, refactor, docs, chore, trivial>
IS_TRIVIAL: <true or false>
SHORT_DESC: <2-4 word kebab-case description for a branch name>
COMPLEXITY: <one of: low, medium, high>
RISK_LEVEL: <one of: low, medium, high>
AFFECTED_AREAS: <comma-separated list: code, tests, config, docs, build, deps>
SKIP_SIMPLIFY: <true or false>
SKIP_REVIEW: <true or false>
SKIP_SOLID: <true or false>
SKIP_TESTS: <true or false>
SKIP_CHANGELOG: <true or false>
REVIEW_DEPTH: <one of: minimal, standard, thorough>
REVIEW_ITERATIONS: <1, 2, or 3>
REASONING: <brief one-line explanation for the recommendations>

Guidelines for step skipping:
- Documentation-only changes (docs): skip tests, simplify, and SOLID review
- Config file changes (chore for config): skip SOLID review, reduce review iterations
- Typo fixes or trivial changes: skip most steps, minimal review
- Refactoring with no behavior change: reduce test focus, thorough SOLID review
- New features with business logic: all steps, thorough review
- Bug fixes: standard review, focus on tests
- Build/CI changes: skip SOLID, skip tests unless test config changed

Risk assessment:
- Low: docs, typos, comments, formatting
- Medium: config changes, refactoring, minor features
- High: new features with business logic, bug fixes, dependency changes, security-related

Complexity assessment:
- Low: single file, few lines, isolated change
- Medium: multiple files, moderate scope
- High: many files, architectural impact, complex logic"""


def build_analysis_prompt(requirement: str) -> str:
    return ADAPTIVE_ANALYSIS_PROMPT.format(requirement=requirement)


def parse_adaptive_response(text: str) -> AdaptiveAnalysis:
    """Decode an agent reply into an AdaptiveAnalysis.

    Every field is extracted on its own and falls back to its default when
    absent or unrecognised. A reply with no recognisable fields yields
    exactly AdaptiveAnalysis.defaults().
    """
    iterations = extract_int(text, "REVIEW_ITERATIONS")
    if iterations is None:
        iterations = DEFAULT_REVIEW_ITERATIONS
    iterations = clamp(iterations, MIN_REVIEW_ITERATIONS, MAX_REVIEW_ITERATIONS)

    recommendation = StepRecommendation(
        skip_simplify=bool(extract_bool(text, "SKIP_SIMPLIFY")),
        skip_review=bool(extract_bool(text, "SKIP_REVIEW")),
        skip_solid=bool(extract_bool(text, "SKIP_SOLID")),
        skip_tests=bool(extract_bool(text, "SKIP_TESTS")),
        skip_changelog=bool(extract_bool(text, "SKIP_CHANGELOG")),
        review_depth=extract_enum(text, "REVIEW_DEPTH", ReviewDepth) or ReviewDepth.STANDARD,
        review_iterations=iterations,
        reasoning=extract_line(text, "REASONING") or DEFAULT_REASONING,
    )

    return AdaptiveAnalysis(
        change_type=extract_enum(text, "CHANGE_TYPE", ChangeType) or ChangeType.FEATURE,
        is_trivial=bool(extract_bool(text, "IS_TRIVIAL")),
        complexity=extract_enum(text, "COMPLEXITY", Complexity) or Complexity.MEDIUM,
        risk_level=extract_enum(text, "RISK_LEVEL", RiskLevel) or RiskLevel.MEDIUM,
        affected_areas=extract_list(text, "AFFECTED_AREAS") or ["code"],
        short_description=sanitize_description(extract_line(text, "SHORT_DESC") or ""),
        recommendation=recommendation,
    )


class StepAnalyzer:
    """Decides which optional stages a requirement needs.

    Attributes:
        runner: Agent runner used for the classification request.
    """

    def __init__(self, runner: AgentRunner):
        self.runner = runner

    async def assess(self, requirement: str, config: RunConfiguration) -> AdaptiveAnalysis:
        """Classify the requirement and recommend stage skips.

        Args:
            requirement: The change to classify.
            config: Run configuration.

        Returns:
            AdaptiveAnalysis; defaults when the agent is unavailable.

        Raises:
            AgentInterruptedError: If the operator interrupted the request.
        """
        if config.dry_run:
            return AdaptiveAnalysis.defaults(DRY_RUN_REASONING)

        result = await self.runner.query(build_analysis_prompt(requirement), config)

        if not result.success or not result.output.strip():
            logger.warning(
                "Adaptive analysis failed, using defaults",
                extra={"exit_code": result.exit_code},
            )
            return AdaptiveAnalysis.defaults(FALLBACK_REASONING)

        analysis = parse_adaptive_response(result.output)
        logger.info(
            "Adaptive analysis complete",
            extra={
                "change_type": analysis.change_type.value,
                "complexity": analysis.complexity.value,
                "risk_level": analysis.risk_level.value,
                "review_depth": analysis.recommendation.review_depth.value,
            },
        )
        return analysis

    async def analyze(self, requirement: str, config: RunConfiguration) -> StepRecommendation:
        """Return only the stage recommendation for the requirement."""
        analysis = await self.assess(requirement, config)
        return analysis.recommendation
