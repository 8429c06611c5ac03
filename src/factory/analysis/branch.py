"""Branch classifier and branch naming helpers.

Classifies a requirement into a change type and a short description, and
turns that into a branch name that does not collide with any existing
local or remote branch.
"""

import logging
from typing import Collection, List

from src.factory.analysis.models import (
    DEFAULT_SHORT_DESCRIPTION,
    BranchAnalysis,
    ChangeType,
    sanitize_description,
)
from src.factory.analysis.parsing import extract_bool, extract_enum, extract_line
from src.factory.config import RunConfiguration
from src.factory.runner.agent import AgentRunner


logger = logging.getLogger(__name__)

MIN_KEYWORD_LENGTH = 3

BRANCH_ANALYSIS_PROMPT = """Analyze the following requirement and determine the type of change it represents.

Requirement: "{requirement}"

Respond in EXACTLY this format (no markdown, no extra text):
CHANGE_TYPE: <one of: feature, fix, refactor, docs, chore, trivial>
IS_TRIVIAL: <true or false>
SHORT_DESC: <2-4 word kebab-case description for branch name>

Guidelines:
- feature = new functionality being added
- fix = bug fix or error correction
- refactor = code restructuring without changing behavior
- docs = documentation changes only
- chore = maintenance tasks (deps, config, build)
- trivial = tiny changes like typo fixes, single-line changes

IS_TRIVIAL should be true only for very minor changes that don't need a branch.
SHORT_DESC should be suitable for a branch name like "feature/SHORT_DESC\""""


def describe_requirement(requirement: str) -> str:
    """Branch-safe description derived from the requirement text itself."""
    return sanitize_description(requirement) or DEFAULT_SHORT_DESCRIPTION


def parse_branch_response(text: str, requirement: str) -> BranchAnalysis:
    """Decode an agent reply into a BranchAnalysis.

    A missing or unusable SHORT_DESC falls back to a description derived
    from the requirement.
    """
    description = sanitize_description(extract_line(text, "SHORT_DESC") or "")
    return BranchAnalysis(
        change_type=extract_enum(text, "CHANGE_TYPE", ChangeType) or ChangeType.FEATURE,
        is_trivial=bool(extract_bool(text, "IS_TRIVIAL")),
        short_description=description or describe_requirement(requirement),
    )


def unique_branch_name(analysis: BranchAnalysis, existing: Collection[str]) -> str:
    """Return the suggested branch name, suffixed until it is unused.

    The counter only moves forward, and among len(existing) + 1 suffixes at
    least one must be free, so this always terminates with a fresh name.
    """
    base = analysis.suggested_branch_name
    taken = set(existing)
    if base not in taken:
        return base

    counter = 1
    candidate = f"{base}-{counter}"
    while candidate in taken:
        counter += 1
        candidate = f"{base}-{counter}"
    return candidate


def _keywords(description: str) -> List[str]:
    return [word for word in description.split("-") if len(word) >= MIN_KEYWORD_LENGTH]


def branch_matches(branch_name: str, analysis: BranchAnalysis) -> bool:
    """Check whether an existing branch plausibly belongs to this change.

    True when the branch shares the analysis prefix (``fix/...`` for a fix)
    or contains any keyword of the short description.
    """
    name = branch_name.lower()
    prefix, _, _ = name.partition("/")
    if "/" in name and prefix == analysis.branch_prefix:
        return True
    return any(keyword in name for keyword in _keywords(analysis.short_description))


class BranchClassifier:
    """Classifies requirements for branch naming.

    Attributes:
        runner: Agent runner used for the classification request.
    """

    def __init__(self, runner: AgentRunner):
        self.runner = runner

    async def classify(self, requirement: str, config: RunConfiguration) -> BranchAnalysis:
        """Classify the requirement into a branch naming decision.

        Never raises on a bad reply; the default analysis is used instead.

        Raises:
            AgentInterruptedError: If the operator interrupted the request.
        """
        if config.dry_run:
            return BranchAnalysis.for_dry_run()

        prompt = BRANCH_ANALYSIS_PROMPT.format(requirement=requirement)
        result = await self.runner.query(prompt, config)

        if not result.success:
            logger.warning(
                "Branch analysis failed, deriving branch name from requirement",
                extra={"exit_code": result.exit_code},
            )
            return BranchAnalysis(short_description=describe_requirement(requirement))

        analysis = parse_branch_response(result.output, requirement)
        logger.info(
            "Branch analysis complete",
            extra={
                "change_type": analysis.change_type.value,
                "is_trivial": analysis.is_trivial,
                "suggested_branch": analysis.suggested_branch_name,
            },
        )
        return analysis
