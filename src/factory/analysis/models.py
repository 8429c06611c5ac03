"""Classification models for adaptive execution and branch naming.

The agent's free-text replies are decoded into these records. Every field
has a named default, so a reply that is missing fields (or missing
entirely) still produces a complete, valid record.
"""

import re
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.factory.config import (
    DEFAULT_REVIEW_ITERATIONS,
    MAX_REVIEW_ITERATIONS,
    MIN_REVIEW_ITERATIONS,
)


MAX_DESCRIPTION_LENGTH = 40
DEFAULT_SHORT_DESCRIPTION = "changes"
DEFAULT_REASONING = "Default configuration - standard pipeline execution"
DRY_RUN_REASONING = "Dry run mode - using default configuration"

SHORT_DESCRIPTION_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class ChangeType(str, Enum):
    """Kind of change a requirement represents.

    Attributes:
        FEATURE: New functionality.
        FIX: Bug fix or error correction.
        REFACTOR: Restructuring without behavior change.
        DOCS: Documentation only.
        CHORE: Maintenance (dependencies, config, build).
        TRIVIAL: Typo-sized change.
    """

    FEATURE = "feature"
    FIX = "fix"
    REFACTOR = "refactor"
    DOCS = "docs"
    CHORE = "chore"
    TRIVIAL = "trivial"

    @property
    def branch_prefix(self) -> str:
        """Branch prefix for this change type; trivial changes file as chores."""
        if self is ChangeType.TRIVIAL:
            return ChangeType.CHORE.value
        return self.value


class ReviewDepth(str, Enum):
    """How deep the review stage digs."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    THOROUGH = "thorough"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StepRecommendation(BaseModel):
    """Which optional stages to skip, and how hard to review.

    Created once per run, read-only afterwards.

    Attributes:
        skip_simplify: Skip the simplification stage.
        skip_review: Skip the review loop.
        skip_solid: Skip the SOLID/clean-code stage.
        skip_tests: Skip the test stage.
        skip_changelog: Skip the changelog stage.
        review_depth: Review prompt depth.
        review_iterations: Recommended review loop bound, clamped to [1, 3].
        reasoning: Free-text rationale shown to the operator.
    """

    model_config = ConfigDict(frozen=True)

    skip_simplify: bool = False
    skip_review: bool = False
    skip_solid: bool = False
    skip_tests: bool = False
    skip_changelog: bool = False
    review_depth: ReviewDepth = ReviewDepth.STANDARD
    review_iterations: int = Field(
        default=DEFAULT_REVIEW_ITERATIONS,
        ge=MIN_REVIEW_ITERATIONS,
        le=MAX_REVIEW_ITERATIONS,
    )
    reasoning: str = DEFAULT_REASONING

    @classmethod
    def defaults(cls, reasoning: str = DEFAULT_REASONING) -> "StepRecommendation":
        """Create the all-defaults recommendation.

        Args:
            reasoning: Rationale explaining why defaults are in use.
        """
        return cls(reasoning=reasoning)


def sanitize_description(text: str) -> str:
    """Reduce free text to a branch-safe kebab-case fragment.

    Lowercases, drops everything but letters, digits, whitespace and
    hyphens, turns whitespace runs into single hyphens, and cuts the
    result to MAX_DESCRIPTION_LENGTH. Returns an empty string when nothing
    usable is left.
    """
    cleaned = re.sub(r"[^a-z0-9\s-]", "", text.strip().lower())
    cleaned = re.sub(r"\s+", "-", cleaned)
    cleaned = re.sub(r"-+", "-", cleaned).strip("-")
    return cleaned[:MAX_DESCRIPTION_LENGTH].rstrip("-")


class BranchAnalysis(BaseModel):
    """Branch naming decision for a requirement.

    Attributes:
        change_type: Classified change type.
        is_trivial: True when the change does not warrant its own branch.
        short_description: Sanitized kebab-case description.
    """

    model_config = ConfigDict(frozen=True)

    change_type: ChangeType = ChangeType.FEATURE
    is_trivial: bool = False
    short_description: str = DEFAULT_SHORT_DESCRIPTION

    @field_validator("short_description")
    @classmethod
    def validate_short_description(cls, v: str) -> str:
        """Validate that the description is branch-safe and bounded."""
        if len(v) > MAX_DESCRIPTION_LENGTH or not SHORT_DESCRIPTION_PATTERN.fullmatch(v):
            raise ValueError(
                f"short_description must be lowercase kebab-case of at most "
                f"{MAX_DESCRIPTION_LENGTH} characters, got {v!r}"
            )
        return v

    @property
    def branch_prefix(self) -> str:
        return self.change_type.branch_prefix

    @property
    def suggested_branch_name(self) -> str:
        """Suggested name of the form <prefix>/<short-description>."""
        return f"{self.branch_prefix}/{self.short_description}"

    @classmethod
    def defaults(cls) -> "BranchAnalysis":
        return cls()

    @classmethod
    def for_dry_run(cls) -> "BranchAnalysis":
        return cls(short_description="dry-run-changes")


class AdaptiveAnalysis(BaseModel):
    """Full adaptive classification of a requirement.

    Attributes:
        change_type: Classified change type.
        is_trivial: True for typo-sized changes.
        complexity: Estimated implementation complexity.
        risk_level: Estimated risk of the change.
        affected_areas: Areas touched (code, tests, config, docs, build, deps).
        short_description: Sanitized branch description, if the agent gave one.
        recommendation: Per-stage skip decisions and review settings.
    """

    model_config = ConfigDict(frozen=True)

    change_type: ChangeType = ChangeType.FEATURE
    is_trivial: bool = False
    complexity: Complexity = Complexity.MEDIUM
    risk_level: RiskLevel = RiskLevel.MEDIUM
    affected_areas: List[str] = Field(default_factory=lambda: ["code"])
    short_description: str = ""
    recommendation: StepRecommendation = Field(default_factory=StepRecommendation)

    @classmethod
    def defaults(cls, reasoning: str = DEFAULT_REASONING) -> "AdaptiveAnalysis":
        return cls(recommendation=StepRecommendation.defaults(reasoning))

    def to_branch_analysis(self, requirement: str) -> BranchAnalysis:
        """Derive the branch naming decision from this analysis.

        Falls back to a description built from the requirement text when
        the agent did not supply one.
        """
        description = (
            sanitize_description(self.short_description)
            or sanitize_description(requirement)
            or DEFAULT_SHORT_DESCRIPTION
        )
        return BranchAnalysis(
            change_type=self.change_type,
            is_trivial=self.is_trivial,
            short_description=description,
        )
