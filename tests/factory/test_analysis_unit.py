"""Unit tests for requirement classification.

Tests label-anchored field extraction, adaptive and branch reply parsing
with per-field defaults, branch naming helpers, and the analyzer and
classifier fallbacks.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from src.factory.analysis import (
    AdaptiveAnalysis,
    BranchAnalysis,
    BranchClassifier,
    ChangeType,
    Complexity,
    ReviewDepth,
    RiskLevel,
    StepAnalyzer,
    StepRecommendation,
    branch_matches,
    parse_adaptive_response,
    parse_branch_response,
    sanitize_description,
    unique_branch_name,
)
from src.factory.analysis.models import DEFAULT_REASONING, DRY_RUN_REASONING
from src.factory.analysis.parsing import (
    clamp,
    extract_bool,
    extract_choice,
    extract_int,
    extract_line,
    extract_list,
)
from src.factory.analysis.steps import FALLBACK_REASONING
from src.factory.config import RunConfiguration
from src.factory.runner.agent import AgentInterruptedError, AgentResult


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _mock_runner(result=None, side_effect=None):
    runner = MagicMock()
    runner.query = AsyncMock(return_value=result, side_effect=side_effect)
    return runner


FULL_REPLY = """CHANGE_TYPE: docs
IS_TRIVIAL: false
SHORT_DESC: update-readme
COMPLEXITY: low
RISK_LEVEL: low
AFFECTED_AREAS: docs
SKIP_SIMPLIFY: true
SKIP_REVIEW: false
SKIP_SOLID: true
SKIP_TESTS: true
SKIP_CHANGELOG: false
REVIEW_DEPTH: minimal
REVIEW_ITERATIONS: 1
REASONING: Documentation-only change"""


@pytest.fixture
def config():
    return RunConfiguration(requirement="add user authentication")


class TestExtraction:
    def test_line_value(self):
        assert extract_line("REASONING: keep it simple\nX: y", "REASONING") == "keep it simple"

    def test_markdown_emphasis_around_label(self):
        text = "**CHANGE_TYPE:** fix\n- **IS_TRIVIAL**: `true`"

        assert extract_choice(text, "CHANGE_TYPE", ["fix", "feature"]) == "fix"
        assert extract_bool(text, "IS_TRIVIAL") is True

    def test_case_insensitive_label_and_value(self):
        assert extract_choice("change_type = Refactor", "CHANGE_TYPE", ["refactor"]) == "refactor"

    def test_placeholder_echo_skipped(self):
        text = "SHORT_DESC: <2-4 word description>\nSHORT_DESC: fix-login"

        assert extract_line(text, "SHORT_DESC") == "fix-login"

    def test_label_must_not_be_suffix_of_other_label(self):
        assert extract_bool("NOT_SKIP_TESTS: true", "SKIP_TESTS") is None

    def test_longest_choice_wins(self):
        assert extract_choice("X: feature", "X", ["feat", "feature"]) == "feature"

    def test_unknown_choice_is_none(self):
        assert extract_choice("CHANGE_TYPE: banana", "CHANGE_TYPE", ["fix"]) is None

    @pytest.mark.parametrize("value, expected", [("yes", True), ("no", False), ("FALSE", False)])
    def test_bool_spellings(self, value, expected):
        assert extract_bool(f"FLAG: {value}", "FLAG") is expected

    def test_int_and_list(self):
        text = "REVIEW_ITERATIONS: 3\nAFFECTED_AREAS: Code, tests , ,docs"

        assert extract_int(text, "REVIEW_ITERATIONS") == 3
        assert extract_list(text, "AFFECTED_AREAS") == ["code", "tests", "docs"]

    def test_missing_fields_are_none(self):
        assert extract_int("nothing here", "REVIEW_ITERATIONS") is None
        assert extract_list("nothing here", "AFFECTED_AREAS") is None

    @pytest.mark.parametrize("value, expected", [(0, 1), (1, 1), (2, 2), (5, 3)])
    def test_clamp(self, value, expected):
        assert clamp(value, 1, 3) == expected


class TestParseAdaptiveResponse:
    def test_full_reply(self):
        analysis = parse_adaptive_response(FULL_REPLY)
        rec = analysis.recommendation

        assert analysis.change_type is ChangeType.DOCS
        assert analysis.is_trivial is False
        assert analysis.complexity is Complexity.LOW
        assert analysis.risk_level is RiskLevel.LOW
        assert analysis.affected_areas == ["docs"]
        assert analysis.short_description == "update-readme"
        assert rec.skip_simplify is True
        assert rec.skip_review is False
        assert rec.skip_solid is True
        assert rec.skip_tests is True
        assert rec.skip_changelog is False
        assert rec.review_depth is ReviewDepth.MINIMAL
        assert rec.review_iterations == 1
        assert rec.reasoning == "Documentation-only change"

    def test_empty_reply_equals_defaults(self):
        assert parse_adaptive_response("") == AdaptiveAnalysis.defaults()

    def test_default_values(self):
        analysis = parse_adaptive_response("I am not sure what you want.")

        assert analysis.change_type is ChangeType.FEATURE
        assert analysis.complexity is Complexity.MEDIUM
        assert analysis.risk_level is RiskLevel.MEDIUM
        assert analysis.affected_areas == ["code"]
        assert analysis.recommendation.review_depth is ReviewDepth.STANDARD
        assert analysis.recommendation.review_iterations == 2
        assert analysis.recommendation.reasoning == DEFAULT_REASONING

    def test_noisy_reply_with_commentary(self):
        text = (
            "Sure! Here is my analysis:\n\n"
            "```\n**CHANGE_TYPE:** fix\n**REVIEW_DEPTH:** thorough\n```\n"
            "Let me know if you need more."
        )
        analysis = parse_adaptive_response(text)

        assert analysis.change_type is ChangeType.FIX
        assert analysis.recommendation.review_depth is ReviewDepth.THOROUGH

    @pytest.mark.parametrize("raw, expected", [("0", 1), ("7", 3), ("2", 2)])
    def test_review_iterations_clamped(self, raw, expected):
        analysis = parse_adaptive_response(f"REVIEW_ITERATIONS: {raw}")

        assert analysis.recommendation.review_iterations == expected

    def test_garbled_field_does_not_affect_others(self):
        analysis = parse_adaptive_response("COMPLEXITY: enormous\nRISK_LEVEL: high")

        assert analysis.complexity is Complexity.MEDIUM
        assert analysis.risk_level is RiskLevel.HIGH


class TestParseBranchResponse:
    def test_full_reply(self):
        text = "CHANGE_TYPE: fix\nIS_TRIVIAL: false\nSHORT_DESC: login-redirect"

        analysis = parse_branch_response(text, "fix the login redirect")

        assert analysis.suggested_branch_name == "fix/login-redirect"

    def test_description_sanitized(self):
        analysis = parse_branch_response("SHORT_DESC: Add User Auth!", "x")

        assert analysis.short_description == "add-user-auth"

    def test_missing_description_falls_back_to_requirement(self):
        analysis = parse_branch_response("CHANGE_TYPE: feature", "Add user authentication")

        assert analysis.suggested_branch_name == "feature/add-user-authentication"

    def test_trivial_uses_chore_prefix(self):
        analysis = parse_branch_response("CHANGE_TYPE: trivial\nIS_TRIVIAL: true", "fix typo")

        assert analysis.is_trivial is True
        assert analysis.branch_prefix == "chore"


class TestModels:
    def test_sanitize_description(self):
        assert sanitize_description("  Fix  the -- Login_Bug!! ") == "fix-the-loginbug"

    def test_sanitize_truncates_without_trailing_hyphen(self):
        result = sanitize_description("a" * 39 + " bcd")

        assert len(result) <= 40
        assert not result.endswith("-")

    def test_sanitize_may_return_empty(self):
        assert sanitize_description("!!!") == ""

    @pytest.mark.parametrize("bad", ["Upper", "has space", "-lead", "trail-", "a--b", "", "x" * 41])
    def test_short_description_validated(self, bad):
        with pytest.raises(ValidationError):
            BranchAnalysis(short_description=bad)

    def test_recommendation_iterations_bounded(self):
        with pytest.raises(ValidationError):
            StepRecommendation(review_iterations=4)

    def test_dry_run_branch_name(self):
        assert BranchAnalysis.for_dry_run().suggested_branch_name == "feature/dry-run-changes"

    def test_to_branch_analysis_fallbacks(self):
        assert (
            AdaptiveAnalysis(short_description="add-auth").to_branch_analysis("ignored").short_description
            == "add-auth"
        )
        assert AdaptiveAnalysis().to_branch_analysis("Add OAuth").short_description == "add-oauth"
        assert AdaptiveAnalysis().to_branch_analysis("???").short_description == "changes"


class TestBranchNaming:
    def test_unused_name_returned_as_is(self):
        analysis = BranchAnalysis(short_description="add-auth")

        assert unique_branch_name(analysis, ["main"]) == "feature/add-auth"

    def test_collision_gets_suffix(self):
        analysis = BranchAnalysis(short_description="add-auth")
        existing = ["feature/add-auth", "feature/add-auth-1"]

        assert unique_branch_name(analysis, existing) == "feature/add-auth-2"

    def test_many_collisions(self):
        analysis = BranchAnalysis(short_description="add-auth")
        existing = ["feature/add-auth"] + [f"feature/add-auth-{i}" for i in range(1, 7)]

        name = unique_branch_name(analysis, existing)

        assert name == "feature/add-auth-7"
        assert name not in existing

    def test_prefix_match(self):
        analysis = BranchAnalysis(change_type=ChangeType.FIX, short_description="login")

        assert branch_matches("fix/something-else", analysis) is True

    def test_keyword_match(self):
        analysis = BranchAnalysis(short_description="user-authentication")

        assert branch_matches("wip/authentication-spike", analysis) is True

    def test_short_keywords_ignored(self):
        analysis = BranchAnalysis(short_description="a-to-db")

        assert branch_matches("release/to-prod", analysis) is False

    def test_unrelated_branch(self):
        analysis = BranchAnalysis(short_description="user-authentication")

        assert branch_matches("docs/readme", analysis) is False


class TestStepAnalyzer:
    def test_dry_run_never_queries(self, config):
        runner = _mock_runner()
        dry = config.model_copy(update={"dry_run": True})

        analysis = run_async(StepAnalyzer(runner).assess("x", dry))

        runner.query.assert_not_called()
        assert analysis.recommendation.reasoning == DRY_RUN_REASONING

    def test_failure_gives_fallback_defaults(self, config):
        runner = _mock_runner(AgentResult(success=False, exit_code=1))

        analysis = run_async(StepAnalyzer(runner).assess("x", config))

        assert analysis == AdaptiveAnalysis.defaults(FALLBACK_REASONING)

    def test_blank_output_gives_fallback_defaults(self, config):
        runner = _mock_runner(AgentResult(success=True, output="   "))

        recommendation = run_async(StepAnalyzer(runner).analyze("x", config))

        assert recommendation.reasoning == FALLBACK_REASONING

    def test_reply_parsed(self, config):
        runner = _mock_runner(AgentResult(success=True, output=FULL_REPLY))

        recommendation = run_async(StepAnalyzer(runner).analyze("update readme", config))

        assert recommendation.skip_tests is True
        assert "update readme" in runner.query.call_args[0][0]

    def test_interrupt_propagates(self, config):
        runner = _mock_runner(side_effect=AgentInterruptedError(130))

        with pytest.raises(AgentInterruptedError):
            run_async(StepAnalyzer(runner).assess("x", config))


class TestBranchClassifier:
    def test_dry_run(self, config):
        runner = _mock_runner()
        dry = config.model_copy(update={"dry_run": True})

        analysis = run_async(BranchClassifier(runner).classify("x", dry))

        runner.query.assert_not_called()
        assert analysis == BranchAnalysis.for_dry_run()

    def test_failure_derives_name_from_requirement(self, config):
        runner = _mock_runner(AgentResult(success=False, exit_code=1))

        analysis = run_async(
            BranchClassifier(runner).classify("add user authentication", config)
        )

        assert analysis.suggested_branch_name == "feature/add-user-authentication"

    def test_reply_parsed(self, config):
        runner = _mock_runner(
            AgentResult(success=True, output="CHANGE_TYPE: refactor\nSHORT_DESC: split-parser")
        )

        analysis = run_async(BranchClassifier(runner).classify("x", config))

        assert analysis.suggested_branch_name == "refactor/split-parser"
