"""Unit tests for the pipeline stages.

Tests clean-review detection, stage prompts, the agent-driven stages'
conversation handling, and the branch management decision table.
"""

import asyncio
from io import StringIO
from unittest.mock import AsyncMock, MagicMock

import pytest
from rich.console import Console

from src.factory.analysis.models import (
    AdaptiveAnalysis,
    BranchAnalysis,
    ChangeType,
    ReviewDepth,
    StepRecommendation,
)
from src.factory.config import RunConfiguration
from src.factory.console import Reporter
from src.factory.git.client import GitCommandError, GitState
from src.factory.runner.agent import AgentResult
from src.factory.stages import AgentStages, BranchManagementStage, detect_no_issues
from src.factory.stages import prompts


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@pytest.fixture
def config():
    return RunConfiguration(requirement="add user authentication")


@pytest.fixture
def output():
    return StringIO()


@pytest.fixture
def reporter(output):
    return Reporter(Console(file=output, width=200, color_system=None))


class TestDetectNoIssues:
    @pytest.mark.parametrize(
        "reply",
        [
            "Reviewed the diff.\nNO ISSUES FOUND",
            "Reviewed the diff.\n\n**NO ISSUES FOUND**\n",
            "Checked the parser and the tests.\nNo further issues found.",
            "The code is clean.",
            "Second pass complete.\n\nI found no further issues.",
            "No additional changes are needed.",
        ],
    )
    def test_clean_replies(self, reply):
        assert detect_no_issues(reply) is True

    @pytest.mark.parametrize(
        "reply",
        [
            "",
            "   ",
            "Looks reasonable overall.",
            "Found 2 issues and fixed them.",
            "Fixed an off-by-one in the parser. No issues found otherwise.",
            "I've updated the error handling. No further changes needed.",
            "Three bugs were found and corrected. Nothing to fix now.",
            "No issues found in the tests, but the parser still has a bug that needs attention.",
            "I reviewed the changes. No issues found in the new parser.",
            "NO ISSUES FOUND\nExcept that the retry loop still has a bug.",
            "The retry loop has a subtle bug.\nNO ISSUES FOUND",
            "Fixed the null check.\nNO ISSUES FOUND",
        ],
    )
    def test_dirty_or_unclear_replies(self, reply):
        assert detect_no_issues(reply) is False


class TestPrompts:
    def test_commit_pushes_by_default(self):
        assert prompts.commit_prompt(skip_push=False).endswith(prompts.PUSH_INSTRUCTION)

    def test_commit_without_push(self):
        assert prompts.PUSH_INSTRUCTION not in prompts.commit_prompt(skip_push=True)

    @pytest.mark.parametrize("depth", list(ReviewDepth))
    def test_review_prompt_asks_for_marker(self, depth):
        prompt = prompts.review_prompt(depth)

        assert prompts.NO_ISSUES_MARKER in prompt
        assert prompts.REVIEW_FOCUS[depth] in prompt

    def test_requirement_embedded(self):
        assert prompts.implement_prompt("add OAuth").startswith("add OAuth")
        assert "add OAuth" in prompts.understand_prompt("add OAuth")


class TestAgentStages:
    @pytest.fixture
    def runner(self):
        runner = MagicMock()
        runner.invoke = AsyncMock(return_value=AgentResult(success=True, output="done"))
        return runner

    def test_understand_starts_fresh_conversation(self, runner, config):
        run_async(AgentStages(runner).understand(config))

        assert runner.invoke.call_args[0][1] is False

    @pytest.mark.parametrize("continuation", [True, False])
    def test_implement_continuation_passed_through(self, runner, config, continuation):
        run_async(AgentStages(runner).implement(config, continuation))

        prompt, passed, _ = runner.invoke.call_args[0]
        assert passed is continuation
        assert prompt.startswith(config.requirement)

    @pytest.mark.parametrize("method", ["simplify", "solid", "test", "commit", "changelog"])
    def test_later_stages_continue_conversation(self, runner, config, method):
        result = run_async(getattr(AgentStages(runner), method)(config))

        assert result.success is True
        assert runner.invoke.call_args[0][1] is True

    def test_commit_respects_skip_push(self, runner):
        config = RunConfiguration(requirement="x", skip_push=True)

        run_async(AgentStages(runner).commit(config))

        assert prompts.PUSH_INSTRUCTION not in runner.invoke.call_args[0][0]

    def test_review_detects_clean_verdict(self, runner, config):
        runner.invoke.return_value = AgentResult(success=True, output="NO ISSUES FOUND")

        result = run_async(AgentStages(runner).review(ReviewDepth.THOROUGH, config))

        assert result.no_issues_found is True
        assert prompts.REVIEW_FOCUS[ReviewDepth.THOROUGH] in runner.invoke.call_args[0][0]

    def test_failed_review_is_never_clean(self, runner, config):
        runner.invoke.return_value = AgentResult(
            success=False, output="NO ISSUES FOUND", exit_code=1
        )

        result = run_async(AgentStages(runner).review(ReviewDepth.STANDARD, config))

        assert result.success is False
        assert result.no_issues_found is False


def _make_git(state, existing=None, create_error=None):
    git = MagicMock()
    git.get_state = AsyncMock(return_value=state)
    git.list_branches = AsyncMock(return_value=existing or [state.current_branch])
    git.create_branch = AsyncMock(side_effect=create_error)
    return git


def _make_stage(reporter, git, analysis=None, adaptive=None):
    classifier = MagicMock()
    classifier.classify = AsyncMock(return_value=analysis or BranchAnalysis())
    analyzer = MagicMock()
    analyzer.assess = AsyncMock(return_value=adaptive or AdaptiveAnalysis.defaults())
    return BranchManagementStage(git, classifier, analyzer, reporter)


class TestBranchManagementStage:
    def test_feature_on_main_creates_branch(self, reporter, config, output):
        git = _make_git(GitState(current_branch="main", is_protected=True))
        analysis = BranchAnalysis(
            change_type=ChangeType.FEATURE, short_description="add-user-authentication"
        )
        stage = _make_stage(reporter, git, analysis)

        result = run_async(stage.run(config))

        git.create_branch.assert_awaited_once_with("feature/add-user-authentication")
        assert result.branch_name == "feature/add-user-authentication"
        assert result.branch_created is True
        assert "Switched to new branch" in output.getvalue()

    def test_collision_gets_suffix(self, reporter, config):
        git = _make_git(
            GitState(current_branch="main", is_protected=True),
            existing=["main", "feature/add-user-authentication"],
        )
        analysis = BranchAnalysis(short_description="add-user-authentication")

        result = run_async(_make_stage(reporter, git, analysis).run(config))

        assert result.branch_name == "feature/add-user-authentication-1"

    def test_trivial_change_stays(self, reporter, config):
        git = _make_git(GitState(current_branch="master", is_protected=True))
        analysis = BranchAnalysis(
            change_type=ChangeType.TRIVIAL, is_trivial=True, short_description="fix-typo"
        )

        result = run_async(_make_stage(reporter, git, analysis).run(config))

        git.create_branch.assert_not_called()
        assert result.branch_name == "master"
        assert result.branch_created is False

    def test_matching_feature_branch_stays_quietly(self, reporter, config, output):
        git = _make_git(GitState(current_branch="feature/user-authentication"))
        analysis = BranchAnalysis(short_description="add-user-authentication")

        result = run_async(_make_stage(reporter, git, analysis).run(config))

        git.create_branch.assert_not_called()
        assert result.branch_name == "feature/user-authentication"
        assert "may not match" not in output.getvalue()

    def test_unrelated_branch_warns_and_continues(self, reporter, config, output):
        git = _make_git(GitState(current_branch="docs/readme"))
        analysis = BranchAnalysis(short_description="add-user-authentication")

        result = run_async(_make_stage(reporter, git, analysis).run(config))

        assert result.success is True
        assert result.branch_name == "docs/readme"
        assert "may not match" in output.getvalue()

    def test_create_failure_warns_and_continues(self, reporter, config, output):
        git = _make_git(
            GitState(current_branch="main", is_protected=True),
            create_error=GitCommandError(["checkout", "-b", "x"], "locked"),
        )

        result = run_async(_make_stage(reporter, git).run(config))

        assert result.success is True
        assert result.branch_name == "main"
        assert result.branch_created is False
        assert "continuing on current branch" in output.getvalue()

    def test_dirty_tree_warns(self, reporter, config, output):
        git = _make_git(
            GitState(current_branch="feature/changes", has_uncommitted_changes=True)
        )

        run_async(_make_stage(reporter, git).run(config))

        assert "uncommitted changes" in output.getvalue()

    def test_conflicting_remote_branches_listed(self, reporter, config, output):
        git = _make_git(
            GitState(
                current_branch="main",
                is_protected=True,
                remote_branches=["main", "feature/user-authentication-old"],
            )
        )
        analysis = BranchAnalysis(short_description="user-authentication")

        run_async(_make_stage(reporter, git, analysis).run(config))

        assert "feature/user-authentication-old" in output.getvalue()

    def test_dry_run_never_creates(self, reporter, config, output):
        git = _make_git(GitState(current_branch="main", is_protected=True))
        stage = _make_stage(reporter, git)
        dry = config.model_copy(update={"dry_run": True})

        result = run_async(stage.run(dry))

        git.create_branch.assert_not_called()
        stage.classifier.classify.assert_not_called()
        assert result.branch_name == "feature/dry-run-changes"
        assert "[DRY-RUN] git checkout -b feature/dry-run-changes" in output.getvalue()

    def test_adaptive_mode_uses_single_analysis(self, reporter):
        config = RunConfiguration(requirement="update readme", adaptive_execution=True)
        adaptive = AdaptiveAnalysis(
            change_type=ChangeType.DOCS,
            short_description="update-readme",
            recommendation=StepRecommendation(skip_tests=True, reasoning="docs only"),
        )
        git = _make_git(GitState(current_branch="main", is_protected=True))
        stage = _make_stage(reporter, git, adaptive=adaptive)

        result = run_async(stage.run(config))

        stage.classifier.classify.assert_not_called()
        stage.analyzer.assess.assert_awaited_once()
        assert result.adaptive == adaptive
        assert result.branch_name == "docs/update-readme"

    def test_recommend_without_adaptive_mode(self, reporter, config):
        stage = _make_stage(reporter, _make_git(GitState(current_branch="main")))

        assert run_async(stage.recommend(config)) is None
        stage.analyzer.assess.assert_not_called()
