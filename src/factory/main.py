"""Command-line entry point.

Parses the operator's options, builds the frozen run configuration
(explicit options > SF_* environment > defaults), wires the pipeline
together and exits with the run's status.
"""

import asyncio
import logging
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.prompt import Prompt

from src.factory import __version__
from src.factory.config import RunConfiguration, build_run_config
from src.factory.console import Reporter, setup_logging
from src.factory.notifier import UpdateNotifier
from src.factory.orchestrator import ConfirmChoice, ExitStatus, PipelineOrchestrator
from src.factory.runner.agent import AgentRunner


logger = logging.getLogger(__name__)

PACKAGE_NAME = "software-factory"

app = typer.Typer(
    add_completion=False,
    help="Drive a coding agent through implement, review, test and commit stages.",
)

console = Console(highlight=False)

_CONFIRM_KEYS = {
    "y": ConfirmChoice.CONTINUE,
    "s": ConfirmChoice.SKIP,
    "n": ConfirmChoice.QUIT,
    "q": ConfirmChoice.QUIT,
}


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"{PACKAGE_NAME} {__version__}")
        raise typer.Exit()


def prompt_confirm(message: str) -> ConfirmChoice:
    """Ask the operator whether to continue, skip or quit."""
    answer = Prompt.ask(
        f"{message} [y]es / [s]kip / [q]uit",
        choices=list(_CONFIRM_KEYS),
        default="y",
        show_choices=False,
        console=console,
    )
    return _CONFIRM_KEYS[answer]


def _log_configuration(config: RunConfiguration) -> None:
    """Log the effective configuration at startup."""
    logger.info("Pipeline configuration:")
    logger.info(f"  Requirement: {config.requirement}")
    logger.info(f"  Review Iterations: {config.review_iterations}")
    logger.info(f"  Dry Run: {config.dry_run}")
    logger.info(f"  Skip Tests: {config.skip_tests}")
    logger.info(f"  Skip Push: {config.skip_push}")
    logger.info(f"  Skip Branch Management: {config.skip_branch_management}")
    logger.info(f"  Adaptive Execution: {config.adaptive_execution}")
    logger.info(f"  Implementation Only: {config.implementation_only}")
    logger.info(f"  Understand Codebase: {config.understand_codebase}")
    logger.info(f"  Interactive: {config.interactive}")
    logger.info(f"  Skip Permissions: {config.skip_permissions}")
    logger.info(f"  Allowed Tools: {config.allowed_tools or '(agent default)'}")
    logger.info(f"  Agent Path: {config.agent_path}")
    logger.info(f"  Agent Timeout Seconds: {config.agent_timeout_seconds}")


def _build_orchestrator(reporter: Reporter) -> PipelineOrchestrator:
    """Wire the pipeline's collaborators."""
    runner = AgentRunner(reporter)
    return PipelineOrchestrator(runner, reporter=reporter, confirm=prompt_confirm)


async def _run_pipeline(config: RunConfiguration) -> ExitStatus:
    reporter = Reporter(console)

    if config.update_check:
        await UpdateNotifier(PACKAGE_NAME, __version__).notify(console)

    orchestrator = _build_orchestrator(reporter)
    return await orchestrator.run(config)


@app.command()
def run(
    requirement: str = typer.Argument(..., help="The change the agent should make."),
    reviews: Optional[int] = typer.Option(
        None, "--reviews", "-r", min=1, max=3, help="Review iterations (1-3, default 2)."
    ),
    dry_run: Optional[bool] = typer.Option(
        None, "--dry-run/--no-dry-run", "-d", help="Print agent commands instead of running them."
    ),
    skip_tests: Optional[bool] = typer.Option(
        None, "--skip-tests/--no-skip-tests", help="Skip the testing stage."
    ),
    skip_push: Optional[bool] = typer.Option(
        None, "--skip-push/--no-skip-push", help="Commit without pushing."
    ),
    skip_branch_management: Optional[bool] = typer.Option(
        None,
        "--skip-branch-management/--no-skip-branch-management",
        help="Stay on the current branch.",
    ),
    adaptive: Optional[bool] = typer.Option(
        None, "--adaptive/--no-adaptive", help="Let the agent decide which stages to skip."
    ),
    implementation_only: Optional[bool] = typer.Option(
        None,
        "--implementation-only/--no-implementation-only",
        help="Only implement, review and SOLID-check; nothing is committed.",
    ),
    allowed_tools: Optional[str] = typer.Option(
        None, "--allowed-tools", help="Tool allowlist passed to the agent."
    ),
    dangerously_skip_permissions: Optional[bool] = typer.Option(
        None,
        "--dangerously-skip-permissions/--no-dangerously-skip-permissions",
        help="Let the agent skip every permission prompt.",
    ),
    log: Optional[str] = typer.Option(None, "--log", help="Write a run transcript to FILE."),
    understand: Optional[bool] = typer.Option(
        None, "--understand/--no-understand", help="Map the codebase before implementing."
    ),
    interactive: Optional[bool] = typer.Option(
        None, "--interactive/--no-interactive", "-i", help="Confirm between stages."
    ),
    update_check: Optional[bool] = typer.Option(
        None, "--update-check/--no-update-check", help="Check for a newer release."
    ),
    verbose: Optional[bool] = typer.Option(
        None, "--verbose/--no-verbose", "-v", help="Show debug logging."
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Run the pipeline for REQUIREMENT."""
    try:
        config = build_run_config(
            requirement,
            review_iterations=reviews,
            dry_run=dry_run,
            skip_tests=skip_tests,
            skip_push=skip_push,
            skip_branch_management=skip_branch_management,
            adaptive_execution=adaptive,
            implementation_only=implementation_only,
            allowed_tools=allowed_tools,
            dangerously_skip_permissions=dangerously_skip_permissions,
            log_file=log,
            understand_codebase=understand,
            interactive=interactive,
            update_check=update_check,
            verbose=verbose,
        )
    except ValidationError as exc:
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"]) or "configuration"
            console.print(f"[bold red]✗ Invalid {location}:[/] {error['msg']}")
        raise typer.Exit(code=int(ExitStatus.FAILURE))

    setup_logging(config.log_file, config.verbose)
    _log_configuration(config)

    status = asyncio.run(_run_pipeline(config))
    raise typer.Exit(code=int(status))


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
