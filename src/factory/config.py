"""Pipeline configuration using pydantic-settings.

This module defines the FactorySettings class that reads configuration from
environment variables with the SF_ prefix, and the immutable
RunConfiguration record that every stage of a run consumes.

Precedence for every field is explicit override > environment > built-in
default. Explicit overrides are passed to FactorySettings as init kwargs,
which pydantic-settings already ranks above the environment.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_REVIEW_ITERATIONS = 2
MIN_REVIEW_ITERATIONS = 1
MAX_REVIEW_ITERATIONS = 3


class FactorySettings(BaseSettings):
    """Pipeline configuration from environment variables.

    All environment variables are prefixed with SF_ (e.g., SF_DRY_RUN).
    Nothing is required; every field has a built-in default.
    """

    model_config = SettingsConfigDict(
        env_prefix="SF_",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Pipeline shape
    # -------------------------------------------------------------------------
    review_iterations: int = DEFAULT_REVIEW_ITERATIONS
    skip_tests: bool = False
    skip_push: bool = False
    skip_branch_management: bool = False
    adaptive_execution: bool = False
    implementation_only: bool = False
    understand_codebase: bool = False

    # -------------------------------------------------------------------------
    # Execution mode
    # -------------------------------------------------------------------------
    dry_run: bool = False
    interactive: bool = False

    # -------------------------------------------------------------------------
    # Agent process
    # -------------------------------------------------------------------------
    agent_path: str = "claude"
    agent_timeout_seconds: int = 3600
    dangerously_skip_permissions: bool = False
    allowed_tools: Optional[str] = None

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------
    log_file: Optional[str] = None
    verbose: bool = False
    update_check: bool = True

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("review_iterations")
    @classmethod
    def validate_review_iterations(cls, v: int) -> int:
        """Validate that the review iteration count is within bounds."""
        if not MIN_REVIEW_ITERATIONS <= v <= MAX_REVIEW_ITERATIONS:
            raise ValueError(
                f"review_iterations must be between {MIN_REVIEW_ITERATIONS} "
                f"and {MAX_REVIEW_ITERATIONS}, got {v}"
            )
        return v

    @field_validator("agent_timeout_seconds")
    @classmethod
    def validate_agent_timeout(cls, v: int) -> int:
        """Validate that the agent timeout is positive."""
        if v < 1:
            raise ValueError("agent_timeout_seconds must be at least 1")
        return v

    @field_validator("agent_path")
    @classmethod
    def validate_agent_path(cls, v: str) -> str:
        """Validate that the agent executable is named."""
        if not v or not v.strip():
            raise ValueError("agent_path cannot be empty")
        return v.strip()

    @field_validator("allowed_tools", "log_file")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank strings as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()


class RunConfiguration(BaseModel):
    """Immutable configuration for one pipeline run.

    Built once per invocation by build_run_config() and never mutated
    afterwards. Mode-implied overrides (implementation-only forcing
    skip_branch_management and skip_tests) are already applied.

    Attributes:
        requirement: The change the agent is asked to make.
        review_iterations: Configured review loop bound (1-3).
        dry_run: Log agent commands instead of spawning the agent.
        skip_tests: Skip the test stage.
        skip_push: Commit without pushing.
        skip_branch_management: Bypass the branch management stage.
        adaptive_execution: Let the step analyzer decide which stages to skip.
        skip_permissions: Pass the skip-all-permissions flag to the agent.
        implementation_only: Stop after implement/review/solid-check.
        understand_codebase: Run the read-only codebase mapping stage.
        interactive: Ask the operator to confirm between stages.
        allowed_tools: Optional tool allowlist passed to the agent.
        log_file: Optional path of the run transcript.
        agent_path: Executable name or path of the agent CLI.
        agent_timeout_seconds: Wall-clock limit of a single agent call.
        verbose: Mirror debug logging to the terminal.
        update_check: Check the package index for a newer release.
    """

    model_config = ConfigDict(frozen=True)

    requirement: str = Field(..., min_length=1)
    review_iterations: int = Field(
        default=DEFAULT_REVIEW_ITERATIONS,
        ge=MIN_REVIEW_ITERATIONS,
        le=MAX_REVIEW_ITERATIONS,
    )
    dry_run: bool = False
    skip_tests: bool = False
    skip_push: bool = False
    skip_branch_management: bool = False
    adaptive_execution: bool = False
    skip_permissions: bool = False
    implementation_only: bool = False
    understand_codebase: bool = False
    interactive: bool = False
    allowed_tools: Optional[str] = None
    log_file: Optional[str] = None
    agent_path: str = "claude"
    agent_timeout_seconds: int = Field(default=3600, ge=1)
    verbose: bool = False
    update_check: bool = True

    @field_validator("requirement")
    @classmethod
    def validate_requirement(cls, v: str) -> str:
        """Validate that the requirement is not blank."""
        if not v.strip():
            raise ValueError("requirement cannot be empty")
        return v.strip()


def get_settings(**overrides: Any) -> FactorySettings:
    """Create FactorySettings, layering explicit overrides over the environment.

    Overrides whose value is None are dropped so that an option the operator
    did not pass falls through to the environment and then to the default.

    Raises:
        pydantic.ValidationError: If a value is out of range.
    """
    explicit = {key: value for key, value in overrides.items() if value is not None}
    return FactorySettings(**explicit)


def build_run_config(requirement: str, **overrides: Any) -> RunConfiguration:
    """Build the frozen RunConfiguration for one invocation.

    Args:
        requirement: The change to implement.
        **overrides: Explicit values (usually from the CLI). None means unset.

    Returns:
        RunConfiguration with mode-implied overrides applied.

    Raises:
        pydantic.ValidationError: If the requirement is empty or a value is
            out of range.
    """
    settings = get_settings(**overrides)

    values = settings.model_dump()
    values["skip_permissions"] = values.pop("dangerously_skip_permissions")

    if settings.implementation_only:
        values["skip_branch_management"] = True
        values["skip_tests"] = True

    return RunConfiguration(requirement=requirement, **values)
