"""Stage result records.

Every stage returns a StageResult. The orchestrator treats success=False
as fatal for the whole run; the other fields carry stage-specific data.
"""

from dataclasses import dataclass
from typing import Optional

from src.factory.analysis.models import AdaptiveAnalysis, BranchAnalysis


@dataclass
class StageResult:
    """Result of one agent-driven stage.

    Attributes:
        success: False aborts the run.
        output: The agent's reply text for this stage.
        exit_code: Agent exit code (0 for dry runs).
    """

    success: bool
    output: str = ""
    exit_code: int = 0


@dataclass
class ReviewResult(StageResult):
    """Result of one review iteration.

    Attributes:
        no_issues_found: The agent reported a clean state; later
            iterations are unnecessary.
    """

    no_issues_found: bool = False


@dataclass
class BranchResult(StageResult):
    """Result of the branch management stage.

    Attributes:
        branch_name: Branch the run continues on.
        branch_created: True when a new branch was checked out.
        analysis: Branch naming decision, None when none was made.
        adaptive: Adaptive analysis, present only in adaptive mode.
    """

    branch_name: str = ""
    branch_created: bool = False
    analysis: Optional[BranchAnalysis] = None
    adaptive: Optional[AdaptiveAnalysis] = None
