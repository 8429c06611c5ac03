"""Pipeline stages.

- BranchManagementStage: places the run on a suitable branch and, in
  adaptive mode, produces the step recommendation
- AgentStages: understand, implement, simplify, review, solid, test,
  commit and changelog, each delegated to the agent
"""

from src.factory.stages.branch import BranchManagementStage
from src.factory.stages.models import BranchResult, ReviewResult, StageResult
from src.factory.stages.review import detect_no_issues
from src.factory.stages.work import AgentStages

__all__ = [
    "AgentStages",
    "BranchManagementStage",
    "BranchResult",
    "ReviewResult",
    "StageResult",
    "detect_no_issues",
]
