"""Requirement classification.

This module turns a requirement into:
- A stage recommendation for adaptive execution (which stages to skip,
  how deep to review)
- A branch naming decision (change type, triviality, short description)

Both are decoded from free-text agent replies with per-field defaults, so
classification problems never abort a run.
"""

from src.factory.analysis.branch import (
    BranchClassifier,
    branch_matches,
    parse_branch_response,
    unique_branch_name,
)
from src.factory.analysis.models import (
    AdaptiveAnalysis,
    BranchAnalysis,
    ChangeType,
    Complexity,
    ReviewDepth,
    RiskLevel,
    StepRecommendation,
    sanitize_description,
)
from src.factory.analysis.steps import StepAnalyzer, parse_adaptive_response

__all__ = [
    "AdaptiveAnalysis",
    "BranchAnalysis",
    "BranchClassifier",
    "ChangeType",
    "Complexity",
    "ReviewDepth",
    "RiskLevel",
    "StepAnalyzer",
    "StepRecommendation",
    "branch_matches",
    "parse_adaptive_response",
    "parse_branch_response",
    "sanitize_description",
    "unique_branch_name",
]
