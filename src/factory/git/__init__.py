"""Git repository facade.

This module provides the git operations the branch management stage needs:
- Current branch, protected-branch check and dirty-tree check
- Local and remote branch listing
- Validated branch creation
- Similar-branch detection for conflict warnings
"""

from src.factory.git.client import (
    BranchConflict,
    GitClient,
    GitCommandError,
    GitState,
    InvalidBranchNameError,
    find_similar_branches,
    is_protected_branch,
)

__all__ = [
    "BranchConflict",
    "GitClient",
    "GitCommandError",
    "GitState",
    "InvalidBranchNameError",
    "find_similar_branches",
    "is_protected_branch",
]
