"""Git repository queries and branch creation.

Runs git as an async subprocess in the current working directory. Read-only
queries degrade to an empty answer when git fails (not a repository, git
missing), since branch placement is an optimization rather than a
correctness requirement. Branch creation validates the name against a
restrictive charset before git ever sees it.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional


logger = logging.getLogger(__name__)

PROTECTED_BRANCH_NAMES = frozenset({"main", "master", "develop", "dev"})
BRANCH_NAME_PATTERN = re.compile(r"^[A-Za-z0-9/_-]+$")
GIT_TIMEOUT_SECONDS = 30


class GitCommandError(Exception):
    """Raised when a git command exits non-zero or cannot be started."""

    def __init__(self, args: Iterable[str], message: str):
        self.command = ["git", *args]
        super().__init__(f"{' '.join(self.command)} failed: {message}")


class InvalidBranchNameError(ValueError):
    """Raised when a branch name contains characters outside the safe charset."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid branch name: {name!r}")


@dataclass
class BranchConflict:
    """An existing branch that looks like it covers the same change.

    Attributes:
        branch_name: The existing branch.
        similarity: Why it was flagged.
    """

    branch_name: str
    similarity: str = "keyword match"


@dataclass
class GitState:
    """Snapshot of the repository taken at branch-management time.

    Attributes:
        current_branch: Checked-out branch (or short commit when detached).
        is_protected: True when on main/master/develop/dev.
        has_uncommitted_changes: True when the working tree is dirty.
        remote_branches: Remote branch names without the remote prefix.
    """

    current_branch: str
    is_protected: bool = False
    has_uncommitted_changes: bool = False
    remote_branches: List[str] = field(default_factory=list)


def is_protected_branch(name: str) -> bool:
    return name.lower() in PROTECTED_BRANCH_NAMES


def is_valid_branch_name(name: str) -> bool:
    return bool(BRANCH_NAME_PATTERN.fullmatch(name))


def parse_remote_branches(output: str) -> List[str]:
    """Parse ``git branch -r`` output into names without the remote prefix.

    HEAD pointers (``origin/HEAD -> origin/main``) are dropped.
    """
    branches = []
    for raw in output.splitlines():
        entry = raw.strip()
        if not entry or "->" in entry:
            continue
        _, sep, name = entry.partition("/")
        if not sep or not name or name == "HEAD":
            continue
        branches.append(name)
    return branches


def parse_local_branches(output: str) -> List[str]:
    """Parse ``git branch --list`` output, dropping the current-branch marker."""
    branches = []
    for raw in output.splitlines():
        entry = raw.strip().lstrip("*+").strip()
        if entry and not entry.startswith("("):
            branches.append(entry)
    return branches


def find_similar_branches(keyword: str, candidates: Iterable[str]) -> List[BranchConflict]:
    """Find branches that may already cover the same change.

    A candidate is flagged when it contains the keyword, or when the
    keyword contains the candidate's last path segment
    (``feature/auth`` vs keyword ``add-auth``).
    """
    normalized = keyword.lower()
    if not normalized:
        return []

    conflicts = []
    for branch in candidates:
        lowered = branch.lower()
        suffix = lowered.rsplit("/", 1)[-1]
        if normalized in lowered or (suffix and suffix in normalized):
            conflicts.append(BranchConflict(branch_name=branch))
    return conflicts


class GitClient:
    """Async facade over the git CLI.

    Attributes:
        cwd: Repository directory; None means the process working directory.
    """

    def __init__(self, cwd: Optional[Path] = None):
        self.cwd = cwd

    async def _run(self, *args: str) -> str:
        """Run git and return its stripped stdout.

        Raises:
            GitCommandError: On non-zero exit, timeout, or missing git.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                *args,
                cwd=str(self.cwd) if self.cwd else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise GitCommandError(args, f"failed to execute git: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=GIT_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as exc:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            raise GitCommandError(args, f"timed out after {GIT_TIMEOUT_SECONDS}s") from exc

        if process.returncode != 0:
            raise GitCommandError(args, stderr.decode(errors="replace").strip())
        return stdout.decode(errors="replace").strip()

    async def _query(self, *args: str) -> str:
        """Run a read-only git query, returning "" on failure."""
        try:
            return await self._run(*args)
        except GitCommandError as exc:
            logger.debug("git query failed", extra={"error": str(exc)})
            return ""

    async def current_branch(self) -> str:
        return await self._query("symbolic-ref", "--short", "HEAD") or await self._query(
            "rev-parse", "--short", "HEAD"
        )

    def is_protected_branch(self, name: str) -> bool:
        return is_protected_branch(name)

    async def has_uncommitted_changes(self) -> bool:
        return bool(await self._query("status", "--porcelain"))

    async def remote_branches(self) -> List[str]:
        return parse_remote_branches(await self._query("branch", "-r"))

    async def local_branches(self) -> List[str]:
        return parse_local_branches(await self._query("branch", "--list"))

    async def list_branches(self) -> List[str]:
        """All local and remote branch names, deduplicated, in order."""
        names = await self.local_branches() + await self.remote_branches()
        return list(dict.fromkeys(names))

    async def branch_exists(self, name: str) -> bool:
        return name in await self.list_branches()

    async def create_branch(self, name: str) -> None:
        """Create and check out a new branch.

        Raises:
            InvalidBranchNameError: If the name fails the charset check.
            GitCommandError: If git refuses to create the branch.
        """
        if not is_valid_branch_name(name):
            raise InvalidBranchNameError(name)
        await self._run("checkout", "-b", name)
        logger.info("Created branch", extra={"branch": name})

    async def get_state(self) -> GitState:
        current = await self.current_branch()
        return GitState(
            current_branch=current,
            is_protected=is_protected_branch(current),
            has_uncommitted_changes=await self.has_uncommitted_changes(),
            remote_branches=await self.remote_branches(),
        )
