"""Git branch operations."""

import logging
from pathlib import Path

from sonata.git.runner import run_git
from sonata.sources.base import slugify

logger = logging.getLogger(__name__)

BRANCH_SLUG_LEN = 50


def is_git_repo(path: Path) -> bool:
    return run_git(["rev-parse", "--git-dir"], path).success


def get_current_branch(worktree: Path) -> str | None:
    """Get the current branch name, or None if detached HEAD."""
    result = run_git(["branch", "--show-current"], worktree)
    if result.success:
        return result.stdout.strip() or None
    return None


def branch_exists(repo: Path, branch: str) -> bool:
    result = run_git(["show-ref", "--verify", f"refs/heads/{branch}"], repo)
    return result.success


def branch_name_for(title: str, prefix: str = "task/") -> str:
    """'Auth Flow' -> 'task/auth-flow'."""
    return f"{prefix}{slugify(title, BRANCH_SLUG_LEN) or 'work'}"


def create_branch(repo: Path, branch: str, base_branch: str) -> None:
    """Create and check out branch from base, or check it out if it already exists.

    Raises:
        CollaboratorOperationError: if the checkout fails
    """
    if branch_exists(repo, branch):
        run_git(["checkout", branch], repo).check(f"check out {branch}")
        return

    # No remote is fine; branch from the local base
    fetch = run_git(["fetch", "origin", base_branch], repo, timeout=60)
    if not fetch.success:
        logger.debug(f"fetch origin {base_branch} failed: {fetch.stderr.strip()}")

    run_git(["checkout", "-b", branch], repo).check(f"create branch {branch}")


def get_commits_since_base(repo: Path, base_branch: str) -> list[str]:
    """Commit subjects on HEAD that aren't on base, newest first. [] on error."""
    result = run_git(["log", f"{base_branch}..HEAD", "--pretty=format:%s"], repo)
    if not result.success:
        return []
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]
