"""Git and GitHub operations for sonata.

Return type conventions:
- run_git() returns GitResult: caller checks .success, or calls
  .check(action) to turn a failure into CollaboratorOperationError.
- Query helpers (is_git_repo, get_current_branch, get_commits_since_base)
  return False/None/[] on failure.
- Mutating helpers (create_branch, create_pull_request) raise
  CollaboratorOperationError.
"""

from sonata.git.runner import CollaboratorOperationError, GitResult, run_git
from sonata.git.branch import (
    branch_exists,
    branch_name_for,
    create_branch,
    get_commits_since_base,
    get_current_branch,
    is_git_repo,
)
from sonata.git.pull_request import (
    create_pull_request,
    generate_pr_body,
    generate_pr_title,
)
from sonata.git.vcs import GitVcs

__all__ = [
    "CollaboratorOperationError",
    "GitResult",
    "run_git",
    # branch
    "branch_exists",
    "branch_name_for",
    "create_branch",
    "get_commits_since_base",
    "get_current_branch",
    "is_git_repo",
    # pull requests
    "create_pull_request",
    "generate_pr_body",
    "generate_pr_title",
    "GitVcs",
]
