"""
The VCS collaborator used by the loop controller.

Everything here is best effort: outside a git repository, or with
branching/PRs switched off in config, the methods quietly do nothing.
Failures raise CollaboratorOperationError and the controller downgrades
them to warnings.
"""

import logging
from pathlib import Path
from typing import Optional

from sonata.git.branch import (
    branch_name_for,
    create_branch,
    get_commits_since_base,
    get_current_branch,
    is_git_repo,
)
from sonata.git.pull_request import create_pull_request, generate_pr_body, generate_pr_title
from sonata.lib.config import GitConfig
from sonata.lib.models import WorkItem

logger = logging.getLogger(__name__)


class GitVcs:
    def __init__(self, work_dir: Path, config: GitConfig):
        self.work_dir = work_dir
        self.config = config
        self._is_repo: Optional[bool] = None

    @property
    def is_repo(self) -> bool:
        if self._is_repo is None:
            self._is_repo = is_git_repo(self.work_dir)
        return self._is_repo

    def prepare_branch(self, item: WorkItem) -> str:
        """Make sure work happens off the base branch. Returns the branch in use.

        A task branch is only created when HEAD is on the base branch;
        an existing feature branch is kept as is.
        """
        if not self.is_repo:
            return ""

        current = get_current_branch(self.work_dir) or ""
        if not self.config.create_branch or current != self.config.base_branch:
            return current

        branch = branch_name_for(item.title, self.config.branch_prefix)
        create_branch(self.work_dir, branch, self.config.base_branch)
        logger.info(f"Switched to branch {branch}")
        return branch

    def open_pull_request(self, branch_ref: str, item_title: str, iterations: int) -> Optional[str]:
        """Open a PR for a finished item. Returns the URL, or None when skipped."""
        if not (self.config.create_pr and self.is_repo):
            return None
        if not branch_ref or branch_ref == self.config.base_branch:
            logger.info("Not on a task branch, skipping pull request")
            return None

        commits = get_commits_since_base(self.work_dir, self.config.base_branch)
        title = generate_pr_title(commits, fallback=item_title)
        body = generate_pr_body(item_title, iterations, commits)
        return create_pull_request(self.work_dir, branch_ref, self.config.base_branch, title, body)
