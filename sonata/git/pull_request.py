"""Pull requests via the GitHub CLI."""

import logging
import re
import subprocess
from pathlib import Path

from sonata.git.runner import CollaboratorOperationError, run_git

logger = logging.getLogger(__name__)

GH_TIMEOUT_SECONDS = 60

CONVENTIONAL_COMMIT_RE = re.compile(r'^(fix|feat|refactor|chore|docs|style|test|perf|ci|build)(\(.+\))?:')


def generate_pr_title(commits: list[str], fallback: str) -> str:
    """Prefer a conventional-commit subject, else the newest commit, else fallback."""
    if not commits:
        return fallback
    for subject in commits:
        if CONVENTIONAL_COMMIT_RE.match(subject):
            return subject
    return commits[0]


def generate_pr_body(item_title: str, iterations: int, commits: list[str]) -> str:
    lines = ["## Summary", "", f"**Work item:** {item_title}", ""]
    if commits:
        lines += ["## Changes", ""]
        lines += [f"- {subject}" for subject in commits]
        lines.append("")
    lines.append(f"Completed by sonata in {iterations} iteration{'' if iterations == 1 else 's'}.")
    return "\n".join(lines) + "\n"


def create_pull_request(repo: Path, branch: str, base_branch: str, title: str, body: str) -> str:
    """Push branch and open a PR against base. Returns the PR URL.

    Raises:
        CollaboratorOperationError: if the push or `gh pr create` fails
    """
    run_git(["push", "-u", "origin", branch], repo, timeout=GH_TIMEOUT_SECONDS).check(f"push {branch}")

    # Body on stdin avoids argument quoting issues with long markdown
    try:
        result = subprocess.run(
            ["gh", "pr", "create",
             "--base", base_branch,
             "--head", branch,
             "--title", title,
             "--body-file", "-"],
            input=body,
            capture_output=True,
            text=True,
            cwd=str(repo),
            timeout=GH_TIMEOUT_SECONDS,
        )
    except subprocess.TimeoutExpired as e:
        raise CollaboratorOperationError("GitHub operation timed out") from e
    except OSError as e:
        raise CollaboratorOperationError(f"GitHub CLI (gh) not available: {e}") from e

    if result.returncode != 0:
        raise CollaboratorOperationError(f"Failed to create PR: {result.stderr.strip()}")

    url = result.stdout.strip().splitlines()[-1] if result.stdout.strip() else ""
    logger.info(f"Created pull request {url}")
    return url
