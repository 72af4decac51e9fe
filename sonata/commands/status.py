"""
sonata status - session, progress log, lock and queue at a glance.
"""

import logging

from sonata.commands.common import Workspace
from sonata.git import get_current_branch, is_git_repo
from sonata.lib.config import ConfigurationError
from sonata.runner.locking import get_lock_holder
from sonata.runner.progress import ProgressLog
from sonata.runner.session import SessionStore

logger = logging.getLogger(__name__)

RECENT_LINES = 5


def cmd_status(args, ws: Workspace) -> int:
    session = SessionStore(ws.work_dir).load()
    progress_log = ProgressLog(ws.work_dir)

    print("Session:")
    if session:
        print(f"  Work item:  {session.item_title} ({session.item_id})")
        print(f"  Source:     {session.source or '-'} {session.source_ref}")
        print(f"  Branch:     {session.branch_ref or '-'}")
        print(f"  Started:    {session.started_at}")
        print(f"  Iterations: {session.iteration_count}")
        if session.total_tasks is not None:
            print(f"  Tasks:      {session.completed_tasks}/{session.total_tasks} checked")
    else:
        print("  No active session")

    print("\nProgress log:")
    text = progress_log.read()
    if text is None:
        print(f"  No {progress_log.path.name} yet")
    else:
        entries = text.count("\n## Iteration ")
        print(f"  {progress_log.path} ({entries} entr{'y' if entries == 1 else 'ies'})")
        recent = [line for line in text.splitlines() if line.strip()][-RECENT_LINES:]
        for line in recent:
            print(f"    {line[:80]}")

    print("\nLock:")
    holder = get_lock_holder(ws.work_dir)
    if holder is None:
        print("  Free")
    else:
        print(f"  Held by pid {holder if holder > 0 else 'unknown'}")

    print("\nGit:")
    if is_git_repo(ws.work_dir):
        print(f"  Branch: {get_current_branch(ws.work_dir) or '(detached)'}")
    else:
        print("  Not a git repository")

    print("\nQueue:")
    try:
        source = ws.source()
    except ConfigurationError as e:
        print(f"  {e}")
        return 0
    ranked = source.rank(ws.config.risk_policy)
    if not ranked:
        print(f"  Nothing actionable in {source.label}")
    for item in ranked[:RECENT_LINES]:
        print(f"  {item.id:<30} {item.status.value:<12} {item.title}")
    if len(ranked) > RECENT_LINES:
        print(f"  ... and {len(ranked) - RECENT_LINES} more (see `sonata plan`)")
    return 0
