"""
sonata plan - show the work queue, start a session, or scaffold a work item.
"""

import logging

from sonata.commands.common import Workspace
from sonata.git import GitVcs
from sonata.lib.config import MODE_TASKS
from sonata.lib.models import Priority
from sonata.lib.ranking import progress, risk_ratio
from sonata.runner.locking import LockTimeout, loop_lock
from sonata.runner.session import SessionStore
from sonata.sources import SpecsDirectorySource
from sonata.workflow.controller import LoopController

logger = logging.getLogger(__name__)

SCAFFOLD_BODY = """\
## Overview

Describe the outcome this work item delivers.

## Tasks

- [ ] First task
"""


def cmd_plan_new(args, ws: Workspace) -> int:
    """Scaffold specs/<slug>.md."""
    if ws.mode_flag == MODE_TASKS or (ws.mode_flag is None and ws.config.source.mode == MODE_TASKS):
        print(f"ERROR: --new creates files in {ws.config.source.specs_dir}/, "
              f"but this project uses {ws.config.source.tasks_file}")
        return 2

    source = SpecsDirectorySource(ws.work_dir / ws.config.source.specs_dir)
    priority = Priority(args.priority) if args.priority else None
    try:
        item = source.create_item(args.new, SCAFFOLD_BODY, priority=priority)
    except (ValueError, FileExistsError) as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Created {item.source_ref}")
    print("Edit the checklist, then run `sonata loop`.")
    return 0


def cmd_plan(args, ws: Workspace) -> int:
    if args.new:
        return cmd_plan_new(args, ws)

    source = ws.source()
    policy = ws.config.risk_policy
    ranked = source.rank(policy)
    session = SessionStore(ws.work_dir).load()

    if not ranked:
        print(f"No actionable work items in {source.label}")
        return 0

    print(f"Work queue ({source.label}):\n")
    print(f"  {'#':>2}  {'ID':<30} {'STATUS':<12} {'PRI':<7} {'DONE':>5} {'RISK':>5}  TITLE")
    for pos, item in enumerate(ranked, 1):
        marker = "*" if session and session.item_id == item.id else " "
        priority = item.priority.value if item.priority else "-"
        print(
            f"{marker} {pos:>2}  {item.id:<30} {item.status.value:<12} {priority:<7} "
            f"{progress(item):>4}% {round(risk_ratio(item, policy) * 100):>4}%  {item.title}"
        )
    if session:
        print(f"\n* active session ({session.iteration_count} iteration(s) so far)")

    if not (args.select or args.item):
        return 0

    if args.item:
        chosen = next((i for i in ranked if i.id == args.item), None)
        if chosen is None:
            print(f"\nERROR: No actionable work item with id '{args.item}'")
            return 1
    else:
        chosen = ranked[0]

    controller = LoopController(
        work_dir=ws.work_dir,
        config=ws.config,
        source=source,
        agent=None,
        vcs=GitVcs(ws.work_dir, ws.config.git),
    )
    try:
        with loop_lock(ws.work_dir, timeout=ws.lock_timeout):
            # Re-read under the lock: another process may have started one since
            active = controller.sessions.load()
            if active:
                print(f"\nERROR: A session for {active.item_id} is already active. "
                      "Run `sonata clean` to abandon it first.")
                return 1
            controller.start_session(chosen)
    except LockTimeout:
        print("ERROR: Could not acquire the loop lock (timeout)")
        print("Another sonata process may be running in this directory")
        return 3

    print("Run `sonata run` or `sonata loop` to start working on it.")
    return 0
