"""
sonata run - one supervised iteration.

Shows which work item the agent is about to work on and asks before
invoking it (skip with --yes). Checkpoints are answered interactively.
"""

import logging

from sonata.commands.common import Workspace, ask_yes_no, build_controller, report_outcome
from sonata.runner.locking import LockTimeout, loop_lock
from sonata.runner.session import SessionStore

logger = logging.getLogger(__name__)


def cmd_run(args, ws: Workspace) -> int:
    source = ws.source()

    session = SessionStore(ws.work_dir).load()
    if session:
        print(f"Session: {session.item_title} ({session.item_id}), "
              f"{session.iteration_count} iteration(s) so far")
    else:
        upcoming = source.select_next(ws.config.risk_policy)
        if upcoming is None:
            print(f"No actionable work items in {source.label}")
            return 0
        print(f"Next work item: {upcoming.title} ({upcoming.id})")

    if not args.yes and not ask_yes_no("Run one iteration?"):
        print("Cancelled.")
        return 0

    controller = build_controller(ws, source, confirm_each=False, answer_checkpoints=True)
    if controller is None:
        return 2

    try:
        with loop_lock(ws.work_dir, timeout=ws.lock_timeout):
            outcome = controller.run(max_iterations=1)
    except LockTimeout:
        print("ERROR: Could not acquire the loop lock (timeout)")
        print("Another sonata process may be running in this directory")
        return 3

    return report_outcome(outcome)
