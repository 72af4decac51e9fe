"""
sonata loop - run iterations until the item is done or the budget is spent.

AFK by default: no questions between iterations, and a checkpoint stops
the loop. --hitl asks before each further iteration and answers
checkpoints interactively. --chain moves on to the next work item after
a completion while budget remains.
"""

import logging

from sonata.commands.common import Workspace, build_controller, report_outcome
from sonata.runner.locking import LockTimeout, loop_lock

logger = logging.getLogger(__name__)


def cmd_loop(args, ws: Workspace) -> int:
    max_iterations = args.iterations if args.iterations is not None else ws.config.loop.max_iterations
    if max_iterations < 1:
        print("ERROR: iterations must be at least 1")
        return 2
    chain = args.chain or ws.config.loop.chain

    source = ws.source()
    controller = build_controller(ws, source, confirm_each=args.hitl, answer_checkpoints=args.hitl)
    if controller is None:
        return 2

    mode = "HITL" if args.hitl else "AFK"
    print(f"Starting {mode} loop: up to {max_iterations} iteration(s){', chained' if chain else ''}")

    try:
        with loop_lock(ws.work_dir, timeout=ws.lock_timeout):
            outcome = controller.run(max_iterations=max_iterations, chain=chain)
    except LockTimeout:
        print("ERROR: Could not acquire the loop lock (timeout)")
        print("Another sonata process may be running in this directory")
        return 3

    return report_outcome(outcome)
