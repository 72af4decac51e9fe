"""
sonata clean - abandon the current session.

Deletes the session file and progress.txt. Work item files are not
touched: an in-progress item stays in progress and is picked first next
time.
"""

import logging
import shutil

from sonata.commands.common import Workspace, ask_yes_no
from sonata.lib.constants import LOGS_DIR, STATE_DIR
from sonata.runner.locking import LockTimeout, loop_lock
from sonata.runner.progress import ProgressLog
from sonata.runner.session import SessionStore

logger = logging.getLogger(__name__)


def cmd_clean(args, ws: Workspace) -> int:
    store = SessionStore(ws.work_dir)
    progress_log = ProgressLog(ws.work_dir)
    logs_dir = ws.work_dir / STATE_DIR / LOGS_DIR

    session = store.load()
    has_logs = args.logs and logs_dir.exists()
    if session is None and not store.path.exists() and not progress_log.exists() and not has_logs:
        print("Nothing to clean.")
        return 0

    if session:
        print(f"Session: {session.item_title} ({session.item_id}), {session.iteration_count} iteration(s)")
    if progress_log.exists():
        print(f"Progress log: {progress_log.path}")

    if not args.yes and not ask_yes_no("Delete session state? This cannot be undone.", default=False):
        print("Cancelled.")
        return 0

    try:
        with loop_lock(ws.work_dir, timeout=ws.lock_timeout):
            store.clear()
            progress_log.delete()
            if has_logs:
                shutil.rmtree(logs_dir)
    except LockTimeout:
        print("ERROR: Could not acquire the loop lock (timeout)")
        print("A loop may be running in this directory; stop it first")
        return 3

    print("Clean complete. Ready for a fresh start.")
    return 0
