"""
Single-writer lock for a working directory.

Only one loop may drive a directory at a time: the session file and the
work item files are read-modify-write. Uses flock on .sonata/loop.lock.
The lock file is never deleted; removing it would let two processes hold
"exclusive" locks on different inodes with the same path.
"""

import atexit
import fcntl
import os
import signal
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from sonata.lib.constants import LOCK_FILE, STATE_DIR


class LockTimeout(Exception):
    """Lock acquisition timed out."""
    pass


def lock_path(work_dir: Path) -> Path:
    return work_dir / STATE_DIR / LOCK_FILE


@contextmanager
def _acquire_lock(lock_file: Path, timeout: float, lock_name: str):
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    # "a" so a waiting process doesn't truncate the holder's pid
    fd = open(lock_file, "a+")
    start = time.time()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.time() - start >= timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s")
            time.sleep(1)

    def cleanup():
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
            fd.close()
        except (OSError, ValueError):
            pass

    atexit.register(cleanup)
    original_sigterm = signal.signal(signal.SIGTERM, lambda *_: sys.exit(1))

    try:
        fd.seek(0)
        fd.truncate()
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        atexit.unregister(cleanup)
        signal.signal(signal.SIGTERM, original_sigterm)
        cleanup()


@contextmanager
def loop_lock(work_dir: Path, timeout: float = 60):
    """Acquire the directory lock, yield, release on exit.

    Raises:
        LockTimeout: another process held the lock for longer than timeout
    """
    with _acquire_lock(lock_path(work_dir), timeout, f"loop lock for {work_dir}"):
        yield


def get_lock_holder(work_dir: Path) -> Optional[int]:
    """Return the pid holding the loop lock, or None if it is free."""
    path = lock_path(work_dir)
    if not path.exists():
        return None

    try:
        fd = open(path, "r")
    except OSError:
        return None
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            content = fd.read().strip()
            return int(content) if content.isdigit() else -1
        fcntl.flock(fd, fcntl.LOCK_UN)
        return None
    finally:
        fd.close()
