"""
Human-readable progress log (progress.txt in the working directory).

The agent reads this file at the start of every iteration to see what
earlier iterations did, so it lives next to the code rather than under
.sonata/. It is append-only while a work item is running and deleted
once the item completes.
"""

import logging
from pathlib import Path
from typing import Optional

from sonata.lib.constants import PROGRESS_COMPLETE_MARKER, PROGRESS_FILE
from sonata.lib.models import ProgressEntry, format_timestamp, utc_now

logger = logging.getLogger(__name__)


class ProgressLog:
    def __init__(self, work_dir: Path):
        self.work_dir = work_dir
        self.path = work_dir / PROGRESS_FILE

    def exists(self) -> bool:
        return self.path.exists()

    def init(self, label: str) -> None:
        """Write the header for a work item. Leaves an existing log alone."""
        if self.path.exists():
            return
        header = (
            "# Progress Log\n"
            f"Started: {format_timestamp(utc_now())}\n"
            f"Work item: {label}\n"
            "\n"
        )
        self.path.write_text(header)
        logger.debug(f"Initialized progress log for {label}")

    def append(self, entry: ProgressEntry) -> None:
        """Append one iteration's entry, creating the file if needed."""
        block = (
            f"## Iteration {entry.iteration} - {format_timestamp(entry.timestamp)}\n"
            f"{entry.summary.rstrip()}\n"
            "\n"
        )
        with open(self.path, "a") as f:
            f.write(block)

    def mark_complete(self) -> None:
        with open(self.path, "a") as f:
            f.write(f"{PROGRESS_COMPLETE_MARKER}\n")

    def read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text()

    def delete(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug("Deleted progress log")
