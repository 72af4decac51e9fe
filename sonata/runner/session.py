"""
Session persistence.

One session per working directory, stored as JSON in .sonata/session.json.
The session records which work item the loop is executing and how many
iterations have run. A missing, unreadable or schema-invalid file all mean
"no session": load() never raises, so bad state on disk can only ever send
the loop back to item selection.

Writes go through a temp file and os.replace(), so a crash mid-write leaves
the previous record in place.
"""

import json
import logging
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Optional

from sonata.lib.constants import SESSION_FILE, STATE_DIR
from sonata.lib.models import Session, count_tasks, format_timestamp, utc_now
from sonata.lib.validate import ValidationError, validate, validate_before_write

logger = logging.getLogger(__name__)


class SessionCorruptionError(Exception):
    """The session file exists but cannot be used."""
    pass


class SessionStore:
    """Read/modify/write access to the session file of one directory."""

    def __init__(self, work_dir: Path):
        self.work_dir = work_dir
        self.path = work_dir / STATE_DIR / SESSION_FILE

    def _read(self) -> Optional[Session]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            raise SessionCorruptionError(f"Unreadable session file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise SessionCorruptionError(f"Session file {self.path} is not a JSON object")
        try:
            validate(data, "session")
        except ValidationError as e:
            raise SessionCorruptionError(str(e)) from e
        return Session.from_dict(data)

    def _write(self, session: Session) -> None:
        data = session.to_dict()
        validate_before_write(data, "session", self.path)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load(self) -> Optional[Session]:
        """Return the current session, or None if absent or corrupt."""
        try:
            return self._read()
        except SessionCorruptionError as e:
            logger.warning(f"[SESSION] Ignoring corrupt session, starting fresh: {e}")
            return None

    def exists(self) -> bool:
        return self.load() is not None

    def init(self, data: dict) -> Session:
        """Create a session, overwriting any existing one.

        ``data`` needs at least item_id and item_title. started_at and
        iteration_count are filled in when not given.
        """
        record = {
            "started_at": format_timestamp(utc_now()),
            "iteration_count": 0,
            **data,
        }
        session = Session.from_dict(record)
        self._write(session)
        logger.info(f"[SESSION] Started session for {session.item_id}")
        return session

    def update(self, **changes) -> Optional[Session]:
        """Apply changes to the stored session. No-op returning None if absent."""
        session = self.load()
        if session is None:
            return None
        updated = replace(session, **changes)
        self._write(updated)
        return updated

    def increment_iteration(self) -> int:
        """Bump the iteration counter by one and return the new value (0 if no session)."""
        session = self.load()
        if session is None:
            return 0
        count = session.iteration_count + 1
        self._write(replace(session, iteration_count=count))
        return count

    def cache_content(self, content: str) -> Optional[Session]:
        """Store freshly fetched item content and the task counts derived from it."""
        total, completed = count_tasks(content)
        return self.update(
            cached_content=content,
            cached_content_fetched_at=format_timestamp(utc_now()),
            total_tasks=total,
            completed_tasks=completed,
        )

    def clear(self) -> None:
        """Delete the session. Safe to call when there is none."""
        if self.path.exists():
            self.path.unlink()
            logger.info("[SESSION] Cleared session")
