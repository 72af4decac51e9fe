"""
TASKS.md source: the whole file is a single work item.

Front matter is optional here. A bare checklist file works out of the
box; missing header fields get defaults and the first status change
writes a full header block back.
"""

import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from sonata.lib.models import ItemStatus, WorkItem, format_timestamp, utc_now
from sonata.sources.base import (
    MalformedWorkItemError,
    WorkItemSource,
    header_for,
    item_from_header,
    normalize_header,
    render_document,
    slugify,
    split_frontmatter,
)

logger = logging.getLogger(__name__)

HEADING_RE = re.compile(r'^#\s+(.+?)\s*#*\s*$', re.MULTILINE)


def parse_tasks_file(path: Path) -> WorkItem:
    """Parse TASKS.md, filling defaults for any missing header fields.

    Raises:
        MalformedWorkItemError: if the file can't be read or the header is invalid
    """
    try:
        text = path.read_text()
        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedWorkItemError(path, f"unreadable: {e}") from e

    try:
        raw, body = split_frontmatter(text)
    except ValueError as e:
        raise MalformedWorkItemError(path, str(e)) from e

    header = normalize_header(raw or {})
    heading = HEADING_RE.search(body)
    header.setdefault("id", slugify(path.stem) or "tasks")
    header.setdefault("title", heading.group(1) if heading else path.stem)
    header.setdefault("status", ItemStatus.TODO.value)
    header.setdefault("created", format_timestamp(mtime))
    header.setdefault("updated", header["created"])

    return item_from_header(header, body, path)


class TaskFileSource(WorkItemSource):
    kind = "tasks"

    def __init__(self, path: Path):
        self.path = path

    @property
    def label(self) -> str:
        return self.path.name

    def list_items(self) -> list[WorkItem]:
        if not self.path.is_file():
            return []
        try:
            return [self._parse(self.path)]
        except MalformedWorkItemError as e:
            logger.warning(f"Skipping malformed work item {e}")
            return []

    def _parse(self, path: Path) -> WorkItem:
        return parse_tasks_file(path)

    def _write_status(self, item: WorkItem, status: ItemStatus) -> WorkItem:
        current = self._parse(self.path)
        updated = replace(current, status=status, updated_at=utc_now())
        self.path.write_text(render_document(header_for(updated), updated.content))
        return updated
