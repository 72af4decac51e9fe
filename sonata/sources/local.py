"""
specs/ directory source: one markdown file per work item.

Files are named after the title slug (specs/auth-flow.md) and must carry
a complete front-matter block. Anything else in the directory that ends
in .md but doesn't parse is skipped with a warning so one bad file never
blocks the queue.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

from sonata.lib.models import ItemStatus, Priority, WorkItem, format_timestamp, utc_now
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


def parse_spec_file(path: Path) -> WorkItem:
    """Parse one spec file.

    Raises:
        MalformedWorkItemError: if the file can't be read or its header is invalid
    """
    try:
        text = path.read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedWorkItemError(path, f"unreadable: {e}") from e

    try:
        raw, body = split_frontmatter(text)
    except ValueError as e:
        raise MalformedWorkItemError(path, str(e)) from e
    if raw is None:
        raise MalformedWorkItemError(path, "missing front matter block")

    return item_from_header(normalize_header(raw), body, path)


class SpecsDirectorySource(WorkItemSource):
    kind = "local"

    def __init__(self, directory: Path):
        self.directory = directory

    @property
    def label(self) -> str:
        return f"{self.directory.name}/"

    def list_items(self) -> list[WorkItem]:
        if not self.directory.is_dir():
            return []

        items = []
        seen = set()
        for path in sorted(self.directory.glob("*.md")):
            try:
                item = self._parse(path)
            except MalformedWorkItemError as e:
                logger.warning(f"Skipping malformed work item {e}")
                continue
            if item.id in seen:
                logger.warning(f"Skipping {path}: duplicate work item id '{item.id}'")
                continue
            seen.add(item.id)
            items.append(item)
        return items

    def _parse(self, path: Path) -> WorkItem:
        return parse_spec_file(path)

    def create_item(
        self,
        title: str,
        content: str = "",
        priority: Optional[Priority] = None,
    ) -> WorkItem:
        """Scaffold a new todo item as specs/<slug>.md.

        Raises:
            ValueError: if the title has no usable characters
            FileExistsError: if an item with the same slug already exists
        """
        item_id = slugify(title)
        if not item_id:
            raise ValueError(f"Cannot derive an id from title {title!r}")

        path = self.directory / f"{item_id}.md"
        if path.exists():
            raise FileExistsError(f"Work item file already exists: {path}")

        now = utc_now()
        item = WorkItem(
            id=item_id,
            title=title.strip(),
            status=ItemStatus.TODO,
            priority=priority,
            created_at=now,
            updated_at=now,
            content=content.strip(),
            source_ref=str(path),
        )
        self.directory.mkdir(parents=True, exist_ok=True)
        path.write_text(render_document(header_for(item), item.content))
        logger.info(f"Created work item {item_id} at {path}")
        return item

    def _write_status(self, item: WorkItem, status: ItemStatus) -> WorkItem:
        path = Path(item.source_ref)
        # Re-read so checklist edits the agent made since listing are kept
        current = self._parse(path)
        updated = replace(current, status=status, updated_at=utc_now())
        path.write_text(render_document(header_for(updated), updated.content))
        logger.debug(f"Wrote status {status.value} to {path} at {format_timestamp(updated.updated_at)}")
        return updated
