"""
Work item sources.

A source owns a set of work items and is the only thing that writes them.
The loop only needs four operations from it: list, fetch one, advance the
status, and say where the item lives so the agent can tick its checklist.

File-backed items are markdown with a YAML front-matter block:

    ---
    id: auth-flow
    title: Auth flow
    status: todo
    priority: high
    created: '2026-01-05T10:00:00.000Z'
    updated: '2026-01-05T10:00:00.000Z'
    ---

    - [ ] Design the token schema
    - [x] Write the login form
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import yaml

from sonata.lib import ranking
from sonata.lib.constants import MAX_SLUG_LEN
from sonata.lib.models import (
    ItemStatus,
    Priority,
    WorkItem,
    format_timestamp,
    parse_timestamp,
)
from sonata.lib.ranking import DEFAULT_POLICY, RiskPolicy
from sonata.lib.validate import ValidationError, validate

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r'\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)(.*)\Z', re.DOTALL)

# Header keys in the order they are written back
HEADER_KEYS = ("id", "title", "status", "priority", "created", "updated")


class MalformedWorkItemError(Exception):
    """A work item file could not be parsed into a WorkItem."""

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


def slugify(title: str, max_len: int = MAX_SLUG_LEN) -> str:
    """'Auth Flow (v2)' -> 'auth-flow-v2'."""
    slug = re.sub(r'[^a-z0-9]+', '-', title.lower()).strip('-')
    return slug[:max_len].rstrip('-')


def split_frontmatter(text: str) -> tuple[Optional[dict], str]:
    """Split a markdown document into (header, body).

    Returns (None, text) when there is no front-matter block.

    Raises:
        ValueError: if the block is present but is not a YAML mapping
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return None, text

    try:
        header = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise ValueError(f"invalid YAML front matter: {e}") from e
    if header is None:
        header = {}
    if not isinstance(header, dict):
        raise ValueError("front matter is not a mapping")
    return header, match.group(2)


def _normalize_value(value):
    # PyYAML turns unquoted timestamps into datetime objects
    if isinstance(value, (datetime, date)):
        return format_timestamp(parse_timestamp(value))
    if value is None:
        return None
    return str(value)


def normalize_header(raw: dict) -> dict:
    """Stringify known header fields and drop empty ones."""
    header = {}
    for key in HEADER_KEYS:
        value = _normalize_value(raw.get(key))
        if value is not None and value != "":
            header[key] = value
    return header


def render_document(header: dict, body: str) -> str:
    ordered = {k: header[k] for k in HEADER_KEYS if header.get(k) is not None}
    block = yaml.safe_dump(ordered, sort_keys=False, default_flow_style=False, allow_unicode=True)
    return f"---\n{block}---\n\n{body.strip()}\n"


def item_from_header(header: dict, body: str, path: Path) -> WorkItem:
    """Validate a normalized header and build the WorkItem.

    Raises:
        MalformedWorkItemError: if the header fails the work_item schema
    """
    try:
        validate(header, "work_item")
        created = parse_timestamp(header["created"])
        updated = parse_timestamp(header["updated"])
    except ValidationError as e:
        raise MalformedWorkItemError(path, e.message) from e
    except ValueError as e:
        raise MalformedWorkItemError(path, str(e)) from e

    priority = header.get("priority")
    return WorkItem(
        id=header["id"],
        title=header["title"],
        status=ItemStatus(header["status"]),
        priority=Priority(priority) if priority else None,
        created_at=created,
        updated_at=updated,
        content=body.strip(),
        source_ref=str(path),
    )


def header_for(item: WorkItem) -> dict:
    header = {
        "id": item.id,
        "title": item.title,
        "status": item.status.value,
        "created": format_timestamp(item.created_at),
        "updated": format_timestamp(item.updated_at),
    }
    if item.priority:
        header["priority"] = item.priority.value
    return header


class WorkItemSource(ABC):
    """Where work items come from and where their status is written back."""

    kind: str = ""

    @property
    @abstractmethod
    def label(self) -> str:
        """Short human description, e.g. 'specs/'."""

    @abstractmethod
    def list_items(self) -> list[WorkItem]:
        """All well-formed items. Malformed ones are skipped with a warning."""

    @abstractmethod
    def _parse(self, path: Path) -> WorkItem:
        """Parse one item file. Raises MalformedWorkItemError."""

    @abstractmethod
    def _write_status(self, item: WorkItem, status: ItemStatus) -> WorkItem:
        """Persist a new status for item and return the updated item."""

    def get_item(self, item_id: str) -> Optional[WorkItem]:
        for item in self.list_items():
            if item.id == item_id:
                return item
        return None

    def check_ref(self, source_ref: str) -> None:
        """Raise MalformedWorkItemError if the file at source_ref exists but no longer parses.

        A missing file, or one that parses, passes silently.
        """
        if source_ref and Path(source_ref).is_file():
            self._parse(Path(source_ref))

    def rank(self, policy: RiskPolicy = DEFAULT_POLICY) -> list[WorkItem]:
        return ranking.rank(self.list_items(), policy)

    def select_next(self, policy: RiskPolicy = DEFAULT_POLICY) -> Optional[WorkItem]:
        return ranking.select_next(self.list_items(), policy)

    def update_status(self, item_id: str, status: ItemStatus) -> Optional[WorkItem]:
        """Advance an item's status. Never moves backwards.

        Returns the item as stored afterwards, or None if it does not exist.
        """
        item = self.get_item(item_id)
        if item is None:
            logger.warning(f"Cannot update status: work item {item_id} not found in {self.label}")
            return None
        if item.status is status:
            return item
        if not item.status.can_advance_to(status):
            logger.warning(
                f"Refusing to move {item_id} from {item.status.value} back to {status.value}"
            )
            return item

        updated = self._write_status(item, status)
        logger.info(f"Work item {item_id}: {item.status.value} -> {status.value}")
        return updated

    def update_instructions(self, item: WorkItem) -> str:
        """How the agent records a finished checklist line."""
        return (
            f"When you finish a task, change its line from `- [ ]` to `- [x]` "
            f"in {item.source_ref}. Do not edit the front matter block."
        )
