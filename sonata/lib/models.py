"""
Core data types for sonata.

Work items, the persisted session record and progress log entries. The
checklist parser lives here too because task counts are derived from a
work item's content and nothing else.
"""

import re
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

# Checklist lines: "- [ ] open" and "- [x] checked" (x in either case)
OPEN_TASK_RE = re.compile(r'^\s*- \[ \] (.*)$')
CHECKED_TASK_RE = re.compile(r'^\s*- \[[xX]\] (.*)$')


class ItemStatus(Enum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @property
    def rank(self) -> int:
        """Position in the forward-only lifecycle."""
        return _STATUS_ORDER.index(self)

    def can_advance_to(self, other: "ItemStatus") -> bool:
        """Statuses only move forward (todo -> in-progress -> done)."""
        return other.rank >= self.rank


_STATUS_ORDER = [ItemStatus.TODO, ItemStatus.IN_PROGRESS, ItemStatus.DONE]

ACTIONABLE_STATUSES = (ItemStatus.TODO, ItemStatus.IN_PROGRESS)


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class Task:
    """A single checklist line."""
    text: str
    done: bool
    line_number: int


@dataclass
class WorkItem:
    """A unit of declared, checklist-bearing work."""
    id: str
    title: str
    status: ItemStatus
    created_at: datetime
    updated_at: datetime
    content: str = ""
    priority: Optional[Priority] = None
    source_ref: str = ""  # Opaque locator back to the source (file path)

    @property
    def tasks(self) -> list[Task]:
        return parse_tasks(self.content)

    @property
    def open_tasks(self) -> list[Task]:
        return [t for t in self.tasks if not t.done]

    @property
    def is_actionable(self) -> bool:
        return self.status in ACTIONABLE_STATUSES


def parse_tasks(content: str) -> list[Task]:
    """Extract checklist lines from a work item body."""
    tasks = []
    for lineno, line in enumerate(content.splitlines(), 1):
        match = CHECKED_TASK_RE.match(line)
        if match:
            tasks.append(Task(text=match.group(1).strip(), done=True, line_number=lineno))
            continue
        match = OPEN_TASK_RE.match(line)
        if match:
            tasks.append(Task(text=match.group(1).strip(), done=False, line_number=lineno))
    return tasks


def count_tasks(content: str) -> tuple[int, int]:
    """Return (total, completed) checklist counts for a body."""
    tasks = parse_tasks(content)
    return len(tasks), sum(1 for t in tasks if t.done)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime:
    """Normalise a header timestamp to an aware UTC datetime.

    Accepts datetime/date objects (PyYAML produces these for unquoted
    timestamps) and ISO-8601 strings, including a trailing 'Z'.

    Raises:
        ValueError: if the value is not a recognisable timestamp
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Not a timestamp: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a 'Z' suffix."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Session:
    """The persisted record of the work item currently being executed."""
    item_id: str
    item_title: str
    started_at: str
    branch_ref: str = ""
    iteration_count: int = 0
    source: str = ""
    source_ref: str = ""
    cached_content: Optional[str] = None
    cached_content_fetched_at: Optional[str] = None
    total_tasks: Optional[int] = None
    completed_tasks: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class ProgressEntry:
    """One iteration's record in the progress log."""
    iteration: int
    summary: str
    timestamp: datetime = field(default_factory=utc_now)
