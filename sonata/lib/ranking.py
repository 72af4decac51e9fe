"""
Work item ranking.

Pure functions that order work items for the loop. The ordering is
"fail fast": resume in-progress work first, then prefer items whose
remaining tasks are architecturally risky, then explicit priority, then
items that are nearly finished, then first-come-first-served.

Usage:
    from sonata.lib.ranking import select_next

    item = select_next(source.list_items())
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from sonata.lib.models import ItemStatus, Priority, WorkItem

HIGH_RISK_KEYWORDS = (
    "architecture", "schema", "design", "integration", "api", "contract",
    "spike", "unknown", "core", "abstraction", "foundation", "refactor",
)

LOW_RISK_KEYWORDS = (
    "polish", "fix", "cleanup", "style", "typo", "docs", "ui", "button", "tweak",
)

# Absent priority sorts after every explicit value
PRIORITY_ORDER = {
    Priority.HIGH: 0,
    Priority.MEDIUM: 1,
    Priority.LOW: 2,
}
NO_PRIORITY_RANK = len(PRIORITY_ORDER)


class TaskRisk(Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


@dataclass(frozen=True)
class RiskPolicy:
    """Keyword sets used to classify checklist lines.

    The lists are a heuristic. Projects can replace them through the
    ``ranking`` section of config.yaml.
    """
    high_risk: tuple[str, ...] = HIGH_RISK_KEYWORDS
    low_risk: tuple[str, ...] = LOW_RISK_KEYWORDS

    @classmethod
    def from_keywords(cls, high: Iterable[str] | None = None,
                      low: Iterable[str] | None = None) -> "RiskPolicy":
        return cls(
            high_risk=tuple(k.lower() for k in high) if high is not None else HIGH_RISK_KEYWORDS,
            low_risk=tuple(k.lower() for k in low) if low is not None else LOW_RISK_KEYWORDS,
        )


DEFAULT_POLICY = RiskPolicy()


def classify_task(text: str, policy: RiskPolicy = DEFAULT_POLICY) -> TaskRisk:
    """Classify a task line by case-insensitive keyword substring match.

    High-risk keywords win when a line matches both sets.
    """
    lowered = text.lower()
    if any(keyword in lowered for keyword in policy.high_risk):
        return TaskRisk.HIGH
    if any(keyword in lowered for keyword in policy.low_risk):
        return TaskRisk.LOW
    return TaskRisk.NORMAL


def risk_ratio(item: WorkItem, policy: RiskPolicy = DEFAULT_POLICY) -> float:
    """Fraction of the item's open tasks that are high risk (0 when none are open)."""
    open_tasks = item.open_tasks
    if not open_tasks:
        return 0.0
    high = sum(1 for t in open_tasks if classify_task(t.text, policy) is TaskRisk.HIGH)
    return high / len(open_tasks)


def progress(item: WorkItem) -> int:
    """Percentage of checklist lines checked. An item without a checklist is 100."""
    tasks = item.tasks
    if not tasks:
        return 100
    completed = sum(1 for t in tasks if t.done)
    return round(completed / len(tasks) * 100)


def _sort_key(item: WorkItem, policy: RiskPolicy) -> tuple:
    return (
        0 if item.status is ItemStatus.IN_PROGRESS else 1,
        -risk_ratio(item, policy),
        PRIORITY_ORDER.get(item.priority, NO_PRIORITY_RANK),
        -progress(item),
        item.created_at,
        item.id,
    )


def rank(items: Iterable[WorkItem], policy: RiskPolicy = DEFAULT_POLICY) -> list[WorkItem]:
    """Return actionable items (todo / in-progress) in selection order."""
    candidates = [i for i in items if i.is_actionable]
    return sorted(candidates, key=lambda i: _sort_key(i, policy))


def select_next(items: Iterable[WorkItem], policy: RiskPolicy = DEFAULT_POLICY) -> Optional[WorkItem]:
    """Pick the next work item, or None when nothing is actionable."""
    ranked = rank(items, policy)
    return ranked[0] if ranked else None
