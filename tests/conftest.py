"""Shared fixtures: work item files on disk."""

from datetime import datetime, timezone

import pytest

from sonata.lib.models import ItemStatus, Priority, WorkItem


def make_item(item_id="item", title=None, status="todo", content="", priority=None,
              created="2026-01-01T00:00:00Z"):
    """Build a WorkItem in memory."""
    created_at = datetime.fromisoformat(created.replace("Z", "+00:00")).astimezone(timezone.utc)
    return WorkItem(
        id=item_id,
        title=title or item_id.replace("-", " ").title(),
        status=ItemStatus(status),
        priority=Priority(priority) if priority else None,
        created_at=created_at,
        updated_at=created_at,
        content=content,
        source_ref=f"specs/{item_id}.md",
    )


def checklist(*lines, done=()):
    """'- [ ] a\\n- [x] b' from open lines and checked lines."""
    rows = [f"- [ ] {line}" for line in lines] + [f"- [x] {line}" for line in done]
    return "\n".join(rows)


@pytest.fixture
def specs_dir(tmp_path):
    path = tmp_path / "specs"
    path.mkdir()
    return path


@pytest.fixture
def write_spec(specs_dir):
    """Write specs/<id>.md with a front-matter block and return its path."""

    def _write(item_id, body="", title=None, status="todo", priority=None,
               created="2026-01-01T00:00:00.000Z"):
        lines = [
            "---",
            f"id: {item_id}",
            f"title: {title or item_id.replace('-', ' ').title()}",
            f"status: {status}",
        ]
        if priority:
            lines.append(f"priority: {priority}")
        lines += [f"created: '{created}'", f"updated: '{created}'", "---", "", body, ""]
        path = specs_dir / f"{item_id}.md"
        path.write_text("\n".join(lines))
        return path

    return _write
