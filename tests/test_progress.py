"""Tests for sonata.runner.progress module."""

from datetime import datetime, timezone

from sonata.lib.constants import PROGRESS_COMPLETE_MARKER
from sonata.lib.models import ProgressEntry
from sonata.runner.progress import ProgressLog


class TestProgressLog:
    def test_init_writes_header(self, tmp_path):
        log = ProgressLog(tmp_path)
        assert not log.exists()

        log.init("Auth flow (auth-flow)")

        text = log.read()
        assert text.startswith("# Progress Log\n")
        assert "Started: " in text
        assert "Work item: Auth flow (auth-flow)" in text
        assert log.path == tmp_path / "progress.txt"

    def test_init_keeps_existing_log(self, tmp_path):
        log = ProgressLog(tmp_path)
        log.init("first")
        log.append(ProgressEntry(iteration=1, summary="did a thing"))

        log.init("second")

        text = log.read()
        assert "Work item: first" in text
        assert "did a thing" in text
        assert "second" not in text

    def test_append_entries_in_order(self, tmp_path):
        log = ProgressLog(tmp_path)
        log.init("item")
        ts = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        log.append(ProgressEntry(iteration=1, summary="Task: one", timestamp=ts))
        log.append(ProgressEntry(iteration=2, summary="Task: two", timestamp=ts))

        text = log.read()
        assert "## Iteration 1 - 2026-03-01T12:00:00.000Z\nTask: one\n" in text
        assert text.index("Iteration 1") < text.index("Iteration 2")

    def test_append_creates_file(self, tmp_path):
        log = ProgressLog(tmp_path)
        log.append(ProgressEntry(iteration=1, summary="x"))
        assert log.exists()

    def test_mark_complete(self, tmp_path):
        log = ProgressLog(tmp_path)
        log.init("item")
        log.mark_complete()
        assert log.read().rstrip().endswith(PROGRESS_COMPLETE_MARKER)

    def test_delete_is_idempotent(self, tmp_path):
        log = ProgressLog(tmp_path)
        log.init("item")
        log.delete()
        log.delete()
        assert not log.exists()
        assert log.read() is None
