"""Tests for desktop notifications."""

import subprocess
from unittest.mock import MagicMock, patch

from sonata.notifications import MAX_NOTIFICATION_LENGTH, notify, notify_checkpoint


@patch("sonata.notifications.shutil.which", return_value="/usr/bin/notify-send")
@patch("sonata.notifications.subprocess.run")
class TestNotify:
    def test_sends(self, mock_run, mock_which):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        notify("title", "body", "low")
        cmd = mock_run.call_args[0][0]
        assert cmd == ["notify-send", "--urgency", "low", "--app-name", "sonata", "title", "body"]

    def test_invalid_urgency_falls_back(self, mock_run, mock_which, caplog):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        notify("t", "b", "urgent")
        assert "--urgency" in mock_run.call_args[0][0]
        assert mock_run.call_args[0][0][2] == "normal"
        assert "Invalid urgency" in caplog.text

    def test_long_message_truncated(self, mock_run, mock_which):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        notify("t", "x" * 500)
        assert len(mock_run.call_args[0][0][-1]) == MAX_NOTIFICATION_LENGTH + 3

    def test_timeout_is_not_raised(self, mock_run, mock_which, caplog):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="notify-send", timeout=5)
        notify("t", "b")
        assert "timed out" in caplog.text

    def test_checkpoint_is_critical(self, mock_run, mock_which):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        notify_checkpoint("auth-flow", "Which database?")
        cmd = mock_run.call_args[0][0]
        assert cmd[2] == "critical"
        assert cmd[-1] == "Needs input: Which database?"


@patch("sonata.notifications.shutil.which", return_value=None)
@patch("sonata.notifications.subprocess.run")
def test_missing_notify_send_is_skipped(mock_run, mock_which):
    notify("t", "b")
    mock_run.assert_not_called()
