"""End-to-end tests for the sonata command line."""

from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import pytest

from conftest import checklist
from sonata.cli import build_parser, main
from sonata.lib.agents_config import BinaryCheckResult
from sonata.lib.constants import COMPLETE_SIGNAL, PROGRESS_FILE
from sonata.runner.session import SessionStore


@pytest.fixture
def project(tmp_path, monkeypatch):
    """A directory outside git with notifications switched off."""
    config = tmp_path / ".sonata" / "config.yaml"
    config.parent.mkdir()
    config.write_text("loop:\n  notify: false\n")
    monkeypatch.setattr("sonata.git.vcs.is_git_repo", lambda path: False)
    monkeypatch.setattr("sonata.commands.status.is_git_repo", lambda path: False)
    return tmp_path


def sonata(project, *argv):
    return main(["-C", str(project), *argv])


class TestParser:
    def test_loop_arguments(self):
        args = build_parser().parse_args(["loop", "3", "--hitl", "--chain"])
        assert args.iterations == 3
        assert args.hitl and args.chain

    def test_loop_budget_optional(self):
        assert build_parser().parse_args(["loop"]).iterations is None

    def test_source_flags_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--local", "--tasks", "plan"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestConfigurationErrors:
    def test_no_source_is_exit_2(self, project, capsys):
        assert sonata(project, "plan") == 2
        assert "No work item source" in capsys.readouterr().out

    def test_ambiguous_source_is_exit_2(self, project, capsys):
        (project / "specs").mkdir()
        (project / "TASKS.md").write_text("- [ ] a\n")
        assert sonata(project, "plan") == 2
        assert "--local or --tasks" in capsys.readouterr().out

    def test_flag_resolves_ambiguity(self, project, capsys):
        (project / "specs").mkdir()
        (project / "TASKS.md").write_text("# Chores\n\n- [ ] sweep\n")
        assert sonata(project, "--tasks", "plan") == 0
        assert "Chores" in capsys.readouterr().out

    def test_missing_directory(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["-C", str(tmp_path / "nope"), "status"])
        assert exc_info.value.code == 2


class TestPlan:
    def test_new_scaffolds_spec(self, project, capsys):
        (project / "specs").mkdir()
        assert sonata(project, "plan", "--new", "Auth Flow", "--priority", "high") == 0
        text = (project / "specs" / "auth-flow.md").read_text()
        assert "title: Auth Flow" in text
        assert "priority: high" in text
        assert "- [ ] First task" in text

    def test_new_refuses_duplicate(self, project):
        (project / "specs").mkdir()
        assert sonata(project, "plan", "--new", "Auth Flow") == 0
        assert sonata(project, "plan", "--new", "Auth Flow") == 1

    def test_new_refused_in_tasks_mode(self, project):
        assert sonata(project, "--tasks", "plan", "--new", "Auth Flow") == 2

    def test_lists_ranked_queue(self, project, write_spec, capsys):
        write_spec("low-risk", checklist("write docs"))
        write_spec("risky", checklist("design the database schema"))
        assert sonata(project, "plan") == 0
        out = capsys.readouterr().out
        assert out.index("risky") < out.index("low-risk")

    def test_select_starts_session(self, project, write_spec, capsys):
        write_spec("auth-flow", checklist("a", "b"))
        assert sonata(project, "plan", "--select") == 0

        session = SessionStore(project).load()
        assert session.item_id == "auth-flow"
        assert session.total_tasks == 2
        assert (project / PROGRESS_FILE).exists()
        assert "status: in-progress" in (project / "specs" / "auth-flow.md").read_text()

    def test_select_refuses_when_session_active(self, project, write_spec, capsys):
        write_spec("auth-flow", checklist("a"))
        write_spec("billing", checklist("b"))
        assert sonata(project, "plan", "--item", "auth-flow") == 0
        assert sonata(project, "plan", "--item", "billing") == 1
        assert SessionStore(project).load().item_id == "auth-flow"

    def test_select_rechecks_session_under_lock(self, project, write_spec, monkeypatch):
        """A session started by another process while we waited for the lock wins."""
        write_spec("auth-flow", checklist("a"))
        write_spec("billing", checklist("b"))

        @contextmanager
        def lock_won_by_other(work_dir, timeout):
            SessionStore(work_dir).init({"item_id": "billing", "item_title": "Billing"})
            yield

        monkeypatch.setattr("sonata.commands.plan.loop_lock", lock_won_by_other)

        assert sonata(project, "plan", "--item", "auth-flow") == 1
        assert SessionStore(project).load().item_id == "billing"
        assert "status: todo" in (project / "specs" / "auth-flow.md").read_text()

    def test_unknown_item(self, project, write_spec):
        write_spec("auth-flow", checklist("a"))
        assert sonata(project, "plan", "--item", "nope") == 1


class TestStatus:
    def test_empty(self, project, capsys):
        assert sonata(project, "status") == 0
        out = capsys.readouterr().out
        assert "No active session" in out
        assert "Free" in out
        assert "No work item source" in out

    def test_with_session(self, project, write_spec, capsys):
        write_spec("auth-flow", checklist("a", done=("b",)))
        sonata(project, "plan", "--select")
        capsys.readouterr()

        assert sonata(project, "status") == 0
        out = capsys.readouterr().out
        assert "Auth Flow (auth-flow)" in out
        assert "1/2 checked" in out


class TestClean:
    def test_nothing_to_clean(self, project, capsys):
        assert sonata(project, "clean", "--yes") == 0
        assert "Nothing to clean." in capsys.readouterr().out

    def test_removes_session_and_progress(self, project, write_spec):
        write_spec("auth-flow", checklist("a"))
        sonata(project, "plan", "--select")
        logs = project / ".sonata" / "logs"
        logs.mkdir()

        assert sonata(project, "clean", "--yes") == 0

        assert SessionStore(project).load() is None
        assert not (project / PROGRESS_FILE).exists()
        assert logs.exists()

    def test_logs_flag(self, project, write_spec):
        logs = project / ".sonata" / "logs"
        logs.mkdir()
        (logs / "iteration-1.log").write_text("x")
        assert sonata(project, "clean", "--yes", "--logs") == 0
        assert not logs.exists()

    def test_declined(self, project, write_spec, monkeypatch):
        write_spec("auth-flow", checklist("a"))
        sonata(project, "plan", "--select")
        monkeypatch.setattr("builtins.input", lambda prompt: "n")
        assert sonata(project, "clean") == 0
        assert SessionStore(project).load() is not None


class TestModel:
    def config_text(self, project):
        return (project / ".sonata" / "config.yaml").read_text()

    def test_show_defaults(self, project, capsys):
        assert sonata(project, "model") == 0
        out = capsys.readouterr().out
        assert "Model:            not set (agent default)" in out
        assert "Agent command:    opencode run {prompt}" in out

    def test_set_writes_project_config(self, project, capsys):
        assert sonata(project, "model", "set", "anthropic/claude-sonnet-4-5", "--effort", "high") == 0
        assert "Model set to: anthropic/claude-sonnet-4-5" in capsys.readouterr().out

        text = self.config_text(project)
        assert "notify: false" in text
        assert "model: anthropic/claude-sonnet-4-5" in text
        assert "reasoning_effort: high" in text

        assert sonata(project, "model") == 0
        assert "opencode run --model anthropic/claude-sonnet-4-5 {prompt}" in capsys.readouterr().out

    def test_bare_name_is_set(self, project):
        assert sonata(project, "model", "openai/gpt-5") == 0
        assert "model: openai/gpt-5" in self.config_text(project)

    def test_effort_alone(self, project):
        assert sonata(project, "model", "--effort", "low") == 0
        text = self.config_text(project)
        assert "reasoning_effort: low" in text
        assert "model:" not in text

    def test_set_without_name(self, project):
        assert sonata(project, "model", "set") == 1
        assert "model:" not in self.config_text(project)

    def test_unknown_effort_rejected(self, project):
        with pytest.raises(SystemExit):
            sonata(project, "model", "--effort", "maximum")

    def test_reset(self, project, capsys):
        sonata(project, "model", "set", "openai/gpt-5", "--effort", "high")
        assert sonata(project, "model", "reset") == 0
        capsys.readouterr()

        sonata(project, "model")
        out = capsys.readouterr().out
        assert "Model:            not set" in out
        assert "Reasoning effort: not set" in out

    def test_broken_config_is_exit_2(self, project):
        (project / ".sonata" / "config.yaml").write_text("loop: [unclosed\n")
        assert sonata(project, "model", "set", "openai/gpt-5") == 2

    @patch("sonata.commands.model.list_models",
           return_value=["anthropic/claude-sonnet-4-5", "openai/gpt-5", "openai/o3"])
    def test_list_by_provider(self, mock_list, project, capsys):
        sonata(project, "model", "set", "openai/o3")
        capsys.readouterr()

        assert sonata(project, "model", "list", "openai") == 0
        out = capsys.readouterr().out
        assert "anthropic" not in out
        assert "* openai/o3" in out
        assert "  openai/gpt-5" in out

    @patch("sonata.commands.model.list_models", return_value=["openai/gpt-5"])
    def test_list_unknown_provider(self, mock_list, project):
        assert sonata(project, "model", "list", "mistral") == 1


@patch("sonata.commands.common.validate_stage_binary", return_value=BinaryCheckResult(ok=True))
class TestLoop:
    def test_missing_agent_binary(self, mock_check, project, write_spec, capsys):
        write_spec("auth-flow", checklist("a"))
        mock_check.return_value = BinaryCheckResult(ok=False, missing_binary="opencode", error_message="no opencode")
        assert sonata(project, "loop", "1") == 2
        assert "no opencode" in capsys.readouterr().out

    def test_rejects_zero_budget(self, mock_check, project, write_spec):
        write_spec("auth-flow", checklist("a"))
        assert sonata(project, "loop", "0") == 2

    @patch("sonata.agents.opencode.subprocess.run")
    def test_completes_item(self, mock_run, mock_check, project, write_spec, capsys):
        write_spec("auth-flow", checklist("a"))
        mock_run.return_value = MagicMock(returncode=0, stdout=f"Task: a\n{COMPLETE_SIGNAL}\n", stderr="")

        assert sonata(project, "loop", "3") == 0

        out = capsys.readouterr().out
        assert "Result: completed" in out
        assert "status: done" in (project / "specs" / "auth-flow.md").read_text()
        assert SessionStore(project).load() is None
        assert (project / ".sonata" / "logs" / "iteration-1.log").exists()
        assert mock_run.call_count == 1

    @patch("sonata.agents.opencode.subprocess.run")
    def test_budget_spent(self, mock_run, mock_check, project, write_spec, capsys):
        write_spec("auth-flow", checklist("a", "b"))
        mock_run.return_value = MagicMock(returncode=0, stdout="Task: a\n", stderr="")

        assert sonata(project, "loop", "2") == 0

        assert "Result: max_iterations_reached" in capsys.readouterr().out
        assert SessionStore(project).load().iteration_count == 2

    @patch("sonata.agents.opencode.subprocess.run")
    def test_agent_failure_is_exit_1(self, mock_run, mock_check, project, write_spec, capsys):
        write_spec("auth-flow", checklist("a"))
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="boom")

        assert sonata(project, "loop", "2") == 1

        assert "Result: failed" in capsys.readouterr().out
        assert SessionStore(project).load() is not None

    @patch("sonata.agents.opencode.subprocess.run")
    def test_run_without_work(self, mock_run, mock_check, project, write_spec, capsys):
        write_spec("auth-flow", checklist(done=("a",)), status="done")
        assert sonata(project, "run", "--yes") == 0
        assert "No actionable work items" in capsys.readouterr().out
        mock_run.assert_not_called()

    @patch("sonata.agents.opencode.subprocess.run")
    def test_pinned_model_reaches_agent(self, mock_run, mock_check, project, write_spec):
        write_spec("auth-flow", checklist("a"))
        sonata(project, "model", "set", "openai/gpt-5")
        mock_run.return_value = MagicMock(returncode=0, stdout=f"{COMPLETE_SIGNAL}\n", stderr="")

        assert sonata(project, "loop", "1") == 0

        cmd = mock_run.call_args[0][0]
        assert cmd[:4] == ["opencode", "run", "--model", "openai/gpt-5"]
