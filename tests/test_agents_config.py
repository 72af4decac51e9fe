"""Tests for agents_config module."""

import logging
from unittest.mock import patch

import pytest

from sonata.lib.agents_config import (
    DEFAULT_STAGE_COMMANDS,
    AgentsConfig,
    get_stage_binary,
    get_stage_command,
    load_agents_config,
    validate_stage_binary,
)


def write_agents_yaml(work_dir, text):
    path = work_dir / ".sonata" / "agents.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


class TestLoadAgentsConfig:
    """Tests for load_agents_config()."""

    def test_returns_defaults_when_no_work_dir(self):
        assert load_agents_config(None).stages == DEFAULT_STAGE_COMMANDS

    def test_returns_defaults_when_file_missing(self, tmp_path):
        assert load_agents_config(tmp_path).stages == DEFAULT_STAGE_COMMANDS

    def test_loads_custom_config(self, tmp_path):
        write_agents_yaml(tmp_path, "stages:\n  implement: claude -p {prompt}\n  plan: claude -p\n")
        config = load_agents_config(tmp_path)
        assert config.stages["implement"] == "claude -p {prompt}"
        assert config.stages["plan"] == "claude -p"

    def test_handles_invalid_yaml(self, tmp_path, caplog):
        write_agents_yaml(tmp_path, "stages: [unclosed\n")
        with caplog.at_level(logging.WARNING):
            config = load_agents_config(tmp_path)
        assert config.stages == DEFAULT_STAGE_COMMANDS
        assert "Failed to parse" in caplog.text

    def test_ignores_non_mapping_stages(self, tmp_path):
        write_agents_yaml(tmp_path, "stages: just a string\n")
        assert load_agents_config(tmp_path).stages == DEFAULT_STAGE_COMMANDS


class TestGetStageCommand:
    """Tests for get_stage_command()."""

    def test_default_passes_prompt_as_argument(self):
        result = get_stage_command(AgentsConfig(), "implement", {"prompt": "do stuff"})
        assert result.cmd == ["opencode", "run", "do stuff"]
        assert result.prompt_via_stdin is False
        assert result.get_stdin_input("do stuff") is None

    def test_prompt_via_stdin_when_not_in_template(self):
        config = AgentsConfig(stages={"implement": "my-agent --stdin"})
        result = get_stage_command(config, "implement", {"prompt": "test"})
        assert result.prompt_via_stdin is True
        assert result.cmd == ["my-agent", "--stdin"]
        assert result.get_stdin_input("test") == "test"

    def test_work_dir_substitution(self):
        config = AgentsConfig(stages={"implement": "agent -C {work_dir} {prompt}"})
        result = get_stage_command(config, "implement", {"prompt": "p", "work_dir": "/tmp/project"})
        assert result.cmd == ["agent", "-C", "/tmp/project", "p"]

    def test_raises_on_unknown_stage(self):
        with pytest.raises(ValueError, match="Unknown stage"):
            get_stage_command(AgentsConfig(), "nonexistent", {})

    def test_logs_unsubstituted_variables(self, caplog):
        config = AgentsConfig(stages={"implement": "agent --temperature {temperature} {prompt}"})
        get_stage_command(config, "implement", {"prompt": "p"})
        assert "unsubstituted variables" in caplog.text

    def test_model_substitution(self):
        result = get_stage_command(AgentsConfig(), "implement",
                                   {"prompt": "p", "model": "anthropic/claude-sonnet-4-5"})
        assert result.cmd == ["opencode", "run", "--model", "anthropic/claude-sonnet-4-5", "p"]

    def test_unset_model_drops_flag(self, caplog):
        result = get_stage_command(AgentsConfig(), "implement", {"prompt": "p", "model": None})
        assert result.cmd == ["opencode", "run", "p"]
        assert "unsubstituted" not in caplog.text

    def test_unset_effort_in_key_value_option(self):
        config = AgentsConfig(stages={
            "implement": "codex exec -m {model} -c model_reasoning_effort={reasoning_effort} {prompt}",
        })
        assert get_stage_command(config, "implement", {"prompt": "p"}).cmd == ["codex", "exec", "p"]
        result = get_stage_command(config, "implement",
                                   {"prompt": "p", "model": "o3", "reasoning_effort": "high"})
        assert result.cmd == ["codex", "exec", "-m", "o3", "-c", "model_reasoning_effort=high", "p"]

    def test_unset_inline_flag_drops_only_itself(self):
        config = AgentsConfig(stages={"implement": "agent --verbose --model={model} {prompt}"})
        assert get_stage_command(config, "implement", {"prompt": "p"}).cmd == ["agent", "--verbose", "p"]

    def test_prompt_with_special_characters(self):
        prompt = 'fix the "quoted" string and \'this\' too'
        result = get_stage_command(AgentsConfig(), "implement", {"prompt": prompt})
        assert prompt in result.cmd

    def test_prompt_with_newlines_and_braces(self):
        prompt = "line one\nline {two}\nline three"
        result = get_stage_command(AgentsConfig(), "implement", {"prompt": prompt})
        assert prompt in result.cmd


class TestStageBinary:
    """Tests for get_stage_binary() and validate_stage_binary()."""

    def test_default_binary(self):
        assert get_stage_binary(AgentsConfig(), "implement") == "opencode"

    def test_custom_binary(self, tmp_path):
        write_agents_yaml(tmp_path, "stages:\n  implement: my-custom-agent --flag\n")
        assert get_stage_binary(load_agents_config(tmp_path), "implement") == "my-custom-agent"

    def test_raises_on_unknown_stage(self):
        with pytest.raises(ValueError, match="Unknown stage"):
            get_stage_binary(AgentsConfig(), "nonexistent")

    @patch("sonata.lib.agents_config.shutil.which", return_value="/usr/bin/opencode")
    def test_available(self, mock_which):
        assert validate_stage_binary(AgentsConfig()).ok

    @patch("sonata.lib.agents_config.shutil.which", return_value=None)
    def test_missing_binary_explains_fix(self, mock_which):
        result = validate_stage_binary(AgentsConfig())
        assert not result.ok
        assert result.missing_binary == "opencode"
        assert "agents.yaml" in result.error_message
