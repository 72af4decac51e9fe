"""
Agent command configuration.

Loads <dir>/.sonata/agents.yaml to decide which CLI command runs the
coding agent. Without a config file the defaults below are used.

Templates support {variable} substitution from a context dict:
- {prompt}: The instruction payload. If present in the template it is passed
  as a CLI argument; if absent the payload is written to the agent's stdin.
- {work_dir}: The working directory the loop runs in.
- {model}, {reasoning_effort}: loop.model and loop.reasoning_effort from
  config.yaml. When the setting is unset the argument holding it is
  dropped, together with the flag just before it, so the agent falls back
  to its own default.

Example agents.yaml:

    stages:
      implement: claude --dangerously-skip-permissions --model {model} -p {prompt}

    stages:
      implement: codex exec -m {model} -c model_reasoning_effort={reasoning_effort} {prompt}
"""

import logging
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from sonata.lib.constants import AGENTS_CONFIG_FILE, STATE_DIR

logger = logging.getLogger(__name__)


DEFAULT_STAGE_COMMANDS = {
    "implement": "opencode run --model {model} {prompt}",
    # One loop iteration: payload in, free text out.
}

_PROMPT_PLACEHOLDER = "__PROMPT_PLACEHOLDER__"

# Variables that may be left unset; their arguments are dropped instead
OPTIONAL_VARIABLES = ("model", "reasoning_effort")


@dataclass
class AgentsConfig:
    """Agent configuration from agents.yaml."""
    stages: dict[str, str] = field(default_factory=lambda: DEFAULT_STAGE_COMMANDS.copy())


def load_agents_config(work_dir: Optional[Path]) -> AgentsConfig:
    """Load agents.yaml and return AgentsConfig.

    If work_dir is None or the file doesn't exist, returns defaults.
    """
    if work_dir is None:
        return AgentsConfig()

    config_path = work_dir / STATE_DIR / AGENTS_CONFIG_FILE
    if not config_path.exists():
        return AgentsConfig()

    try:
        data = yaml.safe_load(config_path.read_text())
        stages = DEFAULT_STAGE_COMMANDS.copy()
        if isinstance(data, dict) and isinstance(data.get("stages"), dict):
            stages.update({k: str(v) for k, v in data["stages"].items()})
        return AgentsConfig(stages=stages)
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return AgentsConfig()


@dataclass
class StageCommand:
    """Result of building a stage command."""
    cmd: list[str]
    prompt_via_stdin: bool

    def get_stdin_input(self, prompt: str) -> str | None:
        """Return prompt if it should be passed via stdin, else None."""
        return prompt if self.prompt_via_stdin else None


def _drop_unset_options(cmd: list[str], context: dict) -> list[str]:
    unset = [f"{{{name}}}" for name in OPTIONAL_VARIABLES if not context.get(name)]
    if not unset:
        return cmd

    kept: list[str] = []
    for arg in cmd:
        if any(placeholder in arg for placeholder in unset):
            # "-m {model}" goes as a pair; "--model={model}" stands alone
            if kept and kept[-1].startswith("-") and not arg.startswith("-"):
                kept.pop()
            continue
        kept.append(arg)
    return kept


def get_stage_command(
    config: AgentsConfig,
    stage: str,
    context: dict[str, str] | None = None,
) -> StageCommand:
    """Build the argv for a stage with variable substitution.

    Raises:
        ValueError: If the stage is unknown.

    Example:
        >>> get_stage_command(AgentsConfig(), "implement", {"prompt": "do stuff"}).cmd
        ['opencode', 'run', 'do stuff']
    """
    if stage not in config.stages:
        raise ValueError(f"Unknown stage: {stage}")

    cmd_template = config.stages[stage]
    prompt_via_stdin = "{prompt}" not in cmd_template

    # Pull the prompt out before shlex parsing so its quotes can't break the split
    prompt_value = None
    if context and "prompt" in context:
        prompt_value = context["prompt"]
        cmd_template = cmd_template.replace("{prompt}", _PROMPT_PLACEHOLDER)

    if context:
        for key, value in context.items():
            if key != "prompt" and value is not None:
                cmd_template = cmd_template.replace(f"{{{key}}}", value)

    cmd = _drop_unset_options(shlex.split(cmd_template), context or {})

    remaining_vars = re.findall(r'\{(\w+)\}', " ".join(cmd))
    if remaining_vars:
        logger.error(
            f"Stage '{stage}' has unsubstituted variables: {remaining_vars}. "
            f"Template: {cmd_template}"
        )

    if prompt_value is not None:
        cmd = [prompt_value if arg == _PROMPT_PLACEHOLDER else arg for arg in cmd]

    return StageCommand(cmd=cmd, prompt_via_stdin=prompt_via_stdin)


def get_stage_binary(config: AgentsConfig, stage: str) -> str:
    """Get the binary name for a stage (first element of the command)."""
    if stage not in config.stages:
        raise ValueError(f"Unknown stage: {stage}")

    parts = shlex.split(config.stages[stage])
    return parts[0] if parts else ""


def check_binary_available(binary: str) -> bool:
    """Check if a binary is available in PATH."""
    return shutil.which(binary) is not None


@dataclass
class BinaryCheckResult:
    ok: bool
    missing_binary: str | None = None
    error_message: str | None = None


def validate_stage_binary(config: AgentsConfig, stage: str = "implement") -> BinaryCheckResult:
    """Check that the agent binary for a stage is installed."""
    binary = get_stage_binary(config, stage)
    if binary and check_binary_available(binary):
        return BinaryCheckResult(ok=True)

    error_lines = [
        f"Required tool '{binary}' is not installed.",
        "",
        "To fix this, either:",
        f"  1. Install {binary}",
        f"  2. Create {STATE_DIR}/{AGENTS_CONFIG_FILE} to use a different agent:",
        "",
        "     stages:",
        f"       {stage}: claude --dangerously-skip-permissions -p {{prompt}}",
    ]
    return BinaryCheckResult(ok=False, missing_binary=binary, error_message="\n".join(error_lines))
