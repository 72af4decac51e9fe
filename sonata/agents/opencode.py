"""
Coding agent integration.

Runs the configured agent command (opencode by default, see agents.yaml)
once per loop iteration. The agent edits the working directory itself;
all the loop needs back is its free-text output, which is scanned for
sentinels.
"""

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sonata.lib.agents_config import AgentsConfig, get_stage_command

logger = logging.getLogger(__name__)


class AgentInvocationError(Exception):
    """The agent could not be started, timed out or exited non-zero."""

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code
        self.stderr = stderr


@dataclass
class AgentResult:
    output: str
    stderr: str
    exit_code: int
    duration: float


def _write_log(log_file: Path, cmd: list[str], exit_code, stdout: str, stderr: str) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.write_text(
        f"=== COMMAND ===\n{' '.join(cmd)}\n\n"
        f"=== EXIT CODE ===\n{exit_code}\n\n"
        f"=== STDOUT ===\n{stdout}\n\n"
        f"=== STDERR ===\n{stderr}\n"
    )


class OpenCodeAgent:
    def __init__(self, agents_config: AgentsConfig, work_dir: Path, timeout: int = 600,
                 model: Optional[str] = None, reasoning_effort: Optional[str] = None):
        self.agents_config = agents_config
        self.work_dir = work_dir
        self.timeout = timeout
        self.model = model
        self.reasoning_effort = reasoning_effort

    def run(self, prompt: str, log_file: Optional[Path] = None) -> AgentResult:
        """Run one agent turn with the given instruction payload.

        Raises:
            AgentInvocationError: on missing binary, timeout or non-zero exit
        """
        context = {"prompt": prompt, "work_dir": str(self.work_dir)}
        if self.model:
            context["model"] = self.model
        if self.reasoning_effort:
            context["reasoning_effort"] = self.reasoning_effort
        stage_cmd = get_stage_command(self.agents_config, "implement", context)
        cmd = stage_cmd.cmd
        logger.debug(f"Running agent: {cmd[0]} (timeout {self.timeout}s)")

        start = time.time()
        try:
            result = subprocess.run(
                cmd,
                cwd=self.work_dir,
                input=stage_cmd.get_stdin_input(prompt),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            stdout = e.stdout.decode(errors="replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
            if log_file:
                _write_log(log_file, cmd, "timeout", stdout, f"Timed out after {self.timeout}s")
            raise AgentInvocationError(
                f"Agent timed out after {self.timeout}s. Increase loop.agent_timeout to allow longer runs."
            ) from e
        except OSError as e:
            raise AgentInvocationError(f"Could not start agent '{cmd[0]}': {e}") from e

        duration = time.time() - start
        if log_file:
            _write_log(log_file, cmd, result.returncode, result.stdout, result.stderr)

        if result.returncode != 0:
            detail = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else "no stderr"
            raise AgentInvocationError(
                f"Agent exited with code {result.returncode}: {detail}",
                exit_code=result.returncode,
                stderr=result.stderr,
            )

        logger.debug(f"Agent finished in {duration:.1f}s")
        return AgentResult(
            output=result.stdout,
            stderr=result.stderr,
            exit_code=result.returncode,
            duration=duration,
        )


def list_models(timeout: int = 60) -> list[str]:
    """Model ids the opencode CLI knows about, one per line of `opencode models`.

    Raises:
        AgentInvocationError: if opencode is missing or the listing fails
    """
    cmd = ["opencode", "models"]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise AgentInvocationError(f"`opencode models` timed out after {timeout}s") from e
    except OSError as e:
        raise AgentInvocationError(f"Could not list models: {e}") from e

    if result.returncode != 0:
        raise AgentInvocationError(
            f"`opencode models` exited with code {result.returncode}",
            exit_code=result.returncode,
            stderr=result.stderr,
        )
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]
