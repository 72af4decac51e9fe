"""Helpers shared by the command modules."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sonata.agents.opencode import OpenCodeAgent
from sonata.git import GitVcs
from sonata.lib.agents_config import load_agents_config, validate_stage_binary
from sonata.lib.config import SonataConfig, resolve_source_mode
from sonata.sources import WorkItemSource, build_source
from sonata.workflow.controller import LoopController, LoopOutcome
from sonata.workflow.fsm import LoopState

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """Resolved command-line context: which directory, which config."""
    work_dir: Path
    config: SonataConfig
    mode_flag: Optional[str] = None
    lock_timeout: float = 60

    def source(self) -> WorkItemSource:
        """Build the work item source.

        Raises:
            ConfigurationError: if no source (or more than one) can be resolved
        """
        mode = resolve_source_mode(self.config, self.work_dir, self.mode_flag)
        logger.debug(f"Using {mode} work item source")
        return build_source(mode, self.config, self.work_dir)


def ask_yes_no(question: str, default: bool = True) -> bool:
    suffix = "[Y/n]" if default else "[y/N]"
    try:
        answer = input(f"{question} {suffix} ").strip().lower()
    except EOFError:
        return False
    if not answer:
        return default
    return answer in ("y", "yes")


def ask_checkpoint_feedback(description: str) -> Optional[str]:
    """Prompt for an answer to a checkpoint. Empty input declines."""
    print("The agent needs a decision before it can continue.")
    try:
        return input("Your answer (empty to stop): ")
    except EOFError:
        return None


def build_controller(ws: Workspace, source: WorkItemSource, confirm_each: bool,
                     answer_checkpoints: bool) -> Optional[LoopController]:
    """Wire the controller with the real agent and git collaborators.

    Returns None (after printing why) when the agent binary is missing.
    """
    agents_config = load_agents_config(ws.work_dir)
    check = validate_stage_binary(agents_config, "implement")
    if not check.ok:
        print(f"ERROR: {check.error_message}")
        return None

    agent = OpenCodeAgent(
        agents_config, ws.work_dir,
        timeout=ws.config.loop.agent_timeout,
        model=ws.config.loop.model,
        reasoning_effort=ws.config.loop.reasoning_effort,
    )
    return LoopController(
        work_dir=ws.work_dir,
        config=ws.config,
        source=source,
        agent=agent,
        vcs=GitVcs(ws.work_dir, ws.config.git),
        confirm=ask_yes_no if confirm_each else None,
        ask_feedback=ask_checkpoint_feedback if answer_checkpoints else None,
    )


def report_outcome(outcome: LoopOutcome) -> int:
    """Print the final state and next steps. Returns the exit code."""
    print(f"\nResult: {outcome.state.value}")
    if outcome.message:
        print(outcome.message)

    if outcome.state is LoopState.MAX_ITERATIONS_REACHED:
        print("\nNext steps:")
        print("  sonata loop      # keep going")
        print("  sonata run       # one supervised iteration")
        print("  sonata status    # see progress")
    elif outcome.state is LoopState.CHECKPOINT_PAUSED:
        print("\nNext steps:")
        print("  sonata loop --hitl   # rerun and answer checkpoints interactively")
        print("  sonata clean         # abandon the session")
    elif outcome.state is LoopState.FAILED:
        print("\nThe session was kept. Check .sonata/logs/ for the agent output, then:")
        print("  sonata loop      # retry")
        print("  sonata clean     # abandon the session")
    elif outcome.state is LoopState.NO_WORK_AVAILABLE and outcome.completed_items:
        print(f"Completed this run: {', '.join(outcome.completed_items)}")

    return outcome.exit_code
