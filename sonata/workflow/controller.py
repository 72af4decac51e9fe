"""
Loop controller.

Drives select -> invoke agent -> interpret -> persist -> continue until
the work item is done, a stop state is reached, or the iteration budget
for this invocation is spent.

The controller is the only writer of the session file and the progress
log. All crash-recovery state is in those two files plus the work item
source; the in-memory Session value is reloaded from the store after
every write so the two never drift.

Collaborators are injected:
- source: WorkItemSource
- agent: anything with run(prompt, log_file=None) -> AgentResult
- vcs: anything with prepare_branch(item) and
  open_pull_request(branch_ref, item_title, iterations), or None
- confirm(question) -> bool: HITL "continue?" between iterations, or None for AFK
- ask_feedback(description) -> str | None: answers checkpoints, or None for AFK
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from sonata import notifications
from sonata.agents.opencode import AgentInvocationError, AgentResult
from sonata.git import CollaboratorOperationError
from sonata.lib.config import SonataConfig
from sonata.lib.constants import CHECKPOINT_TAG, COMPLETE_SIGNAL, LOGS_DIR, PROGRESS_FILE, STATE_DIR
from sonata.lib.models import ItemStatus, ProgressEntry, Session, WorkItem, count_tasks
from sonata.lib.prompts import build_section, render_prompt
from sonata.lib.signals import detect, extract_task_title
from sonata.runner.progress import ProgressLog
from sonata.runner.session import SessionStore
from sonata.sources.base import MalformedWorkItemError, WorkItemSource
from sonata.workflow.fsm import LoopFSM, LoopState

logger = logging.getLogger(__name__)


@dataclass
class LoopOutcome:
    """How a controller run ended."""
    state: LoopState
    item_id: Optional[str] = None
    iterations_run: int = 0  # Agent iterations counted against this invocation's budget
    iteration: int = 0  # Session iteration count when the loop stopped
    completed_items: list[str] = field(default_factory=list)
    message: str = ""
    pr_url: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return 1 if self.state is LoopState.FAILED else 0


class LoopController:
    def __init__(
        self,
        work_dir: Path,
        config: SonataConfig,
        source: WorkItemSource,
        agent,
        vcs=None,
        confirm: Optional[Callable[[str], bool]] = None,
        ask_feedback: Optional[Callable[[str], Optional[str]]] = None,
    ):
        self.work_dir = work_dir
        self.config = config
        self.source = source
        self.agent = agent
        self.vcs = vcs
        self.confirm = confirm
        self.ask_feedback = ask_feedback
        self.sessions = SessionStore(work_dir)
        self.progress = ProgressLog(work_dir)
        self.logs_dir = work_dir / STATE_DIR / LOGS_DIR

    # --- selection -------------------------------------------------------

    def start_session(self, item: WorkItem) -> Session:
        """Commit to a work item: mark it in progress, branch, create the session."""
        if item.status is ItemStatus.TODO:
            item = self.source.update_status(item.id, ItemStatus.IN_PROGRESS) or item

        branch = ""
        if self.vcs is not None:
            try:
                branch = self.vcs.prepare_branch(item)
            except CollaboratorOperationError as e:
                logger.warning(f"Could not prepare a branch for {item.id}: {e}")

        total, completed = count_tasks(item.content)
        session = self.sessions.init({
            "item_id": item.id,
            "item_title": item.title,
            "branch_ref": branch,
            "source": self.source.kind,
            "source_ref": item.source_ref,
            "total_tasks": total,
            "completed_tasks": completed,
        })
        session = self.sessions.cache_content(item.content) or session

        # A log left behind belongs to an abandoned session
        self.progress.delete()
        self.progress.init(self._label(item))
        print(f"Selected: {item.title} ({item.id})")
        return session

    def _select(self) -> tuple[Optional[Session], Optional[WorkItem]]:
        session = self.sessions.load()
        if session is not None:
            item = self.source.get_item(session.item_id)
            if item is not None and item.status is not ItemStatus.DONE:
                logger.info(f"Resuming {item.id} at iteration {session.iteration_count}")
                print(f"Resuming: {item.title} ({item.id})")
                return session, item

            if item is None:
                # Still on disk but unparseable: keep the session and stop
                self.source.check_ref(session.source_ref)

            logger.warning(
                f"Session refers to {session.item_id}, which is "
                f"{'done' if item is not None else 'no longer in ' + self.source.label}; discarding it"
            )
            self.sessions.clear()
            self.progress.delete()

        item = self.source.select_next(self.config.risk_policy)
        if item is None:
            return None, None
        return self.start_session(item), item

    # --- agent turn ------------------------------------------------------

    def _label(self, item: WorkItem) -> str:
        return f"{item.title} ({item.id})"

    def _build_prompt(self, item: WorkItem, feedback: Optional[tuple[str, str]]) -> str:
        feedback_text = None
        if feedback:
            description, answer = feedback
            feedback_text = f"You asked: {description}\nAnswer: {answer}"
        return render_prompt(
            "implement",
            progress_file=PROGRESS_FILE,
            item_title=item.title,
            source_ref=item.source_ref,
            content=item.content,
            update_instructions=self.source.update_instructions(item),
            feedback_section=build_section(feedback_text, "HUMAN FEEDBACK ON YOUR LAST CHECKPOINT:"),
            complete_signal=COMPLETE_SIGNAL,
            checkpoint_tag=CHECKPOINT_TAG,
        )

    def _refresh_item(self, item: WorkItem) -> WorkItem:
        # Never trust the cached content; the agent edits the checklist
        fresh = self.source.get_item(item.id)
        if fresh is None:
            logger.warning(f"Work item {item.id} disappeared from {self.source.label}, using last known content")
            return item
        return fresh

    # --- completion ------------------------------------------------------

    def _finish(self, item: WorkItem, session: Session) -> Optional[str]:
        iterations = session.iteration_count + 1
        self.source.update_status(item.id, ItemStatus.DONE)

        pr_url = None
        if self.vcs is not None:
            try:
                pr_url = self.vcs.open_pull_request(session.branch_ref, item.title, iterations)
            except CollaboratorOperationError as e:
                logger.warning(f"Could not create pull request for {item.id}: {e}")
                print(f"Warning: could not create pull request: {e}")

        self.progress.mark_complete()
        self.progress.delete()
        self.sessions.clear()
        return pr_url

    def _notify(self, func, *args) -> None:
        if self.config.loop.notify:
            func(*args)

    # --- main loop -------------------------------------------------------

    def run(self, max_iterations: int, chain: bool = False) -> LoopOutcome:
        """Run up to max_iterations agent iterations.

        A checkpoint round does not count against the budget; a completing
        iteration does.
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        fsm = LoopFSM(label=self.work_dir.name or "loop")
        outcome = LoopOutcome(state=LoopState.SELECTING_ITEM)
        session: Optional[Session] = None
        item: Optional[WorkItem] = None
        result: Optional[AgentResult] = None
        feedback: Optional[tuple[str, str]] = None
        checkpoint_description = ""

        def stop(message: str) -> LoopOutcome:
            outcome.state = fsm.current
            outcome.item_id = item.id if item else (session.item_id if session else None)
            outcome.iteration = session.iteration_count if session else 0
            outcome.message = message
            return outcome

        while True:
            state = fsm.current

            if state is LoopState.SELECTING_ITEM:
                try:
                    session, item = self._select()
                except MalformedWorkItemError as e:
                    fsm.item_unreadable()
                    session = self.sessions.load()
                    self._notify(notifications.notify_failed, session.item_id, e.message)
                    return stop(
                        f"Cannot read the work item for the active session: {e}. "
                        "Fix the file and rerun, or run `sonata clean` to abandon the session"
                    )
                if item is None:
                    fsm.no_work()
                    return stop(f"No actionable work items in {self.source.label}")
                fsm.item_selected()

            elif state is LoopState.AWAITING_AGENT:
                item = self._refresh_item(item)
                session = self.sessions.cache_content(item.content) or session
                self.progress.init(self._label(item))

                number = session.iteration_count + 1
                print(f"\n{'=' * 60}")
                print(f"=== {item.id}: iteration {number} ===")
                print(f"{'=' * 60}")

                prompt = self._build_prompt(item, feedback)
                log_file = self.logs_dir / f"iteration-{number}.log"
                try:
                    result = self.agent.run(prompt, log_file=log_file)
                except AgentInvocationError as e:
                    fsm.agent_failed()
                    self._notify(notifications.notify_failed, item.id, e.message)
                    return stop(f"Agent failed on {item.id} at iteration {number}: {e.message}")
                fsm.agent_returned()

            elif state is LoopState.PROCESSING_RESULT:
                detection = detect(result.output)
                feedback = None

                if detection.is_checkpoint:
                    checkpoint_description = detection.checkpoint_description
                    fsm.checkpoint()

                elif detection.is_complete:
                    outcome.iterations_run += 1
                    outcome.pr_url = self._finish(item, session)
                    outcome.completed_items.append(item.id)
                    session = Session.from_dict({**session.to_dict(),
                                                 "iteration_count": session.iteration_count + 1})
                    fsm.complete()
                    self._notify(notifications.notify_complete, item.id, session.iteration_count)
                    print(f"Completed {item.id} in {session.iteration_count} iteration(s)")
                    if outcome.pr_url:
                        print(f"PR created: {outcome.pr_url}")

                else:
                    outcome.iterations_run += 1
                    self.sessions.increment_iteration()
                    item = self._refresh_item(item)
                    session = self.sessions.cache_content(item.content) or self.sessions.load() or session

                    task = extract_task_title(result.output) or "not reported"
                    total, completed = count_tasks(item.content)
                    self.progress.append(ProgressEntry(
                        iteration=session.iteration_count,
                        summary=f"Task: {task}\nChecklist: {completed}/{total} complete",
                    ))
                    print(f"Iteration {session.iteration_count} done ({completed}/{total} tasks checked)")

                    if outcome.iterations_run >= max_iterations:
                        fsm.budget_spent()
                        self._notify(notifications.notify_max_iterations, item.id, outcome.iterations_run)
                        return stop(
                            f"Stopped after {outcome.iterations_run} iteration(s); "
                            f"{item.id} is not complete yet"
                        )
                    fsm.iteration_done()

            elif state is LoopState.CHECKPOINT_PAUSED:
                self._notify(notifications.notify_checkpoint, item.id, checkpoint_description)
                print(f"\nCheckpoint: {checkpoint_description}")
                if self.ask_feedback is None:
                    return stop(f"{item.id} is waiting for input: {checkpoint_description}")

                answer = self.ask_feedback(checkpoint_description)
                if not answer or not answer.strip():
                    fsm.cancel()
                    return stop(f"Stopped at checkpoint on {item.id}")

                answer = answer.strip()
                self.progress.append(ProgressEntry(
                    iteration=session.iteration_count,
                    summary=f"Checkpoint: {checkpoint_description}\nHuman feedback: {answer}",
                ))
                feedback = (checkpoint_description, answer)
                fsm.feedback_received()

            elif state is LoopState.CONTINUING:
                if self.confirm is not None and not self.confirm(f"Continue with {item.id}?"):
                    fsm.cancel()
                    return stop(f"Paused {item.id}; run `sonata loop` to resume")
                fsm.resume()

            elif state is LoopState.COMPLETED:
                if chain and outcome.iterations_run < max_iterations:
                    fsm.next_item()
                    session, item = None, None
                    continue
                return stop(f"Completed {', '.join(outcome.completed_items)}")

            else:
                return stop(f"Stopped in {state.value}")
