#!/usr/bin/env python3
"""sonata CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from sonata import __version__
from sonata.commands import clean as cmd_clean_module
from sonata.commands import loop as cmd_loop_module
from sonata.commands import model as cmd_model_module
from sonata.commands import plan as cmd_plan_module
from sonata.commands import run as cmd_run_module
from sonata.commands import status as cmd_status_module
from sonata.commands.common import Workspace
from sonata.lib.config import (
    MODE_LOCAL,
    MODE_TASKS,
    REASONING_EFFORTS,
    ConfigurationError,
    load_config,
    merge_config,
)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def get_workspace(args) -> Workspace:
    """Resolve the working directory and layered config from global flags."""
    work_dir = Path(args.dir).expanduser().resolve()
    if not work_dir.is_dir():
        print(f"ERROR: Directory not found: {work_dir}")
        sys.exit(2)

    config = load_config(work_dir)

    overrides = {}
    if args.specs_dir:
        overrides["specs_dir"] = args.specs_dir
    if args.tasks_file:
        overrides["tasks_file"] = args.tasks_file
    if overrides:
        config = merge_config(config, {"source": overrides})

    mode_flag = MODE_LOCAL if args.local else MODE_TASKS if args.tasks else None
    return Workspace(work_dir=work_dir, config=config, mode_flag=mode_flag, lock_timeout=args.lock_timeout)


def cmd_plan(args):
    return cmd_plan_module.cmd_plan(args, get_workspace(args))


def cmd_run(args):
    return cmd_run_module.cmd_run(args, get_workspace(args))


def cmd_loop(args):
    return cmd_loop_module.cmd_loop(args, get_workspace(args))


def cmd_status(args):
    return cmd_status_module.cmd_status(args, get_workspace(args))


def cmd_clean(args):
    return cmd_clean_module.cmd_clean(args, get_workspace(args))


def cmd_model(args):
    return cmd_model_module.cmd_model(args, get_workspace(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sonata',
        description='Drive a coding agent through a checklist, one task per iteration',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--dir', '-C', default='.', help='Working directory (default: current)')
    source_group = parser.add_mutually_exclusive_group()
    source_group.add_argument('--local', action='store_true', help='Use the specs/ directory source')
    source_group.add_argument('--tasks', action='store_true', help='Use the TASKS.md source')
    parser.add_argument('--tasks-file', help='Task file name (default: TASKS.md)')
    parser.add_argument('--specs-dir', help='Specs directory name (default: specs)')
    parser.add_argument('--lock-timeout', type=float, default=60,
                        help='Seconds to wait for another sonata process (default: 60)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # sonata plan
    p_plan = subparsers.add_parser('plan', help='Show the ranked work queue')
    p_plan.add_argument('--select', action='store_true', help='Start a session on the top-ranked item')
    p_plan.add_argument('--item', help='Start a session on this item id')
    p_plan.add_argument('--new', metavar='TITLE', help='Scaffold a new work item in specs/')
    p_plan.add_argument('--priority', choices=['high', 'medium', 'low'], help='Priority for --new')
    p_plan.set_defaults(func=cmd_plan)

    # sonata run
    p_run = subparsers.add_parser('run', help='Run one supervised iteration')
    p_run.add_argument('--yes', '-y', action='store_true', help='Do not ask before invoking the agent')
    p_run.set_defaults(func=cmd_run)

    # sonata loop
    p_loop = subparsers.add_parser('loop', help='Run iterations until done or out of budget')
    p_loop.add_argument('iterations', nargs='?', type=int, help='Iteration budget (default: loop.max_iterations)')
    p_loop.add_argument('--hitl', action='store_true', help='Ask before each iteration and answer checkpoints')
    p_loop.add_argument('--chain', action='store_true', help='Continue with the next item after a completion')
    p_loop.set_defaults(func=cmd_loop)

    # sonata status
    p_status = subparsers.add_parser('status', help='Show session, progress and queue')
    p_status.set_defaults(func=cmd_status)

    # sonata clean
    p_clean = subparsers.add_parser('clean', help='Abandon the current session')
    p_clean.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    p_clean.add_argument('--logs', action='store_true', help='Also delete .sonata/logs/')
    p_clean.set_defaults(func=cmd_clean)

    # sonata model
    p_model = subparsers.add_parser('model', help='Show or pin the agent model and reasoning effort')
    p_model.add_argument('action', nargs='?', metavar='ACTION',
                         help='list [PROVIDER], set NAME, reset, or a model name')
    p_model.add_argument('name', nargs='?', metavar='NAME', help='Model name for set, provider for list')
    p_model.add_argument('--effort', choices=REASONING_EFFORTS, help='Reasoning effort to pin')
    p_model.set_defaults(func=cmd_model)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        return args.func(args)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted. The session was kept; run `sonata loop` to resume.")
        return 130


if __name__ == '__main__':
    sys.exit(main())
