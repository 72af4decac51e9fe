"""
sonata model - show or change the model the agent runs with.

The settings live in the loop section of <dir>/.sonata/config.yaml and
reach the agent through the {model} and {reasoning_effort} placeholders
of its command template (see agents.yaml).

    sonata model                         show the current settings
    sonata model list [PROVIDER]         models known to opencode
    sonata model set NAME [--effort E]   pin a model
    sonata model NAME                    same as `set NAME`
    sonata model --effort E              change only the reasoning effort
    sonata model reset                   back to the agent's defaults
"""

import logging

from sonata.agents.opencode import AgentInvocationError, list_models
from sonata.commands.common import Workspace
from sonata.lib.agents_config import get_stage_command, load_agents_config
from sonata.lib.config import update_project_config

logger = logging.getLogger(__name__)

NOT_SET = "not set (agent default)"


def _show(ws: Workspace) -> int:
    loop = ws.config.loop
    print(f"Model:            {loop.model or NOT_SET}")
    print(f"Reasoning effort: {loop.reasoning_effort or NOT_SET}")

    agents_config = load_agents_config(ws.work_dir)
    context = {"prompt": "{prompt}", "model": loop.model, "reasoning_effort": loop.reasoning_effort}
    stage_cmd = get_stage_command(agents_config, "implement", context)
    print(f"Agent command:    {' '.join(stage_cmd.cmd)}")
    if loop.reasoning_effort and "{reasoning_effort}" not in agents_config.stages["implement"]:
        print("\nThe agent command has no {reasoning_effort} placeholder; edit .sonata/agents.yaml to pass it on.")
    return 0


def _list(provider, ws: Workspace) -> int:
    try:
        models = list_models()
    except AgentInvocationError as e:
        print(f"ERROR: {e.message}")
        return 1

    if provider:
        models = [m for m in models if m.split("/", 1)[0].lower() == provider.lower()]
        if not models:
            print(f"No models found for provider: {provider}")
            return 1

    by_provider: dict[str, list[str]] = {}
    for model in models:
        key = model.split("/", 1)[0] if "/" in model else "other"
        by_provider.setdefault(key, []).append(model)

    current = ws.config.loop.model
    for name, ids in by_provider.items():
        print(f"{name}:")
        for model in ids:
            print(f"  {'*' if model == current else ' '} {model}")
        print()
    print("Use `sonata model set NAME` to pin one.")
    return 0


def cmd_model(args, ws: Workspace) -> int:
    if args.action is None and args.effort is None:
        return _show(ws)

    if args.action == "list":
        return _list(args.name, ws)

    values = {}
    if args.action == "reset":
        values = {"model": None, "reasoning_effort": None}
    elif args.action is not None:
        # Anything other than a subcommand is taken as the model name
        model = args.name if args.action == "set" else args.action
        if not model:
            print("ERROR: No model given. Usage: sonata model set NAME")
            return 1
        values["model"] = model

    if args.effort:
        values["reasoning_effort"] = args.effort

    path = update_project_config(ws.work_dir, "loop", values)
    for key, value in values.items():
        label = "Model" if key == "model" else "Reasoning effort"
        print(f"{label} set to: {value or NOT_SET}")
    print(f"Saved to {path}")
    return 0
