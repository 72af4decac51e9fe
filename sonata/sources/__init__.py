"""Work item sources."""

from pathlib import Path

from sonata.lib.config import MODE_LOCAL, MODE_TASKS, ConfigurationError, SonataConfig
from sonata.sources.base import MalformedWorkItemError, WorkItemSource
from sonata.sources.local import SpecsDirectorySource
from sonata.sources.tasks_file import TaskFileSource

__all__ = [
    "MalformedWorkItemError",
    "SpecsDirectorySource",
    "TaskFileSource",
    "WorkItemSource",
    "build_source",
]


def build_source(mode: str, config: SonataConfig, work_dir: Path) -> WorkItemSource:
    """Construct the source for a resolved mode."""
    if mode == MODE_LOCAL:
        return SpecsDirectorySource(work_dir / config.source.specs_dir)
    if mode == MODE_TASKS:
        return TaskFileSource(work_dir / config.source.tasks_file)
    raise ConfigurationError(f"Unknown source mode '{mode}'")
