"""
Configuration loaders for sonata.

Configuration is layered: built-in defaults, then the user file
(~/.sonata/config.yaml), then the project file (<dir>/.sonata/config.yaml),
then command-line flags. Each layer is a partial dict; merge_config()
folds one layer into a fully populated SonataConfig field by field.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from sonata.lib import validate
from sonata.lib.constants import (
    DEFAULT_SPECS_DIR,
    DEFAULT_TASKS_FILE,
    PROJECT_CONFIG_FILE,
    STATE_DIR,
)
from sonata.lib.ranking import HIGH_RISK_KEYWORDS, LOW_RISK_KEYWORDS, RiskPolicy

logger = logging.getLogger(__name__)

USER_CONFIG_PATH = Path.home() / STATE_DIR / "config.yaml"

MODE_LOCAL = "local"  # specs/ directory, one file per work item
MODE_TASKS = "tasks"  # single TASKS.md file
VALID_MODES = {MODE_LOCAL, MODE_TASKS}

REASONING_EFFORTS = ("low", "medium", "high", "xhigh")


class ConfigurationError(Exception):
    """The work item source or a config file cannot be used as configured."""
    pass


@dataclass
class SourceConfig:
    mode: Optional[str] = None  # None = auto-detect
    specs_dir: str = DEFAULT_SPECS_DIR
    tasks_file: str = DEFAULT_TASKS_FILE


@dataclass
class GitConfig:
    create_branch: bool = True
    create_pr: bool = True
    base_branch: str = "main"
    branch_prefix: str = "task/"


@dataclass
class LoopSettings:
    max_iterations: int = 10
    agent_timeout: int = 600  # seconds
    chain: bool = False  # Move on to the next item after a completion
    notify: bool = True
    model: Optional[str] = None  # None = the agent's own default
    reasoning_effort: Optional[str] = None


@dataclass
class RankingConfig:
    high_risk_keywords: list[str] = field(default_factory=lambda: list(HIGH_RISK_KEYWORDS))
    low_risk_keywords: list[str] = field(default_factory=lambda: list(LOW_RISK_KEYWORDS))


@dataclass
class SonataConfig:
    source: SourceConfig = field(default_factory=SourceConfig)
    git: GitConfig = field(default_factory=GitConfig)
    loop: LoopSettings = field(default_factory=LoopSettings)
    ranking: RankingConfig = field(default_factory=RankingConfig)

    @property
    def risk_policy(self) -> RiskPolicy:
        return RiskPolicy.from_keywords(self.ranking.high_risk_keywords, self.ranking.low_risk_keywords)


def _pick(section: dict, key: str, current):
    return section[key] if key in section else current


def merge_config(base: SonataConfig, overrides: dict | None) -> SonataConfig:
    """Return a new config with every field present in overrides replaced.

    Overrides use the config file shape: {"loop": {"max_iterations": 3}, ...}.
    Missing sections and keys keep the base value.
    """
    overrides = overrides or {}
    src = overrides.get("source") or {}
    git = overrides.get("git") or {}
    loop = overrides.get("loop") or {}
    ranking = overrides.get("ranking") or {}

    return SonataConfig(
        source=SourceConfig(
            mode=_pick(src, "mode", base.source.mode),
            specs_dir=_pick(src, "specs_dir", base.source.specs_dir),
            tasks_file=_pick(src, "tasks_file", base.source.tasks_file),
        ),
        git=GitConfig(
            create_branch=_pick(git, "create_branch", base.git.create_branch),
            create_pr=_pick(git, "create_pr", base.git.create_pr),
            base_branch=_pick(git, "base_branch", base.git.base_branch),
            branch_prefix=_pick(git, "branch_prefix", base.git.branch_prefix),
        ),
        loop=LoopSettings(
            max_iterations=_pick(loop, "max_iterations", base.loop.max_iterations),
            agent_timeout=_pick(loop, "agent_timeout", base.loop.agent_timeout),
            chain=_pick(loop, "chain", base.loop.chain),
            notify=_pick(loop, "notify", base.loop.notify),
            model=_pick(loop, "model", base.loop.model),
            reasoning_effort=_pick(loop, "reasoning_effort", base.loop.reasoning_effort),
        ),
        ranking=RankingConfig(
            high_risk_keywords=list(_pick(ranking, "high_risk_keywords", base.ranking.high_risk_keywords)),
            low_risk_keywords=list(_pick(ranking, "low_risk_keywords", base.ranking.low_risk_keywords)),
        ),
    )


def read_config_file(path: Path) -> dict | None:
    """Load and validate one config file. Returns None if missing or invalid."""
    if not path.exists():
        return None

    try:
        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            raise validate.ValidationError("config", "top level must be a mapping")
        validate.validate(data, "config")
        return data
    except (yaml.YAMLError, validate.ValidationError, OSError) as e:
        logger.warning(f"Ignoring invalid config file {path}: {e}")
        return None


def project_config_path(work_dir: Path) -> Path:
    return work_dir / STATE_DIR / PROJECT_CONFIG_FILE


def update_project_config(work_dir: Path, section: str, values: dict) -> Path:
    """Set keys in one section of the project config file, keeping the rest.

    Creates the file if needed. Returns its path.

    Raises:
        ConfigurationError: if the existing file is unreadable, or the
            result would not validate
    """
    path = project_config_path(work_dir)
    data = {}
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot update {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Cannot update {path}: top level must be a mapping")

    if data.get(section) is None:
        data[section] = {}
    if not isinstance(data[section], dict):
        raise ConfigurationError(f"Cannot update {path}: '{section}' must be a mapping")
    data[section].update(values)

    try:
        validate.validate(data, "config")
    except validate.ValidationError as e:
        raise ConfigurationError(f"Refusing to write {path}: {e}") from e

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False))
    logger.debug(f"Updated {section} in {path}: {values}")
    return path


def load_config(work_dir: Path, user_config_path: Path | None = USER_CONFIG_PATH) -> SonataConfig:
    """Load defaults, then the user file, then the project file."""
    config = SonataConfig()
    for path in (user_config_path, project_config_path(work_dir)):
        if path is None:
            continue
        layer = read_config_file(path)
        if layer:
            logger.debug(f"Loaded config layer from {path}")
            config = merge_config(config, layer)
    return config


def resolve_source_mode(config: SonataConfig, work_dir: Path, flag: str | None = None) -> str:
    """Decide which work item source to use.

    Resolution order:
    1. Explicit command-line flag
    2. source.mode from config
    3. Auto-detect: the specs directory or the tasks file, whichever exists

    Raises:
        ConfigurationError: if both sources exist with no disambiguation,
            or neither exists
    """
    if flag:
        if flag not in VALID_MODES:
            raise ConfigurationError(f"Unknown source mode '{flag}'")
        return flag

    if config.source.mode:
        return config.source.mode

    has_specs = (work_dir / config.source.specs_dir).is_dir()
    has_tasks = (work_dir / config.source.tasks_file).is_file()

    if has_specs and has_tasks:
        raise ConfigurationError(
            f"Both {config.source.specs_dir}/ and {config.source.tasks_file} exist. "
            f"Use --local or --tasks, or set source.mode in {STATE_DIR}/{PROJECT_CONFIG_FILE}."
        )
    if has_specs:
        return MODE_LOCAL
    if has_tasks:
        return MODE_TASKS

    raise ConfigurationError(
        f"No work item source found. Create a {config.source.specs_dir}/ folder "
        f"(try `sonata plan --new \"Title\"`) or a {config.source.tasks_file} file."
    )
