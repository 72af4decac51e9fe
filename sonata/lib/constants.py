"""Shared constants for sonata."""

# Per-directory state lives here (session, lock, agent logs, project config)
STATE_DIR = ".sonata"
SESSION_FILE = "session.json"
LOCK_FILE = "loop.lock"
LOGS_DIR = "logs"
PROJECT_CONFIG_FILE = "config.yaml"
AGENTS_CONFIG_FILE = "agents.yaml"

# Read by the agent, so it sits next to the code rather than under STATE_DIR
PROGRESS_FILE = "progress.txt"
PROGRESS_COMPLETE_MARKER = "=== SONATA: ALL TASKS COMPLETE ==="

DEFAULT_SPECS_DIR = "specs"
DEFAULT_TASKS_FILE = "TASKS.md"

# Agent sentinels. Both are only recognised alone on their own line.
COMPLETE_SIGNAL = "SONATA_COMPLETE_7x9k2m"
CHECKPOINT_TAG = "SONATA_CHECKPOINT"

# Work item slugs
MAX_SLUG_LEN = 60
