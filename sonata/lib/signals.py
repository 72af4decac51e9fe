"""
Sentinel detection in agent output.

Two independent, line-anchored patterns:

    SONATA_COMPLETE_7x9k2m
    <<SONATA_CHECKPOINT: short description of what is needed>>

A sentinel only counts when it is alone on its own line (surrounding
whitespace allowed). Agents routinely echo their instructions back, and the
instructions mention both sentinels mid-sentence, so an unanchored search
would report false positives.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sonata.lib.constants import CHECKPOINT_TAG, COMPLETE_SIGNAL

COMPLETE_RE = re.compile(rf'^[ \t]*{re.escape(COMPLETE_SIGNAL)}[ \t]*$', re.MULTILINE)
CHECKPOINT_RE = re.compile(
    rf'^[ \t]*<<{re.escape(CHECKPOINT_TAG)}:[ \t]*(?P<description>.*?\S)[ \t]*>>[ \t]*$',
    re.MULTILINE,
)

# Patterns agents use to announce which checklist line they picked
_TASK_TITLE_PATTERNS = [
    re.compile(r'^\s*[-*]?\s*\*\*Task:\*\*\s*(.+?)\s*$', re.IGNORECASE | re.MULTILINE),
    re.compile(r'^\s*[-*]?\s*Task:\s*["“]([^"”\n]+)["”]', re.IGNORECASE | re.MULTILINE),
    re.compile(r'^\s*[-*]?\s*Task:\s*(.+?)\s*$', re.IGNORECASE | re.MULTILINE),
    re.compile(r'Working on:\s*["“]?([^"”\n]+?)["”]?\s*$', re.IGNORECASE | re.MULTILINE),
]


class SignalKind(Enum):
    NONE = "none"
    CHECKPOINT = "checkpoint"
    COMPLETE = "complete"


@dataclass
class Detection:
    kind: SignalKind
    checkpoint_description: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.kind is SignalKind.COMPLETE

    @property
    def is_checkpoint(self) -> bool:
        return self.kind is SignalKind.CHECKPOINT


def find_checkpoint(output: str) -> Optional[str]:
    """Return the description of the last checkpoint marker, or None."""
    matches = list(CHECKPOINT_RE.finditer(output))
    if not matches:
        return None
    return matches[-1].group("description").strip()


def is_complete(output: str) -> bool:
    return COMPLETE_RE.search(output) is not None


def detect(output: str) -> Detection:
    """Classify agent output. A checkpoint outranks completion."""
    description = find_checkpoint(output)
    if description is not None:
        return Detection(SignalKind.CHECKPOINT, checkpoint_description=description)
    if is_complete(output):
        return Detection(SignalKind.COMPLETE)
    return Detection(SignalKind.NONE)


def extract_task_title(output: str) -> Optional[str]:
    """Best-effort guess at which task the agent worked on this iteration."""
    for pattern in _TASK_TITLE_PATTERNS:
        match = pattern.search(output)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None
