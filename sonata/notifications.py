"""
Desktop notifications for sonata.

Uses notify-send (freedesktop compliant), so AFK loops can tell you when
they stop. Missing binary or a failing daemon is logged, never raised.
"""

import logging
import shutil
import subprocess

logger = logging.getLogger(__name__)


VALID_URGENCIES = ("low", "normal", "critical")
MAX_NOTIFICATION_LENGTH = 200


def notify(title: str, message: str, urgency: str = "normal"):
    """
    Send desktop notification.

    Args:
        title: Notification title
        message: Notification body
        urgency: One of "low", "normal", "critical"
    """
    if urgency not in VALID_URGENCIES:
        logger.warning(f"Invalid urgency '{urgency}', using 'normal'")
        urgency = "normal"

    if not shutil.which("notify-send"):
        logger.debug("notify-send not found, skipping notification")
        return

    if len(message) > MAX_NOTIFICATION_LENGTH:
        message = message[:MAX_NOTIFICATION_LENGTH] + "..."

    try:
        result = subprocess.run([
            "notify-send",
            "--urgency", urgency,
            "--app-name", "sonata",
            title,
            message
        ], capture_output=True, text=True, timeout=5)

        if result.returncode != 0:
            logger.warning(f"notify-send failed (exit {result.returncode}): {result.stderr}")
    except subprocess.TimeoutExpired:
        logger.warning("notify-send timed out")
    except OSError as e:
        logger.warning(f"Failed to run notify-send: {e}")


def notify_complete(item_id: str, iterations: int):
    notify(f"sonata: {item_id}", f"All tasks complete after {iterations} iteration(s)", "normal")


def notify_failed(item_id: str, reason: str):
    notify(f"sonata: {item_id}", f"Agent failed: {reason}", "critical")


def notify_checkpoint(item_id: str, description: str):
    """The agent stopped and is waiting for a human decision."""
    notify(f"sonata: {item_id}", f"Needs input: {description}", "critical")


def notify_max_iterations(item_id: str, iterations: int):
    notify(f"sonata: {item_id}", f"Stopped after {iterations} iteration(s), work remains", "low")
