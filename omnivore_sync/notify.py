"""User-facing notices: printed to the terminal, optionally as macOS notifications."""

import logging
import platform
import subprocess

from omnivore_sync import config

log = logging.getLogger(__name__)

_TITLE = "Omnivore Sync"


def send(message: str) -> None:
    """Show a notice to the user."""
    print(f"  {message}")
    log.debug("Notice: %s", message)
    if config.DESKTOP_NOTIFICATIONS:
        _desktop(_TITLE, message)


def _desktop(title: str, message: str) -> None:
    """Send a macOS notification. Silently no-ops on other platforms."""
    if platform.system() != "Darwin":
        log.debug("Notifications only supported on macOS, skipping")
        return

    script = (
        f'display notification "{_escape(message)}" '
        f'with title "{_escape(title)}"'
    )
    try:
        subprocess.run(
            ["osascript", "-e", script],
            capture_output=True, timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as e:
        log.debug("Failed to send notification: %s", e)


def _escape(s: str) -> str:
    """Escape for AppleScript string."""
    return s.replace("\\", "\\\\").replace('"', '\\"')
