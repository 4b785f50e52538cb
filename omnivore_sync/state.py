"""Persistent sync state.

Tracks the last-sync cursor and the re-entrancy flag. State is stored as JSON
next to the config and written atomically so an interrupted run can't leave a
half-written file behind.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from typing import Any, Dict, Optional

from omnivore_sync import config
from omnivore_sync.models import parse_timestamp

log = logging.getLogger(__name__)

STATE_PATH = config.CONFIG_DIR / "state.json"

_DEFAULT_STATE = {
    "last_sync_at": "",
    "syncing": False,
    "syncing_pid": None,
}


def _load_raw() -> Dict[str, Any]:
    if not STATE_PATH.exists():
        return dict(_DEFAULT_STATE)
    return {**_DEFAULT_STATE, **json.loads(STATE_PATH.read_text())}


def _save_raw(data: Dict[str, Any]) -> None:
    """Write state atomically: write to temp file, then rename."""
    STATE_PATH.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(
        dir=STATE_PATH.parent, prefix=".state_", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp, STATE_PATH)
    except BaseException:
        os.unlink(tmp)
        raise


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)  # signal 0: check existence only
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class State:
    """Interface for reading and writing persistent sync state."""

    def __init__(self) -> None:
        self._data = _load_raw()

    def save(self) -> None:
        _save_raw(self._data)

    # -- Cursor --

    @property
    def last_sync_at(self) -> str:
        return self._data["last_sync_at"] or ""

    @last_sync_at.setter
    def last_sync_at(self, value: str) -> None:
        self._data["last_sync_at"] = value or ""

    def advance_cursor(self, when: datetime) -> None:
        """Move the cursor to ``when`` unless it already points later."""
        current = self.last_sync_at
        if current and parse_timestamp(current) >= when:
            log.debug("Cursor %s is not older than %s, keeping it", current, when)
            return
        self._data["last_sync_at"] = when.isoformat()

    # -- Re-entrancy flag --

    @property
    def syncing(self) -> bool:
        return bool(self._data["syncing"])

    @property
    def syncing_pid(self) -> Optional[int]:
        return self._data.get("syncing_pid")

    def begin_sync(self) -> None:
        self._data["syncing"] = True
        self._data["syncing_pid"] = os.getpid()

    def end_sync(self) -> None:
        self._data["syncing"] = False
        self._data["syncing_pid"] = None

    def sync_flag_is_stale(self) -> bool:
        """True if the flag was left behind by a process that has since died.

        A flag without a recorded pid can't be checked and is treated as held.
        """
        if not self.syncing:
            return False
        pid = self.syncing_pid
        if pid is None or pid == os.getpid():
            return False
        return not _pid_alive(pid)
