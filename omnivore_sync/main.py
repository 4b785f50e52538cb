"""omnivore-sync entry point.

One-shot script: pulls everything changed in Omnivore since the last run into
markdown notes, then exits.
"""

import logging
import os
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

log = logging.getLogger("omnivore_sync")

try:
    _VERSION = version("omnivore-sync")
except PackageNotFoundError:
    # Running from a source checkout that was never installed
    _VERSION = "unknown"

_HELP = """\
Usage: omnivore-sync <command>

  omnivore-sync           Sync Omnivore articles -> notes
  omnivore-sync --sync    Same as above
  omnivore-sync --init    First-time setup wizard
  omnivore-sync --status  Show last sync and current settings
  omnivore-sync --reset   Clear a sync flag left behind by a crashed run

Options:
  -h, --help              Show this help
  -V, --version           Show version
"""


def _mask_value(value: str) -> str:
    """Mask a config value for display, showing first/last 4 chars."""
    if len(value) > 12:
        return value[:4] + "..." + value[-4:]
    return value


def _prompt_with_default(prompt: str, env_key: str, sensitive: bool = False) -> Optional[str]:
    """Prompt user, showing existing value as default. Returns None if skipped."""
    current = os.environ.get(env_key, "")
    if current:
        display = _mask_value(current) if sensitive else current
        user_input = input(f"{prompt} [{display}]: ").strip()
    else:
        user_input = input(f"{prompt}: ").strip()

    if not user_input and current:
        return current
    return user_input or None


def _init_wizard() -> None:
    """Interactive setup for first-time users."""
    from omnivore_sync.config import ENV_PATH, save_to_env

    print()
    print("  Omnivore Sync Setup")
    print("  " + "=" * 48)
    print()
    print(f"  Config will be saved to: {ENV_PATH}")
    print()

    print("  Create an API key at https://omnivore.app/settings/api")
    print()
    api_key = _prompt_with_default("  API key", "OMNIVORE_API_KEY", sensitive=True)
    if not api_key:
        print("\n  Error: An Omnivore API key is required to continue.")
        return
    save_to_env("OMNIVORE_API_KEY", api_key)

    print()
    print("  Where should notes go? Point this at your Obsidian vault,")
    print("  or leave it empty and set OUTPUT_PATH for a plain folder.")
    print()
    vault = _prompt_with_default("  Obsidian vault path", "OBSIDIAN_VAULT_PATH")
    if vault:
        save_to_env("OBSIDIAN_VAULT_PATH", os.path.expanduser(vault))

    folder = _prompt_with_default("  Folder inside the vault", "OMNIVORE_FOLDER")
    if folder:
        save_to_env("OMNIVORE_FOLDER", folder)

    print()
    print("  Which articles should be imported?")
    print("    ALL         every saved article")
    print("    HIGHLIGHTS  only articles with highlights")
    print("    ADVANCED    a custom Omnivore search query")
    print()
    filter_name = (_prompt_with_default("  Filter", "OMNIVORE_FILTER") or "HIGHLIGHTS").upper()
    save_to_env("OMNIVORE_FILTER", filter_name)
    if filter_name == "ADVANCED":
        query = _prompt_with_default("  Search query", "OMNIVORE_CUSTOM_QUERY")
        save_to_env("OMNIVORE_CUSTOM_QUERY", query or "")

    print()
    order = _prompt_with_default("  Highlight order (LOCATION or TIME)", "HIGHLIGHT_ORDER")
    if order:
        save_to_env("HIGHLIGHT_ORDER", order.upper())

    print()
    print("  Done. Run 'omnivore-sync' to sync.")
    print()


def _status() -> None:
    """Print a quick status overview to the terminal."""
    from omnivore_sync import config
    from omnivore_sync.state import State

    config.setup_logging()
    state = State()
    settings = config.current_settings()

    print()
    print("  Omnivore Sync")
    print("  " + "─" * 40)
    print(f"  Last sync:   {state.last_sync_at or 'never'}")
    if state.syncing:
        stale = " (stale)" if state.sync_flag_is_stale() else ""
        print(f"  Syncing:     yes, pid {state.syncing_pid}{stale}")
    print(f"  Output:      {config.output_root() / settings.folder}")
    print(f"  Filter:      {settings.filter}")
    if settings.filter == "ADVANCED":
        print(f"  Query:       {settings.custom_query}")
    print(f"  Order:       {settings.highlight_order}")
    print(f"  API key:     {'set' if settings.api_key else 'missing'}")
    print()


def _reset() -> None:
    """Clear the syncing flag so the next run can start."""
    from omnivore_sync import config
    from omnivore_sync.state import State

    config.setup_logging()
    state = State()
    if not state.syncing:
        log.info("No sync flag set, nothing to reset")
        return
    state.end_sync()
    state.save()
    log.info("Cleared sync flag")


def main() -> int:
    if "--help" in sys.argv or "-h" in sys.argv:
        print(_HELP)
        return 0

    if "--version" in sys.argv or "-V" in sys.argv:
        print(f"omnivore-sync {_VERSION}")
        return 0

    if "--init" in sys.argv:
        _init_wizard()
        return 0

    if "--status" in sys.argv:
        _status()
        return 0

    if "--reset" in sys.argv:
        _reset()
        return 0

    from omnivore_sync import config
    from omnivore_sync.state import State
    from omnivore_sync.sync import SyncOutcome, run_sync

    config.setup_logging()

    outcome = run_sync(config.current_settings(), State())
    if outcome in (SyncOutcome.COMPLETED, SyncOutcome.ALREADY_SYNCING):
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
