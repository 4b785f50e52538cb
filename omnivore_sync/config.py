import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from omnivore_sync.models import Filter, HighlightOrder
from omnivore_sync.renderer import DEFAULT_ARTICLE_TEMPLATE, DEFAULT_HIGHLIGHT_TEMPLATE

log = logging.getLogger(__name__)

# Config directory: respects XDG_CONFIG_HOME, overridable with OMNIVORE_SYNC_CONFIG_DIR
CONFIG_DIR = Path(
    os.environ.get("OMNIVORE_SYNC_CONFIG_DIR", "")
    or (
        Path(os.environ.get("XDG_CONFIG_HOME", "") or Path.home() / ".config")
        / "omnivore-sync"
    )
)
CONFIG_DIR.mkdir(parents=True, exist_ok=True)

# .env file: prefer config dir, then CWD (for dev installs)
ENV_PATH = CONFIG_DIR / ".env"
if not ENV_PATH.exists() and (Path.cwd() / ".env").exists():
    ENV_PATH = Path.cwd() / ".env"

load_dotenv(ENV_PATH)

DEFAULT_ENDPOINT = "https://api-prod.omnivore.app/api/graphql"
DEFAULT_FOLDER = "Omnivore"
DEFAULT_DATE_FORMAT = "%Y-%m-%d"


def save_to_env(key: str, value: str) -> None:
    """Update a single key in the .env file, preserving all other content."""
    if ENV_PATH.exists():
        text = ENV_PATH.read_text()
    else:
        text = ""

    pattern = rf"^{re.escape(key)}=.*$"
    replacement = f"{key}={value}"

    if re.search(pattern, text, flags=re.MULTILINE):
        text = re.sub(pattern, lambda _: replacement, text, flags=re.MULTILINE)
    else:
        text = text.rstrip("\n") + f"\n{replacement}\n"

    ENV_PATH.write_text(text)
    ENV_PATH.chmod(0o600)  # holds the API key
    os.environ[key] = value


def _env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _env_bool(key: str, default: str = "false") -> bool:
    return _env(key, default).lower() in ("true", "1", "yes")


OMNIVORE_API_KEY: str = _env("OMNIVORE_API_KEY")
OMNIVORE_ENDPOINT: str = _env("OMNIVORE_ENDPOINT") or DEFAULT_ENDPOINT
OMNIVORE_FILTER: str = _env("OMNIVORE_FILTER", "HIGHLIGHTS").upper()
OMNIVORE_CUSTOM_QUERY: str = _env("OMNIVORE_CUSTOM_QUERY")
HIGHLIGHT_ORDER: str = _env("HIGHLIGHT_ORDER", "TIME").upper()

ARTICLE_TEMPLATE_PATH: str = _env("ARTICLE_TEMPLATE_PATH")
HIGHLIGHT_TEMPLATE_PATH: str = _env("HIGHLIGHT_TEMPLATE_PATH")

OBSIDIAN_VAULT_PATH: str = _env("OBSIDIAN_VAULT_PATH")
OUTPUT_PATH: str = _env("OUTPUT_PATH")
OMNIVORE_FOLDER: str = _env("OMNIVORE_FOLDER") or DEFAULT_FOLDER
DATE_FORMAT: str = _env("DATE_FORMAT") or DEFAULT_DATE_FORMAT

DESKTOP_NOTIFICATIONS: bool = _env_bool("DESKTOP_NOTIFICATIONS")

HTTP_TIMEOUT: int = int(_env("HTTP_TIMEOUT", "30"))
LOG_LEVEL: str = _env("LOG_LEVEL", "INFO").upper()


@dataclass
class Settings:
    """Snapshot of the configuration a single sync run works from."""

    api_key: str = ""
    endpoint: str = DEFAULT_ENDPOINT
    filter: str = Filter.HIGHLIGHTS.value
    custom_query: str = ""
    highlight_order: str = HighlightOrder.TIME.value
    article_template: str = DEFAULT_ARTICLE_TEMPLATE
    highlight_template: str = DEFAULT_HIGHLIGHT_TEMPLATE
    folder: str = DEFAULT_FOLDER
    date_format: str = DEFAULT_DATE_FORMAT


def _read_template(path: str, default: str, name: str) -> str:
    if not path:
        return default
    p = Path(path).expanduser()
    if not p.exists():
        log.warning("%s does not exist: %s, using default template", name, p)
        return default
    return p.read_text(encoding="utf-8")


def output_root() -> Path:
    """Return the directory notes are written under.

    OBSIDIAN_VAULT_PATH wins over OUTPUT_PATH; with neither set, notes go to
    the current directory.
    """
    if OBSIDIAN_VAULT_PATH:
        return Path(OBSIDIAN_VAULT_PATH).expanduser()
    if OUTPUT_PATH:
        return Path(OUTPUT_PATH).expanduser()
    return Path.cwd()


def current_settings() -> Settings:
    """Build a Settings snapshot from the loaded configuration."""
    return Settings(
        api_key=OMNIVORE_API_KEY,
        endpoint=OMNIVORE_ENDPOINT or DEFAULT_ENDPOINT,
        filter=OMNIVORE_FILTER,
        custom_query=OMNIVORE_CUSTOM_QUERY,
        highlight_order=HIGHLIGHT_ORDER,
        article_template=_read_template(
            ARTICLE_TEMPLATE_PATH, DEFAULT_ARTICLE_TEMPLATE, "ARTICLE_TEMPLATE_PATH",
        ),
        highlight_template=_read_template(
            HIGHLIGHT_TEMPLATE_PATH, DEFAULT_HIGHLIGHT_TEMPLATE, "HIGHLIGHT_TEMPLATE_PATH",
        ),
        folder=OMNIVORE_FOLDER or DEFAULT_FOLDER,
        date_format=DATE_FORMAT or DEFAULT_DATE_FORMAT,
    )


def _validate_optional() -> None:
    """Warn about settings that look wrong but don't block a sync."""
    if OBSIDIAN_VAULT_PATH and not Path(OBSIDIAN_VAULT_PATH).expanduser().is_dir():
        log.warning("OBSIDIAN_VAULT_PATH does not exist: %s", OBSIDIAN_VAULT_PATH)
    if OUTPUT_PATH and not Path(OUTPUT_PATH).expanduser().is_dir():
        log.warning("OUTPUT_PATH does not exist: %s", OUTPUT_PATH)
    if OMNIVORE_FILTER not in Filter.__members__:
        log.warning("Unknown OMNIVORE_FILTER '%s', importing everything", OMNIVORE_FILTER)
    if HIGHLIGHT_ORDER not in HighlightOrder.__members__:
        log.warning("Unknown HIGHLIGHT_ORDER '%s', keeping update order", HIGHLIGHT_ORDER)
    if OMNIVORE_FILTER == Filter.ADVANCED.value and not OMNIVORE_CUSTOM_QUERY:
        log.warning("OMNIVORE_FILTER is ADVANCED but OMNIVORE_CUSTOM_QUERY is empty")


def setup_logging() -> None:
    """Configure logging. Call once at each entry point."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    _validate_optional()
