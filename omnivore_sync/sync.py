"""Incremental sync: Omnivore search pages -> one markdown note per article.

A run pages through everything updated since the last cursor, renders each
article through the user's templates and overwrites ``<folder>/<slug>.md``.
The cursor only moves after a run that got through every page and every
article; anything less is retried from the same cursor next time.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Tuple

import requests

from omnivore_sync import config, notify, omnivore_client
from omnivore_sync.config import Settings
from omnivore_sync.models import Article, Filter, HighlightOrder
from omnivore_sync.omnivore_client import OmnivoreError
from omnivore_sync.ordering import order_highlights
from omnivore_sync.renderer import RenderError, render_article
from omnivore_sync.state import State
from omnivore_sync.vault import Vault, normalize_path

log = logging.getLogger(__name__)

PAGE_SIZE = 50

FetchPage = Callable[
    [str, str, int, int, Optional[str], str], Tuple[List[Article], bool, int]
]


class SyncOutcome(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"  # some articles failed, cursor held back
    FAILED = "failed"
    ALREADY_SYNCING = "already_syncing"
    MISSING_CREDENTIAL = "missing_credential"


def query_from_filter(filter_name: str, custom_query: str) -> str:
    """Translate the configured filter into an Omnivore search fragment."""
    name = (filter_name or "").upper()
    if name == Filter.ALL.value:
        return ""
    if name == Filter.HIGHLIGHTS.value:
        return "has:highlights"
    if name == Filter.ADVANCED.value:
        return custom_query
    return ""


def _highlight_order(value: str) -> HighlightOrder:
    try:
        return HighlightOrder((value or "").upper())
    except ValueError:
        return HighlightOrder.TIME


def since_iso(cursor: str) -> Optional[str]:
    """Normalize the stored cursor to an ISO-8601 instant, or None for "everything"."""
    if not cursor:
        return None
    try:
        dt = datetime.fromisoformat(cursor.replace("Z", "+00:00"))
    except ValueError:
        log.warning("Ignoring unparseable sync cursor '%s', syncing everything", cursor)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _sync_article(
    article: Article,
    settings: Settings,
    order: HighlightOrder,
    folder: str,
    vault: Vault,
) -> bool:
    """Render and write one article. Returns False if it was skipped."""
    path = f"{folder}/{article.slug}.md"
    try:
        highlights = order_highlights(article, order)
        content = render_article(
            article,
            highlights,
            settings.article_template,
            settings.highlight_template,
            settings.date_format,
        )
        vault.write(path, content)
    except (RenderError, OSError, ValueError):
        log.exception("Failed to sync article '%s', skipping", article.slug)
        return False
    return True


def run_sync(
    settings: Settings,
    state: State,
    fetch_page: Optional[FetchPage] = None,
    vault: Optional[Vault] = None,
    now: Optional[Callable[[], datetime]] = None,
) -> SyncOutcome:
    """Run one sync pass.

    Results land in the vault and in ``state``; the returned outcome only
    tells the caller how the run ended.
    """
    fetch_page = fetch_page or omnivore_client.fetch_page
    vault = vault or Vault(config.output_root())
    now = now or (lambda: datetime.now(timezone.utc))

    if state.syncing:
        if state.sync_flag_is_stale():
            log.warning(
                "Clearing stale sync flag (process %s died mid-sync)", state.syncing_pid,
            )
            state.end_sync()
            state.save()
        else:
            log.warning("Another sync is in progress, exiting")
            notify.send("Sync already in progress")
            return SyncOutcome.ALREADY_SYNCING

    if not settings.api_key:
        notify.send("Missing Omnivore API key")
        return SyncOutcome.MISSING_CREDENTIAL

    # Captured before the first fetch so items updated mid-run are picked up next time
    started_at = now()

    state.begin_sync()
    state.save()

    outcome = SyncOutcome.FAILED
    try:
        folder = normalize_path(settings.folder) or config.DEFAULT_FOLDER
        try:
            if not vault.exists(folder):
                vault.ensure_folder(folder)
        except (OSError, ValueError):
            log.exception("Failed to prepare folder '%s'", folder)
            notify.send(f"Failed to create folder '{folder}'")
            return outcome

        since = since_iso(state.last_sync_at)
        query = query_from_filter(settings.filter, settings.custom_query)
        order = _highlight_order(settings.highlight_order)

        log.info("Starting sync since '%s'", state.last_sync_at)
        notify.send("🚀 Fetching articles ...")

        written = 0
        failed = 0
        after = 0
        has_next_page = True
        while has_next_page:
            articles, has_next_page, skipped = fetch_page(
                settings.endpoint, settings.api_key, after, PAGE_SIZE, since, query,
            )
            if skipped:
                log.warning("%d unreadable article(s) at offset %d", skipped, after)
                failed += skipped
            for article in articles:
                if _sync_article(article, settings, order, folder, vault):
                    written += 1
                else:
                    failed += 1
            # Offsets are positional; short pages don't shift the next one
            after += PAGE_SIZE

        log.info("Done: %d written, %d failed", written, failed)
        if failed:
            notify.send(f"🔖 Articles fetched, {failed} could not be saved")
            outcome = SyncOutcome.PARTIAL
        else:
            state.advance_cursor(started_at)
            notify.send("🔖 Articles fetched")
            outcome = SyncOutcome.COMPLETED

    except (OmnivoreError, requests.exceptions.RequestException):
        log.exception("Failed to fetch articles")
        notify.send("Failed to fetch articles")
    except Exception:
        log.exception("Unexpected error")
        raise
    finally:
        state.end_sync()
        state.save()

    return outcome
