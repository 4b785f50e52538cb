"""Tests for the sync run: paging, cursor handling, guard, failure policy."""

from datetime import datetime, timezone

import pytest
import requests

from conftest import make_article, make_highlight

START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeSource:
    """Stands in for omnivore_client.fetch_page and records every call.

    Pages are (articles, has_next_page) or (articles, has_next_page, skipped).
    """

    def __init__(self, pages):
        self.pages = list(pages)
        self.calls = []

    def __call__(self, endpoint, api_key, after, first, updated_after, query):
        self.calls.append({
            "endpoint": endpoint,
            "api_key": api_key,
            "after": after,
            "first": first,
            "updated_after": updated_after,
            "query": query,
        })
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        if len(page) == 2:
            page = (*page, 0)
        return page


def _articles(prefix, n):
    return [make_article(slug=f"{prefix}-{i}") for i in range(n)]


@pytest.fixture
def vault(tmp_path):
    from omnivore_sync.vault import Vault

    return Vault(tmp_path / "vault")


@pytest.fixture
def settings():
    from omnivore_sync.config import Settings

    return Settings(api_key="secret", endpoint="https://api.test/graphql")


def _run(settings, source, vault, state=None):
    from omnivore_sync.state import State
    from omnivore_sync.sync import run_sync

    state = state or State()
    outcome = run_sync(settings, state, fetch_page=source, vault=vault, now=lambda: START)
    return outcome, state


class TestQueryFromFilter:
    @pytest.mark.parametrize("name,expected", [
        ("ALL", ""),
        ("HIGHLIGHTS", "has:highlights"),
        ("ADVANCED", "in:archive label:ai"),
        ("highlights", "has:highlights"),
        ("SOMETHING_ELSE", ""),
    ])
    def test_modes(self, name, expected):
        from omnivore_sync.sync import query_from_filter

        assert query_from_filter(name, "in:archive label:ai") == expected


class TestSinceIso:
    def test_empty_means_everything(self):
        from omnivore_sync.sync import since_iso

        assert since_iso("") is None

    def test_normalizes_zulu(self):
        from omnivore_sync.sync import since_iso

        assert since_iso("2026-01-01T00:00:00Z") == "2026-01-01T00:00:00+00:00"

    def test_unparseable_syncs_everything(self):
        from omnivore_sync.sync import since_iso

        assert since_iso("last tuesday") is None


class TestPaging:
    def test_two_pages(self, settings, vault, notices):
        from omnivore_sync.sync import SyncOutcome

        source = FakeSource([(_articles("a", 50), True), (_articles("b", 10), False)])

        outcome, state = _run(settings, source, vault)

        assert outcome is SyncOutcome.COMPLETED
        assert [c["after"] for c in source.calls] == [0, 50]
        assert all(c["first"] == 50 for c in source.calls)
        assert len(list((vault.root / "Omnivore").glob("*.md"))) == 60
        assert state.last_sync_at == START.isoformat()
        assert state.syncing is False

    def test_short_pages_do_not_shift_offset(self, settings, vault, notices):
        source = FakeSource([
            (_articles("a", 5), True),
            (_articles("b", 3), True),
            ([], False),
        ])

        _run(settings, source, vault)

        assert [c["after"] for c in source.calls] == [0, 50, 100]

    def test_passes_cursor_filter_and_credentials(self, settings, vault, notices):
        from omnivore_sync.state import State

        state = State()
        state.last_sync_at = "2026-01-01T00:00:00Z"
        settings.filter = "ADVANCED"
        settings.custom_query = "label:ai"
        source = FakeSource([([], False)])

        _run(settings, source, vault, state)

        call = source.calls[0]
        assert call["updated_after"] == "2026-01-01T00:00:00+00:00"
        assert call["query"] == "label:ai"
        assert call["api_key"] == "secret"
        assert call["endpoint"] == "https://api.test/graphql"

    def test_first_sync_fetches_everything(self, settings, vault, notices):
        source = FakeSource([([], False)])

        _run(settings, source, vault)

        assert source.calls[0]["updated_after"] is None

    def test_overwrites_existing_note(self, settings, vault, notices):
        folder = vault.root / "Omnivore"
        folder.mkdir(parents=True)
        (folder / "a-0.md").write_text("local edits")
        source = FakeSource([(_articles("a", 1), False)])

        _run(settings, source, vault)

        assert (folder / "a-0.md").read_text() != "local edits"

    def test_custom_folder(self, settings, vault, notices):
        settings.folder = "Reading/Omnivore/"
        source = FakeSource([(_articles("a", 1), False)])

        _run(settings, source, vault)

        assert (vault.root / "Reading" / "Omnivore" / "a-0.md").exists()


class TestContent:
    def test_file_highlights_in_location_order(self, settings, vault, notices):
        from omnivore_sync.models import PageKind

        settings.highlight_order = "LOCATION"
        settings.highlight_template = "{{ text }}"
        article = make_article(
            slug="paper",
            page_kind=PageKind.FILE,
            highlights=[make_highlight(id=f"h{p}", quote=f"at-{p}", position=p)
                        for p in (30, 10, 20)],
        )
        source = FakeSource([([article], False)])

        _run(settings, source, vault)

        content = (vault.root / "Omnivore" / "paper.md").read_text()
        assert content.index("at-10") < content.index("at-20") < content.index("at-30")

    def test_note_matches_renderer(self, settings, vault, notices):
        from omnivore_sync.renderer import render_article

        article = make_article(highlights=[make_highlight()])
        source = FakeSource([([article], False)])

        _run(settings, source, vault)

        expected = render_article(
            article, article.highlights, settings.article_template,
            settings.highlight_template, settings.date_format,
        )
        assert (vault.root / "Omnivore" / "my-slug.md").read_text() == expected


class TestGuards:
    def test_missing_credential(self, settings, vault, notices):
        from omnivore_sync.sync import SyncOutcome

        settings.api_key = ""
        source = FakeSource([])

        outcome, state = _run(settings, source, vault)

        assert outcome is SyncOutcome.MISSING_CREDENTIAL
        assert "Missing Omnivore API key" in notices
        assert source.calls == []
        assert not vault.root.exists()
        assert state.last_sync_at == ""
        assert state.syncing is False

    def test_already_syncing_is_noop(self, settings, vault, notices):
        from omnivore_sync.state import State
        from omnivore_sync.sync import SyncOutcome

        state = State()
        state.begin_sync()
        source = FakeSource([(_articles("a", 1), False)])

        outcome, _ = _run(settings, source, vault, state)

        assert outcome is SyncOutcome.ALREADY_SYNCING
        assert source.calls == []
        assert not vault.root.exists()
        assert state.syncing is True

    def test_reentrant_call_during_run(self, settings, vault, notices):
        from omnivore_sync.state import State
        from omnivore_sync.sync import SyncOutcome, run_sync

        state = State()
        inner = {}
        inner_source = FakeSource([(_articles("x", 1), False)])

        def source(*args):
            inner["outcome"] = run_sync(
                settings, state, fetch_page=inner_source, vault=vault, now=lambda: START,
            )
            return _articles("a", 1), False, 0

        outcome, _ = _run(settings, source, vault, state)

        assert inner["outcome"] is SyncOutcome.ALREADY_SYNCING
        assert inner_source.calls == []
        assert outcome is SyncOutcome.COMPLETED
        assert not (vault.root / "Omnivore" / "x-0.md").exists()

    def test_flag_persisted_during_run(self, settings, vault, notices):
        from omnivore_sync.state import State

        seen = []

        def source(*args):
            seen.append(State().syncing)
            return [], False, 0

        _, state = _run(settings, source, vault)

        assert seen == [True]
        assert State().syncing is False

    def test_stale_flag_is_cleared(self, settings, vault, notices, monkeypatch):
        import omnivore_sync.state as state_mod
        from omnivore_sync.state import State
        from omnivore_sync.sync import SyncOutcome

        monkeypatch.setattr(state_mod, "_pid_alive", lambda pid: False)
        state = State()
        state._data.update(syncing=True, syncing_pid=999999)
        source = FakeSource([([], False)])

        outcome, _ = _run(settings, source, vault, state)

        assert outcome is SyncOutcome.COMPLETED
        assert len(source.calls) == 1


class TestFailures:
    def test_fetch_failure_keeps_cursor(self, settings, vault, notices):
        from omnivore_sync.omnivore_client import OmnivoreError
        from omnivore_sync.state import State
        from omnivore_sync.sync import SyncOutcome

        state = State()
        state.last_sync_at = "2026-01-01T00:00:00+00:00"
        source = FakeSource([(_articles("a", 50), True), OmnivoreError("boom")])

        outcome, state = _run(settings, source, vault, state)

        assert outcome is SyncOutcome.FAILED
        assert state.last_sync_at == "2026-01-01T00:00:00+00:00"
        assert state.syncing is False
        assert "Failed to fetch articles" in notices
        # articles from the page before the failure are already written
        assert len(list((vault.root / "Omnivore").glob("*.md"))) == 50

    def test_network_error_keeps_cursor(self, settings, vault, notices):
        from omnivore_sync.sync import SyncOutcome

        source = FakeSource([requests.exceptions.ConnectionError("offline")])

        outcome, state = _run(settings, source, vault)

        assert outcome is SyncOutcome.FAILED
        assert state.last_sync_at == ""
        assert state.syncing is False

    def test_article_failure_is_skipped(self, settings, vault, notices, monkeypatch):
        from omnivore_sync.sync import SyncOutcome

        real_write = vault.write

        def write(path, content):
            if path.endswith("a-1.md"):
                raise OSError("disk full")
            return real_write(path, content)

        monkeypatch.setattr(vault, "write", write)
        source = FakeSource([(_articles("a", 3), True), (_articles("b", 2), False)])

        outcome, state = _run(settings, source, vault)

        assert outcome is SyncOutcome.PARTIAL
        assert len(source.calls) == 2
        written = sorted(p.name for p in (vault.root / "Omnivore").glob("*.md"))
        assert written == ["a-0.md", "a-2.md", "b-0.md", "b-1.md"]
        assert state.last_sync_at == ""
        assert state.syncing is False

    def test_bad_template_skips_articles(self, settings, vault, notices):
        from omnivore_sync.sync import SyncOutcome

        settings.article_template = "{% if %}"
        source = FakeSource([(_articles("a", 2), False)])

        outcome, state = _run(settings, source, vault)

        assert outcome is SyncOutcome.PARTIAL
        assert list((vault.root / "Omnivore").glob("*.md")) == []

    def test_template_runtime_error_skips_articles(self, settings, vault, notices):
        from omnivore_sync.sync import SyncOutcome

        settings.article_template = "{{ title + 1 }}"
        source = FakeSource([(_articles("a", 2), True), (_articles("b", 1), False)])

        outcome, state = _run(settings, source, vault)

        assert outcome is SyncOutcome.PARTIAL
        assert len(source.calls) == 2
        assert list((vault.root / "Omnivore").glob("*.md")) == []
        assert state.last_sync_at == ""
        assert state.syncing is False

    def test_unreadable_article_keeps_cursor(self, settings, vault, notices):
        from omnivore_sync.sync import SyncOutcome

        source = FakeSource([(_articles("a", 2), False, 1)])

        outcome, state = _run(settings, source, vault)

        assert outcome is SyncOutcome.PARTIAL
        assert len(list((vault.root / "Omnivore").glob("*.md"))) == 2
        assert state.last_sync_at == ""
        assert "🔖 Articles fetched, 1 could not be saved" in notices

    def test_folder_outside_vault_fails(self, settings, vault, notices):
        from omnivore_sync.sync import SyncOutcome

        settings.folder = "../outside"
        source = FakeSource([(_articles("a", 1), False)])

        outcome, state = _run(settings, source, vault)

        assert outcome is SyncOutcome.FAILED
        assert source.calls == []
        assert "Failed to create folder '../outside'" in notices
        assert state.last_sync_at == ""
        assert state.syncing is False

    def test_unexpected_error_clears_flag_and_raises(self, settings, vault, notices):
        from omnivore_sync.state import State

        source = FakeSource([RuntimeError("bug")])

        with pytest.raises(RuntimeError):
            _run(settings, source, vault)

        assert State().syncing is False

    def test_cursor_never_decreases(self, settings, vault, notices):
        from omnivore_sync.state import State

        state = State()
        state.last_sync_at = "2030-01-01T00:00:00+00:00"
        source = FakeSource([([], False)])

        _run(settings, source, vault, state)

        assert state.last_sync_at == "2030-01-01T00:00:00+00:00"
