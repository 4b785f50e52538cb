from datetime import datetime, timezone

import pytest


@pytest.fixture(autouse=True)
def isolate_state(tmp_path, monkeypatch):
    """Point the state module at a temp directory so tests don't touch real state."""
    import omnivore_sync.state as state_mod

    monkeypatch.setattr(state_mod, "STATE_PATH", tmp_path / "state" / "state.json")
    yield tmp_path


@pytest.fixture
def notices(monkeypatch):
    """Capture user-facing notices instead of printing them."""
    from omnivore_sync import notify

    sent = []
    monkeypatch.setattr(notify, "send", sent.append)
    return sent


def make_highlight(id="h1", quote="A quote", position=None, patch="", annotation=None):
    from omnivore_sync.models import Highlight

    return Highlight(
        id=id,
        quote=quote,
        updated_at=datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc),
        patch=patch,
        annotation=annotation,
        position_in_file=position,
    )


def make_article(slug="my-slug", highlights=None, page_kind=None, **kwargs):
    from omnivore_sync.models import Article, PageKind

    fields = dict(
        id=f"id-{slug}",
        slug=slug,
        title="Title",
        original_url="https://www.example.com/post",
        saved_at=datetime(2026, 3, 4, 8, 30, tzinfo=timezone.utc),
        page_kind=page_kind or PageKind.WEB,
        highlights=highlights or [],
    )
    fields.update(kwargs)
    return Article(**fields)
