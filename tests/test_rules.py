from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

from blogapi.services.rules import prepare_post_changes

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
EARLIER = datetime(2024, 4, 1, 9, 30, tzinfo=timezone.utc)


def test_new_post_defaults_to_draft() -> None:
    changes = prepare_post_changes(None, {"title": "t", "body": "b"}, NOW)
    assert changes["status"] == "draft"
    assert changes["published_at"] is None


def test_publishing_stamps_the_clock() -> None:
    draft = SimpleNamespace(status="draft", published_at=None)
    assert prepare_post_changes(draft, {"status": "published"}, NOW)["published_at"] == NOW


def test_explicit_publication_date_is_kept() -> None:
    changes = prepare_post_changes(None, {"status": "published", "published_at": EARLIER}, NOW)
    assert changes["published_at"] == EARLIER


def test_republishing_keeps_the_original_date() -> None:
    published = SimpleNamespace(status="published", published_at=EARLIER)
    changes = prepare_post_changes(published, {"status": "published", "title": "new"}, NOW)
    assert "published_at" not in changes
    assert changes["title"] == "new"


def test_unpublishing_clears_the_date() -> None:
    published = SimpleNamespace(status="published", published_at=EARLIER)
    assert prepare_post_changes(published, {"status": "draft"}, NOW)["published_at"] is None


def test_explicit_null_fields_are_ignored() -> None:
    draft = SimpleNamespace(status="draft", published_at=None)
    changes = prepare_post_changes(draft, {"title": None, "status": None, "body": "b"}, NOW)
    assert changes == {"body": "b"}
