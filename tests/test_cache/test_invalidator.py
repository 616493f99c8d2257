"""Tests for pagestash.cache.invalidator: full flush, purge and event filtering."""

from __future__ import annotations

from pathlib import Path

import pytest

from pagestash.cache.invalidator import (
    Invalidator,
    clear_all,
    ensure_sentinel,
    is_approved,
    purge_artifact,
    should_flush,
)
from pagestash.cache.keys import CacheKeyResolver
from pagestash.events import EventDispatcher, EventType
from pagestash.models import ContentChange, ContentEventType


def _populate(root: Path) -> list[Path]:
    files = [
        root / "example.com" / "index.html",
        root / "example.com" / "blog" / "index.html",
        root / "example.com" / "mobile" / "blog" / "index.html",
        root / "other.example" / "feed",
        root / "config" / "exclusions.json",
    ]
    for path in files:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x")
    return files


# ---------------------------------------------------------------------------
# clear_all
# ---------------------------------------------------------------------------


class TestClearAll:
    def test_only_sentinel_remains(self, cache_root: Path) -> None:
        _populate(cache_root)
        removed = clear_all(cache_root)
        assert removed == 5
        assert [p.name for p in cache_root.iterdir()] == ["index.html"]
        assert (cache_root / "index.html").read_bytes() == b""

    def test_failed_delete_does_not_abort(
        self, cache_root: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        files = _populate(cache_root)
        stuck = files[1]
        real_unlink = Path.unlink

        def unlink(self, missing_ok=False):
            if self == stuck:
                raise PermissionError(13, "Permission denied", str(self))
            return real_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", unlink)

        removed = clear_all(cache_root)

        assert removed == 4
        assert stuck.exists()
        assert [p for p in files if p.exists()] == [stuck]
        assert (cache_root / "index.html").read_bytes() == b""

    def test_existing_sentinel_counted_and_recreated(self, cache_root: Path) -> None:
        ensure_sentinel(cache_root)
        assert clear_all(cache_root) == 1
        assert (cache_root / "index.html").exists()

    def test_empty_root(self, cache_root: Path) -> None:
        assert clear_all(cache_root) == 0
        assert (cache_root / "index.html").exists()

    def test_missing_root_is_created(self, tmp_path: Path) -> None:
        root = tmp_path / "fresh"
        assert clear_all(root) == 0
        assert (root / "index.html").exists()

    def test_symlinked_directory_not_followed(self, cache_root: Path, tmp_path: Path) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        keep = outside / "keep.html"
        keep.write_text("keep")
        (cache_root / "link").symlink_to(outside, target_is_directory=True)

        clear_all(cache_root)

        assert keep.exists()
        assert not (cache_root / "link").exists()

    def test_repopulate_after_clear(self, cache_root: Path) -> None:
        _populate(cache_root)
        clear_all(cache_root)
        page = cache_root / "example.com" / "blog" / "index.html"
        page.parent.mkdir(parents=True)
        page.write_bytes(b"<html></html>")
        files = sorted(p for p in cache_root.rglob("*") if p.is_file())
        assert files == [page, cache_root / "index.html"]


class TestEnsureSentinel:
    def test_creates_empty_file(self, cache_root: Path) -> None:
        sentinel = ensure_sentinel(cache_root)
        assert sentinel == cache_root / "index.html"
        assert sentinel.read_bytes() == b""

    def test_existing_file_untouched(self, cache_root: Path) -> None:
        (cache_root / "index.html").write_text("custom")
        ensure_sentinel(cache_root)
        assert (cache_root / "index.html").read_text() == "custom"


# ---------------------------------------------------------------------------
# purge_artifact
# ---------------------------------------------------------------------------


class TestPurgeArtifact:
    def test_removes_both_variants(self, cache_root: Path) -> None:
        files = _populate(cache_root)
        removed = purge_artifact(CacheKeyResolver(cache_root), "example.com", "/blog/")
        assert removed == 2
        assert not files[1].exists()
        assert not files[2].exists()
        assert files[0].exists()

    def test_nothing_cached(self, cache_root: Path) -> None:
        assert purge_artifact(CacheKeyResolver(cache_root), "example.com", "/blog/") == 0

    def test_invalid_key(self, cache_root: Path) -> None:
        assert purge_artifact(CacheKeyResolver(cache_root), "example.com", "/../x") == 0


# ---------------------------------------------------------------------------
# Event filtering
# ---------------------------------------------------------------------------


class TestShouldFlush:
    @pytest.mark.parametrize(
        "event",
        [
            ContentEventType.POST_PUBLISHED,
            ContentEventType.POST_TRASHED,
            ContentEventType.POST_DELETED,
            ContentEventType.THEME_SWITCHED,
            ContentEventType.PLUGIN_ACTIVATED,
            ContentEventType.PLUGIN_DEACTIVATED,
            ContentEventType.MANUAL_CLEAR,
        ],
    )
    def test_unconditional_events(self, event: ContentEventType) -> None:
        assert should_flush(ContentChange(event=event)) is True

    @pytest.mark.parametrize("approved", [1, "1", "approve", "approved"])
    def test_approved_comment(self, approved) -> None:
        change = ContentChange(event=ContentEventType.COMMENT_POSTED, comment_approved=approved)
        assert should_flush(change) is True

    @pytest.mark.parametrize("approved", [0, "0", "spam", "hold", None])
    def test_unapproved_comment(self, approved) -> None:
        change = ContentChange(event=ContentEventType.COMMENT_EDITED, comment_approved=approved)
        assert should_flush(change) is False

    @pytest.mark.parametrize(
        ("old", "new", "expected"),
        [
            ("unapproved", "approved", True),
            ("approved", "spam", True),
            ("approved", "approved", False),
            ("unapproved", "spam", False),
            ("spam", "trash", False),
        ],
    )
    def test_status_transition(self, old: str, new: str, expected: bool) -> None:
        change = ContentChange(
            event=ContentEventType.COMMENT_STATUS_CHANGED, old_status=old, new_status=new
        )
        assert should_flush(change) is expected

    def test_is_approved(self) -> None:
        assert is_approved("approved") is True
        assert is_approved(True) is True
        assert is_approved("yes") is False


class TestInvalidator:
    def test_flush_on_publish(self, cache_root: Path) -> None:
        _populate(cache_root)
        invalidator = Invalidator(cache_root)
        assert invalidator.on_content_change(
            ContentChange(event=ContentEventType.POST_PUBLISHED)
        ) is True
        assert [p.name for p in cache_root.iterdir()] == ["index.html"]

    def test_ignored_change_keeps_files(self, cache_root: Path) -> None:
        files = _populate(cache_root)
        invalidator = Invalidator(cache_root)
        change = ContentChange(event=ContentEventType.COMMENT_POSTED, comment_approved=0)
        assert invalidator.on_content_change(change) is False
        assert all(path.exists() for path in files)

    def test_dispatches_cache_cleared(self, cache_root: Path) -> None:
        _populate(cache_root)
        dispatcher = EventDispatcher()
        seen: list[int] = []
        dispatcher.register(EventType.CACHE_CLEARED, seen.append)

        Invalidator(cache_root, dispatcher).clear()

        assert seen == [5]
