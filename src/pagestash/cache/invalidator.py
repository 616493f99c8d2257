"""Cache invalidation.

Invalidation is a full flush: any content change that can affect rendered
pages removes every artifact.  :func:`purge_artifact` is the narrow escape
hatch for callers that know exactly which URL went stale.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from pagestash.cache.keys import DEFAULT_DOCUMENT, CacheKeyResolver
from pagestash.events import EventDispatcher, EventType
from pagestash.models import ContentChange, ContentEventType

logger = logging.getLogger(__name__)

# Events that always flush the whole cache.
FLUSH_EVENTS = frozenset(
    {
        ContentEventType.POST_PUBLISHED,
        ContentEventType.POST_TRASHED,
        ContentEventType.POST_DELETED,
        ContentEventType.THEME_SWITCHED,
        ContentEventType.PLUGIN_ACTIVATED,
        ContentEventType.PLUGIN_DEACTIVATED,
        ContentEventType.MANUAL_CLEAR,
    }
)

APPROVED_STATUS = "approved"
_APPROVED_VALUES = (1, "1", "approve", APPROVED_STATUS)


def ensure_sentinel(cache_root: Path) -> Path:
    """Create the empty root ``index.html`` that blocks directory listing."""
    sentinel = Path(cache_root) / DEFAULT_DOCUMENT
    if not sentinel.exists():
        sentinel.parent.mkdir(parents=True, exist_ok=True)
        sentinel.write_bytes(b"")
    return sentinel


def clear_all(cache_root: Path) -> int:
    """Delete everything below *cache_root*, keeping the root itself.

    Entries are removed children-first so every directory is empty by the
    time it is removed.  Individual failures are logged and skipped.

    Returns:
        The number of files removed.
    """
    root = Path(cache_root)
    if not root.is_dir():
        ensure_sentinel(root)
        return 0

    removed = 0
    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        current = Path(dirpath)
        for name in filenames:
            path = current / name
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Cannot delete %s: %s", path, exc)
                continue
            removed += 1
        for name in dirnames:
            path = current / name
            try:
                if path.is_symlink():
                    path.unlink()
                else:
                    path.rmdir()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Cannot remove directory %s: %s", path, exc)

    try:
        ensure_sentinel(root)
    except OSError as exc:
        logger.warning("Cannot recreate sentinel in %s: %s", root, exc)
    logger.info("Cleared %d cached file(s) from %s", removed, root)
    return removed


def purge_artifact(resolver: CacheKeyResolver, host: Optional[str], uri: str) -> int:
    """Remove the desktop and mobile artifacts cached for one URL.

    Returns:
        The number of artifacts removed.
    """
    removed = 0
    candidates = {
        resolver.resolve(host, uri, is_mobile=False, mobile_cache_enabled=False),
        resolver.resolve(host, uri, is_mobile=True, mobile_cache_enabled=True),
    }
    for path in candidates:
        if path is None:
            continue
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Cannot purge %s: %s", path, exc)
            continue
        removed += 1
        logger.debug("Purged %s", path)
    return removed


def is_approved(value: object) -> bool:
    return value in _APPROVED_VALUES


def should_flush(change: ContentChange) -> bool:
    """Return True if *change* invalidates cached pages."""
    if change.event in FLUSH_EVENTS:
        return True
    if change.event in (ContentEventType.COMMENT_POSTED, ContentEventType.COMMENT_EDITED):
        return is_approved(change.comment_approved)
    if change.event == ContentEventType.COMMENT_STATUS_CHANGED:
        if change.old_status == change.new_status:
            return False
        return APPROVED_STATUS in (change.old_status, change.new_status)
    return False


class Invalidator:
    """React to content-change notifications with a full flush.

    Args:
        cache_root: The cache root directory.
        dispatcher: When given, ``CACHE_CLEARED`` is dispatched after every
            flush with the number of removed files as payload.
    """

    def __init__(self, cache_root: Path, dispatcher: Optional[EventDispatcher] = None) -> None:
        self._cache_root = Path(cache_root)
        self._dispatcher = dispatcher

    def clear(self) -> int:
        removed = clear_all(self._cache_root)
        if self._dispatcher is not None:
            self._dispatcher.dispatch(EventType.CACHE_CLEARED, removed)
        return removed

    def on_content_change(self, change: ContentChange) -> bool:
        """Flush the cache if *change* warrants it.

        Returns:
            True if the cache was cleared.
        """
        if not should_flush(change):
            logger.debug("Ignoring %s: no flush needed", change.event.value)
            return False
        logger.debug("Flushing cache on %s", change.event.value)
        self.clear()
        return True
