"""Capture a rendered page and persist it as a cache artifact.

The pipeline is the last step of a cacheable miss: the full response body
is handed to :meth:`CapturePipeline.capture_and_write`, optionally minified,
and written below the cache root with a one-line diagnostic signature
appended.  Persistence is best-effort; any I/O failure is logged and the
page is still delivered.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout

from pagestash.cache.exclusions import CONFIG_DIRNAME
from pagestash.cache.keys import CacheKeyResolver, is_mobile_user_agent
from pagestash.cache.minify import minify_html
from pagestash.config import atomic_write
from pagestash.context import RequestContext
from pagestash.models import CacheSettings, DeviceClass

logger = logging.getLogger(__name__)

MIN_PAGE_BYTES = 255
LOCK_DIRNAME = "locks"
LOCK_TIMEOUT = 10.0

_CLOSING_HTML = re.compile(rb"</html>", re.IGNORECASE)
_SIGNATURE = re.compile(
    rb"\n<!-- pagestash @ \d{2}:\d{2}:\d{2} on \d{4}-\d{2}-\d{2} \((?:desktop|mobile)\) -->\Z"
)


def cache_signature(is_mobile: bool, now: Optional[datetime] = None) -> bytes:
    """Build the diagnostic comment appended to every artifact."""
    now = now or datetime.now()
    device = DeviceClass.MOBILE if is_mobile else DeviceClass.DESKTOP
    stamp = now.strftime("%H:%M:%S on %Y-%m-%d")
    return f"<!-- pagestash @ {stamp} ({device.value}) -->".encode("ascii")


def strip_signature(payload: bytes) -> bytes:
    """Remove a trailing diagnostic signature, if present."""
    return _SIGNATURE.sub(b"", payload)


def read_artifact(path: Path) -> Optional[bytes]:
    """Read an artifact from disk, or ``None`` if it is missing or unreadable."""
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("Cannot read artifact %s: %s", path, exc)
        return None


def looks_like_page(buffer: bytes) -> bool:
    """Return True if *buffer* is a complete HTML document worth caching."""
    return len(buffer) >= MIN_PAGE_BYTES and _CLOSING_HTML.search(buffer) is not None


class CapturePipeline:
    """Transform and persist response bodies.

    Args:
        settings: Settings snapshot (minify flags, mobile variant).
        resolver: Key resolver bound to the cache root.
        lock_dir: Directory for per-artifact lock files; defaults to
            ``<cache_root>/config/locks``.
    """

    def __init__(
        self,
        settings: CacheSettings,
        resolver: CacheKeyResolver,
        lock_dir: Optional[Path] = None,
    ) -> None:
        self._settings = settings
        self._resolver = resolver
        self._lock_dir = (
            Path(lock_dir)
            if lock_dir is not None
            else resolver.cache_root / CONFIG_DIRNAME / LOCK_DIRNAME
        )

    def transform(self, buffer: bytes) -> bytes:
        """Apply the configured minification to *buffer*."""
        if not self._settings.minify_html_enabled:
            return buffer
        return minify_html(
            buffer,
            css=self._settings.minify_inline_css,
            js=self._settings.minify_inline_js,
        )

    def capture_and_write(self, buffer: bytes, ctx: RequestContext) -> bytes:
        """Persist *buffer* as the artifact for *ctx* when it is a full page.

        Args:
            buffer: The complete response body.
            ctx: The request being answered.

        Returns:
            The body to send to the client: the transformed payload, which is
            exactly what later hits will serve (minus the signature), or
            *buffer* unchanged when it is not a cacheable page.
        """
        if not looks_like_page(buffer):
            logger.debug("Skipping capture for %s: not a full HTML page", ctx.uri)
            return buffer

        payload = self.transform(buffer)

        mobile = self._settings.mobile_cache_enabled and is_mobile_user_agent(ctx.user_agent)
        path = self._resolver.resolve(
            ctx.host, ctx.uri, mobile, self._settings.mobile_cache_enabled
        )
        if path is None:
            return payload

        self.write_artifact(path, payload + b"\n" + cache_signature(mobile))
        return payload

    def write_artifact(self, path: Path, data: bytes) -> bool:
        """Write *data* to *path* under an exclusive lock.

        Returns:
            True on success.  Failures are logged, never raised.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._lock_dir.mkdir(parents=True, exist_ok=True)
            with FileLock(str(self._lock_file_for(path)), timeout=LOCK_TIMEOUT):
                atomic_write(path, data)
        except Timeout:
            logger.warning("Timed out waiting for lock on %s", path)
            return False
        except OSError as exc:
            logger.warning("Cannot write artifact %s: %s", path, exc)
            return False
        logger.debug("Wrote artifact %s (%d bytes)", path, len(data))
        return True

    def _lock_file_for(self, path: Path) -> Path:
        digest = hashlib.sha256(str(path).encode("utf-8")).hexdigest()[:24]
        return self._lock_dir / f"artifact.{digest}.lock"
