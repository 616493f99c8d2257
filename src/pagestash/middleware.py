"""WSGI interceptor that serves cache hits and captures cacheable misses.

Wrap any WSGI application::

    from pagestash.engine import CacheEngine
    from pagestash.middleware import PageCacheMiddleware

    application = PageCacheMiddleware(application, CacheEngine.from_config())

For each request a :class:`~pagestash.context.RequestContext` is built and
stored as ``environ["pagestash.context"]`` so views can flag the response
(``ctx.is_404 = True``, ``ctx.do_not_cache = True`` ...) while rendering.

On a miss the full body is buffered; a ``200 text/html`` response that is
still cacheable after rendering goes through
:meth:`~pagestash.engine.CacheEngine.capture_and_write`, and whatever it
returns is what the client receives.
"""

from __future__ import annotations

import logging
import time
from email.utils import formatdate
from typing import Any, Callable, Iterable, Optional

from pagestash.context import ENVIRON_KEY, RequestContext
from pagestash.engine import CacheEngine, CacheHit

logger = logging.getLogger(__name__)

HANDLER_HEADER = "X-Cache-Handler"
HTML_CONTENT_TYPE = "text/html; charset=UTF-8"

StartResponse = Callable[..., Callable[[bytes], Any]]


def browser_cache_headers(ttl: int, now: Optional[float] = None) -> list[tuple[str, str]]:
    """``Cache-Control``/``Expires`` headers for a positive TTL in seconds."""
    if ttl <= 0:
        return []
    now = time.time() if now is None else now
    return [
        ("Cache-Control", f"public, max-age={ttl}"),
        ("Expires", formatdate(now + ttl, usegmt=True)),
    ]


def _header(headers: list[tuple[str, str]], name: str) -> Optional[str]:
    lname = name.lower()
    for key, value in headers:
        if key.lower() == lname:
            return value
    return None


def _without(headers: list[tuple[str, str]], *names: str) -> list[tuple[str, str]]:
    drop = {n.lower() for n in names}
    return [(k, v) for k, v in headers if k.lower() not in drop]


class PageCacheMiddleware:
    """Serve stored pages and populate the cache on misses.

    Args:
        app: The wrapped WSGI application.
        engine: The cache engine to consult.
    """

    def __init__(self, app: Callable[..., Iterable[bytes]], engine: CacheEngine) -> None:
        self.app = app
        self.engine = engine

    def __call__(self, environ: dict, start_response: StartResponse) -> Iterable[bytes]:
        ctx = RequestContext.from_environ(environ)
        environ[ENVIRON_KEY] = ctx

        if not self.engine.is_cacheable(ctx):
            return self.app(environ, start_response)

        hit = self.engine.lookup(ctx)
        if hit is not None:
            return self._serve_hit(hit, start_response)
        return self._capture_miss(environ, ctx, start_response)

    def _browser_headers(self) -> list[tuple[str, str]]:
        settings = self.engine.settings
        if not settings.browser_cache_enabled:
            return []
        return browser_cache_headers(settings.browser_cache_ttl)

    def _serve_hit(self, hit: CacheHit, start_response: StartResponse) -> list[bytes]:
        logger.debug("Serving %s from cache", hit.path)
        headers = [
            ("Content-Type", HTML_CONTENT_TYPE),
            ("Content-Length", str(len(hit.body))),
            (HANDLER_HEADER, f"pagestash ({hit.device.value})"),
        ]
        headers.extend(self._browser_headers())
        start_response("200 OK", headers)
        return [hit.body]

    def _capture_miss(
        self, environ: dict, ctx: RequestContext, start_response: StartResponse
    ) -> list[bytes]:
        captured: dict[str, Any] = {}
        chunks: list[bytes] = []

        def buffering_start_response(status, headers, exc_info=None):
            captured["status"] = status
            captured["headers"] = list(headers)
            captured["exc_info"] = exc_info
            return chunks.append

        result = self.app(environ, buffering_start_response)
        try:
            for chunk in result:
                chunks.append(chunk)
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()

        status: str = captured.get("status", "500 Internal Server Error")
        headers: list[tuple[str, str]] = captured.get("headers", [])
        body = b"".join(chunks)

        content_type = (_header(headers, "Content-Type") or "").lower()
        if (
            status.startswith("200")
            and content_type.startswith("text/html")
            and self.engine.is_cacheable(ctx)
        ):
            body = self.engine.capture_and_write(body, ctx)
            headers = _without(headers, "Content-Length")
            headers.append(("Content-Length", str(len(body))))
            if _header(headers, "Cache-Control") is None:
                headers.extend(self._browser_headers())

        start_response(status, headers, captured.get("exc_info"))
        return [body]
