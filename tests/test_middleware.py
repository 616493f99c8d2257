"""Tests for pagestash.middleware: serving hits and capturing misses over WSGI."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from pagestash.context import ENVIRON_KEY
from pagestash.engine import CacheEngine
from pagestash.middleware import HANDLER_HEADER, PageCacheMiddleware, browser_cache_headers
from pagestash.models import CacheSettings


IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148 Safari/604.1"
DESKTOP_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"


class PageApp:
    """Minimal WSGI application returning a fixed page and counting calls."""

    def __init__(
        self,
        body: bytes,
        status: str = "200 OK",
        content_type: str = "text/html; charset=utf-8",
        extra_headers: Optional[list] = None,
    ) -> None:
        self.body = body
        self.status = status
        self.content_type = content_type
        self.extra_headers = extra_headers or []
        self.calls = 0
        self.closed = False
        self.on_request = None

    def __call__(self, environ, start_response):
        self.calls += 1
        if self.on_request is not None:
            self.on_request(environ)
        headers = [("Content-Type", self.content_type), ("Content-Length", str(len(self.body)))]
        start_response(self.status, headers + self.extra_headers)
        return ClosingIterable([self.body[:10], self.body[10:]], self)


class ClosingIterable:
    def __init__(self, chunks: list, app: PageApp) -> None:
        self.chunks = chunks
        self.app = app

    def __iter__(self):
        return iter(self.chunks)

    def close(self) -> None:
        self.app.closed = True


def _call(middleware, path: str = "/blog/", method: str = "GET", ua: str = DESKTOP_UA, **extra):
    environ = {
        "REQUEST_METHOD": method,
        "HTTP_HOST": "example.com",
        "PATH_INFO": path,
        "QUERY_STRING": "",
        "HTTP_USER_AGENT": ua,
        **extra,
    }
    response: dict = {}

    def start_response(status, headers, exc_info=None):
        response["status"] = status
        response["headers"] = dict(headers)
        return lambda data: None

    response["body"] = b"".join(middleware(environ, start_response))
    response["environ"] = environ
    return response


@pytest.fixture
def engine(cache_root: Path) -> CacheEngine:
    engine = CacheEngine(
        CacheSettings(mobile_cache_enabled=True, excluded_url_paths=(), excluded_cookies=()),
        cache_root,
    )
    engine.install()
    return engine


# ---------------------------------------------------------------------------
# Miss then hit
# ---------------------------------------------------------------------------


class TestMissThenHit:
    def test_miss_captures_then_hit_serves(
        self, engine: CacheEngine, cache_root: Path, html_page: bytes
    ) -> None:
        app = PageApp(html_page)
        middleware = PageCacheMiddleware(app, engine)

        first = _call(middleware)
        assert first["status"] == "200 OK"
        assert first["body"] == html_page
        assert HANDLER_HEADER not in first["headers"]
        assert app.closed is True
        assert (cache_root / "example.com" / "blog" / "index.html").is_file()

        second = _call(middleware)
        assert app.calls == 1
        assert second["headers"][HANDLER_HEADER] == "pagestash (desktop)"
        assert second["headers"]["Content-Type"] == "text/html; charset=UTF-8"
        assert second["body"].startswith(html_page)
        assert second["headers"]["Content-Length"] == str(len(second["body"]))

    def test_mobile_variant(self, engine: CacheEngine, html_page: bytes) -> None:
        middleware = PageCacheMiddleware(PageApp(html_page), engine)
        _call(middleware, ua=IPHONE_UA)
        hit = _call(middleware, ua=IPHONE_UA)
        assert hit["headers"][HANDLER_HEADER] == "pagestash (mobile)"
        desktop = _call(middleware)
        assert HANDLER_HEADER not in desktop["headers"]

    def test_content_length_follows_minified_body(self, cache_root: Path, html_page: bytes) -> None:
        engine = CacheEngine(
            CacheSettings(minify_html_enabled=True, excluded_url_paths=()), cache_root
        )
        response = _call(PageCacheMiddleware(PageApp(html_page), engine))
        assert len(response["body"]) < len(html_page)
        assert response["headers"]["Content-Length"] == str(len(response["body"]))

    def test_context_exposed_to_application(self, engine: CacheEngine, html_page: bytes) -> None:
        app = PageApp(html_page)
        seen = []
        app.on_request = lambda environ: seen.append(environ[ENVIRON_KEY])
        _call(PageCacheMiddleware(app, engine))
        assert seen[0].uri == "/blog/"


# ---------------------------------------------------------------------------
# Pass-through
# ---------------------------------------------------------------------------


class TestPassThrough:
    def test_post_not_captured(self, engine: CacheEngine, cache_root: Path, html_page: bytes) -> None:
        app = PageApp(html_page)
        response = _call(PageCacheMiddleware(app, engine), method="POST")
        assert response["body"] == html_page
        assert not (cache_root / "example.com").exists()

    def test_logged_in_not_captured(self, engine: CacheEngine, cache_root: Path, html_page: bytes) -> None:
        middleware = PageCacheMiddleware(PageApp(html_page), engine)
        _call(middleware, HTTP_COOKIE="sessionid=abc")
        assert not (cache_root / "example.com").exists()

    def test_non_200_not_captured(self, engine: CacheEngine, cache_root: Path, html_page: bytes) -> None:
        middleware = PageCacheMiddleware(PageApp(html_page, status="404 Not Found"), engine)
        response = _call(middleware)
        assert response["status"] == "404 Not Found"
        assert not (cache_root / "example.com").exists()

    def test_non_html_not_captured(self, engine: CacheEngine, cache_root: Path, html_page: bytes) -> None:
        middleware = PageCacheMiddleware(
            PageApp(html_page, content_type="application/json"), engine
        )
        _call(middleware)
        assert not (cache_root / "example.com").exists()

    def test_flag_set_during_render(self, engine: CacheEngine, cache_root: Path, html_page: bytes) -> None:
        app = PageApp(html_page)

        def mark_404(environ) -> None:
            environ[ENVIRON_KEY].is_404 = True

        app.on_request = mark_404
        _call(PageCacheMiddleware(app, engine))
        assert not (cache_root / "example.com").exists()

    def test_do_not_cache(self, engine: CacheEngine, cache_root: Path, html_page: bytes) -> None:
        app = PageApp(html_page)

        def opt_out(environ) -> None:
            environ[ENVIRON_KEY].do_not_cache = True

        app.on_request = opt_out
        _call(PageCacheMiddleware(app, engine))
        assert not (cache_root / "example.com").exists()


# ---------------------------------------------------------------------------
# Browser cache headers
# ---------------------------------------------------------------------------


class TestBrowserCacheHeaders:
    def test_header_values(self) -> None:
        headers = dict(browser_cache_headers(3600, now=0))
        assert headers["Cache-Control"] == "public, max-age=3600"
        assert headers["Expires"] == "Thu, 01 Jan 1970 01:00:00 GMT"

    def test_zero_ttl(self) -> None:
        assert browser_cache_headers(0) == []

    def test_added_when_enabled(self, cache_root: Path, html_page: bytes) -> None:
        settings = CacheSettings(
            browser_cache_enabled=True, browser_cache_ttl=600, excluded_url_paths=()
        )
        middleware = PageCacheMiddleware(PageApp(html_page), CacheEngine(settings, cache_root))
        miss = _call(middleware)
        hit = _call(middleware)
        assert miss["headers"]["Cache-Control"] == "public, max-age=600"
        assert hit["headers"]["Cache-Control"] == "public, max-age=600"

    def test_application_cache_control_kept(self, cache_root: Path, html_page: bytes) -> None:
        settings = CacheSettings(browser_cache_enabled=True, excluded_url_paths=())
        app = PageApp(html_page, extra_headers=[("Cache-Control", "no-store")])
        response = _call(PageCacheMiddleware(app, CacheEngine(settings, cache_root)))
        assert response["headers"]["Cache-Control"] == "no-store"

    def test_absent_when_disabled(self, engine: CacheEngine, html_page: bytes) -> None:
        middleware = PageCacheMiddleware(PageApp(html_page), engine)
        _call(middleware)
        assert "Cache-Control" not in _call(middleware)["headers"]
