"""Per-request context consumed by the cacheability policy and key resolver.

:class:`RequestContext` carries the request attributes the engine needs
(method, host, URI, user agent, cookies) together with the flags only the
application knows once it has routed the request (search page, 404,
preview, ...).  The WSGI middleware builds one from the environ with
:meth:`RequestContext.from_environ` and exposes it to the application as
``environ["pagestash.context"]`` so that views can set flags such as
``do_not_cache`` while rendering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from http.cookies import CookieError, SimpleCookie
from typing import Any, Mapping

ENVIRON_KEY = "pagestash.context"

# Cookie-name substrings that mark an authenticated session or an unlocked
# password-protected page.
SESSION_COOKIE_MARKERS = ("logged_in", "sessionid")
PASSWORD_COOKIE_MARKERS = ("postpass",)

# Path fragments that identify framework-internal requests.
ADMIN_PATH_MARKERS = ("/admin/",)
AJAX_PATH_MARKERS = ("admin-ajax",)
CRON_PATH_MARKERS = ("/cron",)
REST_PATH_MARKERS = ("/api/", "/wp-json/")


@dataclass
class RequestContext:
    """Mutable request description threaded through the cache engine.

    Attributes:
        method: HTTP method, upper-case.
        host: Raw ``Host`` header (may include a port).
        uri: Request URI including any query string.
        user_agent: Raw ``User-Agent`` header.
        cookie_header: Raw ``Cookie`` header, used by exclusion matching.
        cookies: Parsed cookie names mapped to values.
        is_logged_in: Request belongs to an authenticated session.
        is_admin: Administrative screen.
        is_search: Search results page.
        is_404: Not-found response.
        is_feed: RSS/Atom feed.
        is_trackback: Trackback endpoint.
        is_robots: ``robots.txt`` response.
        is_preview: Draft preview.
        is_embed: oEmbed response.
        is_ajax: Asynchronous framework request.
        is_cron: Scheduler request.
        is_rest: Internal REST request.
        is_password_protected: Content behind a password prompt.
        do_not_cache: Explicit opt-out set by the application.
    """

    method: str = "GET"
    host: str = ""
    uri: str = "/"
    user_agent: str = ""
    cookie_header: str = ""
    cookies: dict[str, str] = field(default_factory=dict)
    is_logged_in: bool = False
    is_admin: bool = False
    is_search: bool = False
    is_404: bool = False
    is_feed: bool = False
    is_trackback: bool = False
    is_robots: bool = False
    is_preview: bool = False
    is_embed: bool = False
    is_ajax: bool = False
    is_cron: bool = False
    is_rest: bool = False
    is_password_protected: bool = False
    do_not_cache: bool = False

    @property
    def path(self) -> str:
        """The URI without its query string."""
        return self.uri.split("?", 1)[0]

    @property
    def query_string(self) -> str:
        """The query string without the leading ``?`` (empty if absent)."""
        return self.uri.split("?", 1)[1] if "?" in self.uri else ""

    @property
    def query_keys(self) -> tuple[str, ...]:
        """Names of the query arguments, in request order."""
        return tuple(part.split("=", 1)[0] for part in self.query_string.split("&") if part)

    @property
    def cookie_names(self) -> tuple[str, ...]:
        """Cookie names sent with the request.

        Falls back to splitting the raw header when ``cookies`` is empty,
        which happens for headers the strict cookie parser rejects.
        """
        if self.cookies:
            return tuple(self.cookies)
        names = (part.split("=", 1)[0].strip() for part in self.cookie_header.split(";"))
        return tuple(name for name in names if name)

    @classmethod
    def from_environ(cls, environ: Mapping[str, Any]) -> RequestContext:
        """Build a context from a WSGI environ.

        Flags that can be derived from the request alone (session cookies,
        admin/ajax/cron/REST paths, ``preview`` and ``s`` query arguments)
        are set here; the rest default to ``False`` and are left for the
        application to fill in.

        Args:
            environ: The WSGI environ dict.

        Returns:
            A new :class:`RequestContext`.
        """
        path = environ.get("PATH_INFO", "") or "/"
        script = environ.get("SCRIPT_NAME", "") or ""
        query = environ.get("QUERY_STRING", "") or ""
        uri = script + path + (f"?{query}" if query else "")

        cookie_header = environ.get("HTTP_COOKIE", "") or ""
        cookies = _parse_cookies(cookie_header)
        query_keys = {part.split("=", 1)[0] for part in query.split("&") if part}

        return cls(
            method=(environ.get("REQUEST_METHOD", "GET") or "GET").upper(),
            host=environ.get("HTTP_HOST", "") or environ.get("SERVER_NAME", "") or "",
            uri=uri,
            user_agent=environ.get("HTTP_USER_AGENT", "") or "",
            cookie_header=cookie_header,
            cookies=cookies,
            is_logged_in=_has_marker(cookies, SESSION_COOKIE_MARKERS),
            is_password_protected=_has_marker(cookies, PASSWORD_COOKIE_MARKERS),
            is_admin=any(m in path for m in ADMIN_PATH_MARKERS),
            is_ajax=any(m in path for m in AJAX_PATH_MARKERS)
            or environ.get("HTTP_X_REQUESTED_WITH", "").lower() == "xmlhttprequest",
            is_cron=any(m in path for m in CRON_PATH_MARKERS),
            is_rest=any(m in path for m in REST_PATH_MARKERS),
            is_search="s" in query_keys,
            is_preview="preview" in query_keys,
            is_robots=path == "/robots.txt",
        )


def _parse_cookies(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header, returning an empty dict on malformed input."""
    if not header:
        return {}
    jar: SimpleCookie = SimpleCookie()
    try:
        jar.load(header)
    except CookieError:
        return {}
    return {name: morsel.value for name, morsel in jar.items()}


def _has_marker(cookies: Mapping[str, str], markers: tuple[str, ...]) -> bool:
    return any(marker in name for name in cookies for marker in markers)
