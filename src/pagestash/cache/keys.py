"""Cache key derivation: request attributes to an artifact path.

A cache key is the ``(host, uri, device class)`` tuple.  The resolver maps
it deterministically onto ``<cache_root>/<host>[/mobile]/<uri>`` and refuses
anything that could escape the cache root.  An invalid key is represented by
``None``; callers treat it as "do not cache", never as an error.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Optional

from pagestash.context import RequestContext
from pagestash.models import DeviceClass

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT = "index.html"
MOBILE_SEGMENT = "mobile"

# Top-level names below the cache root that belong to pagestash itself.
RESERVED_HOST_DIRS = frozenset({"config", "private"})

# Widely deployed mobile-detection signature; third-party tooling relies on
# this exact classification, so keep it byte-identical.
MOBILE_UA_PATTERN = re.compile(
    r"(android|bb\d+|meego).+mobile|avantgo|bada\/|blackberry|blazer|compal|elaine|fennec"
    r"|hiptop|iemobile|ip(hone|od)|iris|kindle|lge |maemo|midp|mmp|mobile.+firefox"
    r"|netfront|opera m(ob|in)i|palm( os)?|phone|p(ixi|rim)|plucker|pocket|psp"
    r"|series(4|6)0|symbian|treo|up\.(browser|link)|vodafone|wap|windows ce|xda|xiino",
    re.IGNORECASE,
)

# Characters dropped from the URI; the serving side applies the same filter.
_UNSAFE_URI_CHARS = re.compile(r"[ '\"?&<>()]")
_PORT_SUFFIX = re.compile(r":\d*$")


def is_mobile_user_agent(user_agent: Optional[str]) -> bool:
    """Return True if *user_agent* matches the mobile-detection signature."""
    if not user_agent:
        return False
    return MOBILE_UA_PATTERN.search(user_agent) is not None


def device_class(user_agent: Optional[str], mobile_cache_enabled: bool) -> DeviceClass:
    """Classify a request into the device class its artifact is stored under."""
    if mobile_cache_enabled and is_mobile_user_agent(user_agent):
        return DeviceClass.MOBILE
    return DeviceClass.DESKTOP


def sanitize_uri(request_uri: str) -> str:
    """Drop the query string and the characters the serving side filters out."""
    return _UNSAFE_URI_CHARS.sub("", request_uri.split("?", 1)[0])


class CacheKeyResolver:
    """Derive artifact paths below a cache root.

    Args:
        cache_root: Directory holding every artifact.
        host_override: Deployment-level host that wins over the request's
            ``Host`` header.
    """

    def __init__(self, cache_root: Path, host_override: Optional[str] = None) -> None:
        self._cache_root = Path(cache_root)
        self._host_override = host_override

    @property
    def cache_root(self) -> Path:
        return self._cache_root

    def resolve_host(self, host_header: Optional[str]) -> Optional[str]:
        """Pick the host directory name for a request.

        The override wins; otherwise the header is used with any ``:port``
        suffix removed.  Returns ``None`` when no usable host remains,
        including names that would land outside a per-host directory
        (``.``, dot-prefixed names) or on a reserved top-level directory.
        """
        raw = self._host_override or host_header or ""
        host = _PORT_SUFFIX.sub("", raw.strip()).lower()
        if not host or "/" in host or "\\" in host or ".." in host or "\x00" in host:
            return None
        if host.startswith(".") or host in RESERVED_HOST_DIRS:
            logger.debug("Rejecting reserved host name %r", host)
            return None
        return host

    def resolve(
        self,
        host: Optional[str],
        request_uri: str,
        is_mobile: bool,
        mobile_cache_enabled: bool,
    ) -> Optional[Path]:
        """Map a cache key onto its artifact path.

        Args:
            host: Raw host header value (port allowed).
            request_uri: Request URI, query string included.
            is_mobile: Whether the user agent classified as mobile.
            mobile_cache_enabled: Whether a separate mobile variant is kept.

        Returns:
            The absolute artifact path, or ``None`` for an invalid key
            (traversal token, missing host, path escaping the root).
        """
        if ".." in request_uri:
            logger.debug("Rejecting URI with traversal token: %r", request_uri)
            return None

        resolved_host = self.resolve_host(host)
        if resolved_host is None:
            logger.debug("No usable host for %r", request_uri)
            return None

        uri = sanitize_uri(request_uri)
        if not uri.startswith("/"):
            uri = "/" + uri

        base = self._cache_root / resolved_host
        if is_mobile and mobile_cache_enabled:
            base = base / MOBILE_SEGMENT

        relative = uri.lstrip("/")
        if uri.endswith("/"):
            relative = relative + DEFAULT_DOCUMENT
        candidate = base / relative if relative else base / DEFAULT_DOCUMENT

        host_root = os.path.normpath(os.path.abspath(self._cache_root / resolved_host))
        target = os.path.normpath(os.path.abspath(candidate))
        if os.path.commonpath([host_root, target]) != host_root or target == host_root:
            logger.debug("Artifact path %s escapes host directory %s", target, host_root)
            return None
        return Path(target)

    def resolve_request(
        self, ctx: RequestContext, mobile_cache_enabled: bool
    ) -> Optional[Path]:
        """Resolve the artifact path for a request context."""
        return self.resolve(
            ctx.host,
            ctx.uri,
            is_mobile_user_agent(ctx.user_agent),
            mobile_cache_enabled,
        )
