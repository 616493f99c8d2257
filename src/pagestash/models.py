"""Canonical Pydantic models shared across all pagestash modules.

The models fall into three groups:

**Settings snapshot** -- :class:`CacheSettings`, an immutable view of
everything the engine reads.  It is loaded once per operation by
:mod:`pagestash.config` and passed explicitly into every component; the
engine never mutates it.

**Enumerations** -- :class:`Dialect`, :class:`ImageDeliveryMethod`,
:class:`NextGenFormat`, :class:`DeviceClass`, :class:`ContentEventType`.

**Results** -- :class:`RuleWriteResult`, :class:`SweepReport` and
:class:`ContentChange`, the typed values passed between the engine and its
callers.
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Enumerations ---


class Dialect(str, enum.Enum):
    """Target web-server configuration syntax for edge rules."""

    APACHE = "apache"
    NGINX = "nginx"


class ImageDeliveryMethod(str, enum.Enum):
    """How next-gen images reach the browser.

    ``PICTURE`` rewrites markup into ``<picture>`` elements inside the
    application; ``REWRITE`` leaves markup alone and lets the web server
    negotiate the format, which is the only mode that emits edge rules.
    """

    PICTURE = "picture"
    REWRITE = "rewrite"


class NextGenFormat(str, enum.Enum):
    """Pre-generated sibling image format served on negotiation."""

    WEBP = "webp"
    AVIF = "avif"


class DeviceClass(str, enum.Enum):
    """Device class component of a cache key."""

    DESKTOP = "desktop"
    MOBILE = "mobile"


class ContentEventType(str, enum.Enum):
    """Content-change notifications the invalidator reacts to."""

    POST_PUBLISHED = "post_published"
    POST_TRASHED = "post_trashed"
    POST_DELETED = "post_deleted"
    COMMENT_POSTED = "comment_posted"
    COMMENT_EDITED = "comment_edited"
    COMMENT_STATUS_CHANGED = "comment_status_changed"
    THEME_SWITCHED = "theme_switched"
    PLUGIN_ACTIVATED = "plugin_activated"
    PLUGIN_DEACTIVATED = "plugin_deactivated"
    MANUAL_CLEAR = "manual_clear"


# --- Settings snapshot ---


def _split_lines(value: Any) -> Any:
    """Accept newline-separated strings for list settings (textarea format)."""
    if isinstance(value, str):
        return tuple(line.strip() for line in value.splitlines() if line.strip())
    return value


def lifespan_hours_to_seconds(hours: float) -> int:
    """Convert the ``cache_lifespan`` setting (hours) to seconds."""
    return max(0, int(hours * 3600))

class CacheSettings(BaseModel):
    """Immutable snapshot of the settings the cache engine consumes.

    Owned by the external settings store (a JSON/YAML file handled by
    :mod:`pagestash.config`).  A new snapshot is built whenever the store
    changes; components hold on to the snapshot they were given.

    Example::

        CacheSettings(
            caching_enabled=True,
            mobile_cache_enabled=True,
            cache_lifespan=10,
            browser_cache_enabled=True,
            browser_cache_ttl=31536000,
        )
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    caching_enabled: bool = Field(default=True, description="Enable the page cache")
    mobile_cache_enabled: bool = Field(
        default=False, description="Keep a separate cache variant for mobile user agents"
    )
    minify_html_enabled: bool = Field(
        default=False, description="Minify HTML before it is persisted"
    )
    minify_inline_css: bool = Field(
        default=False, description="Minify <style> blocks (requires minify_html_enabled)"
    )
    minify_inline_js: bool = Field(
        default=False, description="Minify <script> blocks (requires minify_html_enabled)"
    )
    cache_lifespan: int = Field(
        default=10, ge=0, description="Artifact lifespan in hours; 0 disables the sweep"
    )
    browser_cache_enabled: bool = Field(
        default=False, description="Emit browser cache headers and edge rules"
    )
    browser_cache_ttl: int = Field(
        default=31536000, ge=0, description="Browser cache TTL in seconds"
    )
    image_delivery_method: ImageDeliveryMethod = Field(
        default=ImageDeliveryMethod.PICTURE,
        description="picture (markup rewrite) or rewrite (server negotiation)",
    )
    image_next_gen_format: NextGenFormat = Field(
        default=NextGenFormat.WEBP, description="Next-gen image format: webp, avif"
    )
    # Exclusions compiled into the ExclusionSet artifact.
    excluded_url_paths: tuple[str, ...] = Field(
        default=("/admin/", "/login", "/logout", "/cron", "/api/", "/account/"),
        description="URI substrings that are never cached",
    )
    excluded_cookies: tuple[str, ...] = Field(
        default=("comment_author", "logged_in", "postpass"),
        description="Cookie-name substrings that disable caching",
    )
    excluded_url_patterns: tuple[str, ...] = Field(
        default=(),
        description="gitignore-style URI path patterns that are never cached",
    )
    excluded_query_keys: tuple[str, ...] = Field(
        default=("utm_source", "utm_medium", "utm_campaign", "fbclid", "preview", "edit", "_ga"),
        description="Case-insensitive regexes; a request with a matching query key is never cached",
    )
    # Edge rule placement.
    cache_url_path: str = Field(
        default="/cache/pagestash",
        description="Public URL prefix under which the cache root is reachable",
    )
    origin_upstream: str = Field(
        default="http://127.0.0.1:8080",
        description="Origin that private .css/.js assets are proxied to",
    )

    @field_validator(
        "excluded_url_paths",
        "excluded_cookies",
        "excluded_url_patterns",
        "excluded_query_keys",
        mode="before",
    )
    @classmethod
    def _coerce_lines(cls, value: Any) -> Any:
        return _split_lines(value)

    @field_validator("cache_url_path")
    @classmethod
    def _normalise_url_path(cls, value: str) -> str:
        return "/" + value.strip().strip("/")

    @property
    def lifespan_seconds(self) -> int:
        """The artifact lifespan converted from hours to seconds."""
        return lifespan_hours_to_seconds(self.cache_lifespan)


# --- Results ---


class RuleWriteResult(BaseModel):
    """Outcome of persisting one edge-rule document.

    Writing edge rules is an explicit administrative action, so failures
    are reported to the caller rather than swallowed.
    """

    ok: bool
    path: Path
    dialect: Dialect
    message: str = ""


class SweepReport(BaseModel):
    """Counters produced by one expiry sweep."""

    scanned: int = 0
    deleted: int = 0
    failed: int = 0


class ContentChange(BaseModel):
    """A content-change notification delivered to the invalidator.

    ``comment_approved`` carries the approval state for
    ``COMMENT_POSTED`` / ``COMMENT_EDITED`` (``1``, ``"1"``, ``"approve"``
    and ``"approved"`` all count as approved).  ``old_status`` and
    ``new_status`` are only meaningful for ``COMMENT_STATUS_CHANGED``.
    """

    event: ContentEventType
    comment_approved: Optional[Union[int, str]] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
