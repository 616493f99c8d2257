"""Compiled exclusion predicate.

The exclusion lists in :class:`~pagestash.models.CacheSettings` are compiled
into a small JSON artifact at ``<cache_root>/config/exclusions.json`` so the
serving side can evaluate them without loading the full settings store.
:class:`ExclusionSet` is the read side; :func:`compile_exclusions` the write
side.  A missing, unreadable or corrupt artifact loads as the empty set.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Optional, Sequence

import pathspec

from pagestash.config import atomic_write
from pagestash.context import RequestContext
from pagestash.models import CacheSettings

logger = logging.getLogger(__name__)

CONFIG_DIRNAME = "config"
EXCLUSIONS_FILENAME = "exclusions.json"
_FORMAT_VERSION = 1


def exclusions_path(cache_root: Path) -> Path:
    """Return the location of the compiled exclusion artifact."""
    return Path(cache_root) / CONFIG_DIRNAME / EXCLUSIONS_FILENAME


class ExclusionSet:
    """Read-only predicate deciding whether a request is excluded.

    Args:
        url_paths: Substrings; a request whose URI contains any is excluded.
        cookies: Substrings matched against each cookie name.
        url_patterns: gitignore-style patterns matched against the URI path.
        query_keys: Case-insensitive regexes searched in each query key.
            Patterns that do not compile are dropped with a warning.
    """

    def __init__(
        self,
        url_paths: Sequence[str] = (),
        cookies: Sequence[str] = (),
        url_patterns: Sequence[str] = (),
        query_keys: Sequence[str] = (),
    ) -> None:
        self.url_paths = tuple(p for p in url_paths if p)
        self.cookies = tuple(c for c in cookies if c)
        self.url_patterns = tuple(p for p in url_patterns if p)
        self._spec: Optional[pathspec.PathSpec] = (
            pathspec.GitIgnoreSpec.from_lines(self.url_patterns) if self.url_patterns else None
        )
        self.query_keys = tuple(q for q in query_keys if q)
        self._query_regexes = tuple(_compile_query_patterns(self.query_keys))

    @classmethod
    def empty(cls) -> ExclusionSet:
        return cls()

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> ExclusionSet:
        return cls(
            url_paths=settings.excluded_url_paths,
            cookies=settings.excluded_cookies,
            url_patterns=settings.excluded_url_patterns,
            query_keys=settings.excluded_query_keys,
        )

    @classmethod
    def load(cls, cache_root: Path) -> ExclusionSet:
        """Load the compiled artifact below *cache_root*.

        Any problem reading or decoding the file yields the empty set.
        """
        path = exclusions_path(cache_root)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return cls.empty()
        except OSError as exc:
            logger.warning("Cannot read exclusion artifact %s: %s", path, exc)
            return cls.empty()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Corrupt exclusion artifact %s: %s", path, exc)
            return cls.empty()
        if not isinstance(data, dict):
            logger.warning("Ignoring exclusion artifact %s: not an object", path)
            return cls.empty()

        def _strings(key: str) -> list[str]:
            value = data.get(key) or []
            return [str(v) for v in value] if isinstance(value, list) else []

        return cls(
            url_paths=_strings("url_paths"),
            cookies=_strings("cookies"),
            url_patterns=_strings("url_patterns"),
            query_keys=_strings("query_keys"),
        )

    def __bool__(self) -> bool:
        return bool(self.url_paths or self.cookies or self.url_patterns or self.query_keys)

    def to_dict(self) -> dict:
        return {
            "version": _FORMAT_VERSION,
            "url_paths": list(self.url_paths),
            "cookies": list(self.cookies),
            "url_patterns": list(self.url_patterns),
            "query_keys": list(self.query_keys),
        }

    def is_excluded(self, ctx: RequestContext) -> bool:
        """Return True if *ctx* matches any exclusion rule."""
        uri = ctx.uri
        for fragment in self.url_paths:
            if fragment in uri:
                logger.debug("URI %s excluded by path %r", uri, fragment)
                return True

        for name in ctx.cookie_names:
            for fragment in self.cookies:
                if fragment in name:
                    logger.debug("URI %s excluded by cookie %r", uri, name)
                    return True

        for key in ctx.query_keys:
            for regex in self._query_regexes:
                if regex.search(key):
                    logger.debug("URI %s excluded by query key %r", uri, key)
                    return True

        if self._spec is not None and self._spec.match_file(ctx.path.lstrip("/")):
            logger.debug("URI %s excluded by pattern", uri)
            return True
        return False


def _compile_query_patterns(patterns: Sequence[str]) -> list[re.Pattern]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as exc:
            logger.warning("Ignoring invalid query key pattern %r: %s", pattern, exc)
    return compiled


def compile_exclusions(settings: CacheSettings, cache_root: Path) -> Path:
    """Write the exclusion artifact for *settings* below *cache_root*.

    Returns:
        The path written.

    Raises:
        OSError: If the artifact cannot be written.
    """
    path = exclusions_path(cache_root)
    exclusions = ExclusionSet.from_settings(settings)
    atomic_write(path, json.dumps(exclusions.to_dict(), indent=2) + "\n")
    logger.debug("Compiled exclusions to %s", path)
    return path
