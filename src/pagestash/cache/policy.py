"""Cacheability decision for a single request."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from pagestash.cache.exclusions import ExclusionSet
from pagestash.context import RequestContext
from pagestash.models import CacheSettings

logger = logging.getLogger(__name__)

VetoHook = Callable[[RequestContext], bool]

# Request flags that reject caching outright, checked in order.
SHORT_CIRCUIT_FLAGS = (
    "is_logged_in",
    "is_admin",
    "is_search",
    "is_404",
    "is_feed",
    "is_trackback",
    "is_robots",
    "is_preview",
    "is_embed",
    "is_ajax",
    "is_cron",
    "is_rest",
    "is_password_protected",
    "do_not_cache",
)

CACHEABLE_METHODS = frozenset({"GET"})


class CacheabilityPolicy:
    """Decide whether a response may be cached.

    Cheap request-flag checks run first; the exclusion set is only consulted
    once all of them pass, and veto hooks run last.

    Args:
        settings: Settings snapshot.
        exclusions: Compiled exclusion predicate.
        vetoes: Callables receiving the request context; returning ``False``
            vetoes caching.
    """

    def __init__(
        self,
        settings: CacheSettings,
        exclusions: Optional[ExclusionSet] = None,
        vetoes: Iterable[VetoHook] = (),
    ) -> None:
        self._settings = settings
        self._exclusions = exclusions if exclusions is not None else ExclusionSet.empty()
        self._vetoes = list(vetoes)

    def add_veto(self, hook: VetoHook) -> None:
        self._vetoes.append(hook)

    def rejection_reason(self, ctx: RequestContext) -> Optional[str]:
        """Return why *ctx* is not cacheable, or ``None`` if it is."""
        if not self._settings.caching_enabled:
            return "caching disabled"

        if ctx.method.upper() not in CACHEABLE_METHODS:
            return f"method {ctx.method}"
        for flag in SHORT_CIRCUIT_FLAGS:
            if getattr(ctx, flag):
                return flag

        if self._exclusions.is_excluded(ctx):
            return "excluded"

        for hook in self._vetoes:
            try:
                allowed = hook(ctx)
            except Exception:
                logger.exception("Cacheability hook %r failed; not caching", hook)
                return "veto hook error"
            if allowed is False:
                return "vetoed"
        return None

    def is_cacheable(self, ctx: RequestContext) -> bool:
        reason = self.rejection_reason(ctx)
        if reason is not None:
            logger.debug("Not caching %s: %s", ctx.uri, reason)
            return False
        return True
