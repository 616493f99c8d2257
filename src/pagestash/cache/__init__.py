"""Page cache core -- decide, capture, expire, invalidate.

Typical usage::

    from pagestash.cache import CacheKeyResolver, CacheabilityPolicy, CapturePipeline

    resolver = CacheKeyResolver(cache_root)
    policy = CacheabilityPolicy(settings, ExclusionSet.load(cache_root))
    if policy.is_cacheable(ctx):
        body = CapturePipeline(settings, resolver).capture_and_write(body, ctx)

Sub-modules:

* :mod:`~pagestash.cache.keys` -- request to artifact path, device class.
* :mod:`~pagestash.cache.exclusions` -- compiled exclusion predicate.
* :mod:`~pagestash.cache.policy` -- the cacheability decision.
* :mod:`~pagestash.cache.minify` -- best-effort HTML/CSS/JS minifier.
* :mod:`~pagestash.cache.capture` -- transform and persist a page.
* :mod:`~pagestash.cache.sweeper` -- age-based expiry.
* :mod:`~pagestash.cache.invalidator` -- full flush and single-URL purge.
"""

from pagestash.cache.capture import CapturePipeline, cache_signature, read_artifact, strip_signature
from pagestash.cache.exclusions import ExclusionSet, compile_exclusions
from pagestash.cache.invalidator import Invalidator, clear_all, purge_artifact
from pagestash.cache.keys import CacheKeyResolver, is_mobile_user_agent
from pagestash.cache.policy import CacheabilityPolicy
from pagestash.cache.sweeper import sweep_expired

__all__ = [
    "CacheKeyResolver",
    "CacheabilityPolicy",
    "CapturePipeline",
    "ExclusionSet",
    "Invalidator",
    "cache_signature",
    "clear_all",
    "compile_exclusions",
    "is_mobile_user_agent",
    "purge_artifact",
    "read_artifact",
    "strip_signature",
    "sweep_expired",
]
