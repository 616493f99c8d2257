"""The :class:`CacheEngine` facade.

The engine wires the cache components around one settings snapshot and one
cache root, and exposes the operations the host framework calls:

* request path -- :meth:`~CacheEngine.is_cacheable`,
  :meth:`~CacheEngine.lookup`, :meth:`~CacheEngine.capture_and_write`;
* maintenance -- :meth:`~CacheEngine.clear_all`,
  :meth:`~CacheEngine.sweep_expired`, :meth:`~CacheEngine.handle`;
* administration -- :meth:`~CacheEngine.install`,
  :meth:`~CacheEngine.render_edge_rules`,
  :meth:`~CacheEngine.write_edge_rules`.

It also registers its handlers on an :class:`~pagestash.events.EventDispatcher`
so a scheduler only has to dispatch ``CONTENT_CHANGED``, ``TIMER_TICK`` and
``SETTINGS_CHANGED``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from pagestash.cache.capture import CapturePipeline, read_artifact
from pagestash.cache.exclusions import ExclusionSet, compile_exclusions
from pagestash.cache.invalidator import Invalidator, ensure_sentinel, purge_artifact
from pagestash.cache.keys import CacheKeyResolver, device_class
from pagestash.cache.policy import CacheabilityPolicy, VetoHook
from pagestash.cache.sweeper import sweep_expired
from pagestash.config import load_settings, resolve_cache_root, resolve_host_override
from pagestash.context import RequestContext
from pagestash.edge.rules import render
from pagestash.edge.writer import write_edge_rules
from pagestash.events import EventDispatcher, EventType
from pagestash.exceptions import CacheRootError
from pagestash.models import (
    CacheSettings,
    ContentChange,
    DeviceClass,
    Dialect,
    RuleWriteResult,
    SweepReport,
)

logger = logging.getLogger(__name__)


@dataclass
class CacheHit:
    """An artifact found for a request."""

    path: Path
    body: bytes
    device: DeviceClass


class CacheEngine:
    """Facade over the page cache for one settings snapshot.

    Args:
        settings: Settings snapshot; replaced wholesale by
            :meth:`apply_settings`, never mutated.
        cache_root: Directory holding every artifact.
        host_override: Host that wins over the request ``Host`` header.
        dispatcher: Event table to register handlers on; a private one is
            created when omitted.
        vetoes: Extra cacheability veto hooks.
    """

    def __init__(
        self,
        settings: CacheSettings,
        cache_root: Path,
        host_override: Optional[str] = None,
        dispatcher: Optional[EventDispatcher] = None,
        vetoes: Iterable[VetoHook] = (),
    ) -> None:
        self.cache_root = Path(cache_root)
        self.resolver = CacheKeyResolver(self.cache_root, host_override)
        self.dispatcher = dispatcher if dispatcher is not None else EventDispatcher()
        self.invalidator = Invalidator(self.cache_root, self.dispatcher)
        self._vetoes = list(vetoes)
        self._build(settings)

        self.dispatcher.register(EventType.CONTENT_CHANGED, self.handle)
        self.dispatcher.register(EventType.TIMER_TICK, self._on_timer_tick)
        self.dispatcher.register(EventType.CACHE_CLEARED, self._on_cache_cleared)
        self.dispatcher.register(EventType.SETTINGS_CHANGED, self.apply_settings)

    @classmethod
    def from_config(
        cls,
        settings_path: Optional[Path] = None,
        cache_root: Optional[str] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ) -> CacheEngine:
        """Build an engine from the settings file and environment overrides."""
        return cls(
            load_settings(settings_path),
            resolve_cache_root(cache_root),
            host_override=resolve_host_override(),
            dispatcher=dispatcher,
        )

    def _build(self, settings: CacheSettings) -> None:
        self.settings = settings
        self.exclusions = ExclusionSet.load(self.cache_root)
        self.policy = CacheabilityPolicy(settings, self.exclusions, self._vetoes)
        self.pipeline = CapturePipeline(settings, self.resolver)

    # --- Request path ---

    def add_veto(self, hook: VetoHook) -> None:
        self._vetoes.append(hook)
        self.policy.add_veto(hook)

    def is_cacheable(self, ctx: RequestContext) -> bool:
        return self.policy.is_cacheable(ctx)

    def resolve_path(self, host: Optional[str], uri: str, mobile: bool) -> Optional[Path]:
        """Artifact path for a key under the current settings."""
        return self.resolver.resolve(host, uri, mobile, self.settings.mobile_cache_enabled)

    def lookup(self, ctx: RequestContext) -> Optional[CacheHit]:
        """Return the stored artifact for *ctx*, if one exists."""
        device = device_class(ctx.user_agent, self.settings.mobile_cache_enabled)
        path = self.resolve_path(ctx.host, ctx.uri, device == DeviceClass.MOBILE)
        if path is None or not path.is_file():
            return None
        body = read_artifact(path)
        if body is None:
            return None
        return CacheHit(path=path, body=body, device=device)

    def capture_and_write(self, buffer: bytes, ctx: RequestContext) -> bytes:
        return self.pipeline.capture_and_write(buffer, ctx)

    # --- Maintenance ---

    def clear_all(self) -> int:
        """Flush every artifact, then dispatch ``CACHE_CLEARED``."""
        return self.invalidator.clear()

    def purge(self, host: Optional[str], uri: str) -> int:
        return purge_artifact(self.resolver, host, uri)

    def sweep_expired(self, lifespan_seconds: Optional[int] = None) -> SweepReport:
        if lifespan_seconds is None:
            lifespan_seconds = self.settings.lifespan_seconds
        return sweep_expired(self.cache_root, lifespan_seconds)

    def handle(self, change: ContentChange) -> bool:
        """React to a content change; returns True if the cache was flushed."""
        return self.invalidator.on_content_change(change)

    def apply_settings(self, settings: CacheSettings) -> None:
        """Swap in a new settings snapshot and recompile the exclusions."""
        self._compile_exclusions(settings)
        self._build(settings)
        logger.debug("Applied new settings snapshot")

    def _on_timer_tick(self, _payload: object = None) -> SweepReport:
        return self.sweep_expired()

    def _on_cache_cleared(self, _payload: object = None) -> None:
        self._compile_exclusions(self.settings)

    def _compile_exclusions(self, settings: CacheSettings) -> None:
        try:
            compile_exclusions(settings, self.cache_root)
        except OSError as exc:
            logger.warning("Cannot compile exclusions into %s: %s", self.cache_root, exc)

    # --- Administration ---

    def install(self) -> Path:
        """Create the cache root, its sentinel and the compiled exclusions.

        Raises:
            CacheRootError: If the cache root cannot be prepared.
        """
        try:
            self.cache_root.mkdir(parents=True, exist_ok=True)
            ensure_sentinel(self.cache_root)
            compile_exclusions(self.settings, self.cache_root)
        except OSError as exc:
            raise CacheRootError(f"Cannot prepare cache root {self.cache_root}: {exc}") from exc
        self.exclusions = ExclusionSet.load(self.cache_root)
        self.policy = CacheabilityPolicy(self.settings, self.exclusions, self._vetoes)
        return self.cache_root

    def render_edge_rules(self, dialect: Dialect) -> str:
        return render(dialect, self.settings)

    def write_edge_rules(self, docroot: Path) -> list[RuleWriteResult]:
        return write_edge_rules(docroot, self.settings)
