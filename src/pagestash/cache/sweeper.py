"""Time-based expiry of cache artifacts.

:func:`sweep_expired` is meant to run on a recurring timer (hourly by
default).  It only removes files; empty directories are left for
:func:`~pagestash.cache.invalidator.clear_all`, which keeps a sweep cheap
to interrupt and safe to repeat.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Optional

from pagestash.cache.exclusions import CONFIG_DIRNAME
from pagestash.cache.keys import DEFAULT_DOCUMENT
from pagestash.models import SweepReport

logger = logging.getLogger(__name__)


def sweep_expired(
    cache_root: Path, lifespan_seconds: int, now: Optional[float] = None
) -> SweepReport:
    """Delete every artifact older than *lifespan_seconds*.

    The root sentinel and the ``config/`` subtree are never touched.

    Args:
        cache_root: The cache root directory.
        lifespan_seconds: Maximum artifact age; ``<= 0`` disables the sweep.
        now: Reference timestamp (defaults to the current time).

    Returns:
        A :class:`~pagestash.models.SweepReport` with per-run counters.
    """
    report = SweepReport()
    root = Path(cache_root)
    if lifespan_seconds <= 0 or not root.is_dir():
        return report

    now = time.time() if now is None else now
    sentinel = root / DEFAULT_DOCUMENT

    for dirpath, dirnames, filenames in os.walk(root, topdown=True):
        current = Path(dirpath)
        if current == root and CONFIG_DIRNAME in dirnames:
            dirnames.remove(CONFIG_DIRNAME)

        for name in filenames:
            path = current / name
            if path == sentinel:
                continue
            try:
                stat = path.lstat()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Cannot stat %s: %s", path, exc)
                report.failed += 1
                continue
            report.scanned += 1

            if now - stat.st_mtime <= lifespan_seconds:
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Cannot delete expired artifact %s: %s", path, exc)
                report.failed += 1
                continue
            report.deleted += 1
            logger.debug("Expired %s", path)

    logger.info(
        "Sweep of %s: %d scanned, %d deleted, %d failed",
        root, report.scanned, report.deleted, report.failed,
    )
    return report
