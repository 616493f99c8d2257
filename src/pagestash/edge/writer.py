"""Persist rendered edge rules.

Two well-known files live in the web server's document root:

* ``.htaccess`` -- user-owned; our rules are merged into it between an
  outer ``# BEGIN pagestash`` / ``# END pagestash`` pair and everything
  outside that pair is preserved byte for byte.
* ``pagestash-nginx.conf`` -- ours alone; rewritten in full every time.

Writing rules is an explicit administrative action, so every function here
reports failure through :class:`~pagestash.models.RuleWriteResult` instead
of raising.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from pagestash.config import atomic_write
from pagestash.edge.rules import MARKER, render
from pagestash.models import CacheSettings, Dialect, RuleWriteResult

logger = logging.getLogger(__name__)

HTACCESS_FILENAME = ".htaccess"
NGINX_FILENAME = f"{MARKER}-nginx.conf"

BEGIN_LINE = f"# BEGIN {MARKER}"
END_LINE = f"# END {MARKER}"


def merge_marked_block(existing: str, rules: Sequence[str]) -> str:
    """Replace (or append) the marked block inside *existing*.

    Only lines exactly equal to the outer begin/end markers delimit the
    block, so the inner per-block markers never confuse the merge.  When
    *rules* is empty the block is removed altogether.

    Args:
        existing: Current file content (may be empty).
        rules: Lines to place between the markers.

    Returns:
        The new file content.
    """
    lines = existing.splitlines()
    block = [BEGIN_LINE, *rules, END_LINE] if rules else []

    start = end = None
    for index, line in enumerate(lines):
        if line.strip() == BEGIN_LINE and start is None:
            start = index
        elif line.strip() == END_LINE and start is not None:
            end = index
            break

    if start is not None and end is not None:
        merged = lines[:start] + block + lines[end + 1:]
        if not block:
            # Drop the separator left behind by a previous append.
            while merged and not merged[-1].strip():
                merged.pop()
    elif block:
        merged = lines + ([""] if lines and lines[-1].strip() else []) + block
    else:
        merged = lines

    text = "\n".join(merged)
    return text + "\n" if text else ""


def write_htaccess(path: Path, settings: CacheSettings) -> RuleWriteResult:
    """Merge the Apache rules for *settings* into the file at *path*."""
    path = Path(path)
    document = render(Dialect.APACHE, settings)
    try:
        existing = path.read_text(encoding="utf-8") if path.exists() else ""
        atomic_write(path, merge_marked_block(existing, document.splitlines()))
    except OSError as exc:
        logger.warning("Cannot update %s: %s", path, exc)
        return RuleWriteResult(
            ok=False, path=path, dialect=Dialect.APACHE, message=f"{path} is not writable: {exc}"
        )
    logger.debug("Updated %s", path)
    return RuleWriteResult(ok=True, path=path, dialect=Dialect.APACHE)


def write_nginx_conf(path: Path, settings: CacheSettings) -> RuleWriteResult:
    """Overwrite the dedicated nginx include at *path*."""
    path = Path(path)
    try:
        atomic_write(path, render(Dialect.NGINX, settings))
    except OSError as exc:
        logger.warning("Cannot write %s: %s", path, exc)
        return RuleWriteResult(
            ok=False, path=path, dialect=Dialect.NGINX, message=f"{path} is not writable: {exc}"
        )
    logger.debug("Wrote %s", path)
    return RuleWriteResult(ok=True, path=path, dialect=Dialect.NGINX)


def write_edge_rules(docroot: Path, settings: CacheSettings) -> list[RuleWriteResult]:
    """Write both rule files into *docroot*."""
    docroot = Path(docroot)
    return [
        write_htaccess(docroot / HTACCESS_FILENAME, settings),
        write_nginx_conf(docroot / NGINX_FILENAME, settings),
    ]


def remove_edge_rules(docroot: Path) -> list[RuleWriteResult]:
    """Strip our block from ``.htaccess`` and delete the nginx include."""
    docroot = Path(docroot)
    results = []

    htaccess = docroot / HTACCESS_FILENAME
    try:
        if htaccess.exists():
            atomic_write(htaccess, merge_marked_block(htaccess.read_text(encoding="utf-8"), []))
    except OSError as exc:
        results.append(
            RuleWriteResult(ok=False, path=htaccess, dialect=Dialect.APACHE, message=str(exc))
        )
    else:
        results.append(RuleWriteResult(ok=True, path=htaccess, dialect=Dialect.APACHE))

    nginx = docroot / NGINX_FILENAME
    try:
        nginx.unlink()
    except FileNotFoundError:
        results.append(RuleWriteResult(ok=True, path=nginx, dialect=Dialect.NGINX))
    except OSError as exc:
        results.append(
            RuleWriteResult(ok=False, path=nginx, dialect=Dialect.NGINX, message=str(exc))
        )
    else:
        results.append(RuleWriteResult(ok=True, path=nginx, dialect=Dialect.NGINX))
    return results
