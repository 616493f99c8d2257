"""Cache maintenance commands.

``install``, ``clear``, ``purge``, ``sweep``, ``path`` and ``status`` are
plain callbacks registered on the root application by
:func:`register_cache_commands`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import typer

from pagestash.cache.exclusions import CONFIG_DIRNAME
from pagestash.cache.keys import MOBILE_SEGMENT, is_mobile_user_agent
from pagestash.engine import CacheEngine
from pagestash.exceptions import InvalidUsageError, PagestashError
from pagestash.models import lifespan_hours_to_seconds
from pagestash.output import error, info, print_data, print_record, print_table, success


def engine_from_context(ctx: typer.Context) -> CacheEngine:
    """Build a :class:`CacheEngine` from the root options in ``ctx.obj``.

    Raises:
        typer.Exit: With the error's exit code if the settings are invalid.
    """
    obj = ctx.obj or {}
    settings_path = obj.get("settings")
    try:
        return CacheEngine.from_config(
            settings_path=Path(settings_path).expanduser() if settings_path else None,
            cache_root=obj.get("cache_root"),
        )
    except PagestashError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def split_url(url: str) -> tuple[Optional[str], str]:
    """Split a URL or bare path into ``(host, request_uri)``.

    Raises:
        InvalidUsageError: If nothing usable remains.
    """
    if "://" not in url and not url.startswith("/"):
        url = "//" + url
    parts = urlsplit(url)
    uri = parts.path or "/"
    if parts.query:
        uri += "?" + parts.query
    host = parts.netloc or None
    if not uri.startswith("/"):
        raise InvalidUsageError(f"Cannot parse URL: {url}")
    return host, uri


def _fail(exc: PagestashError) -> typer.Exit:
    error(str(exc))
    return typer.Exit(code=exc.exit_code)


def install_command(ctx: typer.Context) -> None:
    """Prepare the cache root: sentinel file and compiled exclusions.

    Example::

        pagestash install
        pagestash --cache-root /var/www/cache/pagestash install
    """
    engine = engine_from_context(ctx)
    try:
        root = engine.install()
    except PagestashError as exc:
        raise _fail(exc) from None
    success(f"Cache root ready: {root}")
    print_data(str(root))


def clear_command(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Do not ask for confirmation."),
) -> None:
    """Delete every cached page.

    Example::

        pagestash clear --force
    """
    engine = engine_from_context(ctx)
    force = force or bool((ctx.obj or {}).get("force"))
    if not force and not typer.confirm(f"Delete all cached pages in {engine.cache_root}?"):
        info("Cancelled.")
        raise typer.Exit()
    removed = engine.clear_all()
    success(f"Removed {removed} cached file(s).")


def purge_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL (or host/path) whose cached copies to remove."),
) -> None:
    """Remove the desktop and mobile copies of a single URL.

    Example::

        pagestash purge https://example.com/blog/
    """
    engine = engine_from_context(ctx)
    try:
        host, uri = split_url(url)
    except PagestashError as exc:
        raise _fail(exc) from None
    removed = engine.purge(host, uri)
    if removed:
        success(f"Purged {removed} cached file(s) for {url}.")
    else:
        info(f"Nothing cached for {url}.")


def sweep_command(
    ctx: typer.Context,
    hours: Optional[float] = typer.Option(
        None, "--hours", min=0, help="Override the configured lifespan (hours)."
    ),
) -> None:
    """Delete cached pages older than the configured lifespan.

    Example::

        pagestash sweep
        pagestash sweep --hours 1
    """
    engine = engine_from_context(ctx)
    lifespan = None if hours is None else lifespan_hours_to_seconds(hours)
    report = engine.sweep_expired(lifespan)
    print_record(report.model_dump())


def path_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL (or host/path) to resolve."),
    user_agent: str = typer.Option("", "--user-agent", "-A", help="User-Agent to classify."),
) -> None:
    """Show where the cached copy of a URL lives.

    Example::

        pagestash path https://example.com/blog/
        pagestash path example.com/blog/ --user-agent "Mozilla/5.0 (iPhone)"
    """
    engine = engine_from_context(ctx)
    try:
        host, uri = split_url(url)
    except PagestashError as exc:
        raise _fail(exc) from None

    mobile = is_mobile_user_agent(user_agent)
    path = engine.resolve_path(host, uri, mobile)
    if path is None:
        raise _fail(InvalidUsageError(f"No valid cache key for {url}"))

    device = "mobile" if mobile and engine.settings.mobile_cache_enabled else "desktop"
    print_record({"path": str(path), "device": device, "cached": path.is_file()})


def status_command(ctx: typer.Context) -> None:
    """Summarise the cache: files and bytes per host and device class.

    Example::

        pagestash status
        pagestash --json status
    """
    engine = engine_from_context(ctx)
    root = engine.cache_root
    info(f"Cache root: {root}")

    rows = []
    if root.is_dir():
        for host_dir in sorted(p for p in root.iterdir() if p.is_dir()):
            if host_dir.name == CONFIG_DIRNAME:
                continue
            desktop, mobile, size = _count_host(host_dir)
            rows.append([host_dir.name, str(desktop), str(mobile), str(size)])

    if not rows:
        info("No cached pages.")
    print_table(["host", "desktop", "mobile", "bytes"], rows, title="Cached pages")


def _count_host(host_dir: Path) -> tuple[int, int, int]:
    desktop = mobile = size = 0
    mobile_dir = host_dir / MOBILE_SEGMENT
    for dirpath, _dirnames, filenames in os.walk(host_dir):
        in_mobile = Path(dirpath) == mobile_dir or mobile_dir in Path(dirpath).parents
        for name in filenames:
            try:
                size += (Path(dirpath) / name).stat().st_size
            except OSError:
                continue
            if in_mobile:
                mobile += 1
            else:
                desktop += 1
    return desktop, mobile, size


def register_cache_commands(app: typer.Typer) -> None:
    """Attach the cache commands to the root *app*."""
    app.command("install")(install_command)
    app.command("clear")(clear_command)
    app.command("purge")(purge_command)
    app.command("sweep")(sweep_command)
    app.command("path")(path_command)
    app.command("status")(status_command)
