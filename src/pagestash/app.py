"""Typer application and console-script entry point for pagestash.

The CLI is the administrative face of the cache: prepare the cache root,
flush or sweep it, inspect where a URL would be stored, and render or write
the web-server rules.  The request path itself runs inside the host
application through :class:`~pagestash.middleware.PageCacheMiddleware`.

:func:`main` is the console-script entry point declared in
``pyproject.toml``.  :class:`~pagestash.exceptions.PagestashError` subclasses
map to their exit codes; anything unexpected is written to a crash log
under the data directory.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from pagestash import __version__
from pagestash.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="pagestash",
    help="Static page cache: capture, serve, expire and mirror in web-server rules.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"pagestash {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    cache_root: Optional[str] = typer.Option(
        None, "--cache-root", help="Cache root directory (overrides PAGESTASH_CACHE_ROOT)."
    ),
    settings: Optional[str] = typer.Option(
        None, "--settings", help="Settings file (overrides PAGESTASH_SETTINGS)."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~pagestash.output.OutputManager` and the
    Rich log handler, and stores the shared options in ``ctx.obj``.
    """
    from pagestash.output import OutputFormat, OutputManager, set_output, setup_logging

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    setup_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["cache_root"] = cache_root
    ctx.obj["settings"] = settings
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


from pagestash.commands.cache import register_cache_commands  # noqa: E402
from pagestash.commands.config import config_app  # noqa: E402
from pagestash.commands.rules import rules_app  # noqa: E402

register_cache_commands(app)
app.add_typer(rules_app, name="rules", help="Render and write web-server rules.")
app.add_typer(config_app, name="config", help="Settings management.")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under the data directory and return its path."""
    from pagestash.config import get_log_dir

    logs_dir = get_log_dir()
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``pagestash`` console script.

    Raises:
        SystemExit: Always (either from Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from pagestash.exceptions import PagestashError
        from pagestash.output import error

        if isinstance(exc, PagestashError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
