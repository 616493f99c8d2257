"""Rules commands -- render, write and remove web-server rules.

``pagestash rules render`` prints the document for one dialect to stdout;
``write`` and ``remove`` manage the two well-known files in a document
root (``.htaccess`` and ``pagestash-nginx.conf``).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import typer

from pagestash.commands.cache import engine_from_context
from pagestash.edge.rules import detect_dialect
from pagestash.edge.writer import remove_edge_rules
from pagestash.exceptions import InvalidUsageError, RuleWriteError
from pagestash.models import Dialect, RuleWriteResult
from pagestash.output import error, print_data, print_table, success

rules_app = typer.Typer(no_args_is_help=True)


def _report(results: list[RuleWriteResult], verb: str) -> None:
    print_table(
        ["dialect", "path", "ok", "message"],
        [[r.dialect.value, str(r.path), str(r.ok).lower(), r.message] for r in results],
    )
    failed = [r for r in results if not r.ok]
    if failed:
        for result in failed:
            error(result.message or f"Cannot {verb} {result.path}")
        exc = RuleWriteError(f"{len(failed)} rule file(s) could not be {verb}")
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)
    success(f"Rules {verb} in {len(results)} file(s).")


@rules_app.command("render")
def rules_render(
    ctx: typer.Context,
    dialect: Optional[Dialect] = typer.Option(
        None,
        "--dialect",
        "-d",
        help="Server dialect; detected from SERVER_SOFTWARE when omitted.",
    ),
) -> None:
    """Print the rules for one server dialect.

    Example::

        pagestash rules render --dialect nginx
        SERVER_SOFTWARE=Apache/2.4 pagestash rules render
    """
    if dialect is None:
        dialect = detect_dialect(os.environ.get("SERVER_SOFTWARE"))
    if dialect is None:
        exc = InvalidUsageError("Cannot detect the server dialect; pass --dialect")
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)

    engine = engine_from_context(ctx)
    document = engine.render_edge_rules(dialect)
    if document:
        print_data(document.rstrip("\n"))


@rules_app.command("write")
def rules_write(
    ctx: typer.Context,
    docroot: Path = typer.Option(
        ..., "--docroot", help="Web server document root receiving the rule files."
    ),
) -> None:
    """Write ``.htaccess`` (merged) and ``pagestash-nginx.conf`` (overwritten).

    Example::

        pagestash rules write --docroot /var/www/html
    """
    engine = engine_from_context(ctx)
    _report(engine.write_edge_rules(docroot), "written")


@rules_app.command("remove")
def rules_remove(
    docroot: Path = typer.Option(
        ..., "--docroot", help="Web server document root holding the rule files."
    ),
) -> None:
    """Strip the rules block from ``.htaccess`` and delete the nginx include.

    Example::

        pagestash rules remove --docroot /var/www/html
    """
    _report(remove_edge_rules(docroot), "removed")
