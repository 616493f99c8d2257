"""Config commands -- view and modify the settings file.

Provides the ``pagestash config`` group for reading, updating and resetting
the persisted :class:`~pagestash.models.CacheSettings`.  Every change is
announced with a ``SETTINGS_CHANGED`` event so the compiled exclusion
artifact in the cache root follows the new settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from pagestash.commands.cache import engine_from_context
from pagestash.config import load_settings, resolve_settings_path, save_settings
from pagestash.events import EventType
from pagestash.exceptions import ConfigError, InvalidUsageError
from pagestash.models import CacheSettings
from pagestash.output import error, info, print_record, success

config_app = typer.Typer(no_args_is_help=True)


def _settings_path(ctx: typer.Context) -> Path:
    return resolve_settings_path((ctx.obj or {}).get("settings"))


def _load(path: Path) -> CacheSettings:
    try:
        return load_settings(path)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _coerce(key: str, current: Any, value: str) -> Any:
    """Convert the CLI string *value* to the type of the *current* field value."""
    if isinstance(current, bool):
        lowered = value.lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
        raise InvalidUsageError(f"Expected true/false for {key}, got: {value}")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            raise InvalidUsageError(f"Expected integer for {key}, got: {value}") from None
    if isinstance(current, (list, tuple)):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _announce(ctx: typer.Context, settings: CacheSettings) -> None:
    engine = engine_from_context(ctx)
    engine.dispatcher.dispatch(EventType.SETTINGS_CHANGED, settings)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective settings.

    Example::

        pagestash config show
        pagestash --json config show
    """
    path = _settings_path(ctx)
    settings = _load(path)
    info(f"Settings file: {path}{'' if path.is_file() else ' (not created yet)'}")
    print_record(settings.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(help="Setting name, e.g. 'cache_lifespan'."),
    value: str = typer.Argument(help="New value; lists are comma-separated."),
) -> None:
    """Set one setting.

    The value is coerced to the field's type and the whole snapshot is
    re-validated before it is saved.

    Example::

        pagestash config set mobile_cache_enabled true
        pagestash config set browser_cache_ttl 604800
        pagestash config set excluded_url_paths /cart/,/checkout/
    """
    path = _settings_path(ctx)
    data = _load(path).model_dump(mode="json")

    if key not in data:
        error(f"Unknown setting: {key}")
        raise typer.Exit(code=InvalidUsageError.exit_code)

    try:
        data[key] = _coerce(key, data[key], value)
    except InvalidUsageError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    try:
        new_settings = CacheSettings.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=InvalidUsageError.exit_code) from None

    save_settings(new_settings, path)
    _announce(ctx, new_settings)
    success(f"Set {key} = {getattr(new_settings, key)!r}")


@config_app.command("reset")
def config_reset(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Do not ask for confirmation."),
) -> None:
    """Reset every setting to its default.

    Example::

        pagestash config reset --force
    """
    force = force or bool((ctx.obj or {}).get("force"))
    if not force and not typer.confirm("Reset all settings to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    settings = CacheSettings()
    save_settings(settings, _settings_path(ctx))
    _announce(ctx, settings)
    success("Settings reset to defaults.")
