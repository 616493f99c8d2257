"""Settings storage with XDG paths, atomic writes, and precedence resolution.

This module owns everything persistent that is *not* a cache artifact:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.pagestash/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`, :func:`get_log_dir`.
* **Settings** -- a single JSON or YAML file deserialised into the
  immutable :class:`~pagestash.models.CacheSettings` snapshot. Managed via
  :func:`load_settings` and :func:`save_settings`.
* **Precedence resolution** -- :func:`resolve_settings_path`,
  :func:`resolve_cache_root` and :func:`resolve_host_override` merge CLI
  flags, environment variables and defaults.

All file writes go through :func:`atomic_write` (temp file then rename) so a
crash never leaves a half-written settings or rule file behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from pagestash.exceptions import ConfigError
from pagestash.models import CacheSettings

_APP_NAME = "pagestash"
_SETTINGS_FILENAMES = ("settings.json", "settings.yaml", "settings.yml")

ENV_SETTINGS = "PAGESTASH_SETTINGS"
ENV_CACHE_ROOT = "PAGESTASH_CACHE_ROOT"
ENV_HOST = "PAGESTASH_HOST"

# Artifacts and rule files are read by the web server, often as another user.
DEFAULT_FILE_MODE = 0o644


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/pagestash/`` (default ``~/.config/pagestash/``).
    On macOS/Windows: ``~/.pagestash/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the default cache root, creating it if necessary.

    Page artifacts live directly beneath this directory, so it is safe to
    delete at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/pagestash/`` (default ``~/.cache/pagestash/``).
    On macOS/Windows: ``~/.pagestash/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory, creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/pagestash/`` (default ``~/.local/share/pagestash/``).
    On macOS/Windows: ``~/.pagestash/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_dir() -> Path:
    """Return the crash-log directory (``<data dir>/logs/``), creating it if necessary."""
    path = get_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _target_mode(path: Path) -> int:
    try:
        return path.stat().st_mode & 0o777
    except OSError:
        return DEFAULT_FILE_MODE


def atomic_write(path: Path, data: Union[str, bytes]) -> None:
    """Write *data* to *path* atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. An existing file
    keeps its permission bits; a new one gets ``DEFAULT_FILE_MODE``. On any
    failure the temp file is removed and the exception re-raised.

    Args:
        path: Destination file. Parent directories are created.
        data: Text (written as UTF-8) or raw bytes.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = data.encode("utf-8") if isinstance(data, str) else data

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        )
        tmp_path = fd.name
        fd.write(payload)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.chmod(tmp_path, _target_mode(path))
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings ---


def _parse_settings_text(text: str, hint: str = "") -> dict[str, Any]:
    """Parse settings text as JSON or YAML.

    JSON is tried first unless *hint* is ``"yaml"``; valid JSON is also
    valid YAML, but the JSON parser gives sharper error messages.

    Raises:
        ConfigError: If the text is neither a JSON nor a YAML mapping.
    """
    if hint != "yaml":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            if hint == "json":
                raise ConfigError(f"Invalid JSON: {exc}") from exc
        else:
            if not isinstance(data, dict):
                raise ConfigError(f"Settings must be an object (got {type(data).__name__})")
            return data

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Settings must be a mapping (got {type(data).__name__})")
    return data


def default_settings_path() -> Path:
    """Return the first existing settings file in the config dir.

    Falls back to ``settings.json`` (which may not exist yet).
    """
    config_dir = get_config_dir()
    for name in _SETTINGS_FILENAMES:
        candidate = config_dir / name
        if candidate.is_file():
            return candidate
    return config_dir / _SETTINGS_FILENAMES[0]


def resolve_settings_path(cli_path: Optional[str] = None) -> Path:
    """Resolve the settings file location.

    Precedence (high to low): CLI flag, ``PAGESTASH_SETTINGS``, the XDG
    config directory.
    """
    if cli_path:
        return Path(cli_path).expanduser()
    env_path = os.environ.get(ENV_SETTINGS)
    if env_path:
        return Path(env_path).expanduser()
    return default_settings_path()


def load_settings(path: Optional[Path] = None) -> CacheSettings:
    """Load the settings snapshot from disk.

    Args:
        path: Settings file; defaults to :func:`resolve_settings_path`.

    Returns:
        The validated :class:`~pagestash.models.CacheSettings`. A missing
        file yields the defaults.

    Raises:
        ConfigError: If the file exists but cannot be read, parsed, or
            validated.
    """
    path = path or resolve_settings_path()
    if not path.is_file():
        return CacheSettings()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read settings file {path}: {exc}") from exc

    suffix = path.suffix.lower()
    hint = "json" if suffix == ".json" else "yaml" if suffix in (".yaml", ".yml") else ""
    data = _parse_settings_text(text, hint=hint)
    try:
        return CacheSettings.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid settings at {path}: {exc}") from exc


def save_settings(settings: CacheSettings, path: Optional[Path] = None) -> Path:
    """Persist a settings snapshot atomically.

    The format follows the file extension (YAML for ``.yaml``/``.yml``,
    JSON otherwise).

    Returns:
        The path written.
    """
    path = path or resolve_settings_path()
    data = settings.model_dump(mode="json")
    if path.suffix.lower() in (".yaml", ".yml"):
        text = yaml.safe_dump(data, sort_keys=False)
    else:
        text = json.dumps(data, indent=2) + "\n"
    atomic_write(path, text)
    return path


# --- Deployment overrides ---


def resolve_cache_root(cli_root: Optional[str] = None) -> Path:
    """Resolve the cache root: CLI flag > ``PAGESTASH_CACHE_ROOT`` > XDG cache dir."""
    if cli_root:
        return Path(cli_root).expanduser()
    env_root = os.environ.get(ENV_CACHE_ROOT)
    if env_root:
        return Path(env_root).expanduser()
    return get_cache_dir()


def resolve_host_override() -> Optional[str]:
    """Return the deployment-level host override from ``PAGESTASH_HOST``, if set.

    When present it takes precedence over the inbound ``Host`` header for
    every cache key, which pins artifacts to one directory behind proxies
    that rewrite the header.
    """
    value = os.environ.get(ENV_HOST, "").strip()
    return value or None
