"""Shared test fixtures for pagestash.

Provides isolated config/cache directories, settings snapshots, request
contexts, sample HTML bodies, output-state management, and a CLI runner.
These fixtures are discovered by pytest and available to every test
module without explicit imports.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from pagestash.context import RequestContext
from pagestash.models import CacheSettings
from pagestash.output import OutputFormat, OutputManager, reset_output, set_output


DESKTOP_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
ANDROID_UA = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Mobile Safari/537.36"
)


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and drop CLI log handlers after every test.

    Both hold references to the streams that Typer's CliRunner swaps in
    during a test; once the test finishes those streams are closed.
    """
    yield
    reset_output()
    logger = logging.getLogger("pagestash")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Filesystem fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    """An existing, empty cache root."""
    root = tmp_path / "cache-root"
    root.mkdir()
    return root


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME and XDG_DATA_HOME below tmp_path,
    forces the XDG code path, clears every PAGESTASH_* variable and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setattr("pagestash.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["PAGESTASH_SETTINGS", "PAGESTASH_CACHE_ROOT", "PAGESTASH_HOST"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Settings and request fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> CacheSettings:
    """Default settings with caching on and no built-in path or cookie exclusions."""
    return CacheSettings(excluded_url_paths=(), excluded_cookies=())


@pytest.fixture
def mobile_settings() -> CacheSettings:
    """Settings with a separate mobile variant enabled."""
    return CacheSettings(mobile_cache_enabled=True, excluded_url_paths=(), excluded_cookies=())


@pytest.fixture
def make_ctx():
    """Factory for :class:`RequestContext` objects with sensible defaults."""

    def _make(uri: str = "/blog/", host: str = "example.com", **kwargs) -> RequestContext:
        kwargs.setdefault("user_agent", DESKTOP_UA)
        return RequestContext(host=host, uri=uri, **kwargs)

    return _make


@pytest.fixture
def html_page() -> bytes:
    """A complete HTML document comfortably above the capture threshold."""
    paragraphs = "\n".join(f"    <p>Paragraph {i} of the post body.</p>" for i in range(12))
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "  <head>\n"
        "    <title>Hello</title>\n"
        "  </head>\n"
        "  <body>\n"
        f"{paragraphs}\n"
        "  </body>\n"
        "</html>\n"
    ).encode("utf-8")


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet PLAIN-format OutputManager for the duration of a test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
