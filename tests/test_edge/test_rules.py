"""Tests for pagestash.edge.rules: pure rendering of server rules."""

from __future__ import annotations

import pytest

from pagestash.edge.rules import (
    APACHE_EXPIRES_TYPES,
    detect_dialect,
    format_nginx_ttl,
    render,
    render_blocks,
    wrap_block,
)
from pagestash.models import CacheSettings, Dialect


def _settings(**overrides) -> CacheSettings:
    return CacheSettings(**overrides)


BROWSER = {"browser_cache_enabled": True, "browser_cache_ttl": 604800}
REWRITE = {"image_delivery_method": "rewrite", "image_next_gen_format": "webp"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestFormatNginxTtl:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (31536000, "1y"),
            (2592000, "1M"),
            (604800, "1w"),
            (86400, "1d"),
            (3600, "1h"),
            (90, "90s"),
            (120, "2m"),
            (172800, "2d"),
            (1, "1s"),
            (0, "0s"),
            (-10, "0s"),
        ],
    )
    def test_exact_units(self, seconds: int, expected: str) -> None:
        assert format_nginx_ttl(seconds) == expected


class TestWrapBlock:
    def test_markers(self) -> None:
        assert wrap_block("Security", "deny all;") == (
            "# BEGIN pagestash Security\ndeny all;\n# END pagestash Security\n"
        )

    def test_no_double_newline(self) -> None:
        assert "\n\n" not in wrap_block("X", "a\n")


class TestDetectDialect:
    @pytest.mark.parametrize(
        ("software", "expected"),
        [
            ("Apache/2.4.57 (Debian)", Dialect.APACHE),
            ("LiteSpeed", Dialect.APACHE),
            ("nginx/1.25.3", Dialect.NGINX),
            ("gunicorn/21.2", None),
            ("", None),
            (None, None),
        ],
    )
    def test_detect(self, software, expected) -> None:
        assert detect_dialect(software) == expected


# ---------------------------------------------------------------------------
# Apache
# ---------------------------------------------------------------------------


class TestApache:
    def test_nothing_enabled_renders_empty(self) -> None:
        assert render(Dialect.APACHE, _settings()) == ""

    def test_browser_cache_block(self) -> None:
        text = render(Dialect.APACHE, _settings(**BROWSER))
        assert text.startswith("# BEGIN pagestash Browser Cache\n")
        assert text.endswith("# END pagestash Browser Cache\n")
        assert "ExpiresActive On" in text
        for mime in APACHE_EXPIRES_TYPES:
            assert f'ExpiresByType {mime} "access plus 604800 seconds"' in text

    def test_zero_ttl_skips_browser_cache(self) -> None:
        settings = _settings(browser_cache_enabled=True, browser_cache_ttl=0)
        assert render(Dialect.APACHE, settings) == ""

    def test_image_rewrite_block(self) -> None:
        text = render(Dialect.APACHE, _settings(**REWRITE))
        assert "# BEGIN pagestash Image Optimizer" in text
        assert "RewriteCond %{HTTP_ACCEPT} image/webp" in text
        assert "RewriteCond %{REQUEST_FILENAME}.webp -f" in text
        assert "$1.$2.webp [T=image/webp,E=__PAGESTASH_IMAGE:1,L]" in text
        assert "Header append Vary Accept env=__PAGESTASH_IMAGE" in text

    def test_avif_format(self) -> None:
        text = render(Dialect.APACHE, _settings(image_delivery_method="rewrite", image_next_gen_format="avif"))
        assert "image/avif" in text
        assert "webp" not in text

    def test_picture_delivery_has_no_image_block(self) -> None:
        assert "Image Optimizer" not in render(Dialect.APACHE, _settings(**BROWSER))

    def test_no_security_block(self) -> None:
        text = render(Dialect.APACHE, _settings(**BROWSER, **REWRITE))
        assert "Security" not in text

    def test_block_order(self) -> None:
        names = [name for name, _ in render_blocks(Dialect.APACHE, _settings(**BROWSER, **REWRITE))]
        assert names == ["Browser Cache", "Image Optimizer"]


# ---------------------------------------------------------------------------
# nginx
# ---------------------------------------------------------------------------


class TestNginx:
    def test_security_always_present(self) -> None:
        text = render(Dialect.NGINX, _settings())
        assert text.startswith("# BEGIN pagestash Security\n")
        assert "deny all;" in text
        assert "Browser Cache" not in text

    def test_security_uses_cache_url_path_and_origin(self) -> None:
        settings = _settings(cache_url_path="/static/cache.v2/", origin_upstream="http://app:9000")
        text = render(Dialect.NGINX, settings)
        assert r"location ~* ^/static/cache\.v2/private/.*\.(css|js)$ {" in text
        assert "proxy_pass http://app:9000;" in text
        assert r"location ~* /static/cache\.v2/private/ {" in text

    def test_security_at_site_root(self) -> None:
        text = render(Dialect.NGINX, _settings(cache_url_path="/"))
        assert r"location ~* ^/private/.*\.(css|js)$ {" in text
        assert "location ~* /private/ {" in text
        assert "//private" not in text

    def test_browser_cache_block(self) -> None:
        text = render(Dialect.NGINX, _settings(**BROWSER))
        assert "# BEGIN pagestash Browser Cache" in text
        assert "expires 1w;" in text
        assert 'add_header Cache-Control "public";' in text

    def test_image_map(self) -> None:
        text = render(Dialect.NGINX, _settings(**REWRITE))
        assert "map $http_accept $pagestash_webp_suffix {" in text
        assert "~*image/webp .webp;" in text
        assert "try_files $uri$pagestash_webp_suffix $uri =404;" in text

    def test_blocks_separated_by_blank_line(self) -> None:
        text = render(Dialect.NGINX, _settings(**BROWSER))
        assert "# END pagestash Security\n\n# BEGIN pagestash Browser Cache\n" in text

    def test_block_order(self) -> None:
        names = [name for name, _ in render_blocks(Dialect.NGINX, _settings(**BROWSER, **REWRITE))]
        assert names == ["Security", "Browser Cache", "Image Optimizer"]

    def test_dialect_given_as_string(self) -> None:
        assert render("nginx", _settings()) == render(Dialect.NGINX, _settings())

    def test_deterministic(self) -> None:
        settings = _settings(**BROWSER, **REWRITE)
        assert render(Dialect.NGINX, settings) == render(Dialect.NGINX, settings)
