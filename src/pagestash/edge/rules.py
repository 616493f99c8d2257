"""Render web-server rules equivalent to the application cache settings.

Everything in this module is pure: settings in, configuration text out.
Persisting the text is the job of :mod:`pagestash.edge.writer`.

Three blocks exist:

* **Browser Cache** -- long-lived ``Expires``/``Cache-Control`` headers for
  static assets, when ``browser_cache_enabled`` and the TTL is positive.
* **Image Optimizer** -- serve a pre-generated ``<file>.<ext>`` sibling in
  the configured next-gen format when the client's ``Accept`` header
  advertises it, only for the ``rewrite`` delivery method.
* **Security** -- nginx only, always present: deny direct access to the
  private artifact subtree, except ``.css``/``.js`` which are proxied to the
  origin so it can authenticate the request.

Each block is wrapped in ``# BEGIN pagestash <Block>`` / ``# END pagestash
<Block>`` markers.
"""

from __future__ import annotations

from typing import Optional

from pagestash.models import CacheSettings, Dialect, ImageDeliveryMethod

MARKER = "pagestash"

BLOCK_BROWSER_CACHE = "Browser Cache"
BLOCK_IMAGES = "Image Optimizer"
BLOCK_SECURITY = "Security"

# MIME types given an Expires header by Apache's mod_expires.
APACHE_EXPIRES_TYPES = (
    "image/jpg",
    "image/jpeg",
    "image/gif",
    "image/png",
    "image/svg+xml",
    "text/css",
    "text/javascript",
    "application/javascript",
    "application/x-javascript",
    "application/font-woff2",
    "application/font-woff",
    "application/vnd.ms-fontobject",
    "font/ttf",
    "font/otf",
    "application/pdf",
)

NGINX_STATIC_LOCATION = r"~* \.(jpg|jpeg|gif|png|css|js|woff2?|ttf|otf|eot|svg|pdf)$"

# Largest unit first; the first unit dividing the TTL evenly wins.
NGINX_TTL_UNITS = (
    ("y", 31536000),
    ("M", 2592000),
    ("w", 604800),
    ("d", 86400),
    ("h", 3600),
    ("m", 60),
)


def format_nginx_ttl(seconds: int) -> str:
    """Format a TTL as the shortest exact nginx time literal.

    >>> format_nginx_ttl(31536000)
    '1y'
    >>> format_nginx_ttl(90)
    '90s'
    """
    if seconds <= 0:
        return "0s"
    for suffix, size in NGINX_TTL_UNITS:
        if seconds % size == 0:
            return f"{seconds // size}{suffix}"
    return f"{seconds}s"


def wrap_block(name: str, body: str) -> str:
    """Surround *body* with the begin/end markers for block *name*."""
    if not body.endswith("\n"):
        body += "\n"
    return f"# BEGIN {MARKER} {name}\n{body}# END {MARKER} {name}\n"


def browser_cache_enabled(settings: CacheSettings) -> bool:
    return settings.browser_cache_enabled and settings.browser_cache_ttl > 0


# --- Apache ---


def apache_browser_cache(settings: CacheSettings) -> str:
    if not browser_cache_enabled(settings):
        return ""
    ttl = settings.browser_cache_ttl
    lines = ["<IfModule mod_expires.c>", "    ExpiresActive On"]
    lines += [f'    ExpiresByType {mime} "access plus {ttl} seconds"' for mime in APACHE_EXPIRES_TYPES]
    lines.append("</IfModule>")
    return "\n".join(lines) + "\n"


def apache_image_rewrite(settings: CacheSettings) -> str:
    if settings.image_delivery_method != ImageDeliveryMethod.REWRITE:
        return ""
    ext = settings.image_next_gen_format.value
    mime = f"image/{ext}"
    return (
        "<IfModule mod_rewrite.c>\n"
        "    RewriteEngine On\n"
        f"    RewriteCond %{{HTTP_ACCEPT}} {mime}\n"
        f"    RewriteCond %{{REQUEST_FILENAME}}.{ext} -f\n"
        f"    RewriteRule (.+)\\.(jpe?g|png|gif)$ $1.$2.{ext} [T={mime},E=__PAGESTASH_IMAGE:1,L]\n"
        "</IfModule>\n"
        "<IfModule mod_headers.c>\n"
        "    Header append Vary Accept env=__PAGESTASH_IMAGE\n"
        "</IfModule>\n"
    )


# --- nginx ---


def nginx_browser_cache(settings: CacheSettings) -> str:
    if not browser_cache_enabled(settings):
        return ""
    return (
        f"location {NGINX_STATIC_LOCATION} {{\n"
        f"    expires {format_nginx_ttl(settings.browser_cache_ttl)};\n"
        '    add_header Cache-Control "public";\n'
        "}\n"
    )


def nginx_image_rewrite(settings: CacheSettings) -> str:
    if settings.image_delivery_method != ImageDeliveryMethod.REWRITE:
        return ""
    ext = settings.image_next_gen_format.value
    var = f"$pagestash_{ext}_suffix"
    # The map directive belongs in the http context; include this file there.
    return (
        f"map $http_accept {var} {{\n"
        '    default "";\n'
        f"    ~*image/{ext} .{ext};\n"
        "}\n"
        "\n"
        r"location ~* \.(jpe?g|png|gif)$ {" "\n"
        "    add_header Vary Accept;\n"
        f"    try_files $uri{var} $uri =404;\n"
        "}\n"
    )


def nginx_security(settings: CacheSettings) -> str:
    prefix = settings.cache_url_path.strip("/").replace(".", r"\.")
    private = f"{prefix}/private/" if prefix else "private/"
    return (
        f"location ~* ^/{private}.*\\.(css|js)$ {{\n"
        f"    proxy_pass {settings.origin_upstream};\n"
        "    proxy_set_header Host $host;\n"
        "    proxy_set_header X-Forwarded-Host $host;\n"
        "    proxy_set_header X-Real-IP $remote_addr;\n"
        "    proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;\n"
        "    proxy_redirect off;\n"
        "}\n"
        "\n"
        f"location ~* /{private} {{\n"
        "    deny all;\n"
        "}\n"
    )


# --- Entry points ---


def render_blocks(dialect: Dialect, settings: CacheSettings) -> list[tuple[str, str]]:
    """Return the non-empty ``(block name, body)`` pairs for *dialect*."""
    if dialect == Dialect.APACHE:
        blocks = [
            (BLOCK_BROWSER_CACHE, apache_browser_cache(settings)),
            (BLOCK_IMAGES, apache_image_rewrite(settings)),
        ]
    else:
        blocks = [
            (BLOCK_SECURITY, nginx_security(settings)),
            (BLOCK_BROWSER_CACHE, nginx_browser_cache(settings)),
            (BLOCK_IMAGES, nginx_image_rewrite(settings)),
        ]
    return [(name, body) for name, body in blocks if body]


def render(dialect: Dialect, settings: CacheSettings) -> str:
    """Render the complete rule document for *dialect*.

    Args:
        dialect: Target server syntax.
        settings: Settings snapshot the rules mirror.

    Returns:
        The document text; empty when no block applies (Apache with browser
        caching off and picture delivery).
    """
    dialect = Dialect(dialect)
    wrapped = [wrap_block(name, body) for name, body in render_blocks(dialect, settings)]
    if dialect == Dialect.APACHE:
        return "".join(wrapped)
    return "\n".join(wrapped)


def detect_dialect(server_software: Optional[str]) -> Optional[Dialect]:
    """Map a ``SERVER_SOFTWARE`` string onto a dialect, if recognisable.

    LiteSpeed reads ``.htaccess`` and is treated as Apache.
    """
    software = (server_software or "").lower()
    if "apache" in software or "litespeed" in software:
        return Dialect.APACHE
    if "nginx" in software:
        return Dialect.NGINX
    return None
