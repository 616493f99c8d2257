"""Best-effort HTML minifier applied before an artifact is persisted.

The transform is deliberately conservative: it removes HTML comments,
collapses whitespace runs between tags, and optionally squeezes inline
``<style>`` and ``<script>`` blocks with the tokenizing minifiers from
``rcssmin`` and ``rjsmin``, which keep string literals and the newlines
automatic semicolon insertion depends on.  Content of ``<pre>`` and
``<textarea>`` is never touched.  Nothing here raises: a block that cannot
be processed is emitted as-is, and a failure of the whole pass returns the
input unchanged.
"""

from __future__ import annotations

import logging
import re

import rcssmin
import rjsmin

logger = logging.getLogger(__name__)

_ENCODING = "utf-8"

_HTML_COMMENT = re.compile(r"<!--(?!\[if|<!\[endif).*?-->", re.S)
_WHITESPACE = re.compile(r"[ \t\n\r\f\v]+")
_RAW_BLOCK = re.compile(
    r"(<(script|style|pre|textarea)\b[^>]*>)(.*?)(</\2\s*>)", re.I | re.S
)
_TYPE_ATTR = re.compile(r"""\btype\s*=\s*["']?([^"'\s>]+)""", re.I)

_JS_TYPES = ("javascript", "ecmascript", "module")


def minify_css(css: str) -> str:
    """Strip comments and redundant whitespace from a stylesheet."""
    return rcssmin.cssmin(css).strip()


def minify_js(js: str) -> str:
    """Strip comments and redundant whitespace from an inline script."""
    return rjsmin.jsmin(js).strip()


def is_javascript_block(open_tag: str) -> bool:
    """Return True if a ``<script>`` opening tag holds JavaScript."""
    match = _TYPE_ATTR.search(open_tag)
    if match is None:
        return True
    mime = match.group(1).lower()
    return any(kind in mime for kind in _JS_TYPES)


def _squeeze_markup(html: str) -> str:
    html = _HTML_COMMENT.sub("", html)
    return _WHITESPACE.sub(" ", html)


def _process_block(match: re.Match, css: bool, js: bool) -> str:
    open_tag, tag, body, close_tag = match.group(1, 2, 3, 4)
    tag = tag.lower()
    try:
        if tag == "style" and css:
            body = minify_css(body)
        elif tag == "script" and js and is_javascript_block(open_tag):
            body = minify_js(body)
    except Exception:
        logger.debug("Leaving malformed <%s> block unmodified", tag, exc_info=True)
    return _WHITESPACE.sub(" ", open_tag) + body + close_tag


def minify_html(buffer: bytes, css: bool = False, js: bool = False) -> bytes:
    """Minify an HTML document.

    Args:
        buffer: Raw response body.
        css: Also minify inline ``<style>`` blocks.
        js: Also minify inline JavaScript ``<script>`` blocks.

    Returns:
        The minified body, or *buffer* itself if anything goes wrong.
    """
    try:
        text = buffer.decode(_ENCODING, errors="surrogateescape")
        parts: list[str] = []
        position = 0
        for match in _RAW_BLOCK.finditer(text):
            parts.append(_squeeze_markup(text[position:match.start()]))
            parts.append(_process_block(match, css, js))
            position = match.end()
        parts.append(_squeeze_markup(text[position:]))
        return "".join(parts).strip().encode(_ENCODING, errors="surrogateescape")
    except Exception:
        logger.warning("HTML minification failed; keeping original body", exc_info=True)
        return buffer
