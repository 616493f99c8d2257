"""Edge rules -- mirror the cache settings in web-server configuration.

* :mod:`~pagestash.edge.rules` -- pure rendering for Apache and nginx.
* :mod:`~pagestash.edge.writer` -- marker merge into ``.htaccess`` and the
  dedicated nginx include.
"""

from pagestash.edge.rules import detect_dialect, format_nginx_ttl, render
from pagestash.edge.writer import (
    remove_edge_rules,
    write_edge_rules,
    write_htaccess,
    write_nginx_conf,
)

__all__ = [
    "detect_dialect",
    "format_nginx_ttl",
    "remove_edge_rules",
    "render",
    "write_edge_rules",
    "write_htaccess",
    "write_nginx_conf",
]
