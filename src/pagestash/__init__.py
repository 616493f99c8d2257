"""pagestash -- a static-file page cache with matching edge rules.

Fully rendered HTML responses are captured, written to disk under a
``<host>[/mobile]/<path>`` layout, and served back on later requests until
a content change flushes them or the expiry sweep removes them.  The same
settings that drive the application-level cache also render Apache and
nginx configuration so the web server can apply consistent browser-cache
and image-negotiation rules.

Typical use inside a WSGI application::

    from pagestash.engine import CacheEngine
    from pagestash.middleware import PageCacheMiddleware

    engine = CacheEngine.from_config()
    application = PageCacheMiddleware(application, engine)

Modules:
    app: Typer CLI entry point.
    models: Pydantic settings snapshot and shared data shapes.
    config: XDG-aware settings loading and atomic writes.
    engine: Facade wiring resolver, policy, capture, sweep and invalidation.
    middleware: WSGI interceptor that serves hits and captures misses.
    events: Typed event dispatch table.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting for the CLI.
"""

__version__ = "0.3.0"
