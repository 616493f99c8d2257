"""Exception hierarchy for pagestash.

Only the CLI and configuration layers raise these.  The cache engine
itself never lets an I/O failure reach the request path: write and
delete errors are logged and swallowed, and edge-rule writes report
failure through :class:`~pagestash.models.RuleWriteResult`.

Subclass hierarchy::

    PagestashError      (exit 1)
    +-- InvalidUsageError (exit 2)
    +-- ConfigError       (exit 3)
    +-- RuleWriteError    (exit 4)
    +-- CacheRootError    (exit 5)
"""

from pagestash.exit_codes import (
    EXIT_CACHE_ROOT_ERROR,
    EXIT_CONFIG_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_RULES_WRITE_FAILURE,
)


class PagestashError(Exception):
    """Base exception for all pagestash errors.

    Every subclass sets a class-level ``exit_code``.  The CLI entry point
    catches this type and exits with that code.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(PagestashError):
    """Raised for invalid CLI arguments (bad URL, unknown dialect)."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(PagestashError):
    """Raised when the settings file is unreadable, malformed, or fails validation."""

    exit_code = EXIT_CONFIG_ERROR


class RuleWriteError(PagestashError):
    """Raised by the CLI when an edge-rule file could not be written."""

    exit_code = EXIT_RULES_WRITE_FAILURE


class CacheRootError(PagestashError):
    """Raised when the cache root cannot be created or is not a directory."""

    exit_code = EXIT_CACHE_ROOT_ERROR
