"""Numeric process exit codes used by the ``pagestash`` CLI.

Each constant is referenced by the matching
:class:`~pagestash.exceptions.PagestashError` subclass so that cron jobs
and deployment scripts can tell failure classes apart without parsing
stderr.

Example::

    $ pagestash rules write --docroot /srv/www
    $ echo $?
    4   # EXIT_RULES_WRITE_FAILURE -- .htaccess was not writable
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_CONFIG_ERROR = 3
"""The settings file could not be read, parsed, or validated."""

EXIT_RULES_WRITE_FAILURE = 4
"""Edge rules could not be written to their destination file."""

EXIT_CACHE_ROOT_ERROR = 5
"""The cache root directory is missing or cannot be created."""
