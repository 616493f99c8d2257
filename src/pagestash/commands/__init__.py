"""Built-in CLI sub-commands for pagestash.

* :mod:`~pagestash.commands.cache` -- ``install``, ``clear``, ``purge``,
  ``sweep``, ``path`` and ``status``, registered directly on the root app.
* :mod:`~pagestash.commands.rules` -- the ``rules`` group (render, write,
  remove web-server rules).
* :mod:`~pagestash.commands.config` -- the ``config`` group (show, set,
  reset the settings file).
"""
