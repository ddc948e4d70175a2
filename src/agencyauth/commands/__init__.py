"""Built-in CLI sub-commands for agencyauth.

* :mod:`~agencyauth.commands.auth` -- ``login``, ``logout``, ``status``,
  ``refresh``, ``roles`` and ``request``, registered on the root app.
* :mod:`~agencyauth.commands.config` -- the ``config`` sub-group for viewing
  and modifying session settings.
"""
