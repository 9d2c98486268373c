"""Built-in CLI commands for oidcflow.

* :mod:`~oidcflow.commands.session` -- ``login``, ``status``, ``token``,
  ``refresh``, and ``logout``, registered directly on the root app.
* :mod:`~oidcflow.commands.config` -- the ``config`` sub-command group.
"""
