"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~oidcflow.exceptions.OidcflowError` subclass.
Shell wrappers can inspect the exit code to decide whether to send the user
back through ``oidcflow login``.

Example::

    $ oidcflow refresh
    $ echo $?
    5   # EXIT_PROVIDER_ERROR -- the token endpoint rejected the request
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred (including configuration problems)."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or no authenticated session is available."""

EXIT_PROVIDER_ERROR = 5
"""The identity provider returned an error or an unusable response."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
