"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~sfconnect.exceptions.SfconnectError` subclass.
Shell wrappers can inspect the exit code to tell a rejected login from a
busy callback port without parsing stderr.

Example::

    $ sfconnect connect org
    $ echo $?
    4   # EXIT_LISTENER_ERROR -- the callback port was already in use
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred, or required configuration is missing."""

EXIT_INVALID_USAGE = 1
"""The command was invoked with an unknown sub-command or invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""The provider rejected the login, the callback was invalid, or the token exchange failed."""

EXIT_LISTENER_ERROR = 4
"""The local callback listener could not bind its port."""

EXIT_CALLBACK_TIMEOUT = 5
"""No callback arrived before the configured wait elapsed."""

EXIT_INTERRUPTED = 130
"""The operator cancelled with Ctrl-C."""
