"""Built-in CLI commands for sfconnect.

* :mod:`~sfconnect.commands.connect` -- run the OAuth handshake for an alias.
* :mod:`~sfconnect.commands.environments` -- list connected environments.

Each module exports a plain callback function registered directly on the
root app in :mod:`sfconnect.app`.
"""
