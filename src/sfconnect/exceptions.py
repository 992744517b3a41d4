"""Exception hierarchy for sfconnect.

All exceptions inherit from :class:`SfconnectError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`sfconnect.exit_codes`.
The top-level error handler in :func:`sfconnect.app.main` catches
``SfconnectError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Every error is terminal to a single ``connect`` invocation. Nothing is
retried in-process: re-running the command generates a fresh verifier and
state.

Subclass hierarchy::

    SfconnectError (exit 1)
    +-- ConfigurationError      (exit 1)
    +-- InvalidUsageError       (exit 1)
    +-- CallbackProtocolError   (exit 3)
    +-- TokenExchangeError      (exit 3)
    +-- ListenerBindError       (exit 4)
    +-- CallbackTimeoutError    (exit 5)
"""

from __future__ import annotations

from typing import Optional

from sfconnect.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CALLBACK_TIMEOUT,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LISTENER_ERROR,
)


class SfconnectError(Exception):
    """Base exception for all sfconnect errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`sfconnect.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr and
            shown on the browser error page.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(SfconnectError):
    """Raised when required settings are absent or invalid, or the registry file is corrupt.

    Always raised before any network activity.
    """

    exit_code = EXIT_GENERIC_FAILURE


class InvalidUsageError(SfconnectError):
    """Raised for an unrecognised invocation."""

    exit_code = EXIT_INVALID_USAGE


class ListenerBindError(SfconnectError):
    """Raised when the local callback port cannot be bound (usually already in use)."""

    exit_code = EXIT_LISTENER_ERROR


class CallbackProtocolError(SfconnectError):
    """Raised when the redirect reports a provider error or fails validation.

    Args:
        message: Human-readable reason.
        provider_error: The ``error`` query parameter sent by the provider,
            if any (e.g. ``"access_denied"``).
        description: The ``error_description`` query parameter, if any.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(
        self,
        message: str,
        provider_error: Optional[str] = None,
        description: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider_error = provider_error
        self.description = description


class TokenExchangeError(SfconnectError):
    """Raised when the authorization code cannot be exchanged for tokens.

    Args:
        message: Human-readable reason, including the provider's diagnostic
            message when one was returned.
        status_code: HTTP status of the token endpoint response, if one was
            received.
        provider_error: The provider's ``error`` code, if the body had one.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider_error: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.provider_error = provider_error


class CallbackTimeoutError(SfconnectError):
    """Raised when the browser never redirects back within the configured wait."""

    exit_code = EXIT_CALLBACK_TIMEOUT
