"""Exception hierarchy for loopauth.

All exceptions inherit from :class:`LoopauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`loopauth.exit_codes`
and a ``phase`` naming the step of the login flow that failed. The top-level
handler in :func:`loopauth.app.main` catches ``LoopauthError`` and exits with
the appropriate code, while :func:`loopauth.flow.run_flow` returns it to
library callers inside a :class:`~loopauth.models.FlowResult`.

Subclass hierarchy::

    LoopauthError               (exit 1)
    +-- ConfigurationError      (exit 2)
    +-- BrowserLaunchError      (exit 3)
    +-- ProviderDeniedError     (exit 4)
    +-- FlowTimeoutError        (exit 5)
    |   +-- CallbackStateMismatch
    +-- TokenExchangeError      (exit 6)

None of these messages ever contain the client secret.
"""

from __future__ import annotations

from typing import Optional

from loopauth.exit_codes import (
    EXIT_BROWSER_LAUNCH_FAILURE,
    EXIT_CONFIGURATION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_PROVIDER_DENIED,
    EXIT_TIMEOUT,
    EXIT_TOKEN_EXCHANGE_FAILURE,
)


class LoopauthError(Exception):
    """Base exception for all loopauth errors.

    Every subclass sets a class-level ``exit_code`` and ``phase``. The entry
    point catches this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    phase: str = "flow"

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(LoopauthError):
    """Raised for missing or invalid credentials, redirect URI, or settings.

    The flow never starts when this is raised.
    """

    exit_code = EXIT_CONFIGURATION_ERROR
    phase = "configuration"


class BrowserLaunchError(LoopauthError):
    """Raised when the authorization URL cannot be opened in a browser."""

    exit_code = EXIT_BROWSER_LAUNCH_FAILURE
    phase = "browser"


class ProviderDeniedError(LoopauthError):
    """Raised when the redirect carries an ``error`` instead of a ``code``.

    Typically the user declined consent (``access_denied``), but any
    provider-side authorization failure lands here.

    Args:
        error: The provider's ``error`` code.
        description: The optional ``error_description`` sent alongside it.
    """

    exit_code = EXIT_PROVIDER_DENIED
    phase = "authorization"

    def __init__(self, error: str, description: Optional[str] = None):
        message = f"Authorization was not granted: {error}"
        if description:
            message += f" ({description})"
        super().__init__(message)
        self.error = error
        self.description = description


class FlowTimeoutError(LoopauthError):
    """Raised when no valid callback arrives within the flow timeout.

    Named with a prefix to avoid shadowing the built-in ``TimeoutError``.
    """

    exit_code = EXIT_TIMEOUT
    phase = "callback"


class CallbackStateMismatch(FlowTimeoutError):
    """Raised on timeout when the only callbacks received carried a bad ``state``.

    Mismatched callbacks are ignored while the flow is running; they are only
    reported if nothing else arrived before the deadline.
    """


class TokenExchangeError(LoopauthError):
    """Raised when the authorization code cannot be exchanged for a token.

    Args:
        message: Diagnostic message (never contains the client secret).
        reason: One of ``"transport"``, ``"status"``, ``"malformed"`` or
            ``"missing_token"``.
        status_code: The HTTP status returned by the token endpoint, when
            a response was received.
    """

    exit_code = EXIT_TOKEN_EXCHANGE_FAILURE
    phase = "exchange"

    def __init__(
        self,
        message: str,
        reason: str,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code
