"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to the phase of the login flow that failed and is
referenced by the corresponding :class:`~loopauth.exceptions.LoopauthError`
subclass. Shell wrappers can inspect the exit code to decide whether a retry
makes sense (e.g. after :data:`EXIT_TIMEOUT`) without parsing stderr.

Example::

    $ loopauth login --profile github
    $ echo $?
    4   # EXIT_PROVIDER_DENIED -- the user declined consent
"""

EXIT_SUCCESS = 0
"""The login completed and a token was printed."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIGURATION_ERROR = 2
"""Credentials, redirect URI, or other settings were missing or invalid."""

EXIT_BROWSER_LAUNCH_FAILURE = 3
"""The authorization page could not be opened in a browser."""

EXIT_PROVIDER_DENIED = 4
"""The user declined consent or the provider reported an authorization error."""

EXIT_TIMEOUT = 5
"""No valid callback arrived before the flow timeout elapsed."""

EXIT_TOKEN_EXCHANGE_FAILURE = 6
"""The authorization code could not be exchanged for an access token."""

EXIT_CANCELLED = 130
"""The user interrupted the flow with Ctrl-C."""
