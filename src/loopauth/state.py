"""Anti-forgery ``state`` token generation.

The token is echoed back by the provider on the redirect and compared
exactly by :class:`~loopauth.listener.CallbackListener`. It only needs to be
unguessable for the lifetime of one flow, so it is never persisted.
"""

from __future__ import annotations

import secrets

from loopauth.exceptions import ConfigurationError

STATE_BYTES = 32


def generate_state(nbytes: int = STATE_BYTES) -> str:
    """Return a fresh URL-safe random token for one flow.

    Args:
        nbytes: Bytes of entropy drawn from the OS CSPRNG.

    Returns:
        A URL-safe base64 string (roughly ``1.3 * nbytes`` characters).

    Raises:
        ConfigurationError: If the system entropy source is unavailable.
    """
    try:
        return secrets.token_urlsafe(nbytes)
    except (NotImplementedError, OSError) as exc:
        raise ConfigurationError(f"No secure entropy source available: {exc}") from exc
