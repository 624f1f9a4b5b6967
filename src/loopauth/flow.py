"""End-to-end orchestration of one authorization-code login.

:class:`OAuthFlow` wires the pieces together:

1. Generate an anti-forgery ``state`` (:mod:`loopauth.state`).
2. Build the authorization URL (:mod:`loopauth.authorize`).
3. Bind and start the loopback listener (:mod:`loopauth.listener`).
4. Open the URL in a browser (:mod:`loopauth.browser`).
5. Block until the redirect arrives or the timeout elapses.
6. Exchange the code for a token, exactly once (:mod:`loopauth.exchange`).

The listener is released on every exit path, including browser-launch
failures, provider denials, timeouts and exchange errors.

:meth:`OAuthFlow.execute` raises the typed errors from
:mod:`loopauth.exceptions`; :func:`run_flow` wraps them in a
:class:`~loopauth.models.FlowResult` for callers that prefer not to handle
exceptions.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import httpx

from loopauth.authorize import build_authorization_url
from loopauth.browser import BrowserLauncher, SystemBrowserLauncher
from loopauth.exceptions import LoopauthError, ProviderDeniedError
from loopauth.exchange import TokenExchangeClient
from loopauth.listener import CallbackListener
from loopauth.models import CallbackKind, FlowResult, FlowState, OAuthConfig, TokenResponse
from loopauth.state import generate_state

logger = logging.getLogger(__name__)

LANDING_GRACE_SECONDS = 1.0


class OAuthFlow:
    """A single interactive authorization-code login.

    An instance performs at most one login; create a new one to try again.

    Args:
        config: Fully resolved flow configuration.
        launcher: Opens the authorization URL. Defaults to the system browser.
        http_client: Optional :class:`httpx.Client` for the token request.
        state_factory: Produces the anti-forgery token. Overridable for tests.
        landing_grace: Seconds to keep the listener up after the callback so
            the browser can load the built-in landing page.

    Example::

        flow = OAuthFlow(config)
        token = flow.execute()
        print(token.access_token)
    """

    def __init__(
        self,
        config: OAuthConfig,
        launcher: Optional[BrowserLauncher] = None,
        http_client: Optional[httpx.Client] = None,
        state_factory: Callable[[], str] = generate_state,
        landing_grace: float = LANDING_GRACE_SECONDS,
    ) -> None:
        self.config = config
        self.launcher: BrowserLauncher = launcher or SystemBrowserLauncher()
        self.state = FlowState(config, state_factory())
        self.listener: Optional[CallbackListener] = None
        self._http_client = http_client
        self._landing_grace = landing_grace
        self._started = False

    def authorization_url(self) -> str:
        """Return the URL the user must visit for this flow's ``state``."""
        return build_authorization_url(
            self.config.authorize_endpoint,
            self.state.authorization_request(),
            scope_delimiter=self.config.scope_delimiter,
            extra_params=self.config.extra_authorize_params,
        )

    def execute(self) -> TokenResponse:
        """Run the login and return the token.

        Raises:
            ConfigurationError: The callback address cannot be bound.
            BrowserLaunchError: The authorization page could not be opened.
            ProviderDeniedError: The redirect carried an ``error``.
            FlowTimeoutError: No valid redirect arrived in time.
            TokenExchangeError: The code could not be exchanged.
        """
        if self._started:
            raise RuntimeError("OAuthFlow instances are single-use")
        self._started = True

        url = self.authorization_url()
        listener = CallbackListener(
            self.config.redirect_uri,
            self.state.csrf_token,
            landing_url=self.config.landing_url,
        )
        self.listener = listener

        with listener:
            self.launcher.launch(url)
            logger.info(
                "Waiting up to %gs for the authorization callback on %s",
                self.config.timeout,
                self.config.redirect_uri,
            )
            callback = listener.wait(self.config.timeout)

            if callback.kind is CallbackKind.PROVIDER_ERROR:
                listener.wait_for_landing_page(self._landing_grace)
                raise ProviderDeniedError(
                    callback.error or "unknown_error", callback.error_description
                )

            assert callback.code is not None
            if not self.state.record_code(callback.code):
                raise RuntimeError("Authorization code was already exchanged")

            try:
                return self._exchange(self.state.received_code or "")
            finally:
                listener.wait_for_landing_page(self._landing_grace)

    def _exchange(self, code: str) -> TokenResponse:
        client = TokenExchangeClient(
            self.config.token_endpoint,
            self.config.client_id,
            self.config.client_secret,
            client_auth=self.config.client_auth,
            http_client=self._http_client,
        )
        return client.exchange(code, self.config.redirect_uri)


def run_flow(
    config: OAuthConfig,
    launcher: Optional[BrowserLauncher] = None,
    http_client: Optional[httpx.Client] = None,
    landing_grace: float = LANDING_GRACE_SECONDS,
) -> FlowResult:
    """Run one login and return a :class:`FlowResult` instead of raising.

    Every :class:`~loopauth.exceptions.LoopauthError` is captured in
    ``result.error``; the listener is always stopped before this returns.

    Args:
        config: Fully resolved flow configuration.
        launcher: Opens the authorization URL. Defaults to the system browser.
        http_client: Optional :class:`httpx.Client` for the token request.
        landing_grace: See :class:`OAuthFlow`.
    """
    flow = OAuthFlow(
        config, launcher=launcher, http_client=http_client, landing_grace=landing_grace
    )
    try:
        result = FlowResult(token=flow.execute())
    except LoopauthError as exc:
        logger.debug("Login failed during %s: %s", exc.phase, exc)
        result = FlowResult(error=exc)
    flow.state.result = result
    return result
