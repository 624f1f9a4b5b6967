"""Token endpoint client for the authorization-code grant.

:class:`TokenExchangeClient` performs the single server-to-server request of
:rfc:`6749#section-4.1.3`: it POSTs the authorization code back to the
provider together with the redirect URI used in the authorization step and
the client credentials, and parses the JSON answer into a
:class:`~loopauth.models.TokenResponse`.

Authorization codes are single-use, so the exchange is never retried; every
failure is reported as a :class:`~loopauth.exceptions.TokenExchangeError`
whose ``reason`` tells the caller which step broke:

========================  ==================================================
``reason``                Meaning
========================  ==================================================
``transport``             No response (DNS, connect, TLS, timeout, ...)
``status``                The endpoint answered with a non-2xx status
``malformed``             The body was not a JSON object
``missing_token``         The JSON object had no usable ``access_token``
========================  ==================================================
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import SecretStr, ValidationError

from loopauth.exceptions import TokenExchangeError
from loopauth.models import ClientAuthMethod, TokenResponse

logger = logging.getLogger(__name__)

_MAX_ECHOED_BODY = 200


class TokenExchangeClient:
    """Exchange an authorization code for an access token.

    Args:
        token_endpoint: The provider's token URL.
        client_id: OAuth client ID.
        client_secret: OAuth client secret. Sent, never echoed.
        client_auth: ``basic`` sends ``Authorization: Basic
            base64(client_id:client_secret)``; ``post`` sends both values
            in the form body instead.
        http_client: Optional pre-configured :class:`httpx.Client`
            (proxies, custom CA bundle, or an ``httpx.MockTransport`` in
            tests). The caller keeps ownership and must close it.
        timeout: Request timeout in seconds when no client is supplied.
    """

    def __init__(
        self,
        token_endpoint: str,
        client_id: str,
        client_secret: SecretStr,
        client_auth: ClientAuthMethod = ClientAuthMethod.BASIC,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ) -> None:
        self._token_endpoint = token_endpoint
        self._client_id = client_id
        self._client_secret = client_secret
        self._client_auth = ClientAuthMethod(client_auth)
        self._http_client = http_client
        self._timeout = timeout

    def exchange(self, code: str, redirect_uri: str) -> TokenResponse:
        """POST *code* to the token endpoint and return the parsed token.

        Args:
            code: The authorization code captured from the redirect.
            redirect_uri: Must be identical to the one sent in the
                authorization request.

        Returns:
            A :class:`TokenResponse` with a non-empty ``access_token``.

        Raises:
            TokenExchangeError: On any transport, status, or payload failure.
        """
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        auth: Optional[httpx.BasicAuth] = None
        if self._client_auth is ClientAuthMethod.POST:
            data["client_id"] = self._client_id
            data["client_secret"] = self._client_secret.get_secret_value()
        else:
            auth = httpx.BasicAuth(self._client_id, self._client_secret.get_secret_value())

        logger.debug("Exchanging authorization code at %s", self._token_endpoint)
        response = self._post(data, auth)
        payload = self._parse(response)

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise TokenExchangeError(
                "Token response did not contain an 'access_token'",
                reason="missing_token",
                status_code=response.status_code,
            )
        try:
            token = TokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise TokenExchangeError(
                f"Token response has unexpected field types: {exc.error_count()} error(s)",
                reason="malformed",
                status_code=response.status_code,
            ) from exc

        logger.debug(
            "Token exchange succeeded (token_type=%s, expires_in=%s)",
            token.token_type,
            token.expires_in,
        )
        return token

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _post(self, data: dict[str, str], auth: Optional[httpx.BasicAuth]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        try:
            if self._http_client is not None:
                response = self._http_client.post(
                    self._token_endpoint, data=data, headers=headers, auth=auth
                )
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(
                        self._token_endpoint, data=data, headers=headers, auth=auth
                    )
        except httpx.HTTPError as exc:
            raise TokenExchangeError(
                f"Token exchange request failed: {self._redact(str(exc))}",
                reason="transport",
            ) from exc

        if not response.is_success:
            raise TokenExchangeError(
                f"Token exchange failed with status {response.status_code}"
                f"{self._describe_error(response)}",
                reason="status",
                status_code=response.status_code,
            )
        return response

    def _parse(self, response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            raise TokenExchangeError(
                "Token endpoint returned an empty body",
                reason="malformed",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenExchangeError(
                "Token endpoint returned a body that is not JSON"
                f"{self._describe_body(response)}",
                reason="malformed",
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise TokenExchangeError(
                "Token endpoint returned JSON that is not an object",
                reason="malformed",
                status_code=response.status_code,
            )
        # Some providers (GitHub) report errors with a 200 status.
        if "error" in payload and "access_token" not in payload:
            raise TokenExchangeError(
                f"Token endpoint rejected the code: {self._format_oauth_error(payload)}",
                reason="status",
                status_code=response.status_code,
            )
        return payload

    def _describe_error(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return self._describe_body(response)
        if isinstance(payload, dict) and "error" in payload:
            return f": {self._format_oauth_error(payload)}"
        return self._describe_body(response)

    def _describe_body(self, response: httpx.Response) -> str:
        text = response.text.strip()
        if not text:
            return ""
        if len(text) > _MAX_ECHOED_BODY:
            text = text[:_MAX_ECHOED_BODY] + "..."
        return f": {self._redact(text)}"

    def _format_oauth_error(self, payload: dict[str, Any]) -> str:
        message = str(payload.get("error"))
        description = payload.get("error_description")
        if description:
            message += f" ({description})"
        return self._redact(message)

    def _redact(self, text: str) -> str:
        secret = self._client_secret.get_secret_value()
        if secret and secret in text:
            text = text.replace(secret, "**********")
        return text
