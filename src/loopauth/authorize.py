"""Authorization URL construction.

:func:`build_authorization_url` composes the provider authorization endpoint
with the five standard query parameters of the authorization-code grant
(:rfc:`6749#section-4.1.1`). :func:`parse_authorization_url` is its inverse,
used by ``loopauth url --inspect`` to show what a URL asks for.

The ``redirect_uri`` is sent exactly as configured. Providers compare it
byte-for-byte with the registered value, so it is never normalised here.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from loopauth.models import AuthorizationRequest


def build_authorization_url(
    endpoint: str,
    request: AuthorizationRequest,
    scope_delimiter: str = " ",
    extra_params: Optional[dict[str, str]] = None,
) -> str:
    """Build the URL the user's browser is sent to for consent.

    Any query string already present on *endpoint* is preserved and the
    flow parameters are appended after it.

    Args:
        endpoint: The provider's authorization endpoint.
        request: Client ID, redirect URI, scopes and state for this flow.
        scope_delimiter: Separator used to join scopes (``" "`` per the
            RFC; some providers expect ``","``).
        extra_params: Provider-specific additions such as
            ``{"access_type": "offline"}``.

    Returns:
        The fully-qualified, percent-encoded authorization URL.
    """
    params: list[tuple[str, str]] = [
        ("client_id", request.client_id),
        ("response_type", "code"),
        ("redirect_uri", request.redirect_uri),
    ]
    if request.scopes:
        params.append(("scope", scope_delimiter.join(request.scopes)))
    params.append(("state", request.state))
    if extra_params:
        params.extend(extra_params.items())

    parts = urlsplit(endpoint)
    existing = parse_qsl(parts.query, keep_blank_values=True)
    query = urlencode(existing + params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def parse_authorization_url(url: str, scope_delimiter: str = " ") -> AuthorizationRequest:
    """Recover the :class:`AuthorizationRequest` encoded in *url*.

    Raises:
        ValueError: If a required parameter is missing or
            ``response_type`` is not ``code``.
    """
    params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    if params.get("response_type") != "code":
        raise ValueError("Not an authorization-code request (response_type != code)")
    missing = [k for k in ("client_id", "redirect_uri", "state") if k not in params]
    if missing:
        raise ValueError(f"Authorization URL is missing: {', '.join(missing)}")
    scope = params.get("scope", "")
    return AuthorizationRequest(
        client_id=params["client_id"],
        redirect_uri=params["redirect_uri"],
        scopes=[s for s in scope.split(scope_delimiter) if s] if scope else [],
        state=params["state"],
    )
