"""Canonical data models shared across all loopauth modules.

This is the single source of truth for data shapes in the project. The models
fall into three groups:

**Configuration models** -- :class:`Profile` is serialised as JSON in the
user's config directory; :class:`OAuthConfig` is the fully resolved, validated
configuration of a single flow (credentials included).

**Protocol models** -- :class:`AuthorizationRequest` (what goes into the
authorization URL), :class:`CallbackResult` (what one redirect request
carried) and :class:`TokenResponse` (what the token endpoint returned).

**Flow bookkeeping** -- :class:`FlowState` and :class:`FlowResult`, plain
classes owned by :class:`~loopauth.flow.OAuthFlow` for the lifetime of one
flow. They are never persisted.

All pydantic models use v2 ``model_config``. Validation failures on
:class:`OAuthConfig` surface as :class:`pydantic.ValidationError`;
:func:`loopauth.config.build_config` converts them to
:class:`~loopauth.exceptions.ConfigurationError`.
"""

from __future__ import annotations

import enum
import math
import threading
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationInfo,
    field_validator,
)

if TYPE_CHECKING:
    from loopauth.exceptions import LoopauthError


DEFAULT_AUTHORIZE_ENDPOINT = "https://github.com/login/oauth/authorize"
DEFAULT_TOKEN_ENDPOINT = "https://github.com/login/oauth/access_token"
DEFAULT_REDIRECT_URI = "http://localhost:4321"
DEFAULT_TIMEOUT = 120.0

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")
RESERVED_AUTHORIZE_PARAMS = frozenset(
    {"client_id", "response_type", "redirect_uri", "scope", "state"}
)


def _dedupe(items: list[str]) -> list[str]:
    """Drop blanks and duplicates while keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        item = item.strip()
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


def _check_endpoint(value: str, field: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"{field} must be an absolute http(s) URL")
    return value


def check_redirect_uri(value: str) -> str:
    """Validate a loopback redirect URI and return it unchanged.

    The URI is sent to the provider byte-for-byte, so it is never
    normalised here -- only checked for something the local listener can
    actually bind to.

    Raises:
        ValueError: If the scheme is not ``http``, the host is not a
            loopback address, or the port is missing or out of range.
    """
    parsed = urlparse(value)
    if parsed.scheme != "http":
        raise ValueError("redirect_uri must use the http scheme")
    if parsed.hostname not in LOOPBACK_HOSTS:
        raise ValueError(
            f"redirect_uri host must be one of {', '.join(LOOPBACK_HOSTS)}"
        )
    try:
        port = parsed.port
    except ValueError as exc:
        raise ValueError(f"redirect_uri has an invalid port: {exc}") from exc
    if not port:
        raise ValueError("redirect_uri must include an explicit port")
    return value


# --- Configuration ---


class ClientAuthMethod(str, enum.Enum):
    """How client credentials are presented to the token endpoint."""

    BASIC = "basic"
    POST = "post"


class Profile(BaseModel):
    """A named provider registration persisted at ``profiles/<name>.json``.

    Profiles never hold the client secret itself, only a source descriptor
    (``env:VAR``, ``file:/path`` or ``prompt``) resolved at login time by
    :func:`~loopauth.config.resolve_credential`.

    Example::

        Profile(
            name="github",
            client_id="Iv1.abc",
            client_secret_source="env:GITHUB_CLIENT_SECRET",
            scopes=["read:user"],
        )
    """

    name: str = Field(description="Profile name (file stem)")
    client_id: Optional[str] = Field(default=None, description="OAuth client ID")
    client_secret_source: Optional[str] = Field(
        default=None,
        description="Credential source for the client secret: env:VAR, file:/path, prompt",
    )
    redirect_uri: str = Field(
        default=DEFAULT_REDIRECT_URI,
        description="Loopback redirect URI registered with the provider",
    )
    scopes: list[str] = Field(default_factory=list)
    scope_delimiter: str = Field(default=" ", description="Separator used to join scopes")
    authorize_endpoint: str = DEFAULT_AUTHORIZE_ENDPOINT
    token_endpoint: str = DEFAULT_TOKEN_ENDPOINT
    timeout: float = Field(
        default=DEFAULT_TIMEOUT, description="Seconds to wait for the browser callback"
    )
    landing_url: Optional[str] = Field(
        default=None, description="Page the browser is redirected to after the callback"
    )
    client_auth: ClientAuthMethod = ClientAuthMethod.BASIC
    extra_authorize_params: dict[str, str] = Field(default_factory=dict)


class OAuthConfig(BaseModel):
    """Resolved configuration for exactly one authorization-code flow.

    Immutable once built. ``client_secret`` is a :class:`~pydantic.SecretStr`
    so that it renders as ``**********`` in reprs, logs and error messages.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: SecretStr
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: list[str] = Field(default_factory=list)
    scope_delimiter: str = " "
    authorize_endpoint: str = DEFAULT_AUTHORIZE_ENDPOINT
    token_endpoint: str = DEFAULT_TOKEN_ENDPOINT
    timeout: float = DEFAULT_TIMEOUT
    landing_url: Optional[str] = None
    client_auth: ClientAuthMethod = ClientAuthMethod.BASIC
    extra_authorize_params: dict[str, str] = Field(default_factory=dict)

    @field_validator("client_id")
    @classmethod
    def _client_id_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("client_id must not be empty")
        return value

    @field_validator("client_secret")
    @classmethod
    def _client_secret_required(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("client_secret must not be empty")
        return value

    @field_validator("redirect_uri")
    @classmethod
    def _redirect_uri_loopback(cls, value: str) -> str:
        return check_redirect_uri(value)

    @field_validator("scopes")
    @classmethod
    def _scopes_ordered_set(cls, value: list[str]) -> list[str]:
        return _dedupe(value)

    @field_validator("authorize_endpoint", "token_endpoint")
    @classmethod
    def _endpoint_url(cls, value: str, info: ValidationInfo) -> str:
        return _check_endpoint(value, info.field_name)

    @field_validator("landing_url")
    @classmethod
    def _landing_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _check_endpoint(value, "landing_url")

    @field_validator("timeout")
    @classmethod
    def _bounded_timeout(cls, value: float) -> float:
        if not math.isfinite(value) or value <= 0:
            raise ValueError("timeout must be a positive, finite number of seconds")
        return value

    @field_validator("extra_authorize_params")
    @classmethod
    def _no_reserved_params(cls, value: dict[str, str]) -> dict[str, str]:
        clash = sorted(RESERVED_AUTHORIZE_PARAMS.intersection(value))
        if clash:
            raise ValueError(f"extra_authorize_params may not override: {', '.join(clash)}")
        return value


# --- Protocol models ---


class AuthorizationRequest(BaseModel):
    """Immutable view of a flow used to build the authorization URL."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    redirect_uri: str
    scopes: list[str] = Field(default_factory=list)
    state: str

    @field_validator("scopes")
    @classmethod
    def _scopes_ordered_set(cls, value: list[str]) -> list[str]:
        return _dedupe(value)


class CallbackKind(str, enum.Enum):
    """Classification of a single inbound redirect request."""

    CODE_RECEIVED = "code_received"
    STATE_MISMATCH = "state_mismatch"
    PROVIDER_ERROR = "provider_error"
    MALFORMED_REQUEST = "malformed_request"


class CallbackResult(BaseModel):
    """The outcome of one request to the callback listener.

    Only :attr:`CallbackKind.CODE_RECEIVED` and
    :attr:`CallbackKind.PROVIDER_ERROR` are terminal; the listener absorbs
    the other kinds and keeps listening.
    """

    model_config = ConfigDict(frozen=True)

    kind: CallbackKind
    code: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (CallbackKind.CODE_RECEIVED, CallbackKind.PROVIDER_ERROR)

    @classmethod
    def code_received(cls, code: str) -> CallbackResult:
        return cls(kind=CallbackKind.CODE_RECEIVED, code=code)

    @classmethod
    def provider_error(
        cls, error: str, description: Optional[str] = None
    ) -> CallbackResult:
        return cls(
            kind=CallbackKind.PROVIDER_ERROR, error=error, error_description=description
        )

    @classmethod
    def state_mismatch(cls) -> CallbackResult:
        return cls(kind=CallbackKind.STATE_MISMATCH)

    @classmethod
    def malformed(cls) -> CallbackResult:
        return cls(kind=CallbackKind.MALFORMED_REQUEST)

    def __repr__(self) -> str:
        # Authorization codes are short-lived credentials; keep them out of logs.
        return f"CallbackResult(kind={self.kind.value!r}, error={self.error!r})"


class TokenResponse(BaseModel):
    """Parsed response of a successful token exchange.

    Unknown provider fields are preserved in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(min_length=1)
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    refresh_token: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"TokenResponse(token_type={self.token_type!r}, "
            f"expires_in={self.expires_in!r}, scope={self.scope!r})"
        )


# --- Flow bookkeeping ---


class FlowState:
    """Per-flow state owned by :class:`~loopauth.flow.OAuthFlow`.

    ``received_code`` is written at most once; later writes are ignored and
    reported back to the caller as ``False``.

    Args:
        config: The resolved flow configuration.
        csrf_token: The anti-forgery ``state`` value for this flow.
    """

    def __init__(self, config: OAuthConfig, csrf_token: str):
        self.config = config
        self.csrf_token = csrf_token
        self.received_code: Optional[str] = None
        self.result: Optional[FlowResult] = None
        self._lock = threading.Lock()

    def record_code(self, code: str) -> bool:
        """Store the authorization code unless one was already recorded."""
        with self._lock:
            if self.received_code is not None:
                return False
            self.received_code = code
            return True

    def authorization_request(self) -> AuthorizationRequest:
        return AuthorizationRequest(
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            scopes=list(self.config.scopes),
            state=self.csrf_token,
        )


class FlowResult:
    """Typed outcome of :func:`~loopauth.flow.run_flow`.

    Exactly one of ``token`` and ``error`` is set.

    Example::

        result = run_flow(config)
        if result.ok:
            print(result.token.access_token)
        else:
            print(f"{result.error.phase} failed: {result.error}")
    """

    def __init__(
        self,
        token: Optional[TokenResponse] = None,
        error: Optional[LoopauthError] = None,
    ):
        if (token is None) == (error is None):
            raise ValueError("FlowResult needs exactly one of token or error")
        self.token = token
        self.error = error

    @property
    def ok(self) -> bool:
        return self.token is not None

    def unwrap(self) -> TokenResponse:
        """Return the token, or raise the recorded error."""
        if self.error is not None:
            raise self.error
        assert self.token is not None
        return self.token

    def __repr__(self) -> str:
        if self.ok:
            return f"FlowResult(token={self.token!r})"
        return f"FlowResult(error={self.error!r})"
