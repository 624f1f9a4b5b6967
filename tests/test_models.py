"""Tests for loopauth.models -- config validation and flow bookkeeping."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from loopauth.exceptions import FlowTimeoutError
from loopauth.models import (
    CallbackKind,
    CallbackResult,
    ClientAuthMethod,
    FlowResult,
    FlowState,
    OAuthConfig,
    Profile,
    TokenResponse,
    check_redirect_uri,
)


def _config(**kwargs: object) -> OAuthConfig:
    defaults: dict[str, object] = {"client_id": "abc", "client_secret": "xyz"}
    defaults.update(kwargs)
    return OAuthConfig(**defaults)  # type: ignore[arg-type]


class TestCheckRedirectUri:

    @pytest.mark.parametrize(
        "uri",
        [
            "http://localhost:4321",
            "http://127.0.0.1:8080/callback",
            "http://[::1]:9000/cb",
        ],
    )
    def test_accepts_loopback(self, uri: str) -> None:
        assert check_redirect_uri(uri) == uri

    @pytest.mark.parametrize(
        ("uri", "fragment"),
        [
            ("https://localhost:4321", "http scheme"),
            ("http://example.com:4321", "host"),
            ("http://localhost", "explicit port"),
            ("http://localhost:99999", "invalid port"),
        ],
    )
    def test_rejects(self, uri: str, fragment: str) -> None:
        with pytest.raises(ValueError, match=fragment):
            check_redirect_uri(uri)

    def test_not_normalised(self) -> None:
        uri = "http://localhost:4321/Callback/"
        assert check_redirect_uri(uri) == uri


class TestOAuthConfig:

    def test_defaults(self) -> None:
        config = _config()
        assert config.redirect_uri == "http://localhost:4321"
        assert config.timeout == 120.0
        assert config.client_auth is ClientAuthMethod.BASIC
        assert config.scopes == []

    def test_secret_hidden_in_repr(self) -> None:
        config = _config()
        assert "xyz" not in repr(config)
        assert config.client_secret.get_secret_value() == "xyz"

    def test_frozen(self) -> None:
        config = _config()
        with pytest.raises(ValidationError):
            config.client_id = "other"  # type: ignore[misc]

    def test_empty_client_id_rejected(self) -> None:
        with pytest.raises(ValidationError, match="client_id"):
            _config(client_id="  ")

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValidationError, match="client_secret"):
            _config(client_secret="")

    def test_scopes_deduplicated_in_order(self) -> None:
        config = _config(scopes=["repo", "read:user", "repo", " ", "gist"])
        assert config.scopes == ["repo", "read:user", "gist"]

    @pytest.mark.parametrize("timeout", [0, -1, float("inf"), float("nan")])
    def test_bad_timeout_rejected(self, timeout: float) -> None:
        with pytest.raises(ValidationError, match="timeout"):
            _config(timeout=timeout)

    def test_bad_endpoint_rejected(self) -> None:
        with pytest.raises(ValidationError, match="token_endpoint"):
            _config(token_endpoint="not-a-url")

    def test_reserved_extra_params_rejected(self) -> None:
        with pytest.raises(ValidationError, match="state"):
            _config(extra_authorize_params={"state": "fixed"})

    def test_non_loopback_redirect_rejected(self) -> None:
        with pytest.raises(ValidationError, match="redirect_uri"):
            _config(redirect_uri="http://evil.example:4321")


class TestProfile:

    def test_round_trips_through_json(self) -> None:
        profile = Profile(
            name="github",
            client_id="Iv1.abc",
            client_secret_source="env:GH_SECRET",
            scopes=["read:user"],
            client_auth=ClientAuthMethod.POST,
        )
        data = profile.model_dump(mode="json")
        assert data["client_auth"] == "post"
        assert Profile.model_validate(data) == profile


class TestCallbackResult:

    def test_terminal_kinds(self) -> None:
        assert CallbackResult.code_received("c").is_terminal
        assert CallbackResult.provider_error("access_denied").is_terminal
        assert not CallbackResult.state_mismatch().is_terminal
        assert not CallbackResult.malformed().is_terminal

    def test_repr_hides_code(self) -> None:
        result = CallbackResult.code_received("SECRETCODE")
        assert "SECRETCODE" not in repr(result)
        assert result.kind is CallbackKind.CODE_RECEIVED


class TestTokenResponse:

    def test_keeps_unknown_fields(self) -> None:
        token = TokenResponse.model_validate({"access_token": "t", "id_token": "jwt"})
        assert token.model_extra == {"id_token": "jwt"}
        assert token.model_dump(exclude_none=True) == {"access_token": "t", "id_token": "jwt"}

    def test_empty_token_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TokenResponse(access_token="")

    def test_repr_hides_token(self) -> None:
        assert "tok_999" not in repr(TokenResponse(access_token="tok_999"))


class TestFlowState:

    def test_first_code_wins(self) -> None:
        state = FlowState(_config(), "s")
        assert state.record_code("first") is True
        assert state.record_code("second") is False
        assert state.received_code == "first"

    def test_authorization_request(self) -> None:
        state = FlowState(_config(scopes=["a"]), "csrf")
        request = state.authorization_request()
        assert request.client_id == "abc"
        assert request.state == "csrf"
        assert request.scopes == ["a"]


class TestFlowResult:

    def test_requires_exactly_one(self) -> None:
        with pytest.raises(ValueError):
            FlowResult()
        with pytest.raises(ValueError):
            FlowResult(token=TokenResponse(access_token="t"), error=FlowTimeoutError("x"))

    def test_ok_and_unwrap(self) -> None:
        token = TokenResponse(access_token="t")
        result = FlowResult(token=token)
        assert result.ok
        assert result.unwrap() is token

    def test_unwrap_raises_error(self) -> None:
        result = FlowResult(error=FlowTimeoutError("late"))
        assert not result.ok
        with pytest.raises(FlowTimeoutError, match="late"):
            result.unwrap()
