"""Tests for loopauth.config -- XDG paths, atomic writes, profiles, precedence."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from loopauth.config import (
    _atomic_write,
    build_config,
    delete_profile,
    get_config_dir,
    get_data_dir,
    get_profiles_dir,
    list_profiles,
    load_profile,
    profile_exists,
    resolve_credential,
    resolve_flow_config,
    resolve_profile,
    save_profile,
)
from loopauth.exceptions import ConfigurationError
from loopauth.models import ClientAuthMethod, Profile


def _make_profile(name: str = "github", **kwargs: object) -> Profile:
    defaults: dict[str, object] = {
        "client_id": "Iv1.abc",
        "client_secret_source": "env:GH_SECRET",
        "scopes": ["read:user"],
    }
    defaults.update(kwargs)
    return Profile(name=name, **defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPaths:

    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_config"
        monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(custom))

        result = get_config_dir()
        assert result == custom / "loopauth"
        assert result.is_dir()

    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".config" / "loopauth"

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_data_dir() == tmp_path / ".local" / "share" / "loopauth"

    def test_fallback_paths(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".loopauth"
        assert get_data_dir() == tmp_path / ".loopauth"

    def test_profiles_dir(self, isolated_config: Path) -> None:
        assert get_profiles_dir() == isolated_config / "config" / "loopauth" / "profiles"


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:

    def test_writes_content(self, tmp_path: Path) -> None:
        target = tmp_path / "sub" / "file.json"
        _atomic_write(target, '{"a": 1}')
        assert target.read_text() == '{"a": 1}'

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        target = tmp_path / "file.json"
        _atomic_write(target, "one")
        _atomic_write(target, "two")
        assert [p.name for p in tmp_path.iterdir()] == ["file.json"]
        assert target.read_text() == "two"

    def test_failure_keeps_original(self, tmp_path: Path) -> None:
        target = tmp_path / "file.json"
        target.write_text("original")
        with patch("loopauth.config.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                _atomic_write(target, "new")
        assert target.read_text() == "original"
        assert [p.name for p in tmp_path.iterdir()] == ["file.json"]


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestProfiles:

    def test_save_and_load(self, isolated_config: Path) -> None:
        profile = _make_profile(client_auth=ClientAuthMethod.POST)
        path = save_profile(profile)
        assert path.name == "github.json"
        assert load_profile("github") == profile

    def test_file_holds_no_secret_value(self, isolated_config: Path) -> None:
        path = save_profile(_make_profile())
        data = json.loads(path.read_text())
        assert data["client_secret_source"] == "env:GH_SECRET"
        assert "client_secret" not in data

    def test_list_sorted(self, isolated_config: Path) -> None:
        save_profile(_make_profile("zeta"))
        save_profile(_make_profile("alpha"))
        assert list_profiles() == ["alpha", "zeta"]

    def test_exists_and_delete(self, isolated_config: Path) -> None:
        save_profile(_make_profile())
        assert profile_exists("github")
        delete_profile("github")
        assert not profile_exists("github")

    def test_delete_missing(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            delete_profile("nope")

    def test_load_missing(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_profile("nope")

    def test_load_invalid_json(self, isolated_config: Path) -> None:
        (get_profiles_dir() / "broken.json").write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid profile"):
            load_profile("broken")

    def test_load_invalid_fields(self, isolated_config: Path) -> None:
        (get_profiles_dir() / "broken.json").write_text(json.dumps({"name": "broken", "timeout": "x"}))
        with pytest.raises(ConfigurationError, match="Invalid profile"):
            load_profile("broken")

    @pytest.mark.parametrize("name", ["", "../evil", "a/b", ".hidden", "a\\b"])
    def test_unsafe_names_rejected(self, isolated_config: Path, name: str) -> None:
        with pytest.raises(ConfigurationError, match="Invalid profile name"):
            load_profile(name)


# ---------------------------------------------------------------------------
# Credential sources
# ---------------------------------------------------------------------------


class TestResolveCredential:

    def test_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_SECRET", "xyz")
        assert resolve_credential("env:MY_SECRET") == "xyz"

    def test_env_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MY_SECRET", raising=False)
        with pytest.raises(ConfigurationError, match="MY_SECRET"):
            resolve_credential("env:MY_SECRET")

    def test_file_stripped(self, tmp_path: Path) -> None:
        secret_file = tmp_path / "secret"
        secret_file.write_text("xyz\n")
        assert resolve_credential(f"file:{secret_file}") == "xyz"

    def test_file_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            resolve_credential(f"file:{tmp_path / 'nope'}")

    def test_prompt_requires_tty(self) -> None:
        with patch("loopauth.config.sys.stdin") as stdin:
            stdin.isatty.return_value = False
            with pytest.raises(ConfigurationError, match="TTY"):
                resolve_credential("prompt")

    def test_prompt(self) -> None:
        with patch("loopauth.config.sys.stdin") as stdin, patch(
            "loopauth.config.getpass.getpass", return_value="typed"
        ) as getpass:
            stdin.isatty.return_value = True
            assert resolve_credential("prompt") == "typed"
        getpass.assert_called_once()

    def test_unknown_format(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown"):
            resolve_credential("vault:thing")


# ---------------------------------------------------------------------------
# Precedence resolution
# ---------------------------------------------------------------------------


class TestResolveProfile:

    def test_default_when_none_saved(self, isolated_config: Path) -> None:
        profile = resolve_profile()
        assert profile.name == "default"
        assert profile.client_id is None

    def test_single_profile_selected(self, isolated_config: Path) -> None:
        save_profile(_make_profile())
        assert resolve_profile().name == "github"

    def test_ambiguous_falls_back_to_default(self, isolated_config: Path) -> None:
        save_profile(_make_profile("one"))
        save_profile(_make_profile("two"))
        assert resolve_profile().name == "default"

    def test_env_selects(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        save_profile(_make_profile("one"))
        save_profile(_make_profile("two"))
        monkeypatch.setenv("LOOPAUTH_PROFILE", "two")
        assert resolve_profile().name == "two"

    def test_explicit_beats_env(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        save_profile(_make_profile("one"))
        save_profile(_make_profile("two"))
        monkeypatch.setenv("LOOPAUTH_PROFILE", "two")
        assert resolve_profile("one").name == "one"


class TestResolveFlowConfig:

    def test_from_profile(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GH_SECRET", "xyz")
        save_profile(_make_profile(timeout=30.0))

        config = resolve_flow_config()
        assert config.client_id == "Iv1.abc"
        assert config.client_secret.get_secret_value() == "xyz"
        assert config.scopes == ["read:user"]
        assert config.timeout == 30.0

    def test_flags_beat_env_beat_profile(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GH_SECRET", "xyz")
        monkeypatch.setenv("LOOPAUTH_CLIENT_ID", "from-env")
        monkeypatch.setenv("LOOPAUTH_REDIRECT_URI", "http://127.0.0.1:5000")
        save_profile(_make_profile())

        config = resolve_flow_config()
        assert config.client_id == "from-env"
        assert config.redirect_uri == "http://127.0.0.1:5000"

        config = resolve_flow_config(
            client_id="from-flag", redirect_uri="http://localhost:6000", scopes=["repo"], timeout=9
        )
        assert config.client_id == "from-flag"
        assert config.redirect_uri == "http://localhost:6000"
        assert config.scopes == ["repo"]
        assert config.timeout == 9

    def test_secret_env_beats_profile_source(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GH_SECRET", "from-profile")
        monkeypatch.setenv("LOOPAUTH_CLIENT_SECRET", "from-env")
        save_profile(_make_profile())
        assert resolve_flow_config().client_secret.get_secret_value() == "from-env"

    def test_secret_flag_beats_env(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOOPAUTH_CLIENT_SECRET", "from-env")
        monkeypatch.setenv("OTHER", "from-flag")
        save_profile(_make_profile())
        config = resolve_flow_config(client_secret_source="env:OTHER")
        assert config.client_secret.get_secret_value() == "from-flag"

    def test_without_any_profile(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOOPAUTH_CLIENT_ID", "abc")
        monkeypatch.setenv("LOOPAUTH_CLIENT_SECRET", "xyz")
        config = resolve_flow_config()
        assert config.redirect_uri == "http://localhost:4321"
        assert config.authorize_endpoint.startswith("https://github.com/")

    def test_missing_client_id(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOOPAUTH_CLIENT_SECRET", "xyz")
        with pytest.raises(ConfigurationError, match="client ID"):
            resolve_flow_config()

    def test_missing_secret(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigurationError, match="client secret"):
            resolve_flow_config(client_id="abc")

    def test_invalid_redirect(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOOPAUTH_CLIENT_SECRET", "xyz")
        with pytest.raises(ConfigurationError, match="redirect_uri"):
            resolve_flow_config(client_id="abc", redirect_uri="https://example.com/cb")

    def test_unknown_profile(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            resolve_flow_config(profile_name="ghost")


class TestBuildConfig:

    def test_lists_every_problem_without_secret(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            build_config(client_id="", client_secret="hunter2", timeout=-1)
        message = str(exc_info.value)
        assert "client_id" in message
        assert "timeout" in message
        assert "hunter2" not in message
        assert exc_info.value.exit_code == 2
