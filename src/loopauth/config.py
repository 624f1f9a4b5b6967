"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for loopauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.loopauth/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_profiles_dir`.
* **Profiles** -- One JSON file per provider registration, each
  deserialised into a :class:`~loopauth.models.Profile`. Managed via
  :func:`load_profile`, :func:`save_profile`, :func:`delete_profile`.
* **Credential resolution** -- :func:`resolve_credential` reads the client
  secret from an env var, a file, or an interactive prompt. Profiles never
  store the secret itself.
* **Precedence resolution** -- :func:`resolve_flow_config` merges CLI
  flags, environment variables and the selected profile into a validated
  :class:`~loopauth.models.OAuthConfig`.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from loopauth.exceptions import ConfigurationError
from loopauth.models import OAuthConfig, Profile

_APP_NAME = "loopauth"

ENV_PROFILE = "LOOPAUTH_PROFILE"
ENV_CLIENT_ID = "LOOPAUTH_CLIENT_ID"
ENV_CLIENT_SECRET = "LOOPAUTH_CLIENT_SECRET"
ENV_REDIRECT_URI = "LOOPAUTH_REDIRECT_URI"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory specification (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/loopauth/`` (default ``~/.config/loopauth/``).
    On macOS/Windows: ``~/.loopauth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/loopauth/`` (default ``~/.local/share/loopauth/``).
    On macOS/Windows: ``~/.loopauth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_profiles_dir() -> Path:
    """Return the profiles directory (``<config_dir>/profiles/``), creating it if necessary."""
    path = get_config_dir() / "profiles"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On any failure the temp file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Profiles ---


def _profile_path(name: str) -> Path:
    if not name or "/" in name or "\\" in name or name.startswith("."):
        raise ConfigurationError(f"Invalid profile name: {name!r}")
    return get_profiles_dir() / f"{name}.json"


def list_profiles() -> list[str]:
    """Return all profile names, sorted alphabetically."""
    return sorted(p.stem for p in get_profiles_dir().glob("*.json") if p.is_file())


def load_profile(name: str) -> Profile:
    """Load and validate a profile from disk.

    Raises:
        ConfigurationError: If the profile does not exist, contains invalid
            JSON, or fails validation.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigurationError(f"Profile '{name}' not found at {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Profile.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid profile '{name}' at {path}: {exc}") from exc


def save_profile(profile: Profile) -> Path:
    """Persist a profile atomically and return the file path."""
    path = _profile_path(profile.name)
    data = profile.model_dump(mode="json")
    _atomic_write(path, json.dumps(data, indent=2) + "\n")
    return path


def delete_profile(name: str) -> None:
    """Delete a profile's JSON file.

    Raises:
        ConfigurationError: If the profile does not exist.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigurationError(f"Profile '{name}' not found at {path}")
    path.unlink()


def profile_exists(name: str) -> bool:
    return _profile_path(name).is_file()


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a secret from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Raises:
        ConfigurationError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigurationError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigurationError(
                "Cannot prompt for the client secret: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Client secret: ")

    raise ConfigurationError(f"Unknown credential source format: {source}")


# --- Precedence resolution ---


def resolve_profile(profile_name: Optional[str] = None) -> Profile:
    """Select the active profile.

    The explicit name wins, then ``LOOPAUTH_PROFILE``, then the only saved
    profile if exactly one exists. With none of those, an empty
    ``default`` profile carrying the model defaults is returned.
    """
    name = profile_name or os.environ.get(ENV_PROFILE)
    if name is None:
        available = list_profiles()
        if len(available) == 1:
            name = available[0]
    return load_profile(name) if name else Profile(name="default")


def build_config(**fields: Any) -> OAuthConfig:
    """Validate *fields* into an :class:`OAuthConfig`.

    Raises:
        ConfigurationError: Listing every invalid or missing field. The
            client secret value is never included in the message.
    """
    try:
        return OAuthConfig(**fields)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors(include_input=False)
        )
        raise ConfigurationError(f"Invalid OAuth configuration: {problems}") from None


def resolve_flow_config(
    profile_name: Optional[str] = None,
    client_id: Optional[str] = None,
    client_secret_source: Optional[str] = None,
    redirect_uri: Optional[str] = None,
    scopes: Optional[list[str]] = None,
    timeout: Optional[float] = None,
) -> OAuthConfig:
    """Resolve the effective flow configuration.

    Precedence (high to low):
        1. Explicit arguments (CLI flags)
        2. Environment variables (``LOOPAUTH_CLIENT_ID``,
           ``LOOPAUTH_CLIENT_SECRET``, ``LOOPAUTH_REDIRECT_URI``;
           ``LOOPAUTH_PROFILE`` selects the profile)
        3. The selected profile (or the only profile, if exactly one exists)
        4. Model defaults

    Raises:
        ConfigurationError: If the profile cannot be loaded, the secret
            cannot be resolved, or the merged values fail validation.
    """
    profile = resolve_profile(profile_name)
    fields: dict[str, Any] = profile.model_dump(exclude={"name", "client_secret_source"})

    env_client_id = os.environ.get(ENV_CLIENT_ID)
    if client_id is not None:
        fields["client_id"] = client_id
    elif env_client_id:
        fields["client_id"] = env_client_id

    env_redirect = os.environ.get(ENV_REDIRECT_URI)
    if redirect_uri is not None:
        fields["redirect_uri"] = redirect_uri
    elif env_redirect:
        fields["redirect_uri"] = env_redirect

    if scopes:
        fields["scopes"] = scopes
    if timeout is not None:
        fields["timeout"] = timeout

    if not fields.get("client_id"):
        raise ConfigurationError(
            f"No client ID configured (use --client-id, {ENV_CLIENT_ID}, or a profile)"
        )

    secret_source = client_secret_source or profile.client_secret_source
    if client_secret_source is None and os.environ.get(ENV_CLIENT_SECRET):
        secret = os.environ[ENV_CLIENT_SECRET]
    elif secret_source:
        secret = resolve_credential(secret_source)
    else:
        raise ConfigurationError(
            "No client secret configured (use --client-secret-source, "
            f"{ENV_CLIENT_SECRET}, or a profile)"
        )
    fields["client_secret"] = secret

    return build_config(**fields)
