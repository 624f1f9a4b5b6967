"""Shared test fixtures for loopauth.

Provides reusable fixtures for isolated config environments, output state,
free loopback ports and ready-made flow configurations. These fixtures are
automatically discovered by pytest.
"""

from __future__ import annotations

import logging
import socket
from pathlib import Path

import pytest

from loopauth.models import OAuthConfig
from loopauth.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and the ``loopauth`` logger after every test.

    Both hold references to sys.stdout/sys.stderr taken at creation time.
    When Typer's CliRunner redirects those streams the cached references go
    stale once the test finishes.
    """
    yield
    reset_output()
    logger = logging.getLogger("loopauth")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at subdirectories of tmp_path, forces the
    XDG code path, and clears all LOOPAUTH_* environment variables.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "LOOPAUTH_PROFILE",
        "LOOPAUTH_CLIENT_ID",
        "LOOPAUTH_CLIENT_SECRET",
        "LOOPAUTH_REDIRECT_URI",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Network fixtures
# ---------------------------------------------------------------------------


def find_free_port() -> int:
    """Return a loopback TCP port that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def free_port() -> int:
    return find_free_port()


@pytest.fixture
def flow_config(free_port: int) -> OAuthConfig:
    """A valid config whose redirect URI points at a free loopback port."""
    return OAuthConfig(
        client_id="abc",
        client_secret="xyz",
        redirect_uri=f"http://127.0.0.1:{free_port}/callback",
        scopes=["read:user"],
        authorize_endpoint="https://provider.example/authorize",
        token_endpoint="https://provider.example/token",
        timeout=5.0,
    )


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner with stderr captured separately."""
    from typer.testing import CliRunner

    try:
        return CliRunner(mix_stderr=False)
    except TypeError:
        # Click 8.2 removed mix_stderr; stderr is always separate there.
        return CliRunner()
