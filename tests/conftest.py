"""Shared test fixtures for oidclogin.

Provides isolated config environments, a clean output/logging state between
tests, sample client data, and helpers for driving the loopback listener
with real HTTP requests.
"""

from __future__ import annotations

import logging
from http.client import HTTPConnection
from pathlib import Path
from urllib.parse import urlsplit

import pytest

from oidclogin.models import AuthorizationFlow, ClientData, RedirectConfig
from oidclogin.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and the package log handlers.

    Both cache references to sys.stdout/sys.stderr. When Typer's CliRunner
    redirects those streams and the test finishes, the cached references
    become stale ("I/O operation on closed file").
    """
    yield
    reset_output()
    package_logger = logging.getLogger("oidclogin")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG_CONFIG_HOME at *tmp_path* and clear OIDCLOGIN_CONFIG.

    Returns:
        The directory holding ``client.json`` for this test.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setattr("oidclogin.config._is_xdg_platform", lambda: True)
    monkeypatch.delenv("OIDCLOGIN_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path / "config" / "oidclogin"


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Client data
# ---------------------------------------------------------------------------


@pytest.fixture
def code_client() -> ClientData:
    """Confidential client using the authorization-code flow with PKCE."""
    return ClientData(
        client_id="desktop-app",
        client_secret="s3cret",
        authorization_endpoint="https://idp.example.com/authorize",
        token_endpoint="https://idp.example.com/token",
        userinfo_endpoint="https://idp.example.com/userinfo",
    )


@pytest.fixture
def implicit_client() -> ClientData:
    return ClientData(
        client_id="desktop-app",
        authorization_endpoint="https://idp.example.com/authorize",
        userinfo_endpoint="https://idp.example.com/userinfo",
        flow=AuthorizationFlow.IMPLICIT,
        redirect=RedirectConfig(capture_fragment=True),
    )


# ---------------------------------------------------------------------------
# Redirect helpers
# ---------------------------------------------------------------------------


def _send_redirect(redirect_uri: str, query: str = "") -> tuple[int, str]:
    """GET *redirect_uri* (plus ``?query``) like a browser would.

    Returns:
        The response status and body.
    """
    parts = urlsplit(redirect_uri)
    target = parts.path + (f"?{query}" if query else "")
    conn = HTTPConnection(parts.hostname, parts.port, timeout=5)
    try:
        conn.request("GET", target)
        response = conn.getresponse()
        return response.status, response.read().decode("utf-8")
    finally:
        conn.close()


@pytest.fixture
def send_redirect():
    """The :func:`_send_redirect` helper, for tests that act as the browser."""
    return _send_redirect
