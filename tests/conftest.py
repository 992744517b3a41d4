"""Shared test fixtures for sfconnect.

Provides isolated config environments, ready-made connect settings, output
state management and a CLI runner. These fixtures are discovered by pytest
and available to all test modules without explicit imports.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from sfconnect.models import ConnectSettings, EnvironmentRecord
from sfconnect.output import OutputFormat, OutputManager, reset_output, set_output

SF_ENV_VARS = [
    "SF_LOGIN_URL",
    "SF_SANDBOX_URL",
    "SF_CLIENT_ID",
    "SF_CLIENT_SECRET",
    "SF_REDIRECT_URI",
    "SF_SCOPES",
    "SF_CALLBACK_HOST",
    "SF_CALLBACK_PORT",
    "SF_CALLBACK_TIMEOUT",
    "SF_REQUEST_TIMEOUT",
    "SF_ENVIRONMENTS_FILE",
]


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during a
    test, the cached references become stale once the test finishes.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_DATA_HOME at ``tmp_path/data``, removes every ``SF_*``
    variable and changes the working directory to tmp_path so no real
    ``.env`` file is picked up.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in SF_ENV_VARS:
        # setenv first so teardown also removes values a .env file loaded.
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> ConnectSettings:
    """Settings for a handshake against a listener on an OS-assigned port."""
    return ConnectSettings(
        client_id="abc",
        redirect_uri="http://localhost:1717/callback",
        callback_port=0,
        callback_timeout=5,
    )


@pytest.fixture
def make_record():
    """Factory for :class:`EnvironmentRecord` instances with sensible defaults."""

    def _make(**overrides: object) -> EnvironmentRecord:
        values: dict[str, object] = {
            "alias": "org",
            "instance_url": "https://na1.my.salesforce.com",
            "org_id": "00Dxx",
            "access_token": "tok1",
            "refresh_token": None,
            "connected_at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        }
        values.update(overrides)
        return EnvironmentRecord(**values)  # type: ignore[arg-type]

    return _make


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
