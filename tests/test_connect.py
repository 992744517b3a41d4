"""End-to-end tests for the connect handshake.

A background thread plays the browser: once the authorization URL is
announced it follows the redirect to the local listener. The token
endpoint is mocked at ``httpx.post``.
"""

from __future__ import annotations

import json
import socket
import threading
from http.client import HTTPConnection
from pathlib import Path
from typing import Callable
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from sfconnect.connect import run_connect
from sfconnect.environments import EnvironmentStore
from sfconnect.exceptions import (
    CallbackProtocolError,
    CallbackTimeoutError,
    ConfigurationError,
    ListenerBindError,
    TokenExchangeError,
)
from sfconnect.models import ConnectSettings
from sfconnect.oauth.pkce import generate_challenge


def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _mock_token_response(access_token: str = "tok1", status_code: int = 200, **extra: object) -> MagicMock:
    body: dict[str, object] = {
        "access_token": access_token,
        "instance_url": "https://na1.my.salesforce.com",
        "id": "https://login.salesforce.com/id/00Dxx/005xx",
    }
    body.update(extra)
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.json.return_value = body
    response.text = json.dumps(body)
    return response


class FakeBrowser:
    """Follows the announced authorization URL back to the local listener."""

    def __init__(self, port: int, query: Callable[[str], str]) -> None:
        self.port = port
        self.query = query
        self.urls: list[str] = []
        self.responses: list[tuple[int, str]] = []
        self._thread: threading.Thread | None = None

    def __call__(self, url: str) -> None:
        self.urls.append(url)
        state = parse_qs(urlparse(url).query)["state"][0]
        self._thread = threading.Thread(target=self._redirect, args=(state,), daemon=True)
        self._thread.start()

    def _redirect(self, state: str) -> None:
        conn = HTTPConnection("127.0.0.1", self.port, timeout=5)
        try:
            conn.request("GET", f"/callback?{self.query(state)}")
            response = conn.getresponse()
            self.responses.append((response.status, response.read().decode("utf-8")))
        finally:
            conn.close()

    def join(self) -> None:
        if self._thread is not None:
            self._thread.join(timeout=5)


@pytest.fixture()
def port() -> int:
    return _find_free_port()


@pytest.fixture()
def connect_settings(settings: ConnectSettings, port: int) -> ConnectSettings:
    return settings.model_copy(update={"callback_port": port})


@pytest.fixture()
def store(tmp_path: Path) -> EnvironmentStore:
    return EnvironmentStore(tmp_path / "environments.json")


def _approve(state: str) -> str:
    return f"code=XYZ&state={state}"


class TestSuccessfulConnect:
    def test_end_to_end(self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int) -> None:
        browser = FakeBrowser(port, _approve)
        with patch("sfconnect.oauth.token_exchange.httpx.post") as mock_post:
            mock_post.return_value = _mock_token_response()
            result = run_connect(connect_settings, "org", store, announce=browser, shutdown_grace=0)
        browser.join()

        record = result.record
        assert record.alias == "org"
        assert record.org_id == "00Dxx"
        assert record.instance_url == "https://na1.my.salesforce.com"
        assert record.access_token == "tok1"
        assert record.username is None
        assert result.replaced is False
        assert store.load() == [record]
        assert browser.responses[0][0] == 200

    def test_verifier_matches_announced_challenge(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        browser = FakeBrowser(port, _approve)
        with patch("sfconnect.oauth.token_exchange.httpx.post") as mock_post:
            mock_post.return_value = _mock_token_response()
            run_connect(connect_settings, "org", store, announce=browser, shutdown_grace=0)
        browser.join()

        sent = mock_post.call_args.kwargs["data"]
        challenge = parse_qs(urlparse(browser.urls[0]).query)["code_challenge"][0]
        assert sent["code"] == "XYZ"
        assert generate_challenge(sent["code_verifier"]) == challenge

    def test_reconnect_same_org_updates_in_place(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        with patch("sfconnect.oauth.token_exchange.httpx.post") as mock_post:
            mock_post.return_value = _mock_token_response("tok1")
            browser = FakeBrowser(port, _approve)
            run_connect(connect_settings, "org", store, announce=browser, shutdown_grace=0)
            browser.join()

            mock_post.return_value = _mock_token_response("tok2")
            browser = FakeBrowser(port, _approve)
            result = run_connect(connect_settings, "org", store, announce=browser, shutdown_grace=0)
            browser.join()

        records = store.load()
        assert result.replaced is True
        assert len(records) == 1
        assert records[0].org_id == "00Dxx"
        assert records[0].access_token == "tok2"

    def test_unparseable_identity_url_appends(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        with patch("sfconnect.oauth.token_exchange.httpx.post") as mock_post:
            for _ in range(2):
                mock_post.return_value = _mock_token_response(id="not-a-url")
                browser = FakeBrowser(port, _approve)
                run_connect(connect_settings, "org", store, announce=browser, shutdown_grace=0)
                browser.join()

        records = store.load()
        assert len(records) == 2
        assert all(r.org_id is None for r in records)

    def test_opens_browser_when_asked(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        opened = threading.Event()
        browser = FakeBrowser(port, _approve)
        with patch("sfconnect.oauth.token_exchange.httpx.post") as mock_post, patch(
            "sfconnect.connect.webbrowser.open", side_effect=lambda url: opened.set()
        ) as mock_open:
            mock_post.return_value = _mock_token_response()
            run_connect(
                connect_settings, "org", store, announce=browser, open_browser=True, shutdown_grace=0
            )
        browser.join()

        assert opened.wait(timeout=5)
        mock_open.assert_called_once_with(browser.urls[0])


class TestFailedConnect:
    def test_state_mismatch_never_exchanges(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        browser = FakeBrowser(port, lambda state: f"code=XYZ&state={state}x")
        with patch("sfconnect.oauth.token_exchange.httpx.post") as mock_post:
            with pytest.raises(CallbackProtocolError, match="Invalid callback"):
                run_connect(connect_settings, "org", store, announce=browser, shutdown_grace=0)
        browser.join()

        mock_post.assert_not_called()
        assert not store.path.exists()
        assert browser.responses[0][0] == 400

    def test_access_denied_never_touches_registry(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        browser = FakeBrowser(
            port, lambda state: f"error=access_denied&error_description=denied&state={state}"
        )
        with patch("sfconnect.oauth.token_exchange.httpx.post") as mock_post, patch.object(
            store, "upsert", wraps=store.upsert
        ) as mock_upsert:
            with pytest.raises(CallbackProtocolError) as exc_info:
                run_connect(connect_settings, "org", store, announce=browser, shutdown_grace=0)
        browser.join()

        assert exc_info.value.provider_error == "access_denied"
        mock_post.assert_not_called()
        mock_upsert.assert_not_called()
        assert not store.path.exists()

    def test_token_exchange_failure(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        browser = FakeBrowser(port, _approve)
        failing = MagicMock(spec=httpx.Response)
        failing.status_code = 400
        failing.json.return_value = {"error": "invalid_grant", "error_description": "expired authorization code"}
        failing.text = ""
        with patch("sfconnect.oauth.token_exchange.httpx.post", return_value=failing):
            with pytest.raises(TokenExchangeError, match="expired authorization code"):
                run_connect(connect_settings, "org", store, announce=browser, shutdown_grace=0)
        browser.join()

        assert not store.path.exists()
        status, body = browser.responses[0]
        assert status == 500
        assert "expired authorization code" in body

    def test_unexpected_error_is_reraised(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        browser = FakeBrowser(port, _approve)
        with patch("sfconnect.oauth.token_exchange.httpx.post") as mock_post, patch.object(
            store, "upsert", side_effect=PermissionError("read-only filesystem")
        ):
            mock_post.return_value = _mock_token_response()
            with pytest.raises(PermissionError):
                run_connect(connect_settings, "org", store, announce=browser, shutdown_grace=0)
        browser.join()

    def test_port_in_use_shows_no_url(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        announce = MagicMock()
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", port))
            blocker.listen(1)
            with pytest.raises(ListenerBindError):
                run_connect(connect_settings, "org", store, announce=announce)

        announce.assert_not_called()

    def test_timeout_closes_listener(
        self, connect_settings: ConnectSettings, store: EnvironmentStore, port: int
    ) -> None:
        announce = MagicMock()
        settings = connect_settings.model_copy(update={"callback_timeout": 0.3})

        with pytest.raises(CallbackTimeoutError):
            run_connect(settings, "org", store, announce=announce)

        announce.assert_called_once()
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
            probe.bind(("127.0.0.1", port))

    def test_corrupt_registry_fails_before_url(
        self, connect_settings: ConnectSettings, store: EnvironmentStore
    ) -> None:
        store.path.write_text("{broken")
        announce = MagicMock()

        with pytest.raises(ConfigurationError):
            run_connect(connect_settings, "org", store, announce=announce)

        announce.assert_not_called()
        assert store.path.read_text() == "{broken"
