"""The ``connect`` handshake from start to finish.

:func:`run_connect` wires the OAuth pieces together::

    new_session -> bind listener -> announce URL -> wait for callback
                -> exchange code -> upsert registry -> close listener

The listener is bound before the URL is shown, so a busy port fails the
command without sending the operator to the browser.
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from dataclasses import dataclass
from typing import Callable, Optional

from sfconnect.environments import EnvironmentStore
from sfconnect.models import ConnectSettings, EnvironmentRecord
from sfconnect.oauth.authorize import build_authorize_url
from sfconnect.oauth.callback import SHUTDOWN_GRACE_SECONDS, CallbackListener
from sfconnect.oauth.pkce import new_session
from sfconnect.oauth.token_exchange import exchange_code

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectResult:
    """What a successful handshake stored.

    Attributes:
        record: The environment record written to the registry.
        replaced: True if it replaced a record with the same org id.
    """

    record: EnvironmentRecord
    replaced: bool


def run_connect(
    settings: ConnectSettings,
    alias: str,
    store: EnvironmentStore,
    *,
    announce: Optional[Callable[[str], None]] = None,
    open_browser: bool = False,
    shutdown_grace: float = SHUTDOWN_GRACE_SECONDS,
) -> ConnectResult:
    """Run one OAuth authorization code + PKCE handshake and store the result.

    Args:
        settings: Static configuration for this handshake.
        alias: Label stored with the resulting environment record.
        store: Registry the record is merged into.
        announce: Called with the authorization URL once the listener is
            bound. Typically prints it for the operator.
        open_browser: Also open the URL in the default browser.
        shutdown_grace: Seconds to keep the socket open after the browser
            was answered.

    Returns:
        A :class:`ConnectResult` with the stored record.

    Raises:
        ConfigurationError: If the registry cannot be read.
        ListenerBindError: If the callback port is unavailable.
        CallbackTimeoutError: If the browser never redirected back.
        CallbackProtocolError: If the provider reported an error or the
            callback did not match this session.
        TokenExchangeError: If the code could not be exchanged.
    """
    # Fail on an unreadable registry before the operator is sent to the browser.
    store.load()

    session = new_session()
    replaced = False

    def complete(code: str) -> EnvironmentRecord:
        nonlocal replaced
        token = exchange_code(settings, code, session.code_verifier)
        record = EnvironmentRecord.from_token_response(alias, token)
        replaced = store.upsert(record)
        logger.info(
            "%s environment %r (org %s) in %s",
            "Updated" if replaced else "Added",
            alias,
            record.org_id or "unknown",
            store.path,
        )
        return record

    listener = CallbackListener(
        session,
        complete,
        host=settings.callback_host,
        port=settings.callback_port,
        callback_path=settings.callback_path,
        shutdown_grace=shutdown_grace,
    )
    listener.bind()
    try:
        url = build_authorize_url(settings, session)
        if announce is not None:
            announce(url)
        if open_browser:
            threading.Thread(target=webbrowser.open, args=(url,), daemon=True).start()

        outcome = listener.wait(timeout=settings.callback_timeout)
    finally:
        listener.close()

    if outcome.error is not None:
        raise outcome.error
    assert outcome.record is not None
    return ConnectResult(record=outcome.record, replaced=replaced)
