"""Authorization endpoint URL construction."""

from __future__ import annotations

from urllib.parse import urlencode

from sfconnect.models import ConnectSettings
from sfconnect.oauth.pkce import CHALLENGE_METHOD, Session


def build_authorize_url(settings: ConnectSettings, session: Session) -> str:
    """Build the URL the operator opens to log in.

    ``prompt=login`` forces the provider to ask for credentials again
    instead of silently reusing an existing browser session.

    Args:
        settings: Static connect settings (base URL, client id, redirect
            URI, scopes).
        session: PKCE material for this handshake.

    Returns:
        ``{login_url}/services/oauth2/authorize?...``
    """
    params = {
        "response_type": "code",
        "client_id": settings.client_id,
        "redirect_uri": settings.redirect_uri,
        "scope": settings.scopes,
        "code_challenge": session.code_challenge,
        "code_challenge_method": CHALLENGE_METHOD,
        "state": session.state,
        "prompt": "login",
    }
    return f"{settings.authorize_endpoint}?{urlencode(params)}"
