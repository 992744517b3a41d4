"""OAuth 2.0 authorization code flow with PKCE.

The pieces of one handshake, in the order they are used:

- :func:`new_session` -- fresh PKCE verifier/challenge pair and state token.
- :func:`build_authorize_url` -- URL the operator opens in a browser.
- :class:`CallbackListener` -- local HTTP listener that validates the
  redirect and hands the authorization code on.
- :func:`exchange_code` -- trades the code and verifier for tokens.

Typical usage::

    from sfconnect.oauth import CallbackListener, build_authorize_url, new_session

    session = new_session()
    url = build_authorize_url(settings, session)
"""

from sfconnect.oauth.authorize import build_authorize_url
from sfconnect.oauth.callback import CallbackListener, CallbackOutcome, ListenerState
from sfconnect.oauth.pkce import Session, new_session
from sfconnect.oauth.token_exchange import exchange_code

__all__ = [
    "CallbackListener",
    "CallbackOutcome",
    "ListenerState",
    "Session",
    "build_authorize_url",
    "exchange_code",
    "new_session",
]
