"""Authorization code to token exchange.

One form-encoded POST to ``{login_url}/services/oauth2/token``. The PKCE
``code_verifier`` proves that the caller started the authorization request.
A failed exchange is never retried: the code is single-use and the operator
re-runs ``connect``, which generates a fresh verifier.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from sfconnect.exceptions import TokenExchangeError
from sfconnect.models import ConnectSettings, TokenResponse

logger = logging.getLogger(__name__)

_MAX_BODY_IN_ERROR = 200


def _provider_message(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Return ``(message, error_code)`` describing a failed token response.

    Prefers the provider's ``error_description``, then ``error``, then a
    truncated raw body.
    """
    payload: Any = None
    try:
        payload = response.json()
    except ValueError:
        pass

    if isinstance(payload, dict):
        code = payload.get("error")
        description = payload.get("error_description")
        if description or code:
            return str(description or code), (str(code) if code else None)

    body = (response.text or "").strip()
    if len(body) > _MAX_BODY_IN_ERROR:
        body = body[:_MAX_BODY_IN_ERROR] + "..."
    return body or "empty response body", None


def exchange_code(
    settings: ConnectSettings,
    code: str,
    code_verifier: str,
) -> TokenResponse:
    """Exchange an authorization code for tokens.

    ``client_secret`` is only sent when configured, so public connected
    apps without a secret work too.

    Args:
        settings: Connect settings providing the token endpoint, client
            credentials, redirect URI and request timeout.
        code: Authorization code received on the callback.
        code_verifier: PKCE verifier from the session that requested *code*.

    Returns:
        The parsed :class:`~sfconnect.models.TokenResponse`.

    Raises:
        TokenExchangeError: On transport errors, a non-2xx status, a
            non-JSON body, or a body missing ``access_token`` or
            ``instance_url``.
    """
    data: dict[str, str] = {
        "grant_type": "authorization_code",
        "code": code,
        "client_id": settings.client_id,
        "redirect_uri": settings.redirect_uri,
        "code_verifier": code_verifier,
    }
    if settings.client_secret:
        data["client_secret"] = settings.client_secret

    url = settings.token_endpoint
    logger.debug("Exchanging authorization code at %s", url)

    try:
        response = httpx.post(
            url,
            data=data,
            headers={"Accept": "application/json"},
            timeout=settings.request_timeout,
        )
    except httpx.HTTPError as exc:
        raise TokenExchangeError(f"Token request to {url} failed: {exc}") from exc

    logger.debug("Token endpoint answered %s", response.status_code)

    if not 200 <= response.status_code < 300:
        message, provider_error = _provider_message(response)
        raise TokenExchangeError(
            f"Token exchange failed with status {response.status_code}: {message}",
            status_code=response.status_code,
            provider_error=provider_error,
        )

    try:
        payload = response.json()
    except ValueError as exc:
        raise TokenExchangeError(
            "Token endpoint returned a body that is not valid JSON",
            status_code=response.status_code,
        ) from exc

    try:
        token = TokenResponse.model_validate(payload)
    except ValidationError as exc:
        missing = ", ".join(
            ".".join(str(p) for p in err["loc"]) or "body" for err in exc.errors()
        )
        raise TokenExchangeError(
            f"Token response is malformed ({missing})",
            status_code=response.status_code,
        ) from exc

    logger.debug("Token response fields: %s", sorted(payload))
    return token
