"""Canonical Pydantic models shared across all sfconnect modules.

Every other module imports its data shapes from here. The models fall into
three groups:

**Settings** -- :class:`ConnectSettings`, the static configuration record
fed to a connect handshake by :func:`sfconnect.config.load_settings`.

**Wire models** -- :class:`TokenResponse`, the JSON body returned by the
provider's token endpoint.

**Registry records** -- :class:`EnvironmentRecord`, one per connected org,
persisted by :class:`sfconnect.environments.EnvironmentStore` as a JSON
array with camelCase keys.

All models use Pydantic v2. Wire and registry models use ``extra="allow"``
so that keys added by the provider or by other tools are preserved.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_LOGIN_URL = "https://login.salesforce.com"
DEFAULT_REDIRECT_URI = "http://localhost:1717/callback"
DEFAULT_SCOPES = "api"
# IPv4 loopback only. The default redirect URI names "localhost"; a browser
# that resolves it to ::1 first is refused there and retries on 127.0.0.1.
# Set SF_CALLBACK_HOST=::1 (and an [::1] redirect URI) for an IPv6 listener.
DEFAULT_CALLBACK_HOST = "127.0.0.1"
DEFAULT_CALLBACK_PORT = 1717
DEFAULT_CALLBACK_TIMEOUT = 300.0
DEFAULT_REQUEST_TIMEOUT = 30.0

AUTHORIZE_PATH = "/services/oauth2/authorize"
TOKEN_PATH = "/services/oauth2/token"

# Position of the org id when an identity URL is split on "/":
# https://login.salesforce.com/id/<org id>/<user id>
ORG_ID_SEGMENT = 4


# --- Settings ---


class ConnectSettings(BaseModel):
    """Static configuration for one connect handshake.

    Built by :func:`sfconnect.config.load_settings` from CLI flags,
    environment variables and ``.env``. ``client_id`` is the only setting
    without a default.

    Example::

        ConnectSettings(
            client_id="3MVG9...",
            redirect_uri="http://localhost:1717/callback",
        )
    """

    login_url: str = Field(
        default=DEFAULT_LOGIN_URL,
        description="Provider base URL (login or sandbox host)",
    )
    client_id: str = Field(min_length=1, description="Connected app consumer key")
    client_secret: Optional[str] = Field(
        default=None,
        repr=False,
        description="Connected app consumer secret; omitted for public clients",
    )
    redirect_uri: str = Field(
        default=DEFAULT_REDIRECT_URI,
        description="Callback URL, must match the connected app exactly",
    )
    scopes: str = Field(default=DEFAULT_SCOPES, description="Space-separated OAuth scopes")
    callback_host: str = Field(
        default=DEFAULT_CALLBACK_HOST, description="Interface the callback listener binds"
    )
    callback_port: int = Field(
        default=DEFAULT_CALLBACK_PORT, ge=0, le=65535, description="Callback listener port"
    )
    callback_timeout: Optional[float] = Field(
        default=DEFAULT_CALLBACK_TIMEOUT,
        description="Seconds to wait for the browser redirect; None waits forever",
    )
    request_timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT, gt=0, description="Token request timeout in seconds"
    )

    @field_validator("login_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"login_url must be an absolute http(s) URL, got {value!r}")
        return value

    @field_validator("client_secret")
    @classmethod
    def _empty_secret_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @field_validator("callback_timeout")
    @classmethod
    def _non_positive_waits_forever(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            return None
        return value

    @property
    def authorize_endpoint(self) -> str:
        """Full URL of the provider's authorize endpoint."""
        return f"{self.login_url}{AUTHORIZE_PATH}"

    @property
    def token_endpoint(self) -> str:
        """Full URL of the provider's token endpoint."""
        return f"{self.login_url}{TOKEN_PATH}"

    @property
    def callback_path(self) -> str:
        """Path component of :attr:`redirect_uri` served by the listener."""
        return urlparse(self.redirect_uri).path or "/"


# --- Token endpoint ---


def parse_org_id(identity_url: Optional[str]) -> Optional[str]:
    """Extract the organization id from a provider identity URL.

    The identity URL has the shape
    ``https://login.salesforce.com/id/<org id>/<user id>``. Splitting on
    ``/`` puts the org id at index 4. Any provider used with this tool must
    return identity URLs in the same structure.

    Args:
        identity_url: The ``id`` field of the token response.

    Returns:
        The org id, or ``None`` when the URL is absent, too short, or the
        segment is empty.
    """
    if not identity_url:
        return None
    parts = identity_url.split("/")
    if len(parts) <= ORG_ID_SEGMENT:
        return None
    return parts[ORG_ID_SEGMENT] or None


class TokenResponse(BaseModel):
    """Successful response from the token endpoint.

    Only ``access_token`` and ``instance_url`` are required. The identity
    URL arrives under the JSON key ``id``.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    access_token: str = Field(min_length=1, repr=False)
    instance_url: str = Field(min_length=1)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    identity_url: Optional[str] = Field(default=None, alias="id")
    token_type: Optional[str] = None
    scope: Optional[str] = None
    issued_at: Optional[str] = None
    signature: Optional[str] = Field(default=None, repr=False)

    @property
    def org_id(self) -> Optional[str]:
        """Organization id parsed from :attr:`identity_url`."""
        return parse_org_id(self.identity_url)


# --- Registry ---


class EnvironmentRecord(BaseModel):
    """One connected org as stored in the environment registry.

    Field names are snake_case in Python and camelCase on disk. ``username``
    is reserved for a later enrichment step and is never filled by the
    connect flow.

    Attributes:
        alias: Operator-chosen label. Not unique; records are matched by
            ``org_id``.
        instance_url: Base URL for subsequent API calls.
        org_id: Provider-assigned organization id, ``None`` when the
            identity URL could not be parsed.
        username: Reserved, always ``None`` after a connect.
        access_token: Access token returned by the exchange.
        refresh_token: Refresh token, if the connected app issues one.
        connected_at: UTC time of the successful exchange.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    alias: str
    instance_url: Optional[str] = Field(default=None, alias="instanceUrl")
    org_id: Optional[str] = Field(default=None, alias="orgId")
    username: Optional[str] = None
    access_token: str = Field(alias="accessToken", repr=False)
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken", repr=False)
    connected_at: datetime = Field(alias="connectedAt")

    @classmethod
    def from_token_response(
        cls,
        alias: str,
        token: TokenResponse,
        connected_at: Optional[datetime] = None,
    ) -> EnvironmentRecord:
        """Build a record from a successful token exchange.

        Args:
            alias: Operator-supplied label for the connection.
            token: The parsed token endpoint response.
            connected_at: Timestamp to record; defaults to now (UTC).
        """
        return cls(
            alias=alias,
            instance_url=token.instance_url,
            org_id=token.org_id,
            username=None,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            connected_at=connected_at or datetime.now(timezone.utc),
        )
