"""Configuration loading with XDG paths, atomic writes, and precedence resolution.

This module handles everything sfconnect reads from or writes to the local
machine outside of the OAuth handshake itself:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.sfconnect/`` on macOS and Windows. See :func:`get_data_dir`.
* **Settings** -- :func:`load_settings` builds the static
  :class:`~sfconnect.models.ConnectSettings` record from CLI flags,
  environment variables and a ``.env`` file (loaded with ``python-dotenv``
  by :func:`load_env_file`).
* **Registry location** -- :func:`get_registry_path` resolves where the
  environment registry lives.

Precedence (high to low):
    1. CLI flags
    2. Environment variables (``SF_*``)
    3. ``.env`` file (never overrides variables already set)
    4. Defaults from :mod:`sfconnect.models`

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so that a crash never leaves a half-written
registry behind.
"""

from __future__ import annotations

import logging
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from sfconnect.exceptions import ConfigurationError
from sfconnect.models import DEFAULT_LOGIN_URL, ConnectSettings

logger = logging.getLogger(__name__)

_APP_NAME = "sfconnect"
_REGISTRY_FILENAME = "environments.json"
_ENV_FILENAME = ".env"

PRIMARY_ALIAS = "org"
"""Alias that selects ``SF_LOGIN_URL``; every other alias uses ``SF_SANDBOX_URL``."""


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
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


def get_data_dir() -> Path:
    """Return the data directory (registry, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/sfconnect/`` (default ``~/.local/share/sfconnect/``).
    On macOS/Windows: ``~/.sfconnect/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_registry_path(cli_path: Optional[Path] = None) -> Path:
    """Resolve the environment registry file.

    Precedence: the ``--registry`` flag, then ``SF_ENVIRONMENTS_FILE``, then
    ``<data dir>/environments.json``.
    """
    if cli_path is not None:
        return Path(cli_path).expanduser()
    env_value = _env("SF_ENVIRONMENTS_FILE")
    if env_value:
        return Path(env_value).expanduser()
    return get_data_dir() / _REGISTRY_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    When *mode* is given it is applied to the temp file before any content
    is written, so secrets are never readable by others, even momentarily.
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
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in the except branch
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings ---


def _env(name: str) -> Optional[str]:
    """Return a stripped environment variable, treating empty strings as unset."""
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_env_file(env_path: Optional[Path] = None) -> bool:
    """Load ``KEY=value`` pairs from a ``.env`` file into ``os.environ``.

    Variables that are already set are left untouched.

    Args:
        env_path: Explicit file to load. Defaults to ``./.env``, which is
            optional; an explicit path that does not exist is an error.

    Returns:
        ``True`` if a file was loaded.

    Raises:
        ConfigurationError: If *env_path* was given and is not a file.
    """
    path = Path(env_path).expanduser() if env_path else Path.cwd() / _ENV_FILENAME
    if not path.is_file():
        if env_path is not None:
            raise ConfigurationError(f"Env file not found: {path}")
        logger.debug("No %s file at %s, using environment only", _ENV_FILENAME, path)
        return False
    load_dotenv(dotenv_path=path, override=False)
    logger.debug("Loaded environment variables from %s", path)
    return True


def _describe_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one readable line."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "settings"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def load_settings(
    alias: str = PRIMARY_ALIAS,
    *,
    login_url: Optional[str] = None,
    callback_port: Optional[int] = None,
    callback_timeout: Optional[float] = None,
) -> ConnectSettings:
    """Build the static settings record for a connect handshake.

    The provider base URL comes from ``SF_LOGIN_URL`` when *alias* is
    ``"org"`` and from ``SF_SANDBOX_URL`` for any other alias, falling back
    to ``https://login.salesforce.com`` in both cases.

    Environment variables read: ``SF_LOGIN_URL``, ``SF_SANDBOX_URL``,
    ``SF_CLIENT_ID`` (required), ``SF_CLIENT_SECRET``, ``SF_REDIRECT_URI``,
    ``SF_SCOPES``, ``SF_CALLBACK_HOST``, ``SF_CALLBACK_PORT``,
    ``SF_CALLBACK_TIMEOUT`` (``0`` waits forever) and ``SF_REQUEST_TIMEOUT``.

    Args:
        alias: The alias being connected; selects the login URL variable.
        login_url: CLI override for the provider base URL.
        callback_port: CLI override for the listener port.
        callback_timeout: CLI override for the callback wait in seconds.

    Returns:
        A validated :class:`~sfconnect.models.ConnectSettings`.

    Raises:
        ConfigurationError: If ``SF_CLIENT_ID`` is missing or any value
            fails validation.
    """
    url_var = "SF_LOGIN_URL" if alias == PRIMARY_ALIAS else "SF_SANDBOX_URL"

    client_id = _env("SF_CLIENT_ID")
    if not client_id:
        raise ConfigurationError(
            "SF_CLIENT_ID is not set. Define it in the environment or in a .env file."
        )

    values: dict[str, object] = {
        "login_url": login_url or _env(url_var) or DEFAULT_LOGIN_URL,
        "client_id": client_id,
        "client_secret": _env("SF_CLIENT_SECRET"),
        "redirect_uri": _env("SF_REDIRECT_URI"),
        "scopes": _env("SF_SCOPES"),
        "callback_host": _env("SF_CALLBACK_HOST"),
        "callback_port": callback_port if callback_port is not None else _env("SF_CALLBACK_PORT"),
        "callback_timeout": (
            callback_timeout if callback_timeout is not None else _env("SF_CALLBACK_TIMEOUT")
        ),
        "request_timeout": _env("SF_REQUEST_TIMEOUT"),
    }

    try:
        settings = ConnectSettings(**{k: v for k, v in values.items() if v is not None})
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {_describe_validation_error(exc)}"
        ) from exc

    logger.debug(
        "Settings for alias %r: login_url=%s redirect_uri=%s port=%s",
        alias,
        settings.login_url,
        settings.redirect_uri,
        settings.callback_port,
    )
    return settings
