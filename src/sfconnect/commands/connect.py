"""Connect command -- authorize an org and save it to the registry.

Implements ``sfconnect connect [ALIAS]``. The alias selects the provider
base URL (``SF_LOGIN_URL`` for ``org``, ``SF_SANDBOX_URL`` otherwise) and is
stored on the resulting environment record. The authorization URL is the
command's only stdout output; everything else goes to stderr.
"""

from __future__ import annotations

from typing import Optional

import typer

from sfconnect.output import debug, error, info, print_data, success, suggest, warning


def connect_command(
    ctx: typer.Context,
    alias: str = typer.Argument(
        "org", help="Label for the connection. 'org' uses SF_LOGIN_URL, anything else SF_SANDBOX_URL."
    ),
    login_url: Optional[str] = typer.Option(
        None, "--login-url", help="Override the provider base URL."
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="Local callback port (default: SF_CALLBACK_PORT or 1717)."
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for the browser redirect; 0 waits forever.",
    ),
    browser: bool = typer.Option(
        False, "--browser/--no-browser", help="Open the authorization URL in the default browser."
    ),
) -> None:
    """Connect an org through the OAuth authorization code + PKCE flow.

    Starts a local listener on the callback port, prints the authorization
    URL, and waits for the browser to be redirected back. The resulting
    tokens are merged into the environment registry by org id.

    Args:
        ctx: Typer context; ``ctx.obj["registry"]`` may hold a registry path.
        alias: Label stored with the environment.
        login_url: Provider base URL override.
        port: Callback listener port override.
        timeout: Callback wait override in seconds.
        browser: Open the URL in the default browser as well as printing it.

    Raises:
        typer.Exit: With the error's exit code when configuration is
            missing or the handshake fails.

    Example::

        sfconnect connect
        sfconnect connect sandbox --browser
    """
    from sfconnect.config import get_registry_path, load_settings
    from sfconnect.connect import run_connect
    from sfconnect.environments import EnvironmentStore
    from sfconnect.exceptions import SfconnectError

    registry = (ctx.obj or {}).get("registry")

    try:
        settings = load_settings(
            alias, login_url=login_url, callback_port=port, callback_timeout=timeout
        )
        store = EnvironmentStore(get_registry_path(registry))
        debug(f"Registry: {store.path}")

        def announce(url: str) -> None:
            info(f"Open this URL in your browser to connect '{alias}' ({settings.login_url}):")
            print_data(url)
            if settings.callback_timeout is None:
                info("Waiting for the OAuth callback...")
            else:
                info(f"Waiting up to {settings.callback_timeout:g}s for the OAuth callback...")

        result = run_connect(settings, alias, store, announce=announce, open_browser=browser)
    except SfconnectError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    record = result.record
    action = "updated" if result.replaced else "added"
    success(
        f"Environment '{record.alias}' {action} (org {record.org_id or 'unknown'}, "
        f"{record.instance_url})."
    )
    if record.org_id is None:
        warning("The org id could not be read from the identity URL; the record was appended.")
    suggest("Run 'sfconnect list' to see all connected environments.")
