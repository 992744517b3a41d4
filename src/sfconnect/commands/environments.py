"""List command -- show the connected environments.

Prints one row per registry record. Tokens are never shown.
"""

from __future__ import annotations

import typer

from sfconnect.output import error, info, print_table, suggest

_HEADERS = ["Alias", "Instance URL", "Org ID", "Username", "Connected at"]
_NOT_SET = "(not set)"


def list_command(ctx: typer.Context) -> None:
    """List connected environments.

    Example::

        sfconnect list
        sfconnect --json list
    """
    from sfconnect.config import get_registry_path
    from sfconnect.environments import EnvironmentStore
    from sfconnect.exceptions import SfconnectError

    registry = (ctx.obj or {}).get("registry")
    store = EnvironmentStore(get_registry_path(registry))

    try:
        records = store.load()
    except SfconnectError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if not records:
        info("No environments connected yet.")
        suggest("Run 'sfconnect connect [alias]' to add one.")
        return

    rows = [
        [
            record.alias,
            record.instance_url or _NOT_SET,
            record.org_id or _NOT_SET,
            record.username or _NOT_SET,
            record.connected_at.isoformat(timespec="seconds"),
        ]
        for record in records
    ]
    print_table(_HEADERS, rows, title="Connected environments")
