"""Typer application and CLI entry point for sfconnect.

This module builds the root Typer application, registers the ``connect``,
``list`` and ``help`` commands, and configures output and logging from the
global flags in :func:`main_callback`.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. It runs the app with ``standalone_mode=False`` so that
every failure is mapped to an exit code here: ``SfconnectError`` subclasses
exit with their own code, usage errors exit 1, Ctrl-C exits 130, and any
other exception is written to a crash log under the data directory.

See Also:
    :mod:`sfconnect.config`: Settings and ``.env`` resolution.
    :mod:`sfconnect.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import click
import typer

from sfconnect import __version__
from sfconnect.commands.connect import connect_command
from sfconnect.commands.environments import list_command
from sfconnect.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED, EXIT_SUCCESS

USAGE = """\
Usage:
  sfconnect connect [ALIAS]    Connect an org (ALIAS defaults to 'org')
  sfconnect list               List connected environments
  sfconnect help               Show this message

Examples:
  sfconnect connect            # uses SF_LOGIN_URL
  sfconnect connect sandbox    # any other alias uses SF_SANDBOX_URL
  sfconnect connect sandbox --browser
  sfconnect --json list

Run 'sfconnect --help' for all options."""


app = typer.Typer(
    name="sfconnect",
    help="Connect a CLI session to Salesforce orgs with OAuth2 + PKCE.",
    invoke_without_command=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"sfconnect {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    env_file: Optional[Path] = typer.Option(
        None, "--env-file", help="Load settings from this .env file instead of ./.env."
    ),
    registry: Optional[Path] = typer.Option(
        None, "--registry", help="Environment registry file (default: SF_ENVIRONMENTS_FILE)."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every command.

    Installs the global :class:`~sfconnect.output.OutputManager`, configures
    logging, loads the ``.env`` file, and stores shared options in
    ``ctx.obj`` for the commands.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        env_file: Explicit ``.env`` path; must exist when given.
        registry: Registry file override (highest precedence).
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable debug output and DEBUG logging.

    Raises:
        InvalidUsageError: If no command was given.
    """
    from sfconnect.config import load_env_file
    from sfconnect.exceptions import InvalidUsageError
    from sfconnect.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["registry"] = registry

    if ctx.invoked_subcommand is None:
        typer.echo(USAGE, err=True)
        raise InvalidUsageError("No command given.")
    if ctx.invoked_subcommand != "help":
        load_env_file(env_file)


@app.command("help")
def help_command() -> None:
    """Show usage and examples."""
    from sfconnect.output import print_data

    print_data(USAGE)


app.command("connect")(connect_command)
app.command("list")(list_command)


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.

    Returns:
        Absolute path to the written crash log file.
    """
    from sfconnect.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        encoding="utf-8",
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``sfconnect`` console script.

    Raises:
        SystemExit: Always, with the command's exit code.
    """
    from sfconnect.exceptions import InvalidUsageError, SfconnectError
    from sfconnect.output import error, suggest

    _setup_signal_handlers()
    try:
        code = app(standalone_mode=False)
    except SystemExit:
        raise
    except (KeyboardInterrupt, click.Abort):
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except click.UsageError as exc:
        usage_error = InvalidUsageError(exc.format_message())
        error(str(usage_error))
        suggest("Run 'sfconnect help' for usage.")
        sys.exit(usage_error.exit_code)
    except click.ClickException as exc:
        error(exc.format_message())
        sys.exit(exc.exit_code)
    except SfconnectError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
    sys.exit(code if isinstance(code, int) else EXIT_SUCCESS)
