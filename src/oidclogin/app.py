"""Typer application and CLI entry point for oidclogin.

:func:`main` backs the ``oidclogin`` console script declared in
``pyproject.toml``. It installs a SIGINT handler, registers the built-in
sub-commands and invokes the Typer app. :class:`~oidclogin.exceptions.OidcError`
instances that reach it exit with the error's ``exit_code``.

Library log records (``oidclogin.*`` loggers) are rendered on stderr by a
:class:`rich.logging.RichHandler` installed in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from oidclogin import __version__
from oidclogin.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="oidclogin",
    help="Log in to an OpenID Connect provider from the command line.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"oidclogin {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool = False) -> None:
    """Route ``oidclogin`` log records to stderr through Rich.

    ``--verbose`` lowers the level to DEBUG; otherwise only warnings and
    errors are shown. Calling it again replaces the previous handler.
    """
    package_logger = logging.getLogger("oidclogin")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)

    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=Console(file=sys.stderr, stderr=True),
        show_time=False,
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


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
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to the client configuration file."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Apply the global options before any sub-command runs.

    Installs the global :class:`~oidclogin.output.OutputManager` and the
    log handler, and stores the ``--config`` override in ``ctx.obj``.
    """
    from oidclogin.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose


def _register_commands() -> None:
    from oidclogin.commands.config import config_app
    from oidclogin.commands.login import discover_command, login_command

    app.command("login")(login_command)
    app.command("discover")(discover_command)
    app.add_typer(config_app, name="config", help="Client configuration management.")


_register_commands()


def _setup_signal_handlers() -> None:
    """Turn Ctrl-C into exit status 130 instead of a traceback."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """Run the CLI and translate uncaught errors into exit statuses.

    Raises:
        SystemExit: Always; the status is 0 on success.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from oidclogin.exceptions import OidcError
        from oidclogin.output import error

        if isinstance(exc, OidcError):
            error(str(exc))
            sys.exit(exc.exit_code)
        logging.getLogger(__name__).exception("Unexpected error")
        error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
