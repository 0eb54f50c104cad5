"""CLI application for gcp-provisioner."""

from __future__ import annotations

import logging
import os
import sys

import typer

from gcp_provisioner import __version__

app = typer.Typer(
    name="gcp-provisioner",
    no_args_is_help=True,
    add_completion=False,
)

LOG_ENV_VAR = "GCP_PROVISIONER_LOG"

# Apply and drift run provider calls on worker threads; the thread name tells
# interleaved lines apart.
_LOG_FORMAT = "%(levelname)s [%(threadName)s] %(name)s: %(message)s"

_VERBOSITY_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)
_VALID_LEVELS = ("CRITICAL", "DEBUG", "ERROR", "INFO", "WARNING")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"gcp-provisioner {__version__}")
        raise typer.Exit


def _level_from_env() -> int | None:
    name = os.environ.get(LOG_ENV_VAR, "").strip().upper()
    if not name:
        return None
    if name not in _VALID_LEVELS:
        print(
            f"WARNING: invalid {LOG_ENV_VAR} level '{name}', "
            f"expected one of {', '.join(_VALID_LEVELS)}; defaulting to INFO",
            file=sys.stderr,
        )
        return logging.INFO
    return logging.getLevelName(name)


def _configure_logging(verbose: int) -> None:
    """Route ``gcp_provisioner`` logs to stderr.

    ``GCP_PROVISIONER_LOG`` wins over ``-v``/``-vv``. Without either, logging
    stays unconfigured. Third-party loggers stay at WARNING.
    """
    level = _level_from_env()
    if level is None:
        if verbose <= 0:
            return
        level = _VERBOSITY_LEVELS[min(verbose, len(_VERBOSITY_LEVELS) - 1)]
    logging.basicConfig(
        level=logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("gcp_provisioner").setLevel(level)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help=f"Increase log verbosity (-v info, -vv debug). Overridden by {LOG_ENV_VAR}.",
    ),
) -> None:
    """Dependency-ordered plan/apply provisioning for GCP infrastructure."""
    _ = version
    _configure_logging(verbose)


# Register commands after app is created to avoid circular imports.
from gcp_provisioner.cli import commands as _commands  # noqa: E402, F401
