"""Command-line interface (``gcp-env-provisioner``)."""

from __future__ import annotations

import logging
import os
import sys

import typer

from gcp_env_provisioner import __version__

LOG_ENV = "GCP_ENV_LOG"
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

app = typer.Typer(
    name="gcp-env-provisioner",
    help="Bootstrap Google Cloud environments: project, network, GKE, Cloud SQL and Redis.",
    no_args_is_help=True,
    add_completion=False,
)


def log_level(verbose: int, env_value: str | None = None) -> int | None:
    """Level for the package logger, or None to leave logging alone.

    A level name in ``GCP_ENV_LOG`` wins over ``-v`` flags; an unknown
    name falls back to INFO.
    """
    name = (env_value or "").strip().upper()
    if name:
        level = logging.getLevelName(name)
        if isinstance(level, int):
            return level
        typer.echo(f"{LOG_ENV}={name} is not a logging level; using INFO", err=True)
        return logging.INFO
    if verbose:
        return logging.DEBUG if verbose > 1 else logging.INFO
    return None


def _setup_logging(verbose: int) -> None:
    level = log_level(verbose, os.environ.get(LOG_ENV))
    if level is None:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger("gcp_env_provisioner")
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"gcp-env-provisioner {__version__}")
        raise typer.Exit


@app.callback()
def main(
    verbose: int = typer.Option(
        0, "--verbose", "-v", count=True, help="-v for INFO logs, -vv for DEBUG."
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_print_version,
        is_eager=True,
        help="Print the version and exit.",
    ),
) -> None:
    _ = version
    _setup_logging(verbose)


from gcp_env_provisioner.cli import commands as _commands  # noqa: E402, F401
