"""Turn exceptions into one-screen stderr reports."""

from __future__ import annotations

import typer

from gcp_env_provisioner.config.loader import ConfigurationError
from gcp_env_provisioner.engine.errors import (
    ApplyCanceled,
    PartialApplyError,
    StalePlanError,
    StateEnvironmentMismatchError,
    StateLockError,
)

# Prefix per exception type; anything unlisted is reported as "Error".
_PREFIXES: tuple[tuple[type[Exception], str], ...] = (
    (ConfigurationError, "Configuration error"),
    (StalePlanError, "Stale plan"),
    (StateEnvironmentMismatchError, "Wrong state file"),
    (StateLockError, "State is locked"),
)


def report(exc: Exception, *, color: bool = True) -> int:
    """Write *exc* to stderr without a traceback and return the exit code (always 1)."""
    fg = typer.colors.RED if color else None

    def say(text: str) -> None:
        typer.echo(typer.style(text, fg=fg), err=True)

    if isinstance(exc, ApplyCanceled):
        say("Apply canceled.")
        return 1
    prefix = next((p for kind, p in _PREFIXES if isinstance(exc, kind)), None)
    say(f"{prefix}: {exc}" if prefix else str(exc) or type(exc).__name__)
    if isinstance(exc, PartialApplyError):
        done = {k: n for k, n in exc.result.summary().items() if n}
        if done:
            say("Completed before the failure: " + ", ".join(f"{n} {k}" for k, n in done.items()))
    return 1
