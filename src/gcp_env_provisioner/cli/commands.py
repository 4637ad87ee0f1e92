"""Subcommands: plan, apply, destroy, refresh, drift, validate, graph and output."""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from gcp_env_provisioner import config as api
from gcp_env_provisioner.cli import app
from gcp_env_provisioner.cli import formatting as fmt
from gcp_env_provisioner.cli.errors import report
from gcp_env_provisioner.engine.types import Plan

if TYPE_CHECKING:
    from collections.abc import Iterator

    from gcp_env_provisioner.config.schema import EnvironmentSpec
    from gcp_env_provisioner.engine.types import ApplyResult, ResourceChange

ConfigFile = Annotated[
    Path,
    typer.Option("--config", "-c", help="Environment configuration file (YAML)."),
]
EnvName = Annotated[
    str | None,
    typer.Option("--environment", "-e", help="Environment name; overrides the file's."),
]
NoColor = Annotated[bool, typer.Option("--no-color", help="Plain output without ANSI colors.")]
Yes = Annotated[bool, typer.Option("--auto-approve", "-y", help="Do not ask for confirmation.")]
NoRefresh = Annotated[
    bool,
    typer.Option("--no-refresh", help="Plan against the state file without reading Google Cloud."),
]

DEFAULT_CONFIG = Path("gcp-env.yaml")


def _color(no_color: bool) -> bool:
    return not no_color and "NO_COLOR" not in os.environ


@contextmanager
def _reported(color: bool) -> Iterator[None]:
    """Exit with a short stderr report instead of a traceback."""
    try:
        yield
    except typer.Exit:
        raise
    except Exception as exc:
        raise typer.Exit(report(exc, color=color)) from exc


def _approve(question: str, *, skip: bool, canceled: str) -> None:
    if skip:
        return
    if not typer.confirm(question, default=False):
        typer.echo(canceled, err=True)
        raise typer.Exit(1)


def _run_plan(plan_obj: Plan, cfg: EnvironmentSpec, *, color: bool) -> ApplyResult:
    """Apply with a progress bar; each finished resource gets its own line."""
    pending = plan_obj.pending
    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=Console(no_color=not color, stderr=True),
        transient=True,
    ) as bar:
        task = bar.add_task("Starting", total=len(pending))

        def step(change: ResourceChange, event: Literal["start", "done"]) -> None:
            if event == "start":
                bar.update(task, description=fmt.progress_line(change, done=False))
                return
            bar.console.print(fmt.progress_line(change, done=True))
            bar.advance(task)

        return api.apply(plan_obj, cfg, progress=step)


def _show_then_apply(
    plan_obj: Plan, cfg: EnvironmentSpec, *, color: bool, yes: bool, question: str
) -> None:
    if not plan_obj.pending:
        typer.echo("Nothing to do." if plan_obj.destroy else "No changes.")
        return
    typer.echo(fmt.render_plan(plan_obj, color=color))
    typer.echo(fmt.render_counts(plan_obj.summary(), color=color))
    _approve(question, skip=yes, canceled="Apply canceled.")
    with _reported(color):
        result = _run_plan(plan_obj, cfg, color=color)
    typer.echo(fmt.render_outcome(result.summary(), color=color))


@app.command()
def plan(
    config: ConfigFile = DEFAULT_CONFIG,
    environment: EnvName = None,
    out: Annotated[
        Path | None, typer.Option("--out", "-o", help="Write the plan to this file.")
    ] = None,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Show what apply would change. Exits 2 when there are changes."""
    color = _color(no_color)
    with _reported(color):
        plan_obj = api.plan(api.load(config, environment=environment), refresh=not no_refresh)
    typer.echo(fmt.render_plan(plan_obj, color=color))
    typer.echo(fmt.render_counts(plan_obj.summary(), color=color))
    if out is not None:
        plan_obj.save(out)
        typer.echo(f"Saved plan to {out}")
    if plan_obj.pending:
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    plan_file: Annotated[
        Path | None, typer.Argument(help="Plan written by 'plan --out'; planned fresh if omitted.")
    ] = None,
    config: ConfigFile = DEFAULT_CONFIG,
    environment: EnvName = None,
    auto_approve: Yes = False,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Create and update resources until the environment matches the configuration."""
    color = _color(no_color)
    with _reported(color):
        cfg = api.load(config, environment=environment)
        if plan_file is None:
            plan_obj = api.plan(cfg, refresh=not no_refresh)
        else:
            plan_obj = Plan.load(plan_file)
            if plan_obj.environment != cfg.environment:
                raise api.ConfigurationError(
                    f"{plan_file} was planned for environment '{plan_obj.environment}', "
                    f"not '{cfg.environment}'"
                )
    _show_then_apply(plan_obj, cfg, color=color, yes=auto_approve, question="Apply these changes?")


@app.command()
def destroy(
    config: ConfigFile = DEFAULT_CONFIG,
    environment: EnvName = None,
    auto_approve: Yes = False,
    no_color: NoColor = False,
) -> None:
    """Delete every resource the environment's state file tracks."""
    color = _color(no_color)
    with _reported(color):
        cfg = api.load(config, environment=environment)
        plan_obj = api.plan(cfg, destroy=True)
    _show_then_apply(
        plan_obj,
        cfg,
        color=color,
        yes=auto_approve,
        question=f"Delete all resources of '{cfg.environment}'?",
    )


@app.command(name="refresh")
def refresh_cmd(
    config: ConfigFile = DEFAULT_CONFIG,
    environment: EnvName = None,
    auto_approve: Yes = False,
    no_color: NoColor = False,
) -> None:
    """Re-read tracked resources from Google Cloud and update the state file."""
    color = _color(no_color)
    with _reported(color):
        cfg = api.load(config, environment=environment)
        changes, state = api.refresh(cfg)
    if not changes:
        typer.echo("State already matches Google Cloud.")
        return
    typer.echo(fmt.render_changes(changes, color=color))
    typer.echo(fmt.render_counts(fmt.drift_counts(changes), title="Refresh", color=color))
    _approve(
        "Write these changes to the state file?", skip=auto_approve, canceled="Refresh canceled."
    )
    with _reported(color):
        api.save_state(cfg, state)
    typer.echo(f"State updated; tracking {len(state.resources)} resource(s).")


@app.command()
def drift(
    config: ConfigFile = DEFAULT_CONFIG,
    environment: EnvName = None,
    no_color: NoColor = False,
) -> None:
    """Compare the state file with Google Cloud. Exits 2 on drift."""
    color = _color(no_color)
    with _reported(color):
        changes = api.drift(api.load(config, environment=environment))
    if not changes:
        typer.echo("No drift.")
        return
    typer.echo(fmt.render_changes(changes, color=color))
    raise typer.Exit(2)


@app.command()
def validate(
    config: ConfigFile = DEFAULT_CONFIG,
    environment: EnvName = None,
    no_color: NoColor = False,
) -> None:
    """Check the configuration and the resource graph it produces, offline."""
    color = _color(no_color)
    with _reported(color):
        cfg = api.load(config, environment=environment)
        nodes = api.build(cfg)
    typer.echo(fmt.paint(f"{cfg.environment}: OK, {len(nodes)} resource(s)", color, fg="green"))


@app.command()
def graph(
    config: ConfigFile = DEFAULT_CONFIG,
    environment: EnvName = None,
    no_color: NoColor = False,
) -> None:
    """List resources in provisioning order with what each one waits on."""
    color = _color(no_color)
    with _reported(color):
        nodes = api.build(api.load(config, environment=environment))
    typer.echo(fmt.render_graph(nodes, color=color))


@app.command()
def output(
    config: ConfigFile = DEFAULT_CONFIG,
    environment: EnvName = None,
    as_json: Annotated[bool, typer.Option("--json", help="Emit a JSON object.")] = False,
    show_sensitive: Annotated[
        bool, typer.Option("--show-sensitive", help="Print sensitive values unmasked.")
    ] = False,
    no_color: NoColor = False,
) -> None:
    """Print the environment outputs recorded in the state file."""
    color = _color(no_color)
    with _reported(color):
        values = api.outputs(api.load(config, environment=environment)).as_dict(
            reveal=show_sensitive
        )
    if as_json:
        typer.echo(json.dumps(values, indent=2, sort_keys=True))
    else:
        typer.echo(fmt.render_outputs(values, color=color))
