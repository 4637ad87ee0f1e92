"""Text rendering for plans, drift, the resource graph and outputs."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import typer

from gcp_env_provisioner.engine.types import Action, count_actions

if TYPE_CHECKING:
    from collections.abc import Iterable

    from gcp_env_provisioner.engine.types import Plan, ResourceChange
    from gcp_env_provisioner.resources.base import Resource

# Marker and color per action.
MARKS: dict[Action, tuple[str, str]] = {
    Action.CREATE: ("+", "green"),
    Action.UPDATE: ("~", "yellow"),
    Action.DELETE: ("-", "red"),
    Action.NOOP: ("=", "bright_black"),
}

# "<gerund> <address>..." while running, "<address> <participle>" once done.
VERBS: dict[Action, tuple[str, str]] = {
    Action.CREATE: ("Creating", "created"),
    Action.UPDATE: ("Updating", "updated"),
    Action.DELETE: ("Deleting", "deleted"),
}

# Attributes that add noise to a create listing without saying anything.
_HIDDEN = frozenset({"depends_on"})


def paint(text: str, color: bool, **style: Any) -> str:
    return typer.style(text, **style) if color else text


def show(value: Any) -> str:
    """One-line rendering of an attribute value."""
    if value is None:
        return "(unset)"
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def _details(change: ResourceChange) -> list[str]:
    if change.action is Action.UPDATE:
        return [f"{key}: {show(old)} -> {show(new)}" for key, (old, new) in change.changed.items()]
    if change.action is Action.CREATE and change.desired:
        return [
            f"{key}: {show(value)}"
            for key, value in change.desired.items()
            if key not in _HIDDEN and value not in (None, {}, [])
        ]
    return []


def render_change(change: ResourceChange, *, color: bool = True) -> str:
    """``<mark> <address>`` followed by the indented attributes that matter."""
    mark, fg = MARKS[change.action]
    lines = [paint(f"{mark} {change.address}", color, fg=fg, bold=True)]
    lines.extend(f"    {line}" for line in _details(change))
    return "\n".join(lines)


def render_changes(changes: Iterable[ResourceChange], *, color: bool = True) -> str:
    pending = [c for c in changes if c.action is not Action.NOOP]
    if not pending:
        return "No changes."
    return "\n".join(render_change(c, color=color) for c in pending)


def render_plan(plan: Plan, *, color: bool = True) -> str:
    title = f"{'Teardown' if plan.destroy else 'Plan'} for '{plan.environment}'"
    return f"{paint(title, color, bold=True)}\n\n{render_changes(plan.changes, color=color)}"


def render_counts(counts: dict[str, int], *, title: str = "Plan", color: bool = True) -> str:
    """``Plan: 2 to create, 1 to update, 0 to delete.``"""
    parts = []
    for action in (Action.CREATE, Action.UPDATE, Action.DELETE):
        n = counts.get(action.value, 0)
        text = f"{n} to {action.value}"
        parts.append(paint(text, color, fg=MARKS[action][1]) if n else text)
    return f"{title}: {', '.join(parts)}."


def render_outcome(counts: dict[str, int], *, color: bool = True) -> str:
    """``Done: 2 created, 0 updated, 1 deleted.``"""
    parts = [f"{counts.get(a.value, 0)} {VERBS[a][1]}" for a in VERBS]
    return f"{paint('Done', color, fg='green', bold=True)}: {', '.join(parts)}."


def drift_counts(changes: Iterable[ResourceChange]) -> dict[str, int]:
    return count_actions(c.action for c in changes)


def progress_line(change: ResourceChange, *, done: bool) -> str:
    running, finished = VERBS[change.action]
    return f"{change.address} {finished}" if done else f"{running} {change.address}..."


def render_graph(nodes: list[Resource], *, color: bool = True) -> str:
    """Nodes in provisioning order; each is followed by what it waits on."""
    lines: list[str] = []
    for pos, node in enumerate(nodes, start=1):
        lines.append(f"{pos:>3}  {paint(node.address, color, bold=True)}")
        lines.extend(
            paint(f"       after {dep}", color, fg="bright_black") for dep in node.dependencies()
        )
    return "\n".join(lines)


def render_outputs(values: dict[str, Any], *, color: bool = True) -> str:
    """``name: value`` per output; map outputs list one ``key: value`` entry per line."""
    lines: list[str] = []
    for name in sorted(values):
        value = values[name]
        if isinstance(value, dict):
            lines.append(f"{name}:")
            lines.extend(f"  {k}: {show(v)}" for k, v in sorted(value.items()))
        elif value is None:
            lines.append(f"{name}: {paint('(unset)', color, fg='bright_black')}")
        else:
            lines.append(f"{name}: {show(value)}")
    return "\n".join(lines)
