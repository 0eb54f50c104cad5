"""Plan, apply and drift output rendering (Terraform-style)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from gcp_provisioner.engine.types import Action, ApplyStatus, DriftStatus, StepStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from gcp_provisioner.engine.types import ApplyResult, DriftReport, Plan, PlanStep


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    progress_verb: str
    done_verb: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "Creating", "Creation complete"),
    "update": _ActionStyle("yellow", "~", "Updating", "Update complete"),
    "replace": _ActionStyle("magenta", "-/+", "Replacing", "Replacement complete"),
    "destroy": _ActionStyle("red", "-", "Destroying", "Destruction complete"),
    "noop": _ActionStyle("bright_black", " ", "", ""),
}

_ACTION_DESC: dict[str, str] = {
    "create": "will be created",
    "update": "will be updated in-place",
    "replace": "must be replaced",
    "destroy": "will be destroyed",
    "noop": "is up-to-date",
}

_STATUS_COLORS: dict[str, str] = {
    "success": "green",
    "failed": "red",
    "skipped": "yellow",
    "blocked": "red",
    "not-started": "bright_black",
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _align_values(items: dict[str, str]) -> list[tuple[str, str]]:
    """Right-pad keys so ``=`` signs align."""
    if not items:
        return []
    max_key = max(len(k) for k in items)
    return [(k.ljust(max_key), v) for k, v in items.items()]


def _format_value(value: Any) -> str:
    """Format a value for display in a plan diff block."""
    if isinstance(value, str):
        if value.startswith("(") and value.endswith(")"):
            return value
        return f'"{value}"'
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict | list):
        return json.dumps(value, sort_keys=True)
    return str(value)


# ---------------------------------------------------------------------------
# Plan rendering
# ---------------------------------------------------------------------------


def _step_attrs(step: PlanStep) -> dict[str, str]:
    """Extract displayable ``key → formatted value`` pairs from a step."""
    if step.action == Action.CREATE and step.planned:
        return {k: _format_value(v) for k, v in step.planned.items() if v is not None}
    if step.action in (Action.UPDATE, Action.REPLACE) and step.diff:
        return {
            k: f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
            for k, d in step.diff.items()
        }
    if step.action == Action.DESTROY and step.prior:
        return {k: _format_value(v) for k, v in step.prior.items() if v is not None}
    return {}


def format_step(step: PlanStep, *, color: bool = True) -> str:
    """Render a single plan step as a Terraform-style block."""
    style = styler(color)
    action_val = step.action.value
    sc = {"fg": _ACTION_STYLES[action_val].color}
    symbol = _ACTION_STYLES[action_val].symbol

    header = f"  # {step.key} {_ACTION_DESC[action_val]}"
    if step.blocked:
        header += " (BLOCKED: deletion protected)"
    lines = [style(header, bold=True, **sc)]
    if step.reason:
        lines.append(style(f"  # ({step.reason})", fg="bright_black"))
    lines.extend(
        [
            style(f'  {symbol} resource "{step.resource_type}" "{step.name}" {{', **sc),
            *[
                style(f"      {symbol} {k} = {v}", **sc)
                for k, v in _align_values(_step_attrs(step))
            ],
            style("    }", **sc),
        ]
    )
    return "\n".join(lines)


def format_plan(plan: Plan, *, color: bool = True) -> str:
    """Render the full plan output with per-step diff blocks."""
    blocks = [format_step(s, color=color) for s in plan.steps if s.action != Action.NOOP]
    if not blocks:
        return "No changes. Resources are up-to-date."
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

_PLAN_VERBS = ("to add", "to change", "to destroy")
_SUMMARY_COLORS = ("green", "yellow", "red")


def format_plan_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Plan: 2 to add, 1 to change, 0 to destroy.``

    A replacement counts as one add and one destroy. Steps blocked by
    deletion protection are listed after the counts.
    """
    style = styler(color)
    replace = summary.get("replace", 0)
    counts = (
        summary.get("create", 0) + replace,
        summary.get("update", 0),
        summary.get("destroy", 0) + replace,
    )
    parts = [
        style(f"{n} {verb}", fg=fg) if n and color else f"{n} {verb}"
        for n, verb, fg in zip(counts, _PLAN_VERBS, _SUMMARY_COLORS, strict=True)
    ]
    line = f"Plan: {', '.join(parts)}."
    blocked = summary.get("blocked", 0)
    if blocked:
        note = f"{blocked} blocked by deletion protection."
        line += " " + style(note, fg="red")
    return line


def format_apply_summary(result: ApplyResult, *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 added, 0 changed, 0 destroyed.``

    When any step did not succeed, per-status counts are shown instead.
    """
    style = styler(color)
    if result.status == ApplyStatus.SUCCESS:
        added = changed = destroyed = 0
        for s in result.steps:
            if s.action in (Action.CREATE, Action.REPLACE):
                added += 1
            if s.action == Action.UPDATE:
                changed += 1
            if s.action in (Action.DESTROY, Action.REPLACE):
                destroyed += 1
        header = style("Apply complete!", fg="green", bold=True)
        return f"{header} Resources: {added} added, {changed} changed, {destroyed} destroyed."

    counts = result.summary()
    parts = [f"{n} {status}" for status, n in counts.items() if n]
    label = "Apply canceled." if result.canceled else "Apply finished with errors."
    header = style(label, fg="red", bold=True)
    return f"{header} Steps: {', '.join(parts)}."


def format_apply_report(result: ApplyResult, *, color: bool = True) -> str:
    """One line per step that did not succeed, with its error."""
    style = styler(color)
    lines = []
    for s in result.steps:
        if s.status == StepStatus.SUCCESS:
            continue
        line = f"  {s.address}: {s.status.value}"
        if s.error:
            line += f" ({s.error})"
        lines.append(style(line, fg=_STATUS_COLORS[s.status.value]))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Drift and outputs
# ---------------------------------------------------------------------------


def format_drift(report: DriftReport, *, color: bool = True) -> str:
    """Render drifted, missing, and unreadable resources."""
    style = styler(color)
    blocks = []
    for address, drift in sorted(report.drifted.items()):
        if drift.status == DriftStatus.MISSING:
            blocks.append(style(f"  # {address} no longer exists", bold=True, fg="red"))
            continue
        if drift.status == DriftStatus.UNREADABLE:
            blocks.append(style(f"  # {address} could not be read: {drift.error}", fg="red"))
            continue
        lines = [style(f"  # {address} has drifted", bold=True, fg="yellow")]
        items = {
            k: f"{_format_value(d['stored'])} -> {_format_value(d['live'])}"
            for k, d in drift.drifted.items()
        }
        lines.extend(style(f"      ~ {k} = {v}", fg="yellow") for k, v in _align_values(items))
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_outputs(outputs: dict[str, Any]) -> str:
    formatted = {k: _format_value(outputs[k]) for k in sorted(outputs)}
    return "\n".join(f"{k} = {v}" for k, v in _align_values(formatted))
