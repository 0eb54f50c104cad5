"""CLI command implementations."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

from gcp_provisioner.cli import app
from gcp_provisioner.cli.errors import handle_error

if TYPE_CHECKING:
    from gcp_provisioner.config.schema import Config
    from gcp_provisioner.engine.executor import ProgressEvent
    from gcp_provisioner.engine.types import ApplyResult, Plan, PlanStep

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the configuration file."),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

AutoApprove = Annotated[
    bool,
    typer.Option("--auto-approve", help="Skip interactive approval."),
]

NoRefresh = Annotated[
    bool,
    typer.Option("--no-refresh", help="Skip refreshing state from live resources."),
]

Parallelism = Annotated[
    int | None,
    typer.Option("--parallelism", min=1, help="Maximum number of concurrent provider calls."),
]

_DEFAULT_CONFIG = Path("gcp-provisioner.yaml")


def _use_color(no_color: bool) -> bool:
    """Determine whether to use color output."""
    return not (no_color or os.environ.get("NO_COLOR"))


def _apply_with_progress(
    plan_obj: Plan, cfg: Config, *, color: bool, parallelism: int | None
) -> ApplyResult:
    """Apply a plan with a Rich progress bar and per-resource status lines."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from gcp_provisioner.cli.formatting import _ACTION_STYLES
    from gcp_provisioner.config import apply
    from gcp_provisioner.engine.types import Action

    console = Console(no_color=not color)
    actionable = [s for s in plan_obj.steps if s.action != Action.NOOP]

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Applying", total=len(actionable))

        def on_progress(step: PlanStep, event: ProgressEvent) -> None:
            s = _ACTION_STYLES[step.action.value]
            if event == "start":
                progress.update(task, description=f"{step.key}: {s.progress_verb}...")
                return
            if event == "done":
                progress.console.print(f"  {step.key}: {s.done_verb}")
            else:
                progress.console.print(f"  {step.key}: {event}", style="red")
            progress.advance(task)

        return apply(plan_obj, cfg, progress=on_progress, parallelism=parallelism)


def _confirm_and_apply(
    plan_obj: Plan,
    cfg: Config,
    *,
    color: bool,
    auto_approve: bool,
    confirm_msg: str,
    empty_msg: str,
    parallelism: int | None = None,
) -> None:
    """Shared flow: show plan -> confirm -> apply with progress -> print summary.

    Exits with code 0 if no actionable changes, 1 if any step did not succeed.
    """
    from gcp_provisioner.cli.formatting import (
        format_apply_report,
        format_apply_summary,
        format_plan,
        format_plan_summary,
    )

    if not plan_obj.has_changes:
        typer.echo(empty_msg)
        raise typer.Exit(0)

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))
    typer.echo()

    if not auto_approve:
        try:
            typer.confirm(confirm_msg, abort=True)
        except typer.Abort as e:
            typer.echo("Apply canceled.", err=True)
            raise typer.Exit(1) from e

    try:
        result = _apply_with_progress(plan_obj, cfg, color=color, parallelism=parallelism)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo()
    report = format_apply_report(result, color=color)
    if report:
        typer.echo(report)
    typer.echo(format_apply_summary(result, color=color))
    if result.exit_code:
        raise typer.Exit(result.exit_code)


@app.command()
def plan(
    config: ConfigPath = _DEFAULT_CONFIG,
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Save plan to file."),
    ] = None,
    destroy: Annotated[
        bool,
        typer.Option("--destroy", help="Plan the destruction of every managed resource."),
    ] = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the machine-readable plan report."),
    ] = False,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Show changes required by the current configuration.

    Exits with code 2 when changes are pending.
    """
    from gcp_provisioner.cli.formatting import format_plan, format_plan_summary
    from gcp_provisioner.config import load
    from gcp_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg, destroy=destroy, refresh=not no_refresh)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if as_json:
        typer.echo(json.dumps(plan_obj.report(), indent=2))
    else:
        typer.echo(format_plan(plan_obj, color=color))
        typer.echo()
        typer.echo(format_plan_summary(plan_obj.summary(), color=color))

    if out is not None:
        plan_obj.save(out)
        typer.echo(f"\nPlan saved to {out}")

    if plan_obj.has_changes:
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    plan_file: Annotated[
        Path | None,
        typer.Argument(help="Saved plan file to apply."),
    ] = None,
    config: ConfigPath = _DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    parallelism: Parallelism = None,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Apply the changes required by the current configuration."""
    from gcp_provisioner.config import load
    from gcp_provisioner.config import plan as plan_fn
    from gcp_provisioner.engine.types import Plan

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = (
            Plan.load(plan_file) if plan_file is not None else plan_fn(cfg, refresh=not no_refresh)
        )
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    _confirm_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve or plan_file is not None,
        confirm_msg="Do you want to apply these changes?",
        empty_msg="No changes. Resources are up-to-date.",
        parallelism=parallelism,
    )


@app.command()
def destroy(
    config: ConfigPath = _DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    parallelism: Parallelism = None,
    no_color: NoColor = False,
) -> None:
    """Destroy all managed resources."""
    from gcp_provisioner.config import load
    from gcp_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg, destroy=True)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    _confirm_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        confirm_msg="Do you really want to destroy all resources?",
        empty_msg="No resources to destroy.",
        parallelism=parallelism,
    )


@app.command(name="refresh")
def refresh_cmd(
    config: ConfigPath = _DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Refresh state from live resources."""
    from gcp_provisioner.cli.formatting import format_drift
    from gcp_provisioner.config import drift as drift_fn
    from gcp_provisioner.config import load
    from gcp_provisioner.config import refresh as refresh_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        report = drift_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not report.has_drift:
        typer.echo("No changes. State is up-to-date with live resources.")
        raise typer.Exit(0)

    typer.echo(format_drift(report, color=color))
    typer.echo()

    if not auto_approve:
        try:
            typer.confirm("Do you want to update the state file?", abort=True)
        except typer.Abort as e:
            typer.echo("Refresh canceled.", err=True)
            raise typer.Exit(1) from e

    try:
        _, state = refresh_fn(cfg, persist=True)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc
    count = len(state.records)
    typer.echo(f"State refreshed. {count} resource{'s' if count != 1 else ''} tracked.")


@app.command()
def drift(
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Show drift between state and live resources.

    Exits with code 2 when drift is detected.
    """
    from gcp_provisioner.cli.formatting import format_drift
    from gcp_provisioner.config import drift as drift_fn
    from gcp_provisioner.config import load

    color = _use_color(no_color)
    try:
        cfg = load(config)
        report = drift_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not report.has_drift:
        typer.echo("No drift detected. State is up-to-date with live resources.")
        raise typer.Exit(0)

    typer.echo("Drift detected:\n")
    typer.echo(format_drift(report, color=color))
    raise typer.Exit(2)


@app.command()
def validate(
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Validate the configuration file."""
    from gcp_provisioner.cli.formatting import styler
    from gcp_provisioner.config import load
    from gcp_provisioner.config import validate as validate_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        graph = validate_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(
        styler(color)(f"Configuration is valid ({len(graph.nodes)} resources).", fg="green")
    )


@app.command()
def output(
    name: Annotated[
        str | None,
        typer.Argument(help="Print only this output."),
    ] = None,
    config: ConfigPath = _DEFAULT_CONFIG,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print outputs as JSON."),
    ] = False,
    no_color: NoColor = False,
) -> None:
    """Show output values recorded by the last apply."""
    from gcp_provisioner.cli.formatting import format_outputs
    from gcp_provisioner.config import load
    from gcp_provisioner.config import outputs as outputs_fn
    from gcp_provisioner.config.loader import ConfigError

    color = _use_color(no_color)
    try:
        cfg = load(config)
        values = outputs_fn(cfg)
        if name is not None:
            if name not in values:
                raise ConfigError(f"Output '{name}' not found")
            values = {name: values[name]}
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if as_json:
        typer.echo(json.dumps(values, indent=2, sort_keys=True))
    elif name is not None:
        typer.echo(values[name])
    elif values:
        typer.echo(format_outputs(values))
    else:
        typer.echo("No outputs recorded.")


@app.command(name="force-unlock")
def force_unlock_cmd(
    lock_id: Annotated[str, typer.Argument(help="Id of the lock to release.")],
    config: ConfigPath = _DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Release a state lock left behind by an interrupted run."""
    from gcp_provisioner.config import force_unlock, load

    color = _use_color(no_color)
    if not auto_approve:
        try:
            typer.confirm(f"Release state lock {lock_id}?", abort=True)
        except typer.Abort as e:
            typer.echo("Force-unlock canceled.", err=True)
            raise typer.Exit(1) from e

    try:
        cfg = load(config)
        force_unlock(cfg, lock_id)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(f"State lock {lock_id} released.")
