"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    All errors map to exit code 1.  No tracebacks are printed.
    """
    from gcp_provisioner.cli.formatting import format_apply_summary
    from gcp_provisioner.config.loader import ConfigError
    from gcp_provisioner.engine.errors import (
        ApplyCanceled,
        LockHeldError,
        ProviderError,
        StalePlanError,
        StateConflictError,
        StateLockError,
        ValidationError,
    )

    fg = typer.colors.RED if color else None

    if isinstance(exc, ConfigError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(exc, ValidationError):
        _err("Validation failed:", fg=fg)
        for e in exc.errors:
            _err(f"  - {e}", fg=fg)
    elif isinstance(exc, StalePlanError):
        _err(f"Plan is stale: {exc}", fg=fg)
        _err("  Run `gcp-provisioner plan` again and apply the new plan.", fg=fg)
    elif isinstance(exc, LockHeldError):
        _err(f"State is locked: {exc}", fg=fg)
        _err(f"  If no other run is active: gcp-provisioner force-unlock {exc.lock_id}", fg=fg)
    elif isinstance(exc, StateLockError):
        _err(f"State lock error: {exc}", fg=fg)
    elif isinstance(exc, StateConflictError):
        _err(f"State conflict: {exc}", fg=fg)
    elif isinstance(exc, ProviderError):
        kind = "transient " if exc.transient else ""
        _err(f"Provider error ({kind}{type(exc).__name__}): {exc}", fg=fg)
    elif isinstance(exc, ApplyCanceled):
        _err("Apply canceled.", fg=fg)
        if exc.result is not None:
            _err(f"  {format_apply_summary(exc.result, color=False)}", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return 1
