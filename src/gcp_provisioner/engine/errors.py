"""Engine error types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime


class EngineError(Exception):
    """Base exception for engine errors."""


# ── Build-time (nothing is applied) ─────────────────────────────────


class ValidationError(EngineError):
    """One or more declarations failed validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


class SchemaViolationError(ValidationError):
    """Declared attributes do not match the resource type schema."""


class UnknownResourceTypeError(ValidationError):
    """Raised when a resource type has no registration/provider."""

    def __init__(self, resource_type: str) -> None:
        super().__init__([f"Unknown resource type: {resource_type}"])
        self.resource_type = resource_type


class DuplicateNameError(ValidationError):
    """Raised when the same ``type.name`` address is declared twice."""

    def __init__(self, address: str) -> None:
        super().__init__([f"Duplicate resource address: {address}"])
        self.address = address


class UnresolvedReferenceError(ValidationError):
    """Raised when a reference or ``depends_on`` entry points nowhere."""

    def __init__(self, address: str, target: str, detail: str | None = None) -> None:
        message = f"Resource '{address}' references unknown '{target}'"
        if detail:
            message += f" ({detail})"
        super().__init__([message])
        self.address = address
        self.target = target


class CycleError(ValidationError):
    """Raised when dependencies contain a cycle.

    ``cycle`` lists the offending nodes in edge order, with the first node
    repeated at the end (``a -> b -> a``).
    """

    def __init__(self, cycle: list[str]) -> None:
        msg = "Dependency cycle detected"
        if cycle:
            msg += f": {' -> '.join(cycle)}"
        super().__init__([msg])
        self.cycle = cycle


# ── State ───────────────────────────────────────────────────────────


class LockHeldError(EngineError):
    """Raised when another session holds the state lock."""

    def __init__(
        self,
        *,
        lock_id: str,
        holder: str,
        acquired_at: datetime,
        stale: bool = False,
    ) -> None:
        msg = f"State is locked by {holder} since {acquired_at.isoformat()} (lock id {lock_id})"
        if stale:
            msg += "; the lock is older than the lock timeout and may be abandoned"
        super().__init__(msg)
        self.lock_id = lock_id
        self.holder = holder
        self.acquired_at = acquired_at
        self.stale = stale


class StateLockError(EngineError):
    """Raised when the state lock cannot be released or is not held."""


class StateConflictError(EngineError):
    """Raised when persisted state changed underneath an open session."""


class StalePlanError(EngineError):
    """Raised when applying a plan against a different state than planned."""


# ── Apply ───────────────────────────────────────────────────────────


class DeletionProtectedError(EngineError):
    """Raised when a step would destroy a deletion-protected resource."""

    def __init__(self, address: str) -> None:
        super().__init__(
            f"Resource '{address}' is deletion-protected; "
            "set deletion_protected: false and apply before removing it"
        )
        self.address = address


class ApplyCanceled(EngineError):
    """Raised when an apply is canceled (e.g., Ctrl-C).

    Carries the partial result; steps already dispatched were allowed to
    finish and commit.
    """

    def __init__(self, message: str, *, result: Any = None) -> None:
        super().__init__(message)
        self.result = result


# ── Provider collaborator ───────────────────────────────────────────


class ProviderError(EngineError):
    """Error reported by a ``ResourceProvider``.

    ``transient`` errors (rate limiting, network blips) are retried with
    backoff; everything else fails the step immediately.
    """

    transient: bool = False

    def __init__(self, message: str, *, transient: bool | None = None) -> None:
        super().__init__(message)
        if transient is not None:
            self.transient = transient


class TransientProviderError(ProviderError):
    transient = True


class PermanentProviderError(ProviderError):
    transient = False


class QuotaExceededError(PermanentProviderError):
    pass


class ConflictError(PermanentProviderError):
    pass


class ResourceNotFoundError(PermanentProviderError):
    """The provider has no object with the requested id."""
