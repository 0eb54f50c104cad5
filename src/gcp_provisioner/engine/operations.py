"""Apply operations.

Apply runs a graph of operations. Each operation knows how to apply itself,
lists the operations it must wait for, and commits its own result to the
state store before it returns, so anything depending on it only starts once
the result is durable.

Most steps map to one operation. Replacements are split in two so the delete
of the stored object can wait for its dependents: a destroy-first replacement
runs ``addr#delete`` then ``addr``, a create-first one runs ``addr`` then
``addr#deposed-delete``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from gcp_provisioner.core.state import LiveRecord, compute_attributes_hash
from gcp_provisioner.engine.errors import (
    DeletionProtectedError,
    EngineError,
    ResourceNotFoundError,
    SchemaViolationError,
    UnresolvedReferenceError,
)
from gcp_provisioner.engine.references import lookup_path, resolve_references
from gcp_provisioner.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable

    from gcp_provisioner.core.state import State
    from gcp_provisioner.engine.provider import EngineContext
    from gcp_provisioner.engine.references import Reference
    from gcp_provisioner.engine.registry import ResourceTypeRegistry
    from gcp_provisioner.engine.retry import RetryPolicy
    from gcp_provisioner.engine.state_store import StateStore
    from gcp_provisioner.engine.types import Plan, PlanStep
    from gcp_provisioner.resources.base import Resource

logger = logging.getLogger(__name__)


class ApplyRuntime:
    """Shared services for operations running on worker threads."""

    def __init__(
        self,
        *,
        registry: ResourceTypeRegistry,
        store: StateStore,
        ctx: EngineContext,
        retry: RetryPolicy,
        sequence: Callable[[], int],
    ) -> None:
        self.registry = registry
        self.store = store
        self.ctx = ctx
        self.retry = retry
        self._sequence = sequence
        self._lock = threading.Lock()
        self.attempts: dict[str, int] = {}
        self.commit_seqs: dict[str, int] = {}

    def call(self, key: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Call a provider method with the retry policy, counting attempts per op."""

        def _count() -> None:
            with self._lock:
                self.attempts[key] = self.attempts.get(key, 0) + 1

        return self.retry.call(fn, *args, on_attempt=_count)

    def record(self, address: str) -> LiveRecord | None:
        return self.store.load().records.get(address)

    def desired_object(self, step: PlanStep) -> Resource:
        """Resolve the step's references against committed state and validate."""
        if step.desired is None:
            raise EngineError(f"Missing desired config for {step.action.value}: {step.address}")
        attributes = step.declared if step.declared is not None else step.desired
        records = self.store.load().records

        def lookup(ref: Reference) -> Any:
            target = records.get(ref.address)
            if target is None:
                raise UnresolvedReferenceError(
                    step.address, ref.expression, "target has no committed record"
                )
            try:
                return lookup_path({**target.attributes, "id": target.id}, ref.path)
            except KeyError:
                raise UnresolvedReferenceError(
                    step.address, ref.expression, "path not found in live attributes"
                ) from None

        resolved = resolve_references(attributes, lookup)
        model = self.registry.get(step.resource_type).model
        try:
            return model.model_validate(resolved)
        except PydanticValidationError as exc:
            raise SchemaViolationError(
                [
                    f"{step.address}: {'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in exc.errors()
                ]
            ) from exc

    def new_record(
        self,
        step: PlanStep,
        provider_id: str,
        attrs: dict[str, Any],
        *,
        created_at: datetime | None = None,
    ) -> LiveRecord:
        schema = self.registry.describe(step.resource_type)
        sealed = schema.seal({**attrs, "id": provider_id})
        now = datetime.now(UTC)
        return LiveRecord(
            address=step.address,
            resource_type=step.resource_type,
            name=step.name,
            id=provider_id,
            attributes=sealed,
            attributes_hash=compute_attributes_hash(sealed),
            dependencies=list(step.depends_on),
            deletion_protected=step.deletion_protected,
            created_at=created_at or now,
            updated_at=now,
        )

    def _mark_commit(self, key: str) -> None:
        with self._lock:
            self.commit_seqs[key] = self._sequence()

    def commit(self, key: str, address: str, record: LiveRecord | None) -> LiveRecord | None:
        committed = self.store.commit_step(address, record)
        self._mark_commit(key)
        return committed

    def commit_deposed(self, key: str, address: str, record: LiveRecord | None) -> None:
        self.store.commit_deposed(address, record)
        self._mark_commit(key)


class Operation(Protocol):
    key: str
    step: PlanStep
    deps: list[str]

    def run(self, rt: ApplyRuntime) -> LiveRecord | None:
        """Execute this operation and commit its result.

        Returns:
            The committed record, or ``None`` for a tombstone.
        """


def _delete(rt: ApplyRuntime, key: str, record: LiveRecord) -> None:
    provider = rt.registry.get(record.resource_type).provider
    try:
        rt.call(key, provider.delete, rt.ctx, record)
    except ResourceNotFoundError:
        logger.info("%s (%s) was already gone", record.address, record.id)


@dataclass
class CreateOperation:
    key: str
    step: PlanStep
    deps: list[str] = field(default_factory=list)

    def run(self, rt: ApplyRuntime) -> LiveRecord | None:
        provider = rt.registry.get(self.step.resource_type).provider
        desired = rt.desired_object(self.step)
        provider_id, attrs = rt.call(self.key, provider.create, rt.ctx, desired)
        record = rt.new_record(self.step, provider_id, attrs)
        if self.step.prior_version is not None:
            # Second half of a destroy-first replacement.
            record.version = self.step.prior_version + 1
        return rt.commit(self.key, self.step.address, record)


@dataclass
class UpdateOperation:
    key: str
    step: PlanStep
    deps: list[str] = field(default_factory=list)

    def run(self, rt: ApplyRuntime) -> LiveRecord | None:
        prior = rt.record(self.step.address)
        if prior is None:
            raise EngineError(f"Missing state for update: {self.step.address}")

        if self.step.state_only:
            record = prior.model_copy(
                update={
                    "deletion_protected": self.step.deletion_protected,
                    "dependencies": list(self.step.depends_on),
                }
            )
            return rt.commit(self.key, self.step.address, record)

        provider = rt.registry.get(self.step.resource_type).provider
        desired = rt.desired_object(self.step)
        attrs = rt.call(self.key, provider.update, rt.ctx, desired, prior)
        record = rt.new_record(self.step, prior.id, attrs, created_at=prior.created_at)
        return rt.commit(self.key, self.step.address, record)


@dataclass
class DestroyOperation:
    """Delete the stored object and commit a tombstone.

    Also used for the first half of a destroy-first replacement.
    """

    key: str
    step: PlanStep
    deps: list[str] = field(default_factory=list)

    def run(self, rt: ApplyRuntime) -> LiveRecord | None:
        if self.step.blocked:
            raise DeletionProtectedError(self.step.address)
        prior = rt.record(self.step.address)
        if prior is not None:
            _delete(rt, self.key, prior)
        return rt.commit(self.key, self.step.address, None)


@dataclass
class CreateFirstReplaceOperation:
    """Create the new object and commit it, deposing the previous one.

    The deposed object is deleted by a separate ``addr#deposed-delete``
    operation once its stored dependents are done. Until then it stays in
    ``State.deposed``, so an interrupted replacement is finished by the next
    plan.
    """

    key: str
    step: PlanStep
    deps: list[str] = field(default_factory=list)

    def run(self, rt: ApplyRuntime) -> LiveRecord | None:
        if self.step.blocked:
            raise DeletionProtectedError(self.step.address)
        old = rt.record(self.step.address)
        provider = rt.registry.get(self.step.resource_type).provider
        desired = rt.desired_object(self.step)
        provider_id, attrs = rt.call(self.key, provider.create, rt.ctx, desired)

        if old is not None:
            rt.store.commit_deposed(self.step.address, old)
        return rt.commit(
            self.key, self.step.address, rt.new_record(self.step, provider_id, attrs)
        )


@dataclass
class DeposedDestroyOperation:
    """Delete a deposed object and stop tracking it.

    Runs as the second half of a create-first replacement, and on its own
    for the leftover of an interrupted one.
    """

    key: str
    step: PlanStep
    deps: list[str] = field(default_factory=list)

    def run(self, rt: ApplyRuntime) -> LiveRecord | None:
        old = rt.store.load().deposed.get(self.step.address)
        if old is not None:
            _delete(rt, self.key, old)
        rt.commit_deposed(self.key, self.step.address, None)
        return None


def build_operations(plan: Plan, state: State) -> dict[str, Operation]:
    """Build the operation graph for *plan*.

    Edges:
      - create/update/replace wait for the operations that bring each of the
        step's ``depends_on`` up to date;
      - a destroy of X, and the deposed delete of a create-first replacement
        of X, wait for every operation on a resource whose stored
        dependencies include X (dependents are torn down or moved off first);
      - the delete half of a destroy-first replacement of X waits only for
        the delete halves of X's destroy-first dependents. A create-first
        dependent's new object needs X's new object, so its old object can
        only go after X's delete;
      - a create-first replacement of X waits for the delete of a deposed
        object left at X by an interrupted run.
    """
    ops: dict[str, Operation] = {}
    ready: dict[str, str] = {}  # address -> op that brings it up to date
    delete_phase: dict[str, str] = {}  # address -> op that deletes the stored object
    by_address: dict[str, list[str]] = {}

    def add(op: Operation) -> None:
        if op.key in ops:
            raise ValueError(f"Duplicate operation key in plan: {op.key}")
        ops[op.key] = op
        if not op.step.deposed:
            by_address.setdefault(op.step.address, []).append(op.key)

    for step in plan.steps:
        match step.action:
            case Action.NOOP:
                continue
            case Action.CREATE:
                add(CreateOperation(key=step.address, step=step))
                ready[step.address] = step.address
            case Action.UPDATE:
                add(UpdateOperation(key=step.address, step=step))
                ready[step.address] = step.address
            case Action.REPLACE if step.replace_strategy == "create-first":
                delete_key = f"{step.address}#deposed-delete"
                add(CreateFirstReplaceOperation(key=step.address, step=step))
                add(DeposedDestroyOperation(key=delete_key, step=step, deps=[step.address]))
                ready[step.address] = step.address
                delete_phase[step.address] = delete_key
            case Action.REPLACE:
                delete_key = f"{step.address}#delete"
                add(DestroyOperation(key=delete_key, step=step))
                add(CreateOperation(key=step.address, step=step, deps=[delete_key]))
                ready[step.address] = step.address
                delete_phase[step.address] = delete_key
            case Action.DESTROY if step.deposed:
                add(DeposedDestroyOperation(key=step.key, step=step))
            case Action.DESTROY:
                add(DestroyOperation(key=step.address, step=step))
                delete_phase[step.address] = step.address
            case _:
                raise ValueError(f"Unknown action: {step.action}")

    for op in ops.values():
        if op.key == ready.get(op.step.address):
            op.deps.extend(ready[d] for d in op.step.depends_on if d in ready)
            leftover = f"{op.step.address}#deposed"
            if op.step.action == Action.REPLACE and leftover in ops:
                op.deps.append(leftover)

    stored_dependents: dict[str, list[str]] = {}
    for addr, rec in state.records.items():
        for dep in rec.dependencies:
            stored_dependents.setdefault(dep, []).append(addr)

    for addr, key in delete_phase.items():
        op = ops[key]
        for dependent in stored_dependents.get(addr, []):
            if dependent == addr:
                continue
            if _replace_strategy(op) == "destroy-first":
                other = delete_phase.get(dependent)
                create_first = other is not None and _replace_strategy(ops[other]) == "create-first"
                waits = [other] if other is not None and not create_first else []
            else:
                waits = by_address.get(dependent, [])
            op.deps.extend(k for k in waits if k not in op.deps)

    return ops


def _replace_strategy(op: Operation) -> str | None:
    return op.step.replace_strategy if op.step.action == Action.REPLACE else None
