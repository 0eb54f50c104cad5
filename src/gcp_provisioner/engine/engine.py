"""Plan/apply engine."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from gcp_provisioner import __version__
from gcp_provisioner.core.state import compute_attributes_hash, compute_state_digest
from gcp_provisioner.engine.builder import GraphBuilder, ResourceGraph
from gcp_provisioner.engine.drift import DriftDetector
from gcp_provisioner.engine.errors import EngineError, StalePlanError
from gcp_provisioner.engine.executor import DEFAULT_PARALLELISM, ApplyExecutor, ProgressCallback
from gcp_provisioner.engine.planner import Planner
from gcp_provisioner.engine.references import lookup_path, resolve_references
from gcp_provisioner.engine.retry import RetryPolicy
from gcp_provisioner.engine.types import Action, Plan, PlanMetadata

if TYPE_CHECKING:
    import threading
    from collections.abc import Mapping, Sequence

    from gcp_provisioner.core.state import State
    from gcp_provisioner.engine.builder import ResourceDeclaration
    from gcp_provisioner.engine.provider import EngineContext
    from gcp_provisioner.engine.references import Reference
    from gcp_provisioner.engine.registry import ResourceTypeRegistry
    from gcp_provisioner.engine.state_store import StateStore
    from gcp_provisioner.engine.types import ApplyResult, DriftReport

logger = logging.getLogger(__name__)


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def _sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_config_digest(declarations: Sequence[ResourceDeclaration]) -> str:
    items = [d.model_dump(mode="json") for d in declarations]
    items.sort(key=lambda x: f"{x['type']}.{x['name']}")
    return _sha256_hex(_canonical_json(items))


def resolve_outputs(outputs: Mapping[str, Any], state: State) -> dict[str, Any]:
    """Resolve output expressions against stored records.

    Outputs whose targets are not (yet) in state are left out.
    """

    def lookup(ref: Reference) -> Any:
        record = state.records.get(ref.address)
        if record is None:
            raise KeyError(ref.address)
        return lookup_path({**record.attributes, "id": record.id}, ref.path)

    resolved: dict[str, Any] = {}
    for name, expr in outputs.items():
        try:
            resolved[name] = resolve_references(expr, lookup)
        except KeyError as exc:
            logger.warning("Output %s is not available: %s not found", name, exc)
    return resolved


class ProvisionEngine:
    """Terraform-like plan/apply engine for declared cloud resources.

    The declared resources and the state store are explicit arguments; two
    engines over independent stores never share anything.
    """

    def __init__(
        self,
        *,
        registry: ResourceTypeRegistry,
        store: StateStore,
        ctx: EngineContext,
        parallelism: int = DEFAULT_PARALLELISM,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._ctx = ctx
        self._parallelism = parallelism
        self._retry = retry or RetryPolicy()

    @property
    def store(self) -> StateStore:
        return self._store

    def _drift_detector(self) -> DriftDetector:
        return DriftDetector(
            registry=self._registry,
            ctx=self._ctx,
            parallelism=self._parallelism,
            retry=self._retry,
        )

    def build(self, declarations: Sequence[ResourceDeclaration]) -> ResourceGraph:
        return GraphBuilder(self._registry).build(declarations)

    # ── refresh / drift ─────────────────────────────────────────────

    def _refresh_state_in_place(self, state: State) -> bool:
        logger.debug("Refreshing state from live resources")
        detector = self._drift_detector()
        changed = False
        for address, record in list(state.records.items()):
            live = detector.read_live(record)
            if live is None:
                logger.info("%s no longer exists; dropping it from state", address)
                del state.records[address]
                changed = True
                continue
            if live != record.attributes:
                record.attributes = live
                record.attributes_hash = compute_attributes_hash(live)
                record.updated_at = datetime.now(UTC)
                changed = True
        logger.debug("State refreshed, changed=%s", changed)
        return changed

    def refresh(self, *, persist: bool = False) -> tuple[State, State]:
        """Refresh state from live resources. Returns (pre_refresh, post_refresh)."""
        with self._store.session(operation="refresh") as state:
            snapshot = state.model_copy(deep=True)
            changed = self._refresh_state_in_place(state)
            if changed and persist:
                self._store.replace(state)
                state = self._store.load()
            return snapshot, state

    def drift(self) -> DriftReport:
        """Report divergence between stored records and live attributes."""
        return self._drift_detector().detect(self._store.load())

    # ── plan / apply ────────────────────────────────────────────────

    def plan(
        self,
        declarations: Sequence[ResourceDeclaration],
        *,
        destroy: bool = False,
        refresh: bool = True,
    ) -> Plan:
        logger.info(
            "Planning %d resources (destroy=%s, refresh=%s)", len(declarations), destroy, refresh
        )
        graph = ResourceGraph() if destroy else self.build(declarations)

        with self._store.session(operation="plan") as state:
            if refresh and self._refresh_state_in_place(state):
                self._store.replace(state)
                state = self._store.load()

            steps = Planner(self._registry).plan(graph, state, destroy=destroy)
            metadata = PlanMetadata(
                created_at=datetime.now(UTC),
                destroy=destroy,
                refresh=refresh,
                state_lineage=state.lineage,
                state_serial=state.serial,
                state_digest=compute_state_digest(state),
                config_digest=compute_config_digest([] if destroy else declarations),
                engine_version=__version__,
            )
        plan = Plan(metadata=metadata, steps=steps)
        logger.info("Plan: %s", plan.summary())
        return plan

    def _restore_declared(
        self, plan: Plan, declarations: Sequence[ResourceDeclaration] | None
    ) -> None:
        """Give a plan loaded from a file its sensitive values back.

        Saved plans carry sensitive values sealed. Each step's attributes are
        taken from *declarations* again, provided they seal to what was planned.
        """
        by_address = {d.address: d for d in declarations or []}
        missing: list[str] = []
        for step in plan.steps:
            if step.desired is None or step.declared is not None:
                continue
            schema = self._registry.describe(step.resource_type)
            decl = by_address.get(step.address)
            if decl is not None:
                if schema.seal(dict(decl.attributes)) != step.desired:
                    raise StalePlanError(
                        f"Configuration of {step.address} changed since the plan was saved"
                    )
                step.declared = dict(decl.attributes)
            elif step.action != Action.NOOP and schema.redact(step.desired) != step.desired:
                missing.append(step.address)
        if missing:
            raise EngineError(
                "Sensitive values are not saved with a plan; apply it together with "
                "its configuration: " + ", ".join(missing)
            )

    def apply(
        self,
        plan: Plan,
        *,
        declarations: Sequence[ResourceDeclaration] | None = None,
        outputs: Mapping[str, Any] | None = None,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ApplyResult:
        """Apply a plan computed against the current state.

        *declarations* is the configuration the plan was made from. It is
        required for a plan loaded from a file that touches sensitive
        attributes.

        Raises:
            StalePlanError: state or configuration changed since the plan was
                computed.
            LockHeldError: another session holds the state lock.
        """
        with self._store.session(operation="apply") as state:
            if state.serial == 0:
                # Nothing persisted yet: bootstrap from the plan (saved-plan semantics).
                self._store.adopt_lineage(plan.metadata.state_lineage)
                state = self._store.load()
            # Stale plan detection
            if state.lineage != plan.metadata.state_lineage:
                raise StalePlanError("State lineage changed; re-run plan")
            if state.serial != plan.metadata.state_serial:
                raise StalePlanError("State serial changed; re-run plan")
            if compute_state_digest(state) != plan.metadata.state_digest:
                raise StalePlanError("State digest changed; re-run plan")
            self._restore_declared(plan, declarations)

            executor = ApplyExecutor(
                registry=self._registry,
                store=self._store,
                ctx=self._ctx,
                parallelism=self._parallelism,
                retry=self._retry,
            )
            result = executor.apply(plan, progress=progress, cancel=cancel)

            if outputs is not None:
                self._store.set_outputs(resolve_outputs(outputs, self._store.load()))
            return result

    def outputs(self, outputs: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Current output values: resolved from *outputs* if given, else as stored."""
        state = self._store.load()
        if outputs is None:
            return dict(state.outputs)
        return resolve_outputs(outputs, state)

    def force_unlock(self, lock_id: str) -> None:
        self._store.force_unlock(lock_id)

