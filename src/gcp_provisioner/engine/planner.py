"""Plan engine: diff the desired graph against stored state."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python

from gcp_provisioner.engine.errors import SchemaViolationError, UnresolvedReferenceError
from gcp_provisioner.engine.graph import DependencyGraph
from gcp_provisioner.engine.references import (
    UNKNOWN,
    contains_unknown,
    lookup_path,
    render_unknowns,
    resolve_references,
)
from gcp_provisioner.engine.schema import REDACTED, ValueKind
from gcp_provisioner.engine.types import Action, PlanStep

if TYPE_CHECKING:
    from gcp_provisioner.core.state import LiveRecord, State
    from gcp_provisioner.engine.builder import ResourceGraph, ResourceNode
    from gcp_provisioner.engine.references import Reference
    from gcp_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
    from gcp_provisioner.engine.schema import AttributeSchema, ResourceType

logger = logging.getLogger(__name__)


# ── Comparison ──────────────────────────────────────────────────────


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def attribute_differs(attr: AttributeSchema, desired: Any, prior: Any) -> bool:
    """Check whether a desired attribute value differs from the stored one.

    Comparison semantics depend on the attribute's ``compare`` strategy:

    - ``"set"``: lists are compared order-insensitively.
    - ``"exact"``: strict equality; extra keys in dicts count as differences.
    - default / ``"partial"``: for maps, only keys present in *desired* are
      compared (provider-added keys are ignored); nested blocks are compared
      attribute by attribute with their own schema.

    A value that is only known after apply always differs.
    """
    if contains_unknown(desired):
        return True

    if attr.compare == "set":
        if isinstance(desired, list) and isinstance(prior, list):
            return sorted(map(_canonical, desired)) != sorted(map(_canonical, prior))
        return desired != prior

    if attr.compare == "exact":
        return desired != prior

    if attr.block is not None:
        if attr.value_kind == ValueKind.NESTED_BLOCK:
            if isinstance(desired, dict) and isinstance(prior, dict):
                return _block_differs(attr.block, desired, prior)
        elif isinstance(desired, list) and isinstance(prior, list):
            if len(desired) != len(prior):
                return True
            return any(
                _block_differs(attr.block, d, p)
                if isinstance(d, dict) and isinstance(p, dict)
                else d != p
                for d, p in zip(desired, prior, strict=True)
            )
        return desired != prior

    if isinstance(desired, dict) and isinstance(prior, dict):
        return any(v != prior.get(k) for k, v in desired.items())
    return desired != prior


def _block_differs(attributes: list[AttributeSchema], desired: dict, prior: dict) -> bool:
    return any(
        attribute_differs(sub, desired[sub.name], prior.get(sub.name))
        for sub in attributes
        if not sub.computed and sub.name in desired
    )


def changed_attributes(
    schema: ResourceType, desired: dict[str, Any], prior: dict[str, Any]
) -> list[str]:
    """Names of non-computed attributes whose desired value differs from *prior*.

    Both sides must be comparable: sensitive values sealed the same way.
    """
    return [
        attr.name
        for attr in schema.attributes
        if not attr.computed
        and attr.name in desired
        and attribute_differs(attr, desired[attr.name], prior.get(attr.name))
    ]


def _display(value: Any) -> Any:
    return render_unknowns(value)


def attribute_diff(
    schema: ResourceType, names: list[str], desired: dict[str, Any], prior: dict[str, Any]
) -> dict[str, Any]:
    diff: dict[str, Any] = {}
    for name in names:
        attr = schema.attribute(name)
        if attr is not None and attr.sensitive:
            diff[name] = {"from": REDACTED, "to": REDACTED}
            continue
        redacted_from = schema.redact({name: prior.get(name)}).get(name)
        redacted_to = schema.redact({name: desired.get(name)}).get(name)
        diff[name] = {"from": _display(redacted_from), "to": _display(redacted_to)}
    return diff


# ── Planner ─────────────────────────────────────────────────────────


class Planner:
    """Compute plan steps for a graph against a state snapshot.

    References are resolved against *planned values*: stored attributes for
    unchanged nodes, stored attributes overlaid with desired values for
    updated nodes, and desired values plus unknown computed attributes for
    created or replaced nodes. An unknown value on a forces-replace attribute
    cascades the replacement to the dependent.
    """

    def __init__(self, registry: ResourceTypeRegistry) -> None:
        self._registry = registry

    def plan(
        self, graph: ResourceGraph, state: State, *, destroy: bool = False
    ) -> list[PlanStep]:
        if destroy:
            steps = self._plan_deposed(state)
            steps.extend(self._plan_destroys(state, set(state.records), reason="destroy requested"))
            return steps

        planned_values: dict[str, dict[str, Any]] = {}
        creating: set[str] = set()
        errors: list[str] = []
        steps: list[PlanStep] = []

        for addr in graph.topological_order():
            node = graph.node(addr)
            reg = self._registry.get(node.resource_type)

            def lookup(ref: Reference, _addr: str = addr) -> Any:
                values = planned_values.get(ref.address)
                if values is None:
                    # Target failed validation; its error is already recorded.
                    return UNKNOWN
                try:
                    return lookup_path(values, ref.path)
                except KeyError:
                    if ref.address in creating:
                        return UNKNOWN
                    raise UnresolvedReferenceError(
                        _addr, ref.expression, "path not found in planned values"
                    ) from None

            resolved = resolve_references(node.attributes, lookup)
            desired, problems = self._normalize(reg, resolved)
            if problems:
                errors.extend(f"{addr}: {p}" for p in problems)
                continue

            record = state.records.get(addr)
            step, values = self._classify(node, reg, desired, record)
            if step.action in (Action.CREATE, Action.REPLACE):
                creating.add(addr)
            planned_values[addr] = values
            logger.debug("Classified %s as %s", addr, step.action.value)
            steps.append(step)

        if errors:
            raise SchemaViolationError(errors)

        steps.extend(self._plan_deposed(state))
        removed = set(state.records) - set(graph.nodes)
        steps.extend(self._plan_destroys(state, removed, reason="removed from configuration"))
        return steps

    # ── classification ──────────────────────────────────────────────

    def _normalize(
        self, reg: ResourceTypeRegistration, resolved: dict[str, Any]
    ) -> tuple[dict[str, Any], list[str]]:
        """Desired values for every non-computed attribute, defaults included."""
        schema = reg.schema
        computed = schema.computed_attributes
        if not contains_unknown(resolved):
            try:
                obj = reg.model.model_validate(resolved)
            except PydanticValidationError as exc:
                return {}, [
                    f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                    for err in exc.errors()
                ]
            return obj.model_dump(mode="json", exclude=computed), []

        values = dict(resolved)
        for name, fi in reg.model.model_fields.items():
            if name in computed or name in values:
                continue
            values[name] = to_jsonable_python(fi.get_default(call_default_factory=True))
        return values, []

    def _classify(
        self,
        node: ResourceNode,
        reg: ResourceTypeRegistration,
        desired: dict[str, Any],
        record: LiveRecord | None,
    ) -> tuple[PlanStep, dict[str, Any]]:
        schema = reg.schema
        new_values = {
            **desired,
            **dict.fromkeys(schema.computed_attributes, UNKNOWN),
            "id": UNKNOWN,
        }
        step = PlanStep(
            address=node.address,
            resource_type=node.resource_type,
            name=node.name,
            action=Action.CREATE,
            index=node.index,
            desired=schema.seal(dict(node.attributes)),
            declared=dict(node.attributes),
            depends_on=list(node.dependencies),
            replace_strategy=node.replace_strategy,
            deletion_protected=node.deletion_protected,
        )

        if record is None:
            step.reason = "not in state"
            step.planned = _display(schema.redact(new_values))
            return step, new_values

        prior = dict(record.attributes)
        step.prior = schema.redact(prior)
        step.prior_id = record.id
        step.prior_version = record.version

        sealed = schema.seal(desired)
        changed = changed_attributes(schema, sealed, prior)
        diff = attribute_diff(schema, changed, sealed, prior)
        forces = [name for name in changed if name in schema.forces_replace_attributes]

        if forces:
            step.action = Action.REPLACE
            step.reason = "forces replacement: " + ", ".join(forces)
            step.diff = diff
            step.planned = _display(schema.redact(new_values))
            if record.deletion_protected:
                step.blocked = True
                step.reason += "; blocked by deletion protection"
            return step, new_values

        if record.deletion_protected != node.deletion_protected:
            diff["deletion_protected"] = {
                "from": record.deletion_protected,
                "to": node.deletion_protected,
            }
        if set(record.dependencies) != set(node.dependencies):
            diff["depends_on"] = {
                "from": sorted(record.dependencies),
                "to": sorted(node.dependencies),
            }

        values = {**prior, "id": record.id}
        if not diff:
            step.action = Action.NOOP
            step.reason = "up to date"
            step.planned = _display(schema.redact(values))
            return step, values

        values.update({name: desired[name] for name in changed})
        step.action = Action.UPDATE
        step.diff = diff
        step.state_only = not changed
        step.reason = (
            "attributes changed: " + ", ".join(changed) if changed else "state metadata changed"
        )
        step.planned = _display(schema.redact(values))
        return step, values

    # ── destroys ────────────────────────────────────────────────────

    def _destroy_step(self, record: LiveRecord, *, reason: str, deposed: bool) -> PlanStep:
        schema = self._registry.describe(record.resource_type)  # fail early if unknown
        step = PlanStep(
            address=record.address,
            resource_type=record.resource_type,
            name=record.name,
            action=Action.DESTROY,
            reason=reason,
            prior=schema.redact(dict(record.attributes)),
            prior_id=record.id,
            prior_version=record.version,
            deletion_protected=record.deletion_protected,
            deposed=deposed,
        )
        if record.deletion_protected and not deposed:
            step.blocked = True
            step.reason += "; blocked by deletion protection"
        return step

    def _plan_destroys(self, state: State, addrs: set[str], *, reason: str) -> list[PlanStep]:
        """Destroy steps in reverse dependency order (dependents first)."""
        dep_map = {a: [d for d in state.records[a].dependencies if d in addrs] for a in addrs}
        order = DependencyGraph(sorted(addrs), dep_map).reverse_topological_order()
        steps = [self._destroy_step(state.records[a], reason=reason, deposed=False) for a in order]
        for step in steps:
            logger.debug("Classified %s as destroy (blocked=%s)", step.address, step.blocked)
        return steps

    def _plan_deposed(self, state: State) -> list[PlanStep]:
        return [
            self._destroy_step(
                state.deposed[addr], reason="deposed by an interrupted replacement", deposed=True
            )
            for addr in sorted(state.deposed)
        ]
